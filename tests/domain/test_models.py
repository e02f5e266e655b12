from datetime import timedelta

import pytest

from cadence.domain.errors import InvalidGradeError
from cadence.domain.models import CardPhase, Grade, StudyStats


@pytest.mark.parametrize(
    "value,expected",
    [
        (Grade.HARD, Grade.HARD),
        (0, Grade.AGAIN),
        (3, Grade.EASY),
        ("good", Grade.GOOD),
        ("Easy", Grade.EASY),
        (" again ", Grade.AGAIN),
        ("1", Grade.HARD),
    ],
)
def test_grade_parse(value, expected):
    assert Grade.parse(value) is expected


@pytest.mark.parametrize("value", [4, -1, "great", "", None, 2.0, True])
def test_grade_parse_rejects_unknown_values(value):
    with pytest.raises(InvalidGradeError):
        Grade.parse(value)


def test_phase_is_learning():
    assert CardPhase.LEARNING.is_learning
    assert CardPhase.RELEARNING.is_learning
    assert not CardPhase.NEW.is_learning
    assert not CardPhase.REVIEW.is_learning


def test_card_is_due(make_card, now):
    card = make_card(due=now)
    assert card.is_due(now)
    assert not card.is_due(now - timedelta(seconds=1))
    assert not make_card(is_suspended=True).is_due(now)


def test_card_is_due_with_naive_now(make_card, now):
    card = make_card(due=now)
    assert card.is_due(now.replace(tzinfo=None))
    assert not card.is_due(now.replace(tzinfo=None) - timedelta(seconds=1))


def test_study_stats_as_dict():
    stats = StudyStats(
        available_new_cards=3,
        due_learning_cards=1,
        due_review_cards=2,
        due_cards=3,
        total_cards=10,
    )
    assert stats.as_dict() == {
        "availableNewCards": 3,
        "dueLearningCards": 1,
        "dueReviewCards": 2,
        "dueCards": 3,
        "totalCards": 10,
    }
