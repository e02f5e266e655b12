"""
Domain models for card scheduling.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any

from .errors import InvalidGradeError


class CardPhase(str, Enum):
    """Scheduling phase of a card. Closed set: every transition handles all four."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"

    @property
    def is_learning(self) -> bool:
        return self in (CardPhase.LEARNING, CardPhase.RELEARNING)


class Grade(IntEnum):
    """Self-reported recall quality, ordered from worst to best."""

    AGAIN = 0
    HARD = 1
    GOOD = 2
    EASY = 3

    @classmethod
    def parse(cls, value: Any) -> "Grade":
        """
        Coerce a grade from a Grade, its integer value or its name.

        Raises:
            InvalidGradeError: for anything else (including bools and floats).
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise InvalidGradeError(value)
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise InvalidGradeError(value) from None
        if isinstance(value, str):
            name = value.strip().upper()
            if name in cls.__members__:
                return cls[name]
            if name.isdigit():
                return cls.parse(int(name))
        raise InvalidGradeError(value)


@dataclass(frozen=True)
class CardState:
    """
    Scheduling status of one flashcard for one user/project.

    Attributes:
        user_id: Owning user.
        project_id: Owning project (deck).
        card_id: Flashcard identifier.
        phase: New, Learning, Review or Relearning.
        due: Instant the card is next due.
        interval: Whole days; the next Review gap (also kept through relearning).
        ease: Interval growth multiplier.
        repetitions: Successful Review-phase answers.
        lapses: Review-phase failures.
        learning_step: Index into the active step ladder.
        is_leech: Lapsed at least LEECH_THRESHOLD times.
        is_suspended: Excluded from every due computation.
        last_reviewed: Instant of the last grade, None if never graded.
        note_id: Source grouping shared by sibling cards.
        created_at: Flashcard creation instant (FIFO ordering).
    """

    user_id: str
    project_id: str
    card_id: str
    phase: CardPhase
    due: datetime
    interval: int
    ease: float
    repetitions: int = 0
    lapses: int = 0
    learning_step: int = 0
    is_leech: bool = False
    is_suspended: bool = False
    last_reviewed: datetime | None = None
    note_id: str | None = None
    created_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        """Upsert key for persistence."""
        return (self.user_id, self.project_id, self.card_id)

    def is_due(self, now: datetime) -> bool:
        """Naive instants on either side are read as UTC."""
        return not self.is_suspended and _utc(self.due) <= _utc(now)


def _utc(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class ReviewLogEntry:
    """
    A single append-only review log entry.

    Attributes:
        entry_id: ULID of the entry.
        card_id: The card that was graded.
        grade: Button pressed.
        phase_before: Phase the card was in when shown.
        phase_after: Phase after scheduling.
        reviewed_at: Instant of the grade.
        interval_after: Interval (days) after scheduling.
    """

    entry_id: str
    user_id: str
    project_id: str
    card_id: str
    grade: Grade
    phase_before: CardPhase
    phase_after: CardPhase
    reviewed_at: datetime
    interval_after: int

    @property
    def counts_as_new(self) -> bool:
        return self.phase_before is CardPhase.NEW

    @property
    def counts_as_review(self) -> bool:
        return self.phase_before is CardPhase.REVIEW


@dataclass(frozen=True)
class StudyStats:
    """Session-aware counts of what is still studiable today."""

    available_new_cards: int
    due_learning_cards: int
    due_review_cards: int
    due_cards: int
    total_cards: int

    def as_dict(self) -> dict[str, int]:
        return {
            "availableNewCards": self.available_new_cards,
            "dueLearningCards": self.due_learning_cards,
            "dueReviewCards": self.due_review_cards,
            "dueCards": self.due_cards,
            "totalCards": self.total_cards,
        }


@dataclass(frozen=True)
class DailySummary:
    new_cards_studied: int
    reviews_completed: int
    lapses: int
    estimated_seconds: int
    accuracy: float  # Percentage of Good/Easy answers
