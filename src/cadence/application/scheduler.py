"""
Card scheduler: the state machine mapping (card state, grade) to the next state.

This is a pure computation module with no I/O. Every function returns a new
CardState and never mutates its input, so it is safe to call concurrently.

Phases:
    New -> Learning -> Review <-> Relearning

Ladder delays are minutes; Review intervals are whole days clamped to
[1, max_interval].
"""

import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, assert_never

from cadence.domain.errors import MalformedCardError, SuspendedCardError
from cadence.domain.models import CardPhase, CardState, Grade
from cadence.domain.settings import SchedulerSettings

from .calendar import ensure_aware
from .ease_policy import EasePolicy, policy_for

logger = logging.getLogger(__name__)


def grade(
    card: CardState,
    settings: SchedulerSettings,
    grade: Any,
    now: datetime,
    ease_policy: EasePolicy | None = None,
) -> CardState:
    """
    Compute a card's next state after it was answered with ``grade`` at ``now``.

    A New card is first placed on step 0 of the learning ladder and then
    answered from there: Again keeps it on step 0, Hard and Good move it to
    step 1 (or graduate it when the ladder has a single step), Easy graduates
    it straight to EASY_INTERVAL.

    Args:
        card: Current state. Must be active and well-formed.
        settings: Validated project settings.
        grade: A Grade, its integer value or its name.
        now: Instant of the answer. A naive value is taken as UTC.
        ease_policy: Overrides the ease growth rule chosen by the settings.

    Returns:
        The new CardState. Identical inputs always yield identical output.

    Raises:
        InvalidGradeError: unrecognized grade value.
        SuspendedCardError: the card is suspended.
        MalformedCardError: the card violates a CardState invariant.
    """
    answer = Grade.parse(grade)
    validate_card(card, settings)
    now = ensure_aware(now)
    policy = ease_policy or policy_for(settings)

    answered = replace(card, last_reviewed=now)
    phase = card.phase

    if phase is CardPhase.NEW:
        # A New card sits on step 0 of the learning ladder.
        result = _schedule_ladder(
            replace(answered, phase=CardPhase.LEARNING, learning_step=0), answer, settings, now
        )
    elif phase is CardPhase.LEARNING or phase is CardPhase.RELEARNING:
        result = _schedule_ladder(answered, answer, settings, now)
    elif phase is CardPhase.REVIEW:
        result = _schedule_review(answered, answer, settings, now, policy)
    else:
        assert_never(phase)

    logger.debug(
        f"Card {card.card_id}: {phase.value} --{answer.name}--> {result.phase.value} "
        f"(interval={result.interval}d, ease={result.ease}, due={result.due.isoformat()})"
    )
    return result


def validate_card(card: CardState, settings: SchedulerSettings) -> None:
    """
    Reject cards that cannot be graded.

    Raises:
        SuspendedCardError: the card is suspended.
        MalformedCardError: an invariant is violated.
    """
    if not isinstance(card.phase, CardPhase):
        raise MalformedCardError(card.card_id, f"unknown phase {card.phase!r}")
    if card.is_suspended:
        raise SuspendedCardError(card.card_id)
    if not 1 <= card.interval <= settings.max_interval:
        raise MalformedCardError(
            card.card_id, f"interval {card.interval} outside [1, {settings.max_interval}]"
        )
    if card.ease < settings.minimum_ease:
        raise MalformedCardError(
            card.card_id, f"ease {card.ease} below minimum {settings.minimum_ease}"
        )
    ladder = settings.ladder_for(card.phase)
    if not 0 <= card.learning_step <= len(ladder):
        raise MalformedCardError(
            card.card_id, f"learning_step {card.learning_step} outside [0, {len(ladder)}]"
        )
    if card.repetitions < 0 or card.lapses < 0:
        raise MalformedCardError(card.card_id, "negative repetitions or lapses")


def new_card_state(
    user_id: str,
    project_id: str,
    card_id: str,
    settings: SchedulerSettings,
    now: datetime,
    note_id: str | None = None,
    created_at: datetime | None = None,
) -> CardState:
    """Initial state for a freshly created flashcard: New and immediately due."""
    return CardState(
        user_id=user_id,
        project_id=project_id,
        card_id=card_id,
        phase=CardPhase.NEW,
        due=now,
        interval=1,
        ease=settings.starting_ease,
        note_id=note_id,
        created_at=created_at or now,
    )


def suspend_card(card: CardState) -> CardState:
    return replace(card, is_suspended=True)


def unsuspend_card(card: CardState) -> CardState:
    return replace(card, is_suspended=False)


def reset_card(card: CardState, settings: SchedulerSettings, now: datetime) -> CardState:
    """Forget all progress: back to New, leech and suspension cleared."""
    return replace(
        card,
        phase=CardPhase.NEW,
        due=now,
        interval=1,
        ease=settings.starting_ease,
        repetitions=0,
        lapses=0,
        learning_step=0,
        is_leech=False,
        is_suspended=False,
    )


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def _schedule_ladder(
    card: CardState, answer: Grade, settings: SchedulerSettings, now: datetime
) -> CardState:
    """Learning and Relearning share one ladder walk; only graduation differs."""
    ladder = settings.ladder_for(card.phase)

    if answer is Grade.EASY or not ladder:
        return _graduate(card, answer, settings, now)

    if answer is Grade.AGAIN:
        step = 0
    else:
        step = card.learning_step + 1
        if step >= len(ladder):
            return _graduate(card, answer, settings, now)

    return replace(card, learning_step=step, due=now + timedelta(minutes=ladder[step]))


def _graduate(
    card: CardState, answer: Grade, settings: SchedulerSettings, now: datetime
) -> CardState:
    if card.phase is CardPhase.RELEARNING:
        # Back to Review at the interval fixed when the card lapsed.
        interval = _clamp(card.interval, settings)
    elif answer is Grade.EASY:
        interval = _clamp(settings.easy_interval, settings)
    else:
        interval = _clamp(settings.graduating_interval, settings)

    return replace(
        card,
        phase=CardPhase.REVIEW,
        interval=interval,
        learning_step=0,
        due=now + timedelta(days=interval),
    )


def _schedule_review(
    card: CardState,
    answer: Grade,
    settings: SchedulerSettings,
    now: datetime,
    policy: EasePolicy,
) -> CardState:
    if answer is Grade.AGAIN:
        return _lapse(card, settings, now)

    ease = card.ease
    if answer is Grade.HARD:
        interval = card.interval * settings.hard_interval_factor
    elif answer is Grade.GOOD:
        interval = card.interval * card.ease * settings.interval_modifier
    else:
        interval = (
            card.interval * card.ease * settings.easy_interval_factor * settings.interval_modifier
        )
        ease = max(settings.minimum_ease, _round_ease(policy.on_easy(card.ease)))

    days = _clamp(_round_half_up(interval), settings)
    return replace(
        card,
        phase=CardPhase.REVIEW,
        interval=days,
        ease=ease,
        repetitions=card.repetitions + 1,
        due=now + timedelta(days=days),
    )


def _lapse(card: CardState, settings: SchedulerSettings, now: datetime) -> CardState:
    lapses = card.lapses + 1
    ease = max(settings.minimum_ease, _round_ease(card.ease - settings.lapse_ease_penalty))
    interval = _clamp(_round_half_up(card.interval * settings.lapse_recovery_factor), settings)

    is_leech = card.is_leech or lapses >= settings.leech_threshold
    is_suspended = card.is_suspended
    if is_leech:
        logger.info(
            f"Card {card.card_id} is a leech ({lapses} lapses, action={settings.leech_action})"
        )
        if settings.leech_action == "suspend":
            is_suspended = True

    lapsed = replace(
        card,
        lapses=lapses,
        ease=ease,
        interval=interval,
        learning_step=0,
        is_leech=is_leech,
        is_suspended=is_suspended,
    )

    if settings.relearning_steps:
        return replace(
            lapsed,
            phase=CardPhase.RELEARNING,
            due=now + timedelta(minutes=settings.relearning_steps[0]),
        )
    return replace(lapsed, phase=CardPhase.REVIEW, due=now + timedelta(days=interval))


# ---------------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------------


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _round_ease(value: float) -> float:
    return round(value, 4)


def _clamp(days: int, settings: SchedulerSettings) -> int:
    return max(1, min(days, settings.max_interval))
