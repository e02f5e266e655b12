"""
Study session: admission control and ordering for one study screen.

A Session is an in-memory overlay on top of the persisted card states. It is
seeded once from today's review log (so daily quotas hold across re-opened
sessions) and afterwards only advances its own counters, one increment per
graded card. It never rescans the review history.

Sessions are not thread-safe. One study instance owns a session and must
serialize calls to ``record_answer``.
"""

import hashlib
import logging
import random
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from cadence.domain import constants as c
from cadence.domain.models import (
    CardPhase,
    CardState,
    DailySummary,
    Grade,
    ReviewLogEntry,
    StudyStats,
)
from cadence.domain.settings import SchedulerSettings

from .calendar import ensure_aware, local_day_bounds

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    STUDYING = "studying"
    DONE_FOR_TODAY = "done_for_today"
    NO_CARDS = "no_cards"


@dataclass
class _Answer:
    """Undo record for one graded card."""

    before: CardState
    grade: Grade
    day_start: datetime
    buried: set[str] = field(default_factory=set)


class Session:
    """
    Decides the next card to show and reports live statistics.

    Selection priority:
        1. Due Learning/Relearning cards (earliest due first).
        2. Due Review cards, within the daily review quota.
        3. New cards, within the daily new-card quota.
        4. Review-ahead (if enabled and nothing else is available).
    """

    def __init__(
        self,
        settings: SchedulerSettings,
        now: datetime,
        *,
        new_cards_logged_today: int = 0,
        reviews_logged_today: int = 0,
        timezone: str = c.DEFAULT_TIMEZONE,
        seed: int | None = None,
    ):
        """
        Args:
            settings: Project settings, fixed for the session's lifetime.
            now: Instant the session is opened; fixes its calendar day.
            new_cards_logged_today: New cards already studied today (persisted).
            reviews_logged_today: Reviews already completed today (persisted).
            timezone: IANA zone defining the calendar day.
            seed: Seed for the random new-card order.
        """
        self.settings = settings
        self.timezone = timezone
        self._day_start, self._day_end = local_day_bounds(now, timezone)

        self.new_cards_logged_today = new_cards_logged_today
        self.reviews_logged_today = reviews_logged_today
        self.new_cards_studied = 0
        self.reviews_completed = 0
        self.buried: set[str] = set()

        self._answers: deque[_Answer] = deque(maxlen=c.UNDO_HISTORY_LIMIT)
        self._answer_count = 0
        self._again_count = 0
        self._good_or_easy_count = 0

        self._shuffle_salt = random.Random(seed).getrandbits(64)

    @classmethod
    def from_history(
        cls,
        settings: SchedulerSettings,
        entries: Iterable[ReviewLogEntry],
        now: datetime,
        *,
        timezone: str = c.DEFAULT_TIMEZONE,
        seed: int | None = None,
    ) -> "Session":
        """
        Open a session seeded from the persisted review log.

        This is the only place the history is scanned. Entries outside the
        calendar day of ``now`` are ignored.
        """
        day_start, day_end = local_day_bounds(now, timezone)
        new_count = 0
        review_count = 0
        for entry in entries:
            reviewed_at = ensure_aware(entry.reviewed_at)
            if not day_start <= reviewed_at < day_end:
                continue
            if entry.counts_as_new:
                new_count += 1
            elif entry.counts_as_review:
                review_count += 1

        logger.debug(
            f"Session seeded for {day_start.date()}: "
            f"{new_count} new cards, {review_count} reviews already logged"
        )
        return cls(
            settings,
            now,
            new_cards_logged_today=new_count,
            reviews_logged_today=review_count,
            timezone=timezone,
            seed=seed,
        )

    # ------------------------------------------------------------------
    # Queries (read-only)
    # ------------------------------------------------------------------

    def next_card(
        self,
        states: Mapping[str, CardState],
        now: datetime,
        settings: SchedulerSettings | None = None,
    ) -> str | None:
        """
        Return the id of the single next card to present, or None when done for today.

        Never changes session state: repeated calls give the same answer.
        """
        settings = settings or self.settings
        now = ensure_aware(now)
        active = [s for s in states.values() if self._is_active(s)]

        learning = [s for s in active if s.phase.is_learning and _due(s) <= now]
        if learning:
            return min(learning, key=_by_due).card_id

        remaining_reviews = self._remaining_reviews(settings, now)
        if remaining_reviews > 0:
            due_reviews = [s for s in active if s.phase is CardPhase.REVIEW and _due(s) <= now]
            if due_reviews:
                return min(due_reviews, key=_by_due).card_id

        if self._remaining_new(settings, now) > 0:
            new_cards = [s for s in active if s.phase is CardPhase.NEW]
            if new_cards:
                return min(new_cards, key=self._new_card_key(settings)).card_id

        if settings.review_ahead and remaining_reviews > 0:
            upcoming = [s for s in active if s.phase is CardPhase.REVIEW and _due(s) > now]
            if upcoming:
                return min(upcoming, key=_by_due).card_id

        return None

    def stats(
        self,
        states: Mapping[str, CardState],
        now: datetime,
        settings: SchedulerSettings | None = None,
    ) -> StudyStats:
        """Counts of what is still studiable, respecting quotas, burials and suspensions."""
        settings = settings or self.settings
        now = ensure_aware(now)
        new_total = 0
        learning_due = 0
        reviews_due = 0

        for state in states.values():
            if not self._is_active(state):
                continue
            if state.phase is CardPhase.NEW:
                new_total += 1
            elif _due(state) <= now:
                if state.phase.is_learning:
                    learning_due += 1
                else:
                    reviews_due += 1

        available_new = min(new_total, self._remaining_new(settings, now))
        due_reviews = min(reviews_due, self._remaining_reviews(settings, now))
        return StudyStats(
            available_new_cards=available_new,
            due_learning_cards=learning_due,
            due_review_cards=due_reviews,
            due_cards=learning_due + due_reviews,
            total_cards=len(states),
        )

    def status(self, states: Mapping[str, CardState], now: datetime) -> SessionStatus:
        """Distinguish "done for today" from "no cards exist"."""
        if not states:
            return SessionStatus.NO_CARDS
        if self.next_card(states, now) is None:
            return SessionStatus.DONE_FOR_TODAY
        return SessionStatus.STUDYING

    def daily_summary(self) -> DailySummary:
        accuracy = 0.0
        if self._answer_count:
            accuracy = self._good_or_easy_count / self._answer_count * 100
        return DailySummary(
            new_cards_studied=self.new_cards_studied,
            reviews_completed=self.reviews_completed,
            lapses=self._again_count,
            estimated_seconds=self._answer_count * c.ESTIMATED_SECONDS_PER_CARD,
            accuracy=accuracy,
        )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def record_answer(
        self,
        before: CardState,
        answer: Grade,
        now: datetime,
        states: Mapping[str, CardState] | None = None,
    ) -> None:
        """
        Advance counters after ``before`` was graded and its new state persisted.

        Args:
            before: The card state that was shown.
            answer: The grade given.
            now: Instant of the answer.
            states: All card states; needed to bury siblings.
        """
        self._roll_over_if_needed(now)

        if before.phase is CardPhase.NEW:
            self.new_cards_studied += 1
        elif before.phase is CardPhase.REVIEW:
            self.reviews_completed += 1

        self._answer_count += 1
        if answer is Grade.AGAIN:
            self._again_count += 1
        elif answer >= Grade.GOOD:
            self._good_or_easy_count += 1

        newly_buried: set[str] = set()
        if self.settings.bury_siblings and before.note_id and states:
            for sibling in states.values():
                if (
                    sibling.note_id == before.note_id
                    and sibling.card_id != before.card_id
                    and not sibling.phase.is_learning
                    and sibling.card_id not in self.buried
                ):
                    newly_buried.add(sibling.card_id)
            if newly_buried:
                logger.debug(f"Burying {len(newly_buried)} siblings of {before.card_id}")
            self.buried |= newly_buried

        self._answers.append(
            _Answer(before=before, grade=answer, day_start=self._day_start, buried=newly_buried)
        )

    def undo_last(self) -> CardState | None:
        """
        Revert the most recent answer.

        Returns:
            The card state to restore (the caller persists it), or None if
            there is nothing to undo.
        """
        if not self._answers:
            return None

        last = self._answers.pop()
        if last.day_start == self._day_start:
            if last.before.phase is CardPhase.NEW:
                self.new_cards_studied = max(0, self.new_cards_studied - 1)
            elif last.before.phase is CardPhase.REVIEW:
                self.reviews_completed = max(0, self.reviews_completed - 1)
            self.buried -= last.buried

        self._answer_count -= 1
        if last.grade is Grade.AGAIN:
            self._again_count -= 1
        elif last.grade >= Grade.GOOD:
            self._good_or_easy_count -= 1

        return last.before

    def peek_undo(self) -> CardState | None:
        """The state `undo_last` would restore, without reverting anything."""
        if not self._answers:
            return None
        return self._answers[-1].before

    @property
    def can_undo(self) -> bool:
        return bool(self._answers)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_active(self, state: CardState) -> bool:
        if state.is_suspended:
            return False
        # Burying never hides a card that is mid-ladder
        return state.phase.is_learning or state.card_id not in self.buried

    def _is_today(self, now: datetime) -> bool:
        return self._day_start <= ensure_aware(now) < self._day_end

    def _remaining_new(self, settings: SchedulerSettings, now: datetime) -> int:
        if not self._is_today(now):
            return settings.new_cards_per_day
        used = self.new_cards_studied + self.new_cards_logged_today
        return max(0, settings.new_cards_per_day - used)

    def _remaining_reviews(self, settings: SchedulerSettings, now: datetime) -> int:
        if not self._is_today(now):
            return settings.max_reviews_per_day
        used = self.reviews_completed + self.reviews_logged_today
        return max(0, settings.max_reviews_per_day - used)

    def _roll_over_if_needed(self, now: datetime) -> None:
        if ensure_aware(now) < self._day_end:
            return
        self._day_start, self._day_end = local_day_bounds(now, self.timezone)
        logger.info(f"New study day {self._day_start.date()}: resetting quotas and burials")
        self.new_cards_logged_today = 0
        self.reviews_logged_today = 0
        self.new_cards_studied = 0
        self.reviews_completed = 0
        self.buried.clear()

    def _new_card_key(self, settings: SchedulerSettings):
        if settings.new_card_order == "fifo":
            return _by_creation

        salt = self._shuffle_salt

        def shuffled(state: CardState) -> tuple[bytes, str]:
            digest = hashlib.sha256(f"{salt}:{state.card_id}".encode()).digest()
            return (digest, state.card_id)

        return shuffled


def _due(state: CardState) -> datetime:
    return ensure_aware(state.due)


def _by_due(state: CardState) -> tuple[datetime, str]:
    return (_due(state), state.card_id)


def _by_creation(state: CardState) -> tuple[datetime, str]:
    return (ensure_aware(state.created_at or state.due), state.card_id)


def next_card(
    states: Mapping[str, CardState],
    session: Session,
    settings: SchedulerSettings,
    now: datetime,
) -> str | None:
    """Id of the next card to present, or None when done for today."""
    return session.next_card(states, now, settings=settings)


def stats(
    states: Mapping[str, CardState],
    session: Session,
    settings: SchedulerSettings,
    now: datetime,
) -> StudyStats:
    """Session-aware study statistics."""
    return session.stats(states, now, settings=settings)
