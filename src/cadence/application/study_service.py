"""
Study Service: application layer orchestrator.

Coordinates the card-state store, the review log, the pure scheduler and the
in-memory session. The only suspension point per grade is the awaited
persistence of the new state; failures propagate to the caller unchanged.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cadence.domain import constants as c
from cadence.domain.errors import PersistenceError, UnknownCardError
from cadence.domain.models import CardState, Grade, StudyStats
from cadence.domain.ports import CardStateRepository, ReviewLogRepository
from cadence.domain.settings import SchedulerSettings

from . import scheduler
from .calendar import local_day_bounds
from .ease_policy import EasePolicy
from .review_log import build_entry
from .session import Session, SessionStatus

logger = logging.getLogger(__name__)


@dataclass
class StudyContext:
    """Everything one study screen holds while open."""

    user_id: str
    project_id: str
    session: Session
    states: dict[str, CardState] = field(default_factory=dict)


@dataclass(frozen=True)
class AnswerResult:
    state: CardState
    became_leech: bool


class StudyService:
    """
    Application service for running study sessions.

    Follows Dependency Inversion: depends on the repository ports,
    not concrete adapter implementations.
    """

    def __init__(
        self,
        state_repo: CardStateRepository,
        review_log: ReviewLogRepository,
        settings: SchedulerSettings,
        timezone: str = c.DEFAULT_TIMEZONE,
        ease_policy: EasePolicy | None = None,
    ):
        """
        Args:
            state_repo: Port for persisted card states.
            review_log: Port for the append-only review history.
            settings: Validated project settings.
            timezone: IANA zone defining the study day.
            ease_policy: Optional override of the Easy ease growth rule.
        """
        self._states = state_repo
        self._log = review_log
        self.settings = settings
        self.timezone = timezone
        self._ease_policy = ease_policy

    async def open(
        self,
        user_id: str,
        project_id: str,
        card_ids: list[str],
        now: datetime,
        seed: int | None = None,
    ) -> StudyContext:
        """Load card states and seed a new session from today's review log."""
        states = await self._states.load_states(user_id, project_id, card_ids)
        day_start, day_end = local_day_bounds(now, self.timezone)
        entries = await self._log.entries_between(user_id, project_id, day_start, day_end)

        session = Session.from_history(
            self.settings, entries, now, timezone=self.timezone, seed=seed
        )
        logger.info(
            f"Opened session for {user_id}/{project_id}: {len(states)} cards, "
            f"{len(entries)} reviews logged today"
        )
        return StudyContext(user_id=user_id, project_id=project_id, session=session, states=states)

    def next_card(self, ctx: StudyContext, now: datetime) -> CardState | None:
        card_id = ctx.session.next_card(ctx.states, now)
        return ctx.states[card_id] if card_id is not None else None

    def stats(self, ctx: StudyContext, now: datetime) -> StudyStats:
        return ctx.session.stats(ctx.states, now)

    def status(self, ctx: StudyContext, now: datetime) -> SessionStatus:
        return ctx.session.status(ctx.states, now)

    async def answer(
        self, ctx: StudyContext, card_id: str, grade: Any, now: datetime
    ) -> AnswerResult:
        """
        Grade a card, persist its new state and advance the session.

        Raises:
            UnknownCardError: the card is not part of this session.
            CardStateError: the card cannot be graded (see scheduler.grade).
            PersistenceError: the store or the log failed. If the state write
                fails the session is left untouched. If only the log append
                fails the new state is kept and the failure is logged.
        """
        before = self._get(ctx, card_id)
        answer = Grade.parse(grade)
        after = scheduler.grade(before, self.settings, answer, now, self._ease_policy)

        await self._states.save_state(after)

        ctx.states[card_id] = after
        ctx.session.record_answer(before, answer, now, ctx.states)

        try:
            await self._log.append(build_entry(before, after, answer, now))
        except PersistenceError as e:
            logger.error(f"Card {card_id} was graded and saved but its review was not logged: {e}")
            raise

        became_leech = after.is_leech and not before.is_leech
        if became_leech:
            logger.info(f"Card {card_id} flagged as leech after {after.lapses} lapses")
        return AnswerResult(state=after, became_leech=became_leech)

    async def add_card(
        self, ctx: StudyContext, card_id: str, now: datetime, note_id: str | None = None
    ) -> CardState:
        """Create state for a freshly created flashcard; visible on the next query."""
        state = await self._states.create_state(
            ctx.user_id, ctx.project_id, card_id, now, note_id=note_id
        )
        ctx.states[card_id] = state
        return state

    async def undo(self, ctx: StudyContext) -> CardState | None:
        """Restore the card answered last. The review log is append-only and keeps its entry."""
        previous = ctx.session.peek_undo()
        if previous is None:
            return None
        # The session is only rewound once the restored state is stored
        await self._states.save_state(previous)
        ctx.session.undo_last()
        ctx.states[previous.card_id] = previous
        return previous

    async def suspend(self, ctx: StudyContext, card_id: str) -> CardState:
        return await self._replace(ctx, scheduler.suspend_card(self._get(ctx, card_id)))

    async def unsuspend(self, ctx: StudyContext, card_id: str) -> CardState:
        return await self._replace(ctx, scheduler.unsuspend_card(self._get(ctx, card_id)))

    async def reset(self, ctx: StudyContext, card_id: str, now: datetime) -> CardState:
        return await self._replace(
            ctx, scheduler.reset_card(self._get(ctx, card_id), self.settings, now)
        )

    def _get(self, ctx: StudyContext, card_id: str) -> CardState:
        try:
            return ctx.states[card_id]
        except KeyError:
            raise UnknownCardError(card_id) from None

    async def _replace(self, ctx: StudyContext, state: CardState) -> CardState:
        await self._states.save_state(state)
        ctx.states[state.card_id] = state
        return state
