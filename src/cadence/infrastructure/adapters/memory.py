"""
In-memory adapters for the persistence ports.

Useful for embedding the engine in a process that owns its own storage, and in tests.
"""

import logging
from datetime import datetime

from cadence.application.calendar import ensure_aware
from cadence.application.scheduler import new_card_state
from cadence.domain.models import CardState, ReviewLogEntry
from cadence.domain.ports import CardStateRepository, ReviewLogRepository
from cadence.domain.settings import DEFAULT_SETTINGS, SchedulerSettings

logger = logging.getLogger(__name__)


class InMemoryCardStateRepository(CardStateRepository):
    """Dict-backed card-state store keyed by (user, project, card)."""

    def __init__(self, settings: SchedulerSettings = DEFAULT_SETTINGS):
        self.settings = settings
        self._rows: dict[tuple[str, str, str], CardState] = {}

    async def load_states(
        self, user_id: str, project_id: str, card_ids: list[str]
    ) -> dict[str, CardState]:
        now = datetime.now().astimezone()
        states: dict[str, CardState] = {}
        for card_id in card_ids:
            state = self._rows.get((user_id, project_id, card_id))
            if state is None:
                state = new_card_state(user_id, project_id, card_id, self.settings, now)
            states[card_id] = state
        return states

    async def save_state(self, state: CardState) -> None:
        self._rows[state.key] = state

    async def create_state(
        self,
        user_id: str,
        project_id: str,
        card_id: str,
        now: datetime,
        note_id: str | None = None,
    ) -> CardState:
        state = new_card_state(user_id, project_id, card_id, self.settings, now, note_id=note_id)
        self._rows[state.key] = state
        return state

    def all_states(self) -> list[CardState]:
        return list(self._rows.values())


class InMemoryReviewLog(ReviewLogRepository):
    """Append-only list of review entries."""

    def __init__(self):
        self.entries: list[ReviewLogEntry] = []

    async def append(self, entry: ReviewLogEntry) -> None:
        self.entries.append(entry)

    async def entries_between(
        self, user_id: str, project_id: str, start: datetime, end: datetime
    ) -> list[ReviewLogEntry]:
        matching = [
            e
            for e in self.entries
            if e.user_id == user_id
            and e.project_id == project_id
            and start <= ensure_aware(e.reviewed_at) < end
        ]
        return sorted(matching, key=lambda e: ensure_aware(e.reviewed_at))
