"""
Ports (interfaces) for persistence.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from .models import CardState, ReviewLogEntry


class CardStateRepository(ABC):
    """
    Port for the persisted card-state store.

    Implementations:
        - InMemoryCardStateRepository: dict-backed, for tests and embedding.
        - SqliteCardStateRepository: one flat row per (user, project, card).
    """

    @abstractmethod
    async def load_states(
        self, user_id: str, project_id: str, card_ids: list[str]
    ) -> dict[str, CardState]:
        """
        Fetch states for the given cards.

        Cards with no persisted state are returned as fresh New cards.

        Raises:
            PersistenceError: if the store is unavailable.
        """
        pass

    @abstractmethod
    async def save_state(self, state: CardState) -> None:
        """
        Idempotent upsert keyed by (user, project, card).

        Raises:
            PersistenceError: on failure. Never retried by the core.
        """
        pass

    @abstractmethod
    async def create_state(
        self,
        user_id: str,
        project_id: str,
        card_id: str,
        now: datetime,
        note_id: str | None = None,
    ) -> CardState:
        """
        Create and persist the initial New state for a freshly created flashcard.
        """
        pass


class ReviewLogRepository(ABC):
    """Port for the append-only review history."""

    @abstractmethod
    async def append(self, entry: ReviewLogEntry) -> None:
        """
        Append one entry.

        Raises:
            PersistenceError: on failure.
        """
        pass

    @abstractmethod
    async def entries_between(
        self, user_id: str, project_id: str, start: datetime, end: datetime
    ) -> list[ReviewLogEntry]:
        """
        Entries with start <= reviewed_at < end, sorted by reviewed_at ascending.
        """
        pass
