"""
SQLite adapters: one flat row per (user, project, card) plus an append-only review log.

Instants are stored as UTC ISO-8601 text with a fixed microsecond format so that
lexicographic order matches chronological order.
"""

import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path

from cadence.application.calendar import ensure_aware
from cadence.application.scheduler import new_card_state
from cadence.domain.errors import PersistenceError
from cadence.domain.models import CardPhase, CardState, Grade, ReviewLogEntry
from cadence.domain.ports import CardStateRepository, ReviewLogRepository
from cadence.domain.settings import DEFAULT_SETTINGS, SchedulerSettings

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS card_states (
    user_id TEXT NOT NULL,
    project_id TEXT NOT NULL,
    card_id TEXT NOT NULL,
    phase TEXT NOT NULL,
    due TEXT NOT NULL,
    interval INTEGER NOT NULL,
    ease REAL NOT NULL,
    repetitions INTEGER NOT NULL DEFAULT 0,
    lapses INTEGER NOT NULL DEFAULT 0,
    learning_step INTEGER NOT NULL DEFAULT 0,
    is_leech INTEGER NOT NULL DEFAULT 0,
    is_suspended INTEGER NOT NULL DEFAULT 0,
    last_reviewed TEXT,
    note_id TEXT,
    created_at TEXT,
    PRIMARY KEY (user_id, project_id, card_id)
);
CREATE TABLE IF NOT EXISTS review_log (
    entry_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    project_id TEXT NOT NULL,
    card_id TEXT NOT NULL,
    grade INTEGER NOT NULL,
    phase_before TEXT NOT NULL,
    phase_after TEXT NOT NULL,
    reviewed_at TEXT NOT NULL,
    interval_after INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_review_log_day
    ON review_log (user_id, project_id, reviewed_at);
"""

STATE_COLUMNS = (
    "user_id, project_id, card_id, phase, due, interval, ease, repetitions, lapses, "
    "learning_step, is_leech, is_suspended, last_reviewed, note_id, created_at"
)

UPSERT_STATE = f"""
INSERT INTO card_states ({STATE_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (user_id, project_id, card_id) DO UPDATE SET
    phase = excluded.phase,
    due = excluded.due,
    interval = excluded.interval,
    ease = excluded.ease,
    repetitions = excluded.repetitions,
    lapses = excluded.lapses,
    learning_step = excluded.learning_step,
    is_leech = excluded.is_leech,
    is_suspended = excluded.is_suspended,
    last_reviewed = excluded.last_reviewed,
    note_id = excluded.note_id,
    created_at = excluded.created_at
"""


def _to_text(moment: datetime | None) -> str | None:
    if moment is None:
        return None
    return ensure_aware(moment).astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_text(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class SqliteStore:
    """Shared connection handling for the SQLite adapters."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._ensure_schema()

    def connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _ensure_schema(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with closing(self.connect()) as conn, conn:
                conn.executescript(SCHEMA)
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Could not initialize database at {self.db_path}: {e}")
            raise PersistenceError(f"Could not initialize database: {e}") from e


class SqliteCardStateRepository(CardStateRepository):
    """Card-state store backed by the ``card_states`` table."""

    def __init__(self, store: SqliteStore, settings: SchedulerSettings = DEFAULT_SETTINGS):
        self.store = store
        self.settings = settings

    async def load_states(
        self, user_id: str, project_id: str, card_ids: list[str]
    ) -> dict[str, CardState]:
        if not card_ids:
            return {}

        placeholders = ",".join("?" for _ in card_ids)
        query = (
            f"SELECT {STATE_COLUMNS} FROM card_states "
            f"WHERE user_id = ? AND project_id = ? AND card_id IN ({placeholders})"
        )
        try:
            with closing(self.store.connect()) as conn:
                rows = conn.execute(query, [user_id, project_id, *card_ids]).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to load states for {user_id}/{project_id}: {e}")
            raise PersistenceError(f"Failed to load card states: {e}") from e

        states = {row[2]: self._row_to_state(row) for row in rows}

        now = datetime.now(timezone.utc)
        for card_id in card_ids:
            if card_id not in states:
                states[card_id] = new_card_state(user_id, project_id, card_id, self.settings, now)
        return states

    async def save_state(self, state: CardState) -> None:
        try:
            with closing(self.store.connect()) as conn, conn:
                conn.execute(UPSERT_STATE, self._state_to_row(state))
        except sqlite3.Error as e:
            logger.error(f"Failed to save state for card {state.card_id}: {e}")
            raise PersistenceError(f"Failed to save card state: {e}") from e

    async def create_state(
        self,
        user_id: str,
        project_id: str,
        card_id: str,
        now: datetime,
        note_id: str | None = None,
    ) -> CardState:
        state = new_card_state(user_id, project_id, card_id, self.settings, now, note_id=note_id)
        await self.save_state(state)
        return state

    async def list_card_ids(self, user_id: str, project_id: str) -> list[str]:
        """All card ids with persisted state, in creation order."""
        try:
            with closing(self.store.connect()) as conn:
                rows = conn.execute(
                    "SELECT card_id FROM card_states WHERE user_id = ? AND project_id = ? "
                    "ORDER BY created_at, card_id",
                    (user_id, project_id),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to list cards for {user_id}/{project_id}: {e}")
            raise PersistenceError(f"Failed to list cards: {e}") from e
        return [row[0] for row in rows]

    @staticmethod
    def _state_to_row(state: CardState) -> tuple:
        return (
            state.user_id,
            state.project_id,
            state.card_id,
            state.phase.value,
            _to_text(state.due),
            state.interval,
            state.ease,
            state.repetitions,
            state.lapses,
            state.learning_step,
            int(state.is_leech),
            int(state.is_suspended),
            _to_text(state.last_reviewed),
            state.note_id,
            _to_text(state.created_at),
        )

    @staticmethod
    def _row_to_state(row: tuple) -> CardState:
        return CardState(
            user_id=row[0],
            project_id=row[1],
            card_id=row[2],
            phase=CardPhase(row[3]),
            due=_from_text(row[4]),
            interval=row[5],
            ease=row[6],
            repetitions=row[7],
            lapses=row[8],
            learning_step=row[9],
            is_leech=bool(row[10]),
            is_suspended=bool(row[11]),
            last_reviewed=_from_text(row[12]),
            note_id=row[13],
            created_at=_from_text(row[14]),
        )


class SqliteReviewLog(ReviewLogRepository):
    """Append-only review history backed by the ``review_log`` table."""

    def __init__(self, store: SqliteStore):
        self.store = store

    async def append(self, entry: ReviewLogEntry) -> None:
        try:
            with closing(self.store.connect()) as conn, conn:
                conn.execute(
                    "INSERT INTO review_log (entry_id, user_id, project_id, card_id, grade, "
                    "phase_before, phase_after, reviewed_at, interval_after) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        entry.entry_id,
                        entry.user_id,
                        entry.project_id,
                        entry.card_id,
                        int(entry.grade),
                        entry.phase_before.value,
                        entry.phase_after.value,
                        _to_text(entry.reviewed_at),
                        entry.interval_after,
                    ),
                )
        except sqlite3.Error as e:
            logger.error(f"Failed to append review for card {entry.card_id}: {e}")
            raise PersistenceError(f"Failed to append review log entry: {e}") from e

    async def entries_between(
        self, user_id: str, project_id: str, start: datetime, end: datetime
    ) -> list[ReviewLogEntry]:
        try:
            with closing(self.store.connect()) as conn:
                rows = conn.execute(
                    "SELECT entry_id, user_id, project_id, card_id, grade, phase_before, "
                    "phase_after, reviewed_at, interval_after FROM review_log "
                    "WHERE user_id = ? AND project_id = ? AND reviewed_at >= ? AND reviewed_at < ? "
                    "ORDER BY reviewed_at ASC",
                    (user_id, project_id, _to_text(start), _to_text(end)),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to read review log for {user_id}/{project_id}: {e}")
            raise PersistenceError(f"Failed to read review log: {e}") from e

        return [
            ReviewLogEntry(
                entry_id=row[0],
                user_id=row[1],
                project_id=row[2],
                card_id=row[3],
                grade=Grade(row[4]),
                phase_before=CardPhase(row[5]),
                phase_after=CardPhase(row[6]),
                reviewed_at=_from_text(row[7]),
                interval_after=row[8],
            )
            for row in rows
        ]
