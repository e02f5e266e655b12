"""Building review log entries for graded cards."""

from datetime import datetime

from ulid import ULID

from cadence.domain.models import CardState, Grade, ReviewLogEntry


def generate_entry_id() -> str:
    """Generate a sortable review log ID using ULID."""
    return f"rev_{ULID()}"


def build_entry(before: CardState, after: CardState, answer: Grade, now: datetime) -> ReviewLogEntry:
    """Log entry for one transition computed by the scheduler."""
    return ReviewLogEntry(
        entry_id=generate_entry_id(),
        user_id=before.user_id,
        project_id=before.project_id,
        card_id=before.card_id,
        grade=answer,
        phase_before=before.phase,
        phase_after=after.phase,
        reviewed_at=now,
        interval_after=after.interval,
    )
