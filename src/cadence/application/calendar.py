"""Timezone-aware calendar-day boundaries for daily quotas."""

from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def ensure_aware(moment: datetime) -> datetime:
    """Naive datetimes are interpreted as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def local_day_bounds(now: datetime, tz_name: str) -> tuple[datetime, datetime]:
    """
    Return [start, end) of the local calendar day containing ``now``.

    Both bounds are aware datetimes in the given IANA timezone.
    """
    tz = ZoneInfo(tz_name)
    local = ensure_aware(now).astimezone(tz)
    start = datetime.combine(local.date(), time.min, tzinfo=tz)
    end = datetime.combine(local.date() + timedelta(days=1), time.min, tzinfo=tz)
    return start, end
