from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """UTC timestamp like '2025-11-06T09:12:34.123456Z'.

    Microseconds are always present so stored values compare correctly as strings.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def epoch_ms(dt: Optional[datetime] = None) -> int:
    return int((dt or utcnow()).timestamp() * 1000)


def parse_day(value: str) -> date:
    """Parse 'YYYY-MM-DD' (a full ISO timestamp is accepted, only its date is kept)."""
    if not value or not value.strip():
        raise ValueError("date string is empty")
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise ValueError(f"Invalid date: {value!r}")


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """[start, end) of a UTC calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def previous_week_window(reference: datetime) -> Tuple[datetime, datetime]:
    """Most recent complete Monday-to-Monday UTC week before the reference's week."""
    ref = reference.astimezone(timezone.utc)
    this_monday = datetime.combine(
        ref.date() - timedelta(days=ref.weekday()), time.min, tzinfo=timezone.utc
    )
    return this_monday - timedelta(days=7), this_monday


def listing_start(date_start: Optional[str], time_start: Optional[str]) -> Optional[datetime]:
    """Start instant of a listing; missing time means midnight. Values are UTC."""
    if not date_start:
        return None
    try:
        day = date.fromisoformat(date_start[:10])
        at = time.fromisoformat(time_start) if time_start else time.min
    except ValueError:
        return None
    return datetime.combine(day, at, tzinfo=timezone.utc)


def listing_end(date_start: Optional[str], date_end: Optional[str], time_end: Optional[str]) -> Optional[datetime]:
    if not date_end and not time_end:
        return None
    day_str = date_end or date_start
    if not day_str:
        return None
    try:
        day = date.fromisoformat(day_str[:10])
        at = time.fromisoformat(time_end) if time_end else time(23, 59)
    except ValueError:
        return None
    return datetime.combine(day, at, tzinfo=timezone.utc)
