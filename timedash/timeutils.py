import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional, Tuple

MS_PER_HOUR = 3_600_000
MS_PER_DAY = 24 * MS_PER_HOUR
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // timedelta(milliseconds=1)


def from_millis(ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=int(ms))


def day_start_millis(day: date) -> int:
    return to_millis(datetime.combine(day, time.min))


def day_bounds(day: date) -> Tuple[int, int]:
    start = day_start_millis(day)
    return start, start + MS_PER_DAY - 1


def day_of(ms: int) -> date:
    return from_millis(ms).date()


def js_weekday(day: date) -> int:
    """Weekday index with 0 for Sunday, as stored in contracts."""
    return (day.weekday() + 1) % 7


def daterange(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def parse_iso(value: str, end_of_day: bool = False) -> datetime:
    """Parse an ISO date or datetime string into an aware UTC datetime.

    A bare date maps to midnight, or to the last millisecond of the day
    when ``end_of_day`` is set.
    """
    text = (value or "").strip()
    if not text:
        raise ValueError("empty date")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    if len(text) == 10:
        day = date.fromisoformat(text)
        if end_of_day:
            return from_millis(day_bounds(day)[1])
        return datetime.combine(day, time.min, tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def entry_duration_hours(start_ms, end_ms) -> Optional[float]:
    """Duration of an entry in hours, or None when the interval is unusable."""
    if start_ms is None or end_ms is None:
        return None
    try:
        start = float(start_ms)
        end = float(end_ms)
    except (TypeError, ValueError):
        return None
    if math.isnan(start) or math.isnan(end) or end < start:
        return None
    return (end - start) / MS_PER_HOUR
