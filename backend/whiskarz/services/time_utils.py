"""Time-of-day parsing and wall-clock to instant conversion.

All comparisons between bookings and slots happen on UTC instants; local
"HH:mm" strings only exist at the edges and are resolved against the
business timezone here.
"""

import re
from datetime import date, datetime, timedelta
from datetime import timezone as dt_timezone
from typing import Iterator, Optional, Tuple, Union

import pendulum
from pendulum import DateTime

from whiskarz.services.errors import SchedulingValidationError

MINUTES_PER_DAY = 24 * 60

HHMM_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"

_HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_TWELVE_HOUR_RE = re.compile(r"^(1[0-2]|0?[1-9])(?::([0-5]\d))?\s*([ap])\.?m\.?$", re.IGNORECASE)
_BARE_HOUR_RE = re.compile(r"^([01]?\d|2[0-3])$")


def hhmm_to_minutes(value: str) -> int:
    """Strict "HH:mm" to minutes since midnight; raises ``ValueError``."""
    match = _HHMM_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time {value!r}; expected HH:mm")
    return int(match.group(1)) * 60 + int(match.group(2))


def try_parse_time(text: Optional[str]) -> Optional[int]:
    """Parse "HH:mm", "H[:mm] AM/PM" or a bare 24h hour; ``None`` when nothing matches."""
    if text is None:
        return None
    value = text.strip()
    if not value:
        return None

    match = _HHMM_RE.match(value)
    if match:
        return int(match.group(1)) * 60 + int(match.group(2))

    match = _TWELVE_HOUR_RE.match(value)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        meridiem = match.group(3).lower()
        if meridiem == "a" and hour == 12:
            hour = 0
        elif meridiem == "p" and hour < 12:
            hour += 12
        return hour * 60 + minute

    match = _BARE_HOUR_RE.match(value)
    if match:
        return int(match.group(1)) * 60

    return None


def parse_time_to_minutes(text: Optional[str], fallback_minutes: int) -> int:
    parsed = try_parse_time(text)
    return fallback_minutes if parsed is None else parsed


def format_minutes(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_iso_date(value: Union[str, date], *, field: str = "date") -> date:
    """Calendar date of an ISO date or datetime string, normalized to UTC midnight."""
    if isinstance(value, date):
        return date(value.year, value.month, value.day)
    try:
        parsed = pendulum.parse(value.strip())
    except Exception as exc:
        raise SchedulingValidationError(f"Invalid {field}; expected YYYY-MM-DD") from exc
    if isinstance(parsed, DateTime):
        parsed = parsed.in_timezone("UTC")
    elif not isinstance(parsed, date):
        raise SchedulingValidationError(f"Invalid {field}; expected YYYY-MM-DD")
    return date(parsed.year, parsed.month, parsed.day)


def days_in_range(start: date, end: date) -> int:
    """Inclusive day count between two calendar dates."""
    return (end - start).days + 1


def iter_dates(start: date, end: date) -> Iterator[date]:
    for offset in range(max(days_in_range(start, end), 0)):
        yield start + timedelta(days=offset)


def local_minutes_to_instant(day: date, minutes: int, timezone: str) -> DateTime:
    # minutes past midnight may spill into the following day(s)
    day = day + timedelta(days=minutes // MINUTES_PER_DAY)
    minutes %= MINUTES_PER_DAY
    local = pendulum.datetime(day.year, day.month, day.day, minutes // 60, minutes % 60, tz=timezone)
    return local.in_timezone("UTC")


def local_to_instant(day: Union[str, date], time_of_day: str, timezone: str) -> DateTime:
    """Interpret ``time_of_day`` on ``day`` as wall-clock time in ``timezone``."""
    try:
        minutes = hhmm_to_minutes(time_of_day)
    except ValueError as exc:
        raise SchedulingValidationError(str(exc)) from exc
    return local_minutes_to_instant(parse_iso_date(day), minutes, timezone)


def to_utc_iso(instant: datetime) -> str:
    return instant.astimezone(dt_timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def from_utc_iso(value: str) -> DateTime:
    return pendulum.parse(value).in_timezone("UTC")


def local_day_bounds(start: date, end: date, timezone: str) -> Tuple[str, str]:
    """[start 00:00, end+1 00:00) in the business timezone, as UTC ISO strings."""
    lower = local_minutes_to_instant(start, 0, timezone)
    upper = local_minutes_to_instant(end + timedelta(days=1), 0, timezone)
    return to_utc_iso(lower), to_utc_iso(upper)
