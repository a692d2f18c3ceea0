"""Time-label parsing and the join-window rule.

Counselors publish times as labels in either 24-hour ("18:30") or 12-hour
("06:30 PM") form. Both convert to the same absolute instant; timestamps are
kept as naive UTC like every other datetime column.
"""

import re
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import settings
from app.core.errors import InvalidProfile, InvalidTimeLabel

_LABEL_24H = re.compile(r"^(?P<hour>[01]\d|2[0-3]):(?P<minute>[0-5]\d)$")
_LABEL_12H = re.compile(r"^(?P<hour>0[1-9]|1[0-2]):(?P<minute>[0-5]\d) (?P<period>AM|PM)$")


def parse_time_label(label: str) -> time:
    """Parse "HH:MM" or "HH:MM AM/PM" into a wall-clock time."""
    text = (label or "").strip()
    match = _LABEL_12H.match(text.upper())
    if match:
        hour = int(match["hour"]) % 12
        if match["period"] == "PM":
            hour += 12
        return time(hour, int(match["minute"]))
    match = _LABEL_24H.match(text)
    if match:
        return time(int(match["hour"]), int(match["minute"]))
    raise InvalidTimeLabel(f"Unrecognised time label: {label!r}")


def is_meridiem_label(label: str) -> bool:
    return label.strip().upper().endswith(("AM", "PM"))


def normalize_time_label(label: str) -> str:
    """Validate a label (format and slot granularity) and return its canonical spelling."""
    parsed = parse_time_label(label)
    if parsed.minute % settings.slot_granularity_minutes:
        raise InvalidTimeLabel(
            f"{label!r} is not aligned to {settings.slot_granularity_minutes}-minute slots"
        )
    return format_wall_time(parsed, meridiem=is_meridiem_label(label))


def format_wall_time(value: time, meridiem: bool) -> str:
    if meridiem:
        return value.strftime("%I:%M %p")
    return value.strftime("%H:%M")


def label_sort_key(label: str) -> tuple[int, int]:
    parsed = parse_time_label(label)
    return parsed.hour, parsed.minute


def resolve_timezone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidProfile(f"Unknown timezone: {name!r}") from None


def build_session_timestamp(day: date, label: str, tz_name: str | None = None) -> datetime:
    """Absolute start of (day, label) in the counselor's zone, as naive UTC."""
    local = datetime.combine(day, parse_time_label(label), tzinfo=resolve_timezone(tz_name))
    return local.astimezone(UTC).replace(tzinfo=None)


def format_time_label(session_timestamp: datetime, meridiem: bool, tz_name: str | None = None) -> str:
    """Inverse of build_session_timestamp for the label part."""
    local = session_timestamp.replace(tzinfo=UTC).astimezone(resolve_timezone(tz_name))
    return format_wall_time(local.time(), meridiem=meridiem)


def utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def local_today(tz_name: str | None = None, now: datetime | None = None) -> date:
    """Calendar date in the given zone at `now` (naive UTC)."""
    now = now or utc_naive_now()
    return now.replace(tzinfo=UTC).astimezone(resolve_timezone(tz_name)).date()


def join_opens_at(session_timestamp: datetime) -> datetime:
    return session_timestamp - timedelta(minutes=settings.join_early_minutes)


def can_join(session_timestamp: datetime, now: datetime | None = None) -> bool:
    now = now or utc_naive_now()
    return now >= join_opens_at(session_timestamp)


def remaining_seconds(session_timestamp: datetime, now: datetime | None = None) -> int:
    now = now or utc_naive_now()
    diff = (session_timestamp - now).total_seconds()
    return 0 if diff <= 0 else int(diff)
