# slowpost/utils/reveal.py
"""
Delay normalization and reveal-time computation

Every historical delay input shape collapses into one canonical minute count:
- delayMinutes                          (current combined value)
- delayDays / delayHours / delayMinutesPart  (the three-part picker)
- delayDays                             (oldest clients, whole days only)
- delayValue + delayUnit                (draft format used for a while)

Reveal status is never stored. It is derived from the wall clock on each read.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Union

from dateutil import parser as date_parser

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 24 * MINUTES_PER_HOUR

MAX_DELAY_DAYS = 30
MAX_DELAY_HOURS = 23
MAX_DELAY_MINUTES_PART = 59
MAX_DELAY_MINUTES = MAX_DELAY_DAYS * MINUTES_PER_DAY  # 43200

LEGACY_DELAY_UNITS = ("immediate", "day", "hour", "minute")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_int(value: Any) -> Optional[int]:
    """Lenient integer parse: "12", "12.7", "12abc" -> 12; junk -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if not match:
            return None
        return int(match.group(1))
    return None


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(value, upper))


def _component(value: Any, upper: int) -> int:
    parsed = parse_int(value)
    if parsed is None:
        return 0
    return clamp(parsed, 0, upper)


def _is_present(source: Mapping[str, Any], key: str) -> bool:
    value = source.get(key)
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def combine_delay(days: Any = 0, hours: Any = 0, minutes: Any = 0) -> int:
    """Clamp each part to its own range, then clamp the sum."""
    total = (
        _component(days, MAX_DELAY_DAYS) * MINUTES_PER_DAY
        + _component(hours, MAX_DELAY_HOURS) * MINUTES_PER_HOUR
        + _component(minutes, MAX_DELAY_MINUTES_PART)
    )
    return clamp(total, 0, MAX_DELAY_MINUTES)


def _legacy_unit_delay(value: Any, unit: Any) -> int:
    unit = unit if unit in LEGACY_DELAY_UNITS else "day"
    if unit == "immediate":
        return 0
    if unit == "day":
        return combine_delay(days=value)
    if unit == "hour":
        return combine_delay(hours=value)
    return combine_delay(minutes=value)


def normalize_delay(source: Optional[Mapping[str, Any]]) -> int:
    """Canonical delay in minutes from any supported input shape.

    Precedence: a parseable ``delayMinutes`` wins; then the
    days/hours/minutes triple if ``delayHours`` or ``delayMinutesPart`` is
    present; then legacy days-only; then legacy ``delayValue``/``delayUnit``;
    otherwise 0.
    """
    if not source:
        return 0

    explicit = parse_int(source.get("delayMinutes"))
    if explicit is not None:
        return clamp(explicit, 0, MAX_DELAY_MINUTES)

    if _is_present(source, "delayHours") or _is_present(source, "delayMinutesPart"):
        return combine_delay(
            source.get("delayDays"),
            source.get("delayHours"),
            source.get("delayMinutesPart"),
        )

    if _is_present(source, "delayDays"):
        return combine_delay(days=source.get("delayDays"))

    if _is_present(source, "delayValue"):
        return _legacy_unit_delay(source.get("delayValue"), source.get("delayUnit"))

    return 0


def delay_days(delay_minutes: int) -> int:
    return delay_minutes // MINUTES_PER_DAY


@dataclass(frozen=True)
class RevealStatus:
    is_revealed: bool
    time_left_ms: int
    reveal_time: datetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """ISO string or datetime -> aware UTC datetime (naive input is taken as UTC)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = date_parser.isoparse(str(value))
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a trailing Z."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def reveal_status(now: datetime, schedule_time: datetime, delay_minutes: int) -> RevealStatus:
    reveal_time = schedule_time + timedelta(minutes=delay_minutes)
    remaining_ms = (reveal_time - now) // timedelta(milliseconds=1)
    return RevealStatus(
        is_revealed=now >= reveal_time,
        time_left_ms=max(0, remaining_ms),
        reveal_time=reveal_time,
    )
