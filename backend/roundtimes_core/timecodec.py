"""Conversions between millisecond integers and the clock strings shown on results pages."""

from __future__ import annotations

import re
from typing import Any, Optional

PLACEHOLDER = "-"

_CLOCK_PATTERN = re.compile(r"^\+?(?:(\d{1,2}):)?(\d{1,2}):(\d{2})\.(\d{1,3})$")
_ENTRY_PATTERN = re.compile(r"^\+?(\d{1,2}):(\d{2}):(\d{2})\.(\d{1,3})$")
_STORED_PATTERN = re.compile(r"^(\+?)(\d{2}):(\d{2}):(\d{2})\.(\d{1,3})$")

_FLEXIBLE_FULL = re.compile(r"^(\+?)(\d{1,2}):(\d{2}):(\d{2})\.(\d{1,3})$")
_FLEXIBLE_MINUTES = re.compile(r"^(\+?)(\d{1,2}):(\d{2})\.(\d{1,3})$")
_FLEXIBLE_SECONDS = re.compile(r"^(\+?)(\d{1,2})\.(\d{1,3})$")


def _split(time_ms: int) -> tuple[int, int, int]:
    minutes, remainder = divmod(time_ms, 60_000)
    seconds, millis = divmod(remainder, 1000)
    return minutes, seconds, millis


def format_absolute(time_ms: Optional[int]) -> str:
    """Render ``time_ms`` as ``MM:SS.mmm``; ``None`` and negatives become ``"-"``."""

    if time_ms is None or time_ms < 0:
        return PLACEHOLDER
    minutes, seconds, millis = _split(int(time_ms))
    return f"{minutes:02d}:{seconds:02d}.{millis:03d}"


def format_gap(delta_ms: int) -> str:
    """Render a non-negative difference as ``SS.mmm`` or ``M:SS.mmm``.

    The sign is added by the caller. Negative deltas are a caller error.
    """

    if delta_ms < 0:
        raise ValueError("delta_ms must be non-negative")
    minutes, seconds, millis = _split(int(delta_ms))
    if minutes:
        return f"{minutes}:{seconds:02d}.{millis:03d}"
    return f"{seconds:02d}.{millis:03d}"


def parse_clock_time(text: Any) -> Optional[int]:
    """Parse ``[+][HH:]MM:SS.mmm`` into milliseconds, or ``None`` when unparseable."""

    if not isinstance(text, str):
        return None
    match = _CLOCK_PATTERN.match(text.strip())
    if not match:
        return None
    hours, minutes, seconds, millis = match.groups()
    total = int(hours or 0) * 3_600_000 + int(minutes) * 60_000 + int(seconds) * 1000
    # ".4" means 400 ms, not 4 ms
    return total + int(millis.ljust(3, "0"))


def format_clock_time(time_ms: int) -> str:
    """Render ``time_ms`` as the stored ``HH:MM:SS.mmm`` form."""

    if time_ms < 0:
        raise ValueError("time_ms must be non-negative")
    hours, remainder = divmod(int(time_ms), 3_600_000)
    minutes, seconds, millis = _split(remainder)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


def is_valid_time_format(value: Optional[str]) -> bool:
    """Blank is valid (the time is optional); otherwise ``[+]HH:MM:SS.mmm`` is required."""

    if value is None or not value.strip():
        return True
    return bool(_ENTRY_PATTERN.match(value))


def race_time_from_difference(leader_ms: Optional[int], difference_ms: Optional[int]) -> Optional[str]:
    """Absolute race time of a driver entered as a difference to the leader."""

    if leader_ms is None or difference_ms is None:
        return None
    return format_clock_time(leader_ms + difference_ms)


def effective_time(race_ms: Optional[int], penalties_ms: Optional[int]) -> Optional[int]:
    if race_ms is None:
        return None
    return race_ms + (penalties_ms or 0)


def normalize_time_input(value: Optional[str]) -> str:
    """Expand loosely typed times (``1:23.4``, ``+ 14.16``) to ``HH:MM:SS.mmm``."""

    if not value or not value.strip():
        return ""

    compact = re.sub(r"\s+", "", value)

    match = _FLEXIBLE_FULL.match(compact)
    if match:
        prefix, hours, minutes, seconds, millis = match.groups()
        return f"{prefix}{hours.zfill(2)}:{minutes}:{seconds}.{millis.ljust(3, '0')}"

    match = _FLEXIBLE_MINUTES.match(compact)
    if match:
        prefix, minutes, seconds, millis = match.groups()
        return f"{prefix}00:{minutes.zfill(2)}:{seconds}.{millis.ljust(3, '0')}"

    match = _FLEXIBLE_SECONDS.match(compact)
    if match:
        prefix, seconds, millis = match.groups()
        return f"{prefix}00:00:{seconds.zfill(2)}.{millis.ljust(3, '0')}"

    return compact


def format_race_time(value: Optional[str]) -> str:
    """Trim a stored ``HH:MM:SS.mmm`` string for display.

    Zero hours are dropped and the leading component loses its padding, so
    ``00:02:23.342`` reads ``2:23.342`` and ``00:00:05.123`` reads ``05.123``.
    Text that is not in the stored format is returned unchanged.
    """

    if value is None or not value.strip():
        return PLACEHOLDER

    match = _STORED_PATTERN.match(value)
    if not match:
        return value

    sign, hours, minutes, seconds, millis = match.groups()
    if int(hours):
        return f"{sign}{int(hours)}:{minutes}:{seconds}.{millis}"
    if int(minutes):
        return f"{sign}{int(minutes)}:{seconds}.{millis}"
    return f"{sign}{seconds}.{millis}"
