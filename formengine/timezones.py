"""
Time zone conversion for appointment slots.

Slots are published as wall-clock times in the practitioner's zone. To show
them to a patient elsewhere, the wall-clock time is first resolved to an
instant in the practitioner's zone and then rendered in the display zone.

Daylight saving transitions are handled explicitly:

- Nonexistent wall times (the hour skipped when clocks spring forward)
  are either dropped (``skip``) or moved forward by the length of the gap
  (``shift``).
- Ambiguous wall times (the hour repeated when clocks fall back) resolve
  to the first occurrence.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from formengine.utils import parse_hhmm, parse_iso_date

logger = logging.getLogger(__name__)

FALLBACK_ZONE = "UTC"


class NonexistentTimePolicy(str, Enum):
    SKIP = "skip"
    SHIFT = "shift"


@dataclass(frozen=True)
class ResolvedTime:
    """A wall-clock time pinned to an instant in its zone."""

    instant: datetime
    shifted: bool = False


def normalize_timezone(name: Optional[str]) -> str:
    """Return ``name`` if it is a known IANA zone, otherwise ``UTC``."""
    if not name or not str(name).strip():
        return FALLBACK_ZONE
    candidate = str(name).strip()
    try:
        ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug("Unknown time zone %r, falling back to %s", candidate, FALLBACK_ZONE)
        return FALLBACK_ZONE
    return candidate


def get_zone(name: Optional[str]) -> ZoneInfo:
    return ZoneInfo(normalize_timezone(name))


def _wall_clock(day: Union[str, date], hhmm: str) -> datetime:
    if isinstance(day, str):
        day = parse_iso_date(day)
    return datetime.combine(day, parse_hhmm(hhmm))


def is_nonexistent(naive: datetime, zone: ZoneInfo) -> bool:
    """True when ``naive`` falls in a DST gap of ``zone``."""
    aware = naive.replace(tzinfo=zone)
    round_trip = aware.astimezone(timezone.utc).astimezone(zone)
    return round_trip.replace(tzinfo=None) != naive


def is_ambiguous(naive: datetime, zone: ZoneInfo) -> bool:
    """True when ``naive`` occurs twice in ``zone`` (DST overlap)."""
    if is_nonexistent(naive, zone):
        return False
    first = naive.replace(tzinfo=zone, fold=0).utcoffset()
    second = naive.replace(tzinfo=zone, fold=1).utcoffset()
    return first != second


def zoned_instant(
    day: Union[str, date],
    hhmm: str,
    tz_name: Optional[str],
    policy: Union[NonexistentTimePolicy, str] = NonexistentTimePolicy.SKIP,
) -> Optional[ResolvedTime]:
    """Resolve a wall-clock date/time in ``tz_name`` to an instant.

    Returns None for a nonexistent time under the ``skip`` policy.
    Raises ValueError on malformed date or time strings.
    """
    policy = NonexistentTimePolicy(policy)
    zone = get_zone(tz_name)
    naive = _wall_clock(day, hhmm)

    if is_nonexistent(naive, zone):
        if policy is NonexistentTimePolicy.SKIP:
            return None
        # fold=0 applies the pre-transition offset, which lands past the gap
        shifted = naive.replace(tzinfo=zone, fold=0).astimezone(timezone.utc).astimezone(zone)
        return ResolvedTime(instant=shifted, shifted=True)

    return ResolvedTime(instant=naive.replace(tzinfo=zone, fold=0))


def to_wall_clock(instant: datetime, tz_name: Optional[str]) -> datetime:
    return instant.astimezone(get_zone(tz_name))


def format_in_zone(instant: datetime, tz_name: Optional[str]) -> tuple[str, str]:
    """Render ``instant`` as (``YYYY-MM-DD``, ``HH:MM``) in ``tz_name``."""
    local = to_wall_clock(instant, tz_name)
    return local.strftime("%Y-%m-%d"), local.strftime("%H:%M")


def calendar_day_offset(source_day: Union[str, date], instant: datetime, tz_name: Optional[str]) -> int:
    """Calendar days between ``source_day`` and the instant's local date in ``tz_name``."""
    if isinstance(source_day, str):
        source_day = parse_iso_date(source_day)
    return (to_wall_clock(instant, tz_name).date() - source_day).days


def day_offset_label(offset: int) -> str:
    if offset > 0:
        return f" (+{offset})"
    if offset < 0:
        return f" ({offset})"
    return ""


def timezone_abbreviation(tz_name: Optional[str], at: Optional[datetime] = None) -> str:
    """Short zone name (EST, IST, BST) at ``at``, defaulting to now."""
    moment = at or datetime.now(timezone.utc)
    return to_wall_clock(moment, tz_name).tzname() or normalize_timezone(tz_name)


def timezone_display_name(tz_name: Optional[str], at: Optional[datetime] = None) -> str:
    """Human label such as ``New York (EDT)``."""
    name = normalize_timezone(tz_name)
    city = name.rsplit("/", 1)[-1].replace("_", " ")
    return f"{city} ({timezone_abbreviation(name, at)})"


def convert_wall_time(
    day: Union[str, date],
    hhmm: str,
    from_tz: Optional[str],
    to_tz: Optional[str],
    policy: Union[NonexistentTimePolicy, str] = NonexistentTimePolicy.SKIP,
) -> Optional[tuple[str, str, int]]:
    """Convert a wall-clock time between zones.

    Returns (date, time, day_offset) in ``to_tz``, or None when the source
    time does not exist and the policy is ``skip``.

    Examples:
        >>> convert_wall_time("2025-06-10", "23:30", "America/Los_Angeles", "America/New_York")
        ('2025-06-11', '02:30', 1)
    """
    resolved = zoned_instant(day, hhmm, from_tz, policy)
    if resolved is None:
        return None
    local_date, local_time = format_in_zone(resolved.instant, to_tz)
    return local_date, local_time, calendar_day_offset(day, resolved.instant, to_tz)
