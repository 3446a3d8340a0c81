"""Shared utilities used across the form engine."""

import re
from datetime import date, datetime, time
from typing import Any, Optional


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("0412 345 678")
        '0412345678'
        >>> normalize_phone("+1 (555) 010-2030")
        '+15550102030'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def is_blank(value: Any) -> bool:
    """True for values a required field must not hold.

    ``0`` and ``False`` are real answers; ``None``, whitespace-only strings
    and empty collections are not.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def parse_iso_date(value: str) -> date:
    """Parse ``YYYY-MM-DD``; raises ValueError otherwise."""
    return datetime.strptime(value.strip(), "%Y-%m-%d").date()


def parse_hhmm(value: str) -> time:
    """Parse ``HH:MM`` wall-clock time; raises ValueError otherwise."""
    return datetime.strptime(value.strip(), "%H:%M").time()


def to_iso_date(value: Any) -> Optional[str]:
    """Reduce a date-ish value (date, datetime, ISO timestamp) to ``YYYY-MM-DD``.

    Examples:
        >>> to_iso_date("1985-04-12T00:00:00.000Z")
        '1985-04-12'
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    match = re.match(r"^(\d{4}-\d{2}-\d{2})", text)
    if not match:
        return None
    try:
        return parse_iso_date(match.group(1)).isoformat()
    except ValueError:
        return None
