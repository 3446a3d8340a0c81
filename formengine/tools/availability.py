"""
Mock appointment availability.

Each practitioner works a fixed weekly template in their own time zone;
every slot carries the consultation types it can host. Booked slots stay
in ``all_slots`` but are marked unavailable.

In production, the clinic backend computes availability from working
hours, leave and existing appointments.
"""

import logging
from datetime import datetime
from typing import Optional, TypedDict

from formengine.tools import directory

logger = logging.getLogger(__name__)


class SlotRecord(TypedDict):
    time: str
    type: str
    available: bool


class SlotsResult(TypedDict):
    slots: list[SlotRecord]
    all_slots: list[SlotRecord]


# hour -> consultation types hosted
WEEKDAY_TEMPLATE: dict[str, str] = {
    "09:00": "in-person",
    "10:00": "in-person",
    "11:00": "both",
    "14:00": "online",
    "15:00": "both",
    "16:00": "in-person",
}
SATURDAY_TEMPLATE: dict[str, str] = {
    "09:00": "in-person",
    "10:00": "in-person",
    "11:00": "in-person",
}

_booked: set[tuple[str, str, str]] = set()


def _template_for(date: str) -> dict[str, str]:
    try:
        weekday = datetime.strptime(date, "%Y-%m-%d").weekday()
    except ValueError:
        return {}
    if weekday == 6:  # Sunday closed
        return {}
    return SATURDAY_TEMPLATE if weekday == 5 else WEEKDAY_TEMPLATE


def _hosts(slot_type: str, consultation_type: Optional[str]) -> bool:
    return consultation_type is None or slot_type in ("both", consultation_type)


def get_available_slots(
    practitioner_id: str, date: str, consultation_type: Optional[str] = None
) -> SlotsResult:
    """Slots for a practitioner on a date, filtered by consultation type."""
    if directory.get_practitioner(practitioner_id) is None:
        logger.debug("Unknown practitioner %s", practitioner_id)
        return {"slots": [], "all_slots": []}

    all_slots: list[SlotRecord] = [
        {
            "time": time,
            "type": slot_type,
            "available": (practitioner_id, date, time) not in _booked,
        }
        for time, slot_type in _template_for(date).items()
    ]
    slots = [
        s for s in all_slots if s["available"] and _hosts(s["type"], consultation_type)
    ]
    return {"slots": slots, "all_slots": all_slots}


def is_booked(practitioner_id: str, date: str, time: str) -> bool:
    return (practitioner_id, date, time) in _booked


def mark_booked(practitioner_id: str, date: str, time: str) -> None:
    _booked.add((practitioner_id, date, time))
    logger.debug("Slot booked: %s %s %s", practitioner_id, date, time)


def reset() -> None:
    """Clear all bookings. Used by test fixtures for isolation."""
    _booked.clear()
