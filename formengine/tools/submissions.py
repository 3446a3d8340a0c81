"""
Mock submission sink.

Stores submitted form values and books the appointment held in any
schedule value. A slot that is already booked is rejected as a conflict.

In production, the clinic backend creates the lead, patient account and
appointment from the submission.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, TypedDict

from formengine.errors import SubmissionRejected
from formengine.tools import availability

logger = logging.getLogger(__name__)

CONSULTATION_SUFFIX = "-consultation-type"
MEETING_URL = "https://meet.example.com"


class SubmissionRecord(TypedDict):
    submission_id: str
    form_id: Optional[str]
    values: dict[str, Any]
    appointment: Optional[dict[str, Any]]
    meeting_link: Optional[str]
    created_at: str


class SubmissionResult(TypedDict):
    submission_id: str
    appointment: Optional[dict[str, Any]]
    meeting_link: Optional[str]


_submissions: dict[str, SubmissionRecord] = {}


def _appointment_in(values: dict[str, Any]) -> Optional[dict[str, Any]]:
    for value in values.values():
        if isinstance(value, dict) and {"practitioner", "date", "time"} <= value.keys():
            if value["practitioner"] and value["date"] and value["time"]:
                return value
    return None


def _consultation_type(values: dict[str, Any]) -> Optional[str]:
    for key, value in values.items():
        if key.endswith(CONSULTATION_SUFFIX) and value:
            return str(value).lower()
    return None


def submit(form_id: Optional[str], values: dict[str, Any]) -> SubmissionResult:
    """Store a submission and book its appointment, if any.

    Raises:
        SubmissionRejected: On empty values or an already booked slot.
    """
    if not values:
        raise SubmissionRejected("Submission has no values", reason="validation", status_code=400)

    schedule = _appointment_in(values)
    appointment = None
    meeting_link = None
    if schedule is not None:
        practitioner_id = str(schedule["practitioner"])
        if availability.is_booked(practitioner_id, schedule["date"], schedule["time"]):
            raise SubmissionRejected(
                f"Slot {schedule['date']} {schedule['time']} is no longer available",
                reason="conflict",
                status_code=409,
            )
        availability.mark_booked(practitioner_id, schedule["date"], schedule["time"])
        consultation = _consultation_type(values)
        appointment = {
            "practitioner_id": practitioner_id,
            "date": schedule["date"],
            "time": schedule["time"],
            "type": consultation or "in-person",
        }
        if consultation == "online":
            meeting_link = f"{MEETING_URL}/{uuid.uuid4().hex[:10]}"

    submission_id = f"SUB-{uuid.uuid4().hex[:6].upper()}"
    _submissions[submission_id] = {
        "submission_id": submission_id,
        "form_id": form_id,
        "values": dict(values),
        "appointment": appointment,
        "meeting_link": meeting_link,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    logger.info("Submission stored: %s (form %s)", submission_id, form_id)
    return {"submission_id": submission_id, "appointment": appointment, "meeting_link": meeting_link}


def get_submission(submission_id: str) -> Optional[SubmissionRecord]:
    return _submissions.get(submission_id)


def reset() -> None:
    """Clear all submissions. Used by test fixtures for isolation."""
    _submissions.clear()
