"""
Mock patient registry used for email lookups.

In production, this would query the clinic backend's patient records
scoped to the clinic.
"""

import logging
from typing import Optional, TypedDict

from formengine.utils import normalize_phone

logger = logging.getLogger(__name__)


class PatientRecord(TypedDict):
    name: str
    email: str
    phone: str
    dob: str


_patients: dict[str, PatientRecord] = {}

SEED_PATIENTS: list[PatientRecord] = [
    {
        "name": "Sarah Connor",
        "email": "sarah.connor@example.com",
        "phone": "+15550102030",
        "dob": "1985-04-12T00:00:00.000Z",
    },
    {
        "name": "John Smith",
        "email": "john.smith@example.com",
        "phone": "0412345678",
        "dob": "1979-11-02",
    },
]


def _key(email: str) -> str:
    return email.strip().lower()


def check_email(email: str) -> Optional[PatientRecord]:
    """Look up a patient by email. Returns None if not found."""
    record = _patients.get(_key(email))
    if record:
        logger.debug("Existing patient found for %s", email)
    return record


def register_patient(name: str, email: str, phone: str, dob: Optional[str] = None) -> PatientRecord:
    record: PatientRecord = {
        "name": name.strip(),
        "email": _key(email),
        "phone": normalize_phone(phone),
        "dob": dob or "",
    }
    _patients[_key(email)] = record
    logger.info("Patient registered: %s", record["email"])
    return record


def reset() -> None:
    """Restore the seeded registry. Used by test fixtures for isolation."""
    _patients.clear()
    for record in SEED_PATIENTS:
        _patients[_key(record["email"])] = dict(record)  # type: ignore[assignment]


reset()
