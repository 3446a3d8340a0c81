"""
Mock practitioner directory and service catalog.

In production, this data comes from the clinic backend's user and
service tables via ClinicApiClient.
"""

import logging
from typing import Optional, TypedDict

logger = logging.getLogger(__name__)


class PractitionerRecord(TypedDict):
    id: str
    name: str
    specialties: list[str]
    timezone: str
    consultation_type: str
    clinic_id: str


class ServiceRecord(TypedDict):
    id: str
    name: str
    duration: str
    price: float
    type: str
    practitioner_ids: list[str]
    clinic_id: str


DEFAULT_CLINIC_ID = "clinic-1"

PRACTITIONERS: list[PractitionerRecord] = [
    {
        "id": "doc-1",
        "name": "Dr. Sarah Chen",
        "specialties": ["Cardiology"],
        "timezone": "America/New_York",
        "consultation_type": "both",
        "clinic_id": DEFAULT_CLINIC_ID,
    },
    {
        "id": "doc-2",
        "name": "Dr. Raj Patel",
        "specialties": ["Dermatology", "General Practice"],
        "timezone": "Asia/Kolkata",
        "consultation_type": "online",
        "clinic_id": DEFAULT_CLINIC_ID,
    },
    {
        "id": "doc-3",
        "name": "Dr. Emily Watson",
        "specialties": ["General Practice"],
        "timezone": "Europe/London",
        "consultation_type": "in-person",
        "clinic_id": DEFAULT_CLINIC_ID,
    },
    {
        "id": "doc-4",
        "name": "Dr. Miguel Alvarez",
        "specialties": ["Pediatrics"],
        "timezone": "America/Los_Angeles",
        "consultation_type": "both",
        "clinic_id": DEFAULT_CLINIC_ID,
    },
]

SERVICES: list[ServiceRecord] = [
    {
        "id": "svc-1",
        "name": "General Consultation",
        "duration": "30",
        "price": 80.0,
        "type": "both",
        "practitioner_ids": ["doc-2", "doc-3"],
        "clinic_id": DEFAULT_CLINIC_ID,
    },
    {
        "id": "svc-2",
        "name": "Video Follow-up",
        "duration": "15",
        "price": 45.0,
        "type": "online",
        "practitioner_ids": ["doc-1", "doc-2", "doc-4"],
        "clinic_id": DEFAULT_CLINIC_ID,
    },
    {
        "id": "svc-3",
        "name": "Skin Check",
        "duration": "45",
        "price": 120.0,
        "type": "in-person",
        "practitioner_ids": ["doc-2"],
        "clinic_id": DEFAULT_CLINIC_ID,
    },
    {
        "id": "svc-4",
        "name": "Cardiac Review",
        "duration": "60",
        "price": 210.0,
        "type": "in-person",
        "practitioner_ids": ["doc-1"],
        "clinic_id": DEFAULT_CLINIC_ID,
    },
    {
        "id": "svc-5",
        "name": "Child Wellness Visit",
        "duration": "30",
        "price": 70.0,
        "type": "in-person",
        "practitioner_ids": ["doc-4"],
        "clinic_id": DEFAULT_CLINIC_ID,
    },
]


def _clinic_matches(record_clinic: str, clinic_id: Optional[str]) -> bool:
    return not clinic_id or record_clinic == clinic_id


def list_practitioners(clinic_id: Optional[str] = None) -> list[PractitionerRecord]:
    return [p for p in PRACTITIONERS if _clinic_matches(p["clinic_id"], clinic_id)]


def get_practitioner(practitioner_id: str) -> Optional[PractitionerRecord]:
    for p in PRACTITIONERS:
        if p["id"] == practitioner_id:
            return p
    return None


def list_services(
    clinic_id: Optional[str] = None, practitioner_id: Optional[str] = None
) -> list[ServiceRecord]:
    """Services of a clinic, optionally narrowed to those a practitioner offers."""
    results = [
        s for s in SERVICES
        if _clinic_matches(s["clinic_id"], clinic_id)
        and (practitioner_id is None or practitioner_id in s["practitioner_ids"])
    ]
    logger.debug("Service lookup (practitioner=%s): %d results", practitioner_id, len(results))
    return results
