"""Shared test fixtures and helpers."""

import asyncio
from typing import Any, Optional

import pytest

from formengine.engine.schedule import ScheduleContext
from formengine.errors import CollaboratorError
from formengine.schemas.entity_schema import (
    AvailableSlot,
    EmailLookupResult,
    LookupUser,
    Practitioner,
    Service,
    SlotQuery,
    SlotsResponse,
    SubmissionReceipt,
)
from formengine.schemas.form_schema import FormField, FormModel, FormStep
from formengine.tools import availability, forms, patients, submissions


@pytest.fixture(autouse=True)
def _reset_mock_tools():
    availability.reset()
    forms.reset()
    patients.reset()
    submissions.reset()
    yield


def make_field(field_id: str, field_type: str = "text", **kwargs: Any) -> FormField:
    """Helper to create a FormField."""
    return FormField(id=field_id, type=field_type, label=kwargs.pop("label", field_id), **kwargs)


def make_form(*steps: list[FormField], kind: str = "CUSTOM", **kwargs: Any) -> FormModel:
    """Helper to create a FormModel with one step per list of fields."""
    return FormModel(
        title=kwargs.pop("title", "Test Form"),
        kind=kind,
        steps=[
            FormStep(id=f"step-{i + 1}", title=f"Step {i + 1}", fields=fields)
            for i, fields in enumerate(steps)
        ],
        **kwargs,
    )


def make_practitioner(
    practitioner_id: str,
    name: Optional[str] = None,
    specialties: Optional[list[str]] = None,
    timezone: Optional[str] = None,
) -> Practitioner:
    return Practitioner(
        id=practitioner_id,
        name=name or f"Dr. {practitioner_id}",
        specialties=specialties or [],
        timezone=timezone,
    )


def make_service(service_id: str, name: Optional[str] = None, **kwargs: Any) -> Service:
    return Service(id=service_id, name=name or service_id, **kwargs)


def booking_form(**kwargs: Any) -> FormModel:
    """Doctor, service, schedule and details steps, like a booking template."""
    return make_form(
        [make_field("practitioner-select", "doctor_selection", required=True, locked=True)],
        [make_field("service-select", "service_selection", required=True, locked=True)],
        [make_field("appointment-time", "schedule", required=True, locked=True)],
        [
            make_field("lead-name", label="Full Name", required=True, locked=True),
            make_field("lead-email", label="Email Address", required=True, locked=True),
            make_field("lead-phone", label="Phone Number", required=True, locked=True),
            make_field("lead-dob", "date", label="Date of Birth"),
            make_field("lead-password", label="Create Password", required=True, locked=True),
        ],
        kind="BOOKING",
        **kwargs,
    )


class FakeBackend:
    """Scriptable collaborator.

    Calls are recorded. A call can be held on an ``asyncio.Event`` by
    putting it in ``gates`` under ``(method, key)``, so tests can decide
    the order in which concurrent responses arrive.
    """

    def __init__(
        self,
        practitioners: Optional[list[Practitioner]] = None,
        services: Optional[list[Service]] = None,
    ) -> None:
        self.practitioners = practitioners or []
        self.services = services or []
        self.slots: dict[tuple[str, str, Optional[str]], list[AvailableSlot]] = {}
        self.users: dict[str, LookupUser] = {}
        self.calls: list[tuple[str, Any]] = []
        self.gates: dict[tuple[str, Any], asyncio.Event] = {}
        self.failures: dict[str, Exception] = {}
        self.receipt = SubmissionReceipt(submission_id="SUB-TEST")

    async def _enter(self, method: str, key: Any) -> None:
        self.calls.append((method, key))
        gate = self.gates.get((method, key))
        if gate is not None:
            await gate.wait()
        if method in self.failures:
            raise self.failures[method]

    def calls_to(self, method: str) -> list[Any]:
        return [key for name, key in self.calls if name == method]

    async def list_practitioners(self, clinic_id):
        await self._enter("list_practitioners", clinic_id)
        return list(self.practitioners)

    async def list_services(self, clinic_id, practitioner_id=None):
        await self._enter("list_services", practitioner_id)
        return list(self.services)

    async def available_slots(self, query: SlotQuery) -> SlotsResponse:
        consultation = query.consultation_type.value if query.consultation_type else None
        key = (query.practitioner_id, query.date, consultation)
        await self._enter("available_slots", key)
        return SlotsResponse(slots=list(self.slots.get(key, [])))

    async def check_email(self, email, clinic_id):
        await self._enter("check_email", email)
        user = self.users.get(email)
        return EmailLookupResult(exists=user is not None, user=user)

    async def submit(self, form_id, values):
        await self._enter("submit", form_id)
        self.submitted = values
        return self.receipt


def slot(time: str, slot_type: str = "both") -> AvailableSlot:
    return AvailableSlot(time=time, type=slot_type)


@pytest.fixture
def fake_backend():
    return FakeBackend(
        practitioners=[
            make_practitioner("doc-1", "Dr. Ada", ["Cardiology"], "America/New_York"),
            make_practitioner("doc-2", "Dr. Bo", ["Dermatology", "Allergy"], "Asia/Kolkata"),
        ],
        services=[
            make_service("svc-1", "Consultation", duration="30", price=80.0),
            make_service("svc-2", "Follow-up", duration="15", price=40.0),
        ],
    )


@pytest.fixture
def schedule_context():
    return ScheduleContext(
        clinic_timezone="UTC",
        viewer_timezone="America/New_York",
    )


def collaborator_failure(message: str = "boom") -> CollaboratorError:
    return CollaboratorError(message, status_code=503)
