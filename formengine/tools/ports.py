"""
Collaborator contracts consumed by the form engine.

The runtime, schedule engine and authoring session talk to the clinic
backend only through these protocols. ``ClinicApiClient`` implements them
over HTTP and ``LocalClinicBackend`` over in-memory mock data.
"""

from typing import Any, Optional, Protocol

from formengine.schemas.entity_schema import (
    EmailLookupResult,
    Practitioner,
    Service,
    SlotQuery,
    SlotsResponse,
    SubmissionReceipt,
)
from formengine.schemas.form_schema import FormModel, FormStatus


class EntitySource(Protocol):
    async def list_practitioners(self, clinic_id: Optional[str]) -> list[Practitioner]: ...

    async def list_services(
        self, clinic_id: Optional[str], practitioner_id: Optional[str] = None
    ) -> list[Service]: ...


class AvailabilitySource(Protocol):
    async def available_slots(self, query: SlotQuery) -> SlotsResponse: ...


class EmailLookup(Protocol):
    async def check_email(self, email: str, clinic_id: Optional[str]) -> EmailLookupResult: ...


class SubmissionSink(Protocol):
    async def submit(self, form_id: Optional[str], values: dict[str, Any]) -> SubmissionReceipt: ...


class FormStore(Protocol):
    async def save_form(self, model: FormModel, status: Optional[FormStatus] = None) -> str: ...

    async def get_form(self, form_id: str) -> FormModel: ...


class ClinicBackend(EntitySource, AvailabilitySource, EmailLookup, SubmissionSink, Protocol):
    """Everything a form session needs from the clinic backend."""
