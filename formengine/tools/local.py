"""
In-process clinic backend over the mock tools.

Implements every collaborator protocol the engine consumes, so a form
session can run end to end without a server. An optional artificial
latency makes request ordering observable in demos.
"""

import asyncio
import logging
from typing import Any, Optional

from formengine.errors import CollaboratorError
from formengine.schemas.entity_schema import (
    EmailLookupResult,
    LookupUser,
    Practitioner,
    Service,
    SlotQuery,
    SlotsResponse,
    SubmissionReceipt,
)
from formengine.schemas.form_schema import FormModel, FormStatus
from formengine.tools import availability, directory, forms, patients, submissions

logger = logging.getLogger(__name__)


class LocalClinicBackend:
    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency

    async def _pause(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)

    async def list_practitioners(self, clinic_id: Optional[str]) -> list[Practitioner]:
        await self._pause()
        return [Practitioner.model_validate(p) for p in directory.list_practitioners(clinic_id)]

    async def list_services(
        self, clinic_id: Optional[str], practitioner_id: Optional[str] = None
    ) -> list[Service]:
        await self._pause()
        return [Service.model_validate(s) for s in directory.list_services(clinic_id, practitioner_id)]

    async def available_slots(self, query: SlotQuery) -> SlotsResponse:
        await self._pause()
        consultation = query.consultation_type.value if query.consultation_type else None
        result = availability.get_available_slots(query.practitioner_id, query.date, consultation)
        return SlotsResponse.model_validate(result)

    async def check_email(self, email: str, clinic_id: Optional[str]) -> EmailLookupResult:
        await self._pause()
        record = patients.check_email(email)
        if record is None:
            return EmailLookupResult(exists=False)
        return EmailLookupResult(exists=True, user=LookupUser.model_validate(record))

    async def submit(self, form_id: Optional[str], values: dict[str, Any]) -> SubmissionReceipt:
        await self._pause()
        return SubmissionReceipt.model_validate(submissions.submit(form_id, values))

    async def save_form(self, model: FormModel, status: Optional[FormStatus] = None) -> str:
        await self._pause()
        return forms.save_form(model.to_config(), status.value if status else None)

    async def get_form(self, form_id: str) -> FormModel:
        await self._pause()
        config = forms.get_form(form_id)
        if config is None:
            raise CollaboratorError(f"Form '{form_id}' not found", status_code=404)
        return FormModel.from_config(config)
