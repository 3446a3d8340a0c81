"""
REST client for the clinic backend.

Maps the collaborator protocols onto the backend's HTTP endpoints.
Transport failures, error statuses and unreadable payloads raise
CollaboratorError; a submission refused with 400 or 409 raises
SubmissionRejected.
"""

import logging
from typing import Any, Optional, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from formengine.config import settings
from formengine.errors import CollaboratorError, SubmissionRejected
from formengine.schemas.entity_schema import (
    EmailLookupResult,
    Practitioner,
    Service,
    SlotQuery,
    SlotsResponse,
    SubmissionReceipt,
)
from formengine.schemas.form_schema import FormModel, FormStatus

logger = logging.getLogger(__name__)

USER_AGENT = "clinic-form-engine/0.1.0"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _params(**values: Any) -> dict[str, str]:
    return {k: str(v) for k, v in values.items() if v is not None and v != ""}


def _parse(model: type[ModelT], data: Any, what: str) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise CollaboratorError(
            f"Malformed {what}: {exc.error_count()} invalid value(s)", code="invalid_response"
        ) from exc


def _parse_list(model: type[ModelT], data: Any, what: str) -> list[ModelT]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise CollaboratorError(f"Malformed {what}: expected a list", code="invalid_response")
    return [_parse(model, item, what) for item in data]


class ClinicApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = (base_url or settings.api.base_url).rstrip("/")
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=timeout if timeout is not None else settings.api.timeout_sec,
            transport=transport,
        )

    def set_token(self, token: str) -> None:
        self._token = token

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _unwrap(json_data: Any) -> Any:
        """Unwrap ``{"data": ...}`` envelopes; bare payloads pass through."""
        if isinstance(json_data, dict) and set(json_data) <= {"data", "status", "message"} and "data" in json_data:
            return json_data["data"]
        return json_data

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            return await self._client.request(
                method, path, params=params, json=body, headers=self._headers()
            )
        except httpx.TimeoutException as exc:
            raise CollaboratorError(f"{method} {path} timed out", code="timeout") from exc
        except httpx.HTTPError as exc:
            raise CollaboratorError(f"{method} {path} failed: {exc}", code="connection_error") from exc

    def _decode(self, resp: httpx.Response) -> Any:
        """Unwrapped JSON body; a body that is not JSON raises CollaboratorError."""
        try:
            payload = resp.json()
        except ValueError as exc:
            raise CollaboratorError(
                f"{resp.request.method} {resp.request.url.path} returned a non-JSON body",
                status_code=resp.status_code,
                code="invalid_response",
            ) from exc
        return self._unwrap(payload)

    async def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        resp = await self._request(method, path, **kwargs)
        if resp.status_code >= 400:
            raise CollaboratorError(
                f"HTTP {resp.status_code}: {resp.text[:200]}", status_code=resp.status_code
            )
        return self._decode(resp)

    # ------------------------------------------------------------------ #
    # Entities
    # ------------------------------------------------------------------ #

    async def list_practitioners(self, clinic_id: Optional[str]) -> list[Practitioner]:
        data = await self._call("GET", "/users", params=_params(role="doctor", clinicId=clinic_id))
        return _parse_list(Practitioner, data, "practitioner list")

    async def list_services(
        self, clinic_id: Optional[str], practitioner_id: Optional[str] = None
    ) -> list[Service]:
        data = await self._call(
            "GET", "/services", params=_params(clinicId=clinic_id, doctorId=practitioner_id)
        )
        return _parse_list(Service, data, "service list")

    async def available_slots(self, query: SlotQuery) -> SlotsResponse:
        params = _params(
            doctorId=query.practitioner_id,
            date=query.date,
            type=query.consultation_type.value if query.consultation_type else None,
            timezone=query.timezone,
        )
        data = await self._call("GET", "/appointments/available-slots", params=params)
        return _parse(SlotsResponse, data or {}, "slot response")

    async def check_email(self, email: str, clinic_id: Optional[str]) -> EmailLookupResult:
        data = await self._call(
            "GET", f"/patients/check-email/{quote(email, safe='@')}", params=_params(clinicId=clinic_id)
        )
        return _parse(EmailLookupResult, data or {}, "email lookup")

    # ------------------------------------------------------------------ #
    # Submissions
    # ------------------------------------------------------------------ #

    async def submit(self, form_id: Optional[str], values: dict[str, Any]) -> SubmissionReceipt:
        if not form_id:
            raise CollaboratorError("Cannot submit a form without an id")
        resp = await self._request("POST", f"/forms/{form_id}/submissions", body={"data": values})
        if resp.status_code in (400, 409):
            reason = "conflict" if resp.status_code == 409 else "validation"
            raise SubmissionRejected(
                self._error_message(resp), reason=reason, status_code=resp.status_code
            )
        if resp.status_code >= 400:
            raise CollaboratorError(
                f"HTTP {resp.status_code}: {resp.text[:200]}", status_code=resp.status_code
            )
        return _parse(SubmissionReceipt, self._decode(resp) or {}, "submission receipt")

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            payload = resp.json()
        except ValueError:
            return resp.text[:200] or f"HTTP {resp.status_code}"
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return resp.text[:200]

    # ------------------------------------------------------------------ #
    # Form store
    # ------------------------------------------------------------------ #

    async def save_form(self, model: FormModel, status: Optional[FormStatus] = None) -> str:
        body = model.to_config()
        if status is not None:
            body["status"] = status.value
        if model.id:
            data = await self._call("PUT", f"/forms/{model.id}", body=body)
        else:
            data = await self._call("POST", "/forms", body=body)
        form_id = (data.get("id") if isinstance(data, dict) else None) or model.id
        if not form_id:
            raise CollaboratorError("Form store did not return an id")
        logger.info("Form saved remotely: %s", form_id)
        return str(form_id)

    async def get_form(self, form_id: str) -> FormModel:
        data = await self._call("GET", f"/forms/{form_id}")
        config = data.get("config", data) if isinstance(data, dict) else data
        return FormModel.from_config(config)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ClinicApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
