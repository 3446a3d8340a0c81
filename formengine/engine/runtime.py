"""
Runtime state for one patient filling one form.

FormRuntime owns the step index, the values map, the validation errors
and the set of fields hidden by side effects. It hydrates entity-bound
options, runs email lookups, validates step by step and hands the values
to the submission sink through a small state machine:

    EDITING --submit_started--> SUBMITTING --submit_succeeded--> SUBMITTED
    SUBMITTING --submit_failed--> EDITING
    EDITING | SUBMITTED --reset--> EDITING

Usage:
    runtime = FormRuntime(FormModel.from_config(config), backend)
    await runtime.load_entities()
    runtime.set_value("lead-email", "sarah@example.com")
    await runtime.blur("lead-email")
    if runtime.advance():
        ...
    outcome = await runtime.submit()
"""

import asyncio
import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

from formengine.config import settings
from formengine.engine.hydrator import effective_options, hydrate_options
from formengine.engine.requests import RequestTracker
from formengine.engine.roles import fields_with_role, infer_role
from formengine.engine.schedule import ScheduleContext, ScheduleEngine
from formengine.engine.summary import BookingSummary, build_booking_summary
from formengine.engine.visibility import is_visible
from formengine.errors import CollaboratorError, InvalidTransitionError
from formengine.logging_context import get_session_logger, set_session_id
from formengine.schemas.entity_schema import (
    EmailLookupResult,
    Practitioner,
    ScheduleValue,
    Service,
    SubmissionReceipt,
)
from formengine.schemas.form_schema import (
    DOCTOR_PICKER_TYPES,
    FieldOption,
    FieldType,
    FormField,
    FormModel,
    SemanticRole,
)
from formengine.utils import is_blank, to_iso_date

if TYPE_CHECKING:
    from formengine.tools.ports import ClinicBackend

logger = get_session_logger(__name__)

SERVICES_KEY = "services"


class RuntimeState(str, Enum):
    EDITING = "editing"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


class RuntimeTrigger(str, Enum):
    SUBMIT_STARTED = "submit_started"
    SUBMIT_SUCCEEDED = "submit_succeeded"
    SUBMIT_FAILED = "submit_failed"
    RESET = "reset"


@dataclass
class Transition:
    from_state: RuntimeState
    to_state: RuntimeState
    trigger: RuntimeTrigger


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: RuntimeState
    entered_at: datetime
    trigger: Optional[RuntimeTrigger] = None


@dataclass
class SubmissionOutcome:
    success: bool
    receipt: Optional[SubmissionReceipt] = None
    error: Optional[str] = None
    missing_locked: list[str] = field(default_factory=list)


class FormRuntime:
    """
    Stateful engine for one form session.

    Values and errors are only changed through the methods below. The
    loaded FormModel is never mutated; hydration swaps in a new instance.
    """

    TRANSITIONS: list[Transition] = [
        Transition(RuntimeState.EDITING, RuntimeState.SUBMITTING, RuntimeTrigger.SUBMIT_STARTED),
        Transition(RuntimeState.SUBMITTING, RuntimeState.SUBMITTED, RuntimeTrigger.SUBMIT_SUCCEEDED),
        Transition(RuntimeState.SUBMITTING, RuntimeState.EDITING, RuntimeTrigger.SUBMIT_FAILED),
        Transition(RuntimeState.EDITING, RuntimeState.EDITING, RuntimeTrigger.RESET),
        Transition(RuntimeState.SUBMITTED, RuntimeState.EDITING, RuntimeTrigger.RESET),
    ]

    def __init__(
        self,
        model: FormModel,
        backend: Optional["ClinicBackend"] = None,
        *,
        clinic_id: Optional[str] = None,
        schedule_context: Optional[ScheduleContext] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self._source_model = model
        self._model = model
        self._backend = backend
        self.clinic_id = clinic_id or model.clinic_id or settings.api.clinic_id or None
        self.schedule_context = schedule_context or ScheduleContext()
        self.session_id = session_id or f"FORM-{uuid.uuid4().hex[:8]}"
        set_session_id(self.session_id)

        self._values: dict[str, Any] = {}
        self._errors: dict[str, str] = {}
        self._hidden: set[str] = set()
        self._step_index = 0
        self._state = RuntimeState.EDITING
        self._history: list[StateEntry] = [
            StateEntry(state=RuntimeState.EDITING, entered_at=datetime.now(timezone.utc))
        ]
        self._submit_error: Optional[str] = None
        self._receipt: Optional[SubmissionReceipt] = None

        self._practitioners: list[Practitioner] = []
        self._services: list[Service] = []
        self._hydration_errors: dict[str, str] = {}

        self.requests = RequestTracker()
        self._schedules: dict[str, ScheduleEngine] = {}

    # ------------------------------------------------------------------ #
    # Read-only state
    # ------------------------------------------------------------------ #

    @property
    def model(self) -> FormModel:
        return self._model

    @property
    def backend(self) -> Optional["ClinicBackend"]:
        return self._backend

    @property
    def values(self) -> dict[str, Any]:
        return dict(self._values)

    @property
    def errors(self) -> dict[str, str]:
        return dict(self._errors)

    @property
    def externally_hidden(self) -> frozenset[str]:
        return frozenset(self._hidden)

    @property
    def step_index(self) -> int:
        return self._step_index

    @property
    def step_count(self) -> int:
        return len(self._model.steps)

    @property
    def is_last_step(self) -> bool:
        return self._step_index == self.step_count - 1

    @property
    def state(self) -> RuntimeState:
        return self._state

    @property
    def history(self) -> list[StateEntry]:
        return list(self._history)

    @property
    def submit_error(self) -> Optional[str]:
        return self._submit_error

    @property
    def receipt(self) -> Optional[SubmissionReceipt]:
        return self._receipt

    @property
    def practitioners(self) -> list[Practitioner]:
        return list(self._practitioners)

    @property
    def services(self) -> list[Service]:
        return list(self._services)

    @property
    def hydration_errors(self) -> dict[str, str]:
        return dict(self._hydration_errors)

    def value(self, field_id: str, default: Any = None) -> Any:
        return self._values.get(field_id, default)

    # ------------------------------------------------------------------ #
    # State machine
    # ------------------------------------------------------------------ #

    def _transition(self, trigger: RuntimeTrigger) -> RuntimeState:
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.trigger == trigger:
                old_state = self._state
                self._state = t.to_state
                self._history.append(StateEntry(
                    state=self._state,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))
                logger.debug(
                    "Runtime transition: %s -> %s (trigger: %s)",
                    old_state.value, self._state.value, trigger.value,
                )
                return self._state

        valid = [t.trigger.value for t in self.TRANSITIONS if t.from_state == self._state]
        raise InvalidTransitionError(
            f"No valid transition from '{self._state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def _require_editing(self, action: str) -> None:
        if self._state != RuntimeState.EDITING:
            raise InvalidTransitionError(
                f"Cannot {action} while the form is {self._state.value}"
            )

    # ------------------------------------------------------------------ #
    # Values
    # ------------------------------------------------------------------ #

    def set_value(self, field_id: str, value: Any) -> None:
        """Record a value and clear that field's error.

        Changing a doctor selector re-points every schedule field at the
        new practitioner and clears its date and time.
        """
        self._require_editing("change values")
        previous = self._values.get(field_id)
        self._values[field_id] = value
        self._errors.pop(field_id, None)

        field_def = self._model.get_field(field_id)
        if field_def is not None and field_def.type in DOCTOR_PICKER_TYPES and previous != value:
            self._repoint_schedules(value)

    def _repoint_schedules(self, practitioner_id: Any) -> None:
        practitioner = None if is_blank(practitioner_id) else str(practitioner_id)
        for schedule_field in self._model.fields_of_type(FieldType.SCHEDULE):
            current = ScheduleValue.from_value(self._values.get(schedule_field.id))
            updated = current.model_copy(
                update={"practitioner": practitioner, "date": None, "time": None}
            )
            self._values[schedule_field.id] = updated.to_value()
            logger.debug(
                "Schedule '%s' re-pointed to practitioner %s", schedule_field.id, practitioner
            )

    def selected_doctor_id(self) -> Optional[str]:
        """Value of the first doctor selector holding one, if any."""
        for picker in self._model.fields_of_type(*DOCTOR_PICKER_TYPES):
            raw = self._values.get(picker.id)
            if not is_blank(raw):
                return str(raw)
        return None

    # ------------------------------------------------------------------ #
    # Email lookup
    # ------------------------------------------------------------------ #

    async def blur(self, field_id: str) -> None:
        """Run side effects for a field losing focus (email lookup)."""
        field_def = self._model.get_field(field_id)
        if field_def is None or infer_role(field_def) is not SemanticRole.EMAIL:
            return
        email = self._values.get(field_id)
        if not isinstance(email, str) or "@" not in email or self._backend is None:
            return

        key = f"email:{field_id}"
        token = self.requests.issue(key)
        try:
            result = await self._backend.check_email(email.strip(), self.clinic_id)
        except CollaboratorError as exc:
            logger.debug("Email lookup for '%s' failed: %s", field_id, exc.message)
            return
        except Exception as exc:
            logger.debug("Email lookup for '%s' failed: %r", field_id, exc)
            return

        if not self.requests.is_current(key, token) or self._values.get(field_id) != email:
            logger.debug("Discarding stale email lookup for '%s'", field_id)
            return
        if self._state != RuntimeState.EDITING:
            return
        self._apply_lookup(result)

    def _apply_lookup(self, result: EmailLookupResult) -> None:
        password_ids = [f.id for f in fields_with_role(self._model, SemanticRole.PASSWORD)]

        if not (result.exists and result.user):
            self._hidden.difference_update(password_ids)
            return

        user = result.user
        fills = {
            SemanticRole.NAME: user.name,
            SemanticRole.PHONE: user.phone,
            SemanticRole.DOB: to_iso_date(user.dob),
        }
        for role, found in fills.items():
            if is_blank(found):
                continue
            for target in fields_with_role(self._model, role):
                if is_blank(self._values.get(target.id)):
                    self._values[target.id] = found
                    self._errors.pop(target.id, None)

        self._hidden.update(password_ids)
        for password_id in password_ids:
            self._errors.pop(password_id, None)
        logger.info("Existing patient found; auto-filled profile fields")

    # ------------------------------------------------------------------ #
    # Visibility and validation
    # ------------------------------------------------------------------ #

    def is_field_visible(self, field_def: FormField) -> bool:
        return is_visible(field_def, self._values, self._hidden)

    def visible_fields(self, step_index: Optional[int] = None) -> list[FormField]:
        index = self._step_index if step_index is None else step_index
        return [f for f in self._model.steps[index].fields if self.is_field_visible(f)]

    def _is_missing(self, field_def: FormField) -> bool:
        raw = self._values.get(field_def.id)
        if field_def.type == FieldType.SCHEDULE:
            return not ScheduleValue.from_value(raw).is_complete
        return is_blank(raw)

    def validate_step(self, step_index: Optional[int] = None, silent: bool = False) -> bool:
        """Check every visible required field of a step.

        Non-silent calls replace the errors of that step's fields; silent
        calls leave the error map untouched.
        """
        index = self._step_index if step_index is None else step_index
        step = self._model.steps[index]
        message = settings.validation.required_message

        step_errors = {
            f.id: message
            for f in step.fields
            if f.required and not f.is_layout and self.is_field_visible(f) and self._is_missing(f)
        }
        if not silent:
            for f in step.fields:
                self._errors.pop(f.id, None)
            self._errors.update(step_errors)
        return not step_errors

    def is_step_complete(self, step_index: Optional[int] = None) -> bool:
        return self.validate_step(step_index, silent=True)

    def missing_locked_fields(self) -> list[str]:
        """Visible locked fields anywhere in the form that hold no value."""
        return [
            f.id
            for f in self._model.iter_fields()
            if f.locked and not f.is_layout and self.is_field_visible(f) and self._is_missing(f)
        ]

    # ------------------------------------------------------------------ #
    # Navigation
    # ------------------------------------------------------------------ #

    def advance(self) -> bool:
        """Validate the current step and move forward when it passes."""
        self._require_editing("advance")
        if not self.validate_step():
            return False
        if not self.is_last_step:
            self._step_index += 1
        return True

    def retreat(self) -> bool:
        self._require_editing("go back")
        if self._step_index == 0:
            return False
        self._step_index -= 1
        return True

    # ------------------------------------------------------------------ #
    # Submission
    # ------------------------------------------------------------------ #

    async def submit(self) -> SubmissionOutcome:
        """
        Validate and hand the values to the submission sink.

        Raises:
            InvalidTransitionError: If not on the last step or not editing.
        """
        self._require_editing("submit")
        if not self.is_last_step:
            raise InvalidTransitionError("Submit is only available on the last step")

        if not self.validate_step():
            return SubmissionOutcome(success=False, error="validation")

        missing = self.missing_locked_fields()
        if missing:
            message = settings.validation.required_message
            for field_id in missing:
                self._errors[field_id] = message
            logger.warning("Submission refused, locked fields empty: %s", missing)
            return SubmissionOutcome(success=False, error="locked_fields_missing", missing_locked=missing)

        self._submit_error = None
        self._transition(RuntimeTrigger.SUBMIT_STARTED)
        payload = copy.deepcopy(self._values)

        if self._backend is None:
            receipt = SubmissionReceipt(submission_id=f"preview-{uuid.uuid4().hex[:8]}")
        else:
            try:
                receipt = await self._backend.submit(self._model.id, payload)
            except CollaboratorError as exc:
                self._submit_error = exc.message
                self._transition(RuntimeTrigger.SUBMIT_FAILED)
                logger.warning("Submission failed (%s): %s", exc.code, exc.message)
                return SubmissionOutcome(success=False, error=exc.message)
            except Exception:
                self._submit_error = "Submission failed"
                self._transition(RuntimeTrigger.SUBMIT_FAILED)
                logger.exception("Submission failed unexpectedly")
                return SubmissionOutcome(success=False, error=self._submit_error)

        self._receipt = receipt
        self._transition(RuntimeTrigger.SUBMIT_SUCCEEDED)
        logger.info("Form submitted: %s", receipt.submission_id)
        return SubmissionOutcome(success=True, receipt=receipt)

    def reset(self) -> None:
        """Discard values, errors and hidden fields and return to step 0."""
        self._transition(RuntimeTrigger.RESET)
        self._values.clear()
        self._errors.clear()
        self._hidden.clear()
        self._step_index = 0
        self._submit_error = None
        self._receipt = None
        for engine in self._schedules.values():
            engine.clear_slots()

    # ------------------------------------------------------------------ #
    # Entities and hydration
    # ------------------------------------------------------------------ #

    async def load_entities(self) -> None:
        """Fetch practitioners and services, hydrate options, auto-select."""
        self._hydration_errors.clear()
        if self._backend is not None:
            results = await asyncio.gather(
                self._backend.list_practitioners(self.clinic_id),
                self._backend.list_services(self.clinic_id, None),
                return_exceptions=True,
            )
            fetched: dict[str, list] = {}
            for name, result in zip(("practitioners", "services"), results):
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    self._hydration_errors[name] = str(result)
                    logger.warning("Could not load %s: %s", name, result)
                    fetched[name] = []
                else:
                    fetched[name] = list(result)
            self._practitioners = fetched["practitioners"]
            self._services = fetched["services"]

        self._model = hydrate_options(self._source_model, self._practitioners, self._services)
        logger.info(
            "Entities loaded: %d practitioners, %d services",
            len(self._practitioners), len(self._services),
        )
        self.initialize_selections()

    def initialize_selections(self) -> None:
        """Apply default selections once entities are known.

        Each empty schedule field gets its default sub-values, and a doctor
        selector with exactly one option is selected.
        """
        if self._state != RuntimeState.EDITING:
            return
        for schedule_field in self._model.fields_of_type(FieldType.SCHEDULE):
            if self._values.get(schedule_field.id) is None:
                initial = self.schedule(schedule_field.id).initial_value()
                self._values[schedule_field.id] = initial.to_value()

        for picker in self._model.fields_of_type(*DOCTOR_PICKER_TYPES):
            if not is_blank(self._values.get(picker.id)):
                continue
            options = self.effective_options(picker)
            if len(options) == 1:
                logger.debug("Auto-selecting only practitioner for '%s'", picker.id)
                self.set_value(picker.id, options[0].value)

    async def refresh_services(self) -> None:
        """Reload services for the selected doctor; failures keep the current list."""
        if self._backend is None:
            return
        doctor_id = self.selected_doctor_id()
        token = self.requests.issue(SERVICES_KEY)
        try:
            services = await self._backend.list_services(self.clinic_id, doctor_id)
        except Exception as exc:
            logger.warning("Service refresh failed: %s", exc)
            return
        if not self.requests.is_current(SERVICES_KEY, token):
            return
        self._services = list(services)
        self._model = hydrate_options(self._source_model, self._practitioners, self._services)

    def effective_options(self, field_ref: Union[str, FormField]) -> list[FieldOption]:
        field_def = self._model.get_field(field_ref) if isinstance(field_ref, str) else field_ref
        if field_def is None:
            return []
        return effective_options(field_def, self._practitioners, self._services)

    # ------------------------------------------------------------------ #
    # Schedule fields and summary
    # ------------------------------------------------------------------ #

    def schedule(self, field_id: str) -> ScheduleEngine:
        """The ScheduleEngine bound to a ``schedule`` field."""
        engine = self._schedules.get(field_id)
        if engine is None:
            field_def = self._model.get_field(field_id)
            if field_def is None or field_def.type != FieldType.SCHEDULE:
                raise KeyError(f"No schedule field '{field_id}'")
            engine = ScheduleEngine(self, field_id)
            self._schedules[field_id] = engine
        return engine

    def summary(self) -> BookingSummary:
        return build_booking_summary(
            self._model,
            self._values,
            self._practitioners,
            self._services,
            self.schedule_context.viewer_timezone,
        )
