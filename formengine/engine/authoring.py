"""
Editor-side operations over a FormModel.

FormAuthoringSession holds one form being edited. Edits are applied in
place and are allowed to pass through intermediate states (a rule that
points at a field not added yet, say); ``validate`` enumerates what is
wrong and ``save`` refuses to persist while anything is.

Locked fields are the contract between a form kind and the backend: a
booking form's doctor picker, schedule and account fields can be
relabelled but never removed, retyped or made optional.
"""

import logging
import uuid
from typing import Any, Optional, Sequence

from formengine.config import settings
from formengine.engine.hydrator import effective_options, project_practitioner, project_service
from formengine.engine.roles import first_with_role
from formengine.errors import CollaboratorError, FormStructureError, LockedFieldError
from formengine.schemas.entity_schema import Practitioner, Service
from formengine.schemas.form_schema import (
    DOCTOR_PICKER_TYPES,
    PRACTITIONER_BOUND_TYPES,
    FieldOption,
    FieldType,
    FormField,
    FormKind,
    FormModel,
    FormStatus,
    FormStep,
    SemanticRole,
    structural_violations,
)
from formengine.tools.ports import FormStore

logger = logging.getLogger(__name__)

LOCKED_PROPERTIES = frozenset({"id", "type", "required", "logic", "locked"})
INTAKE_REQUIRED_IDS = ("patient-name", "patient-email", "patient-phone")

# Label and required-ness for newly added fields; everything else starts blank.
FIELD_DEFAULTS: dict[FieldType, dict[str, Any]] = {
    FieldType.SERVICE_SELECTION: {"label": "Select a Service"},
    FieldType.DOCTOR_SELECTION: {"label": "Choose your Doctor", "required": True},
    FieldType.PRACTITIONER_SELECTION: {"label": "Choose your Practitioner", "required": True},
    FieldType.SCHEDULE: {"label": "Book Appointment", "required": True},
    FieldType.HEADER: {"label": "New Header"},
    FieldType.FILE_UPLOAD: {"label": "Upload File", "placeholder": "Select or drag a file here"},
}


def booking_template() -> list[FormStep]:
    """Steps every new booking form starts with; all fields are locked."""
    return [
        FormStep(id="step-practitioner", title="Select Practitioner", fields=[
            FormField(id="practitioner-select", type=FieldType.DOCTOR_SELECTION,
                      label="Choose your Doctor", required=True, locked=True),
        ]),
        FormStep(id="step-service", title="Select Service", fields=[
            FormField(id="service-select", type=FieldType.SERVICE_SELECTION,
                      label="Choose a Service", required=True, locked=True),
        ]),
        FormStep(id="step-time", title="Select Time", fields=[
            FormField(id="appointment-time", type=FieldType.SCHEDULE,
                      label="Pick a Date & Time", required=True, locked=True),
        ]),
        FormStep(id="step-details", title="Your Details", fields=[
            FormField(id="lead-name", type=FieldType.TEXT, label="Full Name",
                      required=True, locked=True, semantic_role=SemanticRole.NAME),
            FormField(id="lead-email", type=FieldType.TEXT, label="Email Address",
                      required=True, locked=True, semantic_role=SemanticRole.EMAIL),
            FormField(id="lead-phone", type=FieldType.TEXT, label="Phone Number",
                      required=True, locked=True, semantic_role=SemanticRole.PHONE),
            FormField(id="lead-password", type=FieldType.TEXT, label="Create Password",
                      placeholder="Set a password to access your patient portal",
                      required=True, locked=True, semantic_role=SemanticRole.PASSWORD),
        ]),
    ]


def _new_id() -> str:
    return str(uuid.uuid4())


class FormAuthoringSession:
    """CRUD over one form with structural validation on save."""

    def __init__(
        self,
        model: Optional[FormModel] = None,
        *,
        kind: FormKind = FormKind.CUSTOM,
        status: FormStatus = FormStatus.DRAFT,
        store: Optional[FormStore] = None,
        practitioners: Sequence[Practitioner] = (),
        services: Sequence[Service] = (),
    ) -> None:
        if model is None:
            if kind == FormKind.BOOKING:
                model = FormModel(title="New Booking Form", kind=kind, steps=booking_template())
            else:
                model = FormModel(kind=kind, steps=[FormStep(id=_new_id(), title="Step 1")])
        else:
            model = model.model_copy(deep=True)
        self._model = model
        self._status = model.status or status
        self._store = store
        self.practitioners = list(practitioners)
        self.services = list(services)

    @property
    def model(self) -> FormModel:
        return self._model

    @property
    def status(self) -> FormStatus:
        return self._status

    # ------------------------------------------------------------------ #
    # Lookup helpers
    # ------------------------------------------------------------------ #

    def _step(self, step_id: str) -> FormStep:
        for step in self._model.steps:
            if step.id == step_id:
                return step
        raise KeyError(f"Unknown step '{step_id}'")

    def _locate(self, field_id: str) -> tuple[FormStep, int]:
        for step in self._model.steps:
            for index, f in enumerate(step.fields):
                if f.id == field_id:
                    return step, index
        raise KeyError(f"Unknown field '{field_id}'")

    def get_field(self, field_id: str) -> FormField:
        step, index = self._locate(field_id)
        return step.fields[index]

    # ------------------------------------------------------------------ #
    # Form settings
    # ------------------------------------------------------------------ #

    def set_title(self, title: str) -> None:
        self._model.title = title

    def set_status(self, status: FormStatus) -> None:
        self._status = FormStatus(status)

    def set_include_in_email(self, include: bool) -> None:
        self._model.include_in_email = include

    # ------------------------------------------------------------------ #
    # Steps
    # ------------------------------------------------------------------ #

    def add_step(self, title: Optional[str] = None) -> FormStep:
        step = FormStep(id=_new_id(), title=title or f"Step {len(self._model.steps) + 1}")
        self._model.steps.append(step)
        return step

    def remove_step(self, step_id: str) -> None:
        step = self._step(step_id)
        if len(self._model.steps) <= 1:
            raise FormStructureError(["Form must have at least one step"])
        locked = [f.id for f in step.fields if f.locked]
        if locked:
            raise LockedFieldError(locked[0], f"step '{step_id}' holds locked fields")
        self._model.steps.remove(step)

    def rename_step(self, step_id: str, title: str) -> None:
        self._step(step_id).title = title

    def move_step(self, step_id: str, to_index: int) -> None:
        steps = self._model.steps
        if not 0 <= to_index < len(steps):
            raise IndexError(f"Step position {to_index} out of range")
        step = self._step(step_id)
        steps.remove(step)
        steps.insert(to_index, step)

    # ------------------------------------------------------------------ #
    # Fields
    # ------------------------------------------------------------------ #

    def add_field(
        self,
        field_type: FieldType,
        step_id: Optional[str] = None,
        *,
        field_id: Optional[str] = None,
        label: Optional[str] = None,
    ) -> FormField:
        """Append a field with type-specific defaults to a step (the last by default).

        Entity-bound pickers start with every live entity as an option.
        """
        field_type = FieldType(field_type)
        step = self._step(step_id) if step_id else self._model.steps[-1]

        data: dict[str, Any] = {"label": "New Field", "required": False}
        data.update(FIELD_DEFAULTS.get(field_type, {}))
        if label is not None:
            data["label"] = label

        options: list[FieldOption] = []
        if field_type == FieldType.SERVICE_SELECTION:
            options = [project_service(s) for s in self.services]
        elif field_type in PRACTITIONER_BOUND_TYPES:
            options = [project_practitioner(p) for p in self.practitioners]

        new_field = FormField(id=field_id or _new_id(), type=field_type, options=options, **data)
        step.fields.append(new_field)
        logger.debug("Added %s field '%s' to step '%s'", field_type.value, new_field.id, step.id)
        return new_field

    def update_field(self, field_id: str, **changes: Any) -> FormField:
        """Apply property changes; locked fields refuse structural ones."""
        step, index = self._locate(field_id)
        current = step.fields[index]

        if current.locked:
            for name in sorted(LOCKED_PROPERTIES & changes.keys()):
                if changes[name] != getattr(current, name):
                    raise LockedFieldError(field_id, f"'{name}' cannot be changed")

        data = current.model_dump()
        data.update(changes)
        updated = FormField.model_validate(data)
        step.fields[index] = updated
        return updated

    def remove_field(self, field_id: str) -> None:
        step, index = self._locate(field_id)
        if step.fields[index].locked:
            raise LockedFieldError(field_id, "locked fields cannot be removed")
        del step.fields[index]

    def move_field(self, field_id: str, to_index: int, step_id: Optional[str] = None) -> None:
        """Move a field within its step, or into ``step_id`` at ``to_index``."""
        source, index = self._locate(field_id)
        target = self._step(step_id) if step_id else source
        limit = len(target.fields) - (1 if target is source else 0)
        if not 0 <= to_index <= limit:
            raise IndexError(f"Field position {to_index} out of range")
        moved = source.fields.pop(index)
        target.fields.insert(to_index, moved)

    def toggle_option(self, field_id: str, entity_id: str) -> bool:
        """Add or remove a live entity in an entity-bound field's options.

        Returns True when the entity is now included.
        """
        step, index = self._locate(field_id)
        current = step.fields[index]
        if current.type == FieldType.SERVICE_SELECTION:
            entity = next((s for s in self.services if s.id == entity_id), None)
            project = project_service
        elif current.type in PRACTITIONER_BOUND_TYPES:
            entity = next((p for p in self.practitioners if p.id == entity_id), None)
            project = project_practitioner
        else:
            raise ValueError(f"Field '{field_id}' is not bound to live entities")

        remaining = [o for o in current.options if o.value != entity_id]
        included = len(remaining) == len(current.options)
        if included:
            if entity is None:
                raise KeyError(f"Unknown entity '{entity_id}'")
            remaining.append(project(entity))

        step.fields[index] = current.model_copy(update={"options": remaining})
        return included

    def preview_options(self, field_id: str) -> list[FieldOption]:
        """Options a patient would see for a field given the live entities."""
        return effective_options(self.get_field(field_id), self.practitioners, self.services)

    # ------------------------------------------------------------------ #
    # Validation and persistence
    # ------------------------------------------------------------------ #

    def missing_requirements(self) -> list[str]:
        """Mandatory field kinds the form's kind demands but the form lacks."""
        model = self._model
        missing: list[str] = []
        if model.kind == FormKind.BOOKING:
            if not model.fields_of_type(*DOCTOR_PICKER_TYPES):
                missing.append("doctor_selection")
            if not model.fields_of_type(FieldType.SERVICE_SELECTION):
                missing.append("service_selection")
            if not model.fields_of_type(FieldType.SCHEDULE):
                missing.append("schedule")
            if first_with_role(model, SemanticRole.EMAIL) is None:
                missing.append("email")
            if first_with_role(model, SemanticRole.PASSWORD) is None:
                missing.append("password")
        elif model.kind == FormKind.INTAKE:
            present = {f.id for f in model.iter_fields()}
            missing.extend(m for m in INTAKE_REQUIRED_IDS if m not in present)
        return missing

    def validate(self) -> list[str]:
        """Every reason the form cannot be saved; empty when it can."""
        violations: list[str] = []
        if not self._model.title.strip():
            violations.append("Form title is required")
        violations.extend(structural_violations(self._model))

        limit = settings.validation.max_option_label_length
        for f in self._model.iter_fields():
            if any(len(o.label) > limit for o in f.options):
                violations.append(f"Field '{f.id}' has an option label longer than {limit} characters")

        kind = self._model.kind.value.lower()
        for name in self.missing_requirements():
            violations.append(f"{kind.capitalize()} forms must include {name.replace('_', ' ')}")
        return violations

    async def save(self) -> str:
        """
        Persist the form through the store.

        Returns:
            The stored form id.

        Raises:
            FormStructureError: If ``validate`` reports any violation.
        """
        violations = self.validate()
        if violations:
            raise FormStructureError(violations, missing=self.missing_requirements())
        if self._store is None:
            raise CollaboratorError("No form store configured")

        self._model.status = self._status
        form_id = await self._store.save_form(self._model, self._status)
        self._model.id = form_id
        logger.info("Form '%s' saved as %s", form_id, self._status.value)
        return form_id
