"""Form configuration models: steps, fields, options and visibility rules.

A form is authored as data, serialized with camelCase keys, and loaded
back by the runtime. Legacy configurations that carry a flat ``fields``
array instead of ``steps`` are normalized into one synthetic step.
"""

from enum import Enum
from typing import Any, Callable, Iterator, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from formengine.errors import FormConfigError

LEGACY_STEP_ID = "default"
LEGACY_STEP_TITLE = "Details"


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    CHECKBOX = "checkbox"
    HEADER = "header"
    SPACER = "spacer"
    SEPARATOR = "separator"
    SERVICE_SELECTION = "service_selection"
    PRACTITIONER_SELECTION = "practitioner_selection"
    SCHEDULE = "schedule"
    DOCTOR_SELECTION = "doctor_selection"
    FILE_UPLOAD = "file_upload"


LAYOUT_TYPES = frozenset({FieldType.HEADER, FieldType.SPACER, FieldType.SEPARATOR})
DOCTOR_PICKER_TYPES = frozenset({FieldType.DOCTOR_SELECTION, FieldType.PRACTITIONER_SELECTION})
PRACTITIONER_BOUND_TYPES = DOCTOR_PICKER_TYPES | {FieldType.SCHEDULE}
ENTITY_BOUND_TYPES = PRACTITIONER_BOUND_TYPES | {FieldType.SERVICE_SELECTION}


def consultation_type_key(service_field_id: str) -> str:
    """Values key holding the consultation type chosen for a service field."""
    return f"{service_field_id}-consultation-type"


class FieldWidth(str, Enum):
    FULL = "full"
    HALF = "half"


class LogicAction(str, Enum):
    SHOW = "show"
    HIDE = "hide"


class SemanticRole(str, Enum):
    """Explicit meaning of a field, used by email lookup and summaries."""

    EMAIL = "email"
    NAME = "name"
    PHONE = "phone"
    DOB = "dob"
    PASSWORD = "password"


class FormKind(str, Enum):
    CUSTOM = "CUSTOM"
    BOOKING = "BOOKING"
    INTAKE = "INTAKE"
    SYSTEM = "SYSTEM"


class FormStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FieldOption(_ConfigModel):
    """One choice of a field. Extra keys (duration, price, specialty) are kept."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    label: str
    value: str

    @field_validator("label", "value", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> str:
        return "" if v is None else str(v)

    def meta(self, key: str, default: Any = None) -> Any:
        return (self.model_extra or {}).get(key, default)


class SingleRule(_ConfigModel):
    """Show or hide a field depending on one other field's value.

    Only single-predicate rules exist. ``kind`` tags the variant so that
    compound rules can be added without breaking stored forms.
    """

    kind: Literal["single"] = "single"
    field_id: str
    value: Any = None
    action: LogicAction = LogicAction.SHOW


class FormField(_ConfigModel):
    id: str
    type: FieldType
    label: str = ""
    placeholder: Optional[str] = None
    required: bool = False
    options: list[FieldOption] = Field(default_factory=list)
    logic: Optional[SingleRule] = None
    locked: bool = False
    width: FieldWidth = FieldWidth.FULL
    semantic_role: Optional[SemanticRole] = None
    design: Optional[dict[str, Any]] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("options", mode="before")
    @classmethod
    def _normalize_options(cls, v: Any) -> Any:
        if v is None:
            return []
        return [{"label": o, "value": o} if isinstance(o, str) else o for o in v]

    @field_validator("width", mode="before")
    @classmethod
    def _default_width(cls, v: Any) -> Any:
        return FieldWidth.FULL if v is None else v

    @field_validator("logic", mode="before")
    @classmethod
    def _drop_incomplete_logic(cls, v: Any) -> Any:
        # The builder stores half-configured rules with an empty fieldId.
        if isinstance(v, dict) and not (v.get("fieldId") or v.get("field_id")):
            return None
        return v

    @property
    def is_layout(self) -> bool:
        return self.type in LAYOUT_TYPES

    @property
    def is_entity_bound(self) -> bool:
        return self.type in ENTITY_BOUND_TYPES

    def option_values(self) -> list[str]:
        return [o.value for o in self.options]


class FormStep(_ConfigModel):
    id: str
    title: str = ""
    fields: list[FormField] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


def structural_violations(model: "FormModel") -> list[str]:
    """List every structural problem of a form (empty on a sound form)."""
    problems: list[str] = []
    if not model.steps:
        problems.append("Form must have at least one step")

    seen: set[str] = set()
    for f in model.iter_fields():
        if f.id in seen:
            problems.append(f"Duplicate field id '{f.id}'")
        seen.add(f.id)

    for f in model.iter_fields():
        if f.logic is None:
            continue
        if f.logic.field_id == f.id:
            problems.append(f"Field '{f.id}' logic references itself")
        elif f.logic.field_id not in seen:
            problems.append(
                f"Field '{f.id}' logic references unknown field '{f.logic.field_id}'"
            )
    return problems


class FormModel(_ConfigModel):
    id: Optional[str] = None
    title: str = "Untitled Form"
    description: Optional[str] = None
    status: Optional[FormStatus] = None
    kind: FormKind = FormKind.CUSTOM
    steps: list[FormStep] = Field(default_factory=list)
    clinic_id: Optional[str] = None
    include_in_email: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        legacy = data.pop("fields", None)
        if not data.get("steps") and legacy:
            data["steps"] = [
                {"id": LEGACY_STEP_ID, "title": LEGACY_STEP_TITLE, "fields": legacy}
            ]
        return data

    @model_validator(mode="after")
    def _check_structure(self) -> "FormModel":
        problems = structural_violations(self)
        if problems:
            raise ValueError("; ".join(problems))
        return self

    # ------------------------------------------------------------------ #
    # Lookup helpers
    # ------------------------------------------------------------------ #

    def iter_fields(self) -> Iterator[FormField]:
        for step in self.steps:
            yield from step.fields

    def get_field(self, field_id: str) -> Optional[FormField]:
        return self.find_field(lambda f: f.id == field_id)

    def find_field(self, predicate: Callable[[FormField], bool]) -> Optional[FormField]:
        for f in self.iter_fields():
            if predicate(f):
                return f
        return None

    def fields_of_type(self, *types: FieldType) -> list[FormField]:
        return [f for f in self.iter_fields() if f.type in types]

    def step_index_of(self, field_id: str) -> Optional[int]:
        for index, step in enumerate(self.steps):
            if any(f.id == field_id for f in step.fields):
                return index
        return None

    # ------------------------------------------------------------------ #
    # Serialization
    # ------------------------------------------------------------------ #

    def to_config(self) -> dict[str, Any]:
        """Serialize to the persisted camelCase shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_config(cls, data: dict[str, Any]) -> "FormModel":
        """Load a persisted configuration, including the legacy flat shape."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise FormConfigError(
                f"Invalid form configuration ({exc.error_count()} error(s))",
                {"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc
