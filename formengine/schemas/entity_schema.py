"""Live backend entities and collaborator request/response models."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _id_to_str(v: Any) -> Any:
    return str(v) if isinstance(v, int) else v


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ConsultationType(str, Enum):
    ONLINE = "online"
    IN_PERSON = "in-person"

    @property
    def complement(self) -> "ConsultationType":
        return ConsultationType.IN_PERSON if self is ConsultationType.ONLINE else ConsultationType.ONLINE

    @classmethod
    def parse(cls, raw: Any) -> Optional["ConsultationType"]:
        """Accept stored values and the legacy 'Online'/'Offline' labels."""
        if raw is None:
            return None
        text = str(raw).strip().lower()
        if text == "online":
            return cls.ONLINE
        if text in ("in-person", "in_person", "offline", "inperson"):
            return cls.IN_PERSON
        return None


class Practitioner(_ApiModel):
    id: str
    name: str
    specialties: list[str] = Field(default_factory=list)
    schedule: Optional[list[dict[str, Any]]] = None
    timezone: Optional[str] = None
    consultation_type: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return _id_to_str(v)

    @field_validator("specialties", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class Service(_ApiModel):
    id: str
    name: str
    duration: Optional[str] = None
    price: Optional[float] = None
    type: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return _id_to_str(v)

    @field_validator("duration", mode="before")
    @classmethod
    def _duration_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, (int, float)) else v


class SlotQuery(_ApiModel):
    practitioner_id: str
    date: str
    timezone: str
    consultation_type: Optional[ConsultationType] = None


class AvailableSlot(_ApiModel):
    """A bookable time in the practitioner's local wall clock."""

    time: str
    type: str = "both"
    available: bool = True


class SlotsResponse(_ApiModel):
    slots: list[AvailableSlot] = Field(default_factory=list)
    all_slots: list[AvailableSlot] = Field(default_factory=list)


class LookupUser(_ApiModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    dob: Optional[str] = None

    @field_validator("dob", mode="before")
    @classmethod
    def _dob_to_str(cls, v: Any) -> Any:
        return None if v is None else str(v)


class EmailLookupResult(_ApiModel):
    exists: bool = False
    user: Optional[LookupUser] = None


class ScheduleValue(_ApiModel):
    """Structured value of a ``schedule`` field."""

    specialty: Optional[str] = None
    practitioner: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None

    @field_validator("practitioner", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return _id_to_str(v)

    @classmethod
    def from_value(cls, raw: Any) -> "ScheduleValue":
        if isinstance(raw, dict):
            return cls.model_validate(raw)
        return cls()

    @property
    def is_complete(self) -> bool:
        return bool(self.practitioner and self.date and self.time)

    def to_value(self) -> dict[str, Optional[str]]:
        return self.model_dump()


class SubmissionReceipt(_ApiModel):
    submission_id: Optional[str] = None
    appointment: Optional[dict[str, Any]] = None
    meeting_link: Optional[str] = None
