"""Booking summary: a read-only projection of a booking form's values."""

from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from formengine.engine.roles import first_with_role
from formengine.schemas.entity_schema import ConsultationType, Practitioner, ScheduleValue, Service
from formengine.schemas.form_schema import (
    DOCTOR_PICKER_TYPES,
    FieldType,
    FormModel,
    SemanticRole,
    consultation_type_key,
)
from formengine.timezones import normalize_timezone, timezone_abbreviation, zoned_instant
from formengine.utils import is_blank, parse_iso_date


class DoctorSection(BaseModel):
    completed: bool = False
    practitioner_id: Optional[str] = None
    name: Optional[str] = None
    specialties: list[str] = Field(default_factory=list)
    timezone: Optional[str] = None


class ServiceSection(BaseModel):
    completed: bool = False
    service_id: Optional[str] = None
    name: Optional[str] = None
    duration: Optional[str] = None
    price: Optional[float] = None
    consultation_type: Optional[ConsultationType] = None


class AppointmentSection(BaseModel):
    completed: bool = False
    date: Optional[str] = None
    formatted_date: Optional[str] = None
    time: Optional[str] = None
    timezone: Optional[str] = None
    timezone_abbreviation: Optional[str] = None


class PatientSection(BaseModel):
    completed: bool = False
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class BookingSummary(BaseModel):
    doctor: DoctorSection
    service: ServiceSection
    appointment: AppointmentSection
    patient: PatientSection

    @property
    def has_any_data(self) -> bool:
        return bool(
            self.doctor.completed
            or self.service.completed
            or self.appointment.date
            or any((self.patient.name, self.patient.email, self.patient.phone))
        )


def format_long_date(iso_date: str) -> str:
    """``2025-06-09`` -> ``Mon, Jun 9, 2025``; unparseable input is returned as is."""
    try:
        day = parse_iso_date(iso_date)
    except ValueError:
        return iso_date
    return f"{day:%a, %b} {day.day}, {day.year}"


def _text(value: Any) -> Optional[str]:
    return None if is_blank(value) else str(value)


def _first_value(model: FormModel, values: Mapping[str, Any], *types: FieldType) -> Any:
    fields = model.fields_of_type(*types)
    return values.get(fields[0].id) if fields else None


def build_booking_summary(
    model: FormModel,
    values: Mapping[str, Any],
    practitioners: Sequence[Practitioner],
    services: Sequence[Service],
    timezone: Optional[str] = None,
) -> BookingSummary:
    """Project doctor, service, appointment and patient sections from ``values``."""
    schedule = ScheduleValue.from_value(_first_value(model, values, FieldType.SCHEDULE))

    doctor_id = _text(_first_value(model, values, *DOCTOR_PICKER_TYPES)) or schedule.practitioner
    practitioner = next((p for p in practitioners if p.id == doctor_id), None)
    doctor = DoctorSection(
        completed=doctor_id is not None,
        practitioner_id=doctor_id,
        name=practitioner.name if practitioner else None,
        specialties=list(practitioner.specialties) if practitioner else [],
        timezone=practitioner.timezone if practitioner else None,
    )

    service_fields = model.fields_of_type(FieldType.SERVICE_SELECTION)
    service_id = _text(values.get(service_fields[0].id)) if service_fields else None
    service = next((s for s in services if s.id == service_id), None)
    consultation = (
        ConsultationType.parse(values.get(consultation_type_key(service_fields[0].id)))
        if service_fields else None
    )
    service_section = ServiceSection(
        completed=service_id is not None,
        service_id=service_id,
        name=service.name if service else None,
        duration=service.duration if service else None,
        price=service.price if service else None,
        consultation_type=consultation,
    )

    zone = normalize_timezone(
        practitioner.timezone if practitioner and practitioner.timezone else timezone
    )
    appointment = AppointmentSection(completed=bool(schedule.date and schedule.time))
    if schedule.date:
        appointment.date = schedule.date
        appointment.formatted_date = format_long_date(schedule.date)
        appointment.time = schedule.time
        appointment.timezone = zone
        # Without a time, the abbreviation in force at midday of that date.
        try:
            moment = zoned_instant(schedule.date, schedule.time or "12:00", zone, "shift").instant
        except ValueError:
            moment = None
        appointment.timezone_abbreviation = timezone_abbreviation(zone, moment)

    patient_values = {}
    for role in (SemanticRole.NAME, SemanticRole.EMAIL, SemanticRole.PHONE):
        found = first_with_role(model, role)
        patient_values[role.value] = _text(values.get(found.id)) if found else None
    patient = PatientSection(
        completed=all(patient_values.values()),
        **patient_values,
    )

    return BookingSummary(
        doctor=doctor,
        service=service_section,
        appointment=appointment,
        patient=patient,
    )
