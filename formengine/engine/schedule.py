"""
Runtime behaviour of a ``schedule`` field.

A schedule value holds a specialty, a practitioner, a date and a
practitioner-local wall-clock time. ScheduleEngine resolves which
practitioner is active, fetches that practitioner's slots for the chosen
date and consultation type, and renders them in either the practitioner's
zone or the viewer's zone with a calendar day marker such as ``(+1)``.

All writes go through ``FormRuntime.set_value`` so errors and state-machine
rules apply uniformly.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

from formengine.config import settings
from formengine.errors import CollaboratorError
from formengine.logging_context import get_session_logger
from formengine.schemas.entity_schema import (
    AvailableSlot,
    ConsultationType,
    Practitioner,
    ScheduleValue,
    SlotQuery,
)
from formengine.schemas.form_schema import FieldType, consultation_type_key
from formengine.timezones import (
    NonexistentTimePolicy,
    calendar_day_offset,
    day_offset_label,
    format_in_zone,
    normalize_timezone,
    timezone_display_name,
    zoned_instant,
)
from formengine.utils import to_iso_date

if TYPE_CHECKING:
    from formengine.engine.runtime import FormRuntime

logger = get_session_logger(__name__)

BOTH_TYPES_LABEL = "Mixed"


@dataclass(frozen=True)
class ScheduleContext:
    """Zones and policies for one session, passed in rather than read from globals."""

    clinic_timezone: str = field(default_factory=lambda: settings.schedule.clinic_timezone)
    viewer_timezone: str = field(default_factory=lambda: settings.schedule.viewer_timezone)
    nonexistent_policy: NonexistentTimePolicy = field(
        default_factory=lambda: NonexistentTimePolicy(settings.schedule.nonexistent_time_policy)
    )
    default_consultation_type: ConsultationType = field(
        default_factory=lambda: ConsultationType(settings.schedule.default_consultation_type)
    )


class DisplayZone(str, Enum):
    PRACTITIONER = "practitioner"
    VIEWER = "viewer"


class SlotLoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(frozen=True)
class SlotKey:
    """Inputs that determine a slot list; a change triggers one new request."""

    date: str
    practitioner_id: str
    timezone: str
    consultation_type: Optional[ConsultationType] = None


@dataclass(frozen=True)
class DisplaySlot:
    time: str  # practitioner wall clock, the value committed on selection
    source_time: str
    display_date: str
    display_time: str
    day_offset: int
    label: str
    type: str
    instant: datetime
    shifted: bool = False

    @property
    def type_label(self) -> str:
        return BOTH_TYPES_LABEL if self.type == "both" else self.type


@dataclass(frozen=True)
class NoSlotsAlternative:
    current: ConsultationType
    alternative: ConsultationType

    @property
    def message(self) -> str:
        return (
            f"No {self.current.value} appointments are available for this date. "
            f"Try {self.alternative.value}?"
        )


@dataclass(frozen=True)
class SelectionSummary:
    practitioner_id: str
    practitioner_name: Optional[str]
    specialty: Optional[str]
    date: str
    time: str
    practitioner_zone: str
    viewer_date: str
    viewer_time: str
    viewer_zone: str
    day_offset: int

    @property
    def viewer_label(self) -> str:
        return f"{self.viewer_time}{day_offset_label(self.day_offset)} {self.viewer_zone}"


class ScheduleEngine:
    """Resolution, slot retrieval and selection for one schedule field."""

    def __init__(self, runtime: "FormRuntime", field_id: str) -> None:
        self._runtime = runtime
        self.field_id = field_id
        self.display_zone = DisplayZone.PRACTITIONER
        self._slots: list[AvailableSlot] = []
        self._load_state = SlotLoadState.IDLE
        self._requested_key: Optional[SlotKey] = None
        self._loaded_key: Optional[SlotKey] = None

    @property
    def request_key(self) -> str:
        return f"slots:{self.field_id}"

    @property
    def context(self) -> ScheduleContext:
        return self._runtime.schedule_context

    @property
    def value(self) -> ScheduleValue:
        return ScheduleValue.from_value(self._runtime.value(self.field_id))

    @property
    def load_state(self) -> SlotLoadState:
        return self._load_state

    @property
    def slots(self) -> list[AvailableSlot]:
        return list(self._slots)

    # ------------------------------------------------------------------ #
    # Practitioner and specialty resolution
    # ------------------------------------------------------------------ #

    def specialty_options(self) -> list[str]:
        found: set[str] = set()
        for practitioner in self._runtime.practitioners:
            found.update(practitioner.specialties)
        return sorted(found)

    def effective_specialty(self) -> Optional[str]:
        own = self.value.specialty
        if own:
            return own
        options = self.specialty_options()
        return options[0] if options else None

    def filtered_practitioners(self) -> list[Practitioner]:
        practitioners = self._runtime.practitioners
        specialty = self.effective_specialty()
        if specialty is None:
            return practitioners
        return [p for p in practitioners if specialty in p.specialties]

    def external_doctor_id(self) -> Optional[str]:
        return self._runtime.selected_doctor_id()

    def active_practitioner_id(self) -> Optional[str]:
        """External selector, then own sub-value, then the first matching practitioner."""
        external = self.external_doctor_id()
        if external:
            return external
        own = self.value.practitioner
        if own:
            return own
        filtered = self.filtered_practitioners()
        if filtered:
            return filtered[0].id
        practitioners = self._runtime.practitioners
        return practitioners[0].id if practitioners else None

    def practitioner(self, practitioner_id: Optional[str] = None) -> Optional[Practitioner]:
        wanted = practitioner_id or self.active_practitioner_id()
        for p in self._runtime.practitioners:
            if p.id == wanted:
                return p
        return None

    def practitioner_timezone(self) -> str:
        practitioner = self.practitioner()
        zone = practitioner.timezone if practitioner and practitioner.timezone else None
        return normalize_timezone(zone or self.context.clinic_timezone)

    def viewer_timezone(self) -> str:
        return normalize_timezone(self.context.viewer_timezone)

    def display_timezone(self) -> str:
        if self.display_zone is DisplayZone.VIEWER:
            return self.viewer_timezone()
        return self.practitioner_timezone()

    def toggle_display_zone(self) -> DisplayZone:
        self.display_zone = (
            DisplayZone.PRACTITIONER
            if self.display_zone is DisplayZone.VIEWER
            else DisplayZone.VIEWER
        )
        return self.display_zone

    # ------------------------------------------------------------------ #
    # Consultation type
    # ------------------------------------------------------------------ #

    def consultation_type_field_id(self) -> Optional[str]:
        services = self._runtime.model.fields_of_type(FieldType.SERVICE_SELECTION)
        return consultation_type_key(services[0].id) if services else None

    def consultation_type(self) -> Optional[ConsultationType]:
        """Chosen consultation type, or None when the form has no service field."""
        key = self.consultation_type_field_id()
        if key is None:
            return None
        chosen = ConsultationType.parse(self._runtime.value(key))
        return chosen or self.context.default_consultation_type

    def switch_consultation_type(self, consultation_type: ConsultationType) -> None:
        key = self.consultation_type_field_id()
        if key is None:
            raise ValueError("Form has no service selection to carry a consultation type")
        self._runtime.set_value(key, consultation_type.value)
        current = self.value
        if current.time:
            self._write(current.model_copy(update={"time": None}))

    # ------------------------------------------------------------------ #
    # Selection
    # ------------------------------------------------------------------ #

    def _write(self, value: ScheduleValue) -> None:
        self._runtime.set_value(self.field_id, value.to_value())

    def initial_value(self) -> ScheduleValue:
        return ScheduleValue(
            specialty=self.effective_specialty(),
            practitioner=self.active_practitioner_id(),
        )

    def select_specialty(self, specialty: str) -> None:
        first = next(
            (p.id for p in self._runtime.practitioners if specialty in p.specialties), None
        )
        self._write(ScheduleValue(specialty=specialty, practitioner=first))

    def select_practitioner(self, practitioner_id: str) -> None:
        self._write(ScheduleValue(specialty=self.effective_specialty(), practitioner=practitioner_id))

    def select_date(self, day: str) -> bool:
        """Choose a date; returns False for anything that is not a valid date."""
        iso = to_iso_date(day)
        if iso is None:
            return False
        self._write(ScheduleValue(
            specialty=self.effective_specialty(),
            practitioner=self.active_practitioner_id(),
            date=iso,
        ))
        return True

    def choose_slot(self, slot: Union[DisplaySlot, str]) -> bool:
        """Commit a slot's practitioner wall-clock time.

        Only a time offered by the slots loaded for the current selection
        is accepted; anything else returns False and leaves the value alone.
        """
        current = self.value
        practitioner_id = self.active_practitioner_id()
        if not current.date or not practitioner_id:
            return False
        if self._loaded_key is None or self._loaded_key != self.slot_key():
            return False
        time = slot.time if isinstance(slot, DisplaySlot) else slot
        if time not in {offered.time for offered in self.display_slots()}:
            return False
        self._write(ScheduleValue(
            specialty=self.effective_specialty(),
            practitioner=practitioner_id,
            date=current.date,
            time=time,
        ))
        return True

    # ------------------------------------------------------------------ #
    # Slots
    # ------------------------------------------------------------------ #

    def slot_key(self) -> Optional[SlotKey]:
        practitioner_id = self.active_practitioner_id()
        day = self.value.date
        if not practitioner_id or not day:
            return None
        return SlotKey(
            date=day,
            practitioner_id=practitioner_id,
            timezone=self.practitioner_timezone(),
            consultation_type=self.consultation_type(),
        )

    def clear_slots(self) -> None:
        self._runtime.requests.forget(self.request_key)
        self._slots = []
        self._requested_key = None
        self._loaded_key = None
        self._load_state = SlotLoadState.IDLE

    async def refresh_slots(self, force: bool = False) -> SlotLoadState:
        """Fetch slots when the slot key changed since the last request.

        Failures leave an empty list in the FAILED state; responses to
        superseded requests are dropped.
        """
        key = self.slot_key()
        if key is None:
            self.clear_slots()
            return self._load_state
        if key == self._requested_key and not force:
            return self._load_state

        backend = self._runtime.backend
        if backend is None:
            self._requested_key = key
            self._slots = []
            self._loaded_key = key
            self._load_state = SlotLoadState.LOADED
            return self._load_state

        self._requested_key = key
        self._load_state = SlotLoadState.LOADING
        token = self._runtime.requests.issue(self.request_key)
        query = SlotQuery(
            practitioner_id=key.practitioner_id,
            date=key.date,
            timezone=key.timezone,
            consultation_type=key.consultation_type,
        )
        try:
            response = await backend.available_slots(query)
        except Exception as exc:
            if self._runtime.requests.is_current(self.request_key, token):
                reason = exc.message if isinstance(exc, CollaboratorError) else repr(exc)
                logger.warning("Slot retrieval failed for %s: %s", key, reason)
                self._slots = []
                self._loaded_key = key
                self._load_state = SlotLoadState.FAILED
            return self._load_state

        if not self._runtime.requests.is_current(self.request_key, token):
            logger.debug("Discarding stale slot response for %s", key)
            return self._load_state

        self._slots = [s for s in response.slots if s.available]
        self._loaded_key = key
        self._load_state = SlotLoadState.LOADED
        logger.debug("Loaded %d slots for %s", len(self._slots), key)
        return self._load_state

    def display_slots(self) -> list[DisplaySlot]:
        """Loaded slots rendered in the current display zone."""
        if self._loaded_key is None:
            return []
        day = self._loaded_key.date
        source_zone = self._loaded_key.timezone
        target_zone = self.display_timezone()
        policy = self.context.nonexistent_policy

        rendered: list[DisplaySlot] = []
        for slot in self._slots:
            try:
                resolved = zoned_instant(day, slot.time, source_zone, policy)
            except ValueError:
                logger.debug("Ignoring malformed slot time %r", slot.time)
                continue
            if resolved is None:
                logger.debug("Skipping nonexistent wall time %s %s in %s", day, slot.time, source_zone)
                continue
            _, committed = format_in_zone(resolved.instant, source_zone)
            display_date, display_time = format_in_zone(resolved.instant, target_zone)
            offset = calendar_day_offset(day, resolved.instant, target_zone)
            rendered.append(DisplaySlot(
                time=committed,
                source_time=slot.time,
                display_date=display_date,
                display_time=display_time,
                day_offset=offset,
                label=f"{display_time}{day_offset_label(offset)}",
                type=slot.type,
                instant=resolved.instant,
                shifted=resolved.shifted,
            ))
        return rendered

    def no_slots_alternative(self) -> Optional[NoSlotsAlternative]:
        """Offer the complementary consultation type when nothing is bookable."""
        if self._load_state is not SlotLoadState.LOADED or self._slots:
            return None
        current = self.consultation_type()
        if current is None:
            return None
        return NoSlotsAlternative(current=current, alternative=current.complement)

    async def accept_alternative(self) -> bool:
        alternative = self.no_slots_alternative()
        if alternative is None:
            return False
        self.switch_consultation_type(alternative.alternative)
        await self.refresh_slots()
        return True

    def selection_summary(self) -> Optional[SelectionSummary]:
        current = self.value
        practitioner_id = self.active_practitioner_id()
        if not (practitioner_id and current.date and current.time):
            return None
        practitioner_zone = self.practitioner_timezone()
        try:
            resolved = zoned_instant(
                current.date, current.time, practitioner_zone, NonexistentTimePolicy.SHIFT
            )
        except ValueError:
            logger.debug("Stored time %r is not a wall-clock time", current.time)
            return None
        viewer_zone = self.viewer_timezone()
        viewer_date, viewer_time = format_in_zone(resolved.instant, viewer_zone)
        practitioner = self.practitioner(practitioner_id)
        return SelectionSummary(
            practitioner_id=practitioner_id,
            practitioner_name=practitioner.name if practitioner else None,
            specialty=self.effective_specialty(),
            date=current.date,
            time=current.time,
            practitioner_zone=timezone_display_name(practitioner_zone, resolved.instant),
            viewer_date=viewer_date,
            viewer_time=viewer_time,
            viewer_zone=timezone_display_name(viewer_zone, resolved.instant),
            day_offset=calendar_day_offset(current.date, resolved.instant, viewer_zone),
        )
