"""Tests for the schedule field: resolution, slot retrieval and display."""

import asyncio

import pytest

from formengine.engine.runtime import FormRuntime
from formengine.engine.schedule import (
    DisplayZone,
    NoSlotsAlternative,
    ScheduleContext,
    SlotLoadState,
)
from formengine.schemas.entity_schema import ConsultationType
from formengine.schemas.form_schema import consultation_type_key
from formengine.timezones import NonexistentTimePolicy
from tests.conftest import (
    FakeBackend,
    booking_form,
    collaborator_failure,
    make_field,
    make_form,
    make_practitioner,
    slot,
)

DAY = "2025-06-10"
CONSULTATION_KEY = consultation_type_key("service-select")


def context(**overrides) -> ScheduleContext:
    settings = {
        "clinic_timezone": "UTC",
        "viewer_timezone": "America/New_York",
        "nonexistent_policy": NonexistentTimePolicy.SKIP,
        "default_consultation_type": ConsultationType.IN_PERSON,
    }
    settings.update(overrides)
    return ScheduleContext(**settings)


async def booking_runtime(backend, model=None, **overrides) -> FormRuntime:
    runtime = FormRuntime(model or booking_form(), backend, schedule_context=context(**overrides))
    await runtime.load_entities()
    return runtime


class TestResolution:
    @pytest.mark.asyncio
    async def test_specialties_are_sorted_and_unique(self, fake_backend):
        fake_backend.practitioners.append(make_practitioner("doc-3", "Dr. Cy", ["Cardiology"]))
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        assert engine.specialty_options() == ["Allergy", "Cardiology", "Dermatology"]

    @pytest.mark.asyncio
    async def test_external_doctor_selection_wins(self, fake_backend):
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-1")
        assert engine.active_practitioner_id() == "doc-1"
        assert engine.practitioner_timezone() == "America/New_York"

    @pytest.mark.asyncio
    async def test_own_sub_value_without_external_picker(self, fake_backend):
        model = make_form([make_field("when", "schedule")])
        runtime = await booking_runtime(fake_backend, model)
        engine = runtime.schedule("when")
        assert engine.active_practitioner_id() == "doc-2"

        engine.select_specialty("Cardiology")

        assert engine.value.practitioner == "doc-1"
        assert engine.filtered_practitioners()[0].id == "doc-1"

    @pytest.mark.asyncio
    async def test_first_filtered_practitioner_is_the_fallback(self, fake_backend):
        model = make_form([make_field("when", "schedule")])
        runtime = await booking_runtime(fake_backend, model)
        runtime.set_value("when", {"specialty": "Cardiology"})
        assert runtime.schedule("when").active_practitioner_id() == "doc-1"

    @pytest.mark.asyncio
    async def test_zone_falls_back_to_clinic_zone(self):
        backend = FakeBackend(practitioners=[make_practitioner("doc-9", "Dr. Nowhere")])
        runtime = await booking_runtime(backend, clinic_timezone="Europe/London")
        assert runtime.schedule("appointment-time").practitioner_timezone() == "Europe/London"

    @pytest.mark.asyncio
    async def test_unknown_practitioner_zone_falls_back_to_utc(self):
        backend = FakeBackend(practitioners=[make_practitioner("doc-9", "Dr. X", timezone="Nowhere/City")])
        runtime = await booking_runtime(backend)
        assert runtime.schedule("appointment-time").practitioner_timezone() == "UTC"

    @pytest.mark.asyncio
    async def test_non_schedule_field_is_rejected(self, fake_backend):
        runtime = await booking_runtime(fake_backend)
        with pytest.raises(KeyError):
            runtime.schedule("lead-name")


class TestSelection:
    @pytest.mark.asyncio
    async def test_invalid_date_rejected(self, fake_backend):
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        assert engine.select_date("next tuesday") is False
        assert engine.select_date("2025-02-30") is False
        assert engine.value.date is None

    @pytest.mark.asyncio
    async def test_slot_needs_a_date(self, fake_backend):
        runtime = await booking_runtime(fake_backend)
        assert runtime.schedule("appointment-time").choose_slot("09:00") is False

    @pytest.mark.asyncio
    async def test_doctor_change_clears_date_and_time(self, fake_backend):
        fake_backend.slots[("doc-1", DAY, "in-person")] = [slot("09:00")]
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-1")
        engine.select_date(DAY)
        await engine.refresh_slots()
        assert engine.choose_slot("09:00")

        runtime.set_value("practitioner-select", "doc-2")

        assert engine.value.practitioner == "doc-2"
        assert engine.value.date is None
        assert engine.value.time is None

    @pytest.mark.asyncio
    async def test_switching_consultation_type_clears_time(self, fake_backend):
        fake_backend.slots[("doc-1", DAY, "in-person")] = [slot("09:00")]
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-1")
        engine.select_date(DAY)
        await engine.refresh_slots()
        assert engine.choose_slot("09:00")

        engine.switch_consultation_type(ConsultationType.ONLINE)

        assert runtime.value(CONSULTATION_KEY) == "online"
        assert engine.value.date == DAY
        assert engine.value.time is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("time", ["25:99", "10:00", "9am"])
    async def test_only_offered_times_are_accepted(self, fake_backend, time):
        fake_backend.slots[("doc-1", DAY, "in-person")] = [slot("09:00")]
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-1")
        engine.select_date(DAY)
        await engine.refresh_slots()

        assert engine.choose_slot(time) is False
        assert engine.value.time is None
        assert not runtime.validate_step(2)
        assert engine.selection_summary() is None

    @pytest.mark.asyncio
    async def test_slots_from_another_date_are_not_offered(self, fake_backend):
        fake_backend.slots[("doc-1", DAY, "in-person")] = [slot("09:00")]
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-1")
        engine.select_date(DAY)
        await engine.refresh_slots()

        engine.select_date("2025-06-11")

        assert engine.choose_slot("09:00") is False


class TestSlotRetrieval:
    @pytest.mark.asyncio
    async def test_loads_available_slots_for_key(self, fake_backend):
        fake_backend.slots[("doc-1", DAY, "in-person")] = [
            slot("09:00", "in-person"),
            slot("10:00", "both"),
            slot("11:00").model_copy(update={"available": False}),
        ]
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-1")
        engine.select_date(DAY)

        state = await engine.refresh_slots()

        assert state == SlotLoadState.LOADED
        assert [s.time for s in engine.slots] == ["09:00", "10:00"]
        assert fake_backend.calls_to("available_slots") == [("doc-1", DAY, "in-person")]

    @pytest.mark.asyncio
    async def test_unchanged_key_is_not_refetched(self, fake_backend):
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        engine.select_date(DAY)
        await engine.refresh_slots()
        await engine.refresh_slots()
        assert len(fake_backend.calls_to("available_slots")) == 1
        await engine.refresh_slots(force=True)
        assert len(fake_backend.calls_to("available_slots")) == 2

    @pytest.mark.asyncio
    async def test_no_date_means_no_request(self, fake_backend):
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        assert await engine.refresh_slots() == SlotLoadState.IDLE
        assert fake_backend.calls_to("available_slots") == []

    @pytest.mark.asyncio
    async def test_failure_leaves_empty_failed_list(self, fake_backend):
        fake_backend.failures["available_slots"] = collaborator_failure()
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        engine.select_date(DAY)

        assert await engine.refresh_slots() == SlotLoadState.FAILED
        assert engine.slots == []
        assert engine.display_slots() == []
        assert engine.no_slots_alternative() is None

    @pytest.mark.asyncio
    async def test_unexpected_error_is_a_retrieval_failure(self, fake_backend):
        fake_backend.failures["available_slots"] = ValueError("slots.0.time must be a string")
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        engine.select_date(DAY)

        assert await engine.refresh_slots() == SlotLoadState.FAILED
        assert engine.slots == []

    @pytest.mark.asyncio
    async def test_stale_response_is_discarded(self, fake_backend):
        fake_backend.slots[("doc-1", DAY, "in-person")] = [slot("09:00")]
        fake_backend.slots[("doc-1", "2025-06-11", "in-person")] = [slot("14:00")]
        gate = asyncio.Event()
        fake_backend.gates[("available_slots", ("doc-1", DAY, "in-person"))] = gate
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-1")

        engine.select_date(DAY)
        slow = asyncio.create_task(engine.refresh_slots())
        await asyncio.sleep(0)
        engine.select_date("2025-06-11")
        await engine.refresh_slots()
        gate.set()
        await slow

        assert [s.time for s in engine.slots] == ["14:00"]
        assert engine.load_state == SlotLoadState.LOADED

    @pytest.mark.asyncio
    async def test_without_backend_loads_empty(self):
        runtime = FormRuntime(
            make_form([make_field("when", "schedule")]),
            schedule_context=context(),
        )
        engine = runtime.schedule("when")
        runtime.set_value("when", {"practitioner": "doc-1"})
        engine.select_date(DAY)
        assert await engine.refresh_slots() == SlotLoadState.LOADED
        assert engine.slots == []

    @pytest.mark.asyncio
    async def test_reset_clears_slots(self, fake_backend):
        fake_backend.slots[("doc-2", DAY, "in-person")] = [slot("09:00")]
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        engine.select_date(DAY)
        await engine.refresh_slots()

        runtime.reset()

        assert engine.load_state == SlotLoadState.IDLE
        assert engine.slots == []


class TestDisplay:
    @pytest.mark.asyncio
    async def test_viewer_zone_shows_day_offset(self, fake_backend):
        fake_backend.slots[("doc-2", DAY, "in-person")] = [slot("09:00", "in-person"), slot("10:00")]
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-2")
        engine.select_date(DAY)
        await engine.refresh_slots()

        assert [s.label for s in engine.display_slots()] == ["09:00", "10:00"]

        assert engine.toggle_display_zone() is DisplayZone.VIEWER
        assert engine.display_timezone() == "America/New_York"
        slots = engine.display_slots()
        assert [s.label for s in slots] == ["23:30 (-1)", "00:30"]
        assert slots[0].display_date == "2025-06-09"
        assert slots[1].type_label == "Mixed"

    @pytest.mark.asyncio
    async def test_choosing_a_converted_slot_commits_practitioner_time(self, fake_backend):
        fake_backend.slots[("doc-2", DAY, "in-person")] = [slot("09:00")]
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-2")
        engine.select_date(DAY)
        await engine.refresh_slots()
        engine.toggle_display_zone()

        assert engine.choose_slot(engine.display_slots()[0])

        assert engine.value.date == DAY
        assert engine.value.time == "09:00"
        summary = engine.selection_summary()
        assert summary.practitioner_zone == "Kolkata (IST)"
        assert summary.viewer_label == "23:30 (-1) New York (EDT)"

    @pytest.mark.asyncio
    async def test_nonexistent_slot_is_skipped(self, fake_backend):
        fake_backend.slots[("doc-1", "2025-03-09", "in-person")] = [slot("02:30"), slot("03:30")]
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-1")
        engine.select_date("2025-03-09")
        await engine.refresh_slots()

        assert [s.time for s in engine.display_slots()] == ["03:30"]

    @pytest.mark.asyncio
    async def test_nonexistent_slot_is_shifted_under_shift_policy(self, fake_backend):
        fake_backend.slots[("doc-1", "2025-03-09", "in-person")] = [slot("02:30")]
        runtime = await booking_runtime(fake_backend, nonexistent_policy=NonexistentTimePolicy.SHIFT)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-1")
        engine.select_date("2025-03-09")
        await engine.refresh_slots()

        [shifted] = engine.display_slots()
        assert shifted.shifted
        assert shifted.source_time == "02:30"
        assert shifted.time == "03:30"

    @pytest.mark.asyncio
    async def test_malformed_slot_time_is_ignored(self, fake_backend):
        fake_backend.slots[("doc-1", DAY, "in-person")] = [slot("noonish"), slot("12:00")]
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-1")
        engine.select_date(DAY)
        await engine.refresh_slots()
        assert [s.time for s in engine.display_slots()] == ["12:00"]


class TestConsultationAlternative:
    @pytest.mark.asyncio
    async def test_empty_online_offers_in_person(self, fake_backend):
        fake_backend.slots[("doc-1", DAY, "in-person")] = [slot("09:00"), slot("10:00"), slot("11:00")]
        runtime = await booking_runtime(fake_backend)
        engine = runtime.schedule("appointment-time")
        runtime.set_value("practitioner-select", "doc-1")
        runtime.set_value(CONSULTATION_KEY, "online")
        engine.select_date(DAY)
        await engine.refresh_slots()

        alternative = engine.no_slots_alternative()

        assert alternative == NoSlotsAlternative(ConsultationType.ONLINE, ConsultationType.IN_PERSON)
        assert "in-person" in alternative.message
        assert await engine.accept_alternative()
        assert runtime.value(CONSULTATION_KEY) == "in-person"
        assert len(engine.slots) == 3
        assert engine.no_slots_alternative() is None
        assert fake_backend.calls_to("available_slots") == [
            ("doc-1", DAY, "online"),
            ("doc-1", DAY, "in-person"),
        ]

    @pytest.mark.asyncio
    async def test_legacy_offline_label_is_in_person(self, fake_backend):
        runtime = await booking_runtime(fake_backend)
        runtime.set_value(CONSULTATION_KEY, "Offline")
        assert runtime.schedule("appointment-time").consultation_type() is ConsultationType.IN_PERSON

    @pytest.mark.asyncio
    async def test_form_without_service_has_no_consultation_type(self, fake_backend):
        model = make_form([make_field("when", "schedule")])
        runtime = await booking_runtime(fake_backend, model)
        engine = runtime.schedule("when")
        engine.select_date(DAY)
        await engine.refresh_slots()

        assert engine.consultation_type() is None
        assert engine.no_slots_alternative() is None
        assert fake_backend.calls_to("available_slots") == [("doc-2", DAY, None)]
        with pytest.raises(ValueError):
            engine.switch_consultation_type(ConsultationType.ONLINE)
