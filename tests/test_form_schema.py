"""Tests for form configuration loading, normalization and serialization."""

import pytest

from formengine.errors import FormConfigError
from formengine.schemas.entity_schema import ConsultationType, Practitioner, ScheduleValue
from formengine.schemas.form_schema import (
    LEGACY_STEP_ID,
    LEGACY_STEP_TITLE,
    FieldType,
    FieldWidth,
    FormKind,
    FormModel,
    SemanticRole,
    consultation_type_key,
)


class TestLegacyNormalization:
    def test_flat_fields_become_one_step(self):
        model = FormModel.from_config({
            "title": "Old form",
            "fields": [{"id": "name", "type": "text", "label": "Name"}],
        })
        assert len(model.steps) == 1
        assert model.steps[0].id == LEGACY_STEP_ID
        assert model.steps[0].title == LEGACY_STEP_TITLE
        assert model.get_field("name") is not None

    def test_empty_steps_fall_back_to_fields(self):
        model = FormModel.from_config({
            "steps": [],
            "fields": [{"id": "name", "type": "text"}],
        })
        assert model.steps[0].id == LEGACY_STEP_ID

    def test_steps_win_over_fields(self):
        model = FormModel.from_config({
            "steps": [{"id": "s1", "title": "One", "fields": [{"id": "a", "type": "text"}]}],
            "fields": [{"id": "b", "type": "text"}],
        })
        assert [s.id for s in model.steps] == ["s1"]
        assert model.get_field("b") is None

    def test_neither_steps_nor_fields_is_rejected(self):
        with pytest.raises(FormConfigError):
            FormModel.from_config({"title": "Empty"})


class TestFieldNormalization:
    def test_string_options_normalized(self):
        model = FormModel.from_config({
            "fields": [{"id": "colour", "type": "select", "options": ["red", "blue"]}],
        })
        option = model.get_field("colour").options[0]
        assert option.label == "red"
        assert option.value == "red"

    def test_option_metadata_kept(self):
        model = FormModel.from_config({
            "fields": [{
                "id": "svc",
                "type": "service_selection",
                "options": [{"label": "Consult", "value": 7, "duration": "30", "price": 80}],
            }],
        })
        option = model.get_field("svc").options[0]
        assert option.value == "7"
        assert option.meta("duration") == "30"

    def test_incomplete_logic_is_dropped(self):
        model = FormModel.from_config({
            "fields": [{"id": "a", "type": "text", "logic": {"fieldId": "", "value": "x", "action": "show"}}],
        })
        assert model.get_field("a").logic is None

    def test_defaults(self):
        model = FormModel.from_config({"fields": [{"id": "a", "type": "text", "width": None}]})
        field = model.get_field("a")
        assert field.width == FieldWidth.FULL
        assert field.required is False
        assert field.locked is False
        assert model.kind == FormKind.CUSTOM

    def test_semantic_role_parsed(self):
        model = FormModel.from_config({
            "fields": [{"id": "contact", "type": "text", "semanticRole": "email"}],
        })
        assert model.get_field("contact").semantic_role == SemanticRole.EMAIL

    def test_unknown_field_type_rejected(self):
        with pytest.raises(FormConfigError):
            FormModel.from_config({"fields": [{"id": "a", "type": "hologram"}]})


class TestStructuralInvariants:
    def test_duplicate_ids_rejected(self):
        with pytest.raises(FormConfigError):
            FormModel.from_config({
                "steps": [
                    {"id": "s1", "fields": [{"id": "a", "type": "text"}]},
                    {"id": "s2", "fields": [{"id": "a", "type": "number"}]},
                ],
            })

    def test_dangling_logic_reference_rejected(self):
        with pytest.raises(FormConfigError):
            FormModel.from_config({
                "fields": [{"id": "a", "type": "text", "logic": {"fieldId": "ghost", "value": 1}}],
            })

    def test_self_reference_rejected(self):
        with pytest.raises(FormConfigError):
            FormModel.from_config({
                "fields": [{"id": "a", "type": "text", "logic": {"fieldId": "a", "value": 1}}],
            })


class TestSerialization:
    def test_round_trip_uses_camel_case(self):
        model = FormModel.from_config({
            "title": "Booking",
            "kind": "BOOKING",
            "clinicId": "clinic-1",
            "includeInEmail": True,
            "steps": [{
                "id": "s1",
                "title": "One",
                "fields": [
                    {"id": "a", "type": "checkbox", "options": ["x"]},
                    {"id": "b", "type": "text", "logic": {"fieldId": "a", "value": ["x"], "action": "hide"}},
                ],
            }],
        })
        config = model.to_config()
        assert config["clinicId"] == "clinic-1"
        assert config["includeInEmail"] is True
        assert config["steps"][0]["fields"][1]["logic"]["fieldId"] == "a"
        assert "placeholder" not in config["steps"][0]["fields"][0]
        assert FormModel.from_config(config).to_config() == config

    def test_lookup_helpers(self):
        model = FormModel.from_config({
            "steps": [
                {"id": "s1", "fields": [{"id": "doc", "type": "doctor_selection"}]},
                {"id": "s2", "fields": [{"id": "when", "type": "schedule"}]},
            ],
        })
        assert model.step_index_of("when") == 1
        assert model.step_index_of("ghost") is None
        assert [f.id for f in model.fields_of_type(FieldType.SCHEDULE)] == ["when"]
        assert model.get_field("doc").is_entity_bound


class TestEntities:
    def test_consultation_type_parses_legacy_labels(self):
        assert ConsultationType.parse("Online") is ConsultationType.ONLINE
        assert ConsultationType.parse("Offline") is ConsultationType.IN_PERSON
        assert ConsultationType.parse("in-person") is ConsultationType.IN_PERSON
        assert ConsultationType.parse("telepathy") is None
        assert ConsultationType.ONLINE.complement is ConsultationType.IN_PERSON

    def test_practitioner_numeric_id_coerced(self):
        practitioner = Practitioner.model_validate({"id": 12, "name": "Dr. X", "specialties": None})
        assert practitioner.id == "12"
        assert practitioner.specialties == []

    def test_schedule_value_completeness(self):
        value = ScheduleValue.from_value({"practitioner": 3, "date": "2025-06-10", "time": None})
        assert value.practitioner == "3"
        assert not value.is_complete
        assert ScheduleValue.from_value("garbage") == ScheduleValue()

    def test_consultation_type_key(self):
        assert consultation_type_key("service-select") == "service-select-consultation-type"
