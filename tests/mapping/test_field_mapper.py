from __future__ import annotations

import copy
from datetime import date

import pytest

from applyflow.agent.schemas import FieldAnswer
from applyflow.core.errors import InferenceError
from applyflow.mapping.field_mapper import FieldMapper, match_option
from applyflow.workflow.state import FormField

TODAY = date(2024, 5, 16)

COUNTRY = FormField(name="country", type="select", options=("USA", "India", "UK"))


@pytest.fixture
def mapper() -> FieldMapper:
    return FieldMapper(today=TODAY)


def mapping_for(mapper: FieldMapper, form_field: FormField, candidate: dict):
    result = mapper.map_fields([form_field], candidate)
    assert len(result.mappings) == 1
    return result.mappings[0]


class TestPatternMapping:
    def test_first_name_from_full_name(self, mapper: FieldMapper) -> None:
        candidate = {"name": "Jane Smith", "location": "New York, NY, USA"}

        mapping = mapping_for(mapper, FormField(name="firstname"), candidate)

        assert mapping.mapped
        assert mapping.value == "Jane"
        assert mapping.confidence >= 0.8
        assert mapping.source == "pattern"

    def test_label_used_when_name_is_opaque(self, mapper: FieldMapper, candidate) -> None:
        field = FormField(name="q_1832", type="email", label="Email address")

        mapping = mapping_for(mapper, field, candidate)

        assert mapping.value == "jane.smith@example.com"

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("lastName", "Smith"),
            ("phone_number", "+1 555 0100"),
            ("city", "New York"),
            ("state", "NY"),
            ("age", "34"),
            ("date_of_birth", "1990-05-15"),
            ("years_of_experience", "6 years"),
        ],
    )
    def test_common_fields(self, mapper: FieldMapper, candidate, name: str, expected: str) -> None:
        assert mapping_for(mapper, FormField(name=name), candidate).value == expected

    def test_semantic_label(self, mapper: FieldMapper, candidate) -> None:
        field = FormField(name="q7", type="textarea", label="Where are you based?")

        mapping = mapping_for(mapper, field, candidate)

        assert mapping.value == "New York, NY, USA"
        assert mapping.source == "semantic"
        assert mapping.confidence == pytest.approx(0.6)

    def test_missing_data_is_unmapped(self, mapper: FieldMapper) -> None:
        mapping = mapping_for(mapper, FormField(name="linkedin_url"), {"name": "Jane Smith"})

        assert not mapping.mapped
        assert mapping.value is None
        assert mapping.confidence == 0.0


class TestSelectFields:
    def test_value_matches_option(self, mapper: FieldMapper) -> None:
        mapping = mapping_for(mapper, COUNTRY, {"country": "India"})

        assert mapping.mapped
        assert mapping.value == "India"

    def test_value_outside_options_is_unmapped(self, mapper: FieldMapper) -> None:
        mapping = mapping_for(mapper, COUNTRY, {"country": "Germany"})

        assert not mapping.mapped
        assert mapping.value is None

    @pytest.mark.parametrize(
        "value, options, expected",
        [
            ("usa", ["Select...", "USA"], "USA"),
            ("United States", ["Canada", "United States of America"], "United States of America"),
            ("Germany", ["USA", "India"], None),
            ("", ["USA"], None),
        ],
    )
    def test_match_option(self, value: str, options: list[str], expected) -> None:
        assert match_option(value, options) == expected


class TestInference:
    HEAR_ABOUT = FormField(name="hear_about", label="How did you hear about us?")

    def test_inference_answer_is_flagged_when_weak(self, inference_factory, candidate) -> None:
        inference = inference_factory({
            FieldAnswer: FieldAnswer(value="LinkedIn", confidence=0.4, reasoning="profile link"),
        })

        mapping = mapping_for(FieldMapper(inference, today=TODAY), self.HEAR_ABOUT, candidate)

        assert mapping.mapped
        assert mapping.value == "LinkedIn"
        assert mapping.source == "inference"
        assert mapping.low_confidence
        assert "profile link" in mapping.reason
        prompt, _ = inference.prompts[0]
        assert "How did you hear about us?" in prompt
        assert "jane.smith@example.com" in prompt

    def test_confident_answer_is_not_flagged(self, inference_factory, candidate) -> None:
        inference = inference_factory({FieldAnswer: FieldAnswer(value="Referral", confidence=0.9)})

        mapping = mapping_for(FieldMapper(inference, today=TODAY), self.HEAR_ABOUT, candidate)

        assert not mapping.low_confidence

    def test_inference_failure_is_unmapped(self, inference_factory, candidate) -> None:
        inference = inference_factory({FieldAnswer: InferenceError("rate limited")})

        mapping = mapping_for(FieldMapper(inference, today=TODAY), self.HEAR_ABOUT, candidate)

        assert not mapping.mapped
        assert "rate limited" in mapping.reason

    def test_inferred_select_value_must_be_an_option(self, inference_factory) -> None:
        inference = inference_factory({FieldAnswer: FieldAnswer(value="Germany", confidence=0.9)})

        mapping = mapping_for(FieldMapper(inference, today=TODAY), COUNTRY, {"country": "Germany"})

        assert not mapping.mapped

    def test_empty_answer_is_unmapped(self, inference_factory, candidate) -> None:
        inference = inference_factory({FieldAnswer: FieldAnswer(value=None, confidence=0.8)})

        mapping = mapping_for(FieldMapper(inference, today=TODAY), self.HEAR_ABOUT, candidate)

        assert not mapping.mapped

    def test_pattern_match_skips_inference(self, inference_factory, candidate) -> None:
        inference = inference_factory()

        FieldMapper(inference, today=TODAY).map_fields([FormField(name="email")], candidate)

        assert inference.prompts == []


class TestMapFields:
    def test_file_fields_are_listed_unfilled(self, mapper: FieldMapper, candidate) -> None:
        fields = [FormField(name="email", type="email"), FormField(name="resume", type="file")]

        result = mapper.map_fields(fields, candidate)

        assert result.success
        assert [m.field_name for m in result.mappings] == ["email"]
        assert len(result.unfilled_fields) == 1
        assert result.unfilled_fields[0].field_name == "resume"
        assert "Non-mappable" in result.unfilled_fields[0].reason

    def test_inputs_not_modified(self, mapper: FieldMapper, candidate) -> None:
        before = copy.deepcopy(candidate)
        fields = (FormField(name="firstname"), COUNTRY)

        mapper.map_fields(fields, candidate)

        assert candidate == before
        assert fields == (FormField(name="firstname"), COUNTRY)

    def test_mapped_count(self, mapper: FieldMapper, candidate) -> None:
        fields = [FormField(name="firstname"), FormField(name="favourite_colour")]

        result = mapper.map_fields(fields, candidate)

        assert result.mapped_count == 1
