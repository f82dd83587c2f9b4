"""
Tests for rendering extraction payloads into structured records.
"""

import pytest

from cvparse.models import NO_INFORMATION, SectionType
from cvparse.pipeline.normalize import ResultNormalizer, render_item, render_section

from .conftest import SAMPLE_PAYLOAD


class TestRenderItem:
    def test_education(self):
        item = {"institution": "MIT", "degree": "BSc", "field": "CS", "graduation_year": "2018"}
        assert render_item(SectionType.EDUCATION, item) == "MIT - BSc\nCS (2018)"

    def test_experience_with_responsibilities(self):
        item = {
            "company": "Acme",
            "position": "Engineer",
            "duration": "2018-2022",
            "responsibilities": ["Built APIs", "  ", "Led migrations"],
        }
        assert render_item(SectionType.EXPERIENCE, item) == (
            "Acme - Engineer\n2018-2022\nBuilt APIs\nLed migrations"
        )

    def test_experience_accepts_role(self):
        item = {"company": "Acme", "role": "Lead", "duration": "2022"}
        assert render_item(SectionType.EXPERIENCE, item) == "Acme - Lead\n2022"

    def test_missing_fields_render_not_specified(self):
        assert render_item(SectionType.SKILLS, {"name": "Python"}) == "Python - Not specified"
        assert render_item(SectionType.CERTIFICATIONS, {"name": "AWS SA"}) == (
            "AWS SA - Not specified (Not specified)"
        )

    def test_dispatch_follows_section_not_keys(self):
        # a certification-shaped item listed under skills keeps every value
        item = {"name": "AWS SA", "issuer": "Amazon", "year": "2021"}
        assert render_item(SectionType.SKILLS, item) == (
            '{"issuer": "Amazon", "name": "AWS SA", "year": "2021"}'
        )

    def test_wrong_identifying_key_renders_raw(self):
        rendered = render_item(SectionType.SKILLS, {"skill": "Python", "level": "Expert"})
        assert rendered == '{"level": "Expert", "skill": "Python"}'

    @pytest.mark.parametrize("section,item", [
        (SectionType.EDUCATION, {"degree": "BSc", "field": "CS"}),
        (SectionType.EXPERIENCE, {"position": "Engineer", "employer": "Acme"}),
        (SectionType.LANGUAGES, {"proficiency": "Native"}),
        (SectionType.CERTIFICATIONS, {"name": "AWS SA", "expires": "2025"}),
    ])
    def test_no_value_is_dropped(self, section, item):
        rendered = render_item(section, item)
        for value in item.values():
            assert value in rendered

    def test_language_accepts_alternate_keys(self):
        assert render_item(SectionType.LANGUAGES, {"name": "Spanish", "level": "B2"}) == "Spanish - B2"

    def test_string_item_renders_as_itself(self):
        assert render_item(SectionType.SKILLS, "Python") == "Python"

    def test_unknown_shape_renders_raw_json(self):
        assert render_item(SectionType.EDUCATION, {"school": "MIT", "a": 1}) == '{"a": 1, "school": "MIT"}'


class TestRenderSection:
    def test_items_separated_by_blank_line(self):
        items = [{"name": "Python", "level": "Expert"}, {"name": "SQL", "level": "Good"}]
        assert render_section(SectionType.SKILLS, items) == "Python - Expert\n\nSQL - Good"

    def test_empty_section(self):
        assert render_section(SectionType.SKILLS, []) == NO_INFORMATION


class TestResultNormalizer:
    @pytest.fixture
    def normalizer(self):
        return ResultNormalizer()

    def test_complete_payload(self, normalizer):
        result = normalizer.normalize(SAMPLE_PAYLOAD)

        record = result.record
        assert result.issues == []
        assert record.education == "MIT - BSc\nComputer Science (2018)"
        assert record.work_experience.startswith("Acme - Engineer\n2018-2022")
        assert record.skills == "Python - Expert"
        assert record.languages == "English - Native"
        assert record.certifications == NO_INFORMATION

    def test_missing_and_invalid_sections_become_empty(self, normalizer):
        result = normalizer.normalize({"skills": "Python, SQL", "education": []})

        assert all(value for value in result.record.to_dict().values())
        assert result.record.skills == NO_INFORMATION
        assert any("skills" in issue for issue in result.issues)
        assert any("experience" in issue for issue in result.issues)
        assert not any("education" in issue for issue in result.issues)

    def test_non_object_payload(self, normalizer):
        result = normalizer.normalize(["not", "an", "object"])

        assert result.record.to_dict() == {name: NO_INFORMATION for name in result.record.to_dict()}
        assert result.issues[0] == "payload is list, not an object"
