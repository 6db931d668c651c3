"""
Tests for fuzzy classifier response parsing.
"""

import pytest

from powindex.core.errors import ClassifierFormatError
from powindex.shared.response_parser import (
    ClassifierResponseParser,
    category_key,
    coerce_bool,
    coerce_score,
    strip_code_fences,
)


@pytest.fixture
def parser():
    return ClassifierResponseParser()


class TestHelpers:

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('plain') == 'plain'
        assert strip_code_fences('') == ''

    @pytest.mark.parametrize("value,expected", [
        (42, 42.0),
        ("87.5", 87.5),
        (150, 100.0),
        (-3, 0.0),
        ("high", 50.0),
        (None, 50.0),
        (True, 50.0),
        (float("nan"), 50.0),
    ])
    def test_coerce_score(self, value, expected):
        assert coerce_score(value, 50.0) == expected

    @pytest.mark.parametrize("value,expected", [
        (True, True), ("yes", True), ("False", False), (1, True), (0, False), (None, False),
    ])
    def test_coerce_bool(self, value, expected):
        assert coerce_bool(value) is expected

    @pytest.mark.parametrize("raw,expected", [
        ("backend_engineering", "backend_engineering"),
        ("Frontend Engineering", "frontend_engineering"),
        ("DevOps / Infrastructure", "devops_infrastructure"),
        ("Systems Architecture", "systems_architecture"),
        ("cooking", None),
    ])
    def test_category_key(self, raw, expected):
        assert category_key(raw) == expected


class TestExtractJson:

    def test_json_with_surrounding_prose(self, parser):
        assert parser.extract_json('Here you go: {"a": 1} Hope that helps!') == {"a": 1}

    def test_array_with_prose(self, parser):
        assert parser.extract_json('Results:\n[{"id": "x"}]\nDone') == [{"id": "x"}]

    def test_trailing_commas_cleaned(self, parser):
        assert parser.extract_json('{"a": 1, "b": [1, 2,],}') == {"a": 1, "b": [1, 2]}

    def test_no_json_raises(self, parser):
        with pytest.raises(ClassifierFormatError):
            parser.extract_json("I cannot help with that.")

    def test_empty_raises(self, parser):
        with pytest.raises(ClassifierFormatError):
            parser.extract_json("")


class TestSkillExtraction:

    def test_full_response(self, parser):
        response = '''```json
        {"backend_engineering": {"score": 80, "confidence": 70,
            "evidence": [{"type": "commit", "id": "commit-1", "reason": "API work"}]},
         "frontend_engineering": {"score": 20, "confidence": 40, "evidence": []},
         "devops_infrastructure": {"score": 30, "confidence": 50, "evidence": []},
         "systems_architecture": {"score": 60, "confidence": 65, "evidence": []}}
        ```'''

        extraction = parser.parse_skill_extraction(response)

        backend = extraction.get("backend_engineering")
        assert backend.score == 80
        assert backend.confidence == 70
        assert backend.evidence[0].artifact_id == "commit-1"
        assert extraction.get("systems_architecture").score == 60

    def test_missing_categories_default_to_zero(self, parser):
        extraction = parser.parse_skill_extraction('{"backend_engineering": {"score": "75"}}')
        assert extraction.get("backend_engineering").score == 75
        assert extraction.get("backend_engineering").confidence == 0
        assert extraction.get("frontend_engineering").score == 0
        assert len(extraction.categories) == 4

    def test_nested_skills_object(self, parser):
        extraction = parser.parse_skill_extraction('{"skills": {"Backend": 55}}')
        assert extraction.get("backend_engineering").score == 55

    def test_unknown_categories_raise(self, parser):
        with pytest.raises(ClassifierFormatError):
            parser.parse_skill_extraction('{"cooking": {"score": 99}}')

    def test_array_response_raises(self, parser):
        with pytest.raises(ClassifierFormatError):
            parser.parse_skill_extraction('[1, 2, 3]')


class TestImpactParsing:

    def test_single_impact_defaults(self, parser):
        impact = parser.parse_impact('{"impact_score": 90}')
        assert impact.impact_score == 90
        assert impact.complexity_delta == 50
        assert impact.quality_indicators.has_tests is False

    def test_flat_quality_flags(self, parser):
        impact = parser.parse_impact('{"impact_score": 70, "has_tests": "true", "refactored": 1}')
        assert impact.quality_indicators.has_tests is True
        assert impact.quality_indicators.refactored is True
        assert impact.quality_indicators.documented is False

    def test_batch_array(self, parser):
        response = '''Sure:
        [{"id": "commit-a", "impact_score": 80, "complexity_delta": 70,
          "quality_indicators": {"has_tests": true}},
         {"id": "pr-1", "impact_score": 0}]'''

        impacts = parser.parse_impact_batch(response, ["commit-a", "pr-1", "commit-missing"])

        assert impacts["commit-a"].impact_score == 80
        assert impacts["commit-a"].quality_indicators.has_tests is True
        assert impacts["pr-1"].impact_score == 0
        assert impacts["pr-1"].complexity_delta == 50
        assert impacts["commit-missing"].impact_score == 50

    def test_batch_wrapped_results(self, parser):
        impacts = parser.parse_impact_batch('{"results": [{"id": "x", "impact_score": 10}]}', ["x"])
        assert impacts["x"].impact_score == 10

    def test_batch_keyed_by_id(self, parser):
        impacts = parser.parse_impact_batch('{"x": {"impact_score": 20}, "y": "garbage"}', ["x", "y"])
        assert impacts["x"].impact_score == 20
        assert impacts["y"].impact_score == 50

    def test_batch_without_json_raises(self, parser):
        with pytest.raises(ClassifierFormatError):
            parser.parse_impact_batch("no idea", ["x"])
