from __future__ import annotations

import json

import pytest

from libs.core.errors import UnparsableResponse
from libs.core.models import FitScore, ResumeDocument
from libs.tools.structured_response import (
    RepairStage,
    RepairStatus,
    repair,
    repair_structured_response,
    strip_code_fence,
)


def _fit_payload(**overrides) -> dict:
    payload = {
        "overall": 78,
        "experienceAlignment": 80,
        "technicalSkillMatch": 75,
        "domainRelevance": 70,
        "stageCulturalFit": 85,
        "impactPotential": 80,
        "rationale": {
            "experienceAlignment": "Eight years in similar roles.",
            "technicalSkillMatch": "Strong Python, lighter on Kubernetes.",
            "domainRelevance": "Fintech background matches.",
            "stageCulturalFit": "Has worked at growth-stage startups.",
            "impactPotential": "Led migrations with measurable savings.",
        },
    }
    payload.update(overrides)
    return payload


def test_plain_json_parses_directly() -> None:
    result = repair_structured_response(json.dumps(_fit_payload()), FitScore)
    assert result.status == RepairStatus.ok
    assert result.stage == RepairStage.direct
    assert result.value.overall == 78
    assert result.value.rationale.domain_relevance == "Fintech background matches."


def test_fenced_json_with_language_tag() -> None:
    raw = "```json\n" + json.dumps(_fit_payload()) + "\n```"
    result = repair_structured_response(raw, FitScore)
    assert result.ok
    assert result.stage == RepairStage.direct


def test_object_embedded_in_prose_uses_span_fallback() -> None:
    raw = "Here is the analysis you asked for:\n" + json.dumps(_fit_payload()) + "\nLet me know!"
    result = repair_structured_response(raw, FitScore)
    assert result.ok
    assert result.stage == RepairStage.object_span
    assert result.value.impact_potential == 80


def test_text_without_object_is_parse_error() -> None:
    result = repair_structured_response("I could not score this candidate.", FitScore)
    assert result.status == RepairStatus.parse_error
    assert result.value is None
    assert result.error


def test_json_array_is_shape_error() -> None:
    result = repair_structured_response("[1, 2, 3]", FitScore)
    assert result.status == RepairStatus.shape_error


def test_missing_rationale_dimension_is_shape_error() -> None:
    payload = _fit_payload()
    del payload["rationale"]["impactPotential"]
    result = repair_structured_response(json.dumps(payload), FitScore)
    assert result.status == RepairStatus.shape_error


def test_extra_rationale_key_is_shape_error() -> None:
    payload = _fit_payload()
    payload["rationale"]["overall"] = "Not a rationale dimension."
    result = repair_structured_response(json.dumps(payload), FitScore)
    assert result.status == RepairStatus.shape_error


def test_score_out_of_range_is_shape_error() -> None:
    result = repair_structured_response(json.dumps(_fit_payload(overall=101)), FitScore)
    assert result.status == RepairStatus.shape_error


def test_repair_raises_on_failure_with_stage() -> None:
    with pytest.raises(UnparsableResponse) as exc_info:
        repair("{not json at all}", FitScore)
    assert exc_info.value.status_code == 502
    assert exc_info.value.stage == RepairStage.none.value

    with pytest.raises(UnparsableResponse) as exc_info:
        repair('{"overall": 5}', FitScore)
    assert exc_info.value.stage == RepairStage.direct.value


def test_resume_document_ignores_unknown_keys_and_null_lists() -> None:
    raw = json.dumps(
        {
            "header": {"name": "Jane Doe", "links": None},
            "experience": [{"title": "Engineer", "company": "Acme", "bullets": None}],
            "projects": ["ignored"],
        }
    )
    resume = repair(raw, ResumeDocument)
    assert resume.header.links == []
    assert resume.experience[0].bullets == []
    assert resume.skills is None


def test_strip_code_fence_handles_bare_and_tagged_fences() -> None:
    assert strip_code_fence("```\n{}\n```") == "{}"
    assert strip_code_fence("```JSON\n{\"a\": 1}```") == '{"a": 1}'
    assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'
