"""Unit tests for intentguard/schemas/classification.py defaults and coercion."""

from __future__ import annotations

import pytest

from intentguard.schemas.classification import ClassificationResponse


def test_empty_object_gets_all_defaults() -> None:
    response = ClassificationResponse.model_validate({})
    assert response.match == "uncertain"
    assert response.confidence == 0.0
    assert response.reasoning == "No reasoning provided"
    assert response.context_risk == "none"
    assert response.mismatch_type == "none"
    assert response.intent_label == "unknown"
    assert response.risk_summary == ""
    assert response.files == []


def test_camel_case_fields() -> None:
    response = ClassificationResponse.model_validate(
        {
            "match": "mismatch",
            "contextRisk": "high",
            "mismatchType": "pii_exposure",
            "intentLabel": "demo slides",
            "riskSummary": "Personal data in a demo file",
        }
    )
    assert response.context_risk == "high"
    assert response.mismatch_type == "pii_exposure"
    assert response.intent_label == "demo slides"


@pytest.mark.parametrize(("raw", "expected"), [(1.7, 1.0), (-2, 0.0), ("0.4", 0.4), ("high", 0.0), (True, 0.0)])
def test_confidence_clamped(raw: object, expected: float) -> None:
    assert ClassificationResponse.model_validate({"confidence": raw}).confidence == expected


def test_out_of_enum_values_fall_back() -> None:
    response = ClassificationResponse.model_validate(
        {"match": "maybe", "contextRisk": "extreme", "mismatchType": "leak", "reasoning": 42}
    )
    assert response.match == "uncertain"
    assert response.context_risk == "none"
    assert response.mismatch_type == "none"
    assert response.reasoning == "No reasoning provided"


def test_file_entries_defaulted_and_looked_up() -> None:
    response = ClassificationResponse.model_validate(
        {"files": [{"name": "a.csv", "classificationLabel": "spreadsheet"}, "junk"]}
    )
    assert len(response.files) == 1
    classified = response.file_by_name("a.csv")
    assert classified is not None
    assert classified.classification_label == "unknown"
    assert classified.finding == "No specific finding"
    assert response.file_by_name("missing") is None


def test_files_not_a_list() -> None:
    assert ClassificationResponse.model_validate({"files": "a.csv"}).files == []
