"""Unit tests for intentguard/core/assessment.py."""

from __future__ import annotations

from intentguard.core.assessment import (
    ANALYSIS_LLM,
    ANALYSIS_PRE_SCAN,
    ERROR_REASONING,
    Assessment,
)
from intentguard.core.findings import Finding, PreScanResult
from intentguard.core.triage import METHOD_METADATA, METHOD_TEXT, EvidenceItem
from intentguard.schemas.classification import ClassificationResponse

_EVIDENCE = [
    EvidenceItem(name="a.txt", mimetype="text/plain", size=10, method=METHOD_TEXT, extracted_text="x"),
    EvidenceItem(name="b.zip", mimetype="application/zip", size=20, method=METHOD_METADATA, note="unsupported file type"),
]


def test_skipped() -> None:
    assessment = Assessment.skipped("No files attached to message")
    assert assessment.match == "skipped"
    assert assessment.reasoning == "No files attached to message"
    assert assessment.confidence == 0.0


def test_from_error() -> None:
    assessment = Assessment.from_error(RuntimeError("HTTP 500"))
    assert assessment.match == "uncertain"
    assert assessment.confidence == 0.0
    assert assessment.reasoning == ERROR_REASONING
    assert assessment.error == "HTTP 500"


def test_from_error_without_message_uses_type_name() -> None:
    assert Assessment.from_error(TimeoutError()).error == "TimeoutError"


def test_from_pre_scan() -> None:
    result = PreScanResult(
        verdict="mismatch",
        confidence=0.95,
        findings=(Finding(type="ssn", severity="critical", count=1, file_name="a.txt"),),
        mismatch_type="pii_exposure",
    )
    assessment = Assessment.from_pre_scan(result, _EVIDENCE, "medium")
    assert assessment.match == "mismatch"
    assert assessment.analysis_method == ANALYSIS_PRE_SCAN
    assert assessment.context_risk == "medium"
    assert assessment.reasoning == "Pre-scan detected: ssn"
    assert [(f.name, f.method, f.classification_label, f.finding) for f in assessment.files_analyzed] == [
        ("a.txt", "pre-scan", "pii_document", "ssn"),
        ("b.zip", "pre-scan", "pii_document", "Detected by pre-scan"),
    ]


def test_from_classification_merges_by_name() -> None:
    response = ClassificationResponse.model_validate(
        {
            "match": "mismatch",
            "confidence": 0.8,
            "files": [{"name": "a.txt", "finding": "Contains payroll", "classificationLabel": "financial_report"}],
        }
    )
    hints = [Finding(type="bulk_emails", severity="high", count=11, file_name="a.txt")]
    assessment = Assessment.from_classification(response, _EVIDENCE, hints)
    assert assessment.analysis_method == ANALYSIS_LLM
    assert assessment.files_analyzed[0].method == METHOD_TEXT
    assert assessment.files_analyzed[0].classification_label == "financial_report"
    assert assessment.files_analyzed[1].classification_label == "unknown"
    assert assessment.files_analyzed[1].method == METHOD_METADATA
    assert assessment.pre_scan_findings == tuple(hints)


def test_to_record_excludes_sensitive_text() -> None:
    response = ClassificationResponse.model_validate(
        {"reasoning": "File lists Ada's salary", "files": [{"name": "a.txt", "finding": "Ada's salary"}]}
    )
    record = Assessment.from_classification(response, _EVIDENCE).to_record()
    assert "reasoning" not in record
    assert all("finding" not in f for f in record["files_analyzed"])
    assert "salary" not in repr(record)
