"""Pydantic schema for the classification service's JSON response.

The service output is untrusted and schema-less: every field is optional and
falls back to a documented default when missing, of the wrong type, or
outside its enum.  Validation never fails on a well-formed JSON object.

Field defaults:

==================  ==========================
``match``           ``"uncertain"``
``confidence``      ``0.0`` (clamped to [0, 1])
``reasoning``       ``"No reasoning provided"``
``contextRisk``     ``"none"``
``mismatchType``    ``"none"``
``intentLabel``     ``"unknown"``
``riskSummary``     ``""``
``files``           ``[]``
==================  ==========================
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from intentguard.core.findings import MISMATCH_TYPES

MATCH_VERDICTS = frozenset({"match", "mismatch", "uncertain"})
CONTEXT_RISKS = frozenset({"none", "low", "medium", "high"})
CLASSIFICATION_LABELS = frozenset(
    {
        "financial_report",
        "medical_record",
        "credentials",
        "pii_document",
        "legal_document",
        "internal_strategy",
        "source_code",
        "general_document",
        "image_screenshot",
        "unknown",
    }
)


def _enum_or(value: Any, allowed: frozenset[str], default: str) -> str:
    if isinstance(value, str) and value in allowed:
        return value
    return default


def _text_or(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


class ClassifiedFile(BaseModel):
    """Per-file verdict returned by the service."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = ""
    finding: str = "No specific finding"
    classification_label: str = Field("unknown", alias="classificationLabel")

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("finding", mode="before")
    @classmethod
    def _finding(cls, v: Any) -> str:
        return _text_or(v, "No specific finding")

    @field_validator("classification_label", mode="before")
    @classmethod
    def _label(cls, v: Any) -> str:
        return _enum_or(v, CLASSIFICATION_LABELS, "unknown")


class ClassificationResponse(BaseModel):
    """Boundary model for the service's ``json_object`` response."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    match: str = "uncertain"
    confidence: float = 0.0
    reasoning: str = "No reasoning provided"
    context_risk: str = Field("none", alias="contextRisk")
    mismatch_type: str = Field("none", alias="mismatchType")
    intent_label: str = Field("unknown", alias="intentLabel")
    risk_summary: str = Field("", alias="riskSummary")
    files: list[ClassifiedFile] = Field(default_factory=list)

    @field_validator("match", mode="before")
    @classmethod
    def _match(cls, v: Any) -> str:
        return _enum_or(v, MATCH_VERDICTS, "uncertain")

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v: Any) -> float:
        if isinstance(v, bool) or not isinstance(v, (int, float, str)):
            return 0.0
        try:
            value = float(v)
        except ValueError:
            return 0.0
        if value != value:  # NaN
            return 0.0
        return min(max(value, 0.0), 1.0)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning(cls, v: Any) -> str:
        return _text_or(v, "No reasoning provided")

    @field_validator("context_risk", mode="before")
    @classmethod
    def _context_risk(cls, v: Any) -> str:
        return _enum_or(v, CONTEXT_RISKS, "none")

    @field_validator("mismatch_type", mode="before")
    @classmethod
    def _mismatch_type(cls, v: Any) -> str:
        return _enum_or(v, MISMATCH_TYPES, "none")

    @field_validator("intent_label", mode="before")
    @classmethod
    def _intent_label(cls, v: Any) -> str:
        return _text_or(v, "unknown")

    @field_validator("risk_summary", mode="before")
    @classmethod
    def _risk_summary(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("files", mode="before")
    @classmethod
    def _files(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]

    def file_by_name(self, name: str) -> ClassifiedFile | None:
        for item in self.files:
            if item.name == name:
                return item
        return None
