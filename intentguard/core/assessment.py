"""Assessment — the risk engine's output contract.

Every call to :meth:`~intentguard.core.risk_engine.RiskEngine.analyze`
returns exactly one :class:`Assessment`, built by one of four constructors:

* :meth:`Assessment.skipped` — the message did not warrant analysis.
* :meth:`Assessment.from_error` — the classification stage failed; verdict
  is ``"uncertain"`` and the error message is recorded.
* :meth:`Assessment.from_pre_scan` — the pre-scan was conclusive and the
  classification service was never called.
* :meth:`Assessment.from_classification` — normalised service verdict.

``FileFinding.finding`` and ``Assessment.reasoning`` may paraphrase
sensitive content.  They are fine for a direct message to the sender but
must not reach persistence; :meth:`Assessment.to_record` is the only
projection that should be stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from intentguard.core.findings import Finding, PreScanResult
from intentguard.core.triage import EvidenceItem
from intentguard.schemas.classification import ClassificationResponse

ANALYSIS_PRE_SCAN = "pre-scan"
ANALYSIS_LLM = "llm"

ERROR_REASONING = "Analysis could not be completed due to an error"


@dataclass(frozen=True)
class FileFinding:
    """Per-file verdict.  ``finding`` is sensitive free text."""

    name: str
    method: str
    classification_label: str = "unknown"
    finding: str = "No specific finding"


@dataclass(frozen=True)
class Assessment:
    match: str
    confidence: float = 0.0
    reasoning: str = ""
    context_risk: str = "none"
    mismatch_type: str = "none"
    intent_label: str = "unknown"
    risk_summary: str = ""
    files_analyzed: tuple[FileFinding, ...] = field(default_factory=tuple)
    error: str | None = None
    analysis_method: str | None = None
    pre_scan_findings: tuple[Finding, ...] = field(default_factory=tuple)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def skipped(cls, reason: str) -> "Assessment":
        return cls(
            match="skipped",
            confidence=0.0,
            reasoning=reason,
            mismatch_type="none",
            intent_label="none",
            risk_summary="Skipped",
            context_risk="none",
        )

    @classmethod
    def from_error(cls, error: BaseException | str) -> "Assessment":
        message = error if isinstance(error, str) else (str(error) or type(error).__name__)
        return cls(
            match="uncertain",
            confidence=0.0,
            reasoning=ERROR_REASONING,
            mismatch_type="none",
            intent_label="unknown",
            risk_summary="Analysis error",
            context_risk="none",
            error=message,
        )

    @classmethod
    def from_pre_scan(
        cls,
        result: PreScanResult,
        evidence: Sequence[EvidenceItem],
        context_risk: str,
    ) -> "Assessment":
        """Short-circuit assessment for a ``mismatch`` pre-scan verdict."""
        summary = ", ".join(result.finding_types)
        label = "credentials" if result.mismatch_type == "credential_leak" else "pii_document"
        files = tuple(
            FileFinding(
                name=item.name,
                method=ANALYSIS_PRE_SCAN,
                classification_label=label,
                finding=next(
                    (f.type for f in result.findings if f.file_name == item.name),
                    "Detected by pre-scan",
                ),
            )
            for item in evidence
        )
        return cls(
            match="mismatch",
            confidence=result.confidence,
            reasoning=f"Pre-scan detected: {summary}",
            context_risk=context_risk or "none",
            mismatch_type=result.mismatch_type,
            intent_label="unknown",
            risk_summary=f"Sensitive content detected by pre-scan: {summary}",
            files_analyzed=files,
            analysis_method=ANALYSIS_PRE_SCAN,
            pre_scan_findings=result.findings,
        )

    @classmethod
    def from_classification(
        cls,
        response: ClassificationResponse,
        evidence: Sequence[EvidenceItem],
        hints: Sequence[Finding] = (),
    ) -> "Assessment":
        """Merge the service's verdict with the evidence bundle's method metadata."""
        files = []
        for item in evidence:
            classified = response.file_by_name(item.name)
            files.append(
                FileFinding(
                    name=item.name,
                    method=item.method,
                    classification_label=classified.classification_label if classified else "unknown",
                    finding=classified.finding if classified else "No specific finding",
                )
            )
        return cls(
            match=response.match,
            confidence=response.confidence,
            reasoning=response.reasoning,
            context_risk=response.context_risk,
            mismatch_type=response.mismatch_type,
            intent_label=response.intent_label,
            risk_summary=response.risk_summary,
            files_analyzed=tuple(files),
            analysis_method=ANALYSIS_LLM,
            pre_scan_findings=tuple(hints),
        )

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def to_record(self) -> dict[str, Any]:
        """Persistence-safe projection: no ``reasoning``, no per-file ``finding``."""
        return {
            "match": self.match,
            "confidence": self.confidence,
            "context_risk": self.context_risk,
            "mismatch_type": self.mismatch_type,
            "intent_label": self.intent_label,
            "risk_summary": self.risk_summary,
            "files_analyzed": [
                {
                    "name": f.name,
                    "method": f.method,
                    "classification_label": f.classification_label,
                }
                for f in self.files_analyzed
            ],
            "error": self.error,
            "analysis_method": self.analysis_method,
            "pre_scan_findings": [f.to_dict() for f in self.pre_scan_findings],
        }
