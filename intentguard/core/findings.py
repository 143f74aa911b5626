"""Finding and PreScanResult value types for the IntentGuard pre-scan.

A :class:`Finding` is one detected signal.  Findings are produced only by the
detectors in :mod:`intentguard.core.detectors` and are never mutated after
creation; tagging a finding with the file or message it came from returns a
new object via :meth:`Finding.with_origin`.

None of these types ever carries the raw matched secret.  ``sample`` is
always a masked or truncated form (``4111****1111``, ``XXX-XX-6789``,
``sk-abcde...``).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Literal

Severity = Literal["critical", "high", "medium"]

FindingType = Literal[
    "credit_card",
    "ssn",
    "uk_nino",
    "bulk_emails",
    "bulk_phones",
    "api_key",
    "private_key",
    "password_in_plaintext",
    "env_file_content",
    "high_entropy_token",
    "risky_filename",
]

Verdict = Literal["clean", "signals_only", "mismatch"]

MismatchType = Literal[
    "none",
    "intent_vs_content",
    "wrong_audience",
    "pii_exposure",
    "credential_leak",
    "sensitive_in_public",
    "external_leak",
]

MISMATCH_TYPES: frozenset[str] = frozenset(
    {
        "none",
        "intent_vs_content",
        "wrong_audience",
        "pii_exposure",
        "credential_leak",
        "sensitive_in_public",
        "external_leak",
    }
)

#: Finding types that indicate leaked credentials or secrets.
CREDENTIAL_FINDING_TYPES: frozenset[str] = frozenset(
    {
        "api_key",
        "private_key",
        "password_in_plaintext",
        "env_file_content",
        "high_entropy_token",
        "risky_filename",
    }
)

#: Finding types that indicate exposed personal data.
PII_FINDING_TYPES: frozenset[str] = frozenset(
    {"credit_card", "ssn", "uk_nino", "bulk_emails", "bulk_phones"}
)

#: Confidence contributed by the most severe finding of a scan.
SEVERITY_WEIGHTS: dict[str, float] = {
    "critical": 0.95,
    "high": 0.80,
    "medium": 0.60,
}


@dataclass(frozen=True)
class Finding:
    """A single pre-scan detection.

    Attributes:
        type: Detector category, one of :data:`FindingType`.
        severity: ``"critical"``, ``"high"`` or ``"medium"``.
        sample: Masked or truncated sample of the match, when the detector
            reports one.  Never the raw value.
        count: Number of matches, for detectors that report a count.
        file_name: Attachment the finding came from (content detectors) or
            refers to (filename heuristics).
        source: ``"message_text"`` when the finding came from the message
            body rather than an attachment.
        entropy: Shannon entropy in bits/char, only for
            ``high_entropy_token`` findings.
    """

    type: str
    severity: str
    sample: str | None = None
    count: int | None = None
    file_name: str | None = None
    source: str | None = None
    entropy: float | None = None

    def with_origin(
        self,
        *,
        file_name: str | None = None,
        source: str | None = None,
    ) -> "Finding":
        """Return a copy of this finding tagged with its origin."""
        changes: dict[str, Any] = {}
        if file_name is not None:
            changes["file_name"] = file_name
        if source is not None:
            changes["source"] = source
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly dict, omitting unset optional fields."""
        return {k: v for k, v in dataclasses.asdict(self).items() if v is not None}


@dataclass(frozen=True)
class PreScanResult:
    """Outcome of one pre-scan.

    Attributes:
        verdict: ``"clean"``, ``"signals_only"`` or ``"mismatch"``.
        confidence: Weight of the most severe finding, ``0.0`` when clean.
        findings: All findings, in detector order.
        mismatch_type: ``"credential_leak"``, ``"pii_exposure"`` or ``"none"``.
    """

    verdict: str
    confidence: float
    findings: tuple[Finding, ...] = field(default_factory=tuple)
    mismatch_type: str = "none"

    @property
    def finding_types(self) -> list[str]:
        """Distinct finding types in first-seen order."""
        return list(dict.fromkeys(f.type for f in self.findings))

    @property
    def is_short_circuit(self) -> bool:
        return self.verdict == "mismatch"


CLEAN_RESULT = PreScanResult(verdict="clean", confidence=0.0, findings=(), mismatch_type="none")
