"""PreScanEngine — deterministic heuristic pre-scan for the IntentGuard pipeline.

:class:`PreScanEngine` runs the detectors in :mod:`intentguard.core.detectors`
over the message text, the text extracted from each attachment, and the
attachment metadata, and derives a :class:`~intentguard.core.findings.PreScanResult`.

**Verdict rules**

* Confidence is the weight of the most severe finding
  (critical 0.95, high 0.80, medium 0.60).
* At least one ``critical`` finding: ``"mismatch"``.  The classification
  stage is skipped entirely.
* Otherwise any finding: ``"signals_only"``.  Findings are forwarded to the
  classification stage as hints.
* No findings: ``"clean"`` with confidence ``0.0``.

``mismatch_type`` is ``"credential_leak"`` whenever any credential-class
finding is present, else ``"pii_exposure"`` for PII-class findings, else
``"none"``.

**Design notes**

* The engine is pure: no I/O, no clock, no hidden state.  Identical input
  always yields an identical result, and one instance can be shared by any
  number of concurrent assessments.
* Findings are tagged with their origin (``file_name`` or
  ``source="message_text"``) by creating new objects; detectors' output is
  never mutated.

Usage::

    from intentguard.core.pre_scan import ExtractedFile, PreScanEngine

    engine = PreScanEngine()
    result = engine.scan(
        "quarterly numbers attached",
        [ExtractedFile(name="q3.csv", text="...")],
        [{"name": "q3.csv", "mimetype": "text/csv", "size": 1234}],
    )
    print(result.verdict, result.mismatch_type)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from intentguard.core import detectors
from intentguard.core.findings import (
    CLEAN_RESULT,
    CREDENTIAL_FINDING_TYPES,
    PII_FINDING_TYPES,
    SEVERITY_WEIGHTS,
    Finding,
    PreScanResult,
)

logger = logging.getLogger(__name__)

MESSAGE_TEXT_SOURCE = "message_text"


@dataclass(frozen=True)
class ExtractedFile:
    """Text extracted from one attachment, as consumed by the pre-scan."""

    name: str
    text: str | None
    mimetype: str | None = None


def classify_mismatch_type(findings: Iterable[Finding]) -> str:
    """Map a finding set to a mismatch type; credentials outrank PII."""
    types = {f.type for f in findings}
    if types & CREDENTIAL_FINDING_TYPES:
        return "credential_leak"
    if types & PII_FINDING_TYPES:
        return "pii_exposure"
    return "none"


class PreScanEngine:
    """Stateless heuristic scanner.

    The detector tuples default to the module-level sets in
    :mod:`intentguard.core.detectors`; tests may inject narrower sets.
    """

    def __init__(
        self,
        file_detectors: Sequence = detectors.FILE_CONTENT_DETECTORS,
        message_detectors: Sequence = detectors.MESSAGE_TEXT_DETECTORS,
    ) -> None:
        self._file_detectors = tuple(file_detectors)
        self._message_detectors = tuple(message_detectors)

    def scan(
        self,
        message_text: str | None,
        extracted_files: Iterable[ExtractedFile] = (),
        all_files: Iterable[Mapping[str, object] | object] = (),
    ) -> PreScanResult:
        """Scan message text, extracted file texts and file metadata.

        Args:
            message_text: The sender's message.  ``None`` or empty skips the
                message-text detectors.
            extracted_files: One :class:`ExtractedFile` per attachment whose
                text could be extracted.  Entries with no text are ignored.
            all_files: Metadata for every attachment (mappings or objects
                with a ``name``), used for filename heuristics only.

        Returns:
            The derived :class:`~intentguard.core.findings.PreScanResult`.
        """
        findings: list[Finding] = []

        findings.extend(detectors.detect_risky_filenames(all_files))

        for extracted in extracted_files:
            if not extracted.text:
                continue
            for detector in self._file_detectors:
                findings.extend(
                    f.with_origin(file_name=extracted.name) for f in detector(extracted.text)
                )

        if message_text:
            for detector in self._message_detectors:
                findings.extend(
                    f.with_origin(source=MESSAGE_TEXT_SOURCE) for f in detector(message_text)
                )

        return self._derive(findings)

    def _derive(self, findings: list[Finding]) -> PreScanResult:
        if not findings:
            return CLEAN_RESULT

        confidence = max(SEVERITY_WEIGHTS.get(f.severity, 0.0) for f in findings)
        mismatch_type = classify_mismatch_type(findings)
        critical_count = sum(1 for f in findings if f.severity == "critical")
        verdict = "mismatch" if critical_count >= 1 else "signals_only"

        result = PreScanResult(
            verdict=verdict,
            confidence=confidence,
            findings=tuple(findings),
            mismatch_type=mismatch_type,
        )

        if verdict == "mismatch":
            logger.info(
                "Pre-scan: high-confidence mismatch, skipping classification: "
                "confidence=%.2f findings=%d critical=%d types=%s",
                confidence,
                len(findings),
                critical_count,
                result.finding_types,
            )
        else:
            logger.info(
                "Pre-scan: signals found, forwarding as hints: findings=%d types=%s",
                len(findings),
                result.finding_types,
            )
        return result


_DEFAULT_ENGINE = PreScanEngine()


def pre_scan(
    message_text: str | None,
    extracted_files: Iterable[ExtractedFile] = (),
    all_files: Iterable[Mapping[str, object] | object] = (),
) -> PreScanResult:
    """Module-level convenience wrapper around a default :class:`PreScanEngine`."""
    return _DEFAULT_ENGINE.scan(message_text, extracted_files, all_files)
