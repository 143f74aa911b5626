"""RiskEngine — orchestration of one message assessment with OpenTelemetry instrumentation.

:meth:`RiskEngine.analyze` runs these stages in order:

1. **preflight**  — skip policy applied before any I/O (:func:`preflight_skip_reason`)
2. **retrieve**   — channel context resolution and evidence retrieval, concurrently
3. **pre_scan**   — heuristic scan of extracted text, message text and file names
4. **classify**   — one classification service call, unless the pre-scan was conclusive

The root span is ``intentguard.analyze``; each stage opens a child span
``intentguard.<stage>``.

**Never-raise contract**: every call returns an
:class:`~intentguard.core.assessment.Assessment`.  Any exception from a stage
is recorded on the root span and converted to an ``uncertain`` assessment
carrying the error message.  Once the assessment is final the optional
:class:`~intentguard.services.recorder.AssessmentRecorder` is scheduled as a
background task.

Usage::

    engine = build_engine(get_settings())
    assessment = await engine.analyze(MessageEvent.model_validate(payload), workspace_id="T0123")
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import Counter as _Tally
from dataclasses import dataclass
from typing import Sequence

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from prometheus_client import Counter

from intentguard.config import Settings, configure_logging
from intentguard.core.assessment import Assessment
from intentguard.core.channel_context import ChannelContextResolver, compute_context_risk
from intentguard.core.classifier import (
    ClassificationClient,
    ClassificationServiceError,
    parse_classification,
)
from intentguard.core.document_extractor import DocumentExtractor
from intentguard.core.findings import Finding
from intentguard.core.pre_scan import ExtractedFile, PreScanEngine
from intentguard.core.prompt import build_messages
from intentguard.core.slack_client import DEFAULT_WORKSPACE, SlackClientRegistry
from intentguard.core.triage import METHOD_TEXT, EvidenceItem, FileRetriever, triage
from intentguard.schemas.message import MessageEvent
from intentguard.services.recorder import AssessmentRecorder

logger = logging.getLogger(__name__)

tracer = trace.get_tracer(
    "intentguard.risk_engine",
    schema_url="https://opentelemetry.io/schemas/1.11.0",
)

assessments_total = Counter(
    "intentguard_assessments_total",
    "Total number of completed message assessments",
    ["match", "analysis_method"],
)

#: Event subtypes that never describe a fresh share.  ``file_share`` is allowed.
SKIP_SUBTYPES: frozenset[str] = frozenset(
    {
        "message_changed",
        "message_deleted",
        "message_replied",
        "bot_message",
        "channel_join",
        "channel_leave",
        "channel_topic",
        "channel_purpose",
        "channel_name",
    }
)

REASON_NO_TEXT = "No message text to analyze intent from"
REASON_LINKS_ONLY = "Message contains only URLs, no intent text"
REASON_NO_FILES = "No files attached to message"
REASON_NOT_CONFIGURED = "OPENAI_API_KEY not configured"

_SLACK_LINK_RE = re.compile(r"<https?://[^>|]+(?:\|[^>]+)?>")
_BARE_URL_RE = re.compile(r"https?://\S+")


def is_link_only(text: str) -> bool:
    """True when nothing but links (and whitespace) remains in *text*."""
    remainder = _BARE_URL_RE.sub("", _SLACK_LINK_RE.sub("", text))
    return not remainder.strip()


def preflight_skip_reason(event: MessageEvent, classification_enabled: bool) -> str | None:
    """Return why *event* should not be analysed, or ``None`` to proceed."""
    if event.subtype in SKIP_SUBTYPES:
        return f'Message subtype "{event.subtype}" skipped'
    text = event.text or ""
    if not text.strip():
        return REASON_NO_TEXT
    if is_link_only(text):
        return REASON_LINKS_ONLY
    if not event.files:
        return REASON_NO_FILES
    if not classification_enabled:
        return REASON_NOT_CONFIGURED
    return None


def normalize_response(
    raw_json: str,
    evidence: Sequence[EvidenceItem],
    hints: Sequence[Finding] = (),
) -> Assessment:
    """Validate the service's JSON and merge it with the evidence bundle.

    Raises:
        ClassificationServiceError: If *raw_json* is empty or unparseable.
    """
    return Assessment.from_classification(parse_classification(raw_json), evidence, hints)


@dataclass(frozen=True)
class ChannelPolicy:
    """Per-channel allow/deny lists, applied by callers before :meth:`RiskEngine.analyze`.

    A denied channel is never analysed.  A non-empty allow list restricts
    analysis to the listed channels.
    """

    allow: frozenset[str] = frozenset()
    deny: frozenset[str] = frozenset()

    def allows(self, channel: str) -> bool:
        if channel in self.deny:
            return False
        if self.allow:
            return channel in self.allow
        return True


class RiskEngine:
    """Message assessment orchestrator.

    Holds only read-only configuration and injected collaborators; concurrent
    :meth:`analyze` calls share nothing mutable.

    Args:
        settings: Application settings (limits, prompt policy).
        registry: Per-workspace messaging platform clients.
        extractor: Text extraction adapter.
        classifier: Classification service client.  ``None`` means the
            classification stage is not configured and every message is
            skipped.
        pre_scan_engine: Heuristic scanner; defaults to :class:`PreScanEngine`.
        recorder: Optional analytics recorder.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        registry: SlackClientRegistry,
        extractor: DocumentExtractor,
        classifier: ClassificationClient | None = None,
        pre_scan_engine: PreScanEngine | None = None,
        recorder: AssessmentRecorder | None = None,
    ) -> None:
        self._settings = settings
        self._extractor = extractor
        self._classifier = classifier
        self._pre_scan = pre_scan_engine or PreScanEngine()
        self._recorder = recorder
        self._resolver = ChannelContextResolver(registry)
        self._retriever = FileRetriever(
            registry,
            extractor,
            extraction_timeout=settings.extraction_timeout_seconds,
        )

    async def __aenter__(self) -> "RiskEngine":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Wait for pending assessment records, then shut down the extractor pool."""
        if self._recorder is not None:
            await self._recorder.drain()
        self._extractor.shutdown()

    async def analyze(
        self,
        event: MessageEvent,
        workspace_id: str = DEFAULT_WORKSPACE,
    ) -> Assessment:
        """Assess *event*.  Never raises."""
        with tracer.start_as_current_span("intentguard.analyze") as span:
            span.set_attribute("message.channel", event.channel)
            span.set_attribute("message.file_count", len(event.files))
            span.set_attribute("workspace.id", workspace_id)

            reason = preflight_skip_reason(event, self._classifier is not None)
            if reason is not None:
                logger.info(
                    "Assessment skipped: channel=%s ts=%s reason=%s",
                    event.channel,
                    event.ts,
                    reason,
                )
                span.set_attribute("assessment.match", "skipped")
                assessments_total.labels(match="skipped", analysis_method="none").inc()
                return Assessment.skipped(reason)

            try:
                assessment = await self._assess(event, workspace_id)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Assessment failed: channel=%s ts=%s error_type=%s",
                    event.channel,
                    event.ts,
                    type(exc).__name__,
                )
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, type(exc).__name__))
                assessment = Assessment.from_error(exc)

            span.set_attribute("assessment.match", assessment.match)
            span.set_attribute("assessment.confidence", assessment.confidence)
            span.set_attribute("assessment.analysis_method", assessment.analysis_method or "none")
            assessments_total.labels(
                match=assessment.match,
                analysis_method=assessment.analysis_method or "none",
            ).inc()
            logger.info(
                "Assessment complete: channel=%s user=%s ts=%s match=%s confidence=%.2f "
                "mismatch_type=%s context_risk=%s method=%s files=%d",
                event.channel,
                event.user,
                event.ts,
                assessment.match,
                assessment.confidence,
                assessment.mismatch_type,
                assessment.context_risk,
                assessment.analysis_method,
                len(assessment.files_analyzed),
            )

            if self._recorder is not None:
                self._recorder.record(event, assessment, workspace_id)
            return assessment

    async def _assess(self, event: MessageEvent, workspace_id: str) -> Assessment:
        triaged = triage(
            event.files,
            self._extractor,
            max_vision_images=self._settings.max_vision_images,
            max_image_size=self._settings.max_image_size_bytes,
        )

        with tracer.start_as_current_span("intentguard.retrieve") as span:
            context, evidence = await asyncio.gather(
                self._resolver.resolve(event.channel, workspace_id),
                self._retriever.retrieve(triaged, workspace_id),
            )
            methods = _Tally(item.method for item in evidence)
            for method, count in methods.items():
                span.set_attribute(f"evidence.{method}", count)
            span.set_attribute("channel.type", context.channel_type)

        with tracer.start_as_current_span("intentguard.pre_scan") as span:
            extracted = [
                ExtractedFile(name=item.name, text=item.extracted_text, mimetype=item.mimetype)
                for item in evidence
                if item.method == METHOD_TEXT
            ]
            result = self._pre_scan.scan(event.text, extracted, event.files)
            span.set_attribute("pre_scan.verdict", result.verdict)
            span.set_attribute("pre_scan.findings_count", len(result.findings))

        if result.is_short_circuit:
            return Assessment.from_pre_scan(result, evidence, compute_context_risk(context))

        hints = result.findings if result.verdict == "signals_only" else ()
        messages = build_messages(
            event.text or "",
            evidence,
            context,
            strict_audience_blocking=self._settings.strict_audience_blocking,
            hints=hints,
            hint_policy=self._settings.hint_policy,
        )

        if self._classifier is None:
            raise ClassificationServiceError("Classification service not configured")
        with tracer.start_as_current_span("intentguard.classify") as span:
            span.set_attribute("classify.hint_count", len(hints))
            content = await self._classifier.classify(messages)
            return normalize_response(content, evidence, hints)


def build_engine(settings: Settings) -> RiskEngine:
    """Wire a :class:`RiskEngine` from *settings*.

    The default workspace is registered with ``slack_bot_token`` when set.
    The classifier is only built when an API key is configured, and the
    recorder only when an analytics endpoint is.  Logging is configured
    from ``settings.debug``.  The engine owns the extractor thread pool;
    release it with :meth:`RiskEngine.aclose` or ``async with``.
    """
    configure_logging(settings.debug)
    registry = SlackClientRegistry(
        base_url=settings.slack_api_base_url,
        timeout=settings.slack_timeout_seconds,
    )
    if settings.slack_bot_token:
        registry.register_token(DEFAULT_WORKSPACE, settings.slack_bot_token)

    extractor = DocumentExtractor(
        max_workers=settings.extractor_max_workers,
        timeout=settings.extraction_timeout_seconds,
        max_chars=settings.max_extracted_chars,
        max_file_size=settings.max_file_size_bytes,
    )

    classifier = None
    if settings.classification_enabled:
        classifier = ClassificationClient(
            settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.classification_model,
            timeout=settings.classification_timeout_seconds,
            max_retries=settings.classification_max_retries,
            retry_base_delay=settings.classification_retry_base_delay,
        )

    recorder = None
    if settings.analytics_endpoint:
        recorder = AssessmentRecorder(settings.analytics_endpoint, settings.analytics_token)

    logger.info(
        "IntentGuard engine built: environment=%s classification=%s analytics=%s",
        settings.environment,
        classifier is not None,
        recorder is not None,
    )

    return RiskEngine(
        settings=settings,
        registry=registry,
        extractor=extractor,
        classifier=classifier,
        recorder=recorder,
    )
