"""AssessmentRecorder — privacy-safe analytics delivery.

Builds one record per finished assessment and posts it to an analytics
endpoint in the background, so that recording never delays or fails the
assessment itself.

The record is built **synchronously** when :meth:`AssessmentRecorder.record`
is called: the message hash and the attachment snapshots are taken from the
event before any await.  It never contains message text, reasoning, per-file
findings or download URLs.

Retry policy
------------
On a transient failure (network error or HTTP 408/429/5xx) delivery is
retried up to ``max_retries`` times::

    delay = base_delay * (2 ** attempt) + random_jitter(0, 0.5)

Each failed attempt increments ``intentguard_record_errors_total``.  Failures
are logged at WARNING level and suppressed.

Usage::

    recorder = AssessmentRecorder("https://analytics.example.com/evaluations")
    recorder.record(event, assessment, workspace_id="T0123")
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import random
from typing import Any

import httpx
from prometheus_client import Counter

from intentguard.core.assessment import ANALYSIS_PRE_SCAN, Assessment
from intentguard.core.slack_client import DEFAULT_WORKSPACE
from intentguard.schemas.message import MessageEvent

logger = logging.getLogger(__name__)

#: Labels: ``error_type`` ("http_error" | "network_error" | "unknown").
record_errors_total = Counter(
    "intentguard_record_errors_total",
    "Total number of failed assessment record delivery attempts",
    ["error_type"],
)

EVENT_PRE_SCAN_HIT = "pre_scan_hit"
EVENT_LLM_ANALYSIS = "llm_analysis"

_HTTP_TIMEOUT = 10.0

_RETRYABLE_HTTP_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


def message_hash(text: str | None) -> str | None:
    """SHA-256 hex digest of the message text, or ``None`` for no text."""
    if not text:
        return None
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def build_record(
    event: MessageEvent,
    assessment: Assessment,
    workspace_id: str = DEFAULT_WORKSPACE,
) -> dict[str, Any]:
    """Construct the analytics payload for one assessment.

    Each analysed file carries the attachment snapshot (mimetype and size)
    matched by name, and the pre-scan findings attributed to that file or to
    no file at all (message-text signals).
    """
    snapshots = {attachment.name: attachment.metadata() for attachment in event.files}
    summary = assessment.to_record()

    files = []
    for analysed in summary["files_analyzed"]:
        snapshot = snapshots.get(analysed["name"], {})
        signals = [
            f.to_dict()
            for f in assessment.pre_scan_findings
            if f.file_name is None or f.file_name == analysed["name"]
        ]
        files.append(
            {
                **analysed,
                "mimetype": snapshot.get("mimetype"),
                "size": snapshot.get("size", 0),
                "pre_scan_signals": signals or None,
            }
        )

    event_type = (
        EVENT_PRE_SCAN_HIT if assessment.analysis_method == ANALYSIS_PRE_SCAN else EVENT_LLM_ANALYSIS
    )

    return {
        "workspace_id": workspace_id,
        "user": event.user,
        "channel": event.channel,
        "ts": event.ts,
        "thread_ts": event.thread_ts,
        "client_msg_id": event.client_msg_id,
        "message_hash": message_hash(event.text),
        "assessment": summary,
        "files": files,
        "event_type": event_type,
    }


class AssessmentRecorder:
    """Fire-and-forget delivery of assessment records.

    Args:
        endpoint: URL receiving the JSON records.
        token: Optional bearer token.
        max_retries: Additional attempts after a transient failure.
        retry_base_delay: Base delay in seconds for exponential back-off.
        http_client: Optional shared :class:`httpx.AsyncClient`.
    """

    def __init__(
        self,
        endpoint: str,
        token: str | None = None,
        *,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._token = token
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._http_client = http_client
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> frozenset[asyncio.Task[None]]:
        """Deliveries scheduled and not yet finished."""
        return frozenset(self._pending)

    def record(
        self,
        event: MessageEvent,
        assessment: Assessment,
        workspace_id: str = DEFAULT_WORKSPACE,
    ) -> asyncio.Task[None] | None:
        """Schedule delivery of the record for *assessment*.

        Returns the delivery task, or ``None`` when the event has no user
        (e.g. edits triggered by file deletion) and nothing is recorded.
        The recorder holds a reference to the task until it completes, so
        callers may drop the return value.
        """
        if not event.user:
            logger.debug(
                "Skipping assessment record, no user on event: channel=%s ts=%s",
                event.channel,
                event.ts,
            )
            return None
        payload = build_record(event, assessment, workspace_id)
        task = asyncio.create_task(self._deliver_with_retry(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish.  Call on shutdown."""
        while self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _deliver_with_retry(self, payload: dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        attempts = self._max_retries + 1
        for attempt in range(attempts):
            try:
                await self._post(payload, headers)
                logger.info(
                    "Assessment record delivered: channel=%s ts=%s event_type=%s attempt=%d",
                    payload["channel"],
                    payload["ts"],
                    payload["event_type"],
                    attempt,
                )
                return
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                record_errors_total.labels(error_type="http_error").inc()
                if status_code not in _RETRYABLE_HTTP_STATUSES:
                    logger.warning(
                        "Assessment record rejected (HTTP %d, non-retryable): channel=%s ts=%s",
                        status_code,
                        payload["channel"],
                        payload["ts"],
                    )
                    return
                logger.warning(
                    "Assessment record delivery failed (HTTP %d): attempt=%d/%d",
                    status_code,
                    attempt + 1,
                    attempts,
                )
            except httpx.RequestError as exc:
                record_errors_total.labels(error_type="network_error").inc()
                logger.warning(
                    "Assessment record network error: attempt=%d/%d error=%s",
                    attempt + 1,
                    attempts,
                    type(exc).__name__,
                )
            except Exception as exc:  # noqa: BLE001
                record_errors_total.labels(error_type="unknown").inc()
                logger.warning(
                    "Unexpected assessment record error: attempt=%d/%d error=%s",
                    attempt + 1,
                    attempts,
                    type(exc).__name__,
                )

            if attempt < self._max_retries:
                await asyncio.sleep(_backoff_delay(self._retry_base_delay, attempt))

        logger.warning(
            "Assessment record delivery exhausted all %d attempts: channel=%s ts=%s",
            attempts,
            payload["channel"],
            payload["ts"],
        )

    async def _post(self, payload: dict[str, Any], headers: dict[str, str]) -> None:
        if self._http_client is not None:
            response = await self._http_client.post(
                self._endpoint, json=payload, headers=headers, timeout=_HTTP_TIMEOUT
            )
            response.raise_for_status()
        else:
            async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT) as client:
                response = await client.post(self._endpoint, json=payload, headers=headers)
                response.raise_for_status()


def _backoff_delay(base: float, attempt: int) -> float:
    """Formula: ``base * 2**attempt + uniform(0, 0.5)``."""
    if base <= 0:
        return 0.0
    return base * (2**attempt) + random.uniform(0, 0.5)  # noqa: S311
