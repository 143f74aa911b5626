"""Unit tests for intentguard/services/recorder.py.

Coverage targets:
* build_record(): hashing, file snapshots, per-file signals, event type, no raw text.
* record(): skipped without a user, otherwise a background task held by the
  recorder until it finishes; drain() waits for pending deliveries.
* Delivery retry on 5xx, no retry on 4xx, errors never raised.
"""

from __future__ import annotations

import asyncio
import gc
import hashlib

import httpx
import pytest
from prometheus_client import REGISTRY

from intentguard.core.assessment import Assessment, FileFinding
from intentguard.core.findings import Finding
from intentguard.services.recorder import (
    EVENT_LLM_ANALYSIS,
    EVENT_PRE_SCAN_HIT,
    AssessmentRecorder,
    build_record,
    message_hash,
)
from tests.factories import make_attachment, make_event

_ENDPOINT = "https://analytics.example.com/events"


def _pre_scan_assessment() -> Assessment:
    return Assessment(
        match="mismatch",
        confidence=0.95,
        reasoning="Pre-scan detected: ssn",
        mismatch_type="pii_exposure",
        files_analyzed=(
            FileFinding(name="a.txt", method="pre-scan", classification_label="pii_document", finding="ssn"),
            FileFinding(name="b.png", method="pre-scan", classification_label="pii_document"),
        ),
        analysis_method="pre-scan",
        pre_scan_findings=(
            Finding(type="ssn", severity="critical", count=1, file_name="a.txt"),
            Finding(type="api_key", severity="critical", sample="AKIAABCD...", source="message_text"),
        ),
    )


def _event():
    return make_event(
        text="My secret plans",
        files=(make_attachment("a.txt", "text/plain", size=21), make_attachment("b.png", "image/png", size=99)),
        thread_ts="1699999999.000001",
    )


def _errors(error_type: str) -> float:
    return REGISTRY.get_sample_value("intentguard_record_errors_total", {"error_type": error_type}) or 0.0


class TestBuildRecord:
    def test_privacy_safe_fields(self) -> None:
        record = build_record(_event(), _pre_scan_assessment(), "T1")

        assert record["message_hash"] == hashlib.sha256(b"My secret plans").hexdigest()
        assert "My secret plans" not in repr(record)
        assert "reasoning" not in record["assessment"]
        assert record["workspace_id"] == "T1"
        assert record["thread_ts"] == "1699999999.000001"
        assert record["event_type"] == EVENT_PRE_SCAN_HIT

    def test_file_snapshots_and_signals(self) -> None:
        files = build_record(_event(), _pre_scan_assessment())["files"]

        assert files[0]["mimetype"] == "text/plain"
        assert files[0]["size"] == 21
        assert "finding" not in files[0]
        assert [s["type"] for s in files[0]["pre_scan_signals"]] == ["ssn", "api_key"]
        assert [s["type"] for s in files[1]["pre_scan_signals"]] == ["api_key"]

    def test_llm_event_type(self) -> None:
        assessment = Assessment(match="match", analysis_method="llm")
        assert build_record(_event(), assessment)["event_type"] == EVENT_LLM_ANALYSIS

    def test_hash_of_missing_text(self) -> None:
        assert message_hash(None) is None


class TestRecord:
    @pytest.mark.asyncio
    async def test_skips_event_without_user(self) -> None:
        recorder = AssessmentRecorder(_ENDPOINT)
        assert recorder.record(make_event(user=None), _pre_scan_assessment()) is None

    @pytest.mark.asyncio
    async def test_delivers_payload(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202)

        recorder = AssessmentRecorder(
            _ENDPOINT,
            "analytics-token",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        task = recorder.record(_event(), _pre_scan_assessment(), "T1")
        await task

        assert len(seen) == 1
        assert seen[0].headers["Authorization"] == "Bearer analytics-token"

    @pytest.mark.asyncio
    async def test_retries_5xx(self) -> None:
        responses = iter([httpx.Response(503), httpx.Response(200)])
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return next(responses)

        recorder = AssessmentRecorder(
            _ENDPOINT,
            retry_base_delay=0.0,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        before = _errors("http_error")
        await recorder.record(_event(), _pre_scan_assessment())

        assert len(calls) == 2
        assert _errors("http_error") == before + 1

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400)

        recorder = AssessmentRecorder(
            _ENDPOINT,
            retry_base_delay=0.0,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        await recorder.record(_event(), _pre_scan_assessment())
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_network_failure_is_swallowed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        recorder = AssessmentRecorder(
            _ENDPOINT,
            max_retries=2,
            retry_base_delay=0.0,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        before = _errors("network_error")
        await recorder.record(_event(), _pre_scan_assessment())
        assert _errors("network_error") == before + 3


class TestPendingDeliveries:
    @pytest.mark.asyncio
    async def test_dropped_task_stays_referenced_until_done(self) -> None:
        release = asyncio.Event()
        calls: list[httpx.Request] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            await release.wait()
            return httpx.Response(200)

        recorder = AssessmentRecorder(
            _ENDPOINT,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        recorder.record(_event(), _pre_scan_assessment())
        gc.collect()
        await asyncio.sleep(0)

        assert len(recorder.pending) == 1

        release.set()
        await recorder.drain()

        assert len(calls) == 1
        assert not recorder.pending

    @pytest.mark.asyncio
    async def test_drain_waits_through_retries(self) -> None:
        responses = iter([httpx.Response(503), httpx.Response(503), httpx.Response(200)])
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return next(responses)

        recorder = AssessmentRecorder(
            _ENDPOINT,
            retry_base_delay=0.0,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        task = recorder.record(_event(), _pre_scan_assessment())
        await recorder.drain()

        assert task.done()
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_drain_with_nothing_pending(self) -> None:
        await AssessmentRecorder(_ENDPOINT).drain()
