"""Unit tests for intentguard/core/triage.py.

Coverage targets:
* triage(): image vs extractable vs opaque split, vision cap, image size limit.
* FileRetriever.retrieve(): evidence ordering, per-item fault isolation,
  metadata-only fallbacks with notes.
* Failure warnings carry the error type and status, never URLs.
"""

from __future__ import annotations

import base64
import logging
from unittest.mock import AsyncMock

import pytest

from intentguard.core.document_extractor import DocumentExtractor
from intentguard.core.slack_client import DEFAULT_WORKSPACE, SlackAPIError, SlackClientRegistry
from intentguard.core.triage import (
    METHOD_METADATA,
    METHOD_TEXT,
    METHOD_VISION,
    NOTE_DOWNLOAD_FAILED,
    NOTE_EXTRACTION_FAILED,
    NOTE_UNSUPPORTED,
    NOTE_VISION_CAP,
    FileRetriever,
    triage,
)
from tests.factories import make_attachment, make_fake_slack_client

_URL = "https://files.example.com/{}"


def _registry(files: dict[str, bytes]) -> SlackClientRegistry:
    registry = SlackClientRegistry()
    registry.register_client(DEFAULT_WORKSPACE, make_fake_slack_client(files=files))
    return registry


class TestTriage:
    def test_split(self, extractor: DocumentExtractor) -> None:
        files = [
            make_attachment("a.png", "image/png"),
            make_attachment("b.csv", "text/csv"),
            make_attachment("c.zip", "application/zip"),
        ]
        result = triage(files, extractor)
        assert [a.name for a in result.images] == ["a.png"]
        assert [a.name for a in result.extractable] == ["b.csv"]
        assert [a.name for a in result.opaque] == ["c.zip"]
        assert result.overflow_images == []

    def test_vision_cap(self, extractor: DocumentExtractor) -> None:
        files = [make_attachment(f"{i}.png", "image/png") for i in range(7)]
        result = triage(files, extractor, max_vision_images=5)
        assert len(result.images) == 5
        assert [a.name for a in result.overflow_images] == ["5.png", "6.png"]

    def test_oversized_image_is_opaque(self, extractor: DocumentExtractor) -> None:
        files = [make_attachment("huge.jpg", "image/jpeg", size=30 * 1024 * 1024)]
        result = triage(files, extractor)
        assert result.images == []
        assert [a.name for a in result.opaque] == ["huge.jpg"]


class TestRetrieve:
    @pytest.mark.asyncio
    async def test_one_of_three_image_downloads_fails(self, extractor: DocumentExtractor) -> None:
        files = [make_attachment(f"{n}.png", "image/png") for n in ("a", "b", "c")]
        registry = _registry({_URL.format("a.png"): b"A", _URL.format("c.png"): b"C"})
        evidence = await FileRetriever(registry, extractor).retrieve(triage(files, extractor))

        assert [item.method for item in evidence] == [METHOD_VISION, METHOD_METADATA, METHOD_VISION]
        assert evidence[1].name == "b.png"
        assert evidence[1].note == NOTE_DOWNLOAD_FAILED
        assert evidence[0].base64_image == base64.b64encode(b"A").decode("ascii")

    @pytest.mark.asyncio
    async def test_order_and_fallbacks(self, extractor: DocumentExtractor) -> None:
        files = [
            make_attachment("doc.txt", "text/plain"),
            make_attachment("arch.zip", "application/zip"),
            make_attachment("1.png", "image/png"),
            make_attachment("2.png", "image/png"),
            make_attachment("broken.txt", "text/plain"),
        ]
        registry = _registry(
            {
                _URL.format("doc.txt"): b"hello",
                _URL.format("1.png"): b"1",
                _URL.format("2.png"): b"2",
            }
        )
        triaged = triage(files, extractor, max_vision_images=1)
        evidence = await FileRetriever(registry, extractor).retrieve(triaged)

        assert [(item.name, item.method, item.note) for item in evidence] == [
            ("1.png", METHOD_VISION, None),
            ("2.png", METHOD_METADATA, NOTE_VISION_CAP),
            ("doc.txt", METHOD_TEXT, None),
            ("broken.txt", METHOD_METADATA, NOTE_EXTRACTION_FAILED),
            ("arch.zip", METHOD_METADATA, NOTE_UNSUPPORTED),
        ]
        assert evidence[2].extracted_text == "hello"

    @pytest.mark.asyncio
    async def test_unreadable_text_falls_back(self, extractor: DocumentExtractor) -> None:
        files = [make_attachment("empty.txt", "text/plain")]
        registry = _registry({_URL.format("empty.txt"): b"   "})
        evidence = await FileRetriever(registry, extractor).retrieve(triage(files, extractor))
        assert evidence[0].method == METHOD_METADATA
        assert evidence[0].note == NOTE_EXTRACTION_FAILED

    @pytest.mark.asyncio
    async def test_no_client_degrades_every_item(self, extractor: DocumentExtractor) -> None:
        files = [make_attachment("a.png", "image/png"), make_attachment("b.txt", "text/plain")]
        evidence = await FileRetriever(SlackClientRegistry(), extractor).retrieve(
            triage(files, extractor)
        )
        assert [item.method for item in evidence] == [METHOD_METADATA, METHOD_METADATA]

    @pytest.mark.asyncio
    async def test_extractor_exception_is_isolated(self, extractor: DocumentExtractor) -> None:
        files = [make_attachment("a.txt", "text/plain"), make_attachment("b.txt", "text/plain")]
        registry = _registry({_URL.format("a.txt"): b"alpha", _URL.format("b.txt"): b"beta"})
        extractor.extract_text = AsyncMock(side_effect=[RuntimeError("crash"), "beta"])
        evidence = await FileRetriever(registry, extractor).retrieve(triage(files, extractor))
        assert [item.method for item in evidence] == [METHOD_METADATA, METHOD_TEXT]

    @pytest.mark.asyncio
    async def test_failure_log_omits_urls(
        self, extractor: DocumentExtractor, caplog: pytest.LogCaptureFixture
    ) -> None:
        client = make_fake_slack_client()
        client.download = AsyncMock(
            side_effect=SlackAPIError(
                "Download failed for https://files.example.com/secret.png?t=abc",
                method="download",
                status_code=403,
            )
        )
        registry = SlackClientRegistry()
        registry.register_client(DEFAULT_WORKSPACE, client)
        files = [make_attachment("secret.png", "image/png"), make_attachment("notes.txt", "text/plain")]

        with caplog.at_level(logging.WARNING, logger="intentguard.core.triage"):
            await FileRetriever(registry, extractor).retrieve(triage(files, extractor))

        assert "files.example.com" not in caplog.text
        assert "error_type=SlackAPIError status=403" in caplog.text
