"""File triage and evidence retrieval.

:func:`triage` sorts a message's attachments into

* **images** sent for vision analysis (capped per message),
* **overflow images** beyond the cap, analysed from metadata only,
* **extractable** documents the extraction adapter can read, and
* **opaque** files (unsupported types, oversized images or documents).

:class:`FileRetriever` then downloads and extracts concurrently.  Every image
download and every download + extraction is its own task; one item failing
degrades only that item to ``metadata-only`` and never fails the batch.
Results are re-associated with their attachment by position in the task
list, not by completion order.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass, field
from typing import Sequence

from intentguard.core.document_extractor import DocumentExtractor
from intentguard.core.slack_client import DEFAULT_WORKSPACE, SlackAPIError, SlackClientRegistry
from intentguard.schemas.message import Attachment

logger = logging.getLogger(__name__)

IMAGE_MIME_TYPES: frozenset[str] = frozenset(
    {"image/png", "image/jpeg", "image/gif", "image/webp", "image/bmp"}
)

#: Upper bound of the vision API for base64-encoded images.
MAX_IMAGE_SIZE = 20 * 1024 * 1024
#: Each vision image costs a download and prompt tokens.
MAX_VISION_IMAGES = 5

METHOD_VISION = "vision"
METHOD_TEXT = "text-extraction"
METHOD_METADATA = "metadata-only"

NOTE_DOWNLOAD_FAILED = "image could not be downloaded"
NOTE_VISION_CAP = "vision cap reached"
NOTE_EXTRACTION_FAILED = "text extraction failed"
NOTE_UNSUPPORTED = "unsupported file type"


@dataclass(frozen=True)
class EvidenceItem:
    """What the classifier gets to see about one attachment."""

    name: str
    mimetype: str
    size: int
    method: str
    extracted_text: str | None = None
    base64_image: str | None = None
    note: str | None = None

    @classmethod
    def metadata_only(cls, attachment: Attachment, note: str) -> "EvidenceItem":
        return cls(
            name=attachment.name,
            mimetype=attachment.mimetype or attachment.filetype or "unknown",
            size=attachment.size,
            method=METHOD_METADATA,
            note=note,
        )


@dataclass
class TriageResult:
    images: list[Attachment] = field(default_factory=list)
    overflow_images: list[Attachment] = field(default_factory=list)
    extractable: list[Attachment] = field(default_factory=list)
    opaque: list[Attachment] = field(default_factory=list)


def is_image(attachment: Attachment) -> bool:
    return attachment.media_type in IMAGE_MIME_TYPES


def triage(
    attachments: Sequence[Attachment],
    extractor: DocumentExtractor,
    *,
    max_vision_images: int = MAX_VISION_IMAGES,
    max_image_size: int = MAX_IMAGE_SIZE,
) -> TriageResult:
    """Split *attachments* by how they can be analysed."""
    result = TriageResult()
    candidates: list[Attachment] = []

    for attachment in attachments:
        if is_image(attachment) and attachment.size <= max_image_size:
            candidates.append(attachment)
        elif extractor.can_extract(attachment.media_type, attachment.size):
            result.extractable.append(attachment)
        else:
            if is_image(attachment):
                logger.info(
                    "Image exceeds size limit, using metadata-only: file=%s size=%d max=%d",
                    attachment.name,
                    attachment.size,
                    max_image_size,
                )
            result.opaque.append(attachment)

    result.images = candidates[:max_vision_images]
    result.overflow_images = candidates[max_vision_images:]
    if result.overflow_images:
        logger.info(
            "Vision image cap reached, extras treated as metadata-only: overflow=%d cap=%d",
            len(result.overflow_images),
            max_vision_images,
        )
    return result


class FileRetriever:
    """Concurrent download + extraction with per-item fault isolation."""

    def __init__(
        self,
        registry: SlackClientRegistry,
        extractor: DocumentExtractor,
        *,
        extraction_timeout: float | None = None,
    ) -> None:
        self._registry = registry
        self._extractor = extractor
        self._extraction_timeout = extraction_timeout

    async def _download(self, attachment: Attachment, workspace_id: str) -> bytes:
        url = attachment.download_url
        if not url:
            raise SlackAPIError("Attachment has no download URL", method="download")
        client = self._registry.get(workspace_id)
        if client is None:
            raise SlackAPIError("No bot token available for file download", method="download")
        return await client.download(url)

    async def _fetch_image(self, attachment: Attachment, workspace_id: str) -> EvidenceItem:
        try:
            data = await self._download(attachment, workspace_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Image download failed, falling back to metadata-only: "
                "file=%s error_type=%s status=%s",
                attachment.name,
                type(exc).__name__,
                getattr(exc, "status_code", None),
            )
            return EvidenceItem.metadata_only(attachment, NOTE_DOWNLOAD_FAILED)
        return EvidenceItem(
            name=attachment.name,
            mimetype=attachment.media_type,
            size=attachment.size,
            method=METHOD_VISION,
            base64_image=base64.b64encode(data).decode("ascii"),
        )

    async def _fetch_text(self, attachment: Attachment, workspace_id: str) -> EvidenceItem:
        try:
            data = await self._download(attachment, workspace_id)
            text = await self._extractor.extract_text(
                data, attachment.media_type, timeout=self._extraction_timeout
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "File extraction failed, falling back to metadata-only: "
                "file=%s error_type=%s status=%s",
                attachment.name,
                type(exc).__name__,
                getattr(exc, "status_code", None),
            )
            return EvidenceItem.metadata_only(attachment, NOTE_EXTRACTION_FAILED)
        if not text:
            return EvidenceItem.metadata_only(attachment, NOTE_EXTRACTION_FAILED)
        return EvidenceItem(
            name=attachment.name,
            mimetype=attachment.media_type,
            size=attachment.size,
            method=METHOD_TEXT,
            extracted_text=text,
        )

    async def retrieve(
        self,
        triaged: TriageResult,
        workspace_id: str = DEFAULT_WORKSPACE,
    ) -> list[EvidenceItem]:
        """Build the evidence bundle for *triaged*.

        Order: vision candidates, overflow images, extractable documents,
        opaque files.
        """
        fetch_targets: list[tuple[Attachment, str]] = [
            (attachment, METHOD_VISION) for attachment in triaged.images
        ] + [(attachment, METHOD_TEXT) for attachment in triaged.extractable]

        tasks = [
            self._fetch_image(attachment, workspace_id)
            if kind == METHOD_VISION
            else self._fetch_text(attachment, workspace_id)
            for attachment, kind in fetch_targets
        ]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        fetched: dict[int, EvidenceItem] = {}
        for index, ((attachment, kind), outcome) in enumerate(zip(fetch_targets, outcomes)):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "Evidence task failed unexpectedly: file=%s error=%r",
                    attachment.name,
                    outcome,
                )
                note = NOTE_DOWNLOAD_FAILED if kind == METHOD_VISION else NOTE_EXTRACTION_FAILED
                fetched[index] = EvidenceItem.metadata_only(attachment, note)
            else:
                fetched[index] = outcome

        image_count = len(triaged.images)
        evidence = [fetched[i] for i in range(image_count)]
        evidence.extend(
            EvidenceItem.metadata_only(attachment, NOTE_VISION_CAP)
            for attachment in triaged.overflow_images
        )
        evidence.extend(fetched[i] for i in range(image_count, len(fetch_targets)))
        evidence.extend(
            EvidenceItem.metadata_only(attachment, NOTE_UNSUPPORTED)
            for attachment in triaged.opaque
        )
        return evidence
