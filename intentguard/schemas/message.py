"""Pydantic schemas for inbound message events.

Both models are frozen: the risk engine works on a read-only snapshot of the
message for the whole assessment, and no collaborator can mutate it while
downloads and extractions are in flight.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Attachment(BaseModel):
    """A file attached to a message, as described by the messaging platform."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str | None = Field(None, description="Platform file identifier")
    name: str = Field("", description="File name as uploaded")
    mimetype: str | None = Field(None, description="Reported MIME type")
    filetype: str | None = Field(None, description="Platform short file type, e.g. 'pdf'")
    size: int = Field(0, ge=0, description="Size in bytes")
    url_private: str | None = Field(None, description="Authenticated download URL")
    url_private_download: str | None = Field(
        None,
        description="Authenticated download URL forcing attachment disposition",
    )

    @property
    def media_type(self) -> str:
        """MIME type without parameters, lower-cased; empty when unknown."""
        return (self.mimetype or "").split(";")[0].strip().lower()

    @property
    def download_url(self) -> str | None:
        return self.url_private_download or self.url_private

    def metadata(self) -> dict[str, object]:
        """Privacy-safe metadata snapshot (no URLs)."""
        return {
            "name": self.name,
            "mimetype": self.mimetype or self.filetype,
            "size": self.size,
        }


class MessageEvent(BaseModel):
    """One inbound message, possibly carrying attachments."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    text: str | None = Field(None, description="Message text (the stated intent)")
    files: tuple[Attachment, ...] = Field(default_factory=tuple, description="Attachments")
    channel: str = Field(..., description="Channel identifier")
    user: str | None = Field(None, description="Sender identifier")
    ts: str | None = Field(None, description="Message timestamp")
    thread_ts: str | None = Field(None, description="Parent thread timestamp, if threaded")
    subtype: str | None = Field(None, description="Platform message subtype")
    client_msg_id: str | None = Field(None, description="Client-side message identifier")
