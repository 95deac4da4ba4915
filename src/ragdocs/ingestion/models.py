"""Data models exchanged between loaders and the ingestion path."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExtractedContent(BaseModel):
    """Plain text pulled out of a web page, file or caller-supplied string.

    Attributes
    ----------
    source:
        URL or file path the content came from; becomes the document url.
    title:
        Page title, first heading or file name.
    content:
        Normalised plain text handed to the chunker.
    timestamp:
        Fetch time, or the file's modification time.
    content_type:
        MIME type of the source (``text/html``, ``application/pdf`` ...).
    word_count:
        Whitespace-separated token count of ``content``.
    has_code:
        Whether the source looked like it contained code.
    pages:
        Per-page text for paginated sources (PDF), else ``None``.
    """

    source: str
    title: str
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    content_type: str = "text/plain"
    word_count: int = 0
    has_code: bool = False
    pages: list[str] | None = None


class DocumentMetadata(BaseModel):
    """Optional caller-supplied attributes for :meth:`DocumentIngestor.add_document`.

    Anything left unset is derived from the url and content.
    """

    title: str | None = None
    timestamp: datetime | None = None
    content_type: str = "text/plain"
    has_code: bool | None = None


class IngestionResult(BaseModel):
    url: str
    title: str
    domain: str
    total_chunks: int
    batches: int
    vector_size: int
