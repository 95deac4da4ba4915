"""Domain models for stored chunks, search results and document listings."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

RECORD_TYPE = "DocumentChunk"


def to_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_unix_timestamp(value: datetime) -> float:
    return to_utc(value).timestamp()


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The payload key to filter on (e.g. ``"url"``, ``"domain"``).
    operator:
        Comparison operator, one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    # -- helpers for common filters ------------------------------------------

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def at_least(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="gte", value=value)

    @classmethod
    def at_most(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="lte", value=value)


class ChunkPayload(BaseModel):
    """Metadata stored alongside every chunk vector.

    Document-level attributes (title, domain, timestamp...) are repeated on
    every chunk so any single hit can be rendered without a second lookup.
    ``timestamp_unix`` mirrors ``timestamp`` as a number because range
    filters only work on numeric payload values.
    """

    record_type: Literal["DocumentChunk"]
    url: str
    title: str
    domain: str
    timestamp: datetime
    timestamp_unix: float
    content_type: str
    word_count: int
    has_code: bool
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    start_position: int = 0
    end_position: int = 0
    is_code_block: bool = False
    page_number: int | None = None
    paragraph_index: int | None = None

    def to_metadata(self) -> dict[str, Any]:
        """Flatten to a store-friendly dict (scalars only, no ``None``)."""
        data = self.model_dump(mode="json", exclude_none=True)
        data["timestamp"] = to_utc(self.timestamp).isoformat()
        return data


class StoredRecord(BaseModel):
    """One chunk as persisted in the vector store.

    ``vector`` is ``None`` for records read back by a scroll, which does not
    return embeddings.
    """

    id: str
    vector: list[float] | None = None
    content: str
    payload: dict[str, Any] = Field(default_factory=dict)


class SearchFilters(BaseModel):
    """Optional constraints ANDed onto a similarity query."""

    domain: str | None = None
    has_code: bool | None = None
    after: datetime | None = None
    before: datetime | None = None

    model_config = {"extra": "forbid"}


class SearchOptions(BaseModel):
    limit: int = Field(default=5, ge=1, le=20)
    score_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    filters: SearchFilters = Field(default_factory=SearchFilters)


class ScoredResult(BaseModel):
    """A chunk returned by a similarity query.

    ``score`` is normalised to ``[0, 1]`` (1 = identical direction).
    """

    id: str
    score: float
    content: str
    snippet: str
    metadata: ChunkPayload

    @property
    def url(self) -> str:
        return self.metadata.url

    @property
    def title(self) -> str:
        return self.metadata.title

    @property
    def domain(self) -> str:
        return self.metadata.domain

    @property
    def timestamp(self) -> datetime:
        return self.metadata.timestamp


class DocumentSummary(BaseModel):
    """Document-level view built from a canonical (``chunk_index == 0``) record."""

    url: str
    title: str
    domain: str
    timestamp: datetime
    content_type: str
    word_count: int
    has_code: bool
    total_chunks: int

    @classmethod
    def from_payload(cls, payload: ChunkPayload) -> DocumentSummary:
        return cls(
            url=payload.url,
            title=payload.title,
            domain=payload.domain,
            timestamp=payload.timestamp,
            content_type=payload.content_type,
            word_count=payload.word_count,
            has_code=payload.has_code,
            total_chunks=payload.total_chunks,
        )


class DocumentGroup(BaseModel):
    """Documents sharing a domain; ``domain`` is ``None`` when ungrouped."""

    domain: str | None = None
    documents: list[DocumentSummary] = Field(default_factory=list)


class PaginationDetails(BaseModel):
    page: int
    offset: int
    limit: int
    total_pages: int


class ListResult(BaseModel):
    total: int
    page: int
    page_size: int
    total_pages: int
    groups: list[DocumentGroup] = Field(default_factory=list)

    @property
    def documents(self) -> list[DocumentSummary]:
        return [doc for group in self.groups for doc in group.documents]
