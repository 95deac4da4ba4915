"""Document listing: one entry per document, sorted, paginated, grouped."""

from __future__ import annotations

import logging
import math
import unicodedata
from typing import Literal

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ragdocs.errors import StoreError, ValidationError
from ragdocs.retrieval.base import VectorStoreBase
from ragdocs.retrieval.models import (
    ChunkPayload,
    DocumentGroup,
    DocumentSummary,
    ListResult,
    MetadataFilter,
    PaginationDetails,
    to_unix_timestamp,
)

logger = logging.getLogger(__name__)

SortField = Literal["timestamp", "title", "domain"]
SortOrder = Literal["asc", "desc"]

SCROLL_BATCH = 256


class ListOptions(BaseModel):
    page: int = 1
    page_size: int = Field(default=20, ge=1, le=100)
    sort_by: SortField = "timestamp"
    sort_order: SortOrder = "desc"
    group_by_domain: bool = False
    domain: str | None = None


def get_pagination_details(total: int, page: int = 1, page_size: int = 20) -> PaginationDetails:
    """Clamp *page* into range and compute the slice offset.

    An empty result has zero pages; the page is reported as 1 with offset 0.
    """
    total_pages = math.ceil(total / page_size)
    current = min(max(1, page), total_pages) if total_pages else 1
    return PaginationDetails(
        page=current,
        offset=(current - 1) * page_size,
        limit=page_size,
        total_pages=total_pages,
    )


def collation_key(value: str) -> tuple[str, str]:
    """Locale-aware sort key: accents are ignored first, case last.

    ``"Éclair"`` sorts between ``"apple"`` and ``"Zebra"``; strings equal
    after folding fall back to their casefolded form.
    """
    decomposed = unicodedata.normalize("NFKD", value)
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return base.casefold(), value.casefold()


def sort_documents(
    documents: list[DocumentSummary],
    sort_by: SortField = "timestamp",
    sort_order: SortOrder = "desc",
) -> list[DocumentSummary]:
    """Return a stably sorted copy of *documents*.

    Titles and domains compare with :func:`collation_key`; timestamps compare as
    instants, so differing UTC offsets sort correctly.
    """
    if sort_by == "timestamp":
        key = lambda doc: to_unix_timestamp(doc.timestamp)  # noqa: E731
    elif sort_by == "title":
        key = lambda doc: collation_key(doc.title)  # noqa: E731
    elif sort_by == "domain":
        key = lambda doc: collation_key(doc.domain)  # noqa: E731
    else:
        raise ValidationError(f"Unsupported sort field {sort_by!r}", field="sort_by")
    return sorted(documents, key=key, reverse=sort_order == "desc")


def group_by_domain(documents: list[DocumentSummary]) -> list[DocumentGroup]:
    """Group *documents* by domain, groups in first-seen order."""
    grouped: dict[str, list[DocumentSummary]] = {}
    for doc in documents:
        grouped.setdefault(doc.domain, []).append(doc)
    return [DocumentGroup(domain=domain, documents=docs) for domain, docs in grouped.items()]


def format_list_as_markdown(result: ListResult) -> str:
    """Render a :class:`ListResult` as a Markdown document list."""
    lines = [
        "# Documentation List",
        f"Page {result.page} of {result.total_pages} ({result.total} total documents)\n",
    ]
    for group in result.groups:
        if group.domain:
            lines.append(f"## {group.domain}")
        for doc in group.documents:
            lines.append(f"- [{doc.title}]({doc.url})")
            lines.append(f"  - Added: {doc.timestamp.date().isoformat()}")
            lines.append(f"  - Type: {doc.content_type}")
            lines.append(f"  - Words: {doc.word_count}")
            if doc.has_code:
                lines.append("  - Contains code snippets")
            lines.append("")
    return "\n".join(lines)


def _paginate(documents: list[DocumentSummary], options: ListOptions) -> ListResult:
    ordered = sort_documents(documents, options.sort_by, options.sort_order)
    details = get_pagination_details(len(ordered), options.page, options.page_size)
    page = ordered[details.offset : details.offset + details.limit]
    if options.group_by_domain:
        groups = group_by_domain(page)
    else:
        groups = [DocumentGroup(documents=page)] if page else []
    return ListResult(
        total=len(ordered),
        page=details.page,
        page_size=options.page_size,
        total_pages=details.total_pages,
        groups=groups,
    )


class DocumentLister:
    """Lists stored documents using their canonical (first-chunk) records.

    Parameters
    ----------
    store:
        Backend holding the chunk records.
    """

    def __init__(self, store: VectorStoreBase) -> None:
        self._store = store

    def list_documents(
        self,
        page: int = 1,
        page_size: int = 20,
        sort_by: SortField = "timestamp",
        sort_order: SortOrder = "desc",
        group_by_domain: bool = False,
        domain: str | None = None,
    ) -> ListResult:
        """Return one page of documents.

        Sorting runs over every matching document before the page is cut,
        so pages are consistent with each other.

        Parameters
        ----------
        page:
            1-based page number, clamped into ``[1, total_pages]``.
        page_size:
            Documents per page, 1 to 100.
        sort_by:
            ``"timestamp"``, ``"title"`` or ``"domain"``.
        sort_order:
            ``"asc"`` or ``"desc"``.
        group_by_domain:
            Group the page's documents by domain.
        domain:
            Only list documents from this domain.
        """
        try:
            options = ListOptions(
                page=page,
                page_size=page_size,
                sort_by=sort_by,
                sort_order=sort_order,
                group_by_domain=group_by_domain,
                domain=domain,
            )
        except PydanticValidationError as exc:
            error = exc.errors()[0]
            field = str(error["loc"][-1]) if error["loc"] else None
            raise ValidationError(f"Invalid list option {field!r}: {error['msg']}", field=field) from exc

        filters = [MetadataFilter.equals("chunk_index", 0)]
        if options.domain is not None:
            filters.append(MetadataFilter.equals("domain", options.domain))

        if not self._store.collection_exists():
            logger.debug("Collection %r does not exist; listing is empty", self._store.collection_name)
            return _paginate([], options)
        documents = self._fetch_all(filters)
        logger.debug("Listing %d documents (page %d)", len(documents), options.page)
        return _paginate(documents, options)

    def _fetch_all(self, filters: list[MetadataFilter]) -> list[DocumentSummary]:
        documents: list[DocumentSummary] = []
        offset = 0
        while True:
            records = self._store.scroll(filters=filters, limit=SCROLL_BATCH, offset=offset)
            for record in records:
                try:
                    payload = ChunkPayload.model_validate(record.payload)
                except PydanticValidationError as exc:
                    raise StoreError(
                        f"Malformed payload for record {record.id!r}: {exc}",
                        operation="list",
                    ) from exc
                documents.append(DocumentSummary.from_payload(payload))
            if len(records) < SCROLL_BATCH:
                return documents
            offset += SCROLL_BATCH
