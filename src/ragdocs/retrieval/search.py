"""Similarity search over stored chunks with metadata filtering.

Usage::

    from ragdocs.retrieval.search import SimilaritySearcher

    searcher = SimilaritySearcher(store, embedder)
    results  = searcher.search_text("how do I configure retries?", limit=5)
    print(format_results_as_markdown(results))
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from ragdocs.errors import ConfigurationError, InputError, StoreError, ValidationError
from ragdocs.retrieval.base import VectorStoreBase
from ragdocs.retrieval.models import (
    ChunkPayload,
    MetadataFilter,
    ScoredResult,
    SearchFilters,
    SearchOptions,
    to_unix_timestamp,
)

if TYPE_CHECKING:
    from ragdocs.ingestion.embedder import EmbeddingProvider

logger = logging.getLogger(__name__)

# Over-fetch so that locally discarded candidates do not starve the result.
CANDIDATE_FACTOR = 1.5
SNIPPET_LENGTH = 300


def normalize_score(score: float) -> float:
    """Map a cosine similarity in ``[-1, 1]`` onto ``[0, 1]``."""
    return (score + 1) / 2


def raw_threshold(threshold: float) -> float:
    """Inverse of :func:`normalize_score`, for pushing thresholds to the store."""
    return 2 * threshold - 1


def validate_search_options(
    *,
    limit: int = 5,
    score_threshold: float = 0.7,
    filters: SearchFilters | dict[str, Any] | None = None,
) -> SearchOptions:
    """Validate raw search arguments.

    Raises
    ------
    ValidationError
        With ``details["field"]`` naming the first offending option.
    """
    try:
        return SearchOptions(
            limit=limit,
            score_threshold=score_threshold,
            filters=filters if filters is not None else SearchFilters(),
        )
    except PydanticValidationError as exc:
        error = exc.errors()[0]
        field = str(error["loc"][-1]) if error["loc"] else None
        raise ValidationError(f"Invalid search option {field!r}: {error['msg']}", field=field) from exc


def build_filters(filters: SearchFilters) -> list[MetadataFilter]:
    """Translate search filters into store filters (ANDed)."""
    clauses: list[MetadataFilter] = []
    if filters.domain is not None:
        clauses.append(MetadataFilter.equals("domain", filters.domain))
    if filters.has_code is not None:
        clauses.append(MetadataFilter.equals("has_code", filters.has_code))
    if filters.after is not None:
        clauses.append(MetadataFilter.at_least("timestamp_unix", to_unix_timestamp(filters.after)))
    if filters.before is not None:
        clauses.append(MetadataFilter.at_most("timestamp_unix", to_unix_timestamp(filters.before)))
    return clauses


def extract_snippet(content: str, max_length: int = SNIPPET_LENGTH) -> str:
    """Return roughly *max_length* characters from the middle of *content*.

    The window is widened to word boundaries and ``...`` marks each side
    that was cut.
    """
    if len(content) <= max_length:
        return content

    middle = len(content) // 2
    radius = max_length // 2
    start = max(0, middle - radius)
    end = min(len(content), middle + radius)

    while start > 0 and not content[start - 1].isspace():
        start -= 1
    while end < len(content) and not content[end].isspace():
        end += 1

    snippet = content[start:end].strip()
    if start > 0:
        snippet = "..." + snippet
    if end < len(content):
        snippet = snippet + "..."
    return snippet


def format_results_as_markdown(results: list[ScoredResult]) -> str:
    """Render search results as a Markdown report."""
    if not results:
        return "No matching documents found."

    blocks = []
    for position, result in enumerate(results, start=1):
        blocks.append(
            f"\n### {position}. {result.title} ({result.score * 100:.1f}% match)\n"
            f"**URL:** {result.url}\n"
            f"**Domain:** {result.domain}\n"
            f"**Date:** {result.timestamp.date().isoformat()}\n"
            f"\n{result.snippet}\n"
        )
    return "\n---\n".join(blocks)


class SimilaritySearcher:
    """Vector similarity queries against any :class:`VectorStoreBase`.

    Parameters
    ----------
    store:
        Backend holding the chunk vectors.
    embedder:
        Provider used by :meth:`search_text` to embed the query.  Swapped by
        :class:`~ragdocs.service.RagDocsService` when the provider changes.
    """

    def __init__(self, store: VectorStoreBase, embedder: EmbeddingProvider | None = None) -> None:
        self._store = store
        self.embedder = embedder

    # -- public API -----------------------------------------------------------

    def search(
        self,
        query_vector: list[float],
        *,
        limit: int = 5,
        score_threshold: float = 0.7,
        filters: SearchFilters | dict[str, Any] | None = None,
    ) -> list[ScoredResult]:
        """Return up to *limit* chunks most similar to *query_vector*.

        Parameters
        ----------
        query_vector:
            Embedding of the query, same dimensionality as the collection.
        limit:
            Maximum number of results, 1 to 20.
        score_threshold:
            Minimum normalised score, 0 to 1.
        filters:
            Domain / has_code equality and inclusive ``after`` / ``before``
            bounds on the document timestamp.

        Returns
        -------
        list[ScoredResult]
            Hits in descending similarity order.
        """
        options = validate_search_options(limit=limit, score_threshold=score_threshold, filters=filters)
        if not self._store.collection_exists():
            logger.debug("Collection %r does not exist; nothing to search", self._store.collection_name)
            return []
        hits = self._store.similarity_search(
            query_vector,
            k=math.ceil(options.limit * CANDIDATE_FACTOR),
            filters=build_filters(options.filters) or None,
            score_threshold=raw_threshold(options.score_threshold),
        )

        results: list[ScoredResult] = []
        for hit in hits:
            result = self._to_result(hit)
            if result.score < options.score_threshold:
                continue
            results.append(result)

        logger.debug("Similarity search returned %d of %d candidates", len(results), len(hits))
        return results[: options.limit]

    def search_text(
        self,
        query: str,
        *,
        limit: int = 5,
        score_threshold: float = 0.7,
        filters: SearchFilters | dict[str, Any] | None = None,
    ) -> list[ScoredResult]:
        """Embed *query* with the configured provider and run :meth:`search`."""
        if not query or not query.strip():
            raise InputError("Search query must not be empty")
        if self.embedder is None:
            raise ConfigurationError("No embedding provider configured for text search")
        validate_search_options(limit=limit, score_threshold=score_threshold, filters=filters)
        vector = self.embedder.generate(query)
        return self.search(vector, limit=limit, score_threshold=score_threshold, filters=filters)

    # -- internals ------------------------------------------------------------

    @staticmethod
    def _to_result(hit: dict[str, Any]) -> ScoredResult:
        try:
            payload = ChunkPayload.model_validate(hit["metadata"])
            content = hit["content"]
            return ScoredResult(
                id=str(hit["id"]),
                score=normalize_score(float(hit["score"])),
                content=content,
                snippet=extract_snippet(content),
                metadata=payload,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreError(
                f"Malformed payload for search hit {hit.get('id')!r}: {exc}",
                operation="search",
            ) from exc
