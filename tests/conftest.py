"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import hashlib
import math
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

import pytest

from ragdocs.errors import StoreError
from ragdocs.ingestion.embedder import EmbeddingConfig, EmbeddingProvider
from ragdocs.retrieval.base import VectorStoreBase
from ragdocs.retrieval.models import RECORD_TYPE, MetadataFilter, StoredRecord


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── In-memory vector store ──────────────────────────────────────────────


def _matches(payload: dict[str, Any], flt: MetadataFilter) -> bool:
    if flt.field not in payload:
        return False
    value = payload[flt.field]
    if flt.operator == "eq":
        return value == flt.value
    if flt.operator == "gte":
        return value >= flt.value
    if flt.operator == "lte":
        return value <= flt.value
    raise ValueError(f"Unsupported filter operator: {flt.operator!r}")


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryVectorStore(VectorStoreBase):
    """Dict-backed store that evaluates filters and cosine similarity."""

    def __init__(self, collection_name: str = "test-collection") -> None:
        super().__init__(collection_name)
        self.records: dict[str, StoredRecord] = {}
        self.exists = False
        self.vector_size: int | None = None
        self.indexed_fields: tuple[str, ...] = ()
        self.created = 0
        self.dropped = 0
        self.upsert_sizes: list[int] = []
        self.last_search: dict[str, Any] = {}

    def collection_exists(self) -> bool:
        return self.exists

    def get_vector_size(self) -> int | None:
        return self.vector_size

    def create_collection(self, vector_size: int, *, indexed_fields: Sequence[str] = ()) -> None:
        if self.exists:
            return
        self.exists = True
        self.vector_size = vector_size
        self.indexed_fields = tuple(indexed_fields)
        self.created += 1

    def delete_collection(self) -> None:
        self.exists = False
        self.vector_size = None
        self.records.clear()
        self.dropped += 1

    def _require_collection(self, operation: str) -> None:
        if not self.exists:
            raise StoreError(
                f"Vector store {operation} failed: Collection [{self.collection_name}] does not exist",
                operation,
            )

    def upsert(self, records: Sequence[StoredRecord]) -> None:
        self._require_collection("upsert")
        for record in records:
            self.records[record.id] = record
        self.upsert_sizes.append(len(records))

    def _matching(self, filters: list[MetadataFilter] | None) -> list[StoredRecord]:
        return [
            r for r in self.records.values() if all(_matches(r.payload, f) for f in filters or [])
        ]

    def scroll(
        self,
        *,
        filters: list[MetadataFilter] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[StoredRecord]:
        self._require_collection("scroll")
        return self._matching(filters)[offset : offset + limit]

    def count(self, filters: list[MetadataFilter] | None = None) -> int:
        return len(self._matching(filters))

    def delete(self, filters: list[MetadataFilter]) -> None:
        for record in self._matching(filters):
            del self.records[record.id]

    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        score_threshold: float | None = None,
    ) -> list[dict[str, Any]]:
        self._require_collection("search")
        self.last_search = {"k": k, "filters": filters, "score_threshold": score_threshold}
        scored = [(_cosine(query_embedding, r.vector or []), r) for r in self._matching(filters)]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            {"id": r.id, "content": r.content, "score": score, "metadata": dict(r.payload)}
            for score, r in scored
            if score_threshold is None or score >= score_threshold
        ][:k]

    def health_check(self) -> bool:
        return True


# ── Deterministic embedding provider ────────────────────────────────────


class FakeEmbeddingProvider(EmbeddingProvider):
    """Hash-based embeddings: identical text gives identical vectors."""

    def __init__(self, size: int = 8, model: str = "fake-embedder") -> None:
        super().__init__(EmbeddingConfig(provider="huggingface", model=model, dimension=size))
        self.calls: list[str] = []

    def _embed(self, text: str) -> list[float]:
        self.calls.append(text)
        digest = b""
        counter = 0
        while len(digest) < self.vector_size():
            digest += hashlib.sha256(f"{counter}:{text}".encode()).digest()
            counter += 1
        return [(byte - 127.5) / 127.5 for byte in digest[: self.vector_size()]]


# ── Payload helper ──────────────────────────────────────────────────────


def build_payload(url: str, chunk_index: int = 0, **overrides: Any) -> dict[str, Any]:
    timestamp = overrides.pop("timestamp", datetime(2024, 1, 1, tzinfo=timezone.utc))
    payload: dict[str, Any] = {
        "record_type": RECORD_TYPE,
        "url": url,
        "title": f"Title of {url}",
        "domain": "docs.example.com",
        "timestamp": timestamp.isoformat(),
        "timestamp_unix": timestamp.timestamp(),
        "content_type": "text/html",
        "word_count": 100,
        "has_code": False,
        "chunk_index": chunk_index,
        "total_chunks": 1,
        "start_position": 0,
        "end_position": 10,
        "is_code_block": False,
    }
    payload.update(overrides)
    return payload


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider(size=8)


@pytest.fixture()
def payload_factory() -> Callable[..., dict[str, Any]]:
    return build_payload
