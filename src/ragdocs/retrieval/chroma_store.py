"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import chromadb

from ragdocs.config import settings
from ragdocs.errors import (
    AuthenticationError,
    ConnectivityError,
    StoreError,
    ValidationError,
    VectorStoreError,
)
from ragdocs.retrieval.base import VectorStoreBase
from ragdocs.retrieval.models import MetadataFilter, StoredRecord

logger = logging.getLogger(__name__)

_AUTH_MARKERS = ("unauthorized", "forbidden", "401", "403", "authentication")
_CONNECT_MARKERS = (
    "connection refused",
    "could not connect",
    "failed to connect",
    "connection error",
    "timed out",
    "timeout",
    "econnrefused",
    "etimedout",
)


def _build_chroma_where(filters: list[MetadataFilter]) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if not filters:
        return None

    _OP_MAP = {
        "eq": "$eq",
        "ne": "$ne",
        "gt": "$gt",
        "gte": "$gte",
        "lt": "$lt",
        "lte": "$lte",
        "in": "$in",
        "nin": "$nin",
    }

    clauses: list[dict[str, Any]] = []
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _classify(exc: Exception, operation: str) -> VectorStoreError:
    """Map a backend exception onto the ragdocs store error taxonomy."""
    message = str(exc) or type(exc).__name__
    lowered = message.lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return AuthenticationError(f"Vector store rejected credentials: {message}", operation)
    if isinstance(exc, (ConnectionError, TimeoutError)) or any(m in lowered for m in _CONNECT_MARKERS):
        return ConnectivityError(f"Vector store unreachable: {message}", operation)
    return StoreError(f"Vector store {operation} failed: {message}", operation)


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except VectorStoreError:
        raise
    except Exception as exc:
        raise _classify(exc, operation) from exc


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store.

    The collection's vector size and indexed fields are kept in the
    collection metadata, since Chroma infers dimensionality from the first
    write and indexes every metadata key anyway.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    auth_token:
        Sent as the ``X-Chroma-Token`` header when non-empty.
    client:
        Pre-built Chroma client (tests, embedded ``PersistentClient``).
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        auth_token: str = settings.chroma_auth_token,
        client: Any | None = None,
    ) -> None:
        super().__init__(collection_name)
        if client is None:
            headers = {"X-Chroma-Token": auth_token} if auth_token else None
            with _store_errors("connect"):
                client = chromadb.HttpClient(host=host, port=port, headers=headers)
        self._client = client
        self._collection: Any | None = None

    def _get_collection(self) -> Any:
        if self._collection is None:
            self._collection = self._client.get_collection(self.collection_name)
        return self._collection

    # -- collection lifecycle -------------------------------------------------

    def collection_exists(self) -> bool:
        with _store_errors("collection_exists"):
            collections = self._client.list_collections()
        # Older clients return Collection objects, newer ones plain names.
        names = {c if isinstance(c, str) else c.name for c in collections}
        return self.collection_name in names

    def get_vector_size(self) -> int | None:
        with _store_errors("get_vector_size"):
            self._collection = self._client.get_collection(self.collection_name)
            metadata = self._collection.metadata or {}
        size = metadata.get("vector_size")
        if isinstance(size, bool) or not isinstance(size, (int, float)) or size <= 0:
            return None
        return int(size)

    def create_collection(self, vector_size: int, *, indexed_fields: Sequence[str] = ()) -> None:
        metadata: dict[str, Any] = {"hnsw:space": "cosine", "vector_size": vector_size}
        if indexed_fields:
            metadata["indexed_fields"] = ",".join(indexed_fields)
        with _store_errors("create_collection"):
            self._collection = self._client.get_or_create_collection(
                name=self.collection_name,
                metadata=metadata,
            )
        logger.info("Chroma collection %r ready (vector size %d)", self.collection_name, vector_size)

    def delete_collection(self) -> None:
        with _store_errors("delete_collection"):
            self._client.delete_collection(self.collection_name)
        self._collection = None
        logger.info("Dropped Chroma collection %r", self.collection_name)

    # -- records --------------------------------------------------------------

    def upsert(self, records: Sequence[StoredRecord]) -> None:
        if not records:
            return
        with _store_errors("upsert"):
            self._get_collection().upsert(
                ids=[r.id for r in records],
                embeddings=[r.vector for r in records],
                documents=[r.content for r in records],
                metadatas=[r.payload for r in records],
            )
        logger.debug("Upserted %d records into %r", len(records), self.collection_name)

    def scroll(
        self,
        *,
        filters: list[MetadataFilter] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[StoredRecord]:
        with _store_errors("scroll"):
            result = self._get_collection().get(
                where=_build_chroma_where(filters) if filters else None,
                limit=limit,
                offset=offset,
                include=["metadatas", "documents"],
            )
        ids = result.get("ids") or []
        docs = result.get("documents") or [None] * len(ids)
        metas = result.get("metadatas") or [None] * len(ids)
        return [
            StoredRecord(id=doc_id, content=content or "", payload=dict(meta or {}))
            for doc_id, content, meta in zip(ids, docs, metas)
        ]

    def count(self, filters: list[MetadataFilter] | None = None) -> int:
        with _store_errors("count"):
            collection = self._get_collection()
            if not filters:
                return collection.count()
            result = collection.get(where=_build_chroma_where(filters), include=["metadatas"])
        return len(result.get("ids") or [])

    def delete(self, filters: list[MetadataFilter]) -> None:
        if not filters:
            raise ValidationError("Refusing to delete without filters", field="filters")
        with _store_errors("delete"):
            self._get_collection().delete(where=_build_chroma_where(filters))

    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        score_threshold: float | None = None,
    ) -> list[dict[str, Any]]:
        where = _build_chroma_where(filters) if filters else None

        with _store_errors("search"):
            collection = self._get_collection()
            if collection.count() == 0:
                return []
            results = collection.query(
                query_embeddings=[query_embedding],
                n_results=k,
                where=where,
                include=["documents", "metadatas", "distances"],
            )

        hits: list[dict[str, Any]] = []
        ids = results.get("ids", [[]])[0]
        docs = results.get("documents", [[]])[0]
        metas = results.get("metadatas", [[]])[0]
        distances = results.get("distances", [[]])[0]

        for doc_id, content, meta, dist in zip(ids, docs, metas, distances):
            # Cosine space: distance = 1 - cosine similarity.
            score = 1.0 - dist
            if score_threshold is not None and score < score_threshold:
                continue
            hits.append(
                {
                    "id": doc_id,
                    "content": content,
                    "score": score,
                    "metadata": meta or {},
                }
            )
        return hits

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
