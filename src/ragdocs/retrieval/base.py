"""Abstract base class for vector-store backends.

Adding a new backend (Qdrant, Pinecone, Weaviate …) only requires
subclassing :class:`VectorStoreBase` and implementing the abstract methods.
The collection manager, ingestion path, search and listing components are
backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from ragdocs.retrieval.models import MetadataFilter, StoredRecord


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Implementations raise :class:`~ragdocs.errors.VectorStoreError`
    subclasses for backend failures.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- collection lifecycle -------------------------------------------------

    @abstractmethod
    def collection_exists(self) -> bool:
        """Return ``True`` when the collection is present."""
        ...

    @abstractmethod
    def get_vector_size(self) -> int | None:
        """Return the configured vector size, or ``None`` if unreadable."""
        ...

    @abstractmethod
    def create_collection(self, vector_size: int, *, indexed_fields: Sequence[str] = ()) -> None:
        """Create the collection if absent (cosine distance).

        Must not fail when another caller created it concurrently.
        """
        ...

    @abstractmethod
    def delete_collection(self) -> None:
        """Drop the collection and every record in it."""
        ...

    # -- records --------------------------------------------------------------

    @abstractmethod
    def upsert(self, records: Sequence[StoredRecord]) -> None:
        """Insert or overwrite *records*; returns once the write is durable."""
        ...

    @abstractmethod
    def scroll(
        self,
        *,
        filters: list[MetadataFilter] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[StoredRecord]:
        """Page through records matching *filters* without a query vector."""
        ...

    @abstractmethod
    def count(self, filters: list[MetadataFilter] | None = None) -> int:
        """Return the number of records matching *filters*."""
        ...

    @abstractmethod
    def delete(self, filters: list[MetadataFilter]) -> None:
        """Delete every record matching *filters*."""
        ...

    @abstractmethod
    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        score_threshold: float | None = None,
    ) -> list[dict[str, Any]]:
        """Return the top-*k* records closest to *query_embedding*.

        Each result dict **must** contain:

        * ``"id"`` – record identifier
        * ``"content"`` – the chunk text
        * ``"score"`` – cosine similarity in ``[-1, 1]``
        * ``"metadata"`` – the stored payload

        Parameters
        ----------
        query_embedding:
            Dense vector for the query.
        k:
            Maximum number of results.
        filters:
            Metadata filters applied by the backend.
        score_threshold:
            Raw cosine similarity below which hits are dropped.
        """
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...
