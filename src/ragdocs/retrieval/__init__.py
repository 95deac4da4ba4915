"""
Retrieval: collection lifecycle, similarity search and document listing.

Everything here talks to the vector store through :class:`VectorStoreBase`
so that callers never need to know which database backs the collection.

Public surface
--------------
- :class:`CollectionManager`: create / migrate the collection schema.
- :class:`SimilaritySearcher`: filtered vector search with normalised scores.
- :class:`DocumentLister`: paginated, sorted, grouped document listing.
- :class:`VectorStoreBase`: abstract backend (subclass for other databases).
- :class:`ChromaVectorStore`: default Chroma backend.
"""

from ragdocs.retrieval.base import VectorStoreBase
from ragdocs.retrieval.collection import CollectionManager
from ragdocs.retrieval.listing import DocumentLister
from ragdocs.retrieval.models import (
    DocumentSummary,
    ListResult,
    MetadataFilter,
    ScoredResult,
    SearchFilters,
    StoredRecord,
)
from ragdocs.retrieval.search import SimilaritySearcher

__all__ = [
    "ChromaVectorStore",
    "CollectionManager",
    "DocumentLister",
    "DocumentSummary",
    "ListResult",
    "MetadataFilter",
    "ScoredResult",
    "SearchFilters",
    "SimilaritySearcher",
    "StoredRecord",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from ragdocs.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
