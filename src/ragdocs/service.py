"""Top-level wiring: one store, one embedding provider, all components.

Usage::

    from ragdocs.service import RagDocsService

    service = RagDocsService.from_settings()
    service.add_source("https://docs.python.org/3/tutorial/")
    hits = service.search_text("list comprehensions", limit=3)
"""

from __future__ import annotations

import logging
from typing import Any

from ragdocs.config import Settings, settings
from ragdocs.ingestion.chunker import ChunkOptions
from ragdocs.ingestion.embedder import EmbeddingConfig, EmbeddingProvider, get_embedding_provider
from ragdocs.ingestion.models import DocumentMetadata, IngestionResult
from ragdocs.ingestion.pipeline import DocumentIngestor
from ragdocs.retrieval.base import VectorStoreBase
from ragdocs.retrieval.collection import CollectionManager
from ragdocs.retrieval.listing import DocumentLister, SortField, SortOrder
from ragdocs.retrieval.models import ListResult, ScoredResult, SearchFilters
from ragdocs.retrieval.search import SimilaritySearcher

logger = logging.getLogger(__name__)


class RagDocsService:
    """Facade over ingestion, search and listing sharing one embedding provider.

    Building the service runs :meth:`CollectionManager.ensure_collection` for
    the provider's vector size, so a dimension change between runs is
    migrated at startup.

    Parameters
    ----------
    store:
        Vector-store backend.
    embedder:
        Embedding provider used for both documents and queries.
    chunk_options:
        Chunker budget forwarded to the ingestor.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingProvider,
        *,
        chunk_options: ChunkOptions | None = None,
    ) -> None:
        self.store = store
        self._embedder = embedder
        self.collections = CollectionManager(store)
        self.ingestor = DocumentIngestor(store, embedder, self.collections, chunk_options=chunk_options)
        self.searcher = SimilaritySearcher(store, embedder)
        self.lister = DocumentLister(store)
        # A collection left behind by a model of another size is recreated
        # before any read or write reaches it.
        self.collections.ensure_collection(embedder.vector_size())

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> RagDocsService:
        """Build a Chroma-backed service from configuration."""
        from ragdocs.retrieval.chroma_store import ChromaVectorStore

        store = ChromaVectorStore(
            cfg.chroma_collection,
            host=cfg.chroma_host,
            port=cfg.chroma_port,
            auth_token=cfg.chroma_auth_token,
        )
        embedder = get_embedding_provider(EmbeddingConfig.from_settings(cfg))
        return cls(store, embedder)

    @property
    def embedder(self) -> EmbeddingProvider:
        return self._embedder

    def switch_embedding_provider(self, config: EmbeddingConfig | EmbeddingProvider) -> EmbeddingProvider:
        """Swap the embedding provider.

        The collection is migrated to the new vector size first (dropping
        every stored vector if it changes); only then do ingestion and search
        see the new provider.
        """
        if isinstance(config, EmbeddingProvider):
            provider = config
        else:
            provider = get_embedding_provider(config)

        recreated = self.collections.ensure_collection(provider.vector_size())
        self._embedder = provider
        self.ingestor.embedder = provider
        self.searcher.embedder = provider
        logger.info(
            "Switched embeddings to %s/%s (%d dimensions%s)",
            provider.config.provider,
            provider.model,
            provider.vector_size(),
            ", collection recreated" if recreated else "",
        )
        return provider

    # -- delegation -----------------------------------------------------------

    def add_document(
        self,
        url: str,
        content: str,
        metadata: DocumentMetadata | dict[str, Any] | None = None,
    ) -> IngestionResult:
        return self.ingestor.add_document(url, content, metadata)

    def add_source(self, source: str, content: str | None = None) -> IngestionResult:
        return self.ingestor.add_source(source, content)

    def replace_document(
        self,
        url: str,
        content: str,
        metadata: DocumentMetadata | dict[str, Any] | None = None,
    ) -> IngestionResult:
        return self.ingestor.replace_document(url, content, metadata)

    def delete_document(self, url: str) -> None:
        self.ingestor.delete_document(url)

    def search(
        self,
        query_vector: list[float],
        *,
        limit: int = 5,
        score_threshold: float = 0.7,
        filters: SearchFilters | dict[str, Any] | None = None,
    ) -> list[ScoredResult]:
        return self.searcher.search(query_vector, limit=limit, score_threshold=score_threshold, filters=filters)

    def search_text(
        self,
        query: str,
        *,
        limit: int = 5,
        score_threshold: float = 0.7,
        filters: SearchFilters | dict[str, Any] | None = None,
    ) -> list[ScoredResult]:
        return self.searcher.search_text(query, limit=limit, score_threshold=score_threshold, filters=filters)

    def list_documents(
        self,
        page: int = 1,
        page_size: int = 20,
        sort_by: SortField = "timestamp",
        sort_order: SortOrder = "desc",
        group_by_domain: bool = False,
        domain: str | None = None,
    ) -> ListResult:
        return self.lister.list_documents(
            page=page,
            page_size=page_size,
            sort_by=sort_by,
            sort_order=sort_order,
            group_by_domain=group_by_domain,
            domain=domain,
        )

    def health_check(self) -> bool:
        return self.store.health_check()
