"""Ingestion path: chunk, embed and upsert documents keyed by url.

Usage::

    from ragdocs.ingestion.pipeline import DocumentIngestor

    ingestor = DocumentIngestor(store, embedder)
    ingestor.add_document("https://docs.example.com/guide", text)
    ingestor.add_source("./manual.pdf")
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlsplit

from ragdocs.config import settings
from ragdocs.errors import ConfigurationError, DuplicateError, EmbeddingError, InputError
from ragdocs.ingestion.chunker import Chunk, ChunkOptions, chunk_sections, chunk_text
from ragdocs.ingestion.embedder import EmbeddingProvider
from ragdocs.ingestion.loader import count_words, detect_code, load_source
from ragdocs.ingestion.models import DocumentMetadata, IngestionResult, utc_now
from ragdocs.ingestion.urls import extract_domain, is_valid_web_page, process_url, validate_document_url
from ragdocs.retrieval.base import VectorStoreBase
from ragdocs.retrieval.collection import CollectionManager
from ragdocs.retrieval.models import RECORD_TYPE, ChunkPayload, MetadataFilter, StoredRecord, to_utc

logger = logging.getLogger(__name__)


def record_id(url: str, chunk_index: int) -> str:
    """Deterministic record id: first 128 bits of SHA-256 over ``url:index``."""
    return hashlib.sha256(f"{url}:{chunk_index}".encode()).hexdigest()[:32]


def default_chunk_options() -> ChunkOptions:
    return ChunkOptions(
        max_chunk_size=settings.chunk_max_size,
        min_chunk_size=settings.chunk_min_size,
        overlap=settings.chunk_overlap,
    )


def _default_title(url: str) -> str:
    path = urlsplit(url).path if is_valid_web_page(url) else url
    return PurePosixPath(path.rstrip("/")).name or extract_domain(url)


class DocumentIngestor:
    """Writes documents into the vector store, one record per chunk.

    Parameters
    ----------
    store:
        Backend receiving the records.
    embedder:
        Provider generating one vector per chunk.  Replaced by
        :class:`~ragdocs.service.RagDocsService` on provider switches.
    collection_manager:
        Schema keeper; defaults to one built over *store*.
    chunk_options:
        Chunker budget; defaults to the configured chunk sizes.
    batch_size:
        Records per upsert call.
    concurrency:
        Upper bound on embedding requests in flight within one batch.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingProvider,
        collection_manager: CollectionManager | None = None,
        *,
        chunk_options: ChunkOptions | None = None,
        batch_size: int = settings.upsert_batch_size,
        concurrency: int = settings.embedding_concurrency,
    ) -> None:
        if batch_size <= 0 or concurrency <= 0:
            raise ConfigurationError(
                "batch_size and concurrency must be positive",
                {"batch_size": batch_size, "concurrency": concurrency},
            )
        self._store = store
        self.embedder = embedder
        self._collections = collection_manager or CollectionManager(store)
        self.chunk_options = chunk_options or default_chunk_options()
        self.batch_size = batch_size
        self.concurrency = concurrency

    # -- public API -----------------------------------------------------------

    def document_exists(self, url: str) -> bool:
        """Return ``True`` if any record is stored under exactly *url*."""
        if not self._store.collection_exists():
            return False
        return self._store.count([MetadataFilter.equals("url", url)]) > 0

    def add_document(
        self,
        url: str,
        content: str,
        metadata: DocumentMetadata | dict[str, Any] | None = None,
    ) -> IngestionResult:
        """Chunk, embed and store *content* under *url*.

        Parameters
        ----------
        url:
            Document key: an http(s) URL or a local path.
        content:
            Plain text of the document.
        metadata:
            Optional title, timestamp, content type and code flag.

        Raises
        ------
        InputError
            For an invalid url or empty content.
        DuplicateError
            If records for *url* already exist.
        """
        url = validate_document_url(url)
        if not content or not content.strip():
            raise InputError("Document content must not be empty", url=url)
        meta = DocumentMetadata.model_validate(metadata or {})
        return self._ingest(url, content, meta, lambda: chunk_text(content, self.chunk_options))

    def add_source(
        self,
        source: str,
        content: str | None = None,
        metadata: DocumentMetadata | dict[str, Any] | None = None,
    ) -> IngestionResult:
        """Extract *source* (web page or file) and add it.

        Web URLs are normalised first, so the stored url is the normalised
        form.  Paginated sources are chunked page by page.
        """
        if is_valid_web_page(source):
            source = process_url(source).normalized_url
        extracted = load_source(source, content)

        overrides = DocumentMetadata.model_validate(metadata or {})
        meta = DocumentMetadata(
            title=overrides.title or extracted.title,
            timestamp=overrides.timestamp or extracted.timestamp,
            content_type=extracted.content_type,
            has_code=extracted.has_code if overrides.has_code is None else overrides.has_code,
        )
        url = validate_document_url(extracted.source)

        def chunker() -> list[Chunk]:
            if extracted.pages:
                return chunk_sections(extracted.pages, self.chunk_options, label="page")
            return chunk_text(extracted.content, self.chunk_options)

        return self._ingest(url, extracted.content, meta, chunker)

    def delete_document(self, url: str) -> None:
        """Delete every record stored under exactly *url* (no-op if unknown)."""
        if not self._store.collection_exists():
            return
        self._store.delete([MetadataFilter.equals("url", url)])
        logger.info("Deleted document %s", url)

    def replace_document(
        self,
        url: str,
        content: str,
        metadata: DocumentMetadata | dict[str, Any] | None = None,
    ) -> IngestionResult:
        """Delete *url* then add it again; not atomic."""
        self.delete_document(url)
        return self.add_document(url, content, metadata)

    # -- internals ------------------------------------------------------------

    def _ingest(
        self,
        url: str,
        content: str,
        meta: DocumentMetadata,
        chunker: Callable[[], list[Chunk]],
    ) -> IngestionResult:
        embedder = self.embedder
        vector_size = embedder.vector_size()
        self._collections.ensure_collection(vector_size)
        if self.document_exists(url):
            raise DuplicateError(url)

        chunks = chunker()
        timestamp = to_utc(meta.timestamp or utc_now())
        title = meta.title or _default_title(url)
        domain = extract_domain(url)
        document = {
            "record_type": RECORD_TYPE,
            "url": url,
            "title": title,
            "domain": domain,
            "timestamp": timestamp,
            "timestamp_unix": timestamp.timestamp(),
            "content_type": meta.content_type,
            "word_count": count_words(content),
            "has_code": detect_code(content) if meta.has_code is None else meta.has_code,
            "total_chunks": len(chunks),
        }

        batches = 0
        for start in range(0, len(chunks), self.batch_size):
            batch = chunks[start : start + self.batch_size]
            vectors = self._embed_batch(embedder, [chunk.content for chunk in batch])
            records = []
            for chunk, vector in zip(batch, vectors):
                if len(vector) != vector_size:
                    raise EmbeddingError(
                        f"Embedding for chunk {chunk.index} of {url} has {len(vector)} dimensions, "
                        f"expected {vector_size}",
                        {"url": url},
                    )
                records.append(self._record(document, chunk, vector))
            self._store.upsert(records)
            batches += 1
            logger.debug("Stored batch %d (%d chunks) for %s", batches, len(batch), url)

        logger.info("Ingested %s: %d chunks in %d batches", url, len(chunks), batches)
        return IngestionResult(
            url=url,
            title=title,
            domain=domain,
            total_chunks=len(chunks),
            batches=batches,
            vector_size=vector_size,
        )

    def _embed_batch(self, embedder: EmbeddingProvider, texts: list[str]) -> list[list[float]]:
        workers = min(len(texts), self.concurrency)
        if workers <= 1:
            return [embedder.generate(text) for text in texts]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(embedder.generate, texts))

    @staticmethod
    def _record(document: dict[str, Any], chunk: Chunk, vector: list[float]) -> StoredRecord:
        payload = ChunkPayload(
            **document,
            chunk_index=chunk.index,
            start_position=chunk.start_position,
            end_position=chunk.end_position,
            is_code_block=chunk.is_code_block,
            page_number=chunk.page_number,
            paragraph_index=chunk.paragraph_index,
        )
        return StoredRecord(
            id=record_id(document["url"], chunk.index),
            vector=vector,
            content=chunk.content,
            payload=payload.to_metadata(),
        )
