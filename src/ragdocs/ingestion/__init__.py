"""
Ingestion: loading, chunking, embedding and upserting documents.

Raw sources (web pages, local files, caller-supplied text) are reduced to
plain text, split into size-bounded chunks, embedded one vector per chunk
and written to the vector store keyed by document url.

Public surface
--------------
- :class:`DocumentIngestor`: add / delete / replace documents.
- :func:`chunk_text`, :func:`chunk_sections`: the chunking algorithm.
- :class:`EmbeddingConfig`, :func:`get_embedding_provider`: embedding backends.
- :func:`load_source`: extraction dispatcher for urls and files.
"""

from ragdocs.ingestion.chunker import Chunk, ChunkOptions, chunk_sections, chunk_text
from ragdocs.ingestion.embedder import EmbeddingConfig, EmbeddingProvider, get_embedding_provider
from ragdocs.ingestion.loader import load_source
from ragdocs.ingestion.models import DocumentMetadata, ExtractedContent, IngestionResult
from ragdocs.ingestion.pipeline import DocumentIngestor

__all__ = [
    "Chunk",
    "ChunkOptions",
    "DocumentIngestor",
    "DocumentMetadata",
    "EmbeddingConfig",
    "EmbeddingProvider",
    "ExtractedContent",
    "IngestionResult",
    "chunk_sections",
    "chunk_text",
    "get_embedding_provider",
    "load_source",
]
