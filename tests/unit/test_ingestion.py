"""Unit tests for the ingestion path (DocumentIngestor)."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from conftest import FakeEmbeddingProvider, InMemoryVectorStore
from ragdocs.errors import ConfigurationError, DuplicateError, EmbeddingError, InputError, StoreError
from ragdocs.ingestion.chunker import ChunkOptions
from ragdocs.ingestion.pipeline import DocumentIngestor, record_id
from ragdocs.retrieval.models import ChunkPayload

URL = "https://docs.example.com/guide"
LONG_TEXT = " ".join(f"Paragraph {i} explains one more detail of the system." for i in range(40))
SMALL = ChunkOptions(max_chunk_size=200, min_chunk_size=50, overlap_words=2)


@pytest.fixture()
def ingestor(store: InMemoryVectorStore, embedder: FakeEmbeddingProvider) -> DocumentIngestor:
    return DocumentIngestor(store, embedder, chunk_options=SMALL, batch_size=3, concurrency=4)


def _payloads(store: InMemoryVectorStore, url: str = URL) -> list[ChunkPayload]:
    payloads = [ChunkPayload.model_validate(r.payload) for r in store.records.values()]
    return sorted((p for p in payloads if p.url == url), key=lambda p: p.chunk_index)


# ── add_document ────────────────────────────────────────────────────────


class TestAddDocument:
    def test_creates_collection_with_embedder_size(
        self, ingestor: DocumentIngestor, store: InMemoryVectorStore
    ) -> None:
        ingestor.add_document(URL, "Short document body.")
        assert store.exists
        assert store.vector_size == 8

    def test_one_record_per_chunk(self, ingestor: DocumentIngestor, store: InMemoryVectorStore) -> None:
        result = ingestor.add_document(URL, LONG_TEXT)

        payloads = _payloads(store)
        assert result.total_chunks == len(payloads) > 1
        assert [p.chunk_index for p in payloads] == list(range(result.total_chunks))
        assert {p.total_chunks for p in payloads} == {result.total_chunks}

    def test_document_attributes_on_every_chunk(
        self, ingestor: DocumentIngestor, store: InMemoryVectorStore
    ) -> None:
        ingestor.add_document(URL, LONG_TEXT, {"title": "Guide"})

        for payload in _payloads(store):
            assert payload.title == "Guide"
            assert payload.domain == "docs.example.com"
            assert payload.word_count == len(LONG_TEXT.split())
            assert payload.has_code is False
            assert payload.record_type == "DocumentChunk"

    def test_record_ids_are_deterministic(self, ingestor: DocumentIngestor, store: InMemoryVectorStore) -> None:
        result = ingestor.add_document(URL, LONG_TEXT)
        expected = {record_id(URL, i) for i in range(result.total_chunks)}
        assert set(store.records) == expected
        assert all(len(rid) == 32 for rid in expected)

    def test_batches_respect_batch_size(self, ingestor: DocumentIngestor, store: InMemoryVectorStore) -> None:
        result = ingestor.add_document(URL, LONG_TEXT)
        assert all(size <= 3 for size in store.upsert_sizes)
        assert sum(store.upsert_sizes) == result.total_chunks
        assert result.batches == len(store.upsert_sizes)

    def test_one_embedding_per_chunk(
        self, ingestor: DocumentIngestor, store: InMemoryVectorStore, embedder: FakeEmbeddingProvider
    ) -> None:
        ingestor.add_document(URL, LONG_TEXT)
        assert sorted(embedder.calls) == sorted(r.content for r in store.records.values())

    def test_code_heuristic(self, ingestor: DocumentIngestor, store: InMemoryVectorStore) -> None:
        ingestor.add_document(URL, "Use it like this: ```const x = 1;```")
        assert all(p.has_code for p in _payloads(store))

    def test_timestamp_stored_as_utc(self, ingestor: DocumentIngestor, store: InMemoryVectorStore) -> None:
        when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        ingestor.add_document(URL, "Body text.", {"timestamp": when})

        payload = _payloads(store)[0]
        assert payload.timestamp == when
        assert payload.timestamp_unix == when.timestamp()

    def test_local_path_domain(self, ingestor: DocumentIngestor, store: InMemoryVectorStore) -> None:
        result = ingestor.add_document("./docs/notes.md", "Local notes.")
        assert result.domain == "local"
        assert result.title == "notes.md"

    @pytest.mark.parametrize("url", ["", "   ", "ftp://example.com/file", "https://", "not a url"])
    def test_invalid_url_rejected(self, ingestor: DocumentIngestor, url: str) -> None:
        with pytest.raises(InputError):
            ingestor.add_document(url, "Body text.")

    def test_empty_content_rejected(self, ingestor: DocumentIngestor, store: InMemoryVectorStore) -> None:
        with pytest.raises(InputError):
            ingestor.add_document(URL, "   ")
        assert store.records == {}

    def test_duplicate_url_rejected(self, ingestor: DocumentIngestor, store: InMemoryVectorStore) -> None:
        ingestor.add_document(URL, "First version.")
        with pytest.raises(DuplicateError) as exc_info:
            ingestor.add_document(URL, "Second version.")
        assert exc_info.value.url == URL
        assert "already exists" in str(exc_info.value)

    def test_embedding_failure_surfaces(self, store: InMemoryVectorStore) -> None:
        class Failing(FakeEmbeddingProvider):
            def _embed(self, text: str) -> list[float]:
                raise RuntimeError("model offline")

        ingestor = DocumentIngestor(store, Failing(size=8), chunk_options=SMALL)
        with pytest.raises(EmbeddingError, match="model offline"):
            ingestor.add_document(URL, "Body text.")
        assert store.records == {}

    def test_failing_batch_keeps_earlier_batches(self, embedder: FakeEmbeddingProvider) -> None:
        class FlakyStore(InMemoryVectorStore):
            def upsert(self, records):  # noqa: ANN001
                if self.upsert_sizes:
                    raise StoreError("disk full", operation="upsert")
                super().upsert(records)

        store = FlakyStore()
        ingestor = DocumentIngestor(store, embedder, chunk_options=SMALL, batch_size=2)
        with pytest.raises(StoreError):
            ingestor.add_document(URL, LONG_TEXT)
        assert len(store.records) == 2

    def test_invalid_batch_size(self, store: InMemoryVectorStore, embedder: FakeEmbeddingProvider) -> None:
        with pytest.raises(ConfigurationError):
            DocumentIngestor(store, embedder, batch_size=0)


# ── delete / replace ────────────────────────────────────────────────────


class TestDeleteAndReplace:
    def test_delete_removes_all_chunks(self, ingestor: DocumentIngestor, store: InMemoryVectorStore) -> None:
        ingestor.add_document(URL, LONG_TEXT)
        ingestor.add_document("https://docs.example.com/other", "Other document.")

        ingestor.delete_document(URL)
        assert _payloads(store) == []
        assert len(_payloads(store, "https://docs.example.com/other")) == 1

    def test_delete_unknown_url_is_noop(self, ingestor: DocumentIngestor, store: InMemoryVectorStore) -> None:
        ingestor.delete_document(URL)
        ingestor.add_document(URL, "Body.")
        ingestor.delete_document("https://docs.example.com/missing")
        assert len(_payloads(store)) == 1

    def test_delete_then_add_succeeds(self, ingestor: DocumentIngestor, store: InMemoryVectorStore) -> None:
        ingestor.add_document(URL, LONG_TEXT)
        ingestor.delete_document(URL)
        result = ingestor.add_document(URL, "A much shorter replacement.")

        payloads = _payloads(store)
        assert result.total_chunks == 1
        assert [p.chunk_index for p in payloads] == [0]

    def test_replace_document(self, ingestor: DocumentIngestor, store: InMemoryVectorStore) -> None:
        ingestor.add_document(URL, LONG_TEXT)
        ingestor.replace_document(URL, "Replacement text.", {"title": "New"})

        payloads = _payloads(store)
        assert len(payloads) == 1
        assert payloads[0].title == "New"

    def test_document_exists(self, ingestor: DocumentIngestor) -> None:
        assert ingestor.document_exists(URL) is False
        ingestor.add_document(URL, "Body.")
        assert ingestor.document_exists(URL) is True


# ── add_source ──────────────────────────────────────────────────────────


class TestAddSource:
    def test_supplied_content_for_web_url_is_normalised(
        self, ingestor: DocumentIngestor, store: InMemoryVectorStore
    ) -> None:
        result = ingestor.add_source("HTTPS://Docs.Example.com/guide/?b=2&a=1", content="Some text.")
        assert result.url == "https://docs.example.com/guide?a=1&b=2"
        assert _payloads(store, result.url)[0].domain == "docs.example.com"

    def test_local_markdown_file(
        self, ingestor: DocumentIngestor, store: InMemoryVectorStore, tmp_path: Path
    ) -> None:
        path = tmp_path / "intro.md"
        path.write_text("# Getting Started\n\nInstall the package.\n\n```bash\npip install x\n```\n", encoding="utf-8")

        result = ingestor.add_source(str(path))
        payloads = _payloads(store, str(path))
        assert result.title == "Getting Started"
        assert result.domain == "local"
        assert payloads[0].content_type == "text/markdown"
        assert payloads[0].has_code is True

    def test_paginated_source_stamps_pages(
        self, ingestor: DocumentIngestor, store: InMemoryVectorStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from ragdocs.ingestion import pipeline
        from ragdocs.ingestion.models import ExtractedContent

        pages = ["Page one text.", "Page two text."]
        extracted = ExtractedContent(
            source="./manual.pdf",
            title="manual.pdf",
            content="\n\n".join(pages),
            content_type="application/pdf",
            word_count=6,
            pages=pages,
        )
        monkeypatch.setattr(pipeline, "load_source", lambda source, content=None: extracted)

        ingestor.add_source("./manual.pdf")
        payloads = _payloads(store, "./manual.pdf")
        assert [p.page_number for p in payloads] == [1, 2]
        assert [p.chunk_index for p in payloads] == [0, 1]
