"""Unit tests for the collection manager."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import InMemoryVectorStore
from ragdocs.errors import ConfigurationError, ConnectivityError
from ragdocs.retrieval.base import VectorStoreBase
from ragdocs.retrieval.collection import INDEXED_FIELDS, CollectionManager
from ragdocs.retrieval.models import StoredRecord


class TestEnsureCollection:
    def test_creates_missing_collection(self, store: InMemoryVectorStore) -> None:
        assert CollectionManager(store).ensure_collection(384) is True
        assert store.exists
        assert store.vector_size == 384
        assert store.indexed_fields == INDEXED_FIELDS == ("url", "timestamp_unix")

    def test_is_idempotent(self, store: InMemoryVectorStore) -> None:
        manager = CollectionManager(store)
        manager.ensure_collection(384)
        assert manager.ensure_collection(384) is False
        assert store.created == 1
        assert store.dropped == 0

    def test_dimension_change_drops_and_recreates(self, store: InMemoryVectorStore) -> None:
        manager = CollectionManager(store)
        manager.ensure_collection(768)
        store.upsert([StoredRecord(id="a", vector=[0.0] * 768, content="x", payload={})])

        assert manager.ensure_collection(1536) is True
        assert store.dropped == 1
        assert store.vector_size == 1536
        assert store.records == {}

    def test_unreadable_size_recreates(self, store: InMemoryVectorStore) -> None:
        store.exists = True
        store.vector_size = None

        assert CollectionManager(store).ensure_collection(384) is True
        assert store.dropped == 1
        assert store.vector_size == 384

    @pytest.mark.parametrize("size", [0, -5])
    def test_non_positive_size_rejected(self, store: InMemoryVectorStore, size: int) -> None:
        with pytest.raises(ConfigurationError):
            CollectionManager(store).ensure_collection(size)

    def test_store_errors_propagate(self) -> None:
        broken = MagicMock(spec=VectorStoreBase)
        broken.collection_name = "documentation"
        broken.collection_exists.side_effect = ConnectivityError("Vector store unreachable", "collection_exists")

        with pytest.raises(ConnectivityError):
            CollectionManager(broken).ensure_collection(384)
        broken.create_collection.assert_not_called()
