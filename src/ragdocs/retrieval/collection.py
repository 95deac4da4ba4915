"""Collection lifecycle: create on first use, recreate on dimension change."""

from __future__ import annotations

import logging

from ragdocs.errors import ConfigurationError
from ragdocs.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)

# Exact-match lookups go through ``url``; date filters through the numeric
# mirror of ``timestamp``.
INDEXED_FIELDS: tuple[str, ...] = ("url", "timestamp_unix")


class CollectionManager:
    """Keeps the store's collection schema in line with the embedding model.

    Parameters
    ----------
    store:
        Backend holding the collection.
    """

    def __init__(self, store: VectorStoreBase) -> None:
        self._store = store

    def ensure_collection(self, required_vector_size: int) -> bool:
        """Make sure the collection exists with *required_vector_size*.

        A collection with a different (or unreadable) vector size is dropped
        and recreated, losing every stored vector.  Store failures propagate
        as :class:`~ragdocs.errors.VectorStoreError` subclasses.

        Returns
        -------
        bool
            ``True`` if the collection was created or recreated.
        """
        if required_vector_size <= 0:
            raise ConfigurationError(
                "Vector size must be a positive integer",
                {"vector_size": required_vector_size},
            )

        name = self._store.collection_name
        if not self._store.collection_exists():
            self._store.create_collection(required_vector_size, indexed_fields=INDEXED_FIELDS)
            logger.info("Created collection %r with vector size %d", name, required_vector_size)
            return True

        current = self._store.get_vector_size()
        if current == required_vector_size:
            return False

        if current is None:
            logger.warning("Collection %r has no readable vector size; recreating", name)
        else:
            logger.warning(
                "Collection %r has vector size %d but %d is required; dropping and recreating",
                name,
                current,
                required_vector_size,
            )
        self._store.delete_collection()
        self._store.create_collection(required_vector_size, indexed_fields=INDEXED_FIELDS)
        logger.info("Recreated collection %r with vector size %d", name, required_vector_size)
        return True
