"""Exception hierarchy for ragdocs.

Every error carries a human-readable message plus a ``details`` dict with
the offending identifier (url, field, operation) so callers can report
failures without parsing strings.
"""

from __future__ import annotations

from typing import Any


class RagDocsError(Exception):
    """Base exception for all ragdocs errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(RagDocsError):
    """Raised for invalid chunking parameters or embedding configuration."""


class InputError(RagDocsError):
    """Raised for empty text, empty queries and malformed urls."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if url is not None:
            details["url"] = url
        super().__init__(message, details)


class ValidationError(RagDocsError):
    """Raised when search or listing options are out of range."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class DuplicateError(RagDocsError):
    """Raised when adding a document whose url is already stored."""

    def __init__(self, url: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["url"] = url
        self.url = url
        super().__init__(f"Document with URL {url} already exists", details)


class VectorStoreError(RagDocsError):
    """Base class for vector-store failures."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


class AuthenticationError(VectorStoreError):
    """The vector store rejected our credentials."""


class ConnectivityError(VectorStoreError):
    """The vector store could not be reached or timed out."""


class StoreError(VectorStoreError):
    """Any other vector-store failure, including malformed stored payloads."""


class EmbeddingError(RagDocsError):
    """Raised when the embedding provider fails or returns a bad vector."""


class FetchError(RagDocsError):
    """Raised when content cannot be fetched or extracted from a source."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if source is not None:
            details["source"] = source
        super().__init__(message, details)
