"""Embedding providers.

Every provider turns one piece of text into one dense vector and can report
its dimensionality up front, which the collection manager needs before the
first vector is ever generated.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Literal

from pydantic import BaseModel

from ragdocs.config import Settings, settings
from ragdocs.errors import ConfigurationError, EmbeddingError

logger = logging.getLogger(__name__)

ProviderName = Literal["huggingface", "openai", "ollama"]

KNOWN_DIMENSIONS: dict[str, int] = {
    "all-MiniLM-L6-v2": 384,
    "all-mpnet-base-v2": 768,
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


def known_dimension(model: str) -> int | None:
    """Look *model* up by full name, then by its last path component."""
    if model in KNOWN_DIMENSIONS:
        return KNOWN_DIMENSIONS[model]
    return KNOWN_DIMENSIONS.get(model.rsplit("/", 1)[-1].split(":", 1)[0])


class EmbeddingConfig(BaseModel):
    """Explicit embedding configuration handed to :func:`get_embedding_provider`.

    Attributes
    ----------
    provider:
        Backend name.
    model:
        Model identifier understood by the backend.
    dimension:
        Output size; required for models missing from ``KNOWN_DIMENSIONS``.
    api_key:
        Credential for hosted providers.
    host:
        Base URL for self-hosted providers (Ollama).
    """

    provider: ProviderName = "huggingface"
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimension: int | None = None
    api_key: str | None = None
    host: str | None = None

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> EmbeddingConfig:
        if cfg.embedding_provider not in ("huggingface", "openai", "ollama"):
            raise ConfigurationError(
                f"Unknown embedding provider {cfg.embedding_provider!r}",
                {"provider": cfg.embedding_provider},
            )
        return cls(
            provider=cfg.embedding_provider,  # type: ignore[arg-type]
            model=cfg.embedding_model,
            dimension=cfg.embedding_dimension,
            api_key=cfg.openai_api_key or None,
            host=cfg.ollama_host,
        )

    def resolve_dimension(self) -> int:
        dimension = self.dimension or known_dimension(self.model)
        if dimension is None:
            raise ConfigurationError(
                f"Unknown vector size for embedding model {self.model!r}; set an explicit dimension",
                {"model": self.model, "provider": self.provider},
            )
        if dimension <= 0:
            raise ConfigurationError("Embedding dimension must be positive", {"dimension": dimension})
        return dimension


class EmbeddingProvider(ABC):
    """Generates one embedding per text.

    Parameters
    ----------
    config:
        Model and credentials for the backend.
    """

    def __init__(self, config: EmbeddingConfig) -> None:
        self.config = config
        self._dimension = config.resolve_dimension()

    @property
    def model(self) -> str:
        return self.config.model

    def vector_size(self) -> int:
        """Return the output dimensionality without generating an embedding."""
        return self._dimension

    def generate(self, text: str) -> list[float]:
        """Embed *text*, checking the vector has the declared size."""
        try:
            vector = self._embed(text)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(
                f"{self.config.provider} embedding failed: {exc}",
                {"provider": self.config.provider, "model": self.model},
            ) from exc

        if len(vector) != self._dimension:
            raise EmbeddingError(
                f"Expected a {self._dimension}-dimensional vector from {self.model!r}, got {len(vector)}",
                {"provider": self.config.provider, "model": self.model},
            )
        return [float(v) for v in vector]

    @abstractmethod
    def _embed(self, text: str) -> list[float]:
        ...


class HuggingFaceEmbeddingProvider(EmbeddingProvider):
    """Local sentence-transformer model via ``langchain-huggingface``."""

    def __init__(self, config: EmbeddingConfig, *, client: Any | None = None) -> None:
        super().__init__(config)
        if client is None:
            from langchain_huggingface import HuggingFaceEmbeddings

            client = HuggingFaceEmbeddings(model_name=config.model)
        self._client = client

    def _embed(self, text: str) -> list[float]:
        return self._client.embed_query(text)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embeddings API via ``langchain-openai``."""

    def __init__(self, config: EmbeddingConfig, *, client: Any | None = None) -> None:
        super().__init__(config)
        if client is None:
            if not config.api_key:
                raise ConfigurationError("OpenAI embeddings require an API key", {"provider": "openai"})
            from langchain_openai import OpenAIEmbeddings

            client = OpenAIEmbeddings(model=config.model, api_key=config.api_key)
        self._client = client

    def _embed(self, text: str) -> list[float]:
        return self._client.embed_query(text)


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Self-hosted Ollama server via the ``ollama`` client."""

    def __init__(self, config: EmbeddingConfig, *, client: Any | None = None) -> None:
        super().__init__(config)
        if client is None:
            import ollama

            client = ollama.Client(host=config.host or settings.ollama_host)
        self._client = client

    def _embed(self, text: str) -> list[float]:
        response = self._client.embed(model=self.model, input=text)
        return response["embeddings"][0]


_PROVIDERS: dict[str, type[EmbeddingProvider]] = {
    "huggingface": HuggingFaceEmbeddingProvider,
    "openai": OpenAIEmbeddingProvider,
    "ollama": OllamaEmbeddingProvider,
}


def get_embedding_provider(config: EmbeddingConfig | None = None) -> EmbeddingProvider:
    """Build the provider described by *config* (defaults to global settings)."""
    config = config or EmbeddingConfig.from_settings()
    provider_cls = _PROVIDERS.get(config.provider)
    if provider_cls is None:
        raise ConfigurationError(f"Unknown embedding provider {config.provider!r}")
    provider = provider_cls(config)
    logger.info(
        "Using %s embeddings (%s, %d dimensions)",
        config.provider,
        config.model,
        provider.vector_size(),
    )
    return provider
