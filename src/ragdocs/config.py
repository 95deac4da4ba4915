"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "documentation"
    chroma_auth_token: str = Field(
        default="",
        description="Token sent as the X-Chroma-Token header. Leave empty for unauthenticated servers.",
    )

    # Embedding
    embedding_provider: str = Field(
        default="huggingface",
        description="One of 'huggingface', 'openai' or 'ollama'.",
    )
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimension: int | None = Field(
        default=None,
        description=(
            "Output dimensionality of the embedding model. Only required for "
            "models missing from the built-in dimension table."
        ),
    )
    openai_api_key: str = Field(default="", description="OpenAI API key (openai provider only)")
    ollama_host: str = "http://localhost:11434"

    # Chunking
    chunk_max_size: int = 1500
    chunk_min_size: int = 100
    chunk_overlap: int = 200

    # Ingestion
    upsert_batch_size: int = 100
    embedding_concurrency: int = 8

    # Fetching
    request_timeout: float = 10.0
    fetch_max_retries: int = 3
    fetch_retry_delay: float = 1.0
    max_file_size: int = 10 * 1024 * 1024
    supported_extensions: list[str] = [".txt", ".md", ".html", ".htm", ".pdf", ".docx"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton: import `settings` wherever needed.
settings = Settings()
