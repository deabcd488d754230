"""Application configuration and settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Application
    app_name: str = "RAG Control Plane"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # API
    api_v1_prefix: str = "/api/v1"

    # CORS
    cors_origins: list[str] = ["*"]
    cors_credentials: bool = True
    cors_methods: list[str] = ["*"]
    cors_headers: list[str] = ["*"]

    # Logging
    log_level: str = "INFO"

    # Secret store (Fernet keys, urlsafe base64). First key encrypts, all keys decrypt.
    encryption_keys: list[str] = []

    # Qdrant Configuration
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str | None = None
    qdrant_collection_name: str = "project-chunks"
    qdrant_prefer_grpc: bool = False
    qdrant_local_mode: bool = False
    qdrant_timeout: int = 30  # Timeout in seconds
    qdrant_local_path: str | None = None  # Local mode persists here; in-memory when unset
    qdrant_state_collection_name: str = "control-plane-state"

    # Ollama Configuration (local embedding models)
    ollama_base_url: str = "http://localhost:11434"
    embedding_timeout: float = 60.0  # Seconds per embedding request
    embedding_client_cache_size: int = 16  # Embedding clients kept per (model, credential)

    # RAG Defaults
    baseline_embedding_model: str = "nomic-embed-text"
    default_chunk_size: int = 512
    default_chunk_overlap: int = 128
    default_similarity_metric: Literal["cosine", "dot", "euclidean"] = "cosine"
    default_top_k: int = 5

    # Re-embed Configuration
    reembed_failure_threshold: float = 0.10  # Max permanent-failure rate before FAILED
    reembed_max_attempts: int = 3  # Attempts per chunk for transient errors
    reembed_backoff_min: float = 0.5  # Seconds
    reembed_backoff_max: float = 10.0  # Seconds
    reembed_page_size: int = 64  # Chunks fetched per page from the chunk store
    reembed_poll_interval: float = 2.0  # Suggested client polling interval (seconds)
    reembed_recover_on_startup: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
