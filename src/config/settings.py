"""Application settings loaded from environment variables via pydantic-settings.

Values are read, highest priority first, from:

1. Environment variables (``OLLAMA_BASE_URL=http://gpu-box:11434``)
2. The ``.env`` file in the working directory
3. The defaults below

Field ``chunk_size`` maps to env var ``CHUNK_SIZE`` and so on.  See
``.env.example`` for the full list.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """ragvault application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Model services ===
    # Ollama serves both the embedding model and the chat model by default.
    ollama_base_url: str = "http://localhost:11434"
    embedding_model: str = "nomic-embed-text"
    chat_model: str = "llama3.1"
    # When set, embeddings and chat go to an OpenAI-compatible API instead.
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_embedding_model: str = ""
    openai_chat_model: str = ""
    request_timeout_seconds: float = 120.0

    # === Vector store ===
    # HTTP client against a running ChromaDB server unless a persist
    # directory is given, in which case an embedded PersistentClient is used.
    chromadb_host: str = "localhost"
    chromadb_port: int = 8000
    chromadb_persist_dir: str = ""

    # === Ingestion ===
    chunk_size: int = Field(default=800, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    min_chunk_chars: int = Field(default=50, ge=1)
    embedding_max_batch: int = Field(default=50, gt=0)
    store_max_batch: int = Field(default=5000, gt=0)
    max_upload_bytes: int = 50 * 1024 * 1024

    # === Retrieval ===
    retrieval_top_k: int = Field(default=5, gt=0)
    rewrite_queries: bool = True

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 3000
    app_env: str = "development"
    log_level: str = "INFO"
    # Comma-separated; empty allows any origin.
    cors_origins: str = ""

    @model_validator(mode="after")
    def _overlap_below_chunk_size(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )
        return self

    def uses_openai(self) -> bool:
        """Return ``True`` when an OpenAI-compatible API key is configured."""
        return bool(self.openai_api_key)
