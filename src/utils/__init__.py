"""Utility modules for ragvault.

- **errors** -- exception hierarchy rooted at RagVaultError, raised by
  provider adapters.
- **result** -- the tagged ``Ok | Err`` result returned by remote-call
  wrappers, with the ingestion error taxonomy as tags.
- **logging** -- structlog setup (console in development, JSON in
  production) and job-scoped context binding.
"""

from src.utils.errors import (
    CollectionNotFoundError,
    ConfigurationError,
    EmbeddingError,
    ExtractionError,
    LLMError,
    ProviderUnavailableError,
    RagVaultError,
    VectorStoreError,
)
from src.utils.logging import bind_job_context, configure_logging, get_logger
from src.utils.result import Err, ErrorKind, Ok, Result, cancelled

__all__ = [
    "CollectionNotFoundError",
    "ConfigurationError",
    "EmbeddingError",
    "Err",
    "ErrorKind",
    "ExtractionError",
    "LLMError",
    "Ok",
    "ProviderUnavailableError",
    "RagVaultError",
    "Result",
    "VectorStoreError",
    "bind_job_context",
    "cancelled",
    "configure_logging",
    "get_logger",
]
