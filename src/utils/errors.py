"""Custom exception hierarchy for ragvault.

All application exceptions inherit from :class:`RagVaultError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "ollama", "chromadb", "openai") caused the failure.

    RagVaultError  (base -- catch-all for any ragvault error)
    +-- ConfigurationError       (startup / invalid parameters)
    +-- ProviderUnavailableError (external service down / unreachable)
    +-- ExtractionError          (PDF / text decoding)
    +-- LLMError                 (chat completion failure)
    +-- EmbeddingError           (embedding service failure)
    +-- VectorStoreError         (vector store read / write failure)
        +-- CollectionNotFoundError

Provider adapters raise these.  The ingestion and retrieval services catch
them at their remote-call boundary and convert them into tagged
:class:`~src.utils.result.Err` values, so control flow above the adapters
never depends on exceptions for expected failures.
"""


class RagVaultError(Exception):
    """Base exception for all ragvault errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider name in brackets
    for log output, e.g. ``[ollama] connection refused``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration / availability
# ---------------------------------------------------------------------------

class ConfigurationError(RagVaultError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderUnavailableError(RagVaultError):
    """Raised when an external service or provider is unreachable."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class ExtractionError(RagVaultError):
    """Raised when text cannot be extracted from an uploaded document."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Model services
# ---------------------------------------------------------------------------

class LLMError(RagVaultError):
    """Raised when an LLM API call fails or returns an unusable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(RagVaultError):
    """Raised when the embedding service fails.

    ``reason`` distinguishes the sub-cases surfaced to users:
    ``"connection_refused"``, ``"timeout"``, ``"model"`` or ``"other"``.
    """

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
        reason: str = "other",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._reason = reason

    @property
    def reason(self) -> str:
        return self._reason


# ---------------------------------------------------------------------------
# Vector store
# ---------------------------------------------------------------------------

class VectorStoreError(RagVaultError):
    """Raised when a vector-store operation fails."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class CollectionNotFoundError(VectorStoreError):
    """Raised when a named collection does not exist in the vector store."""

    def __init__(
        self,
        collection_name: str,
        provider_name: str | None = None,
    ) -> None:
        super().__init__(
            message=f'Collection "{collection_name}" not found',
            provider_name=provider_name,
        )
        self._collection_name = collection_name

    @property
    def collection_name(self) -> str:
        return self._collection_name
