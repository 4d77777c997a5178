"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports both real OpenAI and OpenAI-compatible providers (TogetherAI,
Fireworks, a remote Ollama behind a proxy) via custom ``base_url`` and
model name settings.
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.providers.embedding.nomic_embedding_provider import embedding_error_reason
from src.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

# Known embedding model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
    "nomic-ai/nomic-embed-text-v1.5": 768,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` (1536 dims) by default.  When
    ``openai_base_url`` is configured, the client points at that URL and
    uses ``openai_embedding_model`` if set.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        # No key means no client; the SDK raises on an empty key.
        self._client: openai.AsyncOpenAI | None = None
        if self._api_key:
            # Ingestion batches can be large, so use the general request timeout
            # rather than the short chat timeout.
            client_kwargs: dict = {
                "api_key": self._api_key,
                "timeout": settings.request_timeout_seconds,
            }
            if settings.openai_base_url:
                client_kwargs["base_url"] = settings.openai_base_url
            self._client = openai.AsyncOpenAI(**client_kwargs)

        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        # Unknown models fall back to 768, the common open-model width.
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 768)
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts in one request."""
        if not texts:
            return []
        if self._client is None:
            raise EmbeddingError(
                message="OpenAI API key is not configured",
                provider_name=self.get_provider_name(),
                reason="other",
            )

        # One request per batch; the API keeps input order in ``data``.
        try:
            response = await self._client.embeddings.create(input=texts, model=self._model)
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
                reason=embedding_error_reason(exc),
            ) from exc

        logger.debug(
            "openai_embedding_batch",
            model=self._model,
            provider=self._provider_label,
            batch_size=len(texts),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return [item.embedding for item in response.data]

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        if not result:
            raise EmbeddingError(
                message="Embedding service returned no vector",
                provider_name=self.get_provider_name(),
            )
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_model_name(self) -> str:
        return self._model

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    async def check_model_available(self) -> bool:
        """Return ``True`` if the endpoint lists the configured model."""
        if self._client is None:
            return False
        try:
            # Compatible hosts that lack a models endpoint report an APIError here.
            await self._client.models.retrieve(self._model)
        except openai.APIError as exc:
            logger.warning("embedding_model_unavailable", model=self._model, error=str(exc))
            return False
        return True
