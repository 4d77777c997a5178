"""Nomic embedding provider adapter (local/free via Ollama).

Wraps the Ollama OpenAI-compatible endpoint to implement
:class:`IEmbeddingProvider` using ``nomic-embed-text`` (768 dimensions) or
whichever model ``EMBEDDING_MODEL`` names.  Runs locally with no API key.

Ollama's native ``/api/tags`` endpoint is used for health checks and for
confirming the model has been pulled.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

# Known embedding model dimensions for models commonly pulled into Ollama.
_MODEL_DIMENSIONS: dict[str, int] = {
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "snowflake-arctic-embed": 1024,
}


def embedding_error_reason(exc: Exception) -> str:
    """Classify an ``openai`` client error for user-facing translation.

    Returns one of ``"timeout"``, ``"connection_refused"``, ``"model"`` or
    ``"other"``.
    """
    # APITimeoutError subclasses APIConnectionError, so test it first.
    if isinstance(exc, openai.APITimeoutError):
        return "timeout"
    if isinstance(exc, openai.APIConnectionError):
        return "connection_refused"
    if isinstance(exc, openai.NotFoundError):
        return "model"

    text = str(exc).lower()
    if "econnrefused" in text or "connection refused" in text:
        return "connection_refused"
    if "model" in text:
        return "model"
    if "timeout" in text or "timed out" in text:
        return "timeout"
    return "other"


class NomicEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a model served via Ollama.

    Communicates through the OpenAI-compatible ``/v1`` endpoint that Ollama
    exposes.  Each :meth:`embed` call is a single request; callers bound
    the batch size.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._base_url = settings.ollama_base_url.rstrip("/")
        # Embeddings go through /v1; model listing uses the native /api/tags.
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",  # Ollama doesn't require a real key
            timeout=settings.request_timeout_seconds,
        )
        self._model = settings.embedding_model
        # Tags such as ":latest" do not change the vector width.
        self._dimension = _MODEL_DIMENSIONS.get(self._model.split(":")[0], 768)

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts in one request."""
        if not texts:
            return []

        # Ollama answers a batch with vectors in input order.
        try:
            response = await self._client.embeddings.create(input=texts, model=self._model)
        except openai.APIError as exc:
            reason = embedding_error_reason(exc)
            logger.warning(
                "nomic_embedding_failed",
                model=self._model,
                batch_size=len(texts),
                reason=reason,
                error=str(exc),
            )
            raise EmbeddingError(
                message=f"Nomic/Ollama embedding API error: {exc}",
                provider_name=self.get_provider_name(),
                reason=reason,
            ) from exc

        embeddings = [item.embedding for item in response.data]
        logger.debug(
            "nomic_embedding_batch",
            model=self._model,
            batch_size=len(texts),
            dimension=len(embeddings[0]) if embeddings else 0,
        )
        return embeddings

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
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
        return "nomic_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server is reachable."""
        if not self._base_url:
            return False
        # The interface method is synchronous, so this is a blocking request.
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
            return response.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False

    async def check_model_available(self) -> bool:
        """Return ``True`` if the configured model appears in ``/api/tags``."""
        models = await self.list_models()
        # Ollama reports "nomic-embed-text:latest" for a bare "nomic-embed-text".
        return any(self._model in name for name in models)

    async def list_models(self) -> list[str]:
        """Return the names of every model pulled into the Ollama server.

        Raises
        ------
        EmbeddingError
            If the server cannot be reached or answers with an error.
        """
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self._base_url}/api/tags")
                response.raise_for_status()
        except httpx.ConnectError as exc:
            raise EmbeddingError(
                message=f"Cannot reach Ollama at {self._base_url}: {exc}",
                provider_name=self.get_provider_name(),
                reason="connection_refused",
            ) from exc
        except httpx.TimeoutException as exc:
            raise EmbeddingError(
                message=f"Ollama at {self._base_url} timed out",
                provider_name=self.get_provider_name(),
                reason="timeout",
            ) from exc
        # Any other transport failure or a non-2xx status.
        except httpx.HTTPError as exc:
            raise EmbeddingError(
                message=f"Ollama model listing failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        return [model.get("name", "") for model in response.json().get("models", [])]
