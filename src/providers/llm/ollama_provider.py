"""Ollama LLM provider adapter.

Wraps a local Ollama server via its OpenAI-compatible API endpoint, using
the ``openai`` client library pointed at the Ollama base URL.  Used to
rewrite chat messages into search queries before retrieval, so the whole
knowledge base runs offline with no API costs.

Setup: install Ollama (https://ollama.ai), ``ollama pull llama3.1`` and
``ollama pull nomic-embed-text``, then set OLLAMA_BASE_URL.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


class OllamaLLMProvider(ILLMProvider):
    """LLM provider backed by a local Ollama server.

    Ollama exposes an OpenAI-compatible ``/v1`` API, so this adapter reuses
    the ``openai.AsyncOpenAI`` client with a different base URL.  The
    model defaults to ``llama3.1`` and follows ``CHAT_MODEL``.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        # Trailing slash stripped so "/v1" and "/api/tags" join cleanly.
        self._base_url = settings.ollama_base_url.rstrip("/")
        # The OpenAI-compatible surface lives under /v1; native endpoints do not.
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            # The openai SDK insists on a non-empty key; Ollama ignores it.
            api_key="ollama",
            timeout=settings.request_timeout_seconds,
        )
        self._text_model = settings.chat_model

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion via Ollama's OpenAI-compatible API."""
        # Small local models follow a separate system turn better than a prefix.
        messages = [{"role": "user", "content": user_prompt}]
        if system_prompt:
            messages.insert(0, {"role": "system", "content": system_prompt})
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        # APIConnectionError is an APIError, so a stopped server lands here too.
        except openai.APIError as exc:
            raise LLMError(
                message=f"Ollama API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        # An unloaded or unknown model can come back with no choices at all.
        content = response.choices[0].message.content if response.choices else None
        if content is None:
            raise LLMError(
                message="Ollama returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info("ollama_completion", model=self._text_model)
        return content

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama base URL is configured."""
        return bool(self._base_url)

    async def validate_credentials(self) -> bool:
        """Check that the Ollama server answers on ``/api/tags``.

        There is no key to verify; a 200 from the native model listing means
        the server is up at the configured URL.
        """
        if not self.is_available():
            return False
        # Short timeout; this runs on the health path.
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self._base_url}/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False

    def get_model_name(self) -> str:
        return self._text_model

    def get_provider_name(self) -> str:
        return "ollama"
