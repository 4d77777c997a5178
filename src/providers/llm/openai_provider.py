"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
When a custom ``openai_base_url`` is configured (TogetherAI, Groq,
Fireworks, a hosted Ollama), the client points at that URL instead of the
default OpenAI endpoint, so one adapter covers every provider that speaks
the OpenAI chat protocol.
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible API.

    Uses ``gpt-4o-mini`` by default; ``OPENAI_CHAT_MODEL`` overrides it.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        # The SDK refuses an empty key at construction time, so without one
        # there is no client and every call reports the missing key instead.
        self._client: openai.AsyncOpenAI | None = None
        if self._api_key:
            # Query rewriting sits in front of every chat turn, so fail fast.
            client_kwargs: dict = {
                "api_key": self._api_key,
                "timeout": openai.Timeout(25.0, connect=5.0),
            }
            # Any OpenAI-compatible host works here; the default is api.openai.com.
            if settings.openai_base_url:
                client_kwargs["base_url"] = settings.openai_base_url
            self._client = openai.AsyncOpenAI(**client_kwargs)

        # Cheap model by default; rewriting needs no reasoning depth.
        self._text_model = settings.openai_chat_model or "gpt-4o-mini"
        self._provider_label = "openai-compatible" if settings.openai_base_url else "openai"

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
        """Generate a text completion via the OpenAI-compatible chat API."""
        if self._client is None:
            raise LLMError(
                message="OpenAI API key is not configured",
                provider_name=self.get_provider_name(),
            )

        # Some compatible hosts reject an empty system message, so omit it.
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
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._provider_label} timed out after 25s",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        # A content filter or a tool-only reply leaves ``content`` as None.
        content = response.choices[0].message.content if response.choices else None
        if content is None:
            raise LLMError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_completion",
            model=self._text_model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """List models to confirm the key is accepted, without inference cost."""
        if self._client is None:
            return False
        try:
            # Listing models is free; a chat call would bill a token.
            await self._client.models.list()
            return True
        except openai.APIError:
            return False

    def get_model_name(self) -> str:
        return self._text_model

    def get_provider_name(self) -> str:
        return self._provider_label
