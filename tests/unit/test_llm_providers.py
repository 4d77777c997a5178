"""Unit tests for LLM provider adapters: Ollama, OpenAI."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from src.config.settings import Settings
from src.utils.errors import LLMError

# ======================================================================
# Shared helpers
# ======================================================================

_REQUEST = httpx.Request("POST", "http://localhost:11434/v1/chat/completions")


def _settings(**overrides) -> Settings:
    defaults = {
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "openai_chat_model": "",
        "ollama_base_url": "http://localhost:11434",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


def _chat_response(content: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    response.usage = MagicMock(total_tokens=100)
    return response


# ======================================================================
# Ollama LLM Provider
# ======================================================================


class TestOllamaLLMProvider:
    @pytest.fixture()
    def settings(self) -> Settings:
        return _settings(openai_api_key="")

    def test_identity(self, settings: Settings) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        provider = OllamaLLMProvider(settings)
        assert provider.get_provider_name() == "ollama"
        assert provider.get_model_name() == "llama3.1"
        assert provider.is_available() is True

    @pytest.mark.asyncio()
    async def test_complete_sends_system_and_user(self, settings: Settings) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_chat_response("ok"))
        with patch(
            "src.providers.llm.ollama_provider.openai.AsyncOpenAI", return_value=mock_client
        ):
            provider = OllamaLLMProvider(settings)
            result = await provider.complete("system prompt", "user prompt", temperature=0.0)

        assert result == "ok"
        messages = mock_client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["role"] for m in messages] == ["system", "user"]

    @pytest.mark.asyncio()
    async def test_complete_without_system_prompt(self, settings: Settings) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_chat_response("ok"))
        with patch(
            "src.providers.llm.ollama_provider.openai.AsyncOpenAI", return_value=mock_client
        ):
            provider = OllamaLLMProvider(settings)
            await provider.complete("", "user prompt")

        messages = mock_client.chat.completions.create.call_args.kwargs["messages"]
        assert messages == [{"role": "user", "content": "user prompt"}]

    @pytest.mark.asyncio()
    async def test_complete_error(self, settings: Settings) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(
            side_effect=openai.APIConnectionError(request=_REQUEST)
        )
        with patch(
            "src.providers.llm.ollama_provider.openai.AsyncOpenAI", return_value=mock_client
        ):
            provider = OllamaLLMProvider(settings)
            with pytest.raises(LLMError):
                await provider.complete("system", "user")

    @pytest.mark.asyncio()
    async def test_empty_response(self, settings: Settings) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_chat_response(None))
        with patch(
            "src.providers.llm.ollama_provider.openai.AsyncOpenAI", return_value=mock_client
        ):
            provider = OllamaLLMProvider(settings)
            with pytest.raises(LLMError, match="empty response"):
                await provider.complete("system", "user")

    @pytest.mark.asyncio()
    async def test_validate_credentials(self, settings: Settings) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"models": []}))
        real_client = httpx.AsyncClient

        def client_factory(**kwargs) -> httpx.AsyncClient:
            return real_client(transport=transport, **kwargs)

        provider = OllamaLLMProvider(settings)
        with patch(
            "src.providers.llm.ollama_provider.httpx.AsyncClient", side_effect=client_factory
        ):
            assert await provider.validate_credentials() is True

    @pytest.mark.asyncio()
    async def test_validate_credentials_unreachable(self, settings: Settings) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        transport = httpx.MockTransport(handler)
        real_client = httpx.AsyncClient

        def client_factory(**kwargs) -> httpx.AsyncClient:
            return real_client(transport=transport, **kwargs)

        provider = OllamaLLMProvider(settings)
        with patch(
            "src.providers.llm.ollama_provider.httpx.AsyncClient", side_effect=client_factory
        ):
            assert await provider.validate_credentials() is False


# ======================================================================
# OpenAI LLM Provider
# ======================================================================


class TestOpenAILLMProvider:
    @pytest.fixture()
    def settings(self) -> Settings:
        return _settings()

    def test_defaults(self, settings: Settings) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        provider = OpenAILLMProvider(settings)
        assert provider.get_provider_name() == "openai"
        assert provider.get_model_name() == "gpt-4o-mini"

    def test_compatible_endpoint(self) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        provider = OpenAILLMProvider(
            _settings(openai_base_url="https://api.groq.com/openai/v1", openai_chat_model="m")
        )
        assert provider.get_provider_name() == "openai-compatible"
        assert provider.get_model_name() == "m"

    def test_is_available_without_key(self) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        assert OpenAILLMProvider(_settings(openai_api_key="")).is_available() is False

    @pytest.mark.asyncio()
    async def test_complete_success(self, settings: Settings) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(
            return_value=_chat_response("LLM response text")
        )
        with patch(
            "src.providers.llm.openai_provider.openai.AsyncOpenAI", return_value=mock_client
        ):
            provider = OpenAILLMProvider(settings)
            result = await provider.complete("system prompt", "user prompt")

        assert result == "LLM response text"

    @pytest.mark.asyncio()
    async def test_timeout(self, settings: Settings) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(
            side_effect=openai.APITimeoutError(request=_REQUEST)
        )
        with patch(
            "src.providers.llm.openai_provider.openai.AsyncOpenAI", return_value=mock_client
        ):
            provider = OpenAILLMProvider(settings)
            with pytest.raises(LLMError, match="timed out"):
                await provider.complete("system", "user")

    @pytest.mark.asyncio()
    async def test_validate_credentials(self, settings: Settings) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        mock_client = AsyncMock()
        mock_client.models.list = AsyncMock(
            side_effect=openai.APIError(message="bad key", request=_REQUEST, body=None)
        )
        with patch(
            "src.providers.llm.openai_provider.openai.AsyncOpenAI", return_value=mock_client
        ):
            provider = OpenAILLMProvider(settings)
            assert await provider.validate_credentials() is False

    @pytest.mark.asyncio()
    async def test_validate_credentials_without_key(self) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        assert await OpenAILLMProvider(_settings(openai_api_key="")).validate_credentials() is False

    @pytest.mark.asyncio()
    async def test_complete_without_key_skips_client(self) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        with patch("src.providers.llm.openai_provider.openai.AsyncOpenAI") as client_cls:
            provider = OpenAILLMProvider(_settings(openai_api_key=""))
            with pytest.raises(LLMError, match="API key is not configured"):
                await provider.complete("system", "user")

        client_cls.assert_not_called()
