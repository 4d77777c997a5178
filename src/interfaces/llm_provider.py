"""Abstract base class for LLM service providers.

Defines the contract for the chat-completion backend used to rewrite user
messages into search queries.  Implementations wrap a local Ollama server
or any OpenAI-compatible API.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: OllamaLLMProvider, OpenAILLMProvider
# Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for text-completion services."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The user-facing prompt containing the actual request.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        src.utils.errors.LLMError
            If the API call fails or returns an empty response.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"ollama"``."""

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the chat model identifier, e.g. ``"llama3.1"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured.

        Does not contact the remote service.
        """

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Perform a lightweight call to confirm the service answers.

        Unlike :meth:`is_available`, this contacts the remote service.
        """
