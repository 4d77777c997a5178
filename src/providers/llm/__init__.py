"""LLM provider adapters.

Two concrete implementations of ILLMProvider (src/interfaces/llm_provider.py):
    - OllamaLLMProvider -- local models via an Ollama server (llama3.1)
    - OpenAILLMProvider -- gpt-4o-mini, or any OpenAI-compatible API

At startup, main.py creates the provider matching the configuration
(OPENAI_API_KEY set, else Ollama) and stores it on FastAPI's app.state
for dependency injection.
"""

from src.providers.llm.ollama_provider import OllamaLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OllamaLLMProvider", "OpenAILLMProvider"]
