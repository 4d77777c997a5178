"""Public interface definitions for all external service providers.

Every external service is reached only through the abstract base classes
in this package.  Concrete adapters implement them and are constructed in
``src/main.py`` (or the CLI) and injected into services, so tests can pass
in-memory doubles instead.

    Interface              ->  Concrete implementations
    ---------------------------------------------------------------
    IEmbeddingProvider     ->  NomicEmbeddingProvider, OpenAIEmbeddingProvider
    ILLMProvider           ->  OllamaLLMProvider, OpenAILLMProvider
    IVectorStoreProvider   ->  ChromaDBProvider
    ITextExtractor         ->  DocumentTextExtractor
"""

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.text_extractor import ITextExtractor
from src.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IEmbeddingProvider",
    "ILLMProvider",
    "ITextExtractor",
    "IVectorStoreProvider",
]
