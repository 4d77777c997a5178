"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
These vectors are stored in ChromaDB and used for similarity search.

Two implementations of IEmbeddingProvider:
    1. NomicEmbeddingProvider  -- nomic-embed-text via Ollama (768 dims).
       Free and local; the default.
    2. OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims) or any
       OpenAI-compatible endpoint.  Selected when OPENAI_API_KEY is set.

A collection must be queried with the provider that filled it.
"""

from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider", "NomicEmbeddingProvider"]
