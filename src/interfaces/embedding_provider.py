"""Abstract base class for text-embedding service providers.

Defines the contract for generating embedding vectors from text.
Implementations wrap Nomic ``nomic-embed-text`` served by Ollama (the
default) or any OpenAI-compatible embeddings endpoint.

The same provider instance must embed both ingested chunks and retrieval
queries: vectors from different models live in different spaces and
comparing them silently ruins retrieval.  :meth:`get_model_name` exists so
callers can record and check which model produced a collection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   NomicEmbeddingProvider  -- nomic-embed-text via Ollama (local, default)
#   OpenAIEmbeddingProvider -- OpenAI / OpenAI-compatible embeddings API
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            Texts to embed in a single remote call.  Callers bound the
            batch size; providers do not re-split.

        Returns
        -------
        list[list[float]]
            Vectors positionally aligned with *texts*.

        Raises
        ------
        src.utils.errors.EmbeddingError
            If the embedding API call fails.  ``reason`` distinguishes
            connection-refused, timeout and model errors.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for one text (e.g. a search query)."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Example values: ``768`` (``nomic-embed-text``), ``1536``
        (``text-embedding-3-small``).
        """

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the embedding model identifier, e.g. ``"nomic-embed-text"``."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier for this provider, e.g. ``"nomic_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable.

        Must not generate an embedding.
        """

    @abstractmethod
    async def check_model_available(self) -> bool:
        """Actively confirm the embedding model can be used.

        For Ollama this means the model appears in ``/api/tags``.
        """
