"""Abstract base class for vector-store service providers.

Defines the contract for named collections of embedded chunk records.
Storage, indexing and the distance computation all belong to the backend;
this layer only addresses collections by name and records by id, and never
caches collection contents.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.rag import ChunkRecord, CollectionInfo, RetrievedPassage


# Concrete implementation: ChromaDBProvider (src/providers/vector_store/)
class IVectorStoreProvider(ABC):
    """Contract for vector-store services used by ingestion and retrieval.

    All methods are async so network-backed stores do not block the event
    loop.
    """

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_collections(self) -> list[CollectionInfo]:
        """Return every collection in the store."""

    @abstractmethod
    async def create_collection(
        self, name: str, metadata: dict[str, Any] | None = None
    ) -> CollectionInfo:
        """Create (or return the existing) collection called *name*."""

    @abstractmethod
    async def delete_collection(self, name: str) -> None:
        """Delete the collection and all of its records.

        Raises
        ------
        src.utils.errors.CollectionNotFoundError
            If no such collection exists.
        """

    @abstractmethod
    async def get_collection(self, name: str) -> CollectionInfo:
        """Resolve a collection by name.

        Raises
        ------
        src.utils.errors.CollectionNotFoundError
            If no such collection exists.
        """

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_records(self, collection_name: str, records: list[ChunkRecord]) -> int:
        """Write *records* to the collection in a single call.

        The call is atomic from the caller's point of view; callers bound
        its size.

        Returns
        -------
        int
            Number of records written.

        Raises
        ------
        src.utils.errors.CollectionNotFoundError
            If the collection does not exist.
        src.utils.errors.VectorStoreError
            If the write fails.
        """

    @abstractmethod
    async def query(
        self,
        collection_name: str,
        query_embedding: list[float],
        top_k: int = 5,
    ) -> list[RetrievedPassage]:
        """Return up to *top_k* records nearest to *query_embedding*.

        Results are ordered by ascending distance (0-2, lower is more
        similar).

        Raises
        ------
        src.utils.errors.CollectionNotFoundError
            If the collection does not exist.
        src.utils.errors.VectorStoreError
            If the query fails.
        """

    @abstractmethod
    async def get_records(self, collection_name: str, ids: list[str]) -> list[RetrievedPassage]:
        """Fetch records by id.  Missing ids are skipped; distance is 0."""

    @abstractmethod
    async def count(self, collection_name: str) -> int:
        """Return the number of records in the collection."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store answers a heartbeat."""
