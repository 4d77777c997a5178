"""ChromaDB vector store provider adapter.

Wraps ``chromadb.HttpClient`` (a running Chroma server, the default) or
``chromadb.PersistentClient`` (embedded, when a persist directory is
configured) to implement :class:`IVectorStoreProvider`.

Collections are created with cosine distance, so query distances run from
0 (identical direction) to 2 (opposite).  Embeddings are always computed by
our own :class:`IEmbeddingProvider` and passed in explicitly.

The chromadb client is synchronous.  Every call goes through
:func:`asyncio.to_thread` so a slow write does not stall progress streaming
or disconnect detection on the event loop.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from typing import Any, TypeVar

# Disable ChromaDB telemetry completely before importing chromadb.
# A version mismatch between ChromaDB's bundled PostHog client and the
# installed one raises "capture() takes 1 positional argument but 3 were
# given" on every call, so telemetry is switched off three ways:
#   1. ANONYMIZED_TELEMETRY env var
#   2. posthog.disabled = True
#   3. Settings(anonymized_telemetry=False) passed to the client
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import chromadb.errors
import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import ChunkRecord, CollectionInfo, RetrievedPassage
from src.utils.errors import CollectionNotFoundError, ProviderUnavailableError, VectorStoreError

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")

_DISTANCE_SPACE = {"hnsw:space": "cosine"}

_NOT_FOUND_ERRORS = (chromadb.errors.NotFoundError,)


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    Without it, ChromaDB downloads and loads its default all-MiniLM-L6-v2
    ONNX model (~80 MB) on collection access, and a collection created with
    it would silently embed with a different model than ingestion used.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "ragvault uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store provider backed by ChromaDB.

    Parameters
    ----------
    host, port:
        Chroma server address, used when *persist_directory* is empty.
    persist_directory:
        When set, use an embedded ``PersistentClient`` at this path.
    client:
        A pre-built chromadb client (tests pass ``EphemeralClient``).
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8000,
        persist_directory: str = "",
        client: Any | None = None,
    ) -> None:
        client_settings = chromadb.config.Settings(anonymized_telemetry=False)
        if client is not None:
            self._client = client
            self._location = "injected"
        elif persist_directory:
            self._client = chromadb.PersistentClient(path=persist_directory, settings=client_settings)
            self._location = persist_directory
        else:
            self._location = f"{host}:{port}"
            try:
                self._client = chromadb.HttpClient(host=host, port=port, settings=client_settings)
            except Exception as exc:
                # HttpClient validates the tenant on construction, so a dead
                # server fails here rather than on first use.
                raise ProviderUnavailableError(
                    message=f"Cannot reach ChromaDB at {self._location}: {exc}",
                    provider_name="chromadb",
                ) from exc
        self._embedding_function = _NoopEmbeddingFunction()
        logger.info("chromadb_client_ready", location=self._location)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def list_collections(self) -> list[CollectionInfo]:
        try:
            collections = await self._call(self._client.list_collections)
            infos: list[CollectionInfo] = []
            for entry in collections:
                # chromadb 0.6 returned bare names; 1.x returns Collection objects.
                collection = (
                    await self._call(self._open, entry) if isinstance(entry, str) else entry
                )
                infos.append(await self._call(self._info, collection))
            return infos
        except VectorStoreError:
            raise
        except Exception as exc:
            raise self._error("list_collections", exc) from exc

    async def create_collection(
        self, name: str, metadata: dict[str, Any] | None = None
    ) -> CollectionInfo:
        try:
            collection = await self._call(
                self._client.get_or_create_collection,
                name=name,
                metadata={**_DISTANCE_SPACE, **(metadata or {})},
                embedding_function=self._embedding_function,
            )
            logger.info("chromadb_collection_created", collection=name)
            return await self._call(self._info, collection)
        except Exception as exc:
            raise self._error("create_collection", exc) from exc

    async def delete_collection(self, name: str) -> None:
        try:
            await self._call(self._client.delete_collection, name=name)
        except _NOT_FOUND_ERRORS as exc:
            raise CollectionNotFoundError(name, provider_name=self.get_provider_name()) from exc
        except Exception as exc:
            raise self._error("delete_collection", exc) from exc
        logger.info("chromadb_collection_deleted", collection=name)

    async def get_collection(self, name: str) -> CollectionInfo:
        collection = await self._get(name)
        try:
            return await self._call(self._info, collection)
        except Exception as exc:
            raise self._error("get_collection", exc) from exc

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def add_records(self, collection_name: str, records: list[ChunkRecord]) -> int:
        if not records:
            return 0
        collection = await self._get(collection_name)
        try:
            await self._call(
                collection.add,
                ids=[r.id for r in records],
                embeddings=[r.embedding for r in records],
                documents=[r.text for r in records],
                metadatas=[r.metadata.to_store_dict() for r in records],
            )
        except Exception as exc:
            raise self._error("add_records", exc) from exc

        logger.info("chromadb_add_records", collection=collection_name, count=len(records))
        return len(records)

    async def query(
        self,
        collection_name: str,
        query_embedding: list[float],
        top_k: int = 5,
    ) -> list[RetrievedPassage]:
        collection = await self._get(collection_name)
        try:
            results = await self._call(
                collection.query,
                query_embeddings=[query_embedding],
                n_results=top_k,
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise self._error("query", exc) from exc

        ids = (results.get("ids") or [[]])[0]
        if not ids:
            return []
        documents = (results.get("documents") or [[""] * len(ids)])[0]
        metadatas = (results.get("metadatas") or [[{}] * len(ids)])[0]
        distances = (results.get("distances") or [[0.0] * len(ids)])[0]

        passages = [
            RetrievedPassage(
                id=chunk_id,
                text=doc or "",
                # Float error can push an exact match slightly below zero.
                distance=max(0.0, float(distance)),
                metadata=dict(meta or {}),
            )
            for chunk_id, doc, meta, distance in zip(
                ids, documents, metadatas, distances, strict=True
            )
        ]
        logger.info(
            "chromadb_query",
            collection=collection_name,
            results_count=len(passages),
            top_distance=passages[0].distance,
        )
        return passages

    async def get_records(self, collection_name: str, ids: list[str]) -> list[RetrievedPassage]:
        if not ids:
            return []
        collection = await self._get(collection_name)
        try:
            page = await self._call(collection.get, ids=ids, include=["documents", "metadatas"])
        except Exception as exc:
            raise self._error("get_records", exc) from exc

        found_ids = page.get("ids") or []
        documents = page.get("documents") or [""] * len(found_ids)
        metadatas = page.get("metadatas") or [{}] * len(found_ids)
        return [
            RetrievedPassage(id=chunk_id, text=doc or "", distance=0.0, metadata=dict(meta or {}))
            for chunk_id, doc, meta in zip(found_ids, documents, metadatas, strict=True)
        ]

    async def count(self, collection_name: str) -> int:
        collection = await self._get(collection_name)
        try:
            return await self._call(collection.count)
        except Exception as exc:
            raise self._error("count", exc) from exc

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB server answers a heartbeat."""
        try:
            self._client.heartbeat()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _call(fn: Callable[..., _T], *args: Any, **kwargs: Any) -> _T:
        return await asyncio.to_thread(fn, *args, **kwargs)

    def _open(self, name: str) -> Any:
        """Open a collection with the no-op embedding function.

        Collections created by other clients with ChromaDB's default
        function reject a mismatching one, so retry without it.
        """
        try:
            return self._client.get_collection(name=name, embedding_function=self._embedding_function)
        except _NOT_FOUND_ERRORS:
            raise
        except ValueError:
            return self._client.get_collection(name=name)

    async def _get(self, name: str) -> Any:
        try:
            return await self._call(self._open, name)
        except _NOT_FOUND_ERRORS as exc:
            raise CollectionNotFoundError(name, provider_name=self.get_provider_name()) from exc
        except Exception as exc:
            raise self._error("get_collection", exc) from exc

    @staticmethod
    def _info(collection: Any) -> CollectionInfo:
        return CollectionInfo(
            name=collection.name,
            count=collection.count(),
            metadata=dict(collection.metadata or {}),
        )

    def _error(self, operation: str, exc: Exception) -> VectorStoreError:
        logger.error("chromadb_operation_failed", operation=operation, error=str(exc))
        return VectorStoreError(
            message=f"ChromaDB {operation} failed: {exc}",
            provider_name=self.get_provider_name(),
        )
