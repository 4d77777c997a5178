"""Shared pytest fixtures for the ragvault test suite."""

from __future__ import annotations

import asyncio
import hashlib
import struct
from collections.abc import Callable
from typing import Any

import pytest
import structlog

import src.main  # noqa: F401  configures logging once, at import
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import ChunkRecord, CollectionInfo, RetrievedPassage
from src.utils.errors import CollectionNotFoundError, EmbeddingError, LLMError, VectorStoreError

# Cached loggers would keep writing to the first test's captured stdout.
structlog.configure(cache_logger_on_first_use=False)

# ---------------------------------------------------------------------------
# Deterministic embeddings
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 128


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic unit-length vector by hashing *text*.

    Same text always produces the same vector.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim * 4:
        raw += hashlib.sha256(raw).digest()
    values = [v / 2**31 - 1.0 for v in struct.unpack(f"<{dim}I", raw[: dim * 4])]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider that records its calls.

    Parameters
    ----------
    fail_on_call:
        1-based ``embed`` call number that raises :class:`EmbeddingError`.
    fail_reason:
        ``reason`` carried by that error.
    short_by:
        Return this many fewer vectors than texts on every call.
    on_call:
        Invoked with the call number before each ``embed`` returns.
    gate:
        When set, every ``embed`` call waits for this event first.
    """

    def __init__(
        self,
        fail_on_call: int | None = None,
        fail_reason: str = "other",
        short_by: int = 0,
        on_call: Callable[[int], None] | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.calls: list[list[str]] = []
        self._fail_on_call = fail_on_call
        self._fail_reason = fail_reason
        self._short_by = short_by
        self._on_call = on_call
        self._gate = gate

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        call_number = len(self.calls)
        if self._gate is not None:
            await self._gate.wait()
        if self._on_call is not None:
            self._on_call(call_number)
        if call_number == self._fail_on_call:
            raise EmbeddingError(
                message="embedding backend exploded",
                provider_name="mock-embedding",
                reason=self._fail_reason,
            )
        vectors = [_hash_to_vector(t) for t in texts]
        return vectors[: len(vectors) - self._short_by] if self._short_by else vectors

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_model_name(self) -> str:
        return "mock-embed-text"

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True

    async def check_model_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# In-memory vector store
# ---------------------------------------------------------------------------


class MockVectorStore(IVectorStoreProvider):
    """Collection-addressed in-memory store with cosine distances.

    ``add_calls`` records the size of every ``add_records`` call;
    ``fail_on_add`` makes that 1-based call raise :class:`VectorStoreError`.
    """

    def __init__(self, fail_on_add: int | None = None) -> None:
        self._collections: dict[str, dict[str, Any]] = {}
        self.add_calls: list[int] = []
        self._fail_on_add = fail_on_add
        self.on_add: Callable[[int], None] | None = None

    async def list_collections(self) -> list[CollectionInfo]:
        return [self._info(name) for name in self._collections]

    async def create_collection(
        self, name: str, metadata: dict[str, Any] | None = None
    ) -> CollectionInfo:
        self._collections.setdefault(name, {"metadata": dict(metadata or {}), "records": {}})
        return self._info(name)

    async def delete_collection(self, name: str) -> None:
        if name not in self._collections:
            raise CollectionNotFoundError(name, provider_name="mock-vector-store")
        del self._collections[name]

    async def get_collection(self, name: str) -> CollectionInfo:
        return self._info(name)

    async def add_records(self, collection_name: str, records: list[ChunkRecord]) -> int:
        self.add_calls.append(len(records))
        if self.on_add is not None:
            self.on_add(len(self.add_calls))
        if len(self.add_calls) == self._fail_on_add:
            raise VectorStoreError(message="disk full", provider_name="mock-vector-store")
        stored = self._records(collection_name)
        for record in records:
            stored[record.id] = record
        return len(records)

    async def query(
        self,
        collection_name: str,
        query_embedding: list[float],
        top_k: int = 5,
    ) -> list[RetrievedPassage]:
        scored = []
        for record in self._records(collection_name).values():
            dot = sum(a * b for a, b in zip(query_embedding, record.embedding, strict=True))
            scored.append((max(0.0, 1.0 - dot), record))
        scored.sort(key=lambda pair: pair[0])
        return [self._passage(record, distance) for distance, record in scored[:top_k]]

    async def get_records(self, collection_name: str, ids: list[str]) -> list[RetrievedPassage]:
        stored = self._records(collection_name)
        return [self._passage(stored[i], 0.0) for i in ids if i in stored]

    async def count(self, collection_name: str) -> int:
        return len(self._records(collection_name))

    def get_provider_name(self) -> str:
        return "mock-vector-store"

    def is_available(self) -> bool:
        return True

    # -- test helpers --

    def stored_ids(self, collection_name: str) -> list[str]:
        return list(self._records(collection_name))

    def _records(self, name: str) -> dict[str, ChunkRecord]:
        if name not in self._collections:
            raise CollectionNotFoundError(name, provider_name="mock-vector-store")
        return self._collections[name]["records"]

    def _info(self, name: str) -> CollectionInfo:
        records = self._records(name)
        return CollectionInfo(
            name=name, count=len(records), metadata=self._collections[name]["metadata"]
        )

    @staticmethod
    def _passage(record: ChunkRecord, distance: float) -> RetrievedPassage:
        return RetrievedPassage(
            id=record.id,
            text=record.text,
            distance=distance,
            metadata=record.metadata.to_store_dict(),
        )


# ---------------------------------------------------------------------------
# Chat model
# ---------------------------------------------------------------------------


class MockLLMProvider(ILLMProvider):
    """Returns a canned completion, or raises :class:`LLMError` when ``fail``."""

    def __init__(self, response: str = "optimized search query", fail: bool = False) -> None:
        self.response = response
        self.fail = fail
        self.prompts: list[str] = []

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        self.prompts.append(user_prompt)
        if self.fail:
            raise LLMError(message="chat model offline", provider_name="mock-llm")
        return self.response

    def get_provider_name(self) -> str:
        return "mock-llm"

    def get_model_name(self) -> str:
        return "mock-chat"

    def is_available(self) -> bool:
        return True

    async def validate_credentials(self) -> bool:
        return not self.fail


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    """Mock IEmbeddingProvider returning deterministic hash-based vectors."""
    return MockEmbeddingProvider()


@pytest.fixture
def mock_vector_store() -> MockVectorStore:
    """Mock IVectorStoreProvider with an empty 'docs' collection."""
    store = MockVectorStore()
    store._collections["docs"] = {"metadata": {}, "records": {}}
    return store


@pytest.fixture
def mock_llm_provider() -> MockLLMProvider:
    return MockLLMProvider()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with the documented defaults, isolated from the local .env."""
    return Settings(_env_file=None, openai_api_key="", app_env="test")


@pytest.fixture
def sample_document_text() -> str:
    """Three paragraphs of roughly 800 characters each (about 2,400 total)."""
    paragraphs = []
    for topic in ("onboarding", "leave policy", "expense claims"):
        sentence = (
            f"The {topic} section explains what every employee needs to know "
            f"before their first week, including who to ask and which forms apply. "
        )
        paragraphs.append((sentence * 6)[:800].strip())
    return "\n\n".join(paragraphs)


@pytest.fixture
def long_document_text() -> str:
    """Text that chunks into exactly 120 chunks at default settings (one per paragraph)."""
    paragraphs = [
        f"Paragraph {i} covers clause {i} of the handbook in plain language. " * 8
        for i in range(120)
    ]
    return "\n\n".join(paragraphs)
