"""Unit tests for EmbeddingBatcher and StoreWriter sub-batching."""

from __future__ import annotations

import asyncio
import time

import pytest

from src.models.rag import Chunk, ChunkRecord
from src.pipeline.cancellation import CancellationToken
from src.services.ingestion.embedding_batcher import (
    EmbeddingBatcher,
    count_batches,
    embedding_failure_message,
)
from src.services.ingestion.identifiers import build_records
from src.services.ingestion.store_writer import StoreWriter
from src.utils.errors import EmbeddingError
from src.utils.result import Err, ErrorKind, Ok
from tests.conftest import MockEmbeddingProvider, MockVectorStore, _hash_to_vector


def _texts(count: int) -> list[str]:
    return [f"chunk number {i}" for i in range(count)]


def _records(count: int) -> list[ChunkRecord]:
    chunks = [Chunk(index=i, text=t, length=len(t)) for i, t in enumerate(_texts(count))]
    vectors = [_hash_to_vector(c.text) for c in chunks]
    return build_records("a.txt", "text/plain", 100, chunks, vectors, 1717171717171)


def _store_with_docs(**kwargs: object) -> MockVectorStore:
    store = MockVectorStore(**kwargs)
    store._collections["docs"] = {"metadata": {}, "records": {}}
    return store


class _ThreadedStore(MockVectorStore):
    """Writes in a worker thread, slowly, like the ChromaDB adapter."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self._collections["docs"] = {"metadata": {}, "records": {}}
        self._delay = delay
        self.write_started = asyncio.Event()

    async def add_records(self, collection_name: str, records: list[ChunkRecord]) -> int:
        self.write_started.set()
        await asyncio.to_thread(time.sleep, self._delay)
        return await super().add_records(collection_name, records)


# ======================================================================
# Batch arithmetic and messages
# ======================================================================


class TestCountBatches:
    @pytest.mark.parametrize(
        ("total", "max_batch", "expected"),
        [(0, 50, 0), (1, 50, 1), (50, 50, 1), (51, 50, 2), (120, 50, 3), (120, 5000, 1)],
    )
    def test_ceil(self, total: int, max_batch: int, expected: int) -> None:
        assert count_batches(total, max_batch) == expected


class TestFailureMessages:
    def test_connection_refused(self) -> None:
        exc = EmbeddingError("refused", reason="connection_refused")
        assert embedding_failure_message(exc, "nomic-embed-text") == (
            "Cannot connect to Ollama server. Please ensure Ollama is running."
        )

    def test_timeout(self) -> None:
        exc = EmbeddingError("slow", reason="timeout")
        assert embedding_failure_message(exc, "nomic-embed-text") == (
            "Request timeout. The embedding request took too long."
        )

    def test_unknown_model(self) -> None:
        exc = EmbeddingError("model not found", reason="model")
        message = embedding_failure_message(exc, "nomic-embed-text")
        assert message.startswith("Model error: model not found")
        assert "'nomic-embed-text' is available in Ollama" in message

    def test_other(self) -> None:
        exc = EmbeddingError("weird")
        assert embedding_failure_message(exc, "m") == "Failed to generate embeddings: weird"


# ======================================================================
# EmbeddingBatcher
# ======================================================================


class TestEmbeddingBatcher:
    @pytest.mark.asyncio()
    async def test_splits_into_bounded_batches_in_order(self) -> None:
        provider = MockEmbeddingProvider()
        texts = _texts(120)

        result = await EmbeddingBatcher(provider, max_batch=50).embed_all(
            texts, CancellationToken()
        )

        assert [len(call) for call in provider.calls] == [50, 50, 20]
        assert [t for call in provider.calls for t in call] == texts
        assert isinstance(result, Ok)
        assert result.value == [_hash_to_vector(t) for t in texts]

    @pytest.mark.asyncio()
    async def test_single_batch(self) -> None:
        provider = MockEmbeddingProvider()
        result = await EmbeddingBatcher(provider, max_batch=50).embed_all(
            _texts(10), CancellationToken()
        )

        assert len(provider.calls) == 1
        assert isinstance(result, Ok)
        assert len(result.value) == 10

    @pytest.mark.asyncio()
    async def test_reports_each_batch(self) -> None:
        seen: list[tuple[int, int]] = []

        async def on_batch(done: int, total: int) -> None:
            seen.append((done, total))

        await EmbeddingBatcher(MockEmbeddingProvider(), max_batch=50).embed_all(
            _texts(120), CancellationToken(), on_batch
        )
        assert seen == [(1, 3), (2, 3), (3, 3)]

    @pytest.mark.asyncio()
    async def test_empty_input(self) -> None:
        provider = MockEmbeddingProvider()
        result = await EmbeddingBatcher(provider).embed_all([], CancellationToken())

        assert result == Ok([])
        assert provider.calls == []

    @pytest.mark.asyncio()
    async def test_provider_failure_stops_the_run(self) -> None:
        provider = MockEmbeddingProvider(fail_on_call=2)
        result = await EmbeddingBatcher(provider, max_batch=50).embed_all(
            _texts(120), CancellationToken()
        )

        assert isinstance(result, Err)
        assert result.kind is ErrorKind.EMBEDDING_SERVICE_FAILURE
        assert result.message == "Failed to generate embeddings: embedding backend exploded"
        assert result.detail["batch"] == 2
        assert len(provider.calls) == 2

    @pytest.mark.asyncio()
    async def test_connection_failure_message(self) -> None:
        provider = MockEmbeddingProvider(fail_on_call=1, fail_reason="connection_refused")
        result = await EmbeddingBatcher(provider).embed_all(_texts(3), CancellationToken())

        assert isinstance(result, Err)
        assert result.message.startswith("Cannot connect to Ollama server")

    @pytest.mark.asyncio()
    async def test_short_batch_is_a_count_mismatch(self) -> None:
        provider = MockEmbeddingProvider(short_by=1)
        result = await EmbeddingBatcher(provider, max_batch=50).embed_all(
            _texts(120), CancellationToken()
        )

        assert isinstance(result, Err)
        assert result.kind is ErrorKind.EMBEDDING_COUNT_MISMATCH
        assert result.message == "Embedding count mismatch: expected 50, got 49"
        assert len(provider.calls) == 1

    @pytest.mark.asyncio()
    async def test_cancelled_before_start(self) -> None:
        provider = MockEmbeddingProvider()
        token = CancellationToken()
        token.cancel()

        result = await EmbeddingBatcher(provider).embed_all(_texts(3), token)

        assert isinstance(result, Err)
        assert result.is_cancelled
        assert provider.calls == []

    @pytest.mark.asyncio()
    async def test_cancelled_between_batches(self) -> None:
        token = CancellationToken()
        provider = MockEmbeddingProvider(on_call=lambda n: token.cancel() if n == 1 else None)

        result = await EmbeddingBatcher(provider, max_batch=50).embed_all(_texts(120), token)

        assert isinstance(result, Err)
        assert result.is_cancelled
        assert len(provider.calls) == 1

    def test_rejects_non_positive_batch(self) -> None:
        with pytest.raises(ValueError):
            EmbeddingBatcher(MockEmbeddingProvider(), max_batch=0)


# ======================================================================
# StoreWriter
# ======================================================================


class TestStoreWriter:
    @pytest.mark.asyncio()
    async def test_default_ceiling_writes_once(self) -> None:
        store = _store_with_docs()
        result = await StoreWriter(store).store_all("docs", _records(120), CancellationToken())

        assert result == Ok(120)
        assert store.add_calls == [120]

    @pytest.mark.asyncio()
    async def test_splits_writes(self) -> None:
        store = _store_with_docs()
        seen: list[tuple[int, int]] = []

        async def on_batch(done: int, total: int) -> None:
            seen.append((done, total))

        result = await StoreWriter(store, max_batch=50).store_all(
            "docs", _records(120), CancellationToken(), on_batch
        )

        assert result == Ok(120)
        assert store.add_calls == [50, 50, 20]
        assert seen == [(1, 3), (2, 3), (3, 3)]

    @pytest.mark.asyncio()
    async def test_failure_keeps_written_prefix(self) -> None:
        store = _store_with_docs(fail_on_add=2)
        records = _records(120)

        result = await StoreWriter(store, max_batch=50).store_all(
            "docs", records, CancellationToken()
        )

        assert isinstance(result, Err)
        assert result.kind is ErrorKind.STORE_WRITE_FAILURE
        assert result.message == (
            "Failed to save chunks to collection: disk full (50 of 120 chunks were saved)"
        )
        assert result.detail["records_written"] == 50
        assert store.stored_ids("docs") == [r.id for r in records[:50]]

    @pytest.mark.asyncio()
    async def test_cancel_after_batch_keeps_completed_batches(self) -> None:
        store = _store_with_docs()
        token = CancellationToken()
        store.on_add = lambda n: token.cancel() if n == 2 else None
        records = _records(120)

        result = await StoreWriter(store, max_batch=50).store_all("docs", records, token)

        assert isinstance(result, Err)
        assert result.is_cancelled
        assert result.detail["records_written"] == 100
        assert store.stored_ids("docs") == [r.id for r in records[:100]]

    @pytest.mark.asyncio()
    async def test_missing_collection_is_a_write_failure(self) -> None:
        result = await StoreWriter(MockVectorStore()).store_all(
            "gone", _records(3), CancellationToken()
        )

        assert isinstance(result, Err)
        assert result.kind is ErrorKind.STORE_WRITE_FAILURE

    @pytest.mark.asyncio()
    async def test_cancel_mid_write_counts_the_landed_batch(self) -> None:
        store = _ThreadedStore(delay=0.2)
        token = CancellationToken()
        records = _records(120)

        task = asyncio.create_task(
            StoreWriter(store, max_batch=50).store_all("docs", records, token)
        )
        await store.write_started.wait()
        await asyncio.sleep(0.05)
        token.cancel()
        result = await task

        assert isinstance(result, Err)
        assert result.is_cancelled
        assert result.detail["records_written"] == 50
        assert store.stored_ids("docs") == [r.id for r in records[:50]]
        assert store.add_calls == [50]
