"""Unit tests for IngestionJobController -- the upload state machine."""

from __future__ import annotations

import asyncio

import pytest

from src.config.settings import Settings
from src.models.ingestion import DocumentUpload, EventStatus, IngestionPhase, ProgressEvent
from src.pipeline.cancellation import CancellationToken
from src.pipeline.progress_channel import ProgressChannel
from src.services.ingestion.job_controller import IngestionJobController
from src.services.ingestion.source_processors import DocumentTextExtractor
from src.utils.result import ErrorKind
from tests.conftest import MockEmbeddingProvider, MockVectorStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _controller(
    embedding: MockEmbeddingProvider,
    store: MockVectorStore,
    settings: Settings | None = None,
) -> IngestionJobController:
    return IngestionJobController(
        embedding_provider=embedding,
        vector_store=store,
        text_extractor=DocumentTextExtractor(),
        settings=settings or Settings(_env_file=None),
    )


def _upload(text: str, name: str = "handbook.txt", collection: str = "docs") -> DocumentUpload:
    return DocumentUpload(
        file_name=name,
        content_type="text/plain",
        data=text.encode("utf-8"),
        collection_name=collection,
    )


async def _run(
    controller: IngestionJobController,
    upload: DocumentUpload,
    token: CancellationToken | None = None,
) -> tuple[list[ProgressEvent], object]:
    channel = ProgressChannel()
    outcome = await controller.run(upload, channel, token or CancellationToken())
    return channel.events, outcome


def _statuses(events: list[ProgressEvent]) -> list[EventStatus]:
    return [e.status for e in events]


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestSuccessfulUpload:
    @pytest.mark.asyncio()
    async def test_event_sequence(
        self,
        mock_embedding_provider: MockEmbeddingProvider,
        mock_vector_store: MockVectorStore,
        sample_document_text: str,
    ) -> None:
        events, outcome = await _run(
            _controller(mock_embedding_provider, mock_vector_store), _upload(sample_document_text)
        )

        statuses = _statuses(events)
        assert statuses[:4] == [
            EventStatus.STARTED,
            EventStatus.COLLECTION_FOUND,
            EventStatus.EXTRACTING,
            EventStatus.CHUNKING,
        ]
        assert EventStatus.EMBEDDING in statuses
        assert EventStatus.SAVING in statuses
        assert statuses[-1] is EventStatus.COMPLETE
        assert outcome.succeeded

    @pytest.mark.asyncio()
    async def test_progress_is_monotonic_and_ends_at_100(
        self,
        mock_embedding_provider: MockEmbeddingProvider,
        mock_vector_store: MockVectorStore,
        sample_document_text: str,
    ) -> None:
        events, _ = await _run(
            _controller(mock_embedding_provider, mock_vector_store), _upload(sample_document_text)
        )

        progress = [e.progress for e in events]
        assert progress == sorted(progress)
        assert progress[:4] == [0, 5, 10, 15]
        assert progress[-1] == 100

    @pytest.mark.asyncio()
    async def test_complete_event_fields(
        self,
        mock_embedding_provider: MockEmbeddingProvider,
        mock_vector_store: MockVectorStore,
        sample_document_text: str,
    ) -> None:
        upload = _upload(sample_document_text)
        events, outcome = await _run(
            _controller(mock_embedding_provider, mock_vector_store), upload
        )

        complete = events[-1]
        stored = mock_vector_store.stored_ids("docs")
        assert complete.chunks_added == len(stored) == outcome.chunks_added
        assert complete.file_name == "handbook.txt"
        assert complete.file_size == upload.byte_size
        assert complete.message == f"Successfully added {len(stored)} chunks"

    @pytest.mark.asyncio()
    async def test_records_carry_metadata(
        self,
        mock_embedding_provider: MockEmbeddingProvider,
        mock_vector_store: MockVectorStore,
        sample_document_text: str,
    ) -> None:
        await _run(
            _controller(mock_embedding_provider, mock_vector_store), _upload(sample_document_text)
        )

        records = list(mock_vector_store._collections["docs"]["records"].values())
        total = len(records)
        assert [r.metadata.chunk_index for r in records] == list(range(total))
        assert all(r.metadata.total_chunks == total for r in records)
        assert all(r.metadata.file_type == "text/plain" for r in records)
        assert all(r.id.startswith("handbook.txt-chunk-") for r in records)

    @pytest.mark.asyncio()
    async def test_large_document_batching(
        self,
        mock_embedding_provider: MockEmbeddingProvider,
        mock_vector_store: MockVectorStore,
        long_document_text: str,
    ) -> None:
        events, outcome = await _run(
            _controller(mock_embedding_provider, mock_vector_store), _upload(long_document_text)
        )

        assert [len(c) for c in mock_embedding_provider.calls] == [50, 50, 20]
        assert mock_vector_store.add_calls == [120]
        assert outcome.chunks_added == 120

        batch_events = [e for e in events if e.current_batch is not None]
        assert [(e.current_batch, e.total_batches) for e in batch_events] == [
            (1, 3),
            (2, 3),
            (3, 3),
        ]
        assert [e.progress for e in batch_events] == [43, 66, 90]

        first_embedding = next(e for e in events if e.status is EventStatus.EMBEDDING)
        assert first_embedding.progress == 20
        assert first_embedding.total_chunks == 120

    @pytest.mark.asyncio()
    async def test_text_too_short_to_chunk_completes_with_zero(
        self,
        mock_embedding_provider: MockEmbeddingProvider,
        mock_vector_store: MockVectorStore,
    ) -> None:
        events, outcome = await _run(
            _controller(mock_embedding_provider, mock_vector_store), _upload("Tiny note.")
        )

        assert events[-1].status is EventStatus.COMPLETE
        assert events[-1].chunks_added == 0
        assert outcome.succeeded
        assert mock_embedding_provider.calls == []
        assert mock_vector_store.add_calls == []


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailedUpload:
    @pytest.mark.asyncio()
    async def test_missing_collection(
        self,
        mock_embedding_provider: MockEmbeddingProvider,
        mock_vector_store: MockVectorStore,
        sample_document_text: str,
    ) -> None:
        events, outcome = await _run(
            _controller(mock_embedding_provider, mock_vector_store),
            _upload(sample_document_text, collection="nope"),
        )

        assert _statuses(events) == [EventStatus.STARTED, EventStatus.ERROR]
        assert events[-1].error == 'Collection "nope" not found'
        assert events[-1].progress == 0
        assert outcome.phase is IngestionPhase.FAILED
        assert outcome.error_kind == ErrorKind.COLLECTION_NOT_FOUND.value

    @pytest.mark.asyncio()
    async def test_unsupported_file_type(
        self,
        mock_embedding_provider: MockEmbeddingProvider,
        mock_vector_store: MockVectorStore,
    ) -> None:
        upload = DocumentUpload(
            file_name="a.png", content_type="image/png", data=b"\x89PNG", collection_name="docs"
        )
        events, outcome = await _run(
            _controller(mock_embedding_provider, mock_vector_store), upload
        )

        assert events[-1].status is EventStatus.ERROR
        assert events[-1].error == "Unsupported file type"
        assert outcome.error_kind == ErrorKind.UNSUPPORTED_FILE_TYPE.value

    @pytest.mark.asyncio()
    async def test_whitespace_only_file(
        self,
        mock_embedding_provider: MockEmbeddingProvider,
        mock_vector_store: MockVectorStore,
    ) -> None:
        events, outcome = await _run(
            _controller(mock_embedding_provider, mock_vector_store), _upload("   \n\n\t  ")
        )

        assert events[-1].error == "No text content found"
        assert outcome.error_kind == ErrorKind.NO_TEXT_CONTENT.value
        assert mock_embedding_provider.calls == []

    @pytest.mark.asyncio()
    async def test_embedding_failure_writes_nothing(
        self, mock_vector_store: MockVectorStore, long_document_text: str
    ) -> None:
        embedding = MockEmbeddingProvider(fail_on_call=2)
        events, outcome = await _run(
            _controller(embedding, mock_vector_store), _upload(long_document_text)
        )

        assert events[-1].status is EventStatus.ERROR
        assert events[-1].error == "Failed to generate embeddings: embedding backend exploded"
        assert outcome.error_kind == ErrorKind.EMBEDDING_SERVICE_FAILURE.value
        assert mock_vector_store.stored_ids("docs") == []

    @pytest.mark.asyncio()
    async def test_embedding_count_mismatch(
        self, mock_vector_store: MockVectorStore, sample_document_text: str
    ) -> None:
        embedding = MockEmbeddingProvider(short_by=1)
        events, outcome = await _run(
            _controller(embedding, mock_vector_store), _upload(sample_document_text)
        )

        assert events[-1].error.startswith("Embedding count mismatch")
        assert outcome.error_kind == ErrorKind.EMBEDDING_COUNT_MISMATCH.value
        assert mock_vector_store.add_calls == []

    @pytest.mark.asyncio()
    async def test_store_failure(
        self, mock_embedding_provider: MockEmbeddingProvider, sample_document_text: str
    ) -> None:
        store = MockVectorStore(fail_on_add=1)
        store._collections["docs"] = {"metadata": {}, "records": {}}

        events, outcome = await _run(
            _controller(mock_embedding_provider, store), _upload(sample_document_text)
        )

        assert events[-1].error == "Failed to save chunks to collection: disk full"
        assert outcome.error_kind == ErrorKind.STORE_WRITE_FAILURE.value
        assert outcome.chunks_saved == 0

    @pytest.mark.asyncio()
    async def test_partial_store_failure_reports_saved_count(
        self, mock_embedding_provider: MockEmbeddingProvider, long_document_text: str
    ) -> None:
        store = MockVectorStore(fail_on_add=2)
        store._collections["docs"] = {"metadata": {}, "records": {}}
        settings = Settings(_env_file=None, store_max_batch=50)

        events, outcome = await _run(
            _controller(mock_embedding_provider, store, settings), _upload(long_document_text)
        )

        assert events[-1].status is EventStatus.ERROR
        assert events[-1].error == (
            "Failed to save chunks to collection: disk full (50 of 120 chunks were saved)"
        )
        assert events[-1].to_wire()["chunksAdded"] == 50
        assert outcome.chunks_saved == 50
        assert len(store.stored_ids("docs")) == 50

    @pytest.mark.asyncio()
    async def test_exactly_one_terminal_event(
        self,
        mock_embedding_provider: MockEmbeddingProvider,
        mock_vector_store: MockVectorStore,
    ) -> None:
        events, _ = await _run(
            _controller(mock_embedding_provider, mock_vector_store),
            _upload("x" * 100, collection="nope"),
        )

        assert sum(1 for e in events if e.status.is_terminal) == 1


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancelledUpload:
    @pytest.mark.asyncio()
    async def test_cancel_before_start(
        self,
        mock_embedding_provider: MockEmbeddingProvider,
        mock_vector_store: MockVectorStore,
        sample_document_text: str,
    ) -> None:
        token = CancellationToken()
        token.cancel("Client disconnected")

        events, outcome = await _run(
            _controller(mock_embedding_provider, mock_vector_store),
            _upload(sample_document_text),
            token,
        )

        assert events[-1].status is EventStatus.CANCELLED
        assert events[-1].message == "Client disconnected"
        assert outcome.phase is IngestionPhase.CANCELLED
        assert mock_embedding_provider.calls == []

    @pytest.mark.asyncio()
    async def test_cancel_during_embedding_leaves_collection_untouched(
        self, mock_vector_store: MockVectorStore, long_document_text: str
    ) -> None:
        gate = asyncio.Event()
        embedding = MockEmbeddingProvider(gate=gate)
        channel = ProgressChannel()
        token = CancellationToken()

        job = asyncio.create_task(
            _controller(embedding, mock_vector_store).run(
                _upload(long_document_text), channel, token
            )
        )
        while not embedding.calls:
            await asyncio.sleep(0)
        token.cancel()
        outcome = await job

        assert channel.events[-1].status is EventStatus.CANCELLED
        assert channel.events[-1].progress == 20
        assert outcome.phase is IngestionPhase.CANCELLED
        assert len(embedding.calls) == 1
        assert mock_vector_store.stored_ids("docs") == []

    @pytest.mark.asyncio()
    async def test_cancel_during_saving_keeps_written_batches(
        self, mock_embedding_provider: MockEmbeddingProvider, long_document_text: str
    ) -> None:
        store = MockVectorStore()
        store._collections["docs"] = {"metadata": {}, "records": {}}
        token = CancellationToken()
        store.on_add = lambda n: token.cancel() if n == 1 else None
        settings = Settings(_env_file=None, store_max_batch=50)

        events, outcome = await _run(
            _controller(mock_embedding_provider, store, settings),
            _upload(long_document_text),
            token,
        )

        assert events[-1].status is EventStatus.CANCELLED
        assert events[-1].progress == 93
        assert outcome.chunks_saved == 50
        assert len(store.stored_ids("docs")) == 50
        assert store.add_calls == [50]
