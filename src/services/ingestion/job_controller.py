"""Ingestion job controller: one upload, start to terminal event.

Sequences the pipeline for a single uploaded document::

    STARTED -> COLLECTION_RESOLVED -> EXTRACTING -> CHUNKING
            -> EMBEDDING -> SAVING -> COMPLETE

with ``CANCELLED`` and ``FAILED`` reachable from every non-terminal state.
Every transition pushes a :class:`~src.models.ingestion.ProgressEvent`
onto the job's :class:`~src.pipeline.progress_channel.ProgressChannel`,
and every run ends with exactly one terminal event (``complete``,
``cancelled`` or ``error``).

Progress bands are fixed per phase so a client can draw a stable bar
regardless of document size:

    started 0 | collection_found 5 | extracting 10 | chunking 15
    embedding 20-90 (by sub-batch) | saving 90-99 (by sub-batch)
    complete 100

Remote calls never raise through this class.  Provider failures come back
from the batch orchestrators as tagged ``Err`` values and are mapped to a
terminal state here.  Cancellation during embedding leaves the collection
untouched; during saving, sub-batches already written stay written.
"""

from __future__ import annotations

import uuid

import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.text_extractor import ITextExtractor
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.ingestion import (
    DocumentUpload,
    EventStatus,
    IngestionJob,
    IngestionOutcome,
    IngestionPhase,
    ProgressEvent,
)
from src.models.rag import Chunk, SourceDocument
from src.pipeline.cancellation import CancellationToken, OperationCancelled
from src.pipeline.progress_channel import ProgressChannel
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.embedding_batcher import EmbeddingBatcher
from src.services.ingestion.identifiers import build_records, current_timestamp_ms
from src.services.ingestion.store_writer import StoreWriter
from src.utils.errors import CollectionNotFoundError, ExtractionError, VectorStoreError
from src.utils.logging import bind_job_context
from src.utils.result import Err, ErrorKind

logger = structlog.get_logger(logger_name=__name__)

# Progress band boundaries.
_PROGRESS_COLLECTION_FOUND = 5
_PROGRESS_EXTRACTING = 10
_PROGRESS_CHUNKING = 15
_PROGRESS_EMBED_START = 20
_PROGRESS_EMBED_SPAN = 70
_PROGRESS_SAVE_START = 90
_PROGRESS_SAVE_SPAN = 9
_PROGRESS_COMPLETE = 100


class IngestionJobController:
    """Runs ingestion jobs against injected providers.

    One controller can serve many jobs; all per-job state lives in the
    :class:`~src.models.ingestion.IngestionJob` created by :meth:`run`.

    Parameters
    ----------
    embedding_provider:
        Embeds chunk texts.  Must be the same model retrieval uses.
    vector_store:
        Destination store; the target collection must already exist.
    text_extractor:
        Turns upload bytes into a :class:`SourceDocument`.
    settings:
        Supplies chunking parameters and both batch ceilings.  Defaults
        apply when omitted.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        text_extractor: ITextExtractor,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or Settings()
        self._vector_store = vector_store
        self._extractor = text_extractor
        self._chunker = TextChunker(
            chunk_size=settings.chunk_size,
            overlap=settings.chunk_overlap,
            min_chunk_chars=settings.min_chunk_chars,
        )
        self._embedder = EmbeddingBatcher(embedding_provider, max_batch=settings.embedding_max_batch)
        self._writer = StoreWriter(vector_store, max_batch=settings.store_max_batch)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        upload: DocumentUpload,
        channel: ProgressChannel,
        cancellation: CancellationToken,
    ) -> IngestionOutcome:
        """Ingest *upload* into its collection, reporting through *channel*.

        Returns
        -------
        IngestionOutcome
            The terminal phase plus counts.  The same information has
            already been emitted on *channel* as the terminal event.
        """
        job = IngestionJob(
            document_name=upload.file_name,
            collection_name=upload.collection_name,
        )
        job_id = uuid.uuid4().hex[:12]

        with bind_job_context(
            job_id=job_id, collection=upload.collection_name, file_name=upload.file_name
        ):
            logger.info("ingestion_started", file_size=upload.byte_size)
            try:
                return await self._run(job, upload, channel, cancellation)
            except OperationCancelled as exc:
                return await self._cancel(job, channel, exc.reason)
            except Exception as exc:
                logger.exception("ingestion_unexpected_error", phase=job.phase.value)
                return await self._fail(
                    job, channel, message=f"{type(exc).__name__}: {exc}", kind=None
                )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _run(
        self,
        job: IngestionJob,
        upload: DocumentUpload,
        channel: ProgressChannel,
        cancellation: CancellationToken,
    ) -> IngestionOutcome:
        await self._emit(channel, EventStatus.STARTED, 0, "Starting upload...")

        # Collection
        cancellation.raise_if_cancelled()
        try:
            await cancellation.guard(self._vector_store.get_collection(upload.collection_name))
        except VectorStoreError as exc:
            if not isinstance(exc, CollectionNotFoundError):
                logger.warning("collection_lookup_failed", error=str(exc))
            return await self._fail(
                job,
                channel,
                message=CollectionNotFoundError(upload.collection_name).message,
                kind=ErrorKind.COLLECTION_NOT_FOUND,
            )
        job.phase = IngestionPhase.COLLECTION_RESOLVED
        await self._emit(
            channel, EventStatus.COLLECTION_FOUND, _PROGRESS_COLLECTION_FOUND, "Collection found"
        )

        # Extraction
        cancellation.raise_if_cancelled()
        job.phase = IngestionPhase.EXTRACTING
        await self._emit(channel, EventStatus.EXTRACTING, _PROGRESS_EXTRACTING, "Extracting text...")
        document = await self._extract(job, upload, channel, cancellation)
        if isinstance(document, IngestionOutcome):
            return document

        # Chunking
        cancellation.raise_if_cancelled()
        job.phase = IngestionPhase.CHUNKING
        await self._emit(channel, EventStatus.CHUNKING, _PROGRESS_CHUNKING, "Creating chunks...")
        chunks = self._chunker.chunk(document.raw_text)
        job.total_chunks = len(chunks)
        if not chunks:
            logger.info("ingestion_no_chunks", chars=len(document.raw_text))
            return await self._complete(job, upload, channel, chunks_added=0)

        # Embedding
        cancellation.raise_if_cancelled()
        job.phase = IngestionPhase.EMBEDDING
        vectors = await self._embed(job, chunks, channel, cancellation)
        if isinstance(vectors, IngestionOutcome):
            return vectors

        # Saving
        cancellation.raise_if_cancelled()
        job.phase = IngestionPhase.SAVING
        outcome = await self._save(job, upload, document, chunks, vectors, channel, cancellation)
        if outcome is not None:
            return outcome

        return await self._complete(job, upload, channel, chunks_added=job.chunks_saved)

    async def _extract(
        self,
        job: IngestionJob,
        upload: DocumentUpload,
        channel: ProgressChannel,
        cancellation: CancellationToken,
    ) -> SourceDocument | IngestionOutcome:
        if self._extractor.detect(upload.file_name, upload.content_type) is None:
            return await self._fail(
                job, channel, message="Unsupported file type", kind=ErrorKind.UNSUPPORTED_FILE_TYPE
            )

        try:
            document = await cancellation.guard(
                self._extractor.extract(upload.file_name, upload.content_type, upload.data)
            )
        except ExtractionError as exc:
            return await self._fail(job, channel, message=exc.message, kind=ErrorKind.NO_TEXT_CONTENT)

        if not document.raw_text.strip():
            return await self._fail(
                job, channel, message="No text content found", kind=ErrorKind.NO_TEXT_CONTENT
            )
        return document

    async def _embed(
        self,
        job: IngestionJob,
        chunks: list[Chunk],
        channel: ProgressChannel,
        cancellation: CancellationToken,
    ) -> list[list[float]] | IngestionOutcome:
        total = len(chunks)
        max_batch = self._embedder.max_batch
        await self._emit(
            channel,
            EventStatus.EMBEDDING,
            _PROGRESS_EMBED_START,
            f"Embedding {total} chunks...",
            total_chunks=total,
        )

        async def on_batch(done: int, batches: int) -> None:
            job.chunks_embedded = min(done * max_batch, total)
            await self._emit(
                channel,
                EventStatus.EMBEDDING,
                _PROGRESS_EMBED_START + done * _PROGRESS_EMBED_SPAN // batches,
                f"Embedded batch {done}/{batches} ({job.chunks_embedded}/{total} chunks)",
                current_batch=done,
                total_batches=batches,
            )

        result = await self._embedder.embed_all([c.text for c in chunks], cancellation, on_batch)
        if isinstance(result, Err):
            if result.is_cancelled:
                return await self._cancel(job, channel, result.message)
            return await self._fail(job, channel, message=result.message, kind=result.kind)

        await self._emit(
            channel,
            EventStatus.EMBEDDING,
            _PROGRESS_SAVE_START,
            f"Successfully embedded {total} chunks",
        )
        return result.value

    async def _save(
        self,
        job: IngestionJob,
        upload: DocumentUpload,
        document: SourceDocument,
        chunks: list[Chunk],
        vectors: list[list[float]],
        channel: ProgressChannel,
        cancellation: CancellationToken,
    ) -> IngestionOutcome | None:
        await self._emit(channel, EventStatus.SAVING, _PROGRESS_SAVE_START, "Saving to database...")

        records = build_records(
            filename=upload.file_name,
            file_type=document.mime_class.value,
            file_size=upload.byte_size,
            chunks=chunks,
            embeddings=vectors,
            timestamp_ms=current_timestamp_ms(),
        )
        max_batch = self._writer.max_batch

        async def on_batch(done: int, batches: int) -> None:
            job.chunks_saved = min(done * max_batch, len(records))
            await self._emit(
                channel,
                EventStatus.SAVING,
                _PROGRESS_SAVE_START + done * _PROGRESS_SAVE_SPAN // batches,
                f"Saved batch {done}/{batches} to database",
            )

        result = await self._writer.store_all(
            upload.collection_name, records, cancellation, on_batch
        )
        if isinstance(result, Err):
            job.chunks_saved = int(result.detail.get("records_written", job.chunks_saved))
            if result.is_cancelled:
                return await self._cancel(job, channel, result.message)
            return await self._fail(job, channel, message=result.message, kind=result.kind)

        job.chunks_saved = result.value
        return None

    # ------------------------------------------------------------------
    # Terminal states
    # ------------------------------------------------------------------

    async def _complete(
        self,
        job: IngestionJob,
        upload: DocumentUpload,
        channel: ProgressChannel,
        chunks_added: int,
    ) -> IngestionOutcome:
        job.phase = IngestionPhase.COMPLETE
        message = f"Successfully added {chunks_added} chunks"
        await self._emit(
            channel,
            EventStatus.COMPLETE,
            _PROGRESS_COMPLETE,
            message,
            chunks_added=chunks_added,
            file_name=upload.file_name,
            file_size=upload.byte_size,
        )
        logger.info("ingestion_complete", chunks=chunks_added, total_chunks=job.total_chunks)
        return IngestionOutcome(
            phase=job.phase,
            message=message,
            chunks_added=chunks_added,
            chunks_saved=job.chunks_saved,
        )

    async def _cancel(
        self, job: IngestionJob, channel: ProgressChannel, reason: str
    ) -> IngestionOutcome:
        job.cancelled = True
        cancelled_in = job.phase
        job.phase = IngestionPhase.CANCELLED
        message = reason or "Upload cancelled"
        await self._emit(channel, EventStatus.CANCELLED, channel.last_progress, message)
        logger.info(
            "ingestion_cancelled",
            phase=cancelled_in.value,
            chunks_embedded=job.chunks_embedded,
            chunks_saved=job.chunks_saved,
        )
        return IngestionOutcome(
            phase=job.phase,
            message=message,
            chunks_saved=job.chunks_saved,
            error_kind=ErrorKind.CANCELLED.value,
        )

    async def _fail(
        self,
        job: IngestionJob,
        channel: ProgressChannel,
        message: str,
        kind: ErrorKind | None,
    ) -> IngestionOutcome:
        failed_in = job.phase
        job.phase = IngestionPhase.FAILED
        await channel.emit(
            ProgressEvent(
                status=EventStatus.ERROR,
                progress=0,
                message=message,
                error=message,
                chunks_added=job.chunks_saved or None,
            )
        )
        logger.error(
            "ingestion_failed",
            phase=failed_in.value,
            error_kind=kind.value if kind else None,
            error=message,
            chunks_saved=job.chunks_saved,
        )
        return IngestionOutcome(
            phase=job.phase,
            message=message,
            chunks_saved=job.chunks_saved,
            error_kind=kind.value if kind else None,
        )

    @staticmethod
    async def _emit(
        channel: ProgressChannel,
        status: EventStatus,
        progress: int,
        message: str,
        **fields: object,
    ) -> None:
        await channel.emit(ProgressEvent(status=status, progress=progress, message=message, **fields))
