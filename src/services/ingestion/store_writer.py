"""Sub-batched record writes to the vector store.

ChromaDB rejects very large ``add`` calls (its per-call ceiling is in the
low thousands of records), and that ceiling has nothing to do with the
embedding service's, so the writer partitions with its own ``max_batch``.

Each ``add_records`` call runs to completion; cancellation is checked only
between sub-batches.  Nothing spans calls: if sub-batch ``k + 1`` fails or
the job is cancelled after sub-batch ``k``, sub-batches ``1..k`` stay in the
collection and the ``Err`` reports how many records made it.
"""

from __future__ import annotations

import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import ChunkRecord
from src.pipeline.cancellation import CancellationToken
from src.services.ingestion.embedding_batcher import BatchCallback, count_batches
from src.utils.errors import VectorStoreError
from src.utils.result import Err, ErrorKind, Ok, Result, cancelled

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_STORE_MAX_BATCH = 5000


class StoreWriter:
    """Writes chunk records to a collection in ordered sub-batches."""

    def __init__(
        self,
        vector_store: IVectorStoreProvider,
        max_batch: int = DEFAULT_STORE_MAX_BATCH,
    ) -> None:
        if max_batch <= 0:
            raise ValueError(f"max_batch must be positive, got {max_batch}")
        self._vector_store = vector_store
        self._max_batch = max_batch

    @property
    def max_batch(self) -> int:
        return self._max_batch

    async def store_all(
        self,
        collection_name: str,
        records: list[ChunkRecord],
        cancellation: CancellationToken,
        on_batch: BatchCallback | None = None,
    ) -> Result[int]:
        """Write *records* in order and return the number written.

        Returns
        -------
        Result[int]
            ``Ok(count)``; ``Err(CANCELLED)`` or ``Err(STORE_WRITE_FAILURE)``
            with ``detail["records_written"]`` set to the persisted prefix.
        """
        total_batches = count_batches(len(records), self._max_batch)
        written = 0

        for batch_number, start in enumerate(range(0, len(records), self._max_batch), start=1):
            if cancellation.cancelled:
                logger.info("store_cancelled", records_written=written, total=len(records))
                return cancelled(cancellation.reason or "Upload cancelled", records_written=written)

            batch = records[start : start + self._max_batch]
            # Awaited to completion so ``written`` matches what the collection holds.
            try:
                written += await self._vector_store.add_records(collection_name, batch)
            except VectorStoreError as exc:
                logger.error(
                    "store_batch_failed",
                    collection=collection_name,
                    batch=batch_number,
                    total_batches=total_batches,
                    records_written=written,
                    error=str(exc),
                )
                message = f"Failed to save chunks to collection: {exc.message}"
                if written:
                    message += f" ({written} of {len(records)} chunks were saved)"
                return Err(
                    kind=ErrorKind.STORE_WRITE_FAILURE,
                    message=message,
                    detail={"records_written": written, "batch": batch_number},
                )

            logger.debug(
                "store_batch",
                collection=collection_name,
                batch=batch_number,
                total_batches=total_batches,
                records_written=written,
            )

            if on_batch is not None:
                await on_batch(batch_number, total_batches)

        return Ok(written)
