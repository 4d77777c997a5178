"""Sub-batched embedding generation for an ingestion job.

Embedding services cap how many texts one request may carry (Ollama gets
slow and memory-hungry well before it refuses), so the chunk list is cut
into consecutive slices of at most ``max_batch`` and embedded one slice at
a time, strictly in order.  Vectors are accumulated in chunk order; the
stored records rely on that alignment.

Provider exceptions never escape :meth:`EmbeddingBatcher.embed_all`; they
come back as :class:`~src.utils.result.Err` values tagged with the
ingestion error taxonomy.
"""

from __future__ import annotations

import math
from collections.abc import Awaitable, Callable

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.pipeline.cancellation import CancellationToken, OperationCancelled
from src.utils.errors import EmbeddingError
from src.utils.result import Err, ErrorKind, Ok, Result, cancelled

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_EMBEDDING_MAX_BATCH = 50

BatchCallback = Callable[[int, int], Awaitable[None]]


def count_batches(total: int, max_batch: int) -> int:
    """Return how many sub-batches *total* items need at *max_batch* each."""
    return math.ceil(total / max_batch) if total else 0


def embedding_failure_message(exc: EmbeddingError, model_name: str) -> str:
    """Translate a provider failure into a message a user can act on."""
    if exc.reason == "connection_refused":
        return "Cannot connect to Ollama server. Please ensure Ollama is running."
    if exc.reason == "timeout":
        return "Request timeout. The embedding request took too long."
    if exc.reason == "model":
        return f"Model error: {exc.message}. Please ensure '{model_name}' is available in Ollama."
    return f"Failed to generate embeddings: {exc.message}"


class EmbeddingBatcher:
    """Drives sequential embedding calls over bounded sub-batches.

    Parameters
    ----------
    embedding_provider:
        The provider used for every sub-batch.  Retrieval must use the same
        model, so the job controller and the retrieval service are handed
        the same instance.
    max_batch:
        Most texts sent in one embedding call (default 50).
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        max_batch: int = DEFAULT_EMBEDDING_MAX_BATCH,
    ) -> None:
        if max_batch <= 0:
            raise ValueError(f"max_batch must be positive, got {max_batch}")
        self._provider = embedding_provider
        self._max_batch = max_batch

    @property
    def max_batch(self) -> int:
        return self._max_batch

    async def embed_all(
        self,
        texts: list[str],
        cancellation: CancellationToken,
        on_batch: BatchCallback | None = None,
    ) -> Result[list[list[float]]]:
        """Embed *texts* in order and return one vector per text.

        Parameters
        ----------
        texts:
            Chunk texts, in chunk-index order.
        cancellation:
            Checked before each sub-batch and raced against the in-flight
            call.  Vectors already produced are discarded on cancel.
        on_batch:
            Awaited as ``on_batch(completed, total)`` after each sub-batch.

        Returns
        -------
        Result[list[list[float]]]
            ``Ok(vectors)`` aligned with *texts*, or ``Err`` tagged
            ``CANCELLED``, ``EMBEDDING_SERVICE_FAILURE`` or
            ``EMBEDDING_COUNT_MISMATCH``.
        """
        total_batches = count_batches(len(texts), self._max_batch)
        vectors: list[list[float]] = []

        for batch_number, start in enumerate(range(0, len(texts), self._max_batch), start=1):
            if cancellation.cancelled:
                logger.info(
                    "embedding_cancelled",
                    completed_batches=batch_number - 1,
                    total_batches=total_batches,
                )
                return cancelled(cancellation.reason or "Upload cancelled")

            batch = texts[start : start + self._max_batch]
            try:
                batch_vectors = await cancellation.guard(self._provider.embed(batch))
            except OperationCancelled as exc:
                logger.info(
                    "embedding_cancelled",
                    completed_batches=batch_number - 1,
                    total_batches=total_batches,
                )
                return cancelled(exc.reason)
            except EmbeddingError as exc:
                logger.error(
                    "embedding_batch_failed",
                    batch=batch_number,
                    total_batches=total_batches,
                    reason=exc.reason,
                    error=str(exc),
                )
                return Err(
                    kind=ErrorKind.EMBEDDING_SERVICE_FAILURE,
                    message=embedding_failure_message(exc, self._provider.get_model_name()),
                    detail={"reason": exc.reason, "batch": batch_number},
                )

            if len(batch_vectors) != len(batch):
                return self._mismatch(len(batch), len(batch_vectors), batch=batch_number)

            vectors.extend(batch_vectors)
            logger.debug(
                "embedding_batch",
                batch=batch_number,
                total_batches=total_batches,
                size=len(batch),
            )

            if on_batch is not None:
                await on_batch(batch_number, total_batches)

        if len(vectors) != len(texts):
            return self._mismatch(len(texts), len(vectors))

        return Ok(vectors)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _mismatch(expected: int, got: int, batch: int | None = None) -> Err:
        logger.error("embedding_count_mismatch", expected=expected, got=got, batch=batch)
        return Err(
            kind=ErrorKind.EMBEDDING_COUNT_MISMATCH,
            message=f"Embedding count mismatch: expected {expected}, got {got}",
            detail={"expected": expected, "got": got},
        )
