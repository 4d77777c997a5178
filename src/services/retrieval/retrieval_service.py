"""Query-time retrieval: rewrite, embed, search, annotate.

Retrieval is best-effort augmentation of a chat turn, never a hard
dependency of it.  Each step can fail on its own:

  1. REWRITE -- the chat model turns the message into a search query.
                On failure the raw message is used instead.
  2. EMBED   -- the query is embedded by the same provider that embedded
                the collection at ingestion time.
  3. SEARCH  -- the vector store returns the ``top_k`` nearest chunks.
  4. LABEL   -- each passage gets a relevance band and, for the
                model-facing tool, its position in the source document.

A failure in steps 2-3 produces an empty :class:`RetrievalResult` whose
``error_kind`` names the failed step.  :meth:`RetrievalService.retrieve`
never raises.

Distances come from a cosine-space collection (0-2, lower is closer) and
are banded as:

    < 0.5  excellent match
    < 0.8  good match
    < 1.0  fair match
    else   weak match
"""

from __future__ import annotations

from enum import Enum

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import RelevanceLevel, RetrievalResult, RetrievedPassage
from src.pipeline.cancellation import CancellationToken, OperationCancelled, never_cancelled
from src.services.ingestion.embedding_batcher import embedding_failure_message
from src.services.ingestion.identifiers import sibling_chunk_id
from src.services.retrieval.query_rewriter import QueryRewriter
from src.utils.errors import (
    CollectionNotFoundError,
    EmbeddingError,
    LLMError,
    VectorStoreError,
)

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_TOP_K = 5

_RELEVANCE_BANDS: tuple[tuple[float, RelevanceLevel], ...] = (
    (0.5, RelevanceLevel.EXCELLENT),
    (0.8, RelevanceLevel.GOOD),
    (1.0, RelevanceLevel.FAIR),
)


class RetrievalErrorKind(str, Enum):  # noqa: UP042
    """Which retrieval step failed."""

    NO_COLLECTION = "no_collection"
    INVALID_QUERY = "invalid_query"
    EMBEDDING_FAILED = "embedding_failed"
    INVALID_EMBEDDING = "invalid_embedding"
    COLLECTION_NOT_FOUND = "collection_not_found"
    DATABASE_QUERY_FAILED = "database_query_failed"
    UNEXPECTED_ERROR = "unexpected_error"
    CANCELLED = "cancelled"


def classify_distance(distance: float) -> RelevanceLevel:
    """Return the relevance band for a cosine distance."""
    for upper, level in _RELEVANCE_BANDS:
        if distance < upper:
            return level
    return RelevanceLevel.WEAK


def position_label(passage: RetrievedPassage) -> str | None:
    """Describe where *passage* sits in its source document.

    Returns e.g. ``'chunk 3 of 12 in "handbook.pdf", continues in
    handbook.pdf-chunk-3-1717171717171'`` so a model that finds the
    passage cut off knows which id to fetch next.  ``None`` when the
    record carries no position metadata.
    """
    index, total = passage.chunk_index, passage.total_chunks
    if index is None or total is None:
        return None

    label = f"chunk {index + 1} of {total}"
    filename = passage.metadata.get("filename")
    if filename:
        label += f' in "{filename}"'
    if passage.has_next:
        next_id = sibling_chunk_id(passage.id, 1)
        label += f", continues in {next_id}" if next_id else ", continues in the next chunk"
    return label


class RetrievalService:
    """Runs the retrieval sequence against injected providers.

    Parameters
    ----------
    embedding_provider:
        Must be the instance (or at least the model) used to ingest the
        collections being searched.
    vector_store:
        Collection-addressed store to search.
    llm:
        Used for query rewriting.  ``None`` disables rewriting.
    default_top_k:
        Results per query when the caller does not say.
    rewrite_queries:
        Whether :meth:`retrieve` rewrites by default.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        llm: ILLMProvider | None = None,
        default_top_k: int = DEFAULT_TOP_K,
        rewrite_queries: bool = True,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._rewriter = QueryRewriter(llm) if llm is not None else None
        self._default_top_k = default_top_k
        self._rewrite_queries = rewrite_queries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def rewrite_query(
        self, message: str, cancellation: CancellationToken | None = None
    ) -> str:
        """Return a search-optimized query, or *message* itself on failure."""
        if self._rewriter is None:
            return message
        cancellation = cancellation or never_cancelled()
        try:
            return await cancellation.guard(self._rewriter.rewrite(message))
        except LLMError as exc:
            logger.warning("query_rewrite_failed", error=str(exc))
            return message

    async def retrieve(
        self,
        user_query: str,
        collection_name: str,
        top_k: int | None = None,
        rewrite: bool | None = None,
        cancellation: CancellationToken | None = None,
    ) -> RetrievalResult:
        """Return the passages nearest to *user_query* in *collection_name*.

        Never raises; check ``error_kind`` on the result to tell "nothing
        relevant" apart from "a step failed".
        """
        cancellation = cancellation or never_cancelled()
        top_k = top_k or self._default_top_k
        rewrite = self._rewrite_queries if rewrite is None else rewrite
        search_query = user_query

        def failed(kind: RetrievalErrorKind, message: str) -> RetrievalResult:
            return self._failed(user_query, search_query, collection_name, kind, message)

        if not collection_name or not collection_name.strip():
            return failed(
                RetrievalErrorKind.NO_COLLECTION,
                "Collection name is required but was not provided.",
            )
        if not user_query or not user_query.strip():
            return failed(
                RetrievalErrorKind.INVALID_QUERY,
                "Search query cannot be empty.",
            )

        try:
            if rewrite:
                search_query = await self.rewrite_query(user_query, cancellation)

            # Embed
            try:
                embedding = await cancellation.guard(
                    self._embedding_provider.embed_single(search_query)
                )
            except EmbeddingError as exc:
                return failed(
                    RetrievalErrorKind.EMBEDDING_FAILED,
                    embedding_failure_message(exc, self._embedding_provider.get_model_name()),
                )
            if not embedding:
                return failed(
                    RetrievalErrorKind.INVALID_EMBEDDING,
                    "Received invalid embedding data.",
                )

            # Search
            try:
                passages = await cancellation.guard(
                    self._vector_store.query(collection_name, embedding, top_k)
                )
            except CollectionNotFoundError as exc:
                return failed(
                    RetrievalErrorKind.COLLECTION_NOT_FOUND,
                    exc.message,
                )
            except VectorStoreError as exc:
                return failed(
                    RetrievalErrorKind.DATABASE_QUERY_FAILED,
                    exc.message,
                )
        except OperationCancelled as exc:
            return failed(
                RetrievalErrorKind.CANCELLED,
                exc.reason,
            )
        except Exception as exc:
            logger.exception("retrieval_unexpected_error", collection=collection_name)
            return failed(
                RetrievalErrorKind.UNEXPECTED_ERROR,
                str(exc),
            )

        labelled = [
            p.model_copy(update={"relevance": classify_distance(p.distance)}) for p in passages
        ]
        result = RetrievalResult(
            query=user_query,
            search_query=search_query,
            collection_name=collection_name,
            passages=labelled,
        )
        logger.info(
            "retrieval_complete",
            collection=collection_name,
            results=len(labelled),
            top_relevance=labelled[0].relevance.value if labelled else None,
            average_distance=result.average_distance,
        )
        return result

    async def fetch_adjacent(
        self,
        collection_name: str,
        passage_id: str,
        direction: int = 1,
    ) -> RetrievedPassage | None:
        """Return the chunk *direction* positions from *passage_id*.

        Neighbour ids are derived from the id itself (same file, same
        upload timestamp).  Returns ``None`` for ids in another format,
        off either end of the document, or on a store error.
        """
        sibling_id = sibling_chunk_id(passage_id, direction)
        if sibling_id is None:
            return None
        try:
            found = await self._vector_store.get_records(collection_name, [sibling_id])
        except VectorStoreError as exc:
            logger.warning("fetch_adjacent_failed", chunk_id=sibling_id, error=str(exc))
            return None
        return found[0] if found else None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _failed(
        query: str,
        search_query: str,
        collection_name: str,
        kind: RetrievalErrorKind,
        message: str,
    ) -> RetrievalResult:
        logger.warning(
            "retrieval_degraded",
            collection=collection_name,
            error_kind=kind.value,
            error=message,
        )
        return RetrievalResult(
            query=query,
            search_query=search_query,
            collection_name=collection_name,
            error_kind=kind.value,
            error=message,
        )
