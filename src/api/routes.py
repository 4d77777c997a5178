"""FastAPI API routes for ragvault.

Service dependencies are resolved from ``app.state`` (populated at startup
by ``main._build_all``) via FastAPI's ``Depends`` using the ``Annotated``
pattern.

# ─── API ROUTE MAP ─────────────────────────────────────────────────────
#
# Endpoint                              Method     Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/documents/upload              PUT, POST  Upload -> SSE progress stream
# /api/v1/retrieve                      POST       Rewrite + search a collection
# /api/v1/generate-query                POST       Message -> search query
# /api/v1/generate-embedding            POST       Text(s) -> vector(s)
# /api/v1/tools/knowledge-base          GET        Tool definition for the model
# /api/v1/tools/knowledge-base          POST       Run the tool -> tool JSON
# /api/v1/tools/knowledge-base/system-prompt GET   Tool-use system prompt
# /api/v1/tools/knowledge-base/adjacent POST       Neighbouring chunk -> tool JSON
# /api/v1/collections                   GET, POST  List / create collections
# /api/v1/collections/{name}            DELETE     Delete a collection
# /api/v1/health                        GET        Embedding + vector store status
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse

from src.api.schemas import (
    AdjacentChunkRequest,
    CollectionCreateRequest,
    CollectionDeleteResponse,
    CollectionListResponse,
    CollectionResponse,
    ErrorResponse,
    GenerateEmbeddingRequest,
    GenerateQueryRequest,
    GenerateQueryResponse,
    HealthResponse,
    KnowledgeBaseToolRequest,
    PassageResponse,
    RetrieveRequest,
    RetrieveResponse,
)
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.ingestion import DocumentUpload, EventStatus, ProgressEvent
from src.models.rag import CollectionInfo
from src.pipeline.cancellation import CancellationToken
from src.pipeline.progress_channel import ProgressChannel
from src.services.ingestion.embedding_batcher import embedding_failure_message
from src.services.ingestion.job_controller import IngestionJobController
from src.services.retrieval import (
    KnowledgeBaseTool,
    QueryRewriter,
    RetrievalService,
    augment_user_message,
    build_chat_context,
    build_tool_system_prompt,
)
from src.utils.errors import CollectionNotFoundError, EmbeddingError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

API_VERSION = "0.1.0"

_UPLOAD_CHUNK_SIZE = 64 * 1024

# How often the upload stream checks whether the client went away.
_DISCONNECT_POLL_SECONDS = 0.5

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Jobs still finishing after their stream closed; held so they are not
# garbage collected mid-run.
_detached_jobs: set[asyncio.Task] = set()


# ---------------------------------------------------------------------------
# Dependency helpers
# ---------------------------------------------------------------------------


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _get_job_controller(request: Request) -> IngestionJobController:
    return request.app.state.job_controller


def _get_retrieval_service(request: Request) -> RetrievalService:
    return request.app.state.retrieval_service


def _get_knowledge_base_tool(request: Request) -> KnowledgeBaseTool:
    return request.app.state.knowledge_base_tool


def _get_query_rewriter(request: Request) -> QueryRewriter:
    return request.app.state.query_rewriter


def _get_embedding_provider(request: Request) -> IEmbeddingProvider:
    return request.app.state.embedding_provider


def _get_vector_store(request: Request) -> IVectorStoreProvider:
    return request.app.state.vector_store


def _get_llm_provider(request: Request) -> ILLMProvider:
    return request.app.state.llm_provider


SettingsDep = Annotated[Settings, Depends(_get_settings)]
JobControllerDep = Annotated[IngestionJobController, Depends(_get_job_controller)]
RetrievalDep = Annotated[RetrievalService, Depends(_get_retrieval_service)]
ToolDep = Annotated[KnowledgeBaseTool, Depends(_get_knowledge_base_tool)]
RewriterDep = Annotated[QueryRewriter, Depends(_get_query_rewriter)]
EmbeddingDep = Annotated[IEmbeddingProvider, Depends(_get_embedding_provider)]
VectorStoreDep = Annotated[IVectorStoreProvider, Depends(_get_vector_store)]
LLMDep = Annotated[ILLMProvider, Depends(_get_llm_provider)]


# ---------------------------------------------------------------------------
# Upload streaming helpers
# ---------------------------------------------------------------------------


def _sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _event_stream(body: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(body, media_type="text/event-stream", headers=_SSE_HEADERS)


def _rejected_upload(message: str) -> StreamingResponse:
    """Answer an invalid upload with a single error event."""
    _logger.info("upload_rejected", reason=message)
    event = ProgressEvent(status=EventStatus.ERROR, progress=0, message=message, error=message)

    async def body() -> AsyncIterator[str]:
        yield _sse(event.to_wire())

    return _event_stream(body())


async def _read_upload(file: UploadFile, max_bytes: int) -> bytes | None:
    """Read *file* in chunks; ``None`` once it exceeds *max_bytes*."""
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


async def _watch_disconnect(request: Request, cancellation: CancellationToken) -> None:
    while not cancellation.cancelled:
        if await request.is_disconnected():
            _logger.info("client_disconnected", path=str(request.url.path))
            cancellation.cancel()
            return
        await asyncio.sleep(_DISCONNECT_POLL_SECONDS)


async def _stream_job(
    request: Request,
    controller: IngestionJobController,
    upload: DocumentUpload,
) -> AsyncIterator[str]:
    """Run one ingestion job and relay its progress events as SSE frames."""
    channel = ProgressChannel()
    cancellation = CancellationToken()

    job = asyncio.create_task(controller.run(upload, channel, cancellation))
    job.add_done_callback(lambda _: channel.close())
    watcher = asyncio.create_task(_watch_disconnect(request, cancellation))

    try:
        async for event in channel:
            yield _sse(event.to_wire())
    finally:
        watcher.cancel()
        if not job.done():
            # Stream torn down before the terminal event: stop the job and
            # let it record its cancelled state in the background.
            cancellation.cancel()
            _detached_jobs.add(job)
            job.add_done_callback(_detached_jobs.discard)


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


@router.api_route(
    "/documents/upload",
    methods=["PUT", "POST"],
    response_class=StreamingResponse,
    summary="Upload a document and stream ingestion progress",
)
async def upload_document(
    request: Request,
    controller: JobControllerDep,
    app_settings: SettingsDep,
    file: Annotated[UploadFile | None, File()] = None,
    collection_name: Annotated[str | None, Form(alias="collectionName")] = None,
) -> StreamingResponse:
    """Accept a PDF or text upload and stream ``data: {json}`` progress events.

    Validation failures are reported in-stream as one ``{error, progress: 0}``
    event, like every other failure of the job.
    """
    if file is None or not file.filename:
        return _rejected_upload("No file provided")
    if not collection_name or not collection_name.strip():
        return _rejected_upload("Collection name is required")

    data = await _read_upload(file, app_settings.max_upload_bytes)
    if data is None:
        return _rejected_upload(
            f"File too large. Maximum size is {app_settings.max_upload_bytes} bytes."
        )

    upload = DocumentUpload(
        file_name=file.filename,
        content_type=file.content_type or "",
        data=data,
        collection_name=collection_name.strip(),
    )
    return _event_stream(_stream_job(request, controller, upload))


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


@router.post(
    "/retrieve",
    response_model=RetrieveResponse,
    summary="Retrieve passages relevant to a user message",
)
async def retrieve(body: RetrieveRequest, retrieval: RetrievalDep) -> RetrieveResponse:
    """Rewrite, embed and search.  Failures come back as an empty result."""
    result = await retrieval.retrieve(
        body.query,
        body.collection_name,
        top_k=body.top_k,
        rewrite=body.rewrite,
    )
    return RetrieveResponse(
        query=result.query,
        search_query=result.search_query,
        collection_name=result.collection_name,
        passages=[
            PassageResponse(
                id=p.id,
                text=p.text,
                distance=p.distance,
                relevance=p.relevance.value,
                metadata=p.metadata,
            )
            for p in result.passages
        ],
        context=build_chat_context(result.passages),
        augmented_message=augment_user_message(result.query, result.passages),
        error_kind=result.error_kind,
        error=result.error,
    )


@router.post(
    "/generate-query",
    response_model=GenerateQueryResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Turn a chat message into a vector-search query",
)
async def generate_query(body: GenerateQueryRequest, rewriter: RewriterDep) -> GenerateQueryResponse:
    if not body.message or not body.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")
    return GenerateQueryResponse(query=await rewriter.rewrite(body.message))


@router.post(
    "/generate-embedding",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Embed one text or a list of texts",
)
async def generate_embedding(
    body: GenerateEmbeddingRequest, embedding_provider: EmbeddingDep
) -> dict[str, Any]:
    """Return ``{embedding}`` for ``text`` or ``{embeddings}`` for ``texts``."""
    try:
        if body.text:
            return {"embedding": await embedding_provider.embed_single(body.text)}
        if body.texts is not None:
            if not body.texts:
                raise HTTPException(status_code=400, detail="Texts array cannot be empty")
            return {"embeddings": await embedding_provider.embed(body.texts)}
    except EmbeddingError as exc:
        _logger.warning("generate_embedding_failed", error=str(exc), reason=exc.reason)
        raise HTTPException(
            status_code=500,
            detail=embedding_failure_message(exc, embedding_provider.get_model_name()),
        ) from exc
    raise HTTPException(status_code=400, detail="Either 'text' or 'texts' array is required")


# ---------------------------------------------------------------------------
# Model-facing knowledge-base tool
# ---------------------------------------------------------------------------


@router.get("/tools/knowledge-base", summary="Knowledge-base tool definition")
async def knowledge_base_tool_definition(tool: ToolDep) -> dict[str, Any]:
    return tool.definition()


@router.get(
    "/tools/knowledge-base/system-prompt", summary="System prompt for tool-capable models"
)
async def knowledge_base_system_prompt(
    collection: str | None = None, base: str = ""
) -> dict[str, str]:
    """Append the tool-use instructions to *base* for the selected *collection*."""
    return {"systemPrompt": build_tool_system_prompt(base, collection)}


@router.post("/tools/knowledge-base", summary="Run the knowledge-base tool")
async def run_knowledge_base_tool(body: KnowledgeBaseToolRequest, tool: ToolDep) -> dict[str, Any]:
    """Return the tool's JSON answer (``status`` success, no_results or error)."""
    return json.loads(await tool.execute(body.collection_name, body.search_query))


@router.post("/tools/knowledge-base/adjacent", summary="Fetch a neighbouring chunk")
async def adjacent_chunk(body: AdjacentChunkRequest, tool: ToolDep) -> dict[str, Any]:
    if body.direction not in (-1, 1):
        raise HTTPException(status_code=400, detail="Direction must be -1 or 1")
    return json.loads(await tool.fetch_adjacent(body.collection_name, body.chunk_id, body.direction))


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


def _collection_response(info: CollectionInfo) -> CollectionResponse:
    return CollectionResponse(name=info.name, count=info.count, metadata=info.metadata)


@router.get("/collections", response_model=CollectionListResponse, summary="List collections")
async def list_collections(vector_store: VectorStoreDep) -> CollectionListResponse:
    collections = await vector_store.list_collections()
    return CollectionListResponse(collections=[_collection_response(c) for c in collections])


@router.post(
    "/collections",
    response_model=CollectionResponse,
    status_code=201,
    summary="Create a collection (no-op if it exists)",
)
async def create_collection(
    body: CollectionCreateRequest,
    vector_store: VectorStoreDep,
    embedding_provider: EmbeddingDep,
) -> CollectionResponse:
    """Create *name*, recording which embedding model its vectors come from."""
    metadata = {"embedding_model": embedding_provider.get_model_name(), **body.metadata}
    info = await vector_store.create_collection(body.name.strip(), metadata=metadata)
    _logger.info("collection_created", collection=info.name)
    return _collection_response(info)


@router.delete(
    "/collections/{name}",
    response_model=CollectionDeleteResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a collection",
)
async def delete_collection(name: str, vector_store: VectorStoreDep) -> CollectionDeleteResponse:
    try:
        await vector_store.delete_collection(name)
    except CollectionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    _logger.info("collection_deleted", collection=name)
    return CollectionDeleteResponse(deleted=name)


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(
    embedding_provider: EmbeddingDep,
    vector_store: VectorStoreDep,
    llm: LLMDep,
) -> HealthResponse:
    """Report whether the embedding model is pulled and the store answers.

    Both are required for ingestion; the chat model only affects query
    rewriting, which falls back to the raw message.
    """
    providers: dict[str, Any] = {
        "embedding_provider": embedding_provider.get_provider_name(),
        "embedding_model": embedding_provider.get_model_name(),
        "vector_store_provider": vector_store.get_provider_name(),
        "llm_provider": llm.get_provider_name(),
    }

    try:
        providers["embedding"] = await embedding_provider.check_model_available()
    except Exception as exc:
        _logger.warning("health_embedding_check_failed", error=str(exc))
        providers["embedding"] = False

    providers["vector_store"] = await asyncio.to_thread(vector_store.is_available)
    providers["llm"] = await llm.validate_credentials()

    if providers["embedding"] and providers["vector_store"]:
        status = "healthy" if providers["llm"] else "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=API_VERSION, providers=providers)
