"""Pydantic request/response schemas for the ragvault API.

Request bodies accept the camelCase field names browser clients send
(``collectionName``, ``topK``) as aliases, and snake_case names too.
Upload progress is not modelled here: it streams as
:class:`~src.models.ingestion.ProgressEvent` payloads.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _CamelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    """Standard error body returned by the error-handling middleware."""

    error: str
    detail: str | None = None


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


class RetrieveRequest(_CamelRequest):
    """Search one collection for passages relevant to a user message."""

    query: str
    collection_name: str = Field(alias="collectionName")
    top_k: int = Field(default=5, alias="topK", ge=1, le=50)
    rewrite: bool | None = None


class PassageResponse(BaseModel):
    """A retrieved chunk with its distance and relevance band."""

    id: str
    text: str
    distance: float
    relevance: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class RetrieveResponse(BaseModel):
    query: str
    search_query: str
    collection_name: str
    passages: list[PassageResponse] = Field(default_factory=list)
    context: str = ""
    # The query wrapped with the context blocks, ready to send as the user turn.
    augmented_message: str = ""
    error_kind: str | None = None
    error: str | None = None


class GenerateQueryRequest(BaseModel):
    message: str


class GenerateQueryResponse(BaseModel):
    query: str


class GenerateEmbeddingRequest(BaseModel):
    """Either ``text`` (one string) or ``texts`` (a list) must be given."""

    text: str | None = None
    texts: list[str] | None = None


class KnowledgeBaseToolRequest(_CamelRequest):
    collection_name: str = Field(alias="collectionName")
    search_query: str = Field(alias="searchQuery")


class AdjacentChunkRequest(_CamelRequest):
    """Fetch the chunk before (-1) or after (1) a chunk the model already has."""

    collection_name: str = Field(alias="collectionName")
    chunk_id: str = Field(alias="chunkId")
    direction: int = Field(default=1)


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


class CollectionCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class CollectionResponse(BaseModel):
    name: str
    count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)


class CollectionListResponse(BaseModel):
    collections: list[CollectionResponse] = Field(default_factory=list)


class CollectionDeleteResponse(BaseModel):
    deleted: str


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]
