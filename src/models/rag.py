"""RAG data models for the ragvault knowledge base.

Defines Pydantic v2 models for uploaded documents, chunks, storage-ready
records and retrieval results.  All models use frozen config; nothing here
is mutated after construction.

Lifecycle overview:

    SourceDocument --chunker--> Chunk --identifiers--> ChunkRecord
         (upload)                 (text)     + embedding + ChunkMetadata
                                                          |
                                                   vector store
                                                          |
    RetrievedPassage <--retrieval service-- nearest records by distance
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MimeClass(str, Enum):  # noqa: UP042
    """Document formats the ingestion pipeline can extract text from."""

    PDF = "application/pdf"
    PLAIN_TEXT = "text/plain"


# ---------------------------------------------------------------------------
# Ingestion-side models
# ---------------------------------------------------------------------------
class SourceDocument(BaseModel):
    """An uploaded document after text extraction.

    Created once per upload and discarded after chunking; never persisted.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Original file name, e.g. 'handbook.pdf'.")
    mime_class: MimeClass = Field(description="Detected document format.")
    byte_size: int = Field(ge=0, description="Size of the uploaded file in bytes.")
    raw_text: str = Field(description="Extracted text content.")


class Chunk(BaseModel):
    """One overlap-linked slice of a document, produced only by the chunker.

    Order is significant: ``index`` is 0-based and contiguous after
    small-chunk filtering, and adjacent chunks share overlap text.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0, description="Position of this chunk within its document.")
    text: str = Field(description="Trimmed chunk text.")
    length: int = Field(ge=0, description="Character count of ``text``.")


class ChunkMetadata(BaseModel):
    """Descriptive metadata stored alongside each chunk record."""

    model_config = ConfigDict(frozen=True)

    filename: str
    file_type: str
    file_size: int = Field(ge=0)
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=0)
    uploaded_at: datetime

    def to_store_dict(self) -> dict[str, str | int]:
        """Serialise to the flat camelCase dict persisted in the vector store."""
        return {
            "filename": self.filename,
            "fileType": self.file_type,
            "fileSize": self.file_size,
            "chunkIndex": self.chunk_index,
            "totalChunks": self.total_chunks,
            "uploadedAt": self.uploaded_at.isoformat(),
        }

    @classmethod
    def from_store_dict(cls, data: dict[str, Any]) -> ChunkMetadata:
        """Inverse of :meth:`to_store_dict`."""
        return cls(
            filename=str(data.get("filename", "")),
            file_type=str(data.get("fileType", "")),
            file_size=int(data.get("fileSize", 0)),
            chunk_index=int(data.get("chunkIndex", 0)),
            total_chunks=int(data.get("totalChunks", 0)),
            uploaded_at=datetime.fromisoformat(str(data["uploadedAt"])),
        )


class ChunkRecord(BaseModel):
    """The storage-ready unit written to the vector store."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="'{filename}-chunk-{index}-{timestamp_ms}'.")
    embedding: list[float]
    text: str
    metadata: ChunkMetadata


# ---------------------------------------------------------------------------
# Retrieval-side models
# ---------------------------------------------------------------------------
class RelevanceLevel(str, Enum):  # noqa: UP042
    """Qualitative reading of a vector distance on the 0-2 cosine scale."""

    EXCELLENT = "excellent match"
    GOOD = "good match"
    FAIR = "fair match"
    WEAK = "weak match"


class RetrievedPassage(BaseModel):
    """A stored chunk returned from a similarity query."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    distance: float = Field(ge=0.0, description="0-2, lower is more similar.")
    metadata: dict[str, Any] = Field(default_factory=dict)
    relevance: RelevanceLevel = RelevanceLevel.WEAK

    @property
    def chunk_index(self) -> int | None:
        value = self.metadata.get("chunkIndex")
        return int(value) if value is not None else None

    @property
    def total_chunks(self) -> int | None:
        value = self.metadata.get("totalChunks")
        return int(value) if value is not None else None

    @property
    def has_next(self) -> bool:
        """Return ``True`` when the source document has a following chunk."""
        index, total = self.chunk_index, self.total_chunks
        return index is not None and total is not None and index + 1 < total


class RetrievalResult(BaseModel):
    """Outcome of one retrieval call.

    ``passages`` is empty whenever a step failed; ``error_kind`` and
    ``error`` then say which step and why.  Callers treat an empty result
    as "no context" and carry on.
    """

    model_config = ConfigDict(frozen=True)

    query: str = Field(description="The user's original utterance.")
    search_query: str = Field(description="The query actually embedded (after rewrite).")
    collection_name: str
    passages: list[RetrievedPassage] = Field(default_factory=list)
    error_kind: str | None = None
    error: str | None = None

    @property
    def average_distance(self) -> float | None:
        if not self.passages:
            return None
        return sum(p.distance for p in self.passages) / len(self.passages)


class CollectionInfo(BaseModel):
    """A vector-store collection as listed by the store."""

    model_config = ConfigDict(frozen=True)

    name: str
    count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
