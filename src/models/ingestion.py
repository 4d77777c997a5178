"""Ingestion job state and progress event models.

``IngestionJob`` is a plain mutable dataclass owned by the job controller
(internal only, never serialised).  ``ProgressEvent`` is the frozen wire
record pushed through the job's event channel and streamed to the client
as ``data: {json}``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class IngestionPhase(str, Enum):  # noqa: UP042
    """States of the ingestion job state machine.

    STARTED -> COLLECTION_RESOLVED -> EXTRACTING -> CHUNKING -> EMBEDDING
    -> SAVING -> COMPLETE, with CANCELLED and FAILED reachable from every
    non-terminal state.
    """

    STARTED = "STARTED"
    COLLECTION_RESOLVED = "COLLECTION_RESOLVED"
    EXTRACTING = "EXTRACTING"
    CHUNKING = "CHUNKING"
    EMBEDDING = "EMBEDDING"
    SAVING = "SAVING"
    COMPLETE = "COMPLETE"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_PHASES


_TERMINAL_PHASES = frozenset(
    {IngestionPhase.COMPLETE, IngestionPhase.CANCELLED, IngestionPhase.FAILED}
)


class EventStatus(str, Enum):  # noqa: UP042
    """``status`` values carried by progress events on the wire."""

    STARTED = "started"
    COLLECTION_FOUND = "collection_found"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    SAVING = "saving"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (EventStatus.COMPLETE, EventStatus.CANCELLED, EventStatus.ERROR)


class ProgressEvent(BaseModel):
    """One progress record for an ingestion job."""

    model_config = ConfigDict(frozen=True)

    status: EventStatus
    progress: int = Field(ge=0, le=100)
    message: str = ""
    total_chunks: int | None = None
    current_batch: int | None = None
    total_batches: int | None = None
    chunks_added: int | None = None
    file_name: str | None = None
    file_size: int | None = None
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Return the camelCase JSON payload, omitting unset optional fields.

        Failure events keep the ``{error, progress: 0}`` shape clients
        already understand, alongside ``status``.
        """
        payload: dict[str, Any] = {"status": self.status.value, "progress": self.progress}
        if self.message:
            payload["message"] = self.message
        optional = {
            "totalChunks": self.total_chunks,
            "currentBatch": self.current_batch,
            "totalBatches": self.total_batches,
            "chunksAdded": self.chunks_added,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "error": self.error,
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        return payload


class DocumentUpload(BaseModel):
    """Input to one ingestion job: the raw upload plus its destination."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    content_type: str = ""
    data: bytes = Field(repr=False)
    collection_name: str

    @property
    def byte_size(self) -> int:
        return len(self.data)


@dataclass
class IngestionJob:
    """Request-scoped job state; only the job controller writes to it."""

    document_name: str
    collection_name: str
    total_chunks: int = 0
    chunks_embedded: int = 0
    chunks_saved: int = 0
    phase: IngestionPhase = IngestionPhase.STARTED
    cancelled: bool = False


class IngestionOutcome(BaseModel):
    """Final result of a job, returned by the controller."""

    model_config = ConfigDict(frozen=True)

    phase: IngestionPhase
    message: str
    chunks_added: int = 0
    chunks_saved: int = 0
    error_kind: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.phase is IngestionPhase.COMPLETE
