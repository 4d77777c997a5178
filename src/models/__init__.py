"""ragvault domain models, re-exported for ``from src.models import ...``.

    - rag.py        -- documents, chunks, stored records, retrieval results
    - ingestion.py  -- ingestion job state, phases and progress events
"""

from __future__ import annotations

from src.models.ingestion import (
    DocumentUpload,
    EventStatus,
    IngestionJob,
    IngestionOutcome,
    IngestionPhase,
    ProgressEvent,
)
from src.models.rag import (
    Chunk,
    ChunkMetadata,
    ChunkRecord,
    CollectionInfo,
    MimeClass,
    RelevanceLevel,
    RetrievalResult,
    RetrievedPassage,
    SourceDocument,
)

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "ChunkRecord",
    "CollectionInfo",
    "DocumentUpload",
    "EventStatus",
    "IngestionJob",
    "IngestionOutcome",
    "IngestionPhase",
    "MimeClass",
    "ProgressEvent",
    "RelevanceLevel",
    "RetrievalResult",
    "RetrievedPassage",
    "SourceDocument",
]
