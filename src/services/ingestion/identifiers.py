"""Deterministic chunk identifiers and metadata records.

Record ids are ``{filename}-chunk-{index}-{timestamp_ms}``.  One ingestion
run uses a single timestamp, so ids never repeat within a run, while a
re-run of the same file gets a new timestamp and never collides with the
previous run's records.  The id of a chunk's neighbour is therefore
derivable from its own id, which retrieval uses to fetch adjacent chunks.
"""

from __future__ import annotations

import re
import time
from datetime import datetime, timezone

from src.models.rag import Chunk, ChunkMetadata, ChunkRecord

_ID_PATTERN = re.compile(r"^(?P<filename>.+)-chunk-(?P<index>\d+)-(?P<timestamp>\d+)$")


def current_timestamp_ms() -> int:
    """Milliseconds since the epoch; the per-run id suffix."""
    return int(time.time() * 1000)


def generate_chunk_id(filename: str, chunk_index: int, timestamp_ms: int) -> str:
    return f"{filename}-chunk-{chunk_index}-{timestamp_ms}"


def parse_chunk_id(chunk_id: str) -> tuple[str, int, int] | None:
    """Split an id back into ``(filename, chunk_index, timestamp_ms)``.

    Returns ``None`` for ids not produced by :func:`generate_chunk_id`.
    """
    match = _ID_PATTERN.match(chunk_id)
    if match is None:
        return None
    return match["filename"], int(match["index"]), int(match["timestamp"])


def sibling_chunk_id(chunk_id: str, offset: int) -> str | None:
    """Return the id of the chunk *offset* positions away in the same run."""
    parsed = parse_chunk_id(chunk_id)
    if parsed is None:
        return None
    filename, index, timestamp_ms = parsed
    target = index + offset
    if target < 0:
        return None
    return generate_chunk_id(filename, target, timestamp_ms)


def build_metadata(
    filename: str,
    file_type: str,
    file_size: int,
    chunk_index: int,
    total_chunks: int,
    uploaded_at: datetime | None = None,
) -> ChunkMetadata:
    """Build the metadata record attached to one chunk."""
    return ChunkMetadata(
        filename=filename,
        file_type=file_type,
        file_size=file_size,
        chunk_index=chunk_index,
        total_chunks=total_chunks,
        uploaded_at=uploaded_at or datetime.now(tz=timezone.utc),  # noqa: UP017
    )


def build_records(
    filename: str,
    file_type: str,
    file_size: int,
    chunks: list[Chunk],
    embeddings: list[list[float]],
    timestamp_ms: int,
) -> list[ChunkRecord]:
    """Zip chunks and their vectors into storage-ready records.

    Every record of the run shares ``timestamp_ms`` and an ``uploaded_at``
    derived from it.

    Raises
    ------
    ValueError
        If ``len(chunks) != len(embeddings)``.
    """
    if len(chunks) != len(embeddings):
        raise ValueError(
            f"chunks and embeddings length mismatch: {len(chunks)} != {len(embeddings)}"
        )
    uploaded_at = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)  # noqa: UP017
    total = len(chunks)
    return [
        ChunkRecord(
            id=generate_chunk_id(filename, chunk.index, timestamp_ms),
            embedding=embedding,
            text=chunk.text,
            metadata=build_metadata(
                filename, file_type, file_size, chunk.index, total, uploaded_at
            ),
        )
        for chunk, embedding in zip(chunks, embeddings, strict=True)
    ]
