"""Document ingestion pipeline for the ragvault knowledge base.

Runs one upload through **extract -> chunk -> embed -> store**, reporting
progress all the way.

1. **Extract** (source_processors/) -- PDF pages via PyMuPDF or UTF-8 text.

2. **Chunk** (chunker.py / TextChunker) -- ~800-character windows with
   200 characters of tail overlap, preserving paragraph and sentence
   boundaries.

3. **Embed** (embedding_batcher.py / EmbeddingBatcher) -- sequential
   sub-batches of at most ``embedding_max_batch`` texts.

4. **Store** (store_writer.py / StoreWriter) -- sequential sub-batches of
   at most ``store_max_batch`` records, with ids and metadata from
   identifiers.py.

The IngestionJobController owns the state machine, the progress channel
and the mapping of every failure to a terminal event.
"""

from src.services.ingestion.chunker import TextChunker, chunk_text
from src.services.ingestion.embedding_batcher import EmbeddingBatcher
from src.services.ingestion.job_controller import IngestionJobController
from src.services.ingestion.store_writer import StoreWriter

__all__ = [
    "EmbeddingBatcher",
    "IngestionJobController",
    "StoreWriter",
    "TextChunker",
    "chunk_text",
]
