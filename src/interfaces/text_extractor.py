"""Abstract base class for document text extraction.

Turns uploaded bytes into a :class:`~src.models.rag.SourceDocument`.  The
ingestion job controller only depends on this contract; PDF parsing and
text decoding live in ``src/services/ingestion/source_processors/``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import MimeClass, SourceDocument


class ITextExtractor(ABC):
    """Contract for format-aware text extraction."""

    @abstractmethod
    def detect(self, file_name: str, content_type: str) -> MimeClass | None:
        """Return the document class for an upload, or ``None`` if unsupported."""

    @abstractmethod
    async def extract(self, file_name: str, content_type: str, data: bytes) -> SourceDocument:
        """Extract text from *data*.

        Raises
        ------
        src.utils.errors.ExtractionError
            If the format is unsupported or the bytes cannot be decoded.
        """
