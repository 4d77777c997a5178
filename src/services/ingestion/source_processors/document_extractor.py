"""Format detection and text extraction for uploaded documents.

Accepted formats:

- ``application/pdf`` (or a ``.pdf`` name when no content type was sent)
- ``text/plain`` or any file whose name ends in ``.txt``

Everything else is unsupported.  Extraction is CPU-bound (PyMuPDF walks
every page), so it runs in a worker thread to keep the event loop free for
progress streaming and disconnect detection.
"""

from __future__ import annotations

import asyncio

import structlog

from src.interfaces.text_extractor import ITextExtractor
from src.models.rag import MimeClass, SourceDocument
from src.services.ingestion.source_processors.pdf_processor import PDFProcessor
from src.services.ingestion.source_processors.text_processor import TextProcessor
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

# Sent by browsers and curl when they cannot tell.
_UNKNOWN_CONTENT_TYPES = frozenset({"", "application/octet-stream"})


class DocumentTextExtractor(ITextExtractor):
    """Routes an upload to the PDF or plain-text processor."""

    def __init__(
        self,
        pdf_processor: PDFProcessor | None = None,
        text_processor: TextProcessor | None = None,
    ) -> None:
        self._pdf = pdf_processor or PDFProcessor()
        self._text = text_processor or TextProcessor()

    def detect(self, file_name: str, content_type: str) -> MimeClass | None:
        content_type = (content_type or "").split(";")[0].strip().lower()
        name = file_name.lower()

        if content_type == MimeClass.PDF.value:
            return MimeClass.PDF
        if content_type == MimeClass.PLAIN_TEXT.value or name.endswith(".txt"):
            return MimeClass.PLAIN_TEXT
        if content_type in _UNKNOWN_CONTENT_TYPES and name.endswith(".pdf"):
            return MimeClass.PDF
        return None

    async def extract(self, file_name: str, content_type: str, data: bytes) -> SourceDocument:
        mime_class = self.detect(file_name, content_type)
        if mime_class is None:
            logger.warning("unsupported_file_type", file_name=file_name, content_type=content_type)
            raise ExtractionError("Unsupported file type")

        processor = self._pdf if mime_class is MimeClass.PDF else self._text
        raw_text = await asyncio.to_thread(processor.extract_text, data, file_name)

        return SourceDocument(
            name=file_name,
            mime_class=mime_class,
            byte_size=len(data),
            raw_text=raw_text,
        )
