"""Source processors for the ragvault ingestion pipeline.

Each processor turns uploaded bytes of one format into plain text, which
the TextChunker then splits into embedding-sized chunks.

- **PDFProcessor**          -- PDF documents via PyMuPDF page extraction
- **TextProcessor**         -- UTF-8 plain text
- **DocumentTextExtractor** -- detects the format and dispatches to the above
"""

from src.services.ingestion.source_processors.document_extractor import (
    DocumentTextExtractor,
)
from src.services.ingestion.source_processors.pdf_processor import PDFProcessor
from src.services.ingestion.source_processors.text_processor import TextProcessor

__all__ = [
    "DocumentTextExtractor",
    "PDFProcessor",
    "TextProcessor",
]
