"""Source processor for uploaded PDF documents.

Opens the upload directly from memory with PyMuPDF (fitz) and extracts text
page by page.  Pages are joined with blank lines so the chunker treats each
page break as a paragraph boundary.

Scanned PDFs without a text layer yield an empty string; the job controller
reports that as "No text content found" rather than failing here.
"""

from __future__ import annotations

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)


class PDFProcessor:
    """Extracts plain text from PDF bytes."""

    def extract_text(self, data: bytes, file_name: str = "") -> str:
        """Return the text of every page in *data*, separated by blank lines.

        Raises
        ------
        ExtractionError
            If PyMuPDF cannot open the document.
        """
        pages = self._extract_pages(data, file_name)
        logger.info("pdf_processed", file_name=file_name, pages_with_text=len(pages))
        return "\n\n".join(text for _, text in pages)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_pages(data: bytes, file_name: str) -> list[tuple[int, str]]:
        """Extract ``(page_number, text)`` for each page with text (1-based)."""
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            logger.error("pdf_open_failed", file_name=file_name, error=str(exc))
            raise ExtractionError(
                message=f"Could not read PDF: {exc}",
                provider_name="pymupdf",
            ) from exc

        pages: list[tuple[int, str]] = []
        try:
            for page_num in range(len(doc)):
                text = doc[page_num].get_text("text").strip()
                if text:
                    pages.append((page_num + 1, text))
        finally:
            doc.close()

        if not pages:
            logger.warning("pdf_no_text_extracted", file_name=file_name)

        return pages
