"""Source processor for plain-text uploads.

Decodes as UTF-8, dropping a leading byte-order mark and replacing
undecodable bytes instead of rejecting the file.
"""

from __future__ import annotations

import structlog

logger = structlog.get_logger(logger_name=__name__)


class TextProcessor:
    """Decodes ``.txt`` / ``text/plain`` uploads."""

    def extract_text(self, data: bytes, file_name: str = "") -> str:
        text = data.decode("utf-8-sig", errors="replace")
        logger.debug("text_decoded", file_name=file_name, chars=len(text))
        return text
