"""Character-budget text chunking with paragraph preservation and tail overlap.

Splits extracted document text into :class:`~src.models.rag.Chunk` objects
sized for the embedding model (``nomic-embed-text`` does best with
roughly 500-1000 characters).

The algorithm has three parts:

1. **Paragraph accumulation** -- Text is split on blank lines, whitespace
   inside each paragraph is collapsed, and paragraphs are packed greedily
   into a buffer until the next one would overflow ``chunk_size``.

2. **Tail overlap** -- Each new buffer is seeded with the last ``overlap``
   characters of the chunk just closed, so a sentence that straddles a
   boundary is retrievable from either side.

3. **Long-paragraph splitting** -- A paragraph longer than ``chunk_size``
   is cut on its own, preferring a sentence end (``. ``, ``! ``, ``? ``)
   within the last 30% of the window, then a comma or space.  Consecutive
   sub-chunks overlap by ``overlap`` characters, realigned to a word start.

Chunks under ``min_chunk_chars`` are dropped at the end.  The output is a
pure function of the input text and parameters.
"""

from __future__ import annotations

import math
import re

import structlog

from src.models.rag import Chunk
from src.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_CHUNK_SIZE = 800
DEFAULT_OVERLAP = 200
MIN_CHUNK_CHARS = 50

# Fraction of the window that must be kept before looking for a break.
_BREAK_WINDOW_START = 0.7

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_WHITESPACE = re.compile(r"\s+")
_SENTENCE_END = frozenset(".!?")
_SOFT_BREAK = frozenset(", ")


class TextChunker:
    """Splits text into overlapping chunks preserving paragraph boundaries.

    Parameters
    ----------
    chunk_size:
        Target maximum characters per chunk (default 800).  A chunk seeded
        with overlap may exceed this by up to ``overlap + 1`` characters.
    overlap:
        Characters carried from the end of one chunk to the start of the
        next (default 200).  Must be smaller than ``chunk_size``.
    min_chunk_chars:
        Chunks shorter than this are discarded (default 50).
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP,
        min_chunk_chars: int = MIN_CHUNK_CHARS,
    ) -> None:
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ConfigurationError(
                f"overlap must be in [0, chunk_size), got {overlap} for chunk_size {chunk_size}"
            )
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._min_chunk_chars = min_chunk_chars

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[Chunk]:
        """Split *text* into ordered, overlap-linked :class:`Chunk` objects.

        Parameters
        ----------
        text:
            The full extracted document text.

        Returns
        -------
        list[Chunk]
            Chunks indexed contiguously from 0.  Empty or whitespace-only
            input returns an empty list.
        """
        if not text or not text.strip():
            return []

        paragraphs = self._split_paragraphs(text)
        raw_chunks = self._accumulate_chunks(paragraphs)
        kept = [c for c in raw_chunks if len(c) >= self._min_chunk_chars]

        chunks = [Chunk(index=i, text=c, length=len(c)) for i, c in enumerate(kept)]

        logger.debug(
            "chunking_complete",
            num_paragraphs=len(paragraphs),
            num_chunks=len(chunks),
            dropped_small=len(raw_chunks) - len(kept),
            avg_chars=self._avg_chars(chunks),
        )
        return chunks

    # ------------------------------------------------------------------
    # Paragraph handling
    # ------------------------------------------------------------------

    @staticmethod
    def _split_paragraphs(text: str) -> list[str]:
        """Split on blank lines and collapse whitespace inside each paragraph."""
        paragraphs = (_WHITESPACE.sub(" ", p).strip() for p in _PARAGRAPH_SPLIT.split(text))
        return [p for p in paragraphs if p]

    def _accumulate_chunks(self, paragraphs: list[str]) -> list[str]:
        """Greedily pack paragraphs into chunks, seeding each with tail overlap."""
        chunks: list[str] = []
        current = ""
        pending_overlap = ""

        for para in paragraphs:
            if len(current) + len(para) + 1 <= self._chunk_size:
                if current:
                    current = f"{current} {para}"
                else:
                    current = self._join(pending_overlap, para)
                continue

            # Next paragraph does not fit: close what we have.
            if current:
                chunks.append(current.strip())
                pending_overlap = self._build_overlap(current)
                current = ""

            if len(para) > self._chunk_size:
                sub_chunks = self._chunk_long_paragraph(para)
                chunks.append(self._join(pending_overlap, sub_chunks[0]))
                chunks.extend(sub_chunks[1:])
                pending_overlap = self._build_overlap(sub_chunks[-1])
            else:
                current = self._join(pending_overlap, para)

        if current.strip():
            chunks.append(current.strip())

        return chunks

    # ------------------------------------------------------------------
    # Long-paragraph splitting
    # ------------------------------------------------------------------

    def _chunk_long_paragraph(self, paragraph: str) -> list[str]:
        """Split one paragraph longer than ``chunk_size`` into overlapping windows."""
        chunks: list[str] = []
        length = len(paragraph)
        position = 0

        while position < length:
            chunk_end = min(position + self._chunk_size, length)
            if chunk_end < length:
                chunk_end = self._find_break(paragraph, position, chunk_end)

            piece = paragraph[position:chunk_end].strip()
            if piece:
                chunks.append(piece)

            if chunk_end >= length:
                break

            next_position = max(chunk_end - self._overlap, 0)
            while next_position < chunk_end and paragraph[next_position] != " ":
                next_position += 1
            if next_position <= position:
                next_position = chunk_end
            position = next_position

        return chunks

    def _find_break(self, text: str, position: int, chunk_end: int) -> int:
        """Return the best cut point at or before *chunk_end*.

        Searches back no further than 70% into the window: first for a
        sentence end followed by a space, then for a comma or space.  Falls
        back to the hard cut at *chunk_end*.
        """
        search_start = position + math.floor(self._chunk_size * _BREAK_WINDOW_START)

        for i in range(chunk_end, search_start, -1):
            if text[i - 1] in _SENTENCE_END and text[i] == " ":
                return i

        for i in range(chunk_end, search_start, -1):
            if text[i - 1] in _SOFT_BREAK:
                return i

        return chunk_end

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_overlap(self, chunk_text: str) -> str:
        """Return the trimmed last ``overlap`` characters of *chunk_text*."""
        if self._overlap == 0:
            return ""
        start = max(0, len(chunk_text) - self._overlap)
        return chunk_text[start:].strip()

    @staticmethod
    def _join(prefix: str, text: str) -> str:
        return f"{prefix} {text}".strip() if prefix else text

    @staticmethod
    def _avg_chars(chunks: list[Chunk]) -> int:
        if not chunks:
            return 0
        return sum(c.length for c in chunks) // len(chunks)


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
    min_chunk_chars: int = MIN_CHUNK_CHARS,
) -> list[Chunk]:
    """Functional form of :meth:`TextChunker.chunk`."""
    return TextChunker(chunk_size=chunk_size, overlap=overlap, min_chunk_chars=min_chunk_chars).chunk(text)
