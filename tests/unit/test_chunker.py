"""Unit tests for the TextChunker: paragraph-aware overlapping text chunking."""

from __future__ import annotations

import pytest

from src.services.ingestion.chunker import TextChunker, chunk_text
from src.utils.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_chunker(chunk_size: int = 800, overlap: int = 200) -> TextChunker:
    """Build a TextChunker with a predictable configuration."""
    return TextChunker(chunk_size=chunk_size, overlap=overlap)


def _numbered_words(count: int) -> str:
    """One long paragraph of distinct 8-character tokens, no sentence ends."""
    return " ".join(f"word{i:04d}" for i in range(count))


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestEdgeInputs:
    def test_empty_text_returns_no_chunks(self) -> None:
        assert _make_chunker().chunk("") == []

    def test_whitespace_only_returns_no_chunks(self) -> None:
        assert _make_chunker().chunk("   \n\n\t  \n") == []

    def test_short_document_is_one_chunk(self) -> None:
        text = "A short handbook entry that is comfortably above the minimum length."
        chunks = _make_chunker().chunk(text)

        assert len(chunks) == 1
        assert chunks[0].text == text
        assert chunks[0].index == 0
        assert chunks[0].length == len(text)

    def test_text_below_minimum_is_dropped(self) -> None:
        assert _make_chunker().chunk("Too short to embed.") == []

    def test_whitespace_inside_paragraph_is_collapsed(self) -> None:
        text = "Line one of the paragraph\nline two   of the paragraph\twith tabs and more words."
        chunks = _make_chunker().chunk(text)

        assert chunks[0].text == (
            "Line one of the paragraph line two of the paragraph with tabs and more words."
        )


class TestParagraphAccumulation:
    def test_three_paragraph_document_gives_three_or_four_chunks(
        self, sample_document_text: str
    ) -> None:
        chunks = _make_chunker().chunk(sample_document_text)
        assert 3 <= len(chunks) <= 4

    def test_small_paragraphs_are_packed_together(self) -> None:
        paragraphs = [f"Paragraph {i} has a little text in it for packing." for i in range(4)]
        chunks = _make_chunker().chunk("\n\n".join(paragraphs))

        assert len(chunks) == 1
        for para in paragraphs:
            assert para in chunks[0].text

    def test_next_chunk_starts_with_tail_of_previous(self, sample_document_text: str) -> None:
        chunks = _make_chunker().chunk(sample_document_text)

        for previous, current in zip(chunks, chunks[1:]):
            tail = previous.text[-200:].strip()
            assert current.text.startswith(tail)

    def test_zero_overlap_shares_nothing(self, sample_document_text: str) -> None:
        chunks = _make_chunker(overlap=0).chunk(sample_document_text)

        for previous, current in zip(chunks, chunks[1:]):
            assert not current.text.startswith(previous.text[-50:])


class TestLongParagraphs:
    def test_long_paragraph_is_split_within_budget(self) -> None:
        chunks = _make_chunker().chunk(_numbered_words(400))

        assert len(chunks) > 1
        assert all(c.length <= 800 for c in chunks)

    def test_sub_chunks_overlap(self) -> None:
        chunks = _make_chunker().chunk(_numbered_words(400))

        for previous, current in zip(chunks, chunks[1:]):
            assert current.text[:20] in previous.text

    def test_no_words_are_lost(self) -> None:
        text = _numbered_words(400)
        chunks = _make_chunker().chunk(text)

        covered = {token for chunk in chunks for token in chunk.text.split()}
        assert set(text.split()) <= covered

    def test_prefers_sentence_boundary(self) -> None:
        text = " ".join(f"Sentence number {i} is a short one." for i in range(80))
        chunks = _make_chunker().chunk(text)

        assert chunks[0].text.endswith(".")


class TestChunkProperties:
    def test_deterministic(self, sample_document_text: str) -> None:
        first = _make_chunker().chunk(sample_document_text)
        second = _make_chunker().chunk(sample_document_text)
        assert first == second

    def test_indices_are_contiguous(self, long_document_text: str) -> None:
        chunks = _make_chunker().chunk(long_document_text)
        assert [c.index for c in chunks] == list(range(len(chunks)))

    def test_no_chunk_below_minimum(self, long_document_text: str) -> None:
        chunks = _make_chunker().chunk(long_document_text)
        assert all(c.length >= 50 for c in chunks)

    def test_long_document_chunk_count(self, long_document_text: str) -> None:
        assert len(_make_chunker().chunk(long_document_text)) == 120

    def test_chunk_text_matches_class(self, sample_document_text: str) -> None:
        assert chunk_text(sample_document_text) == _make_chunker().chunk(sample_document_text)


class TestConfiguration:
    @pytest.mark.parametrize("overlap", [-1, 800, 900])
    def test_invalid_overlap_rejected(self, overlap: int) -> None:
        with pytest.raises(ConfigurationError):
            TextChunker(chunk_size=800, overlap=overlap)

    def test_non_positive_chunk_size_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            TextChunker(chunk_size=0, overlap=0)
