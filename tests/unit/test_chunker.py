"""Tests for fixed-window chunking."""
import pytest

from studyforge.errors import ConfigurationError
from studyforge.rag.chunker import TextChunker, chunk_text


def sample_text(length: int) -> str:
    alphabet = "abcdefghijklmnopqrstuvwxyz0123456789 \n"
    return "".join(alphabet[(i * 7) % len(alphabet)] for i in range(length))


def reconstruct(chunks, overlap):
    if not chunks:
        return ""
    return chunks[0] + "".join(c[overlap:] for c in chunks[1:])


class TestChunkText:
    def test_default_windows_on_2500_chars(self):
        text = sample_text(2500)
        chunks = chunk_text(text, size=1000, overlap=200)

        assert chunks == [text[0:1000], text[800:1800], text[1600:2500]]
        assert len(chunks[-1]) == 900

    def test_deterministic(self):
        text = sample_text(5321)
        first = chunk_text(text, size=700, overlap=150)
        second = chunk_text(text, size=700, overlap=150)
        assert first == second

    def test_empty_text_yields_no_chunks(self):
        assert chunk_text("") == []

    def test_short_text_is_single_chunk(self):
        assert chunk_text("short notes", size=1000, overlap=200) == ["short notes"]

    def test_text_of_exactly_window_size_is_single_chunk(self):
        text = sample_text(1000)
        assert chunk_text(text, size=1000, overlap=200) == [text]

    def test_one_character_past_window(self):
        text = sample_text(1001)
        chunks = chunk_text(text, size=1000, overlap=200)
        assert chunks == [text[:1000], text[800:]]

    @pytest.mark.parametrize(
        "length,size,overlap",
        [(2500, 1000, 200), (1, 10, 3), (999, 100, 0), (4097, 512, 511), (3000, 1000, 200)],
    )
    def test_non_overlapping_parts_rebuild_text(self, length, size, overlap):
        text = sample_text(length)
        chunks = chunk_text(text, size=size, overlap=overlap)

        assert reconstruct(chunks, overlap) == text
        assert all(len(c) <= size for c in chunks)

    @pytest.mark.parametrize("size,overlap", [(100, 100), (100, 150), (1, 1)])
    def test_overlap_not_below_size_rejected(self, size, overlap):
        with pytest.raises(ConfigurationError):
            chunk_text("some non-empty text", size=size, overlap=overlap)

    def test_invalid_window_rejected_even_for_empty_text(self):
        with pytest.raises(ConfigurationError):
            chunk_text("", size=10, overlap=10)

    @pytest.mark.parametrize("size,overlap", [(0, 0), (-5, 0), (10, -1)])
    def test_non_positive_size_or_negative_overlap_rejected(self, size, overlap):
        with pytest.raises(ConfigurationError):
            chunk_text("text", size=size, overlap=overlap)


class TestTextChunker:
    def test_chunks_carry_positions(self):
        text = sample_text(2500)
        chunker = TextChunker(chunk_size=1000, chunk_overlap=200)

        chunks = chunker.chunk_text(text)

        assert [(c.char_start, c.char_end) for c in chunks] == [
            (0, 1000),
            (800, 1800),
            (1600, 2500),
        ]
        assert [c.chunk_index for c in chunks] == [0, 1, 2]
        assert all(c.content == text[c.char_start:c.char_end] for c in chunks)

    def test_matches_function(self):
        text = sample_text(3333)
        chunker = TextChunker(chunk_size=400, chunk_overlap=50)
        assert [c.content for c in chunker.chunk_text(text)] == chunk_text(text, 400, 50)

    def test_invalid_configuration(self):
        with pytest.raises(ConfigurationError):
            TextChunker(chunk_size=200, chunk_overlap=200)

    def test_stats(self):
        chunker = TextChunker(chunk_size=1000, chunk_overlap=200)
        stats = chunker.get_chunk_stats(chunker.chunk_text(sample_text(2500)))

        assert stats["chunk_count"] == 3
        assert stats["min_chunk_size"] == 900
        assert stats["max_chunk_size"] == 1000
        assert stats["overlap"] == 200

    def test_stats_empty(self):
        chunker = TextChunker(chunk_size=1000, chunk_overlap=200)
        assert chunker.get_chunk_stats([])["chunk_count"] == 0
