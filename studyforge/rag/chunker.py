"""Text chunking with overlap for the RAG pipeline.

Fixed character windows, no boundary adjustment: the same text and parameters
always produce the same chunks.
"""
from dataclasses import dataclass
from typing import List

import structlog

from studyforge import config
from studyforge.errors import ConfigurationError

logger = structlog.get_logger()


@dataclass(frozen=True)
class TextChunk:
    """Represents a chunk of text with position information."""

    content: str
    char_start: int
    char_end: int
    chunk_index: int


def validate_window(size: int, overlap: int) -> None:
    """Reject window parameters that would never advance.

    Raises:
        ConfigurationError: If size <= 0, overlap < 0 or overlap >= size
    """
    if size <= 0:
        raise ConfigurationError(f"Chunk size must be positive, got {size}")
    if overlap < 0:
        raise ConfigurationError(f"Chunk overlap must not be negative, got {overlap}")
    if overlap >= size:
        raise ConfigurationError(
            f"Overlap ({overlap}) must be less than chunk size ({size})"
        )


def chunk_text(
    text: str, size: int = 1000, overlap: int = 200
) -> List[str]:
    """Split text into overlapping fixed-size windows.

    Window ``i`` covers ``[i * (size - overlap), i * (size - overlap) + size)``
    clipped to the text. Emission stops with the first window that reaches
    the end of the text.

    Args:
        text: Text to chunk
        size: Window size in characters
        overlap: Characters shared by consecutive windows

    Returns:
        Ordered list of chunk strings (empty for empty text)

    Raises:
        ConfigurationError: If the window parameters are invalid
    """
    return [c.content for c in _windows(text, size, overlap)]


def _windows(text: str, size: int, overlap: int) -> List[TextChunk]:
    validate_window(size, overlap)

    step = size - overlap
    text_length = len(text)
    chunks = []
    start = 0

    while start < text_length:
        end = min(start + size, text_length)
        chunks.append(
            TextChunk(
                content=text[start:end],
                char_start=start,
                char_end=end,
                chunk_index=len(chunks),
            )
        )
        if end == text_length:
            break
        start += step

    return chunks


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(self, chunk_size: int = None, chunk_overlap: int = None):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)

        Raises:
            ConfigurationError: If overlap is not smaller than chunk size
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = (
            config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        )
        validate_window(self.chunk_size, self.chunk_overlap)

        logger.info(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks with positions."""
        chunks = _windows(text, self.chunk_size, self.chunk_overlap)

        if chunks:
            logger.debug(
                "text_chunked",
                text_length=len(text),
                chunk_count=len(chunks),
            )
        return chunks

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks."""
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
                "overlap": self.chunk_overlap,
            }

        chunk_sizes = [len(c.content) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }
