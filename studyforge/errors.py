"""Error taxonomy for the retrieval core.

Library exceptions are translated into these types at the component that owns
the library call, so callers only ever handle ``StudyForgeError`` subclasses.
"""
from typing import Optional


class StudyForgeError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "detail": self.detail,
            "type": type(self).__name__,
        }


class ConfigurationError(StudyForgeError):
    """Invalid parameters detected before any work starts."""


class ParseError(StudyForgeError):
    """Document text extraction failed or produced no text."""


class ProviderError(StudyForgeError):
    """Embedding or LLM provider call failed, or returned malformed output.

    Args:
        message: Human readable summary
        detail: Underlying error text
        index: Position of the offending input within a batch, when known
        transient: Whether the failure is worth retrying
    """

    def __init__(
        self,
        message: str,
        detail: Optional[str] = None,
        index: Optional[int] = None,
        transient: bool = False,
    ):
        super().__init__(message, detail)
        self.index = index
        self.transient = transient

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.index is not None:
            data["index"] = self.index
        return data


class EmbeddingError(ProviderError):
    """Embedding generation failed for a batch."""


class NotFoundError(StudyForgeError):
    """Requested document or chunk set does not exist or is empty."""


class StorageError(StudyForgeError):
    """Persistence layer unavailable or a write failed."""
