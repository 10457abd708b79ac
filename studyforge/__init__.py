"""StudyForge: retrieval-augmented study assistant for PDF course material."""

__version__ = "0.3.0"
