"""PDF text extraction."""
import io

import structlog
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from studyforge.errors import ParseError

logger = structlog.get_logger()

PDF_MAGIC = b"%PDF-"


def extract_pdf_text(data: bytes) -> str:
    """Extract the text of every page, joined by newlines.

    Args:
        data: Raw PDF bytes

    Returns:
        Extracted text (never empty)

    Raises:
        ParseError: If the bytes are not a readable PDF or contain no text
    """
    if not data or not data.lstrip().startswith(PDF_MAGIC):
        raise ParseError("File is not a PDF document")

    try:
        reader = PdfReader(io.BytesIO(data))
        parts = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError, KeyError, TypeError) as e:
        logger.error("pdf_extraction_failed", error=str(e), error_type=type(e).__name__)
        raise ParseError("Failed to extract text from PDF", detail=str(e)) from e

    text = "\n".join(parts)
    if not text.strip():
        raise ParseError("PDF contains no extractable text")

    logger.info("pdf_text_extracted", pages=len(parts), text_length=len(text))
    return text
