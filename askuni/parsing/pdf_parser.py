"""Attachment text extraction using pypdf.

Turns uploaded files into the ``Attachment`` text the assistant sees, and
parses official PDFs for the knowledge base.
"""

import io
import logging

from pydantic import BaseModel, Field
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from askuni.exceptions import AskUniError
from askuni.models.schemas import Attachment

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
MAX_EXTRACTED_CHARS = 12000
PDF_MAGIC_BYTES = b"%PDF"


class PDFContent(BaseModel):
    """Extracted content from a PDF file.

    Attributes:
        text: Combined text content from all pages.
        pages: Total number of pages in the document.
        metadata: Document title and author, when present.
    """

    text: str
    pages: int = Field(ge=0)
    metadata: dict[str, str | None]


class PDFParseError(AskUniError):
    """Raised when PDF parsing fails."""


def _validate_pdf_bytes(file_content: bytes) -> None:
    if not file_content:
        raise PDFParseError("Empty file provided")

    if len(file_content) > MAX_FILE_SIZE:
        size_mb = len(file_content) / (1024 * 1024)
        raise PDFParseError(f"File size ({size_mb:.1f}MB) exceeds maximum allowed (10MB)")

    if not file_content.lstrip()[:10].startswith(PDF_MAGIC_BYTES):
        raise PDFParseError("Invalid PDF: file does not start with PDF header")


def _extract_metadata(reader: PdfReader) -> dict[str, str | None]:
    metadata: dict[str, str | None] = {}
    try:
        if reader.metadata:
            metadata["title"] = reader.metadata.get("/Title")
            metadata["author"] = reader.metadata.get("/Author")
    except Exception as e:
        logger.warning(f"Failed to extract some metadata: {e}")
    return {k: v for k, v in metadata.items() if v is not None}


def parse_pdf(file_content: bytes) -> PDFContent:
    """Parse a PDF file and extract its text content.

    Args:
        file_content: Raw bytes of the PDF file.

    Returns:
        PDFContent with extracted text, page count, and metadata.

    Raises:
        PDFParseError: If the file is invalid, too large, empty, or corrupt.
    """
    _validate_pdf_bytes(file_content)

    try:
        reader = PdfReader(io.BytesIO(file_content))
        pages = len(reader.pages)
    except PdfReadError as e:
        raise PDFParseError(f"Corrupt or invalid PDF: {e}") from e
    except Exception as e:
        raise PDFParseError(f"Failed to read PDF: {e}") from e

    if pages == 0:
        raise PDFParseError("PDF contains no pages")

    text_parts: list[str] = []
    for i, page in enumerate(reader.pages):
        try:
            page_text = page.extract_text()
        except Exception as e:
            logger.warning(f"Failed to extract text from page {i + 1}: {e}")
            continue
        if page_text:
            text_parts.append(page_text)

    text = "\n".join(text_parts)
    if not text.strip():
        logger.warning("PDF contains no extractable text (may be scanned/image-based)")

    return PDFContent(text=text, pages=pages, metadata=_extract_metadata(reader))


def is_pdf(filename: str, content_type: str) -> bool:
    return content_type == "application/pdf" or filename.lower().endswith(".pdf")


def is_text(filename: str, content_type: str) -> bool:
    return content_type.startswith("text/") or filename.lower().endswith(".txt")


def extract_attachment(filename: str, content_type: str, data: bytes) -> Attachment:
    """Build an attachment from an uploaded file.

    PDFs and plain text are extracted; other types get empty text. A file
    that fails to extract still becomes an attachment, with empty text.

    Args:
        filename: Original file name.
        content_type: MIME type reported by the client.
        data: File bytes.

    Returns:
        Attachment with at most MAX_EXTRACTED_CHARS characters of text.
    """
    text = ""
    try:
        if is_pdf(filename, content_type):
            text = parse_pdf(data).text
        elif is_text(filename, content_type):
            text = data.decode("utf-8", errors="replace")
    except PDFParseError as e:
        logger.warning(f"Extract failed for {filename}: {e}")

    return Attachment(filename=filename, text=text[:MAX_EXTRACTED_CHARS])
