"""Text extraction for uploaded attachments and knowledge base documents."""

from askuni.parsing.pdf_parser import (
    MAX_EXTRACTED_CHARS,
    MAX_FILE_SIZE,
    PDFContent,
    PDFParseError,
    extract_attachment,
    parse_pdf,
)

__all__ = [
    "MAX_EXTRACTED_CHARS",
    "MAX_FILE_SIZE",
    "PDFContent",
    "PDFParseError",
    "extract_attachment",
    "parse_pdf",
]
