"""Upload endpoints: chat attachments, knowledge base documents, voice input.

Attachments are extracted and handed back to the client, which sends
their text with its next message. Knowledge base PDFs are parsed and
stored for grounded answers.
"""

import asyncio
import logging
import re
import time
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, UploadFile, status

from askuni.agent.chat_agent import AgentService
from askuni.agent.speech import SpeechService
from askuni.api.deps import get_backend, get_speech_service
from askuni.models.schemas import KnowledgeUploadResponse, TranscriptionResponse, UploadResponse
from askuni.parsing.pdf_parser import MAX_FILE_SIZE, PDFParseError, extract_attachment, parse_pdf

logger = logging.getLogger(__name__)

router = APIRouter(tags=["upload"])

MAX_UPLOAD_SIZE = MAX_FILE_SIZE

_UPLOADS_DIR = Path(__file__).parent.parent.parent / "data" / "uploads"


def _validate_pdf_extension(filename: str | None) -> str:
    """Validate that file has .pdf extension.

    Raises:
        HTTPException: 400 if extension is invalid.
    """
    if not filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Filename is required",
        )

    if not filename.lower().endswith(".pdf"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only PDF files are accepted",
        )

    return filename


async def _read_and_validate_size(file: UploadFile) -> bytes:
    """Read file content and validate size.

    Raises:
        HTTPException: 400 if empty, 413 if file exceeds size limit.
    """
    content = await file.read()

    if not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file content received",
        )

    if len(content) > MAX_UPLOAD_SIZE:
        size_mb = len(content) / (1024 * 1024)
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=f"File size ({size_mb:.1f}MB) exceeds maximum allowed (10MB)",
        )

    return content


def safe_upload_name(filename: str) -> str:
    """Timestamped file name with anything unusual replaced."""
    cleaned = re.sub(r"[^\w.\-]+", "_", filename)[:80]
    return f"{int(time.time() * 1000)}_{cleaned}"


async def _store_upload(filename: str, content: bytes) -> Path:
    _UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
    path = _UPLOADS_DIR / safe_upload_name(filename)
    await asyncio.to_thread(path.write_bytes, content)
    return path


@router.post("/upload", response_model=UploadResponse)
async def upload_attachment(file: UploadFile) -> UploadResponse:
    """Upload a chat attachment and extract its text.

    PDFs and plain text are extracted; any other file is accepted with
    empty text.

    Raises:
        400: Empty file.
        413: File exceeds 10MB limit.
        500: File could not be stored.
    """
    content = await _read_and_validate_size(file)
    filename = file.filename or "file"
    content_type = file.content_type or "application/octet-stream"

    attachment = extract_attachment(filename, content_type, content)

    try:
        stored = await _store_upload(filename, content)
    except OSError as e:
        logger.error(f"Upload failed for {filename}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Upload failed",
        ) from e

    logger.info(f"Stored attachment {stored.name} ({len(attachment.text)} chars extracted)")
    return UploadResponse(
        file_type=content_type,
        extracted_text=attachment.text,
        attachment=attachment,
    )


@router.post("/knowledge/pdf", response_model=KnowledgeUploadResponse)
async def upload_knowledge_pdf(
    file: UploadFile,
    backend: Annotated[AgentService | None, Depends(get_backend)],
) -> KnowledgeUploadResponse:
    """Ingest an official PDF into the knowledge base.

    Raises:
        400: Invalid file (not PDF, empty, corrupt).
        413: File exceeds 10MB limit.
        500: Internal processing error.
        503: Assistant is offline.
    """
    filename = _validate_pdf_extension(file.filename)
    content = await _read_and_validate_size(file)

    try:
        pdf_content = parse_pdf(content)
    except PDFParseError as e:
        logger.warning(f"PDF parse error for {filename}: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e

    if backend is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assistant offline (missing API keys)",
        )

    try:
        await backend.add_document(
            content=pdf_content.text,
            name=filename,
            metadata=pdf_content.metadata,
        )
        logger.info(f"Successfully ingested PDF: {filename} ({pdf_content.pages} pages)")
    except Exception as e:
        logger.error(f"Failed to store document in knowledge base: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store document in knowledge base",
        ) from e

    return KnowledgeUploadResponse(
        filename=filename,
        pages=pdf_content.pages,
        success=True,
    )


@router.post("/stt", response_model=TranscriptionResponse)
async def speech_to_text(
    audio: UploadFile,
    speech: Annotated[SpeechService | None, Depends(get_speech_service)],
) -> TranscriptionResponse:
    """Transcribe a voice recording into message text.

    Raises:
        400: No audio received.
        413: Recording exceeds the upload size limit.
        500: Transcription failed.
    """
    content = await _read_and_validate_size(audio)

    if speech is None:
        return TranscriptionResponse(text="(STT disabled: missing OPENAI_API_KEY)")

    try:
        text = await speech.transcribe(content, audio.filename or "speech.webm")
    except Exception as e:
        logger.error(f"STT error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="STT failed",
        ) from e

    return TranscriptionResponse(text=text)
