"""Pydantic models for API requests and responses.

Provides type safety, validation, and automatic OpenAPI documentation.

Models:
    - Attachment: Extracted text of an uploaded file
    - ChatRequest: Body of the streaming and blocking chat endpoints
    - MessageResponse: Blocking chat result
    - UploadResponse: Attachment upload result
    - StoredMessage / SessionSummary: Chat history entries
"""

from askuni.models.schemas import (
    Attachment,
    ChatRequest,
    ErrorResponse,
    KnowledgeUploadResponse,
    MessageResponse,
    Role,
    SessionListResponse,
    SessionMessagesResponse,
    SessionSummary,
    StoredMessage,
    TranscriptionResponse,
    UploadResponse,
)

__all__ = [
    "Attachment",
    "ChatRequest",
    "ErrorResponse",
    "KnowledgeUploadResponse",
    "MessageResponse",
    "Role",
    "SessionListResponse",
    "SessionMessagesResponse",
    "SessionSummary",
    "StoredMessage",
    "TranscriptionResponse",
    "UploadResponse",
]
