"""Request and response schemas shared by the API, the producer and the client."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Attachment(BaseModel):
    """Extracted content of an uploaded file.

    Attributes:
        filename: Original name of the file.
        text: Extracted text (may be empty for unsupported types).
    """

    filename: str = ""
    text: str = ""


class ChatRequest(BaseModel):
    """Body of both chat endpoints.

    Attributes:
        message: User's question or prompt.
        attachments: Files whose text is folded into the prompt.
        session_id: Conversation to continue, or None to start a new one.
    """

    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    attachments: list[Attachment] = Field(default_factory=list)
    session_id: str | None = Field(default=None, alias="sessionId")

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, v: str | None) -> str:
        """Strip whitespace; a missing message is an empty one."""
        if v is None:
            return ""
        if isinstance(v, str):
            return v.strip()
        return v

    @property
    def is_empty(self) -> bool:
        return not self.message and not self.attachments


class MessageResponse(BaseModel):
    """Body returned by the blocking chat endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    message: str = ""
    session_id: str | None = Field(default=None, alias="sessionId")
    error: str | None = None


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
    detail: str | None = None


class UploadResponse(BaseModel):
    """Response after an attachment upload.

    Attributes:
        ok: Whether the upload was stored.
        file_type: MIME type reported by the client.
        extracted_text: Text pulled from the file.
        attachment: Value the client adds to its pending attachments.
    """

    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    file_type: str = Field(alias="fileType")
    extracted_text: str = Field(alias="extractedText")
    attachment: Attachment


class KnowledgeUploadResponse(BaseModel):
    """Response after ingesting a PDF into the knowledge base."""

    filename: str
    pages: int
    success: bool
    error: str | None = None


class TranscriptionResponse(BaseModel):
    ok: bool = True
    text: str


class Role(str, Enum):
    USER = "user"
    BOT = "bot"


class StoredMessage(BaseModel):
    """One persisted turn of a conversation."""

    role: Role
    text: str
    attachments: list[Attachment] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)


class SessionSummary(BaseModel):
    """Entry of a user's chat list."""

    session_id: str
    title: str
    created_at: datetime
    updated_at: datetime
    message_count: int = Field(ge=0)


class SessionListResponse(BaseModel):
    ok: bool = True
    sessions: list[SessionSummary]


class SessionMessagesResponse(BaseModel):
    ok: bool = True
    messages: list[StoredMessage]
