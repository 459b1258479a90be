"""Chat history endpoints for signed-in users."""

from fastapi import APIRouter, HTTPException, status

from askuni.api.deps import History, RequiredIdentity
from askuni.models.schemas import SessionListResponse, SessionMessagesResponse

router = APIRouter(prefix="/chats", tags=["history"])


@router.get("", response_model=SessionListResponse)
async def list_chats(identity: RequiredIdentity, history: History) -> SessionListResponse:
    """List the caller's conversations, most recent first."""
    return SessionListResponse(sessions=await history.list_sessions(identity))


@router.get("/{session_id}", response_model=SessionMessagesResponse)
async def get_chat(
    session_id: str,
    identity: RequiredIdentity,
    history: History,
) -> SessionMessagesResponse:
    """Messages of one conversation.

    Raises:
        404: Unknown conversation, or one owned by someone else.
    """
    messages = await history.get_messages(session_id, identity)
    if messages is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return SessionMessagesResponse(messages=messages)


@router.delete("/{session_id}")
async def delete_chat(session_id: str, identity: RequiredIdentity, history: History) -> dict[str, bool]:
    deleted = await history.delete_session(session_id, identity)
    return {"ok": deleted}
