"""FastAPI dependencies shared by the routers."""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from askuni.agent.chat_agent import AgentService, get_agent_service
from askuni.agent.config import get_agent_config
from askuni.agent.speech import SpeechService
from askuni.auth import resolve_identity
from askuni.config import get_stream_config
from askuni.history.store import HistoryStore, get_history_store
from askuni.streaming.producer import StreamProducer

logger = logging.getLogger(__name__)


def get_identity(authorization: Annotated[str | None, Header()] = None) -> str | None:
    """Caller identity for chat endpoints. Bad credentials mean guest."""
    identity = resolve_identity(authorization)
    if authorization and identity is None:
        logger.warning("Invalid or expired bearer token on chat request, continuing as guest")
    return identity


def require_identity(authorization: Annotated[str | None, Header()] = None) -> str:
    """Caller identity for history endpoints.

    Raises:
        HTTPException: 401 if the credential is missing, invalid or expired.
    """
    identity = resolve_identity(authorization)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def get_backend() -> AgentService | None:
    """The assistant service, or None when no API key is configured."""
    try:
        return get_agent_service()
    except ValueError as e:
        logger.warning(f"Assistant offline: {e}")
        return None


def get_producer(
    backend: Annotated[AgentService | None, Depends(get_backend)],
    history: Annotated[HistoryStore, Depends(get_history_store)],
) -> StreamProducer:
    if backend is None:
        return StreamProducer(None, history, get_stream_config())
    return StreamProducer(
        backend,
        history,
        get_stream_config(),
        require_grounding=backend.config.require_grounding,
        tenant_name=backend.config.tenant_name,
    )


def get_speech_service() -> SpeechService | None:
    try:
        return SpeechService(get_agent_config())
    except ValueError as e:
        logger.warning(f"Speech-to-text disabled: {e}")
        return None


Identity = Annotated[str | None, Depends(get_identity)]
RequiredIdentity = Annotated[str, Depends(require_identity)]
Producer = Annotated[StreamProducer, Depends(get_producer)]
History = Annotated[HistoryStore, Depends(get_history_store)]
