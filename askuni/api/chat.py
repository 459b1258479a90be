"""Chat endpoints: the event stream and its blocking sibling.

Both accept ``{message, attachments, sessionId}``. The streaming endpoint
answers with ``text/event-stream`` frames; the blocking endpoint answers
``{ok, message, sessionId}`` once the assistant has finished.
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse, StreamingResponse

from askuni.api.deps import Identity, Producer
from askuni.exceptions import GenerationError, GenerationTimeoutError
from askuni.models.schemas import ChatRequest, ErrorResponse, MessageResponse
from askuni.streaming.producer import GenerationRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/message", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _error(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(exclude_none=True),
    )


def _generation_request(body: ChatRequest, identity: str | None) -> GenerationRequest:
    return GenerationRequest(
        message=body.message,
        attachments=body.attachments,
        session_id=body.session_id,
        identity=identity,
    )


@router.post("/stream", response_model=None)
async def stream_message(
    body: ChatRequest,
    producer: Producer,
    identity: Identity,
) -> StreamingResponse | JSONResponse:
    """Stream an answer as delta frames followed by one final or error frame.

    Raises:
        400: Neither message nor attachments were given.
    """
    if body.is_empty:
        return _error(status.HTTP_400_BAD_REQUEST, "Empty message")

    return StreamingResponse(
        producer.stream(_generation_request(body, identity)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("", response_model=MessageResponse, responses={400: {"model": ErrorResponse}})
async def send_message(
    body: ChatRequest,
    producer: Producer,
    identity: Identity,
) -> MessageResponse | JSONResponse:
    """Answer in one response; used when the stream cannot be opened.

    Raises:
        400: Neither message nor attachments were given.
        500: The assistant call failed.
        504: The assistant did not finish within its bounded wait.
    """
    if body.is_empty:
        return _error(status.HTTP_400_BAD_REQUEST, "Empty message")

    try:
        return await producer.complete(_generation_request(body, identity))
    except GenerationTimeoutError as e:
        logger.error(f"Assistant timeout: {e}")
        return _error(status.HTTP_504_GATEWAY_TIMEOUT, "Assistant timeout", str(e))
    except GenerationError as e:
        logger.error(f"Assistant error: {e}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Assistant error", str(e))
