"""One logical "send message" over two transports.

The coordinator tries the streaming endpoint first. Only when that
stream cannot be established (connection refused, non-2xx status, a body
that is not an event stream, or a body that ends before its first byte)
does it repeat the request against the blocking endpoint. Once any byte
of the stream has been read it never falls back: re-sending after a
partial generation would duplicate persisted messages and billed work.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any

import httpx

from askuni.exceptions import TransportEstablishError
from askuni.models.schemas import Attachment
from askuni.streaming.consumer import ChatOutcome, ConsumerState, StreamConsumer

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "http://localhost:8000"
STREAM_PATH = "/message/stream"
MESSAGE_PATH = "/message"


def api_base_url() -> str:
    """API address, read when a client is built so late overrides apply."""
    return os.getenv("API_BASE_URL", DEFAULT_API_BASE_URL)


@dataclass
class PendingRequest:
    """A message waiting for its first successful transport attempt."""

    input_text: str
    attachments: list[Attachment] = field(default_factory=list)
    session_id: str | None = None

    def body(self) -> dict[str, Any]:
        return {
            "message": self.input_text,
            "attachments": [a.model_dump() for a in self.attachments],
            "sessionId": self.session_id,
        }


@dataclass
class ChatContext:
    """Conversation state of one browser tab.

    Attributes:
        session_id: Active conversation, None until the server assigns one.
        token: Bearer credential, None for guests.
        attachments: Uploaded attachments not yet sent.
    """

    session_id: str | None = None
    token: str | None = None
    attachments: list[Attachment] = field(default_factory=list)

    def pending(self, input_text: str) -> PendingRequest:
        return PendingRequest(
            input_text=input_text.strip(),
            attachments=list(self.attachments),
            session_id=self.session_id,
        )

    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def apply(self, request: PendingRequest, outcome: ChatOutcome) -> None:
        """Adopt the server's conversation id and drop sent attachments."""
        if not outcome.ok:
            return
        self.session_id = outcome.session_id or self.session_id
        self.attachments = [a for a in self.attachments if a not in request.attachments]

    def reset(self) -> None:
        self.session_id = None
        self.attachments = []


class FallbackCoordinator:
    """Sends messages through the stream, or the blocking endpoint if it fails to open."""

    def __init__(
        self,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        stream_path: str = STREAM_PATH,
        message_path: str = MESSAGE_PATH,
        timeout: float = 120.0,
    ) -> None:
        self._base_url = base_url or api_base_url()
        self._client = client
        self._owns_client = client is None
        self._stream_path = stream_path
        self._message_path = message_path
        self._timeout = timeout
        self._task: asyncio.Task | None = None
        self._consumer: StreamConsumer | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "FallbackCoordinator":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def busy(self) -> bool:
        return self._task is not None

    def cancel(self) -> None:
        """Abandon the send in flight and close its connection."""
        if self._consumer is not None:
            self._consumer.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def send(
        self,
        request: PendingRequest,
        context: ChatContext,
        consumer: StreamConsumer | None = None,
    ) -> ChatOutcome:
        """Send one message and wait for its outcome.

        Args:
            request: The message, attachments and conversation to send.
            context: Conversation state updated on success.
            consumer: Reader bound to the caller's display.

        Returns:
            The unified outcome of whichever transport answered.
        """
        consumer = consumer or StreamConsumer(session_id=request.session_id)
        self._consumer = consumer
        self._task = asyncio.current_task()
        try:
            outcome = await self._send_streaming(request, context, consumer)
            if outcome is None:
                outcome = await self._send_blocking(request, context, consumer)
        finally:
            self._task = None
            self._consumer = None

        context.apply(request, outcome)
        return outcome

    async def _send_streaming(
        self,
        request: PendingRequest,
        context: ChatContext,
        consumer: StreamConsumer,
    ) -> ChatOutcome | None:
        """Run the streaming attempt, or return None if it could not be established."""
        client = self._get_client()
        headers = {"Accept": "text/event-stream", **context.headers()}
        try:
            async with client.stream(
                "POST", self._stream_path, json=request.body(), headers=headers
            ) as response:
                if not response.is_success:
                    logger.warning(
                        f"Stream endpoint returned HTTP {response.status_code}, using blocking endpoint"
                    )
                    return None
                if "text/event-stream" not in response.headers.get("content-type", ""):
                    logger.warning("Stream endpoint returned no event stream, using blocking endpoint")
                    return None
                try:
                    return await consumer.consume(response.aiter_bytes())
                except TransportEstablishError as e:
                    logger.warning(f"Stream failed before its first byte ({e}), using blocking endpoint")
                    return None
        except httpx.RequestError as e:
            if consumer.state is not ConsumerState.IDLE:
                return consumer.outcome()
            logger.warning(f"Stream endpoint unreachable ({e}), using blocking endpoint")
            return None

    async def _post_message(self, request: PendingRequest, context: ChatContext) -> httpx.Response:
        return await self._get_client().post(
            self._message_path, json=request.body(), headers=context.headers()
        )

    async def _send_blocking(
        self,
        request: PendingRequest,
        context: ChatContext,
        consumer: StreamConsumer,
    ) -> ChatOutcome:
        try:
            response = await self._post_message(request, context)
            if response.status_code == httpx.codes.UNAUTHORIZED and context.token:
                logger.warning("Credential rejected, sending as guest")
                context.token = None
                response = await self._post_message(request, context)
        except httpx.RequestError as e:
            consumer.abort(f"Connection failed: {e}")
            return replace(consumer.outcome(), via_fallback=True)

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.is_success and data.get("ok"):
            consumer.finalize_with(data.get("message") or "", data.get("sessionId"))
        else:
            consumer.abort(
                data.get("error") or data.get("detail") or f"HTTP {response.status_code}"
            )
        return replace(consumer.outcome(), via_fallback=True)
