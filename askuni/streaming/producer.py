"""Server side of the token stream.

A StreamProducer drives one assistant generation per HTTP call and turns
it into codec frames: ``delta`` frames while text arrives, keep-alive
comments while the assistant is quiet, then exactly one ``final`` frame
or exactly one ``error`` frame.

Streamed deltas are a best-effort preview. The ``final`` frame carries
the authoritative answer, which replaces the preview on the client. An
answer the knowledge base does not back is replaced by a fixed message
there, whatever the deltas said.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass, field

from askuni.agent.backend import AssistantBackend, TextIncrement
from askuni.agent.guardrails import (
    INSUFFICIENT_INFORMATION,
    OFFLINE_NOTICE,
    OFFLINE_TEXT,
    build_prompt,
    sanitize_identity,
)
from askuni.config import StreamConfig, get_stream_config
from askuni.exceptions import GenerationTimeoutError, StreamStateError
from askuni.history.store import TITLE_MAX_LENGTH, HistoryStore, new_thread_id
from askuni.models.schemas import Attachment, MessageResponse, Role
from askuni.streaming.codec import KEEPALIVE, delta_frame, error_frame, final_frame

logger = logging.getLogger(__name__)

DEFAULT_TENANT = "University of Bahrain"


def new_session_id() -> str:
    return f"S{uuid.uuid4().hex[:16]}"


@dataclass
class GenerationRequest:
    """A chat request resolved from HTTP.

    Attributes:
        message: The user's message (already stripped).
        attachments: Extracted attachments to fold into the prompt.
        session_id: Conversation to continue, None to start one.
        identity: Authenticated caller, None for guests.
    """

    message: str
    attachments: list[Attachment] = field(default_factory=list)
    session_id: str | None = None
    identity: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.identity is not None


class StreamSession:
    """State of one streamed response.

    Guarantees at most one terminal frame, and none after an error frame.
    """

    def __init__(self, session_id: str, thread_id: str, identity: str | None = None) -> None:
        self.session_id = session_id
        self.thread_id = thread_id
        self.identity = identity
        self.citations = 0
        self.finished = False
        self.failed = False
        self._parts: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def closed(self) -> bool:
        return self.finished or self.failed

    def _check_open(self) -> None:
        if self.closed:
            raise StreamStateError(f"Stream for session {self.session_id} already ended")

    def delta(self, token: str) -> str:
        self._check_open()
        self._parts.append(token)
        return delta_frame(token)

    def finish(self, text: str) -> str:
        self._check_open()
        self.finished = True
        return final_frame(text, self.session_id)

    def fail(self, message: str) -> str:
        self._check_open()
        self.failed = True
        return error_frame(message)


class StreamProducer:
    """Turns generation requests into frames and blocking answers."""

    def __init__(
        self,
        backend: AssistantBackend | None,
        history: HistoryStore,
        config: StreamConfig | None = None,
        require_grounding: bool = True,
        tenant_name: str = DEFAULT_TENANT,
    ) -> None:
        """Initialize the producer.

        Args:
            backend: Assistant service, or None when running offline.
            history: Chat history collaborator.
            config: Keep-alive and idle bounds.
            require_grounding: Replace answers without knowledge citations.
            tenant_name: Institution name used when sanitising answers.
        """
        self._backend = backend
        self._history = history
        self._config = config or get_stream_config()
        self._require_grounding = require_grounding
        self._tenant_name = tenant_name

    @property
    def online(self) -> bool:
        return self._backend is not None

    async def _resolve(self, request: GenerationRequest) -> tuple[str, str]:
        """Resolve the session and thread a request runs on."""
        session_id = request.session_id or new_session_id()

        if not request.authenticated:
            return session_id, new_thread_id()

        owner = await self._history.owner_of(session_id)
        if owner is not None and owner != request.identity:
            logger.warning(f"Session {session_id} belongs to another user, starting a new one")
            session_id = new_session_id()

        title = (request.message or "New chat")[:TITLE_MAX_LENGTH]
        await self._history.upsert_session(session_id, request.identity, title)
        thread_id = await self._history.ensure_thread(session_id, request.identity)
        return session_id, thread_id

    @asynccontextmanager
    async def _serialized(self, session_id: str, request: GenerationRequest) -> AsyncIterator[None]:
        if request.authenticated:
            async with self._history.session_lock(session_id):
                yield
        else:
            yield

    def _ground(self, text: str, citations: int, session_id: str) -> str:
        """Apply the grounding policy to a completed answer."""
        text = sanitize_identity(text, self._tenant_name).strip()

        if self._require_grounding and citations == 0:
            logger.warning(
                f"Answer for {session_id} has no knowledge base citations, replacing it. "
                f"Original: {text[:200]!r}"
            )
            return INSUFFICIENT_INFORMATION

        if not text:
            return INSUFFICIENT_INFORMATION

        logger.info(f"Answer for {session_id} validated with {citations} citation(s)")
        return text

    async def _persist(self, session_id: str, request: GenerationRequest, answer: str) -> None:
        """Append the exchange to history. Failures are logged, never raised."""
        if not request.authenticated:
            return
        try:
            await self._history.add_message(
                session_id, Role.USER, request.message, request.attachments
            )
            await self._history.add_message(session_id, Role.BOT, answer)
        except Exception as e:
            logger.error(f"Failed to persist exchange for {session_id}: {e}")

    async def _with_keepalive(
        self,
        increments: AsyncIterator[TextIncrement],
    ) -> AsyncIterator[TextIncrement | None]:
        """Yield increments, or None each time a keep-alive interval passes idle.

        Raises:
            GenerationTimeoutError: After ``max_idle_intervals`` idle intervals
                in a row.
        """
        iterator = aiter(increments)
        pending: asyncio.Future | None = None
        idle = 0
        try:
            while True:
                if pending is None:
                    pending = asyncio.ensure_future(anext(iterator))

                done, _ = await asyncio.wait({pending}, timeout=self._config.keepalive_interval)
                if not done:
                    idle += 1
                    if idle >= self._config.max_idle_intervals:
                        raise GenerationTimeoutError(
                            f"Assistant produced no output for {idle} keep-alive intervals",
                            attempts=idle,
                        )
                    yield None
                    continue

                finished, pending = pending, None
                try:
                    increment = finished.result()
                except StopAsyncIteration:
                    return
                idle = 0
                yield increment
        finally:
            if pending is not None:
                pending.cancel()
                await asyncio.wait({pending})
                if not pending.cancelled():
                    pending.exception()
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _generate(
        self, session: StreamSession, request: GenerationRequest, prompt: str
    ) -> AsyncIterator[TextIncrement]:
        """Run one generation under the session's lock.

        Waiting for the lock happens inside the iteration, so the keep-alive
        wrapper covers it as well as the generation itself.
        """
        async with self._serialized(session.session_id, request):
            increments = self._backend.stream_generate(session.thread_id, prompt)
            async with aclosing(increments):
                async for increment in increments:
                    yield increment

    async def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        """Generate the frames of one streamed response.

        Args:
            request: The resolved chat request.

        Yields:
            Encoded frames and keep-alive markers, ready to write to the body.
        """
        if self._backend is None:
            yield delta_frame(OFFLINE_NOTICE)
            yield final_frame(OFFLINE_TEXT, request.session_id or new_session_id())
            return

        try:
            session_id, thread_id = await self._resolve(request)
        except Exception as e:
            logger.error(f"Failed to resolve conversation thread: {e}")
            yield error_frame(str(e) or "Could not open conversation")
            return

        session = StreamSession(session_id, thread_id, request.identity)
        prompt = build_prompt(request.message, request.attachments)

        try:
            increments = self._generate(session, request, prompt)
            async with aclosing(self._with_keepalive(increments)) as steps:
                async for increment in steps:
                    if increment is None:
                        yield KEEPALIVE
                        continue
                    session.citations += increment.citations
                    if increment.text:
                        yield session.delta(sanitize_identity(increment.text, self._tenant_name))
        except Exception as e:
            logger.error(f"Stream for {session_id} failed: {e}")
            yield session.fail(str(e) or "Stream error")
            return

        answer = self._ground(session.text, session.citations, session_id)
        await self._persist(session_id, request, answer)
        yield session.finish(answer)

    async def complete(self, request: GenerationRequest) -> MessageResponse:
        """Answer a request in one blocking call.

        Raises:
            GenerationTimeoutError: If the assistant does not finish in time.
            GenerationError: If the assistant call fails.
        """
        if self._backend is None:
            return MessageResponse(
                ok=True, message=OFFLINE_TEXT, session_id=request.session_id or new_session_id()
            )

        session_id, thread_id = await self._resolve(request)
        prompt = build_prompt(request.message, request.attachments)

        async with self._serialized(session_id, request):
            generation = await self._backend.blocking_generate(thread_id, prompt)

        answer = self._ground(generation.text, generation.citations, session_id)
        await self._persist(session_id, request, answer)
        return MessageResponse(ok=True, message=answer, session_id=session_id)
