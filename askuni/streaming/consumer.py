"""Client side of the token stream.

A StreamConsumer reads one response body, decodes frames as bytes
arrive and keeps a live display in sync:

    IDLE --first byte--> STREAMING --final/done--> FINALIZED
                              |
                              +--error frame / transport error / early close--> ABORTED

Every delta is shown as soon as it is decoded. On a terminal frame the
display is replaced by the frame's authoritative text when it has one.
An aborted stream keeps its partial text and is never retried here.
"""

import asyncio
import logging
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from askuni.exceptions import TransportEstablishError
from askuni.streaming.codec import FrameDecoder, FrameType, StreamFrame

logger = logging.getLogger(__name__)


class ConsumerState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    FINALIZED = "finalized"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


_ENDED = (ConsumerState.FINALIZED, ConsumerState.ABORTED, ConsumerState.CANCELLED)


@dataclass(frozen=True)
class ChatOutcome:
    """Result of one send, whichever transport produced it.

    Attributes:
        text: Final answer, or the partial text of an aborted stream.
        session_id: Conversation identifier to use for the next turn.
        state: How the exchange ended.
        via_fallback: Whether the blocking endpoint produced the answer.
        error: Reason for an aborted exchange.
    """

    text: str
    session_id: str | None
    state: ConsumerState
    via_fallback: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is ConsumerState.FINALIZED


class LiveDisplay(Protocol):
    """Where the consumer renders the message being received."""

    def show_partial(self, text: str) -> None:
        ...

    def show_final(self, rendered: str) -> None:
        ...

    def show_aborted(self, text: str) -> None:
        ...


class NullDisplay:
    """Display that renders nothing."""

    def show_partial(self, text: str) -> None:
        pass

    def show_final(self, rendered: str) -> None:
        pass

    def show_aborted(self, text: str) -> None:
        pass


def abort_annotation(error: str) -> str:
    return f"\n\n[stream aborted: {error}]"


class StreamConsumer:
    """Incremental reader for one streamed answer."""

    def __init__(
        self,
        display: LiveDisplay | None = None,
        render: Callable[[str], str] | None = None,
        session_id: str | None = None,
    ) -> None:
        """Initialize the consumer.

        Args:
            display: Receives partial, final and aborted text.
            render: Turns the final answer into display markup (markdown).
            session_id: Active conversation before this exchange.
        """
        self._display = display or NullDisplay()
        self._render = render or (lambda text: text)
        self._decoder = FrameDecoder()
        self._parts: list[str] = []
        self.state = ConsumerState.IDLE
        self.session_id = session_id
        self.final_text: str | None = None
        self.rendered: str | None = None
        self.error: str | None = None
        self.frames_processed = 0
        self.deltas_processed = 0

    @property
    def accumulated(self) -> str:
        """Concatenation of every delta token received so far."""
        return "".join(self._parts)

    @property
    def ended(self) -> bool:
        return self.state in _ENDED

    def outcome(self) -> ChatOutcome:
        text = self.final_text if self.state is ConsumerState.FINALIZED else self.accumulated
        return ChatOutcome(
            text=text or "",
            session_id=self.session_id,
            state=self.state,
            error=self.error,
        )

    def cancel(self) -> None:
        """Abandon the stream; nothing is displayed afterwards."""
        if self.ended:
            return
        self.state = ConsumerState.CANCELLED
        logger.debug("Stream cancelled by the client")

    async def consume(self, byte_stream: AsyncIterable[bytes]) -> ChatOutcome:
        """Read a response body to its end.

        Args:
            byte_stream: Raw body chunks in arrival order.

        Returns:
            The outcome of the exchange.

        Raises:
            TransportEstablishError: If the body failed or closed before its
                first byte, in which case nothing was displayed.
        """
        try:
            async for chunk in byte_stream:
                if self.ended:
                    break
                if not chunk:
                    continue
                if self.state is ConsumerState.IDLE:
                    self.state = ConsumerState.STREAMING
                for frame in self._decoder.feed(chunk):
                    self.handle_frame(frame)
                if self.ended:
                    break
        except asyncio.CancelledError:
            self.cancel()
            raise
        except Exception as e:
            reason = str(e) or type(e).__name__
            if self.state is ConsumerState.IDLE:
                raise TransportEstablishError(reason) from e
            if not self.ended:
                logger.warning(f"Stream failed after {self.deltas_processed} delta(s): {reason}")
                self.abort(reason)
            return self.outcome()

        if self.state is ConsumerState.IDLE:
            raise TransportEstablishError("Stream closed before any data arrived")

        if self.state is ConsumerState.STREAMING:
            for frame in self._decoder.flush():
                self.handle_frame(frame)
        if self.state is ConsumerState.STREAMING:
            self.abort("connection closed before the answer completed")
        return self.outcome()

    def handle_frame(self, frame: StreamFrame) -> None:
        """Apply one decoded frame. Frames after the stream ended are ignored."""
        if self.ended:
            return
        self.frames_processed += 1

        if frame.type is FrameType.DELTA:
            token = frame.token
            if not token:
                return
            self._parts.append(token)
            self.deltas_processed += 1
            self._display.show_partial(self.accumulated)
        elif frame.type is FrameType.ERROR:
            self.abort(frame.error)
        else:
            self.finalize_with(frame.text, frame.session_id)

    def finalize_with(self, text: str | None, session_id: str | None) -> None:
        """Finish the exchange with an authoritative answer.

        Args:
            text: Answer text; when empty the accumulated deltas are used.
            session_id: Conversation identifier from the server, if any.
        """
        if self.ended:
            return
        self.final_text = text if text else self.accumulated
        self.rendered = self._render(self.final_text)
        self.session_id = session_id or self.session_id
        self.state = ConsumerState.FINALIZED
        self._display.show_final(self.rendered)

    def abort(self, error: str) -> None:
        """End the exchange without an answer, keeping the partial text."""
        if self.ended:
            return
        self.error = error
        self.state = ConsumerState.ABORTED
        self._display.show_aborted(self.accumulated + abort_annotation(error))
