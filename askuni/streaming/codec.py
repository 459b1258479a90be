"""Event frame codec for the chat token stream.

Frames travel over one long-lived HTTP response body:

    event: delta
    data:{"t":"The "}

    event: final
    data:{"text":"The room is B101.","sessionId":"S123"}

A blank line (``\\n\\n``) ends every frame. Lines starting with ``:`` are
keep-alive comments. The decoder is resumable across arbitrary network
reads and silently drops anything it cannot parse: one corrupted chunk
must never terminate an otherwise healthy stream.
"""

import codecs
import json
import logging
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

FRAME_DELIMITER = "\n\n"
KEEPALIVE = ":keepalive\n\n"

_FRAME_PATTERN = re.compile(r"^event:\s*([a-zA-Z]+)\s*[\r\n]+data:(.*)$", re.DOTALL)

# Keys a delta payload may carry its text under, in lookup order
_TOKEN_KEYS = ("t", "token", "value", "delta")


class FrameType(str, Enum):
    """Event types carried by the stream."""

    DELTA = "delta"
    FINAL = "final"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (FrameType.FINAL, FrameType.DONE, FrameType.ERROR)


class StreamFrame(BaseModel):
    """One decoded unit of the stream.

    Attributes:
        type: Event type announced by the ``event:`` line.
        payload: JSON object carried on the ``data:`` line.
    """

    type: FrameType
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def token(self) -> str:
        """Text fragment of a delta frame (empty for other types)."""
        if self.type is not FrameType.DELTA:
            return ""
        for key in _TOKEN_KEYS:
            value = self.payload.get(key)
            if isinstance(value, str) and value:
                return value
        return ""

    @property
    def text(self) -> str | None:
        """Authoritative text of a terminal frame, if it carries one."""
        value = self.payload.get("text")
        return value if isinstance(value, str) else None

    @property
    def session_id(self) -> str | None:
        value = self.payload.get("sessionId")
        return value if isinstance(value, str) and value else None

    @property
    def error(self) -> str:
        return str(self.payload.get("error") or "stream error")


def encode_frame(frame_type: FrameType | str, payload: dict[str, Any]) -> str:
    """Serialize one frame.

    Args:
        frame_type: Event type of the frame.
        payload: JSON-serializable object.

    Returns:
        ``event: <type>\\ndata:<json>\\n\\n``.
    """
    event = FrameType(frame_type).value
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"event: {event}\ndata:{data}{FRAME_DELIMITER}"


def encode_frame_bytes(frame_type: FrameType | str, payload: dict[str, Any]) -> bytes:
    return encode_frame(frame_type, payload).encode("utf-8")


def delta_frame(token: str) -> str:
    return encode_frame(FrameType.DELTA, {"t": token})


def final_frame(text: str, session_id: str | None) -> str:
    return encode_frame(FrameType.FINAL, {"text": text, "sessionId": session_id})


def error_frame(message: str) -> str:
    return encode_frame(FrameType.ERROR, {"error": message})


def parse_block(block: str) -> StreamFrame | None:
    """Parse one delimited block, or return None if it is not a frame."""
    block = block.strip()
    if not block:
        return None

    match = _FRAME_PATTERN.match(block)
    if not match:
        # Keep-alive comments and stray lines
        return None

    event, data = match.group(1), match.group(2).strip()
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"Discarding {event} frame with unparseable data: {data[:80]!r}")
        return None

    if not isinstance(payload, dict):
        logger.debug(f"Discarding {event} frame with non-object payload")
        return None

    try:
        frame_type = FrameType(event)
    except ValueError:
        logger.debug(f"Discarding frame with unknown event type: {event}")
        return None

    return StreamFrame(type=frame_type, payload=payload)


class FrameDecoder:
    """Incremental decoder over a growing byte or text buffer.

    Feed it network reads of any size; it only ever returns complete
    frames, each exactly once, in arrival order.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def pending(self) -> str:
        """Text buffered while waiting for the next delimiter."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[StreamFrame]:
        """Append a chunk and return the frames it completed."""
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._buffer += chunk

        *blocks, self._buffer = self._buffer.split(FRAME_DELIMITER)

        frames: list[StreamFrame] = []
        for block in blocks:
            frame = parse_block(block)
            if frame is not None:
                frames.append(frame)
        return frames

    def flush(self) -> list[StreamFrame]:
        """Parse whatever is left once the stream has closed."""
        rest = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        frame = parse_block(rest)
        return [frame] if frame is not None else []


def decode_frames(data: bytes | str) -> list[StreamFrame]:
    """Decode a complete stream body in one call."""
    decoder = FrameDecoder()
    return decoder.feed(data) + decoder.flush()
