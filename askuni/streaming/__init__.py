"""Streaming response protocol.

Responsibilities:
    - codec: frame wire format, incremental decoding
    - producer: server-side frames for one generation
    - consumer: client-side incremental reader and display state
    - coordinator: streaming first, blocking fallback when it cannot open
"""

from askuni.streaming.codec import (
    KEEPALIVE,
    FrameDecoder,
    FrameType,
    StreamFrame,
    decode_frames,
    encode_frame,
)
from askuni.streaming.consumer import ChatOutcome, ConsumerState, LiveDisplay, StreamConsumer
from askuni.streaming.coordinator import ChatContext, FallbackCoordinator, PendingRequest
from askuni.streaming.producer import GenerationRequest, StreamProducer, StreamSession

__all__ = [
    "KEEPALIVE",
    "ChatContext",
    "ChatOutcome",
    "ConsumerState",
    "FallbackCoordinator",
    "FrameDecoder",
    "FrameType",
    "GenerationRequest",
    "LiveDisplay",
    "PendingRequest",
    "StreamConsumer",
    "StreamFrame",
    "StreamProducer",
    "StreamSession",
    "decode_frames",
    "encode_frame",
]
