"""Exception types shared across the server and the client."""


class AskUniError(Exception):
    """Base class for all AskUni errors."""


class GenerationError(AskUniError):
    """Raised when the assistant backend fails to produce an answer."""


class GenerationTimeoutError(GenerationError):
    """Raised when a generation exceeds its bounded wait.

    Attributes:
        attempts: Number of wait intervals spent before giving up.
    """

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class StreamStateError(AskUniError):
    """Raised when a producer tries to emit a frame after the stream ended."""


class TransportEstablishError(AskUniError):
    """Raised by the client when the stream could not be established.

    Only raised before any byte of the response body has been read,
    which is what makes a fallback request safe.
    """
