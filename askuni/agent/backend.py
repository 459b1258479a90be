"""Generation backend interface consumed by the stream producer."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from askuni.exceptions import GenerationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TextIncrement:
    """One step of a streaming generation.

    Attributes:
        text: Newly generated text (may be empty for tool steps).
        citations: Knowledge base citations observed in this step.
    """

    text: str = ""
    citations: int = 0


@dataclass(frozen=True)
class Generation:
    """A completed blocking generation."""

    text: str
    citations: int = 0


class AssistantBackend(Protocol):
    """What the producer needs from an assistant service."""

    def stream_generate(self, thread_id: str, prompt: str) -> AsyncIterator[TextIncrement]:
        ...

    async def blocking_generate(self, thread_id: str, prompt: str) -> Generation:
        ...


async def bounded_wait(
    awaitable: Awaitable[T],
    interval: float,
    max_attempts: int,
) -> T:
    """Wait for ``awaitable`` by checking it at a fixed interval.

    Args:
        awaitable: The upstream operation to wait for.
        interval: Seconds between completion checks.
        max_attempts: Checks before giving up.

    Returns:
        The awaitable's result.

    Raises:
        GenerationTimeoutError: If the operation is still running after
            ``max_attempts`` checks. The operation is cancelled.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        for attempt in range(1, max_attempts + 1):
            done, _ = await asyncio.wait({task}, timeout=interval)
            if done:
                return task.result()
            logger.debug(f"Generation still running (check {attempt}/{max_attempts})")
    finally:
        if not task.done():
            task.cancel()

    raise GenerationTimeoutError(
        f"Assistant did not finish after {max_attempts} checks",
        attempts=max_attempts,
    )
