"""
Outbound request pacing.

``RequestQueue`` serializes calls against a single provider; ``PacingPolicy``
holds every deliberate delay the pricing engine inserts so tests can swap in
a zero-delay policy.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


async def async_sleep(seconds: float) -> None:
    if seconds > 0:
        await asyncio.sleep(seconds)


@dataclass
class PacingPolicy:
    """
    Delays used to spread load across upstream APIs.

    None of these delays are needed for correctness.

    Attributes:
        batch_stagger_seconds: Per-index delay before each card's pricing in a batch.
        provider_gap_seconds: Delay between consecutive fallback-chain steps.
        sleeper: Coroutine used to wait.
    """
    batch_stagger_seconds: float = 0.05
    provider_gap_seconds: float = 0.5
    sleeper: Sleeper = async_sleep

    @classmethod
    def immediate(cls) -> "PacingPolicy":
        """Policy that never waits."""
        return cls(batch_stagger_seconds=0.0, provider_gap_seconds=0.0)

    @classmethod
    def from_settings(cls, settings) -> "PacingPolicy":
        return cls(
            batch_stagger_seconds=settings.batch_stagger_ms / 1000,
            provider_gap_seconds=settings.provider_gap_ms / 1000,
        )

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await self.sleeper(seconds)

    async def stagger(self, index: int) -> None:
        """Wait before the ``index``-th item of a batch."""
        await self.sleep(index * self.batch_stagger_seconds)

    async def between_steps(self) -> None:
        await self.sleep(self.provider_gap_seconds)


class RequestQueue:
    """
    FIFO queue that runs one call at a time against a provider.

    A fixed gap separates the completion of one call from the start of the
    next, whether the earlier call succeeded or raised. Queues for different
    providers are independent.

    Usage:
        queue = RequestQueue("tcgdex", delay_seconds=0.05)
        card = await queue.submit(client.get, "/en/cards/base1-4")
    """

    def __init__(
        self,
        name: str,
        delay_seconds: float = 0.1,
        sleeper: Sleeper = async_sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.delay_seconds = delay_seconds
        self._sleeper = sleeper
        self._clock = clock
        # asyncio.Lock wakes waiters in acquisition order
        self._lock = asyncio.Lock()
        self._last_finished: Optional[float] = None
        self._pending = 0

    @property
    def pending(self) -> int:
        """Calls submitted and not yet finished, including the running one."""
        return self._pending

    async def submit(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Run ``fn(*args, **kwargs)`` once every earlier submission has finished.

        Exceptions raised by ``fn`` propagate to the caller.
        """
        self._pending += 1
        try:
            async with self._lock:
                if self._last_finished is not None:
                    wait = self.delay_seconds - (self._clock() - self._last_finished)
                    if wait > 0:
                        await self._sleeper(wait)
                try:
                    return await fn(*args, **kwargs)
                finally:
                    self._last_finished = self._clock()
        finally:
            self._pending -= 1
