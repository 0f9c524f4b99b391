"""
Per-provider request budgets.

Fixed-window counters kept in process memory. Each instance of the service
keeps its own counters, so running several workers multiplies the effective
budget against each provider.
"""
import math
import time
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Callable, Optional, Union

import structlog

logger = structlog.get_logger()

DEFAULT_BLOCK_SECONDS = 60 * 60


@dataclass
class RateLimitState:
    """Request count for the current window; ``math.inf`` means blocked."""
    count: float
    reset_at: float


@dataclass
class RateLimitResult:
    """Outcome of a budget check."""
    allowed: bool
    remaining: int
    reset_at: float


class RateLimiter:
    """
    Fixed-window rate limiter keyed by provider slug.

    A window opens on the first request after the previous one expired and
    admits ``max_requests`` calls until ``reset_at``. ``set_rate_limited``
    blocks a key outright, for use after a provider answers 429.

    Usage:
        limiter = RateLimiter()
        result = limiter.check_limit("ebay", max_requests=10, window_seconds=60)
        if not result.allowed:
            ...
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._limits: dict[str, RateLimitState] = {}

    def check_limit(self, key: str, max_requests: int, window_seconds: float) -> RateLimitResult:
        """
        Count one request against ``key`` if the budget allows it.

        Args:
            key: Provider slug.
            max_requests: Requests admitted per window.
            window_seconds: Window length.

        Returns:
            RateLimitResult with the remaining budget and window reset time.
        """
        now = self._clock()
        state = self._limits.get(key)

        if state is None or now >= state.reset_at:
            reset_at = now + window_seconds
            self._limits[key] = RateLimitState(count=1, reset_at=reset_at)
            return RateLimitResult(allowed=True, remaining=max_requests - 1, reset_at=reset_at)

        if state.count < max_requests:
            state.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=int(max_requests - state.count),
                reset_at=state.reset_at,
            )

        return RateLimitResult(allowed=False, remaining=0, reset_at=state.reset_at)

    def set_rate_limited(self, key: str, reset_at: float) -> None:
        """Block every request for ``key`` until ``reset_at`` (epoch seconds)."""
        self._limits[key] = RateLimitState(count=math.inf, reset_at=reset_at)

    def is_rate_limited(self, key: str) -> bool:
        """Return True while ``key`` is force-blocked."""
        state = self._limits.get(key)
        if state is None:
            return False

        if self._clock() >= state.reset_at:
            del self._limits[key]
            return False

        return state.count == math.inf

    def get_reset_time(self, key: str) -> Optional[float]:
        """Seconds until the current window for ``key`` resets."""
        state = self._limits.get(key)
        if state is None:
            return None
        return max(0.0, state.reset_at - self._clock())

    def handle_rate_limit_response(
        self,
        key: str,
        retry_after: Union[str, float, None] = None,
        default_block_seconds: float = DEFAULT_BLOCK_SECONDS,
    ) -> float:
        """
        Block ``key`` after an explicit 429 from the provider.

        Args:
            key: Provider slug.
            retry_after: Retry-After value, either delta seconds or an HTTP date.
            default_block_seconds: Block length when no usable hint is given.

        Returns:
            The epoch-seconds time the block ends.
        """
        now = self._clock()
        reset_at = now + default_block_seconds

        if retry_after is not None and retry_after != "":
            parsed = _parse_retry_after(retry_after, now)
            if parsed is not None:
                reset_at = parsed

        self.set_rate_limited(key, reset_at)
        logger.warning(
            "Provider rate limited",
            provider=key,
            retry_after=retry_after,
            reset_at=datetime.fromtimestamp(reset_at).isoformat(),
        )
        return reset_at

    def cleanup(self) -> None:
        """Drop expired windows."""
        now = self._clock()
        for key in [k for k, state in self._limits.items() if now >= state.reset_at]:
            del self._limits[key]

    def clear(self) -> None:
        """Clear all rate limits (useful for testing)."""
        self._limits.clear()


def _parse_retry_after(value: Union[str, float], now: float) -> Optional[float]:
    """Convert a Retry-After header value into an absolute epoch time."""
    try:
        return now + float(value)
    except (TypeError, ValueError):
        pass

    try:
        return parsedate_to_datetime(str(value)).timestamp()
    except (TypeError, ValueError, IndexError):
        pass

    try:
        return datetime.fromisoformat(str(value)).timestamp()
    except ValueError:
        logger.debug("Unparseable Retry-After value", value=value)
        return None
