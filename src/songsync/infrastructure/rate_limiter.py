"""
Rate Limiter for Spotify API calls.

Hey future me – one ingestion run fires five sources plus N playlist drains at the same
time. Without a shared limiter that's a 429 storm within seconds. Every request of a
SpotifyClient goes through ONE RateLimiter instance.

ALGORITHM: Token Bucket
- Bucket has max_tokens capacity
- Tokens refill at refill_rate per second
- Each request consumes 1 token
- Empty bucket: wait until a token is available

ADAPTIVE BACKOFF on 429:
- First 429: initial_backoff_seconds (or Retry-After if Spotify sent one)
- Every further 429: backoff * backoff_multiplier, capped at max_backoff_seconds
- A non-429 response resets the backoff (the caller calls reset_backoff)

USAGE:
    limiter = RateLimiter.for_spotify()

    async with limiter:
        response = await client.get(url)

    if response.status_code == 429:
        await limiter.handle_rate_limit_response(retry_after)
    else:
        limiter.reset_backoff()
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter.

    Spotify allows roughly 180 requests / minute; the defaults stay below that.
    max_backoff_seconds must be HIGH - Spotify sends Retry-After values of several
    minutes under heavy load, capping lower means hitting 429 again right away.
    """

    max_tokens: int = 10
    refill_rate: float = 2.0
    max_backoff_seconds: float = 600.0
    initial_backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0


@dataclass
class RateLimiter:
    """Token Bucket Rate Limiter with adaptive backoff."""

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    name: str = "default"

    _tokens: float = field(default=0.0, init=False)
    _last_refill: float = field(default_factory=time.monotonic, init=False)
    _current_backoff: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self) -> None:
        """Initialize tokens to max capacity."""
        self._tokens = float(self.config.max_tokens)
        self._current_backoff = self.config.initial_backoff_seconds

    @classmethod
    def for_spotify(
        cls, requests_per_second: float = 2.0, burst: int = 10
    ) -> "RateLimiter":
        """Create a rate limiter tuned for the Spotify Web API."""
        return cls(
            config=RateLimiterConfig(
                max_tokens=burst,
                refill_rate=requests_per_second,
                max_backoff_seconds=600.0,
                initial_backoff_seconds=1.0,
            ),
            name="spotify",
        )

    def _refill_tokens(self) -> None:
        """Refill tokens based on elapsed time."""
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(
            self.config.max_tokens, self._tokens + elapsed * self.config.refill_rate
        )
        self._last_refill = now

    async def acquire(self) -> None:
        """Acquire one token, waiting if necessary."""
        async with self._lock:
            self._refill_tokens()

            while self._tokens < 1.0:
                wait_time = (1.0 - self._tokens) / self.config.refill_rate
                logger.debug(
                    "RateLimiter[%s]: No tokens available, waiting %.2fs",
                    self.name,
                    wait_time,
                )
                # Release lock while waiting
                self._lock.release()
                try:
                    await asyncio.sleep(wait_time)
                finally:
                    await self._lock.acquire()
                self._refill_tokens()

            self._tokens -= 1.0

    async def handle_rate_limit_response(self, retry_after: int | None = None) -> float:
        """Handle a 429 rate limit response with adaptive backoff.

        Args:
            retry_after: Retry-After header from API response (seconds)

        Returns:
            The actual wait time used
        """
        async with self._lock:
            wait_time = (
                float(retry_after) if retry_after is not None else self._current_backoff
            )
            wait_time = min(wait_time, self.config.max_backoff_seconds)

            logger.warning(
                "RateLimiter[%s]: 429 Rate Limited! Waiting %.1fs before retry "
                "(backoff level: %.1fs)",
                self.name,
                wait_time,
                self._current_backoff,
            )

            self._current_backoff = min(
                self._current_backoff * self.config.backoff_multiplier,
                self.config.max_backoff_seconds,
            )
            # Clear tokens so concurrent callers wait too
            self._tokens = 0.0

        await asyncio.sleep(wait_time)
        return wait_time

    def reset_backoff(self) -> None:
        """Reset backoff after a successful request."""
        self._current_backoff = self.config.initial_backoff_seconds

    async def __aenter__(self) -> "RateLimiter":
        """Enter async context - acquire token."""
        await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object
    ) -> None:
        """Exit async context.

        The backoff is NOT reset here: a 429 comes back as a normal response, so only
        the caller knows whether the request succeeded (see reset_backoff).
        """

    @property
    def available_tokens(self) -> float:
        """Get current available tokens (for debugging)."""
        self._refill_tokens()
        return self._tokens


__all__ = ["RateLimiter", "RateLimiterConfig"]
