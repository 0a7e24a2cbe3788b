"""
Token-bucket admission control for outbound source calls.

Each source gets its own bucket; all concurrent callers for a source share
that bucket. Refill is lazy: tokens are added when somebody asks for one.
"""

import asyncio
import math
import threading
import time
from collections import defaultdict
from typing import Callable, Dict, Optional, Tuple
import logging

from core.metrics import record_throttle

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class TokenBucket:
    """
    Non-blocking token bucket.

    Attributes:
        capacity: Maximum number of tokens held
        tokens_per_interval: Tokens added per elapsed interval
        interval: Refill interval in seconds
    """

    def __init__(
        self,
        capacity: int,
        tokens_per_interval: int,
        interval: float,
        clock: Clock = time.monotonic
    ):
        if capacity < 1 or tokens_per_interval < 1 or interval <= 0:
            raise ValueError("capacity, tokens_per_interval and interval must be positive")

        self.capacity = capacity
        self.tokens_per_interval = tokens_per_interval
        self.interval = interval
        self._clock = clock
        self._tokens = capacity
        self._last_refill = clock()
        self._lock = threading.Lock()

    @property
    def tokens(self) -> int:
        with self._lock:
            return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > self.interval:
            to_add = math.floor(elapsed / self.interval) * self.tokens_per_interval
            self._tokens = min(self.capacity, self._tokens + to_add)
            self._last_refill = now

    def take(self) -> bool:
        """Consume one token if available. Never blocks."""
        with self._lock:
            self._refill()
            if self._tokens > 0:
                self._tokens -= 1
                return True
            return False


class RateLimiterRegistry:
    """
    One token bucket per source key, created on first use.

    The registry is created by the orchestrator's wiring and handed to every
    source adapter, so buckets are shared across calls for the lifetime of
    the registry rather than living in module globals.
    """

    def __init__(
        self,
        capacity: int,
        tokens_per_interval: int,
        interval: float,
        poll_interval: float = 0.1,
        overrides: Optional[Dict[str, Tuple[int, int, float]]] = None,
        clock: Clock = time.monotonic
    ):
        self.capacity = capacity
        self.tokens_per_interval = tokens_per_interval
        self.interval = interval
        self.poll_interval = poll_interval
        self._overrides = dict(overrides or {})
        self._clock = clock
        self._buckets: Dict[str, TokenBucket] = {}
        self._throttle_counts: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def bucket(self, source: str) -> TokenBucket:
        with self._lock:
            bucket = self._buckets.get(source)
            if bucket is None:
                capacity, per_interval, interval = self._overrides.get(
                    source, (self.capacity, self.tokens_per_interval, self.interval)
                )
                bucket = TokenBucket(capacity, per_interval, interval, clock=self._clock)
                self._buckets[source] = bucket
            return bucket

    def take(self, source: str) -> bool:
        return self.bucket(source).take()

    async def acquire(self, source: str) -> int:
        """
        Wait until a token for ``source`` is available.

        Returns:
            Number of throttle events (failed takes) incurred while waiting
        """
        throttled = 0
        bucket = self.bucket(source)

        while not bucket.take():
            throttled += 1
            with self._lock:
                self._throttle_counts[source] += 1
            record_throttle(source)
            logger.debug(f"Throttled {source}, retrying in {self.poll_interval}s")
            await asyncio.sleep(self.poll_interval)

        return throttled

    def throttle_events(self, source: str) -> int:
        with self._lock:
            return self._throttle_counts[source]
