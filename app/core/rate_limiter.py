"""
Fixed-window limiter for outbound Odesli calls.

Process-local: each worker process holds its own counter, so N processes
allow N × limit calls per window. Bursts straddling a window boundary can
reach 2 × limit; that is accepted.
"""

import math
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    retry_after_seconds: int = 0


class FixedWindowRateLimiter:
    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._count = 0
        self._reset_at = clock() + window_seconds

    def check(self) -> RateDecision:
        """Consume one slot if available."""
        now = self._clock()
        if now > self._reset_at:
            self._count = 0
            self._reset_at = now + self.window_seconds

        if self._count < self.limit:
            self._count += 1
            return RateDecision(allowed=True, remaining=self.limit - self._count)

        wait = max(1, math.ceil(self._reset_at - now))
        logger.warning("odesli_rate_limited", limit=self.limit, retry_after=wait)
        return RateDecision(allowed=False, remaining=0, retry_after_seconds=wait)

    def allow(self) -> bool:
        return self.check().allowed

    @property
    def reset_in(self) -> float:
        return max(0.0, self._reset_at - self._clock())
