"""Fixed-window request limiter for the /api routes."""

import math
import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class RateLimitDecision:
    """Outcome of one hit, with the values for the RateLimit-* headers."""
    allowed: bool
    limit: int
    remaining: int
    reset_after: int  # seconds until the current window ends

    def headers(self) -> dict[str, str]:
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_after),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_after)
        return headers


class FixedWindowRateLimiter:
    """
    Allow at most `limit` hits per key in each window.

    A key's window starts at its first hit; the counter resets when the
    window elapses.

    Usage:
        limiter = FixedWindowRateLimiter(limit=100, window_seconds=900)
        decision = limiter.hit(client_ip)
        if not decision.allowed:
            ...  # 429
    """

    # Drop expired windows once the table grows past this size
    PRUNE_THRESHOLD = 10_000

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}

    def hit(self, key: str) -> RateLimitDecision:
        now = self._clock()
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0

        count += 1
        self._windows[key] = (started, count)

        if len(self._windows) > self.PRUNE_THRESHOLD:
            self._prune(now)

        reset_after = max(0, math.ceil(started + self.window_seconds - now))
        return RateLimitDecision(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_after=reset_after,
        )

    def reset(self) -> None:
        self._windows.clear()

    def _prune(self, now: float) -> None:
        self._windows = {
            key: (started, count)
            for key, (started, count) in self._windows.items()
            if now - started < self.window_seconds
        }
