# secure_intake/ratelimit.py
"""
Client-side sliding-window rate limiting.

One shared timeline per RateLimiter. admit() is checked before sealing;
record() is called only after the collector reports success. Retries
bypass the window entirely: they neither check nor consume quota.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Optional

from .config import RateLimitConfig, RateLimitSetting


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class RateLimiter:
    """Sliding window over submission timestamps (milliseconds)."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or monotonic_ms
        self._timestamps: Deque[float] = deque()

    def __len__(self) -> int:
        return len(self._timestamps)

    def admit(self, config: RateLimitSetting, is_retry: bool) -> bool:
        """
        Args:
            config: RateLimitConfig, or False to disable limiting
            is_retry: Resubmission of the pending payload

        Returns:
            True if the submission may proceed
        """
        if config is False:
            return True
        if is_retry:
            return True

        if not isinstance(config, RateLimitConfig):
            config = RateLimitConfig()

        cutoff = self._clock() - config.window_ms
        while self._timestamps and self._timestamps[0] < cutoff:
            self._timestamps.popleft()

        return len(self._timestamps) < config.max

    def record(self) -> None:
        self._timestamps.append(self._clock())

    def reset(self) -> None:
        self._timestamps.clear()
