"""
Admission guard - fixed-window rate limiting for analysis requests.
"""

import time
from typing import Callable, Dict, Optional, Tuple

from pydantic import BaseModel


class RateLimitResult(BaseModel):
    allowed: bool
    remaining: int
    retry_after_ms: int = 0


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class AdmissionGuard:
    """
    Bounds how often one key (a user) may request analysis.

    Each key gets ``max_requests`` within a window that opens at its
    first request and lasts ``window_ms``. Expired windows are purged
    lazily on the next check.
    """

    def __init__(
        self,
        window_ms: int = 60_000,
        max_requests: int = 10,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._clock = clock or _monotonic_ms
        # key -> (window start ms, count)
        self._windows: Dict[str, Tuple[int, int]] = {}

    def check(self, key: str) -> RateLimitResult:
        """Record one request for ``key`` and say whether it is admitted."""
        now = self._clock()
        self._purge(now)

        start, count = self._windows.get(key, (now, 0))
        if count >= self.max_requests:
            return RateLimitResult(
                allowed=False,
                remaining=0,
                retry_after_ms=max(1, start + self.window_ms - now),
            )

        count += 1
        self._windows[key] = (start, count)
        return RateLimitResult(allowed=True, remaining=self.max_requests - count)

    def reset(self):
        self._windows.clear()

    def _purge(self, now: int):
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_ms]
        for key in expired:
            del self._windows[key]
