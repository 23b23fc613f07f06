"""Rate limit bookkeeping for OKX private endpoints.

OKX reports remaining capacity through response headers. ``RateLimitState``
only records those hints; it never blocks a request. ``RateLimiter`` is an
optional sliding-window gate the signed client consults before each attempt
when one is injected.

Reference: https://www.okx.com/docs-v5/en/#overview-rate-limits
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from typing import Mapping, Optional


REMAINING_HEADER = "x-ratelimit-remaining"
RESET_HEADER = "x-ratelimit-reset"


@dataclass
class RateLimitState:
    """Latest rate limit hints reported by the exchange.

    Attributes:
        remaining: Requests left in the current window (10 until told otherwise)
        reset_time: When the window resets, if reported
    """

    remaining: int = 10
    reset_time: Optional[datetime] = None

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        """Refresh the hints from response headers. Malformed values are ignored."""
        remaining = headers.get(REMAINING_HEADER)
        if remaining:
            try:
                self.remaining = int(remaining)
            except ValueError:
                pass
        reset = headers.get(RESET_HEADER)
        if reset:
            try:
                self.reset_time = datetime.fromtimestamp(int(reset), tz=UTC)
            except (ValueError, OverflowError, OSError):
                pass

    def to_dict(self) -> dict:
        return {
            "remaining": self.remaining,
            "resetTime": self.reset_time.isoformat() if self.reset_time else None,
        }


@dataclass
class RateLimitConfig:
    """Sliding window limits for the optional gate.

    Attributes:
        max_requests: Requests allowed per window (default: 10)
        window_seconds: Window size in seconds (default: 2.0)
    """

    max_requests: int = 10
    window_seconds: float = 2.0


@dataclass
class RateLimiter:
    """Sliding window request gate.

    Example:
        limiter = RateLimiter(RateLimitConfig(max_requests=5, window_seconds=1.0))

        wait = limiter.wait_time()
        if wait > 0:
            time.sleep(wait)
        limiter.record_request()
    """

    config: RateLimitConfig = field(default_factory=RateLimitConfig)
    _timestamps: deque = field(default_factory=deque, init=False)

    def record_request(self) -> None:
        self._timestamps.append(datetime.now(UTC))

    def wait_time(self) -> float:
        """Seconds to wait before the next request is allowed (0.0 if none)."""
        now = datetime.now(UTC)
        self._cleanup_old_timestamps(now)
        if len(self._timestamps) < self.config.max_requests or not self._timestamps:
            return 0.0

        available_at = self._timestamps[0] + timedelta(seconds=self.config.window_seconds)
        return max(0.0, (available_at - now).total_seconds())

    def get_available_capacity(self) -> int:
        now = datetime.now(UTC)
        self._cleanup_old_timestamps(now)
        return max(0, self.config.max_requests - len(self._timestamps))

    def _cleanup_old_timestamps(self, now: datetime) -> None:
        window_start = now - timedelta(seconds=self.config.window_seconds)
        while self._timestamps and self._timestamps[0] < window_start:
            self._timestamps.popleft()
