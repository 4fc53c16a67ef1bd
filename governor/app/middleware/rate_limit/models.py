"""Rate limiting data models.

This module contains the limiter configuration and the per-request decision.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from governor.app.core.store import WindowStore


@dataclass(frozen=True)
class LimiterConfig:
    """Immutable limiter settings shared by every request handler.

    Attributes:
        store: Counting store holding the per-client window entries
        key_prefix: Namespace prepended to every client key
        quota: Maximum requests allowed per window
        window: Length of the sliding window

    Raises:
        ValueError: If quota is below 1 or window is shorter than one second
    """
    store: WindowStore
    key_prefix: str
    quota: int
    window: timedelta

    def __post_init__(self) -> None:
        if self.quota < 1:
            raise ValueError("quota must be >= 1")
        if self.window_seconds < 1:
            raise ValueError("window must be at least one second")

    @property
    def window_seconds(self) -> int:
        """Window length in whole seconds (fractions truncated)."""
        return int(self.window.total_seconds())


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one enforcement.

    ``degraded`` is set when the store transaction failed and the request
    was let through without a count; such decisions carry no headers.
    """
    allowed: bool
    limit: int
    count: Optional[int] = None
    reset_at: Optional[int] = None
    degraded: bool = False

    @classmethod
    def fail_open(cls, limit: int) -> "RateLimitDecision":
        return cls(allowed=True, limit=limit, degraded=True)

    @property
    def remaining(self) -> Optional[int]:
        if self.count is None:
            return None
        return max(0, self.limit - self.count)

    def headers(self) -> dict[str, str]:
        """Advisory X-RateLimit-* headers for this decision."""
        if self.degraded or self.count is None:
            return {}
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
