"""Tests for limiter configuration and decision models."""

from dataclasses import FrozenInstanceError
from datetime import timedelta

import pytest

from governor.app.core.config import Settings
from governor.app.core.store import InMemoryWindowStore
from governor.app.middleware.rate_limit import (
    LimiterConfig,
    RateLimitDecision,
    build_limiter_config,
)


class TestLimiterConfig:
    """Tests for LimiterConfig construction."""

    def test_holds_values(self):
        store = InMemoryWindowStore()
        config = LimiterConfig(
            store=store,
            key_prefix="ratelimit:",
            quota=5,
            window=timedelta(minutes=1),
        )
        assert config.store is store
        assert config.key_prefix == "ratelimit:"
        assert config.quota == 5
        assert config.window_seconds == 60

    def test_is_immutable(self):
        config = LimiterConfig(InMemoryWindowStore(), "p:", 5, timedelta(seconds=60))
        with pytest.raises(FrozenInstanceError):
            config.quota = 10

    def test_fractional_window_truncated(self):
        config = LimiterConfig(InMemoryWindowStore(), "p:", 5, timedelta(seconds=90.7))
        assert config.window_seconds == 90

    @pytest.mark.parametrize("quota", [0, -1])
    def test_rejects_non_positive_quota(self, quota):
        with pytest.raises(ValueError, match="quota"):
            LimiterConfig(InMemoryWindowStore(), "p:", quota, timedelta(seconds=60))

    @pytest.mark.parametrize(
        "window",
        [timedelta(0), timedelta(seconds=-5), timedelta(milliseconds=500)],
    )
    def test_rejects_sub_second_window(self, window):
        with pytest.raises(ValueError, match="window"):
            LimiterConfig(InMemoryWindowStore(), "p:", 5, window)

    def test_build_from_settings(self):
        settings = Settings(
            rate_limit_key_prefix="svc:",
            rate_limit_requests=42,
            rate_limit_window_seconds=30,
        )
        store = InMemoryWindowStore()
        config = build_limiter_config(settings, store)
        assert config.store is store
        assert config.key_prefix == "svc:"
        assert config.quota == 42
        assert config.window == timedelta(seconds=30)


class TestRateLimitDecision:
    """Tests for RateLimitDecision."""

    def test_headers_for_completed_check(self):
        decision = RateLimitDecision(allowed=True, limit=5, count=2, reset_at=1700000060)
        assert decision.remaining == 3
        assert decision.headers() == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "3",
            "X-RateLimit-Reset": "1700000060",
        }

    def test_remaining_never_negative(self):
        decision = RateLimitDecision(allowed=False, limit=5, count=9, reset_at=1)
        assert decision.remaining == 0
        assert decision.headers()["X-RateLimit-Remaining"] == "0"

    def test_fail_open_has_no_headers(self):
        decision = RateLimitDecision.fail_open(limit=5)
        assert decision.allowed is True
        assert decision.degraded is True
        assert decision.remaining is None
        assert decision.headers() == {}
