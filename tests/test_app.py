"""Tests for application wiring."""

import logging
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from governor.app.core.config import Settings
from governor.app.core.store import InMemoryWindowStore, RedisWindowStore
from governor.app.exceptions import RateLimitExceededError
from governor.app.main import create_app


def make_settings(**overrides) -> Settings:
    values = {
        "rate_limit_requests": 2,
        "rate_limit_window_seconds": 60,
        "redis_enabled": False,
    }
    values.update(overrides)
    return Settings(**values)


class TestCreateApp:
    """Tests for create_app."""

    def test_uses_memory_store_when_redis_disabled(self):
        app = create_app(make_settings())
        assert isinstance(app.state.window_store, InMemoryWindowStore)

    def test_uses_redis_store_when_enabled(self):
        app = create_app(make_settings(redis_enabled=True, redis_url="redis://localhost:6399/0"))
        assert isinstance(app.state.window_store, RedisWindowStore)

    def test_logging_follows_app_settings(self):
        create_app(make_settings(log_level="DEBUG"))
        assert logging.getLogger("governor").level == logging.DEBUG

        create_app(make_settings(log_level="WARNING", log_format="json"))
        governor_logger = logging.getLogger("governor")
        assert governor_logger.level == logging.WARNING
        assert type(governor_logger.handlers[0].formatter).__name__ == "JSONFormatter"

    def test_rate_limit_applied_to_routes(self):
        app = create_app(make_settings(rate_limit_requests=2))

        @app.get("/ping")
        async def ping():
            return {"pong": True}

        with TestClient(app) as client:
            assert client.get("/ping").status_code == 200
            assert client.get("/ping").status_code == 200
            response = client.get("/ping")

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limit_exceeded"
        assert response.headers["X-RateLimit-Limit"] == "2"
        # Request ID middleware wraps the limiter
        assert "X-Request-ID" in response.headers

    def test_rate_limit_disabled(self):
        app = create_app(make_settings(rate_limit_enabled=False, rate_limit_requests=1))

        @app.get("/ping")
        async def ping():
            return {"pong": True}

        with TestClient(app) as client:
            for _ in range(3):
                response = client.get("/ping")
                assert response.status_code == 200
                assert "X-RateLimit-Limit" not in response.headers

    def test_health_is_exempt(self):
        app = create_app(make_settings(rate_limit_requests=1))

        with TestClient(app) as client:
            for _ in range(3):
                response = client.get("/health")
                assert response.status_code == 200

        assert response.json() == {
            "status": "ok",
            "components": {"store": {"status": "ok", "type": "memory"}},
        }

    def test_health_degraded_when_store_unreachable(self):
        app = create_app(make_settings())
        app.state.window_store.ping = AsyncMock(return_value=False)

        with TestClient(app) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["components"]["store"]["status"] == "error"

    def test_store_closed_on_shutdown(self):
        app = create_app(make_settings())
        app.state.window_store.close = AsyncMock()

        with TestClient(app):
            pass

        app.state.window_store.close.assert_awaited_once()


class TestExceptionHandlers:
    """Tests for application exception handlers."""

    def test_rate_limit_error_from_route(self):
        app = create_app(make_settings(rate_limit_enabled=False))

        @app.get("/limited")
        async def limited():
            raise RateLimitExceededError(limit=5, reset_at=1700000060)

        with TestClient(app) as client:
            response = client.get("/limited")

        assert response.status_code == 429
        assert response.json() == {
            "error": "rate_limit_exceeded",
            "message": "Rate limit exceeded. Please try again later.",
            "limit": 5,
            "reset_at": 1700000060,
        }
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == "1700000060"

    def test_unhandled_exception_hides_details(self):
        app = create_app(make_settings(rate_limit_enabled=False, debug=False))

        @app.get("/boom")
        async def boom():
            raise RuntimeError("database password is hunter2")

        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/boom")

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "internal_error"
        assert data["message"] == "Internal server error"
        assert "hunter2" not in response.text
        assert "Traceback" not in response.text
