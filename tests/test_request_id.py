"""Tests for request ID middleware."""

import uuid

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from governor.app.middleware.request_id import RequestIdMiddleware, get_request_id


def build_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)

    @app.get("/echo")
    async def echo(request: Request):
        return {"request_id": get_request_id(request)}

    return app


class TestRequestIdMiddleware:
    """Test RequestIdMiddleware."""

    def test_preserves_incoming_request_id(self):
        client = TestClient(build_app())

        response = client.get("/echo", headers={"X-Request-ID": "req-abc"})

        assert response.headers["X-Request-ID"] == "req-abc"
        assert response.json()["request_id"] == "req-abc"

    def test_generates_request_id(self):
        client = TestClient(build_app())

        response = client.get("/echo")

        request_id = response.headers["X-Request-ID"]
        assert uuid.UUID(request_id)
        assert response.json()["request_id"] == request_id

    def test_ids_differ_between_requests(self):
        client = TestClient(build_app())

        first = client.get("/echo").headers["X-Request-ID"]
        second = client.get("/echo").headers["X-Request-ID"]

        assert first != second

    def test_custom_header_name(self):
        app = FastAPI()
        app.add_middleware(RequestIdMiddleware, header_name="X-Correlation-ID")

        @app.get("/")
        async def root():
            return {}

        response = TestClient(app).get("/", headers={"X-Correlation-ID": "corr-1"})

        assert response.headers["X-Correlation-ID"] == "corr-1"


def test_get_request_id_without_middleware():
    app = FastAPI()

    @app.get("/")
    async def root(request: Request):
        return {"request_id": get_request_id(request)}

    assert TestClient(app).get("/").json() == {"request_id": "unknown"}
