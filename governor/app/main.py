from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from governor.app.core.config import Settings, settings as default_settings
from governor.app.core.logging import get_logger, setup_logging
from governor.app.core.store import get_window_store
from governor.app.exceptions import RateLimitExceededError
from governor.app.middleware.rate_limit import RateLimitMiddleware, build_limiter_config
from governor.app.middleware.request_id import RequestIdMiddleware, get_request_id


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        app_settings: Settings to use instead of the process-wide instance

    Returns:
        Configured FastAPI application instance
    """
    cfg = app_settings or default_settings

    setup_logging(cfg)
    logger = get_logger(__name__)

    store = get_window_store(
        backend="redis" if cfg.redis_enabled else "memory",
        redis_url=cfg.redis_url,
        timeout=cfg.rate_limit_store_timeout,
        force_new=True,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan context manager.

        Checks the counting store on startup and closes it on shutdown.
        An unreachable store is logged but does not block startup, since
        rate limiting fails open.
        """
        store_ok = await store.ping()
        logger.info(
            f"Application startup complete (rate limiting "
            f"{'on' if cfg.rate_limit_enabled else 'off'}, "
            f"{cfg.rate_limit_requests} requests per {cfg.rate_limit_window_seconds}s)",
            extra={"store": type(store).__name__, "store_reachable": store_ok},
        )
        if not store_ok:
            logger.warning("Counting store unreachable; rate limiting will fail open")

        yield

        await store.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Request Governor",
        description="HTTP service with per-client sliding-window rate limiting",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.window_store = store

    # Add middleware (order matters: last added = outermost)
    if cfg.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            config=build_limiter_config(cfg, store),
            trust_forwarded_for=cfg.rate_limit_trust_forwarded_for,
            exempt_paths=cfg.rate_limit_exempt_paths,
        )
    else:
        logger.info("Rate limiting disabled by configuration")

    # Request ID middleware wraps rate limiting so rejections carry the ID too
    app.add_middleware(RequestIdMiddleware)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Health check endpoint reporting counting store status."""
        store_ok = await store.ping()
        return {
            "status": "ok" if store_ok else "degraded",
            "components": {
                "store": {
                    "status": "ok" if store_ok else "error",
                    "type": "redis" if cfg.redis_enabled else "memory",
                },
            },
        }

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
        """Handle RateLimitExceededError and return HTTP 429 response."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers={
                "X-RateLimit-Limit": str(exc.limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(exc.reset_at),
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback to the client; full details are logged.
        """
        request_id = get_request_id(request)

        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            }
        )

        if cfg.debug:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": str(exc),
                    "exception_type": type(exc).__name__,
                    "request_id": request_id,
                }
            )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "Internal server error",
                "request_id": request_id,
            }
        )

    return app


# Create the application instance
app = create_app()
