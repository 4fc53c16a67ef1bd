"""Rate limiting middleware for the governor.

Enforces a per-client sliding-window request budget backed by a shared
counting store. Authenticated users are limited by user id, anonymous
clients by network address.
"""

import time
from datetime import timedelta
from typing import Callable, Iterable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from governor.app.core.config import Settings
from governor.app.core.store import WindowStore
from governor.app.exceptions import RateLimitExceededError

# Re-export models
from governor.app.middleware.rate_limit.models import (
    LimiterConfig,
    RateLimitDecision,
)

# Re-export enforcement
from governor.app.middleware.rate_limit.enforcer import (
    ClientKind,
    SlidingWindowEnforcer,
    build_client_key,
)

__all__ = [
    # Models
    "LimiterConfig",
    "RateLimitDecision",
    # Enforcement
    "ClientKind",
    "SlidingWindowEnforcer",
    "build_client_key",
    # Main classes
    "RateLimitMiddleware",
    "build_limiter_config",
    "get_client_address",
    "rate_limit_dependency",
]


def get_client_address(request: Request, trust_forwarded_for: bool = False) -> str:
    """Get the client network address for the request.

    X-Forwarded-For is only honoured when the service runs behind a
    trusted proxy, since clients can set it freely.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
            if client_ip:
                return client_ip
    return request.client.host if request.client else "unknown"


def build_limiter_config(settings: Settings, store: WindowStore) -> LimiterConfig:
    """Build the limiter configuration from application settings."""
    return LimiterConfig(
        store=store,
        key_prefix=settings.rate_limit_key_prefix,
        quota=settings.rate_limit_requests,
        window=timedelta(seconds=settings.rate_limit_window_seconds),
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce rate limits on requests.

    The user identity is read from ``request.state.<user_id_attr>``, which an
    authentication middleware registered outside this one is expected to set.
    Without it the client's network address is used.
    """

    def __init__(
        self,
        app,
        config: LimiterConfig,
        user_id_attr: str = "user_id",
        trust_forwarded_for: bool = False,
        exempt_paths: Optional[Iterable[str]] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(app)
        self.enforcer = SlidingWindowEnforcer(config, clock=clock)
        self.user_id_attr = user_id_attr
        self.trust_forwarded_for = trust_forwarded_for
        self.exempt_paths = frozenset(exempt_paths or ())

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        decision = await self.enforcer.enforce(
            user_id=getattr(request.state, self.user_id_attr, None),
            client_address=get_client_address(request, self.trust_forwarded_for),
            request_id=getattr(request.state, "request_id", None),
        )

        if not decision.allowed:
            exc = RateLimitExceededError(limit=decision.limit, reset_at=decision.reset_at)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response(),
                headers=decision.headers(),
            )

        response = await call_next(request)

        # Add rate limit headers to response
        response.headers.update(decision.headers())

        return response


def rate_limit_dependency(
    config: LimiterConfig,
    user_id_attr: str = "user_id",
    trust_forwarded_for: bool = False,
    clock: Callable[[], float] = time.time,
):
    """Build a FastAPI dependency enforcing a route-specific budget.

    Useful for endpoints that need a tighter limit than the global
    middleware. Rejections raise RateLimitExceededError, which the
    application's exception handler renders as HTTP 429.

    Usage:
        login_limit = rate_limit_dependency(LimiterConfig(store, "ratelimit:login:", 5, timedelta(minutes=1)))

        @app.post("/login", dependencies=[Depends(login_limit)])
        async def login(): ...
    """
    enforcer = SlidingWindowEnforcer(config, clock=clock)

    async def enforce_rate_limit(request: Request, response: Response) -> RateLimitDecision:
        decision = await enforcer.enforce(
            user_id=getattr(request.state, user_id_attr, None),
            client_address=get_client_address(request, trust_forwarded_for),
            request_id=getattr(request.state, "request_id", None),
        )
        if not decision.allowed:
            raise RateLimitExceededError(limit=decision.limit, reset_at=decision.reset_at)
        response.headers.update(decision.headers())
        return decision

    return enforce_rate_limit
