"""Sliding-window enforcement against the counting store."""

import time
from enum import Enum
from typing import Any, Callable, Optional

from governor.app.core.logging import get_log_context, get_logger, hash_key
from governor.app.exceptions import StoreUnavailableError
from governor.app.middleware.rate_limit.models import LimiterConfig, RateLimitDecision

logger = get_logger(__name__)


class ClientKind(str, Enum):
    USER = "user"
    IP = "ip"


def build_client_key(
    prefix: str,
    user_id: Optional[Any],
    client_address: str,
) -> tuple[str, ClientKind]:
    """Derive the counting key for a client.

    Authenticated users are keyed by user id so their budget follows them
    across networks; anonymous clients are keyed by network address.

    Args:
        prefix: Key namespace prefix
        user_id: Resolved user identity, or None for anonymous requests
        client_address: Client network address

    Returns:
        Tuple of (key, kind)
    """
    if user_id is not None and user_id != "":
        return f"{prefix}{ClientKind.USER.value}:{user_id}", ClientKind.USER
    return f"{prefix}{ClientKind.IP.value}:{client_address}", ClientKind.IP


class SlidingWindowEnforcer:
    """Decides per request whether a client is within its quota.

    Each call records the request in the client's window before counting,
    so the request being evaluated counts toward its own check: with a
    quota of N the (N+1)-th request inside the window is rejected.

    If the store transaction fails the request is allowed (fail-open).
    Availability of the protected service never depends on the store.
    """

    def __init__(
        self,
        config: LimiterConfig,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self._clock = clock

    async def enforce(
        self,
        user_id: Optional[Any],
        client_address: str,
        request_id: Optional[str] = None,
    ) -> RateLimitDecision:
        """Run one sliding-window check for the requesting client.

        Args:
            user_id: Resolved user identity, if any
            client_address: Client network address
            request_id: Optional request id for log correlation

        Returns:
            RateLimitDecision for this request
        """
        config = self.config
        key, kind = build_client_key(config.key_prefix, user_id, client_address)
        now = int(self._clock())
        window_seconds = config.window_seconds

        try:
            count = await config.store.hit(key, now=now, window_seconds=window_seconds)
        except StoreUnavailableError as e:
            logger.warning(
                f"Rate limiting fail-open triggered due to {e.error_type}. "
                "Request allowed without rate limit check.",
                extra=get_log_context(
                    request_id=request_id,
                    client_kind=kind.value,
                    key_hash=hash_key(key),
                    error_type=e.error_type,
                ),
            )
            return RateLimitDecision.fail_open(config.quota)
        except Exception as e:
            logger.exception(
                f"Unexpected rate limit error: {e}",
                extra=get_log_context(
                    request_id=request_id,
                    client_kind=kind.value,
                    key_hash=hash_key(key),
                    error_type="unexpected",
                ),
            )
            return RateLimitDecision.fail_open(config.quota)

        decision = RateLimitDecision(
            allowed=count <= config.quota,
            limit=config.quota,
            count=count,
            reset_at=now + window_seconds,
        )

        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded",
                extra=get_log_context(
                    request_id=request_id,
                    client_kind=kind.value,
                    key_hash=hash_key(key),
                    count=count,
                    limit=config.quota,
                    reset_at=decision.reset_at,
                ),
            )
        else:
            logger.debug(
                "Rate limit check passed",
                extra=get_log_context(
                    request_id=request_id,
                    client_kind=kind.value,
                    key_hash=hash_key(key),
                    count=count,
                    remaining=decision.remaining,
                ),
            )
        return decision
