"""Counting store backends for sliding-window rate limiting.

A counting store keeps, per client key, an ordered set of request entries
scored by their occurrence time. The single operation the enforcer needs,
``hit``, applies eviction, insertion, counting and expiry as one atomic unit.

Redis is the production backend and the source of truth shared by every
service instance. The in-memory backend emulates the same semantics inside
one process and is used when Redis is disabled and in tests.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import redis
import redis.asyncio as aioredis

from governor.app.core.logging import get_logger
from governor.app.exceptions import StoreUnavailableError

logger = get_logger(__name__)

# Errors that mean "the transaction did not complete"
STORE_ERRORS = (
    redis.RedisError,
    asyncio.TimeoutError,
    OSError,
)


def new_member(now: int) -> str:
    """Build a unique set member for a request recorded at ``now``."""
    return f"{now}:{uuid.uuid4().hex}"


class WindowStore(ABC):
    """Abstract base class for counting store backends."""

    @abstractmethod
    async def hit(self, key: str, *, now: int, window_seconds: int) -> int:
        """Record one request for ``key`` and count the live window.

        In order, as one atomic unit: remove entries scored in
        ``[0, now - window_seconds]``, add an entry scored ``now``, read the
        cardinality, and set the key's expiry to ``window_seconds``.

        Args:
            key: Client key
            now: Current time in whole UNIX seconds
            window_seconds: Window length in seconds

        Returns:
            Number of entries in the window, including the one just added

        Raises:
            StoreUnavailableError: If the transaction could not be completed
        """
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the store is reachable."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


@dataclass
class _WindowSet:
    """Entries for one key in the in-memory store."""

    entries: dict[str, int] = field(default_factory=dict)
    expires_at: Optional[int] = None

    def is_expired(self, now: int) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class InMemoryWindowStore(WindowStore):
    """Single-process counting store with sorted-set semantics.

    Keys idle past their expiry are swept from inside ``hit`` as soon as
    the store clock reaches the earliest pending expiry, so clients that
    never come back do not stay in memory.

    Note: state is not shared between processes, so each worker enforces
    its own budget. Use RedisWindowStore for multi-instance deployments.
    """

    def __init__(self) -> None:
        self._data: dict[str, _WindowSet] = {}
        self._lock = asyncio.Lock()
        # Earliest expires_at among stored keys (may be stale-low after refreshes)
        self._next_sweep_at: Optional[int] = None

    async def hit(self, key: str, *, now: int, window_seconds: int) -> int:
        async with self._lock:
            if self._next_sweep_at is not None and now >= self._next_sweep_at:
                self._sweep(now)

            window = self._data.get(key)
            if window is None or window.is_expired(now):
                window = _WindowSet()
                self._data[key] = window

            window_start = now - window_seconds
            window.entries = {
                member: score
                for member, score in window.entries.items()
                if not 0 <= score <= window_start
            }
            window.entries[new_member(now)] = now
            count = len(window.entries)
            window.expires_at = now + window_seconds
            if self._next_sweep_at is None or window.expires_at < self._next_sweep_at:
                self._next_sweep_at = window.expires_at
            return count

    async def ping(self) -> bool:
        return True

    def _sweep(self, now: int) -> int:
        """Drop expired keys and recompute the next sweep time. Caller holds the lock."""
        expired = [k for k, w in self._data.items() if w.is_expired(now)]
        for key in expired:
            del self._data[key]
        self._next_sweep_at = min(
            (w.expires_at for w in self._data.values() if w.expires_at is not None),
            default=None,
        )
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate limit keys")
        return len(expired)

    async def cleanup_expired(self, now: int) -> int:
        """Remove all expired keys.

        Args:
            now: Current time in whole UNIX seconds

        Returns:
            Number of keys removed.
        """
        async with self._lock:
            return self._sweep(now)


class RedisWindowStore(WindowStore):
    """Redis-based counting store.

    Uses a sorted set per client key, updated inside a MULTI/EXEC pipeline
    so concurrent requests for the same key are serialized by Redis.

    Example:
        >>> store = RedisWindowStore("redis://localhost:6379/0")
        >>> count = await store.hit("ratelimit:ip:10.0.0.1", now=1700000000, window_seconds=60)
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        redis_client: Optional[Any] = None,
        timeout: float = 0.5,
    ) -> None:
        """Initialize the Redis store.

        Args:
            redis_url: Redis connection URL (used when no client is given)
            redis_client: Optional pre-built redis.asyncio client
            timeout: Seconds allowed for one transaction round trip
        """
        if redis_client is None and not redis_url:
            raise ValueError("redis_url or redis_client is required")
        self._redis_url = redis_url
        self._redis = redis_client
        self._timeout = timeout

    def _get_client(self) -> Any:
        """Get or create the Redis client connection."""
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._redis_url,
                socket_timeout=self._timeout,
                socket_connect_timeout=self._timeout,
            )
        return self._redis

    async def _execute_window(self, key: str, now: int, window_seconds: int) -> int:
        client = self._get_client()
        window_start = now - window_seconds
        async with client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zadd(key, {new_member(now): now})
            pipe.zcard(key)
            pipe.expire(key, window_seconds)
            results = await pipe.execute()
        return int(results[2])

    async def hit(self, key: str, *, now: int, window_seconds: int) -> int:
        try:
            return await asyncio.wait_for(
                self._execute_window(key, now, window_seconds),
                timeout=self._timeout,
            )
        except redis.TimeoutError as e:
            raise StoreUnavailableError("timeout", str(e)) from e
        except asyncio.TimeoutError as e:
            raise StoreUnavailableError("timeout") from e
        except redis.ConnectionError as e:
            raise StoreUnavailableError("connection_error", str(e)) from e
        except redis.RedisError as e:
            raise StoreUnavailableError("redis_error", str(e)) from e
        except OSError as e:
            raise StoreUnavailableError("os_error", str(e)) from e

    async def ping(self) -> bool:
        try:
            client = self._get_client()
            return bool(await asyncio.wait_for(client.ping(), timeout=self._timeout))
        except STORE_ERRORS as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


# Global store instance (singleton pattern)
_store_instance: Optional[WindowStore] = None


def get_window_store(
    backend: Optional[str] = None,
    redis_url: Optional[str] = None,
    timeout: Optional[float] = None,
    force_new: bool = False,
) -> WindowStore:
    """Get or create the global counting store.

    Args:
        backend: 'memory', 'redis', or None to follow settings.redis_enabled
        redis_url: Redis connection URL. If not provided, uses settings.redis_url.
        timeout: Transaction timeout. If not provided, uses
            settings.rate_limit_store_timeout.
        force_new: If True, create a new instance even if one exists.

    Returns:
        A WindowStore instance.
    """
    global _store_instance

    if _store_instance is not None and not force_new:
        return _store_instance

    from governor.app.core.config import settings

    if backend == "redis":
        use_redis = True
    elif backend == "memory":
        use_redis = False
    else:
        use_redis = settings.redis_enabled

    if use_redis:
        _store_instance = RedisWindowStore(
            redis_url=redis_url or settings.redis_url,
            timeout=timeout if timeout is not None else settings.rate_limit_store_timeout,
        )
        logger.info("Using Redis counting store")
    else:
        _store_instance = InMemoryWindowStore()
        logger.debug("Using in-memory counting store")
    return _store_instance


def reset_window_store() -> None:
    """Reset the global store instance.

    This is primarily useful for testing.
    """
    global _store_instance
    _store_instance = None
