"""Core utilities for the governor application."""

from governor.app.core.config import settings
from governor.app.core.logging import get_logger, setup_logging
from governor.app.core.store import (
    InMemoryWindowStore,
    RedisWindowStore,
    WindowStore,
    get_window_store,
    reset_window_store,
)

__all__ = [
    "WindowStore",
    "InMemoryWindowStore",
    "RedisWindowStore",
    "get_window_store",
    "reset_window_store",
    "settings",
    "get_logger",
    "setup_logging",
]
