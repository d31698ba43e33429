"""
Order Backend Factory

Provides a single entry point for obtaining the order store. Change events
of every write go to the configured change feed.

Usage:
    from tableside.services.backend import get_order_backend

    backend = get_order_backend()
    orders = await backend.list_orders(merchant_id)

Backend Switching:
    - ORDER_BACKEND=sql → SqlOrderBackend (default)
    - ORDER_BACKEND=memory → InMemoryOrderBackend (no database needed)
"""

import logging
from functools import lru_cache

from tableside.core.config import get_settings
from tableside.database import get_session_maker
from tableside.services.backend.base import BaseOrderBackend, NewOrderLine
from tableside.services.backend.memory import InMemoryOrderBackend
from tableside.services.backend.sql import SqlOrderBackend
from tableside.services.realtime import get_change_feed

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_backend() -> BaseOrderBackend:
    """Get the configured order backend instance."""
    settings = get_settings()

    if settings.order_backend == "memory":
        logger.info("Order Backend: Using InMemoryOrderBackend")
        return InMemoryOrderBackend(feed=get_change_feed())

    logger.info("Order Backend: Using SqlOrderBackend")
    return SqlOrderBackend(get_session_maker(), feed=get_change_feed())


def reset_order_backend() -> None:
    """Clear the cached backend instance."""
    get_order_backend.cache_clear()


__all__ = [
    "get_order_backend",
    "reset_order_backend",
    "BaseOrderBackend",
    "NewOrderLine",
    "InMemoryOrderBackend",
    "SqlOrderBackend",
]
