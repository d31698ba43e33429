"""
Change Feed Factory

Returns the push-notification transport based on ENV_MODE.

Environment Switching:
    - ENV_MODE=development → InMemoryChangeFeed (single process)
    - ENV_MODE=staging/production → RedisChangeFeed (pub/sub, multi-worker)
"""

import logging
from functools import lru_cache

from tableside.core.config import get_settings
from tableside.services.realtime.base import (
    BaseChangeFeed,
    ChangeEvent,
    ChangeKind,
    ChangeTable,
    Scope,
    Subscription,
)
from tableside.services.realtime.listener import OrderChangeListener
from tableside.services.realtime.memory import InMemoryChangeFeed
from tableside.services.realtime.redis_feed import RedisChangeFeed

logger = logging.getLogger(__name__)


@lru_cache()
def get_change_feed() -> BaseChangeFeed:
    """Get the configured change feed."""
    settings = get_settings()

    if settings.use_redis:
        logger.info(f"Change Feed: Using RedisChangeFeed ({settings.env_mode.value} mode)")
        return RedisChangeFeed(settings.redis_url, channel_prefix=settings.realtime_channel_prefix)

    logger.info("Change Feed: Using InMemoryChangeFeed (development mode)")
    return InMemoryChangeFeed()


def reset_change_feed() -> None:
    """Clear the cached feed instance."""
    get_change_feed.cache_clear()


__all__ = [
    "get_change_feed",
    "reset_change_feed",
    "BaseChangeFeed",
    "ChangeEvent",
    "ChangeKind",
    "ChangeTable",
    "Scope",
    "Subscription",
    "InMemoryChangeFeed",
    "RedisChangeFeed",
    "OrderChangeListener",
]
