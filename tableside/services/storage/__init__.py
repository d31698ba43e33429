"""
Cart Storage Factory

Returns the key-value store used to persist carts, based on ENV_MODE.

Environment Switching:
    - ENV_MODE=development → FileKeyValueStore (local JSON file)
    - ENV_MODE=staging/production → RedisKeyValueStore
"""

import logging
from functools import lru_cache

from tableside.core.config import get_settings
from tableside.services.storage.base import BaseKeyValueStore
from tableside.services.storage.file_store import FileKeyValueStore
from tableside.services.storage.memory import MemoryKeyValueStore
from tableside.services.storage.redis_store import RedisKeyValueStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_cart_storage() -> BaseKeyValueStore:
    """Get the configured cart storage instance."""
    settings = get_settings()

    if settings.use_redis:
        logger.info(f"Cart Storage: Using RedisKeyValueStore ({settings.env_mode.value} mode)")
        return RedisKeyValueStore(settings.redis_url)

    logger.info("Cart Storage: Using FileKeyValueStore (development mode)")
    return FileKeyValueStore(settings.cart_storage_path, lock_timeout=settings.cart_lock_timeout)


def reset_cart_storage() -> None:
    """Clear the cached storage instance."""
    get_cart_storage.cache_clear()


__all__ = [
    "get_cart_storage",
    "reset_cart_storage",
    "BaseKeyValueStore",
    "FileKeyValueStore",
    "MemoryKeyValueStore",
    "RedisKeyValueStore",
]
