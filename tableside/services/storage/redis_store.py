"""
Redis Key-Value Store

Production cart persistence. Uses the synchronous Redis client: cart
mutations persist immediately after they are applied.
"""

import logging
from typing import Optional

import redis
from redis.exceptions import RedisError

from tableside.exceptions import StorageError
from tableside.services.storage.base import BaseKeyValueStore

logger = logging.getLogger(__name__)


class RedisKeyValueStore(BaseKeyValueStore):
    """Redis-backed store with an optional expiry for abandoned carts."""

    def __init__(self, url: str, ttl_seconds: Optional[int] = None, client: Optional[redis.Redis] = None):
        self.client = client or redis.Redis.from_url(url, decode_responses=True, socket_timeout=2)
        self.ttl_seconds = ttl_seconds
        logger.info("RedisKeyValueStore initialized")

    @property
    def provider_name(self) -> str:
        return "redis"

    def get(self, key: str) -> Optional[str]:
        try:
            value = self.client.get(key)
        except RedisError as e:
            raise StorageError(f"Redis GET {key} failed: {e}") from e
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self.client.set(key, value, ex=self.ttl_seconds)
        except RedisError as e:
            raise StorageError(f"Redis SET {key} failed: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self.client.delete(key)
        except RedisError as e:
            raise StorageError(f"Redis DEL {key} failed: {e}") from e

    def health_check(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
