"""
Redis Change Feed

Production transport built on Redis pub/sub. Each merchant has one channel
(``{prefix}{merchant_id}``); every subscription owns its own PubSub
connection and a reader task, both released by ``unsubscribe()``.
"""

import asyncio
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from tableside.exceptions import TransientIOError
from tableside.services.realtime.base import (
    BaseChangeFeed,
    ChangeEvent,
    ChangeHandler,
    LostHandler,
    Scope,
    Subscription,
)

logger = logging.getLogger(__name__)


class RedisSubscription(Subscription):

    def __init__(
        self,
        scope: Scope,
        handler: ChangeHandler,
        pubsub,
        channel: str,
        on_lost: Optional[LostHandler] = None,
    ):
        super().__init__(scope, handler, on_lost)
        self._pubsub = pubsub
        self._channel = channel
        self._reader: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._reader = asyncio.create_task(self._read(), name=f"change-feed:{self._channel}")

    async def _read(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                data = message.get("data")
                if isinstance(data, bytes):
                    data = data.decode("utf-8")
                try:
                    event = ChangeEvent.from_json(data)
                except ValueError as e:
                    logger.warning(f"Ignoring malformed message on {self._channel}: {e}")
                    continue
                self._dispatch(event)
        except RedisError as e:
            logger.error(f"Change feed connection lost on {self._channel}: {e}")
            self._connection_lost(e)

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False

        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass

        try:
            await self._pubsub.unsubscribe(self._channel)
            await self._pubsub.aclose()
        except RedisError as e:
            logger.warning(f"Error closing subscription on {self._channel}: {e}")

        logger.debug(f"Unsubscribed from {self._channel} ({self.scope.table.value})")


class RedisChangeFeed(BaseChangeFeed):
    """
    Redis pub/sub change feed.

    Attributes:
        channel_prefix: Prepended to the merchant id to build channel names
    """

    def __init__(self, url: str, channel_prefix: str = "tableside:changes:", client=None):
        self._client = client or aioredis.Redis.from_url(url, decode_responses=True)
        self.channel_prefix = channel_prefix
        logger.info("RedisChangeFeed initialized")

    @property
    def provider_name(self) -> str:
        return "redis"

    def channel_for(self, merchant_id: str) -> str:
        return f"{self.channel_prefix}{merchant_id}"

    async def subscribe(
        self,
        scope: Scope,
        handler: ChangeHandler,
        on_lost: Optional[LostHandler] = None,
    ) -> Subscription:
        channel = self.channel_for(scope.merchant_id)
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(channel)
        except RedisError as e:
            await pubsub.aclose()
            raise TransientIOError(f"Cannot subscribe to {channel}: {e}") from e

        subscription = RedisSubscription(scope, handler, pubsub, channel, on_lost)
        subscription.start()
        logger.debug(f"Subscribed to {channel} ({scope.table.value})")
        return subscription

    async def publish(self, event: ChangeEvent) -> None:
        channel = self.channel_for(event.merchant_id)
        try:
            await self._client.publish(channel, event.to_json())
        except RedisError as e:
            raise TransientIOError(f"Cannot publish to {channel}: {e}") from e

    async def health_check(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.error(f"Redis change feed health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._client.aclose()
