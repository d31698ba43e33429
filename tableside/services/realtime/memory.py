"""
In-Process Change Feed

Delivers events to subscribers of the same process on the next event-loop
iteration. Used in development mode and by the test-suite.
"""

import asyncio
import logging
from typing import Optional

from tableside.services.realtime.base import (
    BaseChangeFeed,
    ChangeEvent,
    ChangeHandler,
    LostHandler,
    Scope,
    Subscription,
)

logger = logging.getLogger(__name__)


class InMemorySubscription(Subscription):

    def __init__(
        self,
        feed: "InMemoryChangeFeed",
        scope: Scope,
        handler: ChangeHandler,
        on_lost: Optional[LostHandler] = None,
    ):
        super().__init__(scope, handler, on_lost)
        self._feed = feed

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._feed._subscriptions.discard(self)
        logger.debug(f"Unsubscribed from {self.scope.table.value} for {self.scope.merchant_id}")


class InMemoryChangeFeed(BaseChangeFeed):
    """Single-process feed; every published event is kept in ``history``."""

    def __init__(self):
        self._subscriptions: set[InMemorySubscription] = set()
        self.history: list[ChangeEvent] = []

    @property
    def provider_name(self) -> str:
        return "memory"

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def subscriptions_for(self, merchant_id: str) -> list[Subscription]:
        return [s for s in self._subscriptions if s.scope.merchant_id == merchant_id]

    async def subscribe(
        self,
        scope: Scope,
        handler: ChangeHandler,
        on_lost: Optional[LostHandler] = None,
    ) -> Subscription:
        subscription = InMemorySubscription(self, scope, handler, on_lost)
        self._subscriptions.add(subscription)
        logger.debug(f"Subscribed to {scope.table.value} for {scope.merchant_id}")
        return subscription

    async def publish(self, event: ChangeEvent) -> None:
        self.history.append(event)
        loop = asyncio.get_running_loop()
        for subscription in list(self._subscriptions):
            if subscription.scope.matches(event):
                # Checked again at delivery: a released handle gets nothing
                loop.call_soon(subscription._dispatch, event)

    async def health_check(self) -> bool:
        return True

    def disconnect(self, merchant_id: Optional[str] = None) -> int:
        """
        Drop the subscriptions of ``merchant_id`` (all when None) as if the
        transport had lost its connection.

        Returns:
            Number of subscriptions dropped
        """
        dropped = [
            s for s in list(self._subscriptions)
            if merchant_id is None or s.scope.merchant_id == merchant_id
        ]
        for subscription in dropped:
            subscription._connection_lost(ConnectionError("in-memory feed disconnected"))
        return len(dropped)
