"""
Realtime Change Listener

Keeps one merchant's staff board in sync with the backend. Opens two
subscriptions on the change feed (orders insert/update, order lines
insert) and answers every notification with a full reload of the order
list instead of an incremental patch: a reload always reflects
backend-confirmed state, so duplicated or reordered notifications cannot
corrupt the view.

Bursts are coalesced. A checkout publishes one order insert followed by
one insert per line; all of them land in the same reload.

When the transport drops a subscription the listener reports itself as
not running, resubscribes with backoff and reloads once to pick up
whatever changed while it was deaf.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from tableside.exceptions import NonFatalPlaybackError, TransientIOError
from tableside.services.alerts.base import BaseAlertService
from tableside.services.realtime.base import (
    BaseChangeFeed,
    ChangeEvent,
    ChangeKind,
    ChangeTable,
    Scope,
    Subscription,
)

logger = logging.getLogger(__name__)

ReloadCallback = Callable[[], Awaitable[object]]

# Seconds between resubscribe attempts; the last value repeats
RECONNECT_DELAYS = (0.5, 1.0, 2.0, 5.0)


class OrderChangeListener:
    """
    Push subscription pair for one merchant.

    Attributes:
        merchant_id: Tenant whose orders are watched
        coalesce_seconds: Quiet period before a reload runs; notifications
            arriving meanwhile are merged into that reload
        reconnect_delays: Backoff schedule used after a lost connection
        reload_count: Number of reloads triggered so far
        reconnect_count: Number of successful resubscriptions
    """

    def __init__(
        self,
        feed: BaseChangeFeed,
        merchant_id: str,
        on_change: ReloadCallback,
        alert: Optional[BaseAlertService] = None,
        coalesce_seconds: float = 0.15,
        reconnect_delays: Sequence[float] = RECONNECT_DELAYS,
    ):
        self.feed = feed
        self.merchant_id = merchant_id
        self.on_change = on_change
        self.alert = alert
        self.coalesce_seconds = coalesce_seconds
        self.reconnect_delays = tuple(reconnect_delays) or (0.0,)
        self.reload_count = 0
        self.reconnect_count = 0

        self._subscriptions: list[Subscription] = []
        self._reload_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._alert_tasks: set[asyncio.Task] = set()
        self._dirty = False
        self._running = False

    @property
    def is_running(self) -> bool:
        """Started, and both subscriptions currently connected."""
        return self._running and self._reconnect_task is None

    @property
    def is_reconnecting(self) -> bool:
        return self._reconnect_task is not None

    @property
    def scopes(self) -> tuple[Scope, Scope]:
        return (
            Scope(self.merchant_id, ChangeTable.ORDERS, frozenset({ChangeKind.INSERT, ChangeKind.UPDATE})),
            Scope(self.merchant_id, ChangeTable.ORDER_LINES, frozenset({ChangeKind.INSERT})),
        )

    async def start(self) -> None:
        """
        Open the subscription pair. No-op when already running.

        Raises:
            TransientIOError: If the feed cannot be reached; nothing stays open
        """
        if self._running:
            return

        await self._subscribe_all()
        self._running = True
        logger.info(f"Listening for order changes of merchant {self.merchant_id} ({self.feed.provider_name})")

        # A connection dropped while the second subscribe was in flight
        for subscription in self._subscriptions:
            if subscription.lost:
                self._lost(subscription, TransientIOError("connection lost during subscribe"))
                break

    async def stop(self) -> None:
        """Release both subscriptions and drop any pending reload."""
        if not self._running and not self._subscriptions:
            return
        self._running = False
        self._dirty = False

        reconnect_task, self._reconnect_task = self._reconnect_task, None
        for task in (reconnect_task, self._reload_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._reload_task = None

        await self._release_subscriptions()

        for task in list(self._alert_tasks):
            task.cancel()
        self._alert_tasks.clear()

        logger.info(f"Stopped listening for merchant {self.merchant_id}")

    async def _subscribe_all(self) -> None:
        try:
            for scope in self.scopes:
                self._subscriptions.append(
                    await self.feed.subscribe(scope, self._handle, on_lost=self._lost)
                )
        except TransientIOError:
            await self._release_subscriptions()
            raise

    async def _release_subscriptions(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await subscription.unsubscribe()

    async def __aenter__(self) -> "OrderChangeListener":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Lost connections
    # ------------------------------------------------------------------

    def _lost(self, subscription: Subscription, error: Exception) -> None:
        if not self._running or subscription not in self._subscriptions:
            return
        if self._reconnect_task is not None:
            return
        logger.warning(
            f"Change feed lost for merchant {self.merchant_id} "
            f"({subscription.scope.table.value}): {error}; reconnecting"
        )
        self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        await self._release_subscriptions()

        attempt = 0
        while self._running:
            await asyncio.sleep(self.reconnect_delays[min(attempt, len(self.reconnect_delays) - 1)])
            attempt += 1
            try:
                await self._subscribe_all()
            except TransientIOError as e:
                logger.warning(f"Resubscribe attempt {attempt} for merchant {self.merchant_id} failed: {e}")
                continue

            self._reconnect_task = None
            self.reconnect_count += 1
            logger.info(f"Change feed restored for merchant {self.merchant_id} after {attempt} attempt(s)")
            # Catch up on anything missed while disconnected
            self._schedule_reload()
            return

    # ------------------------------------------------------------------
    # Notification handling
    # ------------------------------------------------------------------

    def _handle(self, event: ChangeEvent) -> None:
        if not self._running or event.merchant_id != self.merchant_id:
            return

        logger.debug(f"Change received: {event.table.value} {event.kind.value} {event.record_id}")

        if event.is_order_insert:
            self._play_alert()

        self._schedule_reload()

    def _schedule_reload(self) -> None:
        self._dirty = True
        if self._reload_task is None or self._reload_task.done():
            self._reload_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while self._dirty and self._running:
            if self.coalesce_seconds:
                await asyncio.sleep(self.coalesce_seconds)
            self._dirty = False
            self.reload_count += 1
            try:
                await self.on_change()
            except TransientIOError as e:
                logger.warning(f"Board reload failed for merchant {self.merchant_id}: {e}")

    def _play_alert(self) -> None:
        if self.alert is None:
            return
        task = asyncio.create_task(self._safe_play())
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)

    async def _safe_play(self) -> None:
        try:
            await self.alert.play(self.merchant_id)
        except NonFatalPlaybackError as e:
            logger.debug(f"New-order alert not played: {e}")

    async def wait_idle(self) -> None:
        """Wait for the pending reload, if any, to finish."""
        while self._reload_task is not None and not self._reload_task.done():
            await asyncio.wait({self._reload_task})
