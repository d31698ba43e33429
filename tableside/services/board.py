"""
Staff Order Board

Owns the in-memory list of one merchant's orders, keeps it in sync through
the realtime change listener and applies staff status changes
optimistically:

    snapshot list → apply patch → notify display → commit to backend
        success → reload from backend (canonical state)
        failure → restore snapshot → re-raise

Readers only ever get tuples or fresh lists; the list itself is never
handed out.
"""

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional, Sequence

from tableside.core.config import get_settings
from tableside.exceptions import (
    InvalidTransitionError,
    OrderNotFoundError,
    TablesideError,
    TransientIOError,
)
from tableside.models import OrderStatus
from tableside.schemas import BoardOrder, BoardSnapshot
from tableside.services.alerts.base import BaseAlertService
from tableside.services.backend.base import BaseOrderBackend
from tableside.services.realtime.base import BaseChangeFeed
from tableside.services.realtime.listener import OrderChangeListener
from tableside.services.status import ACTIVE_STATUSES, BOARD_COLUMNS, can_transition, is_terminal, next_status

logger = logging.getLogger(__name__)

BoardObserver = Callable[["OrderBoard"], None]


# =============================================================================
# PURE LIST OPERATIONS
# =============================================================================

def apply_status(orders: Sequence[BoardOrder], order_id: str, status: OrderStatus) -> list[BoardOrder]:
    """Return a new list where ``order_id`` carries ``status``."""
    return [o.model_copy(update={"status": status}) if o.id == order_id else o for o in orders]


def revert_order(orders: Sequence[BoardOrder], previous: BoardOrder, patched_status: OrderStatus) -> list[BoardOrder]:
    """Put ``previous`` back where its entry still shows the optimistic status."""
    return [
        previous if (o.id == previous.id and o.status == patched_status) else o
        for o in orders
    ]


# =============================================================================
# BOARD
# =============================================================================

class OrderBoard:
    """
    Live order board for one merchant at a time.

    Example:
        >>> async with OrderBoard(backend, feed) as board:
        ...     await board.open(merchant_id)
        ...     await board.advance(order_id)
        ...     board.orders_by_status(OrderStatus.PREPARING)
    """

    def __init__(
        self,
        backend: BaseOrderBackend,
        feed: BaseChangeFeed,
        alert: Optional[BaseAlertService] = None,
        coalesce_seconds: Optional[float] = None,
    ):
        self.backend = backend
        self.feed = feed
        self.alert = alert
        self.coalesce_seconds = (
            get_settings().realtime_coalesce_seconds if coalesce_seconds is None else coalesce_seconds
        )

        self._merchant_id: Optional[str] = None
        self._orders: list[BoardOrder] = []
        self._listener: Optional[OrderChangeListener] = None
        self._observers: list[BoardObserver] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def merchant_id(self) -> Optional[str]:
        return self._merchant_id

    @property
    def listener(self) -> Optional[OrderChangeListener]:
        return self._listener

    @property
    def is_live(self) -> bool:
        return self._listener is not None and self._listener.is_running

    async def open(self, merchant_id: str, listen: bool = True) -> None:
        """
        Point the board at ``merchant_id``: subscribe, then load.

        Switching merchant tears the previous subscriptions down first.

        Raises:
            TransientIOError: If subscribing or the first load fails; the
                board is left closed
        """
        if merchant_id == self._merchant_id and (self.is_live or not listen):
            return

        await self.close()
        self._merchant_id = merchant_id

        try:
            if listen:
                listener = OrderChangeListener(
                    self.feed,
                    merchant_id,
                    on_change=self.load,
                    alert=self.alert,
                    coalesce_seconds=self.coalesce_seconds,
                )
                # Subscribe before loading so no write falls between the two
                await listener.start()
                self._listener = listener
            await self.load()
        except TransientIOError:
            await self.close()
            raise

    async def close(self) -> None:
        """Release the subscription pair and forget the merchant."""
        listener, self._listener = self._listener, None
        if listener is not None:
            await listener.stop()
        self._merchant_id = None
        self._orders = []

    async def __aenter__(self) -> "OrderBoard":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Display hooks
    # ------------------------------------------------------------------

    def add_observer(self, observer: BoardObserver) -> Callable[[], None]:
        """
        Register a callback run after every change of the order list.

        Returns:
            A function removing the observer again
        """
        self._observers.append(observer)

        def remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return remove

    def _notify(self) -> None:
        for observer in list(self._observers):
            try:
                observer(self)
            except Exception:
                logger.exception("Board observer failed")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def orders(self) -> tuple[BoardOrder, ...]:
        return tuple(self._orders)

    def find(self, order_id: str) -> Optional[BoardOrder]:
        for order in self._orders:
            if order.id == order_id:
                return order
        return None

    def orders_by_status(self, status: OrderStatus) -> list[BoardOrder]:
        status = OrderStatus(status)
        return [o for o in self._orders if o.status == status]

    @property
    def active_count(self) -> int:
        """Orders still waiting on the kitchen (pending + preparing)."""
        return sum(1 for o in self._orders if o.status in ACTIVE_STATUSES)

    def columns(self) -> dict[str, list[BoardOrder]]:
        return {status.value: self.orders_by_status(status) for status in BOARD_COLUMNS}

    def snapshot(self) -> BoardSnapshot:
        return BoardSnapshot(
            merchant_id=self._merchant_id or "",
            orders=list(self._orders),
            columns=self.columns(),
            active_count=self.active_count,
        )

    # ------------------------------------------------------------------
    # Backend round-trips
    # ------------------------------------------------------------------

    async def load(self) -> tuple[BoardOrder, ...]:
        """
        Replace the in-memory list with the backend's, newest first.

        Raises:
            TransientIOError: If the backend cannot be read
        """
        merchant_id = self._merchant_id
        if merchant_id is None:
            raise RuntimeError("Board is not open for any merchant")

        orders = await self.backend.list_orders(merchant_id)

        if merchant_id != self._merchant_id:
            logger.debug(f"Discarding orders of {merchant_id}: board switched merchant")
            return self.orders

        self._orders = list(orders)
        self._notify()
        return self.orders

    async def _current(self, order_id: str) -> BoardOrder:
        order = self.find(order_id)
        if order is not None:
            return order
        order = await self.backend.get_order(order_id)
        if order is None or order.merchant_id != self._merchant_id:
            raise OrderNotFoundError(order_id)
        return order

    async def update_status(self, order_id: str, new_status: OrderStatus) -> bool:
        """
        Move an order to ``new_status`` optimistically.

        Returns:
            True if the transition was committed, False if the order is
            already terminal (nothing changes)

        Raises:
            InvalidTransitionError: ``new_status`` skips or reverses the pipeline,
                or another writer moved the stored order on meanwhile
            OrderNotFoundError: Unknown order
            TransientIOError: Backend failure; the board has been rolled back
        """
        new_status = OrderStatus(new_status)
        current = await self._current(order_id)

        if is_terminal(current.status):
            logger.info(f"Order {order_id} is already {current.status.value}; nothing to do")
            return False
        if not can_transition(current.status, new_status):
            raise InvalidTransitionError(order_id, current.status.value, new_status.value)

        snapshot = self._orders
        patched = apply_status(snapshot, order_id, new_status)
        self._orders = patched
        self._notify()

        try:
            await self.backend.update_order_status(order_id, new_status, expected=current.status)
        except TablesideError as e:
            if self._orders is patched:
                self._orders = snapshot
            else:
                # Reloaded meanwhile: only undo this order's patch
                self._orders = revert_order(self._orders, current, new_status)
            self._notify()
            logger.warning(
                f"Status update {current.status.value} → {new_status.value} failed for "
                f"order {order_id}, rolled back: {e}"
            )
            if isinstance(e, InvalidTransitionError):
                # Someone else moved the order first; show what they stored
                try:
                    await self.load()
                except TransientIOError as reload_error:
                    logger.warning(f"Reload after rejected update of order {order_id} failed: {reload_error}")
            raise

        try:
            await self.load()
        except TransientIOError as e:
            logger.warning(f"Order {order_id} updated but reload failed: {e}")
        return True

    async def advance(self, order_id: str) -> Optional[OrderStatus]:
        """
        Move an order to its single legal successor.

        Returns:
            The new status, or None if the order is terminal
        """
        current = await self._current(order_id)
        target = next_status(current.status)
        if target is None:
            logger.info(f"Order {order_id} is already {current.status.value}; nothing to do")
            return None
        if not await self.update_status(order_id, target):
            return None
        return target


# =============================================================================
# REGISTRY
# =============================================================================

class BoardRegistry:
    """
    One live board per merchant, shared by every connected staff display.

    Boards are opened on first ``acquire`` and closed when the last holder
    releases them, so each active merchant has exactly one subscription
    pair.
    """

    def __init__(
        self,
        backend: BaseOrderBackend,
        feed: BaseChangeFeed,
        alert: Optional[BaseAlertService] = None,
        coalesce_seconds: Optional[float] = None,
    ):
        self.backend = backend
        self.feed = feed
        self.alert = alert
        self.coalesce_seconds = coalesce_seconds
        self._boards: dict[str, OrderBoard] = {}
        self._refs: Counter = Counter()
        self._lock = asyncio.Lock()

    def _new_board(self) -> OrderBoard:
        return OrderBoard(self.backend, self.feed, alert=self.alert, coalesce_seconds=self.coalesce_seconds)

    def get(self, merchant_id: str) -> Optional[OrderBoard]:
        return self._boards.get(merchant_id)

    @property
    def open_merchants(self) -> list[str]:
        return list(self._boards)

    async def acquire(self, merchant_id: str) -> OrderBoard:
        async with self._lock:
            board = self._boards.get(merchant_id)
            if board is None:
                board = self._new_board()
                await board.open(merchant_id)
                self._boards[merchant_id] = board
                logger.info(f"Board opened for merchant {merchant_id}")
            self._refs[merchant_id] += 1
            return board

    async def release(self, merchant_id: str) -> None:
        async with self._lock:
            if self._refs[merchant_id] <= 0:
                return
            self._refs[merchant_id] -= 1
            if self._refs[merchant_id] == 0:
                del self._refs[merchant_id]
                board = self._boards.pop(merchant_id, None)
                if board is not None:
                    await board.close()
                    logger.info(f"Board closed for merchant {merchant_id}")

    @asynccontextmanager
    async def live(self, merchant_id: str) -> AsyncIterator[OrderBoard]:
        """Hold a live board for the duration of the block."""
        board = await self.acquire(merchant_id)
        try:
            yield board
        finally:
            await self.release(merchant_id)

    @asynccontextmanager
    async def borrow(self, merchant_id: str) -> AsyncIterator[OrderBoard]:
        """
        Use the live board if one is open, else a short-lived board that
        loads once and never subscribes.
        """
        async with self._lock:
            live = self._boards.get(merchant_id)
            if live is not None:
                self._refs[merchant_id] += 1

        if live is not None:
            try:
                yield live
            finally:
                await self.release(merchant_id)
            return

        board = self._new_board()
        await board.open(merchant_id, listen=False)
        try:
            yield board
        finally:
            await board.close()

    async def close_all(self) -> None:
        async with self._lock:
            boards, self._boards = self._boards, {}
            self._refs.clear()
        for board in boards.values():
            await board.close()
