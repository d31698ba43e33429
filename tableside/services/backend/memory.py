"""
In-Memory Order Backend

Dictionary-backed implementation of the order store for tests and
database-free simulations.

Behavior:
    - Every call yields to the event loop, like a network round-trip
    - ``fail_on`` makes named operations raise TransientIOError
    - ``failure_rate`` fails any operation at random (chaos runs)
    - ``calls`` counts invocations per operation
"""

import asyncio
import itertools
import logging
import random
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from tableside.exceptions import InvalidTransitionError, OrderNotFoundError, TransientIOError
from tableside.models import OrderStatus
from tableside.schemas import BoardOrder, OrderLineView, TableResponse
from tableside.services.backend.base import BaseOrderBackend, NewOrderLine
from tableside.services.realtime.base import BaseChangeFeed

logger = logging.getLogger(__name__)


class InMemoryOrderBackend(BaseOrderBackend):
    """
    Mock implementation of the order store.

    Attributes:
        fail_on: Operation names that currently raise TransientIOError
        failure_rate: Probability of a random failure (0.0-1.0)
        latency: Seconds each call sleeps
    """

    def __init__(
        self,
        feed: Optional[BaseChangeFeed] = None,
        failure_rate: float = 0.0,
        latency: float = 0.0,
        fail_on: Iterable[str] = (),
    ):
        super().__init__(feed)
        self.failure_rate = failure_rate
        self.latency = latency
        self.fail_on: set[str] = set(fail_on)
        self.calls: Counter = Counter()

        self._tables: dict[str, TableResponse] = {}
        self._orders: dict[str, BoardOrder] = {}
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count()
        self._line_ids = itertools.count(1)

        logger.info(f"InMemoryOrderBackend initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "memory"

    async def _call(self, operation: str) -> None:
        self.calls[operation] += 1
        await asyncio.sleep(self.latency)
        if operation in self.fail_on or (self.failure_rate and random.random() < self.failure_rate):
            logger.warning(f"Mock backend: {operation} failed (simulated)")
            raise TransientIOError(f"Simulated backend failure during {operation}")

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------

    def add_table(self, merchant_id: str, label: str) -> TableResponse:
        table = TableResponse(id=str(uuid.uuid4()), merchant_id=merchant_id, label=label)
        self._tables[table.id] = table
        return table

    def orders_of(self, merchant_id: str) -> list[BoardOrder]:
        """Stored orders without going through a (possibly failing) call."""
        return self._sorted(o for o in self._orders.values() if o.merchant_id == merchant_id)

    def _sorted(self, orders: Iterable[BoardOrder]) -> list[BoardOrder]:
        return sorted(orders, key=lambda o: (o.created_at, self._sequence[o.id]), reverse=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_tables(self, merchant_id: str) -> list[TableResponse]:
        await self._call("list_tables")
        return sorted(
            (t for t in self._tables.values() if t.merchant_id == merchant_id),
            key=lambda t: t.label,
        )

    async def find_table(self, merchant_id: str, label: str) -> Optional[TableResponse]:
        await self._call("find_table")
        for table in self._tables.values():
            if table.merchant_id == merchant_id and table.label == label:
                return table
        return None

    async def list_orders(self, merchant_id: str) -> list[BoardOrder]:
        await self._call("list_orders")
        return self.orders_of(merchant_id)

    async def get_order(self, order_id: str) -> Optional[BoardOrder]:
        await self._call("get_order")
        return self._orders.get(order_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_order(
        self,
        merchant_id: str,
        table_id: Optional[str],
        total_price: float,
        lines: Sequence[NewOrderLine],
    ) -> BoardOrder:
        await self._call("create_order")

        table = self._tables.get(table_id) if table_id else None
        order = BoardOrder(
            id=str(uuid.uuid4()),
            merchant_id=merchant_id,
            table_id=table_id,
            table_label=table.label if table else None,
            total_price=total_price,
            status=OrderStatus.PENDING,
            created_at=datetime.now(timezone.utc),
            lines=[
                OrderLineView(
                    item_id=line.item_id,
                    item_name=line.item_name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                for line in lines
            ],
        )
        self._orders[order.id] = order
        self._sequence[order.id] = next(self._counter)
        line_ids = [str(next(self._line_ids)) for _ in lines]

        logger.info(f"Mock backend: order {order.id} created (${total_price:.2f}, {len(lines)} line(s))")
        await self._announce(self._order_created_events(order, line_ids))
        return order

    async def update_order_status(
        self,
        order_id: str,
        status: OrderStatus,
        expected: Optional[OrderStatus] = None,
    ) -> BoardOrder:
        await self._call("update_order_status")

        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if expected is not None and order.status != OrderStatus(expected):
            raise InvalidTransitionError(order_id, order.status.value, OrderStatus(status).value)

        order = order.model_copy(update={"status": OrderStatus(status)})
        self._orders[order_id] = order

        await self._announce([self._order_updated_event(order)])
        return order

    async def health_check(self) -> bool:
        return True
