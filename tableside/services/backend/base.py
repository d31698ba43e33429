"""
Order Backend Abstract Base Class

Interface to the persistent store of tables and orders. The ordering
services never talk to the database directly; they go through this
contract so the store can be swapped (SQLAlchemy in production, in-memory
for tests and simulations).

Every committed write is announced on the change feed so open staff boards
reload.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from tableside.exceptions import TransientIOError
from tableside.models import OrderStatus
from tableside.schemas import BoardOrder, TableResponse
from tableside.services.realtime.base import BaseChangeFeed, ChangeEvent, ChangeKind, ChangeTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewOrderLine:
    """
    Line item to persist with a new order.

    Attributes:
        unit_price: Price at order time, copied from the cart
    """
    item_id: str
    item_name: str
    quantity: int
    unit_price: float


class BaseOrderBackend(ABC):
    """
    Abstract base class for order persistence.

    Implementations raise TransientIOError for any storage failure and
    OrderNotFoundError when an update targets an unknown order.
    """

    def __init__(self, feed: Optional[BaseChangeFeed] = None):
        self.feed = feed

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def list_tables(self, merchant_id: str) -> list[TableResponse]:
        """All tables of a merchant, ordered by label."""
        pass

    @abstractmethod
    async def find_table(self, merchant_id: str, label: str) -> Optional[TableResponse]:
        """Resolve a human-facing table label, or None when unknown."""
        pass

    @abstractmethod
    async def list_orders(self, merchant_id: str) -> list[BoardOrder]:
        """All orders of a merchant with lines and table label, newest first."""
        pass

    @abstractmethod
    async def get_order(self, order_id: str) -> Optional[BoardOrder]:
        """Single order with lines and table label."""
        pass

    @abstractmethod
    async def create_order(
        self,
        merchant_id: str,
        table_id: Optional[str],
        total_price: float,
        lines: Sequence[NewOrderLine],
    ) -> BoardOrder:
        """
        Persist an order in status ``pending`` together with its lines.

        The order and its lines are written atomically: either both exist
        afterwards or neither does.
        """
        pass

    @abstractmethod
    async def update_order_status(
        self,
        order_id: str,
        status: OrderStatus,
        expected: Optional[OrderStatus] = None,
    ) -> BoardOrder:
        """
        Set the status column of one order.

        With ``expected`` the write is conditional: it only applies while the
        stored status still equals ``expected``.

        Raises:
            OrderNotFoundError: Unknown order
            InvalidTransitionError: The stored status is no longer ``expected``
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check store connectivity."""
        pass

    # ------------------------------------------------------------------
    # Change announcements
    # ------------------------------------------------------------------

    async def _announce(self, events: Sequence[ChangeEvent]) -> None:
        """
        Publish change events after a commit.

        The write already succeeded, so a publish failure is logged rather
        than raised; boards catch up on their next reload.
        """
        if self.feed is None:
            return
        for event in events:
            try:
                await self.feed.publish(event)
            except TransientIOError as e:
                logger.error(f"Could not announce {event.table.value} {event.kind.value} {event.record_id}: {e}")

    @staticmethod
    def _order_created_events(order: BoardOrder, line_ids: Sequence[str]) -> list[ChangeEvent]:
        events = [ChangeEvent(ChangeTable.ORDERS, ChangeKind.INSERT, order.merchant_id, order.id)]
        events.extend(
            ChangeEvent(ChangeTable.ORDER_LINES, ChangeKind.INSERT, order.merchant_id, line_id)
            for line_id in line_ids
        )
        return events

    @staticmethod
    def _order_updated_event(order: BoardOrder) -> ChangeEvent:
        return ChangeEvent(ChangeTable.ORDERS, ChangeKind.UPDATE, order.merchant_id, order.id)
