"""
Order Submission

Turns a diner's cart into a persisted order for a table.

Flow:
    1. Reject empty carts and missing table labels before any write
    2. Resolve the table label (unknown labels are tolerated)
    3. Persist the order and its lines in one backend transaction
    4. Clear the cart only once the write succeeded

Cart storage is blocking (file lock or sync Redis), so its calls run in
the threadpool.
"""

import logging
from typing import Optional

from starlette.concurrency import run_in_threadpool

from tableside.exceptions import CartValidationError
from tableside.schemas import BoardOrder
from tableside.services.backend.base import BaseOrderBackend, NewOrderLine
from tableside.services.cart import CartStore

logger = logging.getLogger(__name__)


class CheckoutService:
    """Submits carts against the order backend."""

    def __init__(self, backend: BaseOrderBackend):
        self.backend = backend

    async def checkout(
        self,
        cart: CartStore,
        merchant_id: str,
        table_label: Optional[str],
    ) -> BoardOrder:
        """
        Submit ``cart`` as a new ``pending`` order.

        Raises:
            CartValidationError: Empty cart or no table label; nothing written
            TransientIOError: Backend failure; the cart is left intact for retry
        """
        if cart.is_empty:
            raise CartValidationError("Cannot check out an empty cart")

        label = (table_label or "").strip()
        if not label:
            raise CartValidationError("A table number is required to place an order")

        if cart.merchant_id != merchant_id:
            await run_in_threadpool(cart.switch_merchant, merchant_id)
            if cart.is_empty:
                raise CartValidationError("Cannot check out an empty cart")

        table = await self.backend.find_table(merchant_id, label)
        if table is None:
            logger.warning(f"Table {label!r} not found for merchant {merchant_id}; ordering without table")

        lines = [
            NewOrderLine(
                item_id=line.item_id,
                item_name=line.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for line in cart.lines
        ]

        order = await self.backend.create_order(
            merchant_id=merchant_id,
            table_id=table.id if table else None,
            total_price=cart.total_price,
            lines=lines,
        )

        await run_in_threadpool(cart.clear)
        logger.info(
            f"Checkout complete: order {order.id} for table {label} "
            f"({sum(line.quantity for line in lines)} item(s), ${order.total_price:.2f})"
        )
        return order
