"""
Order Status Machine

Strictly linear pipeline: pending → preparing → served → paid.
No skipping, no reverse transitions, no cancellation branch; ``paid`` is
terminal.
"""

from typing import Optional

from tableside.models import OrderStatus

NEXT_STATUS: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.SERVED,
    OrderStatus.SERVED: OrderStatus.PAID,
}

# Statuses that still need kitchen attention
ACTIVE_STATUSES = (OrderStatus.PENDING, OrderStatus.PREPARING)

# Columns rendered on the live board, in display order
BOARD_COLUMNS = (OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.SERVED)


def next_status(status: OrderStatus) -> Optional[OrderStatus]:
    """Return the single legal successor, or None for a terminal status."""
    return NEXT_STATUS.get(OrderStatus(status))


def is_terminal(status: OrderStatus) -> bool:
    return next_status(status) is None


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return next_status(current) == OrderStatus(requested)
