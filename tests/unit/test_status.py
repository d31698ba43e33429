"""
Unit tests for the order status pipeline.
"""

import pytest

from tableside.models import OrderStatus
from tableside.services.status import NEXT_STATUS, can_transition, is_terminal, next_status


class TestNextStatus:

    def test_pipeline_order(self):
        status = OrderStatus.PENDING
        seen = [status]
        while next_status(status) is not None:
            status = next_status(status)
            seen.append(status)

        assert seen == [
            OrderStatus.PENDING,
            OrderStatus.PREPARING,
            OrderStatus.SERVED,
            OrderStatus.PAID,
        ]

    def test_paid_is_terminal(self):
        assert next_status(OrderStatus.PAID) is None
        assert is_terminal(OrderStatus.PAID)
        assert OrderStatus.PAID not in NEXT_STATUS

    def test_accepts_raw_values(self):
        assert next_status("pending") == OrderStatus.PREPARING


class TestCanTransition:

    @pytest.mark.parametrize("current,requested", [
        (OrderStatus.PENDING, OrderStatus.PREPARING),
        (OrderStatus.PREPARING, OrderStatus.SERVED),
        (OrderStatus.SERVED, OrderStatus.PAID),
    ])
    def test_forward_single_step(self, current, requested):
        assert can_transition(current, requested)

    @pytest.mark.parametrize("current,requested", [
        (OrderStatus.PENDING, OrderStatus.SERVED),
        (OrderStatus.PENDING, OrderStatus.PAID),
        (OrderStatus.SERVED, OrderStatus.PENDING),
        (OrderStatus.PREPARING, OrderStatus.PREPARING),
        (OrderStatus.PAID, OrderStatus.PENDING),
    ])
    def test_skips_and_reversals_rejected(self, current, requested):
        assert not can_transition(current, requested)
