"""
Integration tests for the staff order board and its registry.
"""

import asyncio

import pytest

from tableside.exceptions import InvalidTransitionError, OrderNotFoundError, TransientIOError
from tableside.models import OrderStatus
from tableside.services.board import OrderBoard, apply_status, revert_order
from tests.conftest import COALESCE, MERCHANT, OTHER_MERCHANT, place_order, settle


class TestListOperations:

    async def test_apply_status_returns_new_list(self, backend):
        first = await place_order(backend)
        second = await place_order(backend)
        orders = [second, first]

        patched = apply_status(orders, first.id, OrderStatus.PREPARING)

        assert patched is not orders
        assert orders[1].status == OrderStatus.PENDING
        assert patched[1].status == OrderStatus.PREPARING
        assert patched[0] is second

    async def test_revert_only_touches_patched_entry(self, backend):
        order = await place_order(backend)
        patched = apply_status([order], order.id, OrderStatus.PREPARING)

        assert revert_order(patched, order, OrderStatus.PREPARING) == [order]
        # Already moved on by someone else: leave it
        served = apply_status(patched, order.id, OrderStatus.SERVED)
        assert revert_order(served, order, OrderStatus.PREPARING) == served


class TestOpenAndLoad:

    async def test_open_loads_newest_first(self, board, backend, table):
        older = await place_order(backend, table_id=table.id)
        newer = await place_order(backend)

        await board.open(MERCHANT)

        assert [o.id for o in board.orders] == [newer.id, older.id]
        assert board.orders[1].table_label == "12"
        assert board.is_live

    async def test_load_is_idempotent(self, board, backend):
        await place_order(backend)
        await board.open(MERCHANT)

        first = board.orders
        second = await board.load()

        assert first == second

    async def test_only_own_merchant(self, board, backend):
        await place_order(backend, merchant_id=OTHER_MERCHANT)
        mine = await place_order(backend)

        await board.open(MERCHANT)

        assert [o.id for o in board.orders] == [mine.id]

    async def test_switching_merchant_swaps_subscriptions(self, board, feed, backend):
        await place_order(backend, merchant_id=OTHER_MERCHANT)
        await board.open(MERCHANT)
        await board.open(OTHER_MERCHANT)

        assert feed.subscriptions_for(MERCHANT) == []
        assert len(feed.subscriptions_for(OTHER_MERCHANT)) == 2
        assert board.merchant_id == OTHER_MERCHANT
        assert len(board.orders) == 1

    async def test_reopen_same_merchant_is_noop(self, board, feed, backend):
        await board.open(MERCHANT)
        await board.open(MERCHANT)

        assert feed.subscription_count == 2
        assert backend.calls["list_orders"] == 1

    async def test_failed_first_load_leaves_board_closed(self, board, feed, backend):
        backend.fail_on.add("list_orders")

        with pytest.raises(TransientIOError):
            await board.open(MERCHANT)

        assert feed.subscription_count == 0
        assert board.merchant_id is None

    async def test_close_releases_subscriptions(self, backend, feed):
        async with OrderBoard(backend, feed, coalesce_seconds=COALESCE) as board:
            await board.open(MERCHANT)
            assert feed.subscription_count == 2

        assert feed.subscription_count == 0
        assert board.orders == ()

    async def test_readers_get_copies(self, board, backend):
        await place_order(backend)
        await board.open(MERCHANT)

        board.orders_by_status(OrderStatus.PENDING).clear()
        board.columns()["pending"].clear()

        assert len(board.orders) == 1


class TestRealtime:

    async def test_new_order_appears_under_pending(self, board, backend, alert):
        await board.open(MERCHANT)
        reloads = backend.calls["list_orders"]

        order = await place_order(backend)
        await settle()

        assert backend.calls["list_orders"] == reloads + 1
        assert [o.id for o in board.orders_by_status(OrderStatus.PENDING)] == [order.id]
        assert board.active_count == 1
        assert alert.plays == [MERCHANT]

    async def test_other_merchant_orders_do_not_reload(self, board, backend):
        await board.open(MERCHANT)
        reloads = backend.calls["list_orders"]

        await place_order(backend, merchant_id=OTHER_MERCHANT)
        await settle()

        assert backend.calls["list_orders"] == reloads
        assert board.orders == ()

    async def test_observer_sees_every_change(self, board, backend):
        seen = []
        remove = board.add_observer(lambda b: seen.append(len(b.orders)))

        await board.open(MERCHANT)
        await place_order(backend)
        await settle()
        remove()
        await place_order(backend)
        await settle()

        assert seen == [0, 1]

    async def test_failing_observer_is_isolated(self, board, backend):
        def broken(_board):
            raise RuntimeError("render failed")

        board.add_observer(broken)
        await place_order(backend)

        await board.open(MERCHANT)

        assert len(board.orders) == 1


class TestStatusUpdates:

    async def test_update_commits_and_reloads(self, board, backend):
        order = await place_order(backend)
        await board.open(MERCHANT)

        assert await board.update_status(order.id, OrderStatus.PREPARING) is True

        assert board.find(order.id).status == OrderStatus.PREPARING
        assert backend.orders_of(MERCHANT)[0].status == OrderStatus.PREPARING

    async def test_optimistic_patch_is_visible_before_commit(self, board, backend):
        order = await place_order(backend)
        await board.open(MERCHANT)
        backend.latency = 0.05
        statuses = []
        board.add_observer(lambda b: statuses.append(b.find(order.id).status))

        await board.update_status(order.id, OrderStatus.PREPARING)

        assert statuses[0] == OrderStatus.PREPARING

    async def test_backend_failure_rolls_back(self, board, backend):
        order = await place_order(backend)
        await board.open(MERCHANT)
        backend.fail_on.add("update_order_status")
        before = board.orders

        with pytest.raises(TransientIOError):
            await board.update_status(order.id, OrderStatus.PREPARING)

        assert board.orders == before
        assert board.find(order.id).status == OrderStatus.PENDING

    async def test_rollback_keeps_concurrent_update(self, board, backend):
        first = await place_order(backend)
        second = await place_order(backend)
        await board.open(MERCHANT)

        backend.latency = 0.02
        original_update = backend.update_order_status

        async def update(order_id, status, expected=None):
            if order_id == first.id:
                raise TransientIOError("backend down")
            return await original_update(order_id, status, expected=expected)

        backend.update_order_status = update

        async def failing():
            await asyncio.sleep(0.01)
            await board.update_status(first.id, OrderStatus.PREPARING)

        results = await asyncio.gather(
            board.update_status(second.id, OrderStatus.PREPARING),
            failing(),
            return_exceptions=True,
        )

        assert results[0] is True
        assert isinstance(results[1], TransientIOError)
        assert board.find(first.id).status == OrderStatus.PENDING
        assert board.find(second.id).status == OrderStatus.PREPARING

    async def test_paid_order_is_left_alone(self, board, backend):
        order = await place_order(backend)
        for status in ("preparing", "served", "paid"):
            await backend.update_order_status(order.id, status)
        await board.open(MERCHANT)
        before = board.orders
        updates = backend.calls["update_order_status"]

        assert await board.update_status(order.id, OrderStatus.PAID) is False
        assert await board.advance(order.id) is None

        assert board.orders == before
        assert backend.calls["update_order_status"] == updates

    @pytest.mark.parametrize("target", [OrderStatus.SERVED, OrderStatus.PAID, OrderStatus.PENDING])
    async def test_illegal_transition(self, board, backend, target):
        order = await place_order(backend)
        await board.open(MERCHANT)

        with pytest.raises(InvalidTransitionError):
            await board.update_status(order.id, target)

        assert backend.calls["update_order_status"] == 0

    async def test_advance_walks_pipeline(self, board, backend):
        order = await place_order(backend)
        await board.open(MERCHANT)

        steps = [await board.advance(order.id) for _ in range(4)]

        assert steps == [OrderStatus.PREPARING, OrderStatus.SERVED, OrderStatus.PAID, None]
        assert board.active_count == 0
        assert board.columns() == {"pending": [], "preparing": [], "served": []}

    async def test_unknown_order(self, board, backend):
        await board.open(MERCHANT)

        with pytest.raises(OrderNotFoundError):
            await board.update_status("missing", OrderStatus.PREPARING)

    async def test_order_of_other_merchant_is_unknown(self, board, backend):
        foreign = await place_order(backend, merchant_id=OTHER_MERCHANT)
        await board.open(MERCHANT)

        with pytest.raises(OrderNotFoundError):
            await board.advance(foreign.id)

    async def test_order_created_after_load(self, backend, feed):
        board = OrderBoard(backend, feed, coalesce_seconds=10)
        await board.open(MERCHANT)
        order = await place_order(backend)

        assert await board.advance(order.id) == OrderStatus.PREPARING
        assert board.find(order.id).status == OrderStatus.PREPARING
        await board.close()


    async def test_stale_board_cannot_reverse_order(self, backend, feed):
        order = await place_order(backend)
        kitchen = OrderBoard(backend, feed, coalesce_seconds=COALESCE)
        counter = OrderBoard(backend, feed, coalesce_seconds=COALESCE)
        await kitchen.open(MERCHANT, listen=False)
        await counter.open(MERCHANT, listen=False)

        await kitchen.advance(order.id)
        await kitchen.advance(order.id)
        assert counter.find(order.id).status == OrderStatus.PENDING

        with pytest.raises(InvalidTransitionError):
            await counter.update_status(order.id, OrderStatus.PREPARING)

        assert backend.orders_of(MERCHANT)[0].status == OrderStatus.SERVED
        assert counter.find(order.id).status == OrderStatus.SERVED
        await kitchen.close()
        await counter.close()


class TestRegistry:

    async def test_shared_board_and_refcount(self, registry, feed):
        first = await registry.acquire(MERCHANT)
        second = await registry.acquire(MERCHANT)

        assert first is second
        assert feed.subscription_count == 2

        await registry.release(MERCHANT)
        assert registry.get(MERCHANT) is first

        await registry.release(MERCHANT)
        assert registry.get(MERCHANT) is None
        assert feed.subscription_count == 0

    async def test_one_board_per_merchant(self, registry, feed):
        async with registry.live(MERCHANT), registry.live(OTHER_MERCHANT):
            assert sorted(registry.open_merchants) == [MERCHANT, OTHER_MERCHANT]
            assert feed.subscription_count == 4

        assert registry.open_merchants == []

    async def test_borrow_without_live_board_does_not_subscribe(self, registry, feed, backend):
        await place_order(backend)

        async with registry.borrow(MERCHANT) as board:
            assert len(board.orders) == 1
            assert feed.subscription_count == 0

        assert registry.open_merchants == []

    async def test_borrow_reuses_live_board(self, registry):
        live = await registry.acquire(MERCHANT)

        async with registry.borrow(MERCHANT) as board:
            assert board is live

        assert registry.get(MERCHANT) is live

    async def test_close_all(self, registry, feed):
        await registry.acquire(MERCHANT)
        await registry.acquire(OTHER_MERCHANT)

        await registry.close_all()

        assert feed.subscription_count == 0
        assert registry.open_merchants == []
