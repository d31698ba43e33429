"""
Integration tests for the SQLAlchemy order backend on SQLite (aiosqlite).
"""

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tableside.database import init_db
from tableside.exceptions import InvalidTransitionError, OrderNotFoundError, TransientIOError
from tableside.models import DiningTable, Merchant, Order, OrderLine, OrderStatus
from tableside.services.backend.base import NewOrderLine
from tableside.services.backend.sql import SqlOrderBackend
from tableside.services.board import OrderBoard
from tableside.services.realtime.base import ChangeKind, ChangeTable
from tests.conftest import COALESCE, settle

LINES = [
    NewOrderLine("burger", "Burger", 1, 12.5),
    NewOrderLine("fries", "Fries", 2, 3.25),
]


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tableside.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def merchant(session_maker):
    async with session_maker() as session:
        merchant = Merchant(name="Chez Test", slug="chez-test")
        session.add(merchant)
        await session.flush()
        session.add_all([
            DiningTable(merchant_id=merchant.id, label="12"),
            DiningTable(merchant_id=merchant.id, label="3"),
        ])
        await session.commit()
        return merchant.id


@pytest.fixture
def sql_backend(session_maker, feed):
    return SqlOrderBackend(session_maker, feed=feed)


async def count_rows(session_maker, model):
    async with session_maker() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestTables:

    async def test_list_and_find(self, sql_backend, merchant):
        tables = await sql_backend.list_tables(merchant)

        assert sorted(t.label for t in tables) == ["12", "3"]
        assert (await sql_backend.find_table(merchant, "12")).label == "12"
        assert await sql_backend.find_table(merchant, "99") is None


class TestCreateOrder:

    async def test_order_with_lines(self, sql_backend, merchant):
        table = await sql_backend.find_table(merchant, "12")

        order = await sql_backend.create_order(merchant, table.id, 19.0, LINES)

        assert order.status == OrderStatus.PENDING
        assert order.table_label == "12"
        assert [(l.item_id, l.quantity, l.unit_price) for l in order.lines] == [
            ("burger", 1, 12.5),
            ("fries", 2, 3.25),
        ]
        assert (await sql_backend.get_order(order.id)) == order

    async def test_announces_after_commit(self, sql_backend, merchant, feed):
        order = await sql_backend.create_order(merchant, None, 19.0, LINES)

        assert [(e.table, e.kind) for e in feed.history] == [
            (ChangeTable.ORDERS, ChangeKind.INSERT),
            (ChangeTable.ORDER_LINES, ChangeKind.INSERT),
            (ChangeTable.ORDER_LINES, ChangeKind.INSERT),
        ]
        assert feed.history[0].record_id == order.id

    async def test_line_failure_writes_nothing(self, sql_backend, merchant, session_maker, feed):
        broken = [LINES[0], NewOrderLine("mystery", None, 1, 1.0)]

        with pytest.raises(TransientIOError):
            await sql_backend.create_order(merchant, None, 13.5, broken)

        assert await count_rows(session_maker, Order) == 0
        assert await count_rows(session_maker, OrderLine) == 0
        assert feed.history == []


class TestListAndUpdate:

    async def test_newest_first_per_merchant(self, sql_backend, merchant, session_maker):
        async with session_maker() as session:
            other = Merchant(name="Elsewhere", slug="elsewhere")
            session.add(other)
            await session.commit()

        older = await sql_backend.create_order(merchant, None, 12.5, LINES[:1])
        await asyncio.sleep(0.01)
        newer = await sql_backend.create_order(merchant, None, 6.5, LINES[1:])
        await sql_backend.create_order(other.id, None, 1.0, LINES[:1])

        orders = await sql_backend.list_orders(merchant)

        assert [o.id for o in orders] == [newer.id, older.id]

    async def test_update_status(self, sql_backend, merchant, feed):
        order = await sql_backend.create_order(merchant, None, 12.5, LINES[:1])

        updated = await sql_backend.update_order_status(order.id, OrderStatus.PREPARING)

        assert updated.status == OrderStatus.PREPARING
        assert (await sql_backend.get_order(order.id)).status == OrderStatus.PREPARING
        assert (feed.history[-1].table, feed.history[-1].kind) == (ChangeTable.ORDERS, ChangeKind.UPDATE)

    async def test_update_unknown_order(self, sql_backend, merchant):
        with pytest.raises(OrderNotFoundError):
            await sql_backend.update_order_status("missing", OrderStatus.PREPARING)

    async def test_conditional_update_applies_when_status_matches(self, sql_backend, merchant):
        order = await sql_backend.create_order(merchant, None, 12.5, LINES[:1])

        updated = await sql_backend.update_order_status(
            order.id, OrderStatus.PREPARING, expected=OrderStatus.PENDING
        )

        assert updated.status == OrderStatus.PREPARING

    async def test_conditional_update_rejects_stale_status(self, sql_backend, merchant, feed):
        order = await sql_backend.create_order(merchant, None, 12.5, LINES[:1])
        await sql_backend.update_order_status(order.id, OrderStatus.PREPARING)
        await sql_backend.update_order_status(order.id, OrderStatus.SERVED)
        published = len(feed.history)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await sql_backend.update_order_status(
                order.id, OrderStatus.PREPARING, expected=OrderStatus.PENDING
            )

        assert exc_info.value.payload["current"] == "served"
        assert (await sql_backend.get_order(order.id)).status == OrderStatus.SERVED
        assert len(feed.history) == published

    async def test_health_check(self, sql_backend):
        assert await sql_backend.health_check()


class TestBoardOnDatabase:

    async def test_board_follows_database(self, sql_backend, merchant, feed):
        table = await sql_backend.find_table(merchant, "3")
        board = OrderBoard(sql_backend, feed, coalesce_seconds=COALESCE)
        await board.open(merchant)

        order = await sql_backend.create_order(merchant, table.id, 12.5, LINES[:1])
        await settle()

        assert [o.id for o in board.orders_by_status(OrderStatus.PENDING)] == [order.id]
        assert board.orders[0].table_label == "3"

        assert await board.advance(order.id) == OrderStatus.PREPARING
        assert board.active_count == 1
        await board.close()
