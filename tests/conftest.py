import asyncio
import os

import pytest

# Test configuration: no database, no Redis, no bell
os.environ["ENV_MODE"] = "development"
os.environ["ORDER_BACKEND"] = "memory"
os.environ["ALERT_ENABLED"] = "false"
os.environ["CART_KEY_PREFIX"] = ""

from tableside.schemas import CartItemIn
from tableside.services.alerts.mock import LoggingAlertService
from tableside.services.backend.base import NewOrderLine
from tableside.services.backend.memory import InMemoryOrderBackend
from tableside.services.board import BoardRegistry, OrderBoard
from tableside.services.cart import CartStore
from tableside.services.realtime.memory import InMemoryChangeFeed
from tableside.services.storage.memory import MemoryKeyValueStore

MERCHANT = "merchant-1"
OTHER_MERCHANT = "merchant-2"

# Short enough to keep the suite fast, long enough to merge a checkout burst
COALESCE = 0.02


async def settle(seconds: float = 0.1) -> None:
    """Let published events be delivered and coalesced reloads finish."""
    await asyncio.sleep(seconds)


async def place_order(backend, merchant_id=MERCHANT, table_id=None, lines=None):
    """Create an order straight on the backend, bypassing the cart."""
    lines = lines or [NewOrderLine(item_id="burger", item_name="Burger", quantity=1, unit_price=12.5)]
    total = round(sum(line.quantity * line.unit_price for line in lines), 2)
    return await backend.create_order(merchant_id, table_id, total, lines)


@pytest.fixture
def feed():
    return InMemoryChangeFeed()


@pytest.fixture
def backend(feed):
    return InMemoryOrderBackend(feed=feed)


@pytest.fixture
def table(backend):
    return backend.add_table(MERCHANT, "12")


@pytest.fixture
def storage():
    return MemoryKeyValueStore()


@pytest.fixture
def cart(storage):
    return CartStore(storage, merchant_id=MERCHANT)


@pytest.fixture
def alert():
    return LoggingAlertService()


@pytest.fixture
def burger():
    return CartItemIn(item_id="burger", name="Burger", unit_price=12.50)


@pytest.fixture
def fries():
    return CartItemIn(item_id="fries", name="Fries", unit_price=3.25)


@pytest.fixture
async def board(backend, feed, alert):
    board = OrderBoard(backend, feed, alert=alert, coalesce_seconds=COALESCE)
    yield board
    await board.close()


@pytest.fixture
async def registry(backend, feed, alert):
    registry = BoardRegistry(backend, feed, alert=alert, coalesce_seconds=COALESCE)
    yield registry
    await registry.close_all()
