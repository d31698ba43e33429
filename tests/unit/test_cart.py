"""
Unit tests for the cart store.
"""

import random

import pytest

from tableside.exceptions import StorageError
from tableside.schemas import CartItemIn
from tableside.services.cart import CartStore, cart_key
from tableside.services.storage.memory import MemoryKeyValueStore
from tests.conftest import MERCHANT, OTHER_MERCHANT


class FlakyStore(MemoryKeyValueStore):
    """Store whose writes fail."""

    def set(self, key, value):
        raise StorageError("disk full")


class TestCartKey:

    def test_per_merchant_key(self):
        assert cart_key("abc") == "cart_abc"

    def test_session_and_prefix(self):
        assert cart_key("abc", session_id="s1", prefix="ts:") == "ts:s1:cart_abc"


class TestMutations:

    def test_add_new_item_starts_at_one(self, cart, burger):
        line = cart.add(burger)

        assert line.quantity == 1
        assert cart.total_items == 1
        assert cart.total_price == 12.50

    def test_add_existing_item_increments(self, cart, burger):
        cart.add(burger)
        cart.add(burger)

        assert len(cart.lines) == 1
        assert cart.quantity_of("burger") == 2
        assert cart.total_price == 25.0

    def test_remove_decrements(self, cart, burger):
        cart.add(burger)
        cart.add(burger)

        line = cart.remove("burger")

        assert line.quantity == 1
        assert cart.total_items == 1

    def test_remove_last_unit_drops_line(self, cart, burger, fries):
        cart.add(burger)
        cart.add(fries)

        assert cart.remove("burger") is None

        assert [line.item_id for line in cart.lines] == ["fries"]
        assert cart.quantity_of("burger") == 0

    def test_remove_unknown_item_is_noop(self, cart, burger):
        cart.add(burger)

        assert cart.remove("nope") is None
        assert cart.total_items == 1

    def test_clear(self, cart, storage, burger):
        cart.add(burger)
        cart.clear()

        assert cart.is_empty
        assert cart.total_price == 0
        assert storage.get(cart.key) is None

    def test_totals_over_several_lines(self, cart, burger, fries):
        cart.add(burger)
        cart.add(fries)
        cart.add(fries)

        assert cart.total_items == 3
        assert cart.total_price == pytest.approx(19.0)

    def test_lines_keep_insertion_order(self, cart, burger, fries):
        cart.add(fries)
        cart.add(burger)
        cart.add(fries)

        assert [line.item_id for line in cart.lines] == ["fries", "burger"]


class TestPersistence:

    def test_survives_reload(self, storage, cart, burger, fries):
        cart.add(burger)
        cart.add(fries)
        cart.add(fries)

        reloaded = CartStore(storage, merchant_id=MERCHANT)

        assert [(l.item_id, l.quantity) for l in reloaded.lines] == [("burger", 1), ("fries", 2)]
        assert reloaded.total_price == cart.total_price

    def test_carts_are_per_merchant(self, storage, cart, burger, fries):
        cart.add(burger)

        cart.switch_merchant(OTHER_MERCHANT)
        assert cart.is_empty
        cart.add(fries)

        cart.switch_merchant(MERCHANT)
        assert [line.item_id for line in cart.lines] == ["burger"]

    def test_switch_does_not_overwrite_target_cart(self, storage, burger, fries):
        CartStore(storage, merchant_id=OTHER_MERCHANT).add(fries)

        cart = CartStore(storage, merchant_id=MERCHANT)
        cart.add(burger)
        cart.switch_merchant(OTHER_MERCHANT)

        assert [line.item_id for line in cart.lines] == ["fries"]

    def test_sessions_are_isolated(self, storage, burger):
        CartStore(storage, merchant_id=MERCHANT, session_id="a").add(burger)

        assert CartStore(storage, merchant_id=MERCHANT, session_id="b").is_empty

    def test_malformed_payload_is_empty(self, burger):
        storage = MemoryKeyValueStore({cart_key(MERCHANT): "{not json"})

        cart = CartStore(storage, merchant_id=MERCHANT)
        assert cart.is_empty

        cart.add(burger)
        assert CartStore(storage, merchant_id=MERCHANT).total_items == 1

    def test_write_failure_keeps_memory_state(self, burger):
        cart = CartStore(FlakyStore(), merchant_id=MERCHANT)

        cart.add(burger)

        assert cart.total_items == 1

    def test_no_merchant_no_key(self, storage, burger):
        cart = CartStore(storage)
        cart.add(burger)

        assert cart.key is None
        assert storage.keys() == []


MENU = [
    CartItemIn(item_id="burger", name="Burger", unit_price=12.50),
    CartItemIn(item_id="fries", name="Fries", unit_price=3.25),
    CartItemIn(item_id="cola", name="Cola", unit_price=2.00),
]


class TestRandomSequences:

    @pytest.mark.parametrize("seed", range(20))
    def test_totals_track_quantities(self, storage, seed):
        rng = random.Random(seed)
        cart = CartStore(storage, merchant_id=MERCHANT)
        expected = {item.item_id: 0 for item in MENU}

        for _ in range(60):
            item = rng.choice(MENU)
            if rng.random() < 0.55:
                cart.add(item)
                expected[item.item_id] += 1
            else:
                cart.remove(item.item_id)
                expected[item.item_id] = max(expected[item.item_id] - 1, 0)

            quantities = [line.quantity for line in cart.lines]
            assert all(q > 0 for q in quantities)
            assert cart.total_items == sum(quantities) == sum(expected.values())
            assert cart.total_items >= 0
            assert cart.total_price == pytest.approx(
                sum(expected[i.item_id] * i.unit_price for i in MENU)
            )

        assert CartStore(storage, merchant_id=MERCHANT).total_items == cart.total_items
