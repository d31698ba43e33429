"""
Cart Store

Per-merchant shopping cart held in memory and mirrored to a key-value
store after every mutation. Pure state transitions; the only I/O is the
synchronous persistence call.

Usage:
    cart = CartStore(get_cart_storage(), merchant_id="m-1")
    cart.add(CartItemIn(item_id="burger", name="Burger", unit_price=12.5))
    cart.total_price  # 12.5
"""

import logging
from typing import Optional, Union

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from tableside.core.config import get_settings
from tableside.exceptions import StorageError
from tableside.schemas import CartItemIn, CartLine, CartResponse
from tableside.services.storage.base import BaseKeyValueStore

logger = logging.getLogger(__name__)

_LINES_ADAPTER = TypeAdapter(list[CartLine])


def cart_key(merchant_id: str, session_id: Optional[str] = None, prefix: str = "") -> str:
    """Storage key of one merchant's cart, optionally per browsing session."""
    if session_id:
        return f"{prefix}{session_id}:cart_{merchant_id}"
    return f"{prefix}cart_{merchant_id}"


class CartStore:
    """
    Shopping cart for one merchant.

    Lines are kept in insertion order for display. A line's quantity is
    always at least 1; removing the last unit drops the line.

    Persistence only happens once the initial load for the current merchant
    has completed, so switching merchant never overwrites the new merchant's
    saved cart with the previous in-memory state.
    """

    def __init__(
        self,
        storage: BaseKeyValueStore,
        merchant_id: Optional[str] = None,
        session_id: Optional[str] = None,
        key_prefix: Optional[str] = None,
    ):
        self._storage = storage
        self._session_id = session_id
        self._prefix = get_settings().cart_key_prefix if key_prefix is None else key_prefix
        self._lines: dict[str, CartLine] = {}
        self._merchant_id: Optional[str] = None
        self._loaded = False

        if merchant_id:
            self.switch_merchant(merchant_id)

    # ------------------------------------------------------------------
    # Merchant context
    # ------------------------------------------------------------------

    @property
    def merchant_id(self) -> Optional[str]:
        return self._merchant_id

    @property
    def key(self) -> Optional[str]:
        if self._merchant_id is None:
            return None
        return cart_key(self._merchant_id, self._session_id, self._prefix)

    def switch_merchant(self, merchant_id: str) -> None:
        """Drop in-memory state and load the saved cart for ``merchant_id``."""
        self._loaded = False
        self._lines = {}
        self._merchant_id = merchant_id
        self._load()

    def _load(self) -> None:
        raw = None
        try:
            raw = self._storage.get(self.key)
        except StorageError as e:
            logger.warning(f"Could not read cart {self.key}, starting empty: {e}")

        self._lines = self._parse(raw)
        self._loaded = True
        logger.debug(f"Cart {self.key} loaded with {len(self._lines)} line(s)")

    def _parse(self, raw: Optional[str]) -> dict[str, CartLine]:
        if not raw:
            return {}
        try:
            lines = _LINES_ADAPTER.validate_json(raw)
        except (PydanticValidationError, ValueError) as e:
            logger.warning(f"Malformed cart payload under {self.key}, treating as empty: {e}")
            return {}

        parsed: dict[str, CartLine] = {}
        for line in lines:
            existing = parsed.get(line.item_id)
            if existing:
                line = existing.model_copy(update={"quantity": existing.quantity + line.quantity})
            parsed[line.item_id] = line
        return parsed

    def _persist(self) -> None:
        if not self._loaded or self._merchant_id is None:
            return
        payload = _LINES_ADAPTER.dump_json(list(self._lines.values())).decode("utf-8")
        try:
            self._storage.set(self.key, payload)
        except StorageError as e:
            logger.warning(f"Could not persist cart {self.key}: {e}")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, item: Union[CartItemIn, CartLine]) -> CartLine:
        """Add one unit of ``item``."""
        existing = self._lines.get(item.item_id)
        if existing:
            line = existing.model_copy(update={"quantity": existing.quantity + 1})
        else:
            line = CartLine(
                item_id=item.item_id,
                name=item.name,
                unit_price=item.unit_price,
                quantity=1,
                image_url=item.image_url,
            )
        self._lines[item.item_id] = line
        self._persist()
        return line

    def remove(self, item_id: str) -> Optional[CartLine]:
        """
        Remove one unit of ``item_id``.

        Returns:
            The updated line, or None when the line is gone (or never existed)
        """
        existing = self._lines.get(item_id)
        if existing is None:
            return None

        if existing.quantity > 1:
            line = existing.model_copy(update={"quantity": existing.quantity - 1})
            self._lines[item_id] = line
        else:
            del self._lines[item_id]
            line = None

        self._persist()
        return line

    def clear(self) -> None:
        self._lines = {}
        if self._merchant_id is None:
            return
        try:
            self._storage.remove(self.key)
        except StorageError as e:
            logger.warning(f"Could not remove cart {self.key}: {e}")

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    @property
    def total_price(self) -> float:
        return round(sum(line.unit_price * line.quantity for line in self._lines.values()), 2)

    def quantity_of(self, item_id: str) -> int:
        line = self._lines.get(item_id)
        return line.quantity if line else 0

    def to_response(self) -> CartResponse:
        return CartResponse(
            merchant_id=self._merchant_id or "",
            lines=self.lines,
            total_items=self.total_items,
            total_price=self.total_price,
        )
