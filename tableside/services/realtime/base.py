"""
Change Feed Abstract Base Class

Defines the push-notification contract between the order backend (which
publishes a ChangeEvent after every committed write) and the staff board
(which subscribes per merchant).

Delivery is at-least-once: duplicates and reordering are possible, so
subscribers react by reloading rather than patching.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Callable, FrozenSet, Optional

logger = logging.getLogger(__name__)


class ChangeTable(str, Enum):
    ORDERS = "orders"
    ORDER_LINES = "order_lines"


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"


@dataclass(frozen=True)
class ChangeEvent:
    """
    A committed row change.

    Attributes:
        table: Which table changed
        kind: insert or update
        merchant_id: Tenant the row belongs to (the subscription filter)
        record_id: Primary key of the changed row
    """
    table: ChangeTable
    kind: ChangeKind
    merchant_id: str
    record_id: str

    @property
    def is_order_insert(self) -> bool:
        return self.table == ChangeTable.ORDERS and self.kind == ChangeKind.INSERT

    def to_json(self) -> str:
        data = asdict(self)
        data["table"] = self.table.value
        data["kind"] = self.kind.value
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "ChangeEvent":
        """
        Parse a wire payload.

        Raises:
            ValueError: If the payload is not a valid event
        """
        try:
            data = json.loads(raw)
            return cls(
                table=ChangeTable(data["table"]),
                kind=ChangeKind(data["kind"]),
                merchant_id=str(data["merchant_id"]),
                record_id=str(data["record_id"]),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid change event: {raw!r}") from e


@dataclass(frozen=True)
class Scope:
    """Subscription filter: one merchant, one table, some event kinds."""
    merchant_id: str
    table: ChangeTable
    kinds: FrozenSet[ChangeKind] = field(
        default_factory=lambda: frozenset({ChangeKind.INSERT, ChangeKind.UPDATE})
    )

    def matches(self, event: ChangeEvent) -> bool:
        return (
            event.merchant_id == self.merchant_id
            and event.table == self.table
            and event.kind in self.kinds
        )


ChangeHandler = Callable[[ChangeEvent], None]
LostHandler = Callable[["Subscription", Exception], None]


class Subscription(ABC):
    """
    Handle on an open subscription.

    Owned by whoever called ``subscribe``; must be released with
    ``unsubscribe()`` (or by leaving ``async with``) on context teardown.
    After release no further events reach the handler.

    A transport that loses its connection marks the handle ``lost`` and
    calls ``on_lost`` once; the handle still has to be released.
    """

    def __init__(self, scope: Scope, handler: ChangeHandler, on_lost: Optional[LostHandler] = None):
        self.scope = scope
        self.handler = handler
        self.on_lost = on_lost
        self.active = True
        self.lost = False

    def _dispatch(self, event: ChangeEvent) -> None:
        if not self.active or self.lost or not self.scope.matches(event):
            return
        try:
            self.handler(event)
        except Exception:
            logger.exception(f"Change handler failed for {event}")

    def _connection_lost(self, error: Exception) -> None:
        if self.lost or not self.active:
            return
        self.lost = True
        if self.on_lost is not None:
            try:
                self.on_lost(self, error)
            except Exception:
                logger.exception(f"Connection-lost handler failed for {self.scope}")

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Release the subscription. Safe to call more than once."""
        pass

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.unsubscribe()


class BaseChangeFeed(ABC):
    """Abstract base class for change notification transports."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def subscribe(
        self,
        scope: Scope,
        handler: ChangeHandler,
        on_lost: Optional[LostHandler] = None,
    ) -> Subscription:
        """
        Open a subscription.

        ``on_lost`` is called if the transport drops the connection later.

        Raises:
            TransientIOError: If the transport cannot be reached
        """
        pass

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """
        Broadcast a change to every matching subscription.

        Raises:
            TransientIOError: If the transport cannot be reached
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check transport connectivity."""
        pass

    async def close(self) -> None:
        """Release transport resources."""
        return None
