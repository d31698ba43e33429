"""
SQLAlchemy Order Backend

Production implementation of the order store on the async SQLAlchemy
engine (PostgreSQL via psycopg; any async dialect works).

Orders and their lines are inserted in one transaction. Change events are
published only after the transaction commits.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from tableside.exceptions import InvalidTransitionError, OrderNotFoundError, TransientIOError
from tableside.models import DiningTable, Order, OrderLine, OrderStatus
from tableside.schemas import BoardOrder, OrderLineView, TableResponse
from tableside.services.backend.base import BaseOrderBackend, NewOrderLine
from tableside.services.realtime.base import BaseChangeFeed

logger = logging.getLogger(__name__)


def _to_board_order(order: Order) -> BoardOrder:
    return BoardOrder(
        id=order.id,
        merchant_id=order.merchant_id,
        table_id=order.table_id,
        table_label=order.table.label if order.table is not None else None,
        total_price=order.total_price,
        status=order.status,
        created_at=order.created_at,
        lines=[OrderLineView.model_validate(line) for line in order.lines],
    )


class SqlOrderBackend(BaseOrderBackend):
    """
    Order store backed by the relational database.

    Every SQLAlchemyError is converted to TransientIOError so callers see
    one failure type regardless of driver.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        feed: Optional[BaseChangeFeed] = None,
    ):
        super().__init__(feed)
        self._session_maker = session_maker
        logger.info("SqlOrderBackend initialized")

    @property
    def provider_name(self) -> str:
        return "sql"

    @staticmethod
    def _order_query():
        return select(Order).options(selectinload(Order.lines), selectinload(Order.table))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_tables(self, merchant_id: str) -> list[TableResponse]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(DiningTable)
                    .where(DiningTable.merchant_id == merchant_id)
                    .order_by(DiningTable.label)
                )
                return [TableResponse.model_validate(t) for t in result.scalars().all()]
        except SQLAlchemyError as e:
            raise TransientIOError(f"Could not list tables: {e}") from e

    async def find_table(self, merchant_id: str, label: str) -> Optional[TableResponse]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(DiningTable).where(
                        DiningTable.merchant_id == merchant_id,
                        DiningTable.label == label,
                    )
                )
                table = result.scalars().first()
        except SQLAlchemyError as e:
            raise TransientIOError(f"Could not resolve table {label!r}: {e}") from e
        return TableResponse.model_validate(table) if table else None

    async def list_orders(self, merchant_id: str) -> list[BoardOrder]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    self._order_query()
                    .where(Order.merchant_id == merchant_id)
                    .order_by(Order.created_at.desc(), Order.id.desc())
                )
                return [_to_board_order(o) for o in result.scalars().all()]
        except SQLAlchemyError as e:
            raise TransientIOError(f"Could not load orders: {e}") from e

    async def get_order(self, order_id: str) -> Optional[BoardOrder]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(self._order_query().where(Order.id == order_id))
                order = result.scalar_one_or_none()
                return _to_board_order(order) if order else None
        except SQLAlchemyError as e:
            raise TransientIOError(f"Could not load order {order_id}: {e}") from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_order(
        self,
        merchant_id: str,
        table_id: Optional[str],
        total_price: float,
        lines: Sequence[NewOrderLine],
    ) -> BoardOrder:
        order_id = str(uuid.uuid4())
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    session.add(Order(
                        id=order_id,
                        merchant_id=merchant_id,
                        table_id=table_id,
                        total_price=total_price,
                        status=OrderStatus.PENDING,
                        created_at=datetime.now(timezone.utc),
                    ))
                    await session.flush()

                    rows = [
                        OrderLine(
                            order_id=order_id,
                            item_id=line.item_id,
                            item_name=line.item_name,
                            quantity=line.quantity,
                            unit_price=line.unit_price,
                            position=position,
                        )
                        for position, line in enumerate(lines)
                    ]
                    session.add_all(rows)
                    await session.flush()
                    line_ids = [str(row.id) for row in rows]

                result = await session.execute(
                    self._order_query()
                    .where(Order.id == order_id)
                    .execution_options(populate_existing=True)
                )
                order = _to_board_order(result.scalar_one())
        except SQLAlchemyError as e:
            logger.error(f"Order insert rolled back for merchant {merchant_id}: {e}")
            raise TransientIOError(f"Could not create order: {e}") from e

        logger.info(f"Order {order_id} created (${total_price:.2f}, {len(line_ids)} line(s))")
        await self._announce(self._order_created_events(order, line_ids))
        return order

    async def update_order_status(
        self,
        order_id: str,
        status: OrderStatus,
        expected: Optional[OrderStatus] = None,
    ) -> BoardOrder:
        status = OrderStatus(status)
        statement = update(Order).where(Order.id == order_id)
        if expected is not None:
            # Compare-and-set: a stale caller cannot move the order backwards
            statement = statement.where(Order.status == OrderStatus(expected))

        try:
            async with self._session_maker() as session:
                async with session.begin():
                    result = await session.execute(
                        statement.values(status=status).execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        stored = await session.get(Order, order_id)
                        if stored is None:
                            raise OrderNotFoundError(order_id)
                        raise InvalidTransitionError(order_id, stored.status.value, status.value)

                result = await session.execute(
                    self._order_query()
                    .where(Order.id == order_id)
                    .execution_options(populate_existing=True)
                )
                updated = _to_board_order(result.scalar_one())
        except SQLAlchemyError as e:
            raise TransientIOError(f"Could not update order {order_id}: {e}") from e

        logger.info(f"Order {order_id} → {updated.status.value}")
        await self._announce([self._order_updated_event(updated)])
        return updated

    async def health_check(self) -> bool:
        try:
            async with self._session_maker() as session:
                await session.execute(select(1))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False
