"""
SQLAlchemy Database Models

Tables used by the ordering subsystem:
- merchants: one restaurant tenant
- dining_tables: human-facing table labels printed on QR codes
- orders / order_lines: append/update only, never deleted here
"""

import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from tableside.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class OrderStatus(str, enum.Enum):
    """Order status workflow: pending → preparing → served → paid."""
    PENDING = "pending"
    PREPARING = "preparing"
    SERVED = "served"
    PAID = "paid"


class Merchant(Base):
    __tablename__ = "merchants"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(120), nullable=False)
    slug = Column(String(120), nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Merchant {self.slug}>"


class DiningTable(Base):
    """A physical table; ``label`` is what the diner's QR code carries."""
    __tablename__ = "dining_tables"
    __table_args__ = (UniqueConstraint("merchant_id", "label", name="uq_dining_tables_merchant_label"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    merchant_id = Column(String(36), ForeignKey("merchants.id"), nullable=False, index=True)
    label = Column(String(20), nullable=False)

    def __repr__(self):
        return f"<DiningTable {self.label}>"


class Order(Base):
    """
    A submitted order.

    Created at checkout with status ``pending``; afterwards only the status
    column changes.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    merchant_id = Column(String(36), ForeignKey("merchants.id"), nullable=False, index=True)
    table_id = Column(String(36), ForeignKey("dining_tables.id"), nullable=True)
    total_price = Column(Float, nullable=False)
    status = Column(
        Enum(OrderStatus, values_callable=lambda e: [s.value for s in e]),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    table = relationship("DiningTable", lazy="raise")
    lines = relationship(
        "OrderLine",
        back_populates="order",
        lazy="raise",
        order_by="OrderLine.position",
    )

    def __repr__(self):
        return f"<Order {self.id} - {self.status.value}>"


class OrderLine(Base):
    """
    One item of an order.

    ``unit_price`` is copied from the cart at checkout so later menu edits
    never change historical totals.
    """
    __tablename__ = "order_lines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    item_id = Column(String(36), nullable=False)
    item_name = Column(String(120), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    order = relationship("Order", back_populates="lines")

    def __repr__(self):
        return f"<OrderLine {self.item_name} x{self.quantity}>"
