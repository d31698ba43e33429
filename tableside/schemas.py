"""
Pydantic Schemas for Request/Response Validation

Covers the diner cart, checkout, and the staff board read model.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tableside.models import OrderStatus


# =============================================================================
# CART
# =============================================================================

class CartItemIn(BaseModel):
    """Menu item the diner taps "add" on."""
    item_id: str = Field(..., min_length=1, examples=["b1c8e0a2-burger"])
    name: str = Field(..., min_length=1, max_length=120, examples=["Burger"])
    unit_price: float = Field(..., ge=0, examples=[12.50])
    image_url: Optional[str] = Field(None, max_length=500)


class CartLine(BaseModel):
    """One distinct item in a cart. Never retained at quantity 0."""
    item_id: str = Field(..., min_length=1)
    name: str
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    image_url: Optional[str] = None

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.quantity, 2)


class CartResponse(BaseModel):
    merchant_id: str
    lines: List[CartLine]
    total_items: int
    total_price: float


# =============================================================================
# CHECKOUT
# =============================================================================

class CheckoutRequest(BaseModel):
    table_label: Optional[str] = Field(None, max_length=20, examples=["12"])

    @field_validator("table_label")
    @classmethod
    def strip_label(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None


# =============================================================================
# ORDERS / BOARD
# =============================================================================

class OrderLineView(BaseModel):
    """Line item as shown on the staff board."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    item_id: str
    item_name: str
    quantity: int
    unit_price: float

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.quantity, 2)


class BoardOrder(BaseModel):
    """
    Order joined with its table label and line items.

    Frozen: the board replaces entries instead of mutating them, which keeps
    pre-update snapshots valid for rollback.
    """
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    merchant_id: str
    table_id: Optional[str] = None
    table_label: Optional[str] = None
    total_price: float
    status: OrderStatus
    created_at: datetime
    lines: List[OrderLineView] = Field(default_factory=list)


class TableResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    merchant_id: str
    label: str


class StatusUpdateRequest(BaseModel):
    status: OrderStatus


class StatusUpdateResponse(BaseModel):
    success: bool
    order_id: str
    changed: bool
    status: Optional[OrderStatus] = None


class BoardSnapshot(BaseModel):
    """What the staff display renders."""
    merchant_id: str
    orders: List[BoardOrder]
    columns: Dict[str, List[BoardOrder]]
    active_count: int


# =============================================================================
# GENERIC
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    change_feed: str
    cart_storage: str
    timestamp: datetime
