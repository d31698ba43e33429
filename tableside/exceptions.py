"""Exceptions raised by the ordering and board services."""

from typing import Optional


class TablesideError(Exception):
    """Base exception for all application errors."""

    status_code = 500

    def __init__(self, message: str = "An internal error occurred", payload: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self) -> dict:
        rv = dict(self.payload or ())
        rv["success"] = False
        rv["error"] = type(self).__name__
        rv["detail"] = self.message
        return rv


class ValidationError(TablesideError):
    """Request rejected before any write was attempted."""

    status_code = 400


class CartValidationError(ValidationError):
    """Checkout attempted with an empty cart or without a table."""


class InvalidTransitionError(ValidationError):
    """Status change that skips or reverses the order pipeline."""

    status_code = 409

    def __init__(self, order_id: str, current: str, requested: str):
        super().__init__(
            f"Order {order_id} cannot move from {current} to {requested}",
            payload={"order_id": order_id, "current": current, "requested": requested},
        )


class OrderNotFoundError(TablesideError):
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found", payload={"order_id": order_id})


class TransientIOError(TablesideError):
    """
    Backend, storage or subscription failure.

    Surfaced to the caller for user-visible retry; never retried here.
    """

    status_code = 503


class StorageError(TransientIOError):
    """Key-value store read/write failure."""


class NonFatalPlaybackError(TablesideError):
    """The new-order alert could not be played. Logged and ignored."""
