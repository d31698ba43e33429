"""
                        Services Module

Business logic of the ordering subsystem. Collaborators that talk to the
outside world have an in-process implementation (development, tests) and
a networked one (staging, production), chosen by cached factories.

Services:
    - cart: Per-merchant shopping cart mirrored to key-value storage
    - checkout: Cart → persisted order
    - status: Order status pipeline
    - realtime: Change feed and the order change listener
    - board: Staff order board and its per-merchant registry
"""

import logging
from functools import lru_cache

from tableside.services.alerts import get_alert_service
from tableside.services.backend import get_order_backend
from tableside.services.board import BoardRegistry, OrderBoard
from tableside.services.realtime import get_change_feed

logger = logging.getLogger(__name__)


@lru_cache()
def get_board_registry() -> BoardRegistry:
    """Get the process-wide board registry."""
    return BoardRegistry(get_order_backend(), get_change_feed(), alert=get_alert_service())


def reset_board_registry() -> None:
    """Clear the cached registry instance."""
    get_board_registry.cache_clear()


__all__ = ["get_board_registry", "reset_board_registry", "BoardRegistry", "OrderBoard"]
