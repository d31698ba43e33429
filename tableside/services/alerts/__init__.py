"""
Alert Service Factory

Returns the new-order alert implementation based on ENV_MODE.
"""

import logging
from functools import lru_cache
from typing import Optional

from tableside.core.config import get_settings
from tableside.services.alerts.base import BaseAlertService
from tableside.services.alerts.bell import BellAlertService
from tableside.services.alerts.mock import LoggingAlertService

logger = logging.getLogger(__name__)


@lru_cache()
def get_alert_service() -> Optional[BaseAlertService]:
    """Get the configured alert service, or None when alerts are disabled."""
    settings = get_settings()

    if not settings.alert_enabled:
        logger.info("Alert Service: disabled")
        return None
    if settings.is_development:
        logger.info("Alert Service: Using LoggingAlertService (development mode)")
        return LoggingAlertService()

    logger.info(f"Alert Service: Using BellAlertService ({settings.env_mode.value} mode)")
    return BellAlertService()


def reset_alert_service() -> None:
    """Clear the cached service instance."""
    get_alert_service.cache_clear()


__all__ = [
    "get_alert_service",
    "reset_alert_service",
    "BaseAlertService",
    "BellAlertService",
    "LoggingAlertService",
]
