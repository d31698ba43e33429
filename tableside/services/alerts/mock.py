"""
Logging Alert Service

Development stand-in for the audible alert: records and logs each play.
"""

import logging

from tableside.services.alerts.base import BaseAlertService

logger = logging.getLogger(__name__)


class LoggingAlertService(BaseAlertService):
    """Counts plays per merchant instead of making a sound."""

    def __init__(self):
        self.plays: list[str] = []

    @property
    def provider_name(self) -> str:
        return "log"

    async def play(self, merchant_id: str) -> None:
        self.plays.append(merchant_id)
        logger.info(f"🔔 New order for merchant {merchant_id}")
