"""
Terminal Bell Alert Service

Rings the terminal bell of the kiosk running the staff board. Fails with
NonFatalPlaybackError when the output stream is not an interactive
terminal, mirroring a browser refusing autoplay before user interaction.
"""

import logging
import sys
from typing import Optional, TextIO

from tableside.exceptions import NonFatalPlaybackError
from tableside.services.alerts.base import BaseAlertService

logger = logging.getLogger(__name__)

BELL = "\a"


class BellAlertService(BaseAlertService):

    def __init__(self, stream: Optional[TextIO] = None, rings: int = 1):
        self.stream = stream or sys.stdout
        self.rings = rings

    @property
    def provider_name(self) -> str:
        return "bell"

    async def play(self, merchant_id: str) -> None:
        isatty = getattr(self.stream, "isatty", None)
        if not (isatty and isatty()):
            raise NonFatalPlaybackError("Alert stream is not an interactive terminal")
        try:
            self.stream.write(BELL * self.rings)
            self.stream.flush()
        except (OSError, ValueError) as e:
            raise NonFatalPlaybackError(f"Could not ring bell: {e}") from e
        logger.debug(f"Bell rung for merchant {merchant_id}")
