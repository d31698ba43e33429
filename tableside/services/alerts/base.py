"""
Alert Service Abstract Base Class

Plays the audible "new order" cue on the staff board. Playback is best
effort: implementations raise NonFatalPlaybackError, which callers log and
ignore.
"""

from abc import ABC, abstractmethod


class BaseAlertService(ABC):
    """Abstract base class for new-order alerts."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def play(self, merchant_id: str) -> None:
        """
        Play the new-order alert.

        Raises:
            NonFatalPlaybackError: If the alert could not be played
        """
        pass
