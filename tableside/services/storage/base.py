"""
Key-Value Storage Abstract Base Class

Narrow get/set/remove contract used to persist diner carts so the backing
store (memory, local file, Redis) can be swapped without touching the cart
logic.
"""

from abc import ABC, abstractmethod
from typing import Optional


class BaseKeyValueStore(ABC):
    """Abstract base class for cart persistence backends."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Returns:
            The stored string, or None when the key is absent

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Write a value, replacing any previous one."""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key. Missing keys are ignored."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """Check the backend is reachable."""
        pass
