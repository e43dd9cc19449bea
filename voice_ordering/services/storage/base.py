"""
Key-Value Store Abstract Base Class

Defines the interface contract for the store that persists user profiles
and adaptation rules. Both InMemoryKeyValueStore and SqlKeyValueStore
implement these methods, so the learning engine behaves identically
regardless of which store is active.

Values are JSON-compatible structures (dicts, lists, scalars).

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class BaseKeyValueStore(ABC):
    """
    Abstract base class for key-value stores.

    Implementations:
        - InMemoryKeyValueStore: Process-local dict for development and tests
        - SqlKeyValueStore: SQLAlchemy async table for staging/production
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the store provider."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """
        Fetch the value stored under key.

        Returns:
            The stored value, or None if the key is absent
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store value under key, replacing any previous value."""
        pass

    @abstractmethod
    async def remove(self, key: str) -> bool:
        """
        Delete key.

        Returns:
            True if a value was removed
        """
        pass

    async def close(self) -> None:
        """Release underlying resources."""
        return None

    async def health_check(self) -> bool:
        """
        Check if the store is reachable.

        Returns:
            True if healthy, False otherwise
        """
        return True
