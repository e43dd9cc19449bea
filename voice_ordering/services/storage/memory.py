"""
In-memory key-value store used in development mode and in tests.

Values are deep-copied on the way in and out so callers never share
mutable state with the store.
"""

import copy
import logging
from typing import Any, Optional

from voice_ordering.services.storage.base import BaseKeyValueStore

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore(BaseKeyValueStore):

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        logger.info("InMemoryKeyValueStore initialized")

    @property
    def provider_name(self) -> str:
        return "memory"

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
        logger.debug(f"[MEMORY] set {key}")

    async def remove(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._data)
