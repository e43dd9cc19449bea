"""
Key-Value Store Factory

Provides a single entry point for obtaining the store that persists user
profiles and adaptation rules.

Usage:
    from voice_ordering.services.storage import get_store_for_settings

    store = get_store_for_settings(get_settings())
    await store.set("profile:u1", {...})

Environment Switching:
    - ENV_MODE=development → InMemoryKeyValueStore
    - ENV_MODE=staging → SqlKeyValueStore (DATABASE_URL)
    - ENV_MODE=production → SqlKeyValueStore (DATABASE_URL)

Version: 1.0.0
"""

import logging

from voice_ordering.core.config import Settings
from voice_ordering.services.storage.base import BaseKeyValueStore
from voice_ordering.services.storage.memory import InMemoryKeyValueStore
from voice_ordering.services.storage.sql import SqlKeyValueStore

logger = logging.getLogger(__name__)


def get_store_for_settings(settings: Settings) -> BaseKeyValueStore:
    """
    Build the configured key-value store.

    A new instance is returned on every call; the voice service owns it
    for its whole lifetime.
    """
    if settings.use_real_services:
        logger.info(
            f"Key-Value Store: Using SqlKeyValueStore ({settings.env_mode.value} mode)"
        )
        return SqlKeyValueStore(settings.database_url, echo=settings.database_echo)

    logger.info("Key-Value Store: Using InMemoryKeyValueStore (development mode)")
    return InMemoryKeyValueStore()


__all__ = [
    "get_store_for_settings",
    "BaseKeyValueStore",
    "InMemoryKeyValueStore",
    "SqlKeyValueStore",
]
