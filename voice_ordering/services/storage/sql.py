"""
SQL Key-Value Store

Persists values as JSON text in the `key_value_entries` table through a
SQLAlchemy async engine. Tables are created lazily on first use.

Configuration:
    DATABASE_URL: SQLAlchemy async URL (default: sqlite+aiosqlite)
    DATABASE_ECHO: Log every SQL statement

Version: 1.0.0
"""

import json
import logging
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from voice_ordering.database import create_engine_for_url, create_session_maker, init_db
from voice_ordering.models import KeyValueEntry
from voice_ordering.services.storage.base import BaseKeyValueStore

logger = logging.getLogger(__name__)


class SqlKeyValueStore(BaseKeyValueStore):
    """
    Key-value store backed by a relational table.

    Example:
        >>> store = SqlKeyValueStore("sqlite+aiosqlite:///:memory:")
        >>> await store.set("profile:u1", {"id": "u1"})
        >>> await store.get("profile:u1")
        {'id': 'u1'}
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        echo: bool = False,
        engine: Optional[AsyncEngine] = None,
    ):
        if engine is None:
            if not database_url:
                raise ValueError("SqlKeyValueStore needs a database_url or an engine")
            engine = create_engine_for_url(database_url, echo=echo)

        self._engine = engine
        self._session_maker = create_session_maker(engine)
        self._initialized = False

        logger.info(f"SqlKeyValueStore initialized ({engine.url.drivername})")

    @property
    def provider_name(self) -> str:
        return "sql"

    async def _ensure_tables(self) -> None:
        if not self._initialized:
            await init_db(self._engine)
            self._initialized = True

    async def get(self, key: str) -> Optional[Any]:
        await self._ensure_tables()
        async with self._session_maker() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is None:
                return None
            return json.loads(entry.value)

    async def set(self, key: str, value: Any) -> None:
        await self._ensure_tables()
        payload = json.dumps(value, default=str)
        async with self._session_maker() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=payload))
            else:
                entry.value = payload
            await session.commit()
        logger.debug(f"[SQL] set {key}")

    async def remove(self, key: str) -> bool:
        await self._ensure_tables()
        async with self._session_maker() as session:
            result = await session.execute(
                delete(KeyValueEntry).where(KeyValueEntry.key == key)
            )
            await session.commit()
            return result.rowcount > 0

    async def close(self) -> None:
        await self._engine.dispose()

    async def health_check(self) -> bool:
        try:
            await self._ensure_tables()
            async with self._session_maker() as session:
                await session.execute(select(KeyValueEntry.key).limit(1))
            return True
        except SQLAlchemyError as e:
            logger.error(f"SQL store health check failed: {e}")
            return False
