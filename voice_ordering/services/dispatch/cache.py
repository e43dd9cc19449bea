"""
Result cache for read-only intents.

Entries are keyed by a frozen CacheKey (intent name plus the sorted
(type, normalized_value) pairs of its entities) and expire after the TTL.
Mutating intents are never cached.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from voice_ordering.schemas import CommandResult, Entity

logger = logging.getLogger(__name__)

CACHEABLE_INTENTS = frozenset({
    "inquiry",
    "product_info",
    "price_check",
    "allergen_info",
    "help",
})


@dataclass(frozen=True)
class CacheKey:
    intent: str
    entities: tuple[tuple[str, str], ...]

    @classmethod
    def for_command(cls, intent: str, entities: list[Entity]) -> "CacheKey":
        pairs = sorted((e.type, e.normalized_value) for e in entities)
        return cls(intent=intent, entities=tuple(pairs))


@dataclass
class CacheEntry:
    key: CacheKey
    value: CommandResult
    cached_at: datetime


class ResultCache:

    def __init__(self, ttl_seconds: int = 300, now: Callable[[], datetime] = datetime.now):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._now = now
        self._entries: dict[CacheKey, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def is_cacheable(intent: str) -> bool:
        return intent in CACHEABLE_INTENTS

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._now() - entry.cached_at < self.ttl

    def get(self, key: CacheKey) -> Optional[CommandResult]:
        """Return a copy of the cached result marked from_cache, if still fresh."""
        entry = self._entries.get(key)
        if entry is None or not self._is_fresh(entry):
            self.misses += 1
            return None
        self.hits += 1
        return entry.value.model_copy(update={"from_cache": True}, deep=True)

    def put(self, key: CacheKey, result: CommandResult) -> None:
        if not self.is_cacheable(key.intent):
            return
        self._entries[key] = CacheEntry(
            key=key,
            value=result.model_copy(deep=True),
            cached_at=self._now(),
        )

    def sweep(self) -> int:
        stale = [key for key, entry in self._entries.items() if not self._is_fresh(entry)]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Purged {len(stale)} cache entries")
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
