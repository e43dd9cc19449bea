"""Tests for the key-value stores behind profiles and adaptation rules."""

import pytest

from voice_ordering.core.config import Settings
from voice_ordering.services.storage import (
    InMemoryKeyValueStore,
    SqlKeyValueStore,
    get_store_for_settings,
)

MEMORY_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(params=["memory", "sql"])
async def kv_store(request):
    if request.param == "memory":
        store = InMemoryKeyValueStore()
    else:
        store = SqlKeyValueStore(MEMORY_URL)
    yield store
    await store.close()


class TestKeyValueStore:
    async def test_missing_key(self, kv_store):
        assert await kv_store.get("profile:nobody") is None
        assert await kv_store.remove("profile:nobody") is False

    async def test_set_get_replace(self, kv_store):
        await kv_store.set("profile:u1", {"id": "u1", "preferences": {"language": "de-CH"}})
        assert (await kv_store.get("profile:u1"))["preferences"] == {"language": "de-CH"}

        await kv_store.set("profile:u1", {"id": "u1", "preferences": {}})
        assert (await kv_store.get("profile:u1"))["preferences"] == {}

    async def test_lists_round_trip(self, kv_store):
        await kv_store.set("learning:rules", [{"id": "learned_order_1"}])
        assert await kv_store.get("learning:rules") == [{"id": "learned_order_1"}]

    async def test_remove(self, kv_store):
        await kv_store.set("k", 1)
        assert await kv_store.remove("k") is True
        assert await kv_store.get("k") is None

    async def test_health_check(self, kv_store):
        assert await kv_store.health_check() is True


class TestInMemoryIsolation:
    async def test_values_are_copied(self):
        store = InMemoryKeyValueStore()
        value = {"counts": {"order": 1}}
        await store.set("profile:u1", value)

        value["counts"]["order"] = 99
        fetched = await store.get("profile:u1")
        fetched["counts"]["order"] = 42

        assert (await store.get("profile:u1"))["counts"]["order"] == 1
        assert store.keys() == ["profile:u1"]


class TestStoreFactory:
    def test_development_uses_memory(self):
        store = get_store_for_settings(Settings(_env_file=None, env_mode="development"))
        assert store.provider_name == "memory"

    async def test_staging_uses_sql(self):
        settings = Settings(_env_file=None, env_mode="staging", database_url=MEMORY_URL)
        store = get_store_for_settings(settings)
        assert store.provider_name == "sql"
        await store.close()

    def test_sql_store_needs_url(self):
        with pytest.raises(ValueError):
            SqlKeyValueStore()
