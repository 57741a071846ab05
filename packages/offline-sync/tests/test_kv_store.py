import pytest

from offline_sync.exceptions import StorageError
from offline_sync.kv_store import InMemoryKeyValueStore, JsonFileKeyValueStore, RedisKeyValueStore


@pytest.mark.asyncio
async def test_in_memory_store_round_trip() -> None:
    store = InMemoryKeyValueStore()
    assert await store.get("missing") is None

    await store.set("offline_events", "[]")

    assert await store.get("offline_events") == "[]"


@pytest.mark.asyncio
async def test_json_file_store_survives_reopen(tmp_path) -> None:
    file_path = tmp_path / "state" / "queue.json"
    store = JsonFileKeyValueStore(str(file_path))
    await store.set("offline_events", '[{"id": "a"}]')
    await store.set("offline_config", "{}")

    reopened = JsonFileKeyValueStore(str(file_path))

    assert await reopened.get("offline_events") == '[{"id": "a"}]'
    assert await reopened.get("offline_config") == "{}"
    assert not (tmp_path / "state" / "queue.json.tmp").exists()


@pytest.mark.asyncio
async def test_json_file_store_reports_corrupt_file(tmp_path) -> None:
    file_path = tmp_path / "queue.json"
    file_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StorageError):
        await JsonFileKeyValueStore(str(file_path)).get("offline_events")


@pytest.mark.asyncio
async def test_redis_store_namespaces_keys_and_decodes_bytes() -> None:
    class FakeRedis:
        def __init__(self) -> None:
            self.data: dict[str, bytes] = {}

        async def get(self, key: str) -> bytes | None:
            return self.data.get(key)

        async def set(self, key: str, value: str) -> bool:
            self.data[key] = value.encode("utf-8")
            return True

    client = FakeRedis()
    store = RedisKeyValueStore(client, namespace="companion")
    await store.set("offline_events", "[]")

    assert "companion:offline_events" in client.data
    assert await store.get("offline_events") == "[]"


@pytest.mark.asyncio
async def test_redis_store_wraps_client_errors() -> None:
    class BrokenRedis:
        async def get(self, _key: str) -> None:
            raise ConnectionError("refused")

        async def set(self, _key: str, _value: str) -> None:
            raise ConnectionError("refused")

    store = RedisKeyValueStore(BrokenRedis())

    with pytest.raises(StorageError):
        await store.get("offline_events")
    with pytest.raises(StorageError):
        await store.set("offline_events", "[]")
