from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import json
from pathlib import Path
from typing import Protocol

from offline_sync.exceptions import StorageError


class KeyValueStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.values[key] = value


class JsonFileKeyValueStore(KeyValueStore):
    """All keys in one JSON document, rewritten atomically on every set."""

    def __init__(self, file_path: str) -> None:
        self._file = Path(file_path)
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            return self._read_all().get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            document = self._read_all()
            document[key] = value
            self._write_all(document)

    def _read_all(self) -> dict[str, str]:
        if not self._file.exists():
            return {}
        try:
            decoded = json.loads(self._file.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            raise StorageError(f"cannot read key-value file {self._file}: {exc}") from exc
        if not isinstance(decoded, dict):
            raise StorageError(f"key-value file {self._file} is not a JSON object")
        return {str(key): str(value) for key, value in decoded.items()}

    def _write_all(self, document: dict[str, str]) -> None:
        tmp_file = self._file.with_suffix(self._file.suffix + ".tmp")
        try:
            self._file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_text(json.dumps(document, ensure_ascii=True), encoding="utf-8")
            tmp_file.replace(self._file)
        except OSError as exc:
            raise StorageError(f"cannot write key-value file {self._file}: {exc}") from exc


class RedisLikeClient(Protocol):
    async def get(self, key: str) -> str | bytes | None: ...

    async def set(self, key: str, value: str) -> bool | None: ...


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, client: RedisLikeClient, namespace: str = "safety_companion") -> None:
        self._client = client
        self._namespace = namespace

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(self._key(key))
        except Exception as exc:
            raise StorageError(f"redis get failed for {key}: {exc}") from exc
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client.set(self._key(key), value)
        except Exception as exc:
            raise StorageError(f"redis set failed for {key}: {exc}") from exc

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"


def create_redis_client(url: str):
    import redis.asyncio as redis

    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        health_check_interval=30,
    )
