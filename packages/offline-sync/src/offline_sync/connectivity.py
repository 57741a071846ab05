from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
import logging

import httpx

logger = logging.getLogger(__name__)


class ConnectivityMonitor(ABC):
    @abstractmethod
    def is_online(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def transitions(self) -> AsyncIterator[bool]:
        """Yield the new state on every online/offline change until closed."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError


class QueueConnectivityMonitor(ConnectivityMonitor):
    """Connectivity fed by the host platform through ``publish``."""

    def __init__(self, initial: bool = True) -> None:
        self._online = initial
        self._changes: asyncio.Queue[bool | None] = asyncio.Queue()

    def is_online(self) -> bool:
        return self._online

    def publish(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        self._changes.put_nowait(online)

    async def transitions(self) -> AsyncIterator[bool]:
        while True:
            change = await self._changes.get()
            if change is None:
                return
            yield change

    async def close(self) -> None:
        self._changes.put_nowait(None)


class HttpProbeConnectivityMonitor(ConnectivityMonitor):
    """Polls ``probe_url`` and reports reachability changes."""

    def __init__(
        self,
        probe_url: str,
        interval_seconds: float = 15.0,
        timeout_seconds: float = 5.0,
        initial: bool = True,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._probe_url = probe_url
        self._interval_seconds = interval_seconds
        self._timeout_seconds = timeout_seconds
        self._online = initial
        self._client_factory = client_factory
        self._sleep = sleep_fn
        self._closed = False

    def is_online(self) -> bool:
        return self._online

    async def probe(self) -> bool:
        try:
            factory = self._client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout_seconds))
            async with factory() as client:
                response = await client.get(self._probe_url)
        except httpx.HTTPError as exc:
            logger.debug("connectivity_probe_failed", extra={"component": "offline_sync", "error": str(exc)})
            return False
        return response.status_code < 500

    async def transitions(self) -> AsyncIterator[bool]:
        while not self._closed:
            online = await self.probe()
            if online != self._online:
                self._online = online
                logger.info("connectivity_changed", extra={"component": "offline_sync", "online": online})
                yield online
            if self._closed:
                return
            await self._sleep(self._interval_seconds)

    async def close(self) -> None:
        self._closed = True
