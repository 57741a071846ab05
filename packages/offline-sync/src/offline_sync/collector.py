from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

import httpx

from offline_sync.exceptions import DeliveryError
from offline_sync.models import OfflineEvent


class Collector(ABC):
    @abstractmethod
    async def submit(self, event: OfflineEvent) -> bool:
        """Deliver one event. ``True`` means the collector accepted it."""
        raise NotImplementedError


class HttpCollector(Collector):
    """Posts events to ``{base_url}/events`` keyed by the event id.

    The id travels as ``Idempotency-Key`` so a redelivery after a lost
    response is recognised by the collector. A 409 is treated as an earlier
    successful delivery.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout_seconds: float = 10.0,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._client_factory = client_factory

    async def submit(self, event: OfflineEvent) -> bool:
        headers = {"Idempotency-Key": event.id}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            factory = self._client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout_seconds))
            async with factory() as client:
                response = await client.post(f"{self._base_url}/events", json=event.to_dict(), headers=headers)
                if response.status_code == 409:
                    return True
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise DeliveryError(f"collector timed out for {event.id}") from exc
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(f"collector returned {exc.response.status_code} for {event.id}") from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"collector request failed for {event.id}: {exc}") from exc
        return True


class InMemoryCollector(Collector):
    """Scripted collector. Outcomes are consumed in order, then ``default`` applies.

    An outcome may be a bool or an exception instance to raise.
    """

    def __init__(self, outcomes: Iterable[bool | Exception] = (), default: bool = True) -> None:
        self._outcomes = list(outcomes)
        self._default = default
        self.attempts: list[str] = []
        self.delivered: list[OfflineEvent] = []

    def script(self, *outcomes: bool | Exception) -> None:
        self._outcomes.extend(outcomes)

    async def submit(self, event: OfflineEvent) -> bool:
        self.attempts.append(event.id)
        outcome = self._outcomes.pop(0) if self._outcomes else self._default
        if isinstance(outcome, Exception):
            raise outcome
        if outcome:
            self.delivered.append(event)
        return outcome
