from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import httpx

from walletbot.core.errors import CollaboratorUnavailable

_TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass
class CircuitState:
    failures: int = 0
    open_until: float = 0.0


class ResilientHTTPClient:
    """JSON-over-HTTP client shared by the collaborator adapters.

    Every call is bounded by ``timeout``. Transient failures are retried with
    exponential backoff, and a host that keeps failing is short-circuited for
    ``breaker_cooldown`` seconds so a dead RPC node does not stall every command.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        retries: int = 2,
        backoff_base: float = 0.3,
        breaker_threshold: int = 4,
        breaker_cooldown: int = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.retries = retries
        self.backoff_base = backoff_base
        self.breaker_threshold = breaker_threshold
        self.breaker_cooldown = breaker_cooldown
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._state: dict[str, CircuitState] = {}

    async def close(self) -> None:
        await self._client.aclose()

    def _is_open(self, host: str) -> bool:
        return self._state.setdefault(host, CircuitState()).open_until > time.time()

    def _record_failure(self, host: str) -> None:
        state = self._state.setdefault(host, CircuitState())
        state.failures += 1
        if state.failures >= self.breaker_threshold:
            state.open_until = time.time() + self.breaker_cooldown

    def _record_success(self, host: str) -> None:
        self._state[host] = CircuitState()

    async def _request_json(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        host = httpx.URL(url).host or "unknown"
        if self._is_open(host):
            raise CollaboratorUnavailable(f"Circuit open for {host}")

        last_error: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                response = await self._client.request(method, url, params=params, json=json)
                if response.status_code in _TRANSIENT_STATUSES:
                    raise CollaboratorUnavailable(f"Transient status {response.status_code}")
                response.raise_for_status()
                payload = response.json()
                self._record_success(host)
                return payload
            except (httpx.HTTPError, ValueError, CollaboratorUnavailable) as exc:
                last_error = exc
                self._record_failure(host)
                if attempt >= self.retries:
                    break
                await asyncio.sleep(self.backoff_base * (2**attempt))

        raise CollaboratorUnavailable(f"Request to {host} failed: {last_error}")

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        return await self._request_json("GET", url, params=params)

    async def post_json(self, url: str, payload: Any) -> Any:
        return await self._request_json("POST", url, json=payload)
