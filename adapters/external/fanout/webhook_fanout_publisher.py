from __future__ import annotations

from typing import Any, Dict, Optional

import httpx


class WebhookFanoutPublisher:
    """
    Forwards market events to an external realtime gateway over HTTP.

    POST {base_url}/events/{topic} with body {"symbol": ..., "payload": {...}}
    """

    def __init__(self, *, base_url: str, timeout_s: float = 2.0, client: Optional[httpx.AsyncClient] = None):
        self._base_url = str(base_url).rstrip("/")
        self._timeout = timeout_s
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    async def publish(self, *, topic: str, payload: Dict[str, Any], symbol: Optional[str] = None) -> None:
        r = await self._client.post(
            f"{self._base_url}/events/{topic}",
            json={"symbol": symbol, "payload": payload},
        )
        r.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()
