"""
Minimal async HTTP client for Hyperliquid spot info endpoints using HTTP/2.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx


class AsyncInfo:
    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self.base_url = base_url.rstrip("/")
        # A shared client passed in is not closed by close().
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(base_url=self.base_url, http2=True, timeout=timeout)
            self._owns_client = True

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def all_mids(self) -> Any:
        return await self._post_info({"type": "allMids"})

    async def spot_user_state(self, account: str) -> Any:
        """Spot balances: {"balances": [{"coin", "total", "hold", ...}]}."""
        return await self._post_info({"type": "spotClearinghouseState", "user": account})

    async def frontend_open_orders(self, account: str) -> Any:
        return await self._post_info({"type": "frontendOpenOrders", "user": account})

    async def historical_orders(self, account: str) -> Any:
        """
        Most recent orders with their final status.
        Entries look like {"order": {...}, "status": "filled", "statusTimestamp": ...}.
        """
        return await self._post_info({"type": "historicalOrders", "user": account})

    async def _post_info(self, payload: dict[str, Any]) -> Any:
        resp = await self.client.post("/info", json=payload)
        resp.raise_for_status()
        data = resp.json()
        # unwrap {status:'ok', response:{data:{...}}} patterns
        if isinstance(data, dict):
            if "response" in data and isinstance(data["response"], dict):
                data = data["response"]
            if "data" in data and isinstance(data["data"], dict):
                data = data["data"]
            if "allMids" in data and isinstance(data["allMids"], dict):
                data = data["allMids"]
        return data
