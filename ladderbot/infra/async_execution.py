"""
Async wrapper around the blocking Hyperliquid Exchange using a shared thread pool.

Every signed action (order, bulk cancel) runs in the pool with a timeout and a
short jittered retry, so the event loop never blocks on the SDK.
"""

from __future__ import annotations

import asyncio
import random
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable


class AsyncExchange:
    def __init__(self, exchange, timeout: float = 5.0, max_workers: int = 4) -> None:
        self._exchange = exchange
        self._timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="hl-exec")

    async def order(self, *args, **kwargs) -> Any:
        # Orders are not retried: a timed-out order may still have rested.
        return await self._call(lambda: self._exchange.order(*args, **kwargs), retries=0)

    async def bulk_cancel(self, *args, **kwargs) -> Any:
        return await self._call(lambda: self._exchange.bulk_cancel(*args, **kwargs))

    async def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    async def _call(self, fn: Callable[[], Any], retries: int = 2) -> Any:
        loop = asyncio.get_running_loop()
        backoff = 0.2
        for attempt in range(retries + 1):
            try:
                return await asyncio.wait_for(loop.run_in_executor(self._executor, fn), timeout=self._timeout)
            except Exception:
                if attempt >= retries:
                    raise
                await asyncio.sleep(backoff + random.uniform(0, backoff * 0.5))
                backoff *= 2
