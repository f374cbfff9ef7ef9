"""
Push price feed for one spot pair over the Hyperliquid SDK websocket.

The SDK delivers messages on its own thread; every tick is marshalled onto
the event loop with call_soon_threadsafe before any state the orchestrator
reads is touched. A watchdog resubscribes with backoff when the socket goes
quiet.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from ladderbot.core.json_utils import dumps
from ladderbot.core.utils import to_positive_float

log = logging.getLogger("ladderbot")


@dataclass(frozen=True)
class PriceTick:
    price: float
    symbol: str
    time: float


PriceCallback = Callable[[PriceTick], None]


class PriceFeed(Protocol):
    current_price: Optional[float]
    last_update_time: Optional[float]
    last_message: Optional[Dict[str, Any]]
    last_message_time: Optional[float]

    def set_price_callback(self, callback: Optional[PriceCallback]) -> None: ...

    async def start_monitoring(self, symbol: str) -> None: ...

    async def stop_monitoring(self) -> None: ...

    def is_monitoring(self) -> bool: ...

    async def close_connections(self) -> None: ...


def price_from_message(msg: Any) -> Optional[float]:
    """Last trade price in a raw ``trades`` channel message, or None."""
    if not isinstance(msg, dict):
        return None
    data = msg.get("data")
    if not isinstance(data, list) or not data:
        return None
    last = data[-1]
    if not isinstance(last, dict):
        return None
    return to_positive_float(last.get("px"))


class HyperliquidPriceFeed:
    def __init__(
        self,
        info,
        stale_after: float = 30.0,
        watch_interval: float = 5.0,
        backoff_max: float = 60.0,
    ) -> None:
        self.info = info
        self.current_price: Optional[float] = None
        self.last_update_time: Optional[float] = None
        self.last_message: Optional[Dict[str, Any]] = None
        self.last_message_time: Optional[float] = None
        self.symbol: Optional[str] = None
        self._coin: Optional[str] = None
        self._callback: Optional[PriceCallback] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subs: Dict[str, Tuple[Dict[str, Any], int]] = {}
        self._watchdog_task: Optional[asyncio.Task] = None
        self._stale_after = stale_after
        self._watch_interval = watch_interval
        self._backoff_max = backoff_max
        self._last_ws_any_msg: float = 0.0
        self._last_resubscribe = 0.0
        self._last_warn_ts = 0.0
        self._monitoring = False

    def set_price_callback(self, callback: Optional[PriceCallback]) -> None:
        self._callback = callback

    async def start_monitoring(self, symbol: str) -> None:
        if self._monitoring:
            return
        self._loop = asyncio.get_running_loop()
        self.symbol = symbol
        self._coin = self.info.name_to_coin.get(symbol, symbol)
        self._last_ws_any_msg = time.time()
        self._subscribe()
        self._monitoring = True
        self._watchdog_task = asyncio.create_task(self._watchdog(), name="price_feed_watchdog")
        log.info(dumps({"event": "feed_start", "symbol": symbol, "coin": self._coin}))

    async def stop_monitoring(self) -> None:
        self._monitoring = False
        if self._watchdog_task:
            self._watchdog_task.cancel()
            await asyncio.gather(self._watchdog_task, return_exceptions=True)
            self._watchdog_task = None
        self._unsubscribe()
        log.info(dumps({"event": "feed_stop", "symbol": self.symbol}))

    def is_monitoring(self) -> bool:
        return self._monitoring

    async def close_connections(self) -> None:
        """
        Drop every subscription and cached value held for this pair.

        The SDK websocket itself is shared with the process and is
        disconnected by the entry point at shutdown.
        """
        self._unsubscribe()
        self.last_message = None
        self.last_message_time = None
        self.current_price = None
        self.last_update_time = None

    def data_age(self) -> Optional[float]:
        if self.last_update_time is None:
            return None
        return time.time() - self.last_update_time

    def _on_trades(self, msg: Any) -> None:
        # SDK websocket thread: only plain assignments here, state updates run on the loop.
        self._last_ws_any_msg = time.time()
        price = price_from_message(msg)
        if price is None:
            return
        self.last_message = msg
        self.last_message_time = self._last_ws_any_msg
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._apply_tick, price, self._last_ws_any_msg)

    def _on_any(self, msg: Any) -> None:
        self._last_ws_any_msg = time.time()

    def _apply_tick(self, price: float, ts: float) -> None:
        if not self._monitoring:
            return
        self.current_price = price
        self.last_update_time = ts
        if self._callback is None:
            return
        try:
            self._callback(PriceTick(price=price, symbol=self.symbol or "", time=ts))
        except Exception as exc:
            log.error(dumps({"event": "feed_callback_error", "symbol": self.symbol, "err": str(exc)}))

    def _subscribe(self) -> None:
        trades = {"type": "trades", "coin": self._coin}
        mids = {"type": "allMids"}
        self._subs = {
            "trades": (trades, self.info.subscribe(trades, self._on_trades)),
            "mids": (mids, self.info.subscribe(mids, self._on_any)),
        }

    def _unsubscribe(self) -> None:
        for key, (subscription, sub_id) in list(self._subs.items()):
            try:
                self.info.unsubscribe(subscription, sub_id)
            except Exception as exc:
                log.debug(dumps({"event": "feed_unsubscribe_error", "sub": key, "err": str(exc)}))
        self._subs.clear()

    async def _watchdog(self) -> None:
        """
        Monitor websocket freshness; resubscribe with exponential backoff if stale.
        """
        backoff = 5.0
        while self._monitoring:
            try:
                await asyncio.sleep(self._watch_interval)
                now = time.time()
                gap = now - self._last_ws_any_msg
                if gap < self._stale_after:
                    backoff = 5.0
                    continue
                if now - self._last_warn_ts >= max(self._watch_interval, backoff):
                    log.warning(dumps({"event": "feed_stale_detected", "symbol": self.symbol, "gap_sec": gap, "backoff": backoff}))
                    self._last_warn_ts = now
                if now - self._last_resubscribe < backoff:
                    continue
                await asyncio.sleep(random.uniform(0, backoff * 0.1))
                self._unsubscribe()
                self._subscribe()
                self._last_resubscribe = time.time()
                log.info(dumps({"event": "feed_resubscribe", "symbol": self.symbol, "backoff": backoff}))
                backoff = min(self._backoff_max, backoff * 2)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                log.error(dumps({"event": "feed_watchdog_error", "symbol": self.symbol, "err": str(exc)}))
                backoff = min(self._backoff_max, backoff * 2)
