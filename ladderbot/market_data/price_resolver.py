"""
PriceResolver: one current price out of several ranked sources.

Sources, highest precedence first:
1. HeldPriceSource       last value pushed by the feed callback (or refreshed by the poll timer / API)
2. MonitorPriceSource    the feed's own current_price
3. TransportPriceSource  the feed's last raw websocket message
4. ApiPriceSource        async ticker fetch; lands in slot 1 for the *next* resolve()

The first source that yields a positive price wins. Lower sources are not
consulted once a higher one answers, and resolve() never awaits.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from ladderbot.core.json_utils import dumps
from ladderbot.core.utils import to_positive_float
from ladderbot.market_data.price_feed import price_from_message

log = logging.getLogger("ladderbot")


class PriceSource(Enum):
    PUSH = "push"
    POLL_MONITOR = "poll-monitor"
    POLL_TRANSPORT = "poll-transport"
    API = "api"


@dataclass(frozen=True)
class PriceInfo:
    price: float
    symbol: str
    source: PriceSource
    update_time: float
    increase: Optional[float] = None  # percent vs average cost

    def age(self, now: Optional[float] = None) -> float:
        return max(0.0, (now if now is not None else time.time()) - self.update_time)


class PriceProvider(Protocol):
    source: PriceSource

    def current(self) -> Optional[PriceInfo]: ...


class HeldPriceSource:
    source = PriceSource.PUSH

    def __init__(self) -> None:
        self._held: Optional[PriceInfo] = None

    def remember(self, info: PriceInfo) -> None:
        if to_positive_float(info.price) is None:
            return
        self._held = info

    def clear(self) -> None:
        self._held = None

    def current(self) -> Optional[PriceInfo]:
        return self._held


class MonitorPriceSource:
    source = PriceSource.POLL_MONITOR

    def __init__(self, feed, symbol: str) -> None:
        self._feed = feed
        self._symbol = symbol

    def current(self) -> Optional[PriceInfo]:
        price = to_positive_float(getattr(self._feed, "current_price", None))
        if price is None:
            return None
        # no timestamp: treat as oldest so a timed value always wins
        ts = getattr(self._feed, "last_update_time", None) or 0.0
        return PriceInfo(price=price, symbol=self._symbol, source=self.source, update_time=ts)


class TransportPriceSource:
    source = PriceSource.POLL_TRANSPORT

    def __init__(self, feed, symbol: str) -> None:
        self._feed = feed
        self._symbol = symbol

    def current(self) -> Optional[PriceInfo]:
        price = price_from_message(getattr(self._feed, "last_message", None))
        if price is None:
            return None
        ts = getattr(self._feed, "last_message_time", None) or 0.0
        return PriceInfo(price=price, symbol=self._symbol, source=self.source, update_time=ts)


class ApiPriceSource:
    """
    Never answers synchronously. current() starts a ticker fetch (at most one
    in flight) and returns None; the result is handed to on_result.
    """

    source = PriceSource.API

    def __init__(
        self,
        gateway,
        symbol: str,
        spawn: Callable[[str, Awaitable[Any]], Any],
        on_result: Callable[[PriceInfo, int], None],
        generation: Callable[[], int],
    ) -> None:
        self._gateway = gateway
        self._symbol = symbol
        self._spawn = spawn
        self._on_result = on_result
        self._generation = generation
        self.in_flight = False

    def current(self) -> Optional[PriceInfo]:
        if not self.in_flight:
            self.in_flight = True
            self._spawn("price_api_fetch", self._fetch(self._generation()))
        return None

    async def _fetch(self, generation: int) -> None:
        try:
            ticker = await self._gateway.get_ticker(self._symbol)
            price = to_positive_float(ticker.last_price)
            if price is None:
                log.warning(dumps({"event": "price_unavailable", "symbol": self._symbol, "source": self.source.value}))
                return
            self._on_result(
                PriceInfo(price=price, symbol=self._symbol, source=self.source, update_time=time.time()),
                generation,
            )
        except Exception as exc:
            log.warning(dumps({"event": "price_api_error", "symbol": self._symbol, "err": str(exc)}))
        finally:
            self.in_flight = False


class PriceResolver:
    def __init__(self, symbol: str, feed, gateway, spawn: Callable[[str, Awaitable[Any]], Any]) -> None:
        self.symbol = symbol
        self._generation = 0
        self.held = HeldPriceSource()
        self.monitor = MonitorPriceSource(feed, symbol)
        self.transport = TransportPriceSource(feed, symbol)
        self.api = ApiPriceSource(gateway, symbol, spawn, self._on_api_result, lambda: self._generation)
        self.providers: List[PriceProvider] = [self.held, self.monitor, self.transport, self.api]
        self.last: Optional[PriceInfo] = None

    def remember(self, info: PriceInfo) -> None:
        self.held.remember(info)

    def resolve(self, average_price: Optional[float] = None) -> Optional[PriceInfo]:
        for provider in self.providers:
            info = provider.current()
            if info is None or to_positive_float(info.price) is None:
                continue
            self.last = self._with_increase(info, average_price)
            return self.last
        return None

    def refresh_from_cache(self) -> Optional[PriceInfo]:
        """Pull the freshest cached feed value into slot 1."""
        candidates = [c for c in (self.monitor.current(), self.transport.current()) if c is not None]
        if not candidates:
            return None
        freshest = max(candidates, key=lambda c: c.update_time)
        held = self.held.current()
        if held is None or freshest.update_time >= held.update_time:
            self.held.remember(freshest)
        return freshest

    def clear(self) -> None:
        """Forget every cached value; in-flight API results are discarded."""
        self._generation += 1
        self.held.clear()
        self.last = None

    def _on_api_result(self, info: PriceInfo, generation: int) -> None:
        if generation != self._generation:
            return
        self.held.remember(info)

    @staticmethod
    def _with_increase(info: PriceInfo, average_price: Optional[float]) -> PriceInfo:
        if average_price is None or average_price <= 0:
            return replace(info, increase=None)
        return replace(info, increase=(info.price - average_price) / average_price * 100.0)
