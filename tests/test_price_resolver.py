"""
Tests for PriceResolver source precedence and the async API fallback.
"""
import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from ladderbot.exchange.gateway import Ticker
from ladderbot.market_data.price_feed import price_from_message
from ladderbot.market_data.price_resolver import PriceInfo, PriceResolver, PriceSource

from conftest import MockFeed

SYMBOL = "HYPE/USDC"


def _spawn_on_loop(tasks):
    def spawn(name, coro):
        task = asyncio.get_running_loop().create_task(coro)
        tasks.append(task)
        return task
    return spawn


@pytest.fixture
def gateway():
    gw = MagicMock()
    gw.get_ticker = AsyncMock(return_value=Ticker(symbol=SYMBOL, last_price=101.0, time_ms=0))
    return gw


class TestPrecedence:
    def test_held_beats_feed(self, gateway):
        feed = MockFeed()
        feed.current_price = 99.0
        feed.last_update_time = time.time()
        resolver = PriceResolver(SYMBOL, feed, gateway, spawn=MagicMock())
        resolver.remember(PriceInfo(price=100.0, symbol=SYMBOL, source=PriceSource.PUSH, update_time=time.time()))

        info = resolver.resolve()

        assert info.price == 100.0
        assert info.source == PriceSource.PUSH

    def test_monitor_then_transport(self, gateway):
        feed = MockFeed()
        feed.last_message = {"channel": "trades", "data": [{"px": "98.5"}, {"px": "98.7"}]}
        feed.last_message_time = time.time()
        spawn = MagicMock()
        resolver = PriceResolver(SYMBOL, feed, gateway, spawn=spawn)

        info = resolver.resolve()
        assert info.price == 98.7
        assert info.source == PriceSource.POLL_TRANSPORT

        feed.current_price = 99.0
        feed.last_update_time = time.time()
        info = resolver.resolve()
        assert info.price == 99.0
        assert info.source == PriceSource.POLL_MONITOR
        spawn.assert_not_called()

    def test_invalid_values_treated_as_absent(self, gateway):
        feed = MockFeed()
        feed.current_price = 0.0
        feed.last_message = {"data": [{"px": "nan"}]}
        resolver = PriceResolver(SYMBOL, feed, gateway, spawn=MagicMock())
        resolver.remember(PriceInfo(price=-1.0, symbol=SYMBOL, source=PriceSource.PUSH, update_time=0.0))

        assert resolver.resolve() is None

    def test_increase_attached(self, gateway):
        feed = MockFeed()
        resolver = PriceResolver(SYMBOL, feed, gateway, spawn=MagicMock())
        resolver.remember(PriceInfo(price=110.0, symbol=SYMBOL, source=PriceSource.PUSH, update_time=time.time()))

        assert resolver.resolve(100.0).increase == pytest.approx(10.0)
        assert resolver.resolve(None).increase is None


class TestApiFallback:
    @pytest.mark.asyncio
    async def test_api_result_lands_for_next_resolve(self, gateway):
        tasks = []
        resolver = PriceResolver(SYMBOL, MockFeed(), gateway, spawn=_spawn_on_loop(tasks))

        assert resolver.resolve() is None
        assert resolver.resolve() is None  # still in flight, no second fetch
        await asyncio.gather(*tasks)

        assert gateway.get_ticker.await_count == 1
        info = resolver.resolve()
        assert info.price == 101.0
        assert info.source == PriceSource.API

    @pytest.mark.asyncio
    async def test_clear_discards_in_flight_result(self, gateway):
        tasks = []
        resolver = PriceResolver(SYMBOL, MockFeed(), gateway, spawn=_spawn_on_loop(tasks))

        resolver.resolve()
        resolver.clear()
        await asyncio.gather(*tasks)

        assert resolver.held.current() is None

    @pytest.mark.asyncio
    async def test_api_error_is_absorbed(self, gateway):
        gateway.get_ticker = AsyncMock(side_effect=ConnectionError("down"))
        tasks = []
        resolver = PriceResolver(SYMBOL, MockFeed(), gateway, spawn=_spawn_on_loop(tasks))

        assert resolver.resolve() is None
        await asyncio.gather(*tasks)
        assert resolver.resolve() is None
        await asyncio.gather(*tasks)
        assert gateway.get_ticker.await_count == 2


def test_refresh_from_cache_prefers_freshest(gateway):
    feed = MockFeed()
    now = time.time()
    feed.current_price = 99.0
    feed.last_update_time = now - 10
    feed.last_message = {"data": [{"px": "99.5"}]}
    feed.last_message_time = now
    resolver = PriceResolver(SYMBOL, feed, gateway, spawn=MagicMock())

    freshest = resolver.refresh_from_cache()

    assert freshest.price == 99.5
    assert resolver.held.current().price == 99.5


def test_price_from_message():
    assert price_from_message({"data": [{"px": "1.5"}, {"px": "2.5"}]}) == 2.5
    assert price_from_message({"data": []}) is None
    assert price_from_message(None) is None
    assert price_from_message({"data": [{"px": "abc"}]}) is None


def test_untimed_feed_value_does_not_replace_held_push(gateway):
    feed = MockFeed()
    feed.current_price = 99.0
    feed.last_update_time = None
    resolver = PriceResolver(SYMBOL, feed, gateway, spawn=MagicMock())
    pushed = PriceInfo(price=100.0, symbol=SYMBOL, source=PriceSource.PUSH, update_time=time.time())
    resolver.remember(pushed)

    resolver.refresh_from_cache()

    assert resolver.held.current() is pushed
    assert resolver.monitor.current().update_time == 0.0
