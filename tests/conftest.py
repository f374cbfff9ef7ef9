"""
Pytest configuration and shared fixtures.

MockGateway and MockFeed stand in for the Hyperliquid adapters; both record
every call so tests can assert on what the orchestrator asked for.
"""

import asyncio
import time
from typing import List, Optional

import pytest

from ladderbot.config.config import Settings
from ladderbot.exchange.gateway import (
    ExchangeOrder,
    OrderAck,
    OrderRequest,
    OrderStatus,
    Position,
    Ticker,
)


SETTINGS_DEFAULTS = dict(
    base_url="https://api.hyperliquid-testnet.xyz",
    private_key=None,
    agent_key="0x" + "11" * 32,
    user_address="0x0000000000000000000000000000000000000001",
    http_timeout=5.0,
    trading_coin="HYPE",
    quote_asset="USDC",
    total_amount=300.0,
    max_drop_pct=3.0,
    order_count=3,
    increment_pct=0.0,
    min_order_amount=10.0,
    price_decimals=2,
    qty_step=0.01,
    take_profit_pct=5.0,
    sell_offset_pct=0.05,
    second_sell_offset_pct=0.3,
    liquidation_retry_delay_sec=0.0,
    monitor_interval_sec=60.0,
    price_poll_interval_sec=60.0,
    heartbeat_interval_sec=60.0,
    status_interval_sec=15.0,
    no_fill_restart_min=60.0,
    ws_stale_after=30.0,
    ws_watch_interval=5.0,
    auto_restart_no_fill=False,
    restart_after_take_profit=False,
    log_dir="logs",
    log_level="INFO",
    cycle_log_enabled=False,
    metrics_port=9095,
    metrics_token=None,
    alert_webhook_url=None,
    alert_webhook_type="generic",
    alert_enabled=False,
)


def make_settings(**overrides) -> Settings:
    data = dict(SETTINGS_DEFAULTS)
    data.update(overrides)
    return Settings(**data)


class MockGateway:
    """In-memory exchange: resting buys, scripted sells, a spot balance."""

    def __init__(self, price: Optional[float] = 100.0) -> None:
        self.price = price
        self.created: List[OrderRequest] = []
        self.sells: List[tuple] = []
        self.open: List[ExchangeOrder] = []
        self.history: List[ExchangeOrder] = []
        self.positions: List[float] = []
        self.sell_acks: List[OrderAck] = []
        self.cancel_calls = 0
        self.fail_history = False
        self.fail_open_orders = False
        self.fail_ticker = False
        self.history_gate: Optional[asyncio.Event] = None
        self._next_id = 1

    async def get_ticker(self, symbol: str) -> Ticker:
        if self.fail_ticker:
            raise ConnectionError("ticker down")
        return Ticker(symbol=symbol, last_price=self.price, time_ms=int(time.time() * 1000))

    async def create_order(self, request: OrderRequest) -> OrderAck:
        self.created.append(request)
        oid = str(self._next_id)
        self._next_id += 1
        self.open.append(ExchangeOrder(
            id=oid,
            symbol=request.symbol,
            side=request.side,
            price=request.price,
            quantity=request.quantity,
            status=OrderStatus.NEW,
        ))
        return OrderAck(success=True, id=oid, status=OrderStatus.NEW, price=request.price, quantity=request.quantity)

    async def create_sell_order(self, price: float, quantity: float, symbol: str) -> OrderAck:
        self.sells.append((price, quantity, symbol))
        if self.sell_acks:
            return self.sell_acks.pop(0)
        return OrderAck(
            success=True,
            id=f"s{len(self.sells)}",
            status=OrderStatus.FILLED,
            price=price,
            quantity=quantity,
            filled_quantity=quantity,
        )

    async def cancel_all_orders(self, symbol: str) -> bool:
        self.cancel_calls += 1
        self.open = []
        return True

    async def get_open_orders(self, symbol: str) -> List[ExchangeOrder]:
        if self.fail_open_orders:
            raise ConnectionError("open orders down")
        return list(self.open)

    async def get_order_history(self, symbol: str) -> List[ExchangeOrder]:
        if self.history_gate is not None:
            await self.history_gate.wait()
        if self.fail_history:
            raise ConnectionError("history down")
        return list(self.history)

    async def get_position(self, coin: str) -> Position:
        available = self.positions.pop(0) if self.positions else 0.0
        return Position(coin=coin, available=available, total=available)

    def fill_all(self) -> None:
        """Every resting order disappears from the book."""
        self.open = []


class MockFeed:
    def __init__(self) -> None:
        self.current_price: Optional[float] = None
        self.last_update_time: Optional[float] = None
        self.last_message = None
        self.last_message_time: Optional[float] = None
        self.callback = None
        self.monitoring = False
        self.start_calls = 0
        self.stop_calls = 0
        self.close_calls = 0

    def set_price_callback(self, callback) -> None:
        self.callback = callback

    async def start_monitoring(self, symbol: str) -> None:
        self.start_calls += 1
        self.monitoring = True

    async def stop_monitoring(self) -> None:
        self.stop_calls += 1
        self.monitoring = False

    def is_monitoring(self) -> bool:
        return self.monitoring

    async def close_connections(self) -> None:
        self.close_calls += 1


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def gateway():
    return MockGateway()


@pytest.fixture
def feed():
    return MockFeed()
