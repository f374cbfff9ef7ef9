"""
Exchange gateway interface consumed by the cycle orchestrator.

The orchestrator, reconciler and liquidator only ever talk to an
ExchangeGateway; HyperliquidGateway is the production implementation and
tests use in-memory fakes.

All calls are request/response and fallible: implementations raise on
transport or API errors and callers catch at the call site.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol


class OrderSide(Enum):
    BUY = "Buy"
    SELL = "Sell"


class OrderStatus(Enum):
    NEW = "New"
    FILLED = "Filled"
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class Ticker:
    symbol: str
    last_price: Optional[float]
    time_ms: int = 0


@dataclass(frozen=True)
class OrderRequest:
    symbol: str
    side: OrderSide
    price: float
    quantity: float
    order_type: str = "limit"


@dataclass
class OrderAck:
    """Exchange response to an order submission."""
    success: bool
    id: Optional[str] = None
    status: OrderStatus = OrderStatus.NEW
    price: float = 0.0
    quantity: float = 0.0
    filled_quantity: float = 0.0
    avg_price: Optional[float] = None
    error: Optional[str] = None

    @property
    def fully_filled(self) -> bool:
        if not self.success or self.status != OrderStatus.FILLED:
            return False
        return self.filled_quantity + 1e-12 >= self.quantity


@dataclass(frozen=True)
class Position:
    coin: str
    available: float
    total: float


@dataclass(frozen=True)
class ExchangeOrder:
    """An order as reported by the exchange (open-order list or history)."""
    id: str
    symbol: str
    side: OrderSide
    price: float
    quantity: float
    status: OrderStatus
    filled_quantity: Optional[float] = None
    filled_amount: Optional[float] = None


class ExchangeGateway(Protocol):
    async def get_ticker(self, symbol: str) -> Ticker: ...

    async def create_order(self, request: OrderRequest) -> OrderAck: ...

    async def create_sell_order(self, price: float, quantity: float, symbol: str) -> OrderAck: ...

    async def cancel_all_orders(self, symbol: str) -> bool: ...

    async def get_open_orders(self, symbol: str) -> List[ExchangeOrder]: ...

    async def get_order_history(self, symbol: str) -> List[ExchangeOrder]: ...

    async def get_position(self, coin: str) -> Position: ...
