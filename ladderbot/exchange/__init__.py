"""
Exchange package: gateway interface and the Hyperliquid spot adapter.
"""

from ladderbot.exchange.gateway import (
    ExchangeGateway,
    ExchangeOrder,
    OrderAck,
    OrderRequest,
    OrderSide,
    OrderStatus,
    Position,
    Ticker,
)
from ladderbot.exchange.hyperliquid_gateway import HyperliquidGateway

__all__ = [
    "ExchangeGateway",
    "ExchangeOrder",
    "HyperliquidGateway",
    "OrderAck",
    "OrderRequest",
    "OrderSide",
    "OrderStatus",
    "Position",
    "Ticker",
]
