"""
Sell pricing for liquidation.

Both prices sit below the market so a limit sell crosses the book; the
retry price is always strictly lower than the first attempt.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from ladderbot.core.utils import floor_to_decimals, floor_to_step


def calculate_optimal_sell_price(market_price: float, offset_pct: float, price_decimals: int) -> float:
    return floor_to_decimals(market_price * (1.0 - offset_pct / 100.0), price_decimals)


def calculate_second_sell_price(
    market_price: float,
    offset_pct: float,
    price_decimals: int,
    first_price: Optional[float] = None,
) -> float:
    px = floor_to_decimals(market_price * (1.0 - offset_pct / 100.0), price_decimals)
    if first_price is not None and px >= first_price:
        # one tick under the first attempt
        tick = Decimal(1).scaleb(-max(0, price_decimals))
        px = float(Decimal(str(first_price)).quantize(tick) - tick)
    return px


def adjust_quantity_to_step(quantity: float, qty_step: float) -> float:
    """Floor to the lot size; never rounds up past what is held."""
    return floor_to_step(quantity, qty_step)
