"""
Ladder pricing: the descending schedule of limit buys for one cycle.

Pure calculation with no side effects. Policy:

- Leg i (0-based, N legs) is priced at ``P * (1 - D/100 * (i + 1) / N)``;
  the deepest leg sits exactly D percent below the current price.
- Notional is weighted geometrically: leg i gets ``(1 + I/100) ** i`` shares
  of the budget, so each deeper leg is I percent larger than the one above.
- A leg whose notional is below the minimum order amount is merged into the
  next deeper leg. A sub-minimum remainder left after the deepest leg is
  merged into the last emitted leg. A budget below the minimum yields no
  orders.
- Prices are floored to ``price_decimals`` and quantities to ``qty_step``;
  legs that round to zero quantity are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from ladderbot.core.utils import floor_to_decimals, floor_to_step


@dataclass(frozen=True)
class LadderParams:
    max_drop_pct: float
    total_amount: float
    order_count: int
    increment_pct: float
    min_order_amount: float = 0.0
    price_decimals: int = 2
    qty_step: float = 0.000001


@dataclass(frozen=True)
class LadderOrder:
    price: float
    quantity: float

    @property
    def amount(self) -> float:
        return self.price * self.quantity


def leg_weights(order_count: int, increment_pct: float) -> List[float]:
    growth = 1.0 + increment_pct / 100.0
    return [growth ** i for i in range(order_count)]


def calculate_ladder_orders(current_price: float, params: LadderParams) -> List[LadderOrder]:
    if current_price <= 0 or params.order_count <= 0 or params.total_amount <= 0:
        return []

    n = params.order_count
    weights = leg_weights(n, params.increment_pct)
    total_weight = sum(weights)
    legs = [
        (current_price * (1.0 - params.max_drop_pct / 100.0 * (i + 1) / n), params.total_amount * w / total_weight)
        for i, w in enumerate(weights)
    ]

    merged: List[List[float]] = []
    carry = 0.0
    for price, notional in legs:
        notional += carry
        carry = 0.0
        if notional < params.min_order_amount:
            carry = notional
            continue
        merged.append([price, notional])
    if carry > 0 and merged:
        merged[-1][1] += carry

    orders: List[LadderOrder] = []
    for price, notional in merged:
        px = floor_to_decimals(price, params.price_decimals)
        if px <= 0:
            continue
        qty = floor_to_step(notional / px, params.qty_step)
        if qty <= 0:
            continue
        orders.append(LadderOrder(price=px, quantity=qty))
    return orders
