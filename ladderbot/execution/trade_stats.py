"""
StatsAggregator: running totals for one cycle, fed by reconciled fills.

average_price is always derived from the totals, never stored.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from ladderbot.exchange.gateway import OrderStatus
from ladderbot.execution.order_ledger import Order


@dataclass
class TradeStats:
    total_orders: int = 0
    filled_orders: int = 0
    total_filled_quantity: float = 0.0
    total_filled_amount: float = 0.0
    processed_order_ids: Set[str] = field(default_factory=set)
    last_update_time: Optional[float] = None

    @property
    def average_price(self) -> Optional[float]:
        if self.filled_orders <= 0 or self.total_filled_quantity <= 0:
            return None
        return self.total_filled_amount / self.total_filled_quantity


class StatsAggregator:
    def __init__(self) -> None:
        self.stats = TradeStats()

    @property
    def average_price(self) -> Optional[float]:
        return self.stats.average_price

    @property
    def filled_orders(self) -> int:
        return self.stats.filled_orders

    def record_order_placed(self) -> None:
        self.stats.total_orders += 1
        self.stats.last_update_time = time.time()

    def is_processed(self, order_id: str) -> bool:
        return order_id in self.stats.processed_order_ids

    def update(self, order: Order) -> bool:
        """
        Record a filled order once. Returns True if the totals changed.
        """
        if order.status != OrderStatus.FILLED or order.id in self.stats.processed_order_ids:
            return False
        self.stats.processed_order_ids.add(order.id)
        self.stats.total_filled_quantity += order.filled_quantity
        self.stats.total_filled_amount += order.filled_amount
        self.stats.filled_orders += 1
        self.stats.last_update_time = time.time()
        return True

    def unrealized_pnl(self, price: Optional[float]) -> Optional[float]:
        avg = self.average_price
        if avg is None or price is None or price <= 0:
            return None
        return (price - avg) * self.stats.total_filled_quantity

    def snapshot(self) -> Dict[str, Any]:
        s = self.stats
        return {
            "total_orders": s.total_orders,
            "filled_orders": s.filled_orders,
            "total_filled_quantity": s.total_filled_quantity,
            "total_filled_amount": s.total_filled_amount,
            "average_price": s.average_price,
            "last_update_time": s.last_update_time,
        }

    def reset(self) -> None:
        self.stats = TradeStats()
