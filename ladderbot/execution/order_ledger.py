"""
OrderLedger: local record of the orders created in the current cycle.

Handles:
- Registration by exchange id with a (symbol, price, quantity) signature index
- Per-order fill state, written only by the Reconciler (to Filled) or by an
  explicit cancel (to Cancelled)
- The open-order id set last observed on the exchange

Duplicate prevention is the caller's job: the signature check and the order
submission straddle an exchange round-trip, so add() only refuses and logs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from ladderbot.core.json_utils import dumps
from ladderbot.exchange.gateway import OrderSide, OrderStatus

log = logging.getLogger("ladderbot")


def order_signature(symbol: str, price: float, quantity: float, price_decimals: int = 2, qty_decimals: int = 6) -> str:
    """Dedup key for economically identical orders, e.g. 'HYPE/USDC_24.50_1.250000'."""
    return f"{symbol}_{price:.{price_decimals}f}_{quantity:.{qty_decimals}f}"


@dataclass
class Order:
    id: str
    symbol: str
    side: OrderSide
    price: float
    quantity: float
    signature: str
    filled_quantity: float = 0.0
    filled_amount: float = 0.0
    status: OrderStatus = OrderStatus.NEW
    created_at: float = 0.0

    def mark_filled(self, filled_quantity: Optional[float] = None, filled_amount: Optional[float] = None) -> None:
        """Missing fill data means the whole order filled at its limit price."""
        qty = filled_quantity if filled_quantity and filled_quantity > 0 else self.quantity
        amount = filled_amount if filled_amount and filled_amount > 0 else self.price * qty
        self.filled_quantity = qty
        self.filled_amount = amount
        self.status = OrderStatus.FILLED


@dataclass
class OrderLedger:
    orders: Dict[str, Order] = field(default_factory=dict)
    signatures: Set[str] = field(default_factory=set)
    pending_ids: Set[str] = field(default_factory=set)

    def add(self, order: Order) -> bool:
        if order.signature in self.signatures:
            log.warning(dumps({"event": "ledger_duplicate_signature", "signature": order.signature, "id": order.id}))
            return False
        if order.id in self.orders:
            log.warning(dumps({"event": "ledger_duplicate_id", "id": order.id}))
            return False
        self.orders[order.id] = order
        self.signatures.add(order.signature)
        return True

    def get(self, order_id: str) -> Optional[Order]:
        return self.orders.get(order_id)

    def has_signature(self, signature: str) -> bool:
        return signature in self.signatures

    def all_created_ids(self) -> Set[str]:
        return set(self.orders)

    def update_pending_ids(self, ids: Iterable[str]) -> None:
        self.pending_ids = set(ids)

    def open_orders(self) -> List[Order]:
        return [o for o in self.orders.values() if o.status == OrderStatus.NEW]

    def mark_open_cancelled(self) -> int:
        """Flip every still-New order to Cancelled after a successful cancel-all."""
        count = 0
        for order in self.orders.values():
            if order.status == OrderStatus.NEW:
                order.status = OrderStatus.CANCELLED
                count += 1
        return count

    def reset(self) -> None:
        self.orders.clear()
        self.signatures.clear()
        self.pending_ids.clear()

    def __len__(self) -> int:
        return len(self.orders)
