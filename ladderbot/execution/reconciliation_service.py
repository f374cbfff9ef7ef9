"""
Reconciler: rebuild local fill state from what the exchange reports.

Two phases, each tolerant of the other failing:

Phase A (authoritative)
    Order history. Every Filled entry whose id is in the ledger and not yet
    processed copies the reported filled quantity / amount into the local
    order. Entries reported cancelled are marked Cancelled locally.

Phase B (inferential, always runs)
    Open-order id set. Every ledger order that is still New, not processed
    and absent from that set is inferred Filled. Phase B cannot see partial
    fills: it always assumes the whole order filled at its limit price.

The reconciler never touches StatsAggregator; the caller feeds the returned
orders into it, holding the same lock that guards order placement.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from ladderbot.core.json_utils import dumps
from ladderbot.exchange.gateway import OrderStatus
from ladderbot.execution.order_ledger import Order, OrderLedger

log = logging.getLogger("ladderbot")


@dataclass
class ReconcileConfig:
    """Configuration for Reconciler."""
    log_event_callback: Optional[Callable[..., None]] = None


@dataclass
class ReconcileResult:
    """Result of one reconciliation pass."""
    success: bool
    newly_filled: List[Order] = field(default_factory=list)
    history_ok: bool = False
    open_orders_ok: bool = False
    open_count: int = 0
    inferred_count: int = 0
    elapsed_sec: float = 0.0
    error: Optional[str] = None

    @property
    def filled_ids(self) -> Set[str]:
        return {o.id for o in self.newly_filled}


class Reconciler:
    """
    Usage:
        reconciler = Reconciler(symbol, gateway, ledger, stats.is_processed)
        result = await reconciler.reconcile()
        for order in result.newly_filled:
            stats.update(order)
    """

    def __init__(
        self,
        symbol: str,
        gateway,
        ledger: OrderLedger,
        is_processed: Callable[[str], bool],
        config: Optional[ReconcileConfig] = None,
    ) -> None:
        self.symbol = symbol
        self.gateway = gateway
        self.ledger = ledger
        self.is_processed = is_processed
        self.config = config or ReconcileConfig()
        self._log_event = self.config.log_event_callback or self._default_log

    def _default_log(self, event: str, **kwargs: Any) -> None:
        payload = {"event": event, "symbol": self.symbol, **kwargs}
        log.info(dumps(payload))

    async def reconcile(self) -> ReconcileResult:
        started = time.monotonic()
        newly: Dict[str, Order] = {}
        errors: List[str] = []

        history_ok = await self._apply_history(newly, errors)
        open_ids = await self._fetch_open_ids(errors)
        inferred = 0
        if open_ids is not None:
            inferred = self._infer_from_open_set(open_ids, newly)
            self.ledger.update_pending_ids(open_ids)

        result = ReconcileResult(
            success=history_ok or open_ids is not None,
            newly_filled=list(newly.values()),
            history_ok=history_ok,
            open_orders_ok=open_ids is not None,
            open_count=len(open_ids) if open_ids is not None else 0,
            inferred_count=inferred,
            elapsed_sec=time.monotonic() - started,
            error="; ".join(errors) if errors else None,
        )
        if result.newly_filled:
            self._log_event(
                "reconcile_fills",
                filled=sorted(result.filled_ids),
                inferred=inferred,
                history_ok=history_ok,
            )
        return result

    async def _apply_history(self, newly: Dict[str, Order], errors: List[str]) -> bool:
        try:
            history = await self.gateway.get_order_history(self.symbol)
        except Exception as exc:
            errors.append(f"history: {exc}")
            log.warning(dumps({"event": "reconcile_history_error", "symbol": self.symbol, "err": str(exc)}))
            return False
        for entry in history or []:
            order = self.ledger.get(entry.id)
            if order is None or self.is_processed(order.id):
                continue
            if entry.status == OrderStatus.FILLED:
                order.mark_filled(entry.filled_quantity, entry.filled_amount)
                newly[order.id] = order
            elif entry.status == OrderStatus.CANCELLED and order.status == OrderStatus.NEW:
                order.status = OrderStatus.CANCELLED
                self._log_event("reconcile_cancelled_remote", id=order.id, price=order.price)
        return True

    async def _fetch_open_ids(self, errors: List[str]) -> Optional[Set[str]]:
        try:
            open_orders = await self.gateway.get_open_orders(self.symbol)
        except Exception as exc:
            errors.append(f"open_orders: {exc}")
            log.warning(dumps({"event": "reconcile_open_orders_error", "symbol": self.symbol, "err": str(exc)}))
            return None
        return {o.id for o in open_orders or []}

    def _infer_from_open_set(self, open_ids: Set[str], newly: Dict[str, Order]) -> int:
        inferred = 0
        for order_id in self.ledger.all_created_ids():
            if order_id in open_ids or order_id in newly or self.is_processed(order_id):
                continue
            order = self.ledger.get(order_id)
            if order is None or order.status != OrderStatus.NEW:
                continue
            order.mark_filled()
            newly[order_id] = order
            inferred += 1
        return inferred
