"""
Execution package: order ledger, fill reconciliation, stats and liquidation.
"""

from ladderbot.execution.liquidator import LiquidationConfig, LiquidationResult, PositionLiquidator
from ladderbot.execution.order_ledger import Order, OrderLedger, order_signature
from ladderbot.execution.reconciliation_service import ReconcileConfig, Reconciler, ReconcileResult
from ladderbot.execution.trade_stats import StatsAggregator, TradeStats

__all__ = [
    "LiquidationConfig",
    "LiquidationResult",
    "PositionLiquidator",
    "Order",
    "OrderLedger",
    "order_signature",
    "ReconcileConfig",
    "Reconciler",
    "ReconcileResult",
    "StatsAggregator",
    "TradeStats",
]
