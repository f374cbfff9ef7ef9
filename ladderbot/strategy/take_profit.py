"""
Take-profit evaluation. Stateless; the one-shot guard lives in the orchestrator.
"""

from __future__ import annotations

from typing import Optional


def increase_percent(current_price: float, average_price: Optional[float]) -> Optional[float]:
    if average_price is None or average_price <= 0 or current_price <= 0:
        return None
    return (current_price - average_price) / average_price * 100.0


def is_take_profit_triggered(current_price: float, average_price: Optional[float], threshold_pct: float) -> bool:
    increase = increase_percent(current_price, average_price)
    if increase is None:
        return False
    return increase >= threshold_pct


def progress_percent(current_price: float, average_price: Optional[float], threshold_pct: float) -> float:
    """Progress toward the target in [0, 100]; 0 when the price is not above cost."""
    increase = increase_percent(current_price, average_price)
    if increase is None or increase <= 0 or threshold_pct <= 0:
        return 0.0
    return min(100.0, max(0.0, increase / threshold_pct * 100.0))
