"""
Strategy package - pure pricing logic.

Ladder schedule for buys, sell pricing for liquidation and the take-profit
check. Nothing here performs I/O.
"""

from ladderbot.strategy.ladder import LadderOrder, LadderParams, calculate_ladder_orders
from ladderbot.strategy.pricing import (
    adjust_quantity_to_step,
    calculate_optimal_sell_price,
    calculate_second_sell_price,
)
from ladderbot.strategy.take_profit import (
    increase_percent,
    is_take_profit_triggered,
    progress_percent,
)

__all__ = [
    "LadderOrder",
    "LadderParams",
    "calculate_ladder_orders",
    "adjust_quantity_to_step",
    "calculate_optimal_sell_price",
    "calculate_second_sell_price",
    "increase_percent",
    "is_take_profit_triggered",
    "progress_percent",
]
