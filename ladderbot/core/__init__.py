"""
Core helpers shared by every layer: JSON encoding, numeric parsing, rounding.
"""

from ladderbot.core.json_utils import dumps, loads
from ladderbot.core.utils import (
    floor_to_decimals,
    floor_to_step,
    format_duration,
    hl_round_price,
    now_ms,
    to_positive_float,
)

__all__ = [
    "dumps",
    "loads",
    "floor_to_decimals",
    "floor_to_step",
    "format_duration",
    "hl_round_price",
    "now_ms",
    "to_positive_float",
]
