"""
Utility helpers: time, numeric parsing and exchange rounding.
"""

from __future__ import annotations

import math
import time
from decimal import Decimal, ROUND_DOWN, InvalidOperation
from typing import Any, Optional


def now_ms() -> int:
    return int(time.time() * 1000)


def to_positive_float(value: Any) -> Optional[float]:
    """
    Parse an exchange-supplied number.

    Returns None for anything that is not a finite number > 0, so callers
    can treat garbage and "no data" the same way.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num) or num <= 0:
        return None
    return num


def step_to_decimals(step: float) -> int:
    if step <= 0:
        return 8
    s = f"{step:.10f}".rstrip("0")
    if "." in s:
        return max(0, len(s.split(".")[1]))
    return 0


def floor_to_step(qty: float, step: float) -> float:
    """
    Floor a quantity to the exchange lot-size step.

    Uses Decimal so 0.3 / 0.1 style float artefacts never drop a whole step.
    """
    if qty <= 0:
        return 0.0
    if step <= 0:
        return qty
    try:
        q = Decimal(str(round(qty, 12)))
        s = Decimal(str(step))
        steps = (q / s).to_integral_value(rounding=ROUND_DOWN)
        return float(steps * s)
    except InvalidOperation:
        return 0.0


def floor_to_decimals(px: float, decimals: int) -> float:
    """Round a price down to a fixed number of decimals."""
    if px <= 0:
        return 0.0
    quantum = Decimal(1).scaleb(-max(0, decimals))
    # round(.., 10) drops float noise such as 99.69999999999999 before flooring
    return float(Decimal(str(round(px, 10))).quantize(quantum, rounding=ROUND_DOWN))


def hl_round_price(px: float, sz_decimals: int, is_perp: bool = False) -> float:
    """
    Hyperliquid price rounding per docs:
    - Perps: up to 5 significant figures, and at most (6 - szDecimals) decimals.
    - Spot:   up to 5 significant figures, and at most (8 - szDecimals) decimals.
    - If px > 100_000, round to int.
    """
    if px > 100_000:
        return round(px)
    max_decimals = (6 - sz_decimals) if is_perp else (8 - sz_decimals)
    max_decimals = max(0, max_decimals)
    sig_5 = float(f"{px:.5g}")
    return round(sig_5, max_decimals)


def format_duration(seconds: float) -> str:
    """Render elapsed seconds as e.g. '2h 05m 09s'."""
    seconds = max(0, int(seconds))
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"
