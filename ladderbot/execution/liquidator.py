"""
PositionLiquidator: sell the accumulated position with one lower-priced retry.

Flow:
1. Read the available balance; nothing to sell -> None (normal outcome).
2. Sell at the optimal price (slightly under market), quantity floored to the lot step.
3. Fully filled -> done. Otherwise pull the resting remainder, wait a short
   fixed delay, re-read the balance and sell what is left once more at the
   lower fallback price.
4. Anything still unsold is reported on the result (and via on_incomplete),
   never dropped silently.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ladderbot.core.json_utils import dumps
from ladderbot.core.utils import to_positive_float
from ladderbot.exchange.gateway import OrderAck
from ladderbot.strategy.pricing import (
    adjust_quantity_to_step,
    calculate_optimal_sell_price,
    calculate_second_sell_price,
)

log = logging.getLogger("ladderbot")


@dataclass
class LiquidationConfig:
    sell_offset_pct: float = 0.05
    second_sell_offset_pct: float = 0.3
    price_decimals: int = 2
    qty_step: float = 0.01
    retry_delay_sec: float = 2.0
    log_event_callback: Optional[Callable[..., None]] = None


@dataclass
class LiquidationResult:
    success: bool
    coin: str
    symbol: str
    initial_quantity: float = 0.0
    market_price: Optional[float] = None
    primary: Optional[OrderAck] = None
    second: Optional[OrderAck] = None
    unsold_quantity: float = 0.0
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.success and self.unsold_quantity <= 0

    @property
    def sold_quantity(self) -> float:
        total = 0.0
        for ack in (self.primary, self.second):
            if ack is not None and ack.success:
                total += ack.filled_quantity
        return total


class PositionLiquidator:
    def __init__(
        self,
        gateway,
        config: Optional[LiquidationConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_incomplete: Optional[Callable[[LiquidationResult], Any]] = None,
    ) -> None:
        self.gateway = gateway
        self.config = config or LiquidationConfig()
        self._sleep = sleep
        self._on_incomplete = on_incomplete
        self._log_event = self.config.log_event_callback or self._default_log

    def _default_log(self, event: str, **kwargs: Any) -> None:
        log.info(dumps({"event": event, **kwargs}))

    async def liquidate(self, coin: str, symbol: str) -> Optional[LiquidationResult]:
        cfg = self.config
        try:
            position = await self.gateway.get_position(coin)
        except Exception as exc:
            log.error(dumps({"event": "liquidation_position_error", "coin": coin, "err": str(exc)}))
            return self._finish(LiquidationResult(success=False, coin=coin, symbol=symbol, error=f"position: {exc}"))

        quantity = to_positive_float(position.available)
        if quantity is None:
            self._log_event("liquidation_nothing_to_sell", coin=coin, symbol=symbol)
            return None
        result = LiquidationResult(success=False, coin=coin, symbol=symbol, initial_quantity=quantity, unsold_quantity=quantity)

        try:
            ticker = await self.gateway.get_ticker(symbol)
        except Exception as exc:
            log.error(dumps({"event": "liquidation_ticker_error", "symbol": symbol, "err": str(exc)}))
            result.error = f"ticker: {exc}"
            return self._finish(result)
        market_price = to_positive_float(ticker.last_price)
        if market_price is None:
            result.error = "no market price"
            return self._finish(result)
        result.market_price = market_price

        sell_qty = adjust_quantity_to_step(quantity, cfg.qty_step)
        if sell_qty <= 0:
            result.error = "position below lot size"
            return self._finish(result)
        sell_price = calculate_optimal_sell_price(market_price, cfg.sell_offset_pct, cfg.price_decimals)
        result.primary = await self._submit(sell_price, sell_qty, symbol, attempt=1)
        if result.primary.fully_filled:
            result.success = True
            result.unsold_quantity = 0.0
            return self._finish(result)

        if result.primary.success:
            # A resting remainder holds the balance; pull it before re-reading.
            try:
                await self.gateway.cancel_all_orders(symbol)
            except Exception as exc:
                log.warning(dumps({"event": "liquidation_cancel_error", "symbol": symbol, "err": str(exc)}))
        await self._sleep(cfg.retry_delay_sec)

        try:
            remaining = to_positive_float((await self.gateway.get_position(coin)).available) or 0.0
        except Exception as exc:
            log.warning(dumps({"event": "liquidation_position_error", "coin": coin, "err": str(exc)}))
            remaining = max(0.0, sell_qty - result.primary.filled_quantity)
        if remaining <= 0:
            result.success = True
            result.unsold_quantity = 0.0
            return self._finish(result)

        retry_qty = adjust_quantity_to_step(remaining, cfg.qty_step)
        result.unsold_quantity = remaining
        if retry_qty <= 0:
            result.success = True
            result.error = "remainder below lot size"
            return self._finish(result)
        retry_price = calculate_second_sell_price(
            market_price, cfg.second_sell_offset_pct, cfg.price_decimals, first_price=sell_price
        )
        result.second = await self._submit(retry_price, retry_qty, symbol, attempt=2)
        if result.second.fully_filled:
            result.success = True
            result.unsold_quantity = max(0.0, remaining - retry_qty)
        else:
            result.success = result.second.success
            filled = result.second.filled_quantity if result.second.success else 0.0
            result.unsold_quantity = max(0.0, remaining - filled)
        return self._finish(result)

    async def _submit(self, price: float, quantity: float, symbol: str, attempt: int) -> OrderAck:
        try:
            ack = await self.gateway.create_sell_order(price, quantity, symbol)
        except Exception as exc:
            log.error(dumps({"event": "liquidation_sell_error", "symbol": symbol, "attempt": attempt, "err": str(exc)}))
            return OrderAck(success=False, price=price, quantity=quantity, error=str(exc))
        self._log_event(
            "liquidation_sell",
            symbol=symbol,
            attempt=attempt,
            price=price,
            quantity=quantity,
            id=ack.id,
            status=ack.status,
            filled=ack.filled_quantity,
            error=ack.error,
        )
        return ack

    def _finish(self, result: LiquidationResult) -> LiquidationResult:
        if result.complete:
            self._log_event("liquidation_complete", coin=result.coin, sold=result.initial_quantity)
            return result
        log.warning(dumps({
            "event": "liquidation_incomplete",
            "coin": result.coin,
            "unsold": result.unsold_quantity,
            "error": result.error,
        }))
        if self._on_incomplete is not None:
            try:
                self._on_incomplete(result)
            except Exception as exc:
                log.error(dumps({"event": "liquidation_report_error", "err": str(exc)}))
        return result
