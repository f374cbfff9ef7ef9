"""
Hyperliquid spot implementation of ExchangeGateway.

Signed actions go through AsyncExchange (SDK in a thread pool); reads go
through the HTTP/2 AsyncInfo client. The SDK Info instance is only used for
its name/asset maps, so "HYPE/USDC" style symbols resolve to the wire coin
key ("@107") that open orders and history report.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ladderbot.core.json_utils import dumps
from ladderbot.core.utils import hl_round_price, now_ms, to_positive_float
from ladderbot.exchange.gateway import (
    ExchangeOrder,
    OrderAck,
    OrderRequest,
    OrderSide,
    OrderStatus,
    Position,
    Ticker,
)

log = logging.getLogger("ladderbot")

_CANCELLED_STATES = {"canceled", "cancelled", "marginCanceled", "rejected", "reduceOnlyCanceled"}


class HyperliquidGateway:
    def __init__(self, info, async_info, exchange, account: str) -> None:
        self._info = info
        self._async_info = async_info
        self._exchange = exchange
        self._account = account

    def coin_key(self, symbol: str) -> str:
        return self._info.name_to_coin.get(symbol, symbol)

    def _sz_decimals(self, symbol: str) -> int:
        try:
            return int(self._info.asset_to_sz_decimals[self._info.name_to_asset(symbol)])
        except (KeyError, TypeError, ValueError):
            return 2

    async def get_ticker(self, symbol: str) -> Ticker:
        mids = await self._async_info.all_mids()
        price = None
        if isinstance(mids, dict):
            price = to_positive_float(mids.get(self.coin_key(symbol)))
        return Ticker(symbol=symbol, last_price=price, time_ms=now_ms())

    async def create_order(self, request: OrderRequest) -> OrderAck:
        is_buy = request.side == OrderSide.BUY
        px = hl_round_price(request.price, self._sz_decimals(request.symbol))
        resp = await self._exchange.order(
            request.symbol,
            is_buy,
            request.quantity,
            px,
            {"limit": {"tif": "Gtc"}},
        )
        return self._parse_order_response(resp, px, request.quantity)

    async def create_sell_order(self, price: float, quantity: float, symbol: str) -> OrderAck:
        return await self.create_order(OrderRequest(symbol=symbol, side=OrderSide.SELL, price=price, quantity=quantity))

    async def cancel_all_orders(self, symbol: str) -> bool:
        open_orders = await self.get_open_orders(symbol)
        if not open_orders:
            return True
        cancels = [{"coin": symbol, "oid": int(o.id)} for o in open_orders]
        resp = await self._exchange.bulk_cancel(cancels)
        err = _extract_error(resp)
        if err:
            log.warning(dumps({"event": "cancel_all_partial", "symbol": symbol, "err": err}))
            return False
        return True

    async def get_open_orders(self, symbol: str) -> List[ExchangeOrder]:
        raw = await self._async_info.frontend_open_orders(self._account)
        coin = self.coin_key(symbol)
        orders: List[ExchangeOrder] = []
        for entry in raw or []:
            if not isinstance(entry, dict) or entry.get("coin") != coin:
                continue
            order = _to_exchange_order(entry, symbol, OrderStatus.NEW)
            if order is not None:
                orders.append(order)
        return orders

    async def get_order_history(self, symbol: str) -> List[ExchangeOrder]:
        raw = await self._async_info.historical_orders(self._account)
        coin = self.coin_key(symbol)
        orders: List[ExchangeOrder] = []
        for entry in raw or []:
            if not isinstance(entry, dict):
                continue
            body = entry.get("order")
            if not isinstance(body, dict) or body.get("coin") != coin:
                continue
            state = str(entry.get("status", ""))
            if state == "filled":
                status = OrderStatus.FILLED
            elif state in _CANCELLED_STATES:
                status = OrderStatus.CANCELLED
            else:
                status = OrderStatus.NEW
            order = _to_exchange_order(body, symbol, status)
            if order is not None:
                orders.append(order)
        return orders

    async def get_position(self, coin: str) -> Position:
        state = await self._async_info.spot_user_state(self._account)
        balances = state.get("balances", []) if isinstance(state, dict) else []
        for bal in balances:
            if not isinstance(bal, dict) or bal.get("coin") != coin:
                continue
            total = to_positive_float(bal.get("total")) or 0.0
            hold = to_positive_float(bal.get("hold")) or 0.0
            return Position(coin=coin, available=max(0.0, total - hold), total=total)
        return Position(coin=coin, available=0.0, total=0.0)

    def _parse_order_response(self, resp: Any, px: float, qty: float) -> OrderAck:
        err = _extract_error(resp)
        if err:
            return OrderAck(success=False, price=px, quantity=qty, error=err)
        statuses = _extract_statuses(resp)
        st = statuses[0] if statuses else {}
        if isinstance(st.get("filled"), dict):
            filled = st["filled"]
            return OrderAck(
                success=True,
                id=_oid(filled),
                status=OrderStatus.FILLED,
                price=px,
                quantity=qty,
                filled_quantity=to_positive_float(filled.get("totalSz")) or 0.0,
                avg_price=to_positive_float(filled.get("avgPx")),
            )
        if isinstance(st.get("resting"), dict):
            return OrderAck(success=True, id=_oid(st["resting"]), status=OrderStatus.NEW, price=px, quantity=qty)
        return OrderAck(success=False, price=px, quantity=qty, error=f"unrecognized order response: {resp}")


def _to_exchange_order(body: Dict[str, Any], symbol: str, status: OrderStatus) -> Optional[ExchangeOrder]:
    oid = _oid(body)
    price = to_positive_float(body.get("limitPx"))
    orig = to_positive_float(body.get("origSz")) or to_positive_float(body.get("sz"))
    if oid is None or price is None or orig is None:
        return None
    remaining = to_positive_float(body.get("sz")) or 0.0
    filled_qty = max(0.0, orig - remaining)
    if status == OrderStatus.FILLED and filled_qty <= 0:
        filled_qty = orig
    return ExchangeOrder(
        id=oid,
        symbol=symbol,
        side=OrderSide.BUY if body.get("side") == "B" else OrderSide.SELL,
        price=price,
        quantity=orig,
        status=status,
        filled_quantity=filled_qty if filled_qty > 0 else None,
        filled_amount=filled_qty * price if filled_qty > 0 else None,
    )


def _oid(d: Dict[str, Any]) -> Optional[str]:
    oid = d.get("oid")
    if oid is None:
        return None
    return str(oid)


def _extract_statuses(resp: Any) -> List[Dict[str, Any]]:
    if not isinstance(resp, dict):
        return []
    payload: Any = resp.get("response", resp)
    if isinstance(payload, dict) and "data" in payload:
        payload = payload.get("data", payload)
    statuses = payload.get("statuses") if isinstance(payload, dict) else None
    if not isinstance(statuses, list):
        return []
    return [st for st in statuses if isinstance(st, dict)]


def _extract_error(resp: Any) -> Optional[str]:
    if not isinstance(resp, dict):
        return f"unexpected response: {resp!r}"
    if resp.get("status") == "err":
        return str(resp.get("response", resp))
    for st in _extract_statuses(resp):
        if st.get("error"):
            return str(st.get("error"))
    return None

