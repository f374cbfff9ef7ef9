"""
Tests for Reconciler.
"""
import pytest

from ladderbot.exchange.gateway import ExchangeOrder, OrderSide, OrderStatus
from ladderbot.execution.order_ledger import Order, OrderLedger, order_signature
from ladderbot.execution.reconciliation_service import ReconcileConfig, Reconciler
from ladderbot.execution.trade_stats import StatsAggregator

from conftest import MockGateway

SYMBOL = "HYPE/USDC"


def _ledger_with(*specs):
    ledger = OrderLedger()
    for oid, price, qty in specs:
        ledger.add(Order(
            id=oid,
            symbol=SYMBOL,
            side=OrderSide.BUY,
            price=price,
            quantity=qty,
            signature=order_signature(SYMBOL, price, qty),
        ))
    return ledger


def _exchange_order(oid, price, qty, status, filled_qty=None, filled_amount=None):
    return ExchangeOrder(
        id=oid,
        symbol=SYMBOL,
        side=OrderSide.BUY,
        price=price,
        quantity=qty,
        status=status,
        filled_quantity=filled_qty,
        filled_amount=filled_amount,
    )


@pytest.fixture
def ledger():
    return _ledger_with(("A", 99.0, 1.0), ("B", 98.0, 1.5), ("C", 97.0, 2.0))


@pytest.fixture
def stats():
    return StatsAggregator()


class TestInference:
    @pytest.mark.asyncio
    async def test_missing_from_open_set_inferred_filled_when_history_fails(self, ledger, stats):
        gw = MockGateway()
        gw.fail_history = True
        gw.open = [_exchange_order("B", 98.0, 1.5, OrderStatus.NEW)]
        rec = Reconciler(SYMBOL, gw, ledger, stats.is_processed)

        result = await rec.reconcile()

        assert result.success
        assert not result.history_ok
        assert result.open_orders_ok
        assert result.filled_ids == {"A", "C"}
        assert result.inferred_count == 2
        for order in result.newly_filled:
            assert order.status == OrderStatus.FILLED
            assert order.filled_quantity == order.quantity
        assert ledger.get("B").status == OrderStatus.NEW
        assert ledger.pending_ids == {"B"}

    @pytest.mark.asyncio
    async def test_open_orders_failure_skips_inference(self, ledger, stats):
        gw = MockGateway()
        gw.fail_open_orders = True
        ledger.update_pending_ids(["A", "B", "C"])
        rec = Reconciler(SYMBOL, gw, ledger, stats.is_processed)

        result = await rec.reconcile()

        assert result.history_ok
        assert not result.open_orders_ok
        assert result.newly_filled == []
        assert ledger.pending_ids == {"A", "B", "C"}

    @pytest.mark.asyncio
    async def test_both_fail(self, ledger, stats):
        gw = MockGateway()
        gw.fail_history = True
        gw.fail_open_orders = True
        rec = Reconciler(SYMBOL, gw, ledger, stats.is_processed)

        result = await rec.reconcile()

        assert not result.success
        assert "history" in result.error
        assert "open_orders" in result.error

    @pytest.mark.asyncio
    async def test_processed_orders_not_reported_again(self, ledger, stats):
        gw = MockGateway()
        rec = Reconciler(SYMBOL, gw, ledger, stats.is_processed)

        first = await rec.reconcile()
        for order in first.newly_filled:
            stats.update(order)
        second = await rec.reconcile()

        assert first.filled_ids == {"A", "B", "C"}
        assert second.newly_filled == []
        assert stats.filled_orders == 3


class TestHistory:
    @pytest.mark.asyncio
    async def test_history_fill_uses_reported_values(self, ledger, stats):
        gw = MockGateway()
        gw.history = [_exchange_order("A", 99.0, 1.0, OrderStatus.FILLED, 0.8, 79.0)]
        gw.open = [
            _exchange_order("B", 98.0, 1.5, OrderStatus.NEW),
            _exchange_order("C", 97.0, 2.0, OrderStatus.NEW),
        ]
        rec = Reconciler(SYMBOL, gw, ledger, stats.is_processed)

        result = await rec.reconcile()

        assert result.filled_ids == {"A"}
        assert result.inferred_count == 0
        order = ledger.get("A")
        assert order.filled_quantity == 0.8
        assert order.filled_amount == 79.0

    @pytest.mark.asyncio
    async def test_cancelled_in_history_is_not_inferred(self, ledger, stats):
        gw = MockGateway()
        gw.history = [_exchange_order("C", 97.0, 2.0, OrderStatus.CANCELLED)]
        gw.open = [_exchange_order("B", 98.0, 1.5, OrderStatus.NEW)]
        rec = Reconciler(SYMBOL, gw, ledger, stats.is_processed)

        result = await rec.reconcile()

        assert result.filled_ids == {"A"}
        assert ledger.get("C").status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_unknown_history_entries_ignored(self, ledger, stats):
        gw = MockGateway()
        gw.history = [_exchange_order("Z", 50.0, 1.0, OrderStatus.FILLED, 1.0, 50.0)]
        gw.open = [
            _exchange_order("A", 99.0, 1.0, OrderStatus.NEW),
            _exchange_order("B", 98.0, 1.5, OrderStatus.NEW),
            _exchange_order("C", 97.0, 2.0, OrderStatus.NEW),
        ]
        rec = Reconciler(SYMBOL, gw, ledger, stats.is_processed)

        result = await rec.reconcile()

        assert result.newly_filled == []


@pytest.mark.asyncio
async def test_log_callback_receives_fill_event(ledger, stats):
    events = []
    gw = MockGateway()
    rec = Reconciler(
        SYMBOL,
        gw,
        ledger,
        stats.is_processed,
        ReconcileConfig(log_event_callback=lambda event, **kw: events.append((event, kw))),
    )

    await rec.reconcile()

    assert events[0][0] == "reconcile_fills"
    assert events[0][1]["filled"] == ["A", "B", "C"]
