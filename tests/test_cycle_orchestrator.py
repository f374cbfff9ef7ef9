"""
Tests for CycleOrchestrator: placement, take-profit, no-fill restart, stop.
"""
import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from ladderbot.exchange.gateway import ExchangeOrder, OrderSide, OrderStatus, Position
from ladderbot.market_data.price_feed import PriceTick
from ladderbot.monitoring.metrics_rich import RichMetrics
from ladderbot.orchestrator.cycle_orchestrator import CycleOrchestrator, CyclePhase, ExitReason

from conftest import MockFeed, MockGateway, make_settings

SYMBOL = "HYPE/USDC"


def _tick(price):
    return PriceTick(price=price, symbol=SYMBOL, time=time.time())


async def _until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


def _orchestrator(gw, feed, settings=None, load_settings=None, **kw):
    settings = settings or make_settings()
    kw.setdefault("sleep", AsyncMock())
    return CycleOrchestrator(gw, feed, load_settings=load_settings or (lambda: settings), **kw)


@pytest.fixture
async def running(gateway, feed):
    orch = _orchestrator(gateway, feed)
    await orch.start()
    yield orch
    await orch.stop()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start(self, gateway, feed):
        orch = _orchestrator(gateway, feed)
        assert await orch.start()
        try:
            assert orch.running
            assert orch.phase == CyclePhase.RUNNING
            assert feed.start_calls == 1
            assert feed.callback == orch.handle_price_update
            assert orch.current_price.price == 100.0
            assert "price_poll" in orch.scope
        finally:
            await orch.stop()

    @pytest.mark.asyncio
    async def test_start_refused_when_running(self, running, feed):
        assert not await running.start()
        assert feed.start_calls == 1

    @pytest.mark.asyncio
    async def test_start_survives_ticker_failure(self, gateway, feed):
        gateway.fail_ticker = True
        orch = _orchestrator(gateway, feed)
        assert await orch.start()
        assert orch.current_price is None
        await orch.stop()

    @pytest.mark.asyncio
    async def test_double_stop_is_noop(self, gateway, feed):
        orch = _orchestrator(gateway, feed)
        await orch.start()
        await orch.stop()
        cancels = gateway.cancel_calls

        await orch.stop()

        assert gateway.cancel_calls == cancels
        assert feed.stop_calls == 1
        assert feed.close_calls == 1
        assert orch.phase == CyclePhase.STOPPED
        assert not orch.running
        assert orch.scope.names() == []

    @pytest.mark.asyncio
    async def test_stop_before_start(self, gateway, feed):
        orch = _orchestrator(gateway, feed)
        await orch.stop()
        assert orch.phase == CyclePhase.IDLE
        assert feed.stop_calls == 0

    @pytest.mark.asyncio
    async def test_stop_survives_cleanup_failures(self, gateway, feed):
        gateway.cancel_all_orders = AsyncMock(side_effect=ConnectionError("down"))
        feed.stop_monitoring = AsyncMock(side_effect=RuntimeError("ws gone"))
        feed.close_connections = AsyncMock(side_effect=RuntimeError("ws gone"))
        orch = _orchestrator(gateway, feed)
        await orch.start()

        await orch.stop()

        assert not orch.running
        assert orch.phase == CyclePhase.STOPPED
        assert orch.stopped.is_set()

    @pytest.mark.asyncio
    async def test_price_updates_ignored_when_not_running(self, gateway, feed):
        orch = _orchestrator(gateway, feed)
        orch.handle_price_update(_tick(50.0))
        assert orch.current_price is None


class TestPlacement:
    @pytest.mark.asyncio
    async def test_places_ladder_and_starts_monitoring(self, running, gateway):
        result = await running.execute_trade()

        assert result.success
        assert result.placed == 3
        assert [o.price for o in gateway.created] == [99.0, 98.0, 97.0]
        assert all(o.side == OrderSide.BUY for o in gateway.created)
        assert gateway.cancel_calls == 1
        assert len(running.ledger) == 3
        assert running.stats.stats.total_orders == 3
        assert "monitor" in running.scope
        assert "heartbeat" in running.scope
        assert "no_fill" not in running.scope

    @pytest.mark.asyncio
    async def test_existing_signatures_skipped(self, running, gateway):
        await running.execute_trade()
        result = await running.execute_trade()

        assert result.skipped_duplicates == 3
        assert result.placed == 0
        assert len(gateway.created) == 3

    @pytest.mark.asyncio
    async def test_config_error_aborts_only_placement(self, gateway, feed):
        orch = _orchestrator(gateway, feed, settings=make_settings(total_amount=None))
        await orch.start()
        try:
            result = await orch.execute_trade()

            assert not result.success
            assert "total_amount" in result.error
            assert gateway.created == []
            assert orch.running
        finally:
            await orch.stop()

    @pytest.mark.asyncio
    async def test_empty_ladder_does_not_monitor(self, gateway, feed):
        orch = _orchestrator(gateway, feed, settings=make_settings(total_amount=5.0))
        await orch.start()
        try:
            result = await orch.execute_trade()

            assert not result.success
            assert result.error == "empty ladder"
            assert "monitor" not in orch.scope
        finally:
            await orch.stop()

    @pytest.mark.asyncio
    async def test_not_running(self, gateway, feed):
        orch = _orchestrator(gateway, feed)
        result = await orch.execute_trade()
        assert not result.success
        assert gateway.created == []

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, gateway, feed):
        metrics = RichMetrics()
        orch = _orchestrator(gateway, feed, metrics=metrics)
        await orch.start()
        try:
            await orch.execute_trade()
            reg = metrics.get_registry()
            assert reg.get_sample_value("orders_submitted_total", {"coin": "HYPE"}) == 3.0
            assert reg.get_sample_value("running", {"coin": "HYPE"}) == 1.0
        finally:
            await orch.stop()
        assert metrics.get_registry().get_sample_value("running", {"coin": "HYPE"}) == 0.0


class TestFills:
    @pytest.mark.asyncio
    async def test_refresh_feeds_stats(self, running, gateway):
        await running.execute_trade()
        gateway.fill_all()

        result = await running.refresh_fills()

        assert len(result.newly_filled) == 3
        assert running.stats.filled_orders == 3
        assert running.state.first_fill_seen
        assert 97.0 < running.stats.average_price < 99.0

    @pytest.mark.asyncio
    async def test_results_discarded_after_stop(self, gateway, feed):
        orch = _orchestrator(gateway, feed)
        await orch.start()
        await orch.execute_trade()
        gateway.history = [
            ExchangeOrder(id=o.id, symbol=SYMBOL, side=OrderSide.BUY, price=o.price, quantity=o.quantity,
                          status=OrderStatus.FILLED, filled_quantity=o.quantity, filled_amount=o.price * o.quantity)
            for o in orch.ledger.orders.values()
        ]
        gateway.history_gate = asyncio.Event()

        pending = asyncio.create_task(orch.refresh_fills())
        await asyncio.sleep(0)
        await orch.stop()
        gateway.history_gate.set()
        await pending

        assert orch.stats.filled_orders == 0

    @pytest.mark.asyncio
    async def test_first_fill_disarms_no_fill_restart(self, gateway, feed):
        gate = asyncio.Event()

        async def gated_sleep(_):
            await gate.wait()

        orch = _orchestrator(gateway, feed, settings=make_settings(auto_restart_no_fill=True), sleep=gated_sleep)
        await orch.start()
        try:
            await orch.execute_trade()
            assert "no_fill" in orch.scope
            gateway.fill_all()
            await orch.refresh_fills()
            gate.set()
            await asyncio.sleep(0.01)

            assert "no_fill" not in orch.scope
            assert orch.phase == CyclePhase.RUNNING
        finally:
            await orch.stop()


class TestTakeProfit:
    @pytest.mark.asyncio
    async def test_not_triggered_without_fills(self, running):
        await running.execute_trade()
        running.handle_price_update(_tick(500.0))
        assert running.phase == CyclePhase.RUNNING

    @pytest.mark.asyncio
    async def test_one_shot_exit_and_stop(self, gateway, feed):
        alerts = MagicMock()
        alerts.alert_take_profit = AsyncMock(return_value=True)
        alerts.alert_startup = AsyncMock(return_value=True)
        alerts.alert_api_error = AsyncMock(return_value=True)
        orch = _orchestrator(gateway, feed, alert_manager=alerts)
        await orch.start()
        await orch.execute_trade()
        gateway.fill_all()
        await orch.refresh_fills()
        gateway.positions = [orch.stats.stats.total_filled_quantity]

        orch.handle_price_update(_tick(200.0))
        assert orch.phase == CyclePhase.TAKE_PROFIT
        orch.handle_price_update(_tick(201.0))
        orch.handle_price_update(_tick(202.0))
        await asyncio.wait_for(orch.stopped.wait(), timeout=2.0)

        assert len(gateway.sells) == 1
        assert orch.state.exit_reason == ExitReason.TAKE_PROFIT
        assert orch.state.take_profit_triggered
        assert orch.phase == CyclePhase.STOPPED
        assert not orch.running
        await asyncio.sleep(0)
        alerts.alert_take_profit.assert_called_once()

    @pytest.mark.asyncio
    async def test_restart_after_take_profit(self, gateway, feed):
        orch = _orchestrator(gateway, feed, settings=make_settings(restart_after_take_profit=True))
        await orch.start()
        try:
            await orch.execute_trade()
            gateway.fill_all()
            await orch.refresh_fills()
            gateway.positions = [orch.stats.stats.total_filled_quantity]

            orch.handle_price_update(_tick(200.0))
            await _until(lambda: len(gateway.created) == 6)

            assert orch.state.cycle_id == 1
            assert orch.phase == CyclePhase.RUNNING
            assert orch.stats.filled_orders == 0
            assert orch.stats.stats.total_orders == 3
            assert orch.state.exit_reason is None
            assert len(gateway.sells) == 1
            assert feed.start_calls == 2
        finally:
            await orch.stop()


class TestNoFillRestart:
    @pytest.mark.asyncio
    async def test_restarts_cycle_when_nothing_fills(self, gateway, feed):
        loader = MagicMock(side_effect=[
            make_settings(auto_restart_no_fill=True, no_fill_restart_min=1.0),
            make_settings(auto_restart_no_fill=False),
        ])
        orch = _orchestrator(gateway, feed, load_settings=loader)
        await orch.start()
        try:
            await orch.execute_trade()
            await _until(lambda: len(gateway.created) == 6)

            assert loader.call_count == 2
            assert orch.state.cycle_id == 1
            assert orch.phase == CyclePhase.RUNNING
            assert gateway.sells == []
            assert "no_fill" not in orch.scope
        finally:
            await orch.stop()

    @pytest.mark.asyncio
    async def test_stop_during_exit_prevents_restart(self, gateway, feed):
        gate = asyncio.Event()
        orch = _orchestrator(gateway, feed, settings=make_settings(auto_restart_no_fill=True))
        await orch.start()
        await orch.execute_trade()

        async def slow_position(coin):
            await gate.wait()
            return Position(coin=coin, available=0.0, total=0.0)

        gateway.get_position = slow_position

        await _until(lambda: orch.phase == CyclePhase.NO_FILL_RESTART)
        stopping = asyncio.create_task(orch.stop())
        await asyncio.sleep(0.01)
        gate.set()
        await stopping

        assert orch.phase == CyclePhase.STOPPED
        assert len(gateway.created) == 3


def test_status_snapshot_shape(gateway, feed):
    orch = _orchestrator(gateway, feed)
    snap = orch.status_snapshot()
    assert snap.phase == "IDLE"
    assert snap.price is None
    assert snap.progress_pct == 0.0
    assert snap.to_dict()["open_order_ids"] == []


class TestNoFillWindowReconciles:
    @pytest.mark.asyncio
    async def test_unreconciled_fills_cancel_no_fill_exit(self, gateway, feed):
        gate = asyncio.Event()

        async def gated_sleep(_):
            await gate.wait()

        orch = _orchestrator(gateway, feed, settings=make_settings(auto_restart_no_fill=True), sleep=gated_sleep)
        await orch.start()
        try:
            await orch.execute_trade()
            # filled on the exchange, no monitor tick since
            gateway.fill_all()
            gate.set()
            await _until(lambda: "no_fill" not in orch.scope)

            assert orch.phase == CyclePhase.RUNNING
            assert orch.state.exit_reason is None
            assert orch.state.first_fill_seen
            assert orch.stats.filled_orders == 3
            assert gateway.sells == []
        finally:
            await orch.stop()


class TestPlacementRetryAfterRestart:
    @pytest.mark.asyncio
    async def test_ticker_outage_during_restart_is_retried(self, gateway, feed):
        loader = MagicMock(side_effect=[
            make_settings(auto_restart_no_fill=True, no_fill_restart_min=1.0),
            make_settings(auto_restart_no_fill=False, monitor_interval_sec=0.01),
        ])
        orch = _orchestrator(gateway, feed, load_settings=loader)
        await orch.start()
        try:
            await orch.execute_trade()
            first_cycle = orch.state.cycle_id
            gateway.fail_ticker = True

            await _until(lambda: orch.state.cycle_id > first_cycle and "placement_retry" in orch.scope)
            assert orch.running
            assert len(gateway.created) == 3
            assert "monitor" not in orch.scope

            gateway.fail_ticker = False
            await _until(lambda: len(gateway.created) == 6)
            await _until(lambda: "placement_retry" not in orch.scope)

            assert "monitor" in orch.scope
            assert orch.phase == CyclePhase.RUNNING
            assert len(orch.ledger) == 3
        finally:
            await orch.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_retry(self, gateway, feed):
        loader = MagicMock(side_effect=[
            make_settings(auto_restart_no_fill=True, no_fill_restart_min=1.0),
            make_settings(auto_restart_no_fill=False, total_amount=5.0),
        ])
        orch = _orchestrator(gateway, feed, load_settings=loader)
        await orch.start()
        await orch.execute_trade()

        await _until(lambda: "placement_retry" in orch.scope)
        await orch.stop()

        assert orch.scope.names() == []
        assert orch.phase == CyclePhase.STOPPED
        assert len(gateway.created) == 3
