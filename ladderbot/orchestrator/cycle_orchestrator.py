"""
CycleOrchestrator: runs one ladder cycle after another on a single pair.

A cycle:
    1. Place a ladder of limit buys under the current price.
    2. Reconcile fills on every monitor tick and keep the average cost.
    3. Exit when the price reaches average cost + take_profit_pct
       (TAKE_PROFIT), or when nothing filled inside the no-fill window
       (NO_FILL_RESTART): cancel the ladder, liquidate the position, and
       optionally start the next cycle.

Phases:
    IDLE -> INITIALIZING -> RUNNING -> (TAKE_PROFIT | NO_FILL_RESTART)
         -> RESETTING -> INITIALIZING ...
    RUNNING -> STOPPED on stop()

Everything runs on one event loop. Leaving RUNNING is a synchronous
check-and-set (_begin_exit), so at most one exit sequence runs per cycle.
Placement and reconciliation share self._lock. Results that land after the
cycle id changed (reset) or running turned false (stop) are discarded.

Usage:
    orch = CycleOrchestrator(gateway, feed, load_settings=Settings.load)
    await orch.start()
    await orch.execute_trade()
    ...
    await orch.stop()
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Optional

from ladderbot.config.config import ConfigurationError, Settings
from ladderbot.core.json_utils import dumps
from ladderbot.exchange.gateway import OrderRequest, OrderSide
from ladderbot.execution.liquidator import LiquidationConfig, LiquidationResult, PositionLiquidator
from ladderbot.execution.order_ledger import Order, OrderLedger, order_signature
from ladderbot.execution.reconciliation_service import Reconciler, ReconcileResult
from ladderbot.execution.trade_stats import StatsAggregator
from ladderbot.infra.logging_cfg import log_event
from ladderbot.market_data.price_feed import PriceTick
from ladderbot.market_data.price_resolver import PriceInfo, PriceResolver, PriceSource
from ladderbot.monitoring.status import StatusSnapshot
from ladderbot.orchestrator.task_scope import TaskScope
from ladderbot.strategy.ladder import calculate_ladder_orders
from ladderbot.strategy.take_profit import is_take_profit_triggered, progress_percent

log = logging.getLogger("ladderbot")


class CyclePhase(Enum):
    IDLE = auto()
    INITIALIZING = auto()
    RUNNING = auto()
    TAKE_PROFIT = auto()
    NO_FILL_RESTART = auto()
    RESETTING = auto()
    STOPPED = auto()


class ExitReason(Enum):
    TAKE_PROFIT = "take_profit"
    NO_FILL = "no_fill"


@dataclass
class CycleState:
    script_start_time: float
    running: bool = False
    phase: CyclePhase = CyclePhase.IDLE
    exit_reason: Optional[ExitReason] = None
    trading_coin: str = ""
    symbol: str = ""
    cycle_id: int = 0
    first_fill_seen: bool = False

    @property
    def take_profit_triggered(self) -> bool:
        return self.exit_reason == ExitReason.TAKE_PROFIT


@dataclass
class PlacementResult:
    """Result of one execute_trade() attempt."""
    success: bool
    attempted: int = 0
    placed: int = 0
    skipped_duplicates: int = 0
    failed: int = 0
    error: Optional[str] = None


class CycleOrchestrator:
    def __init__(
        self,
        gateway,
        feed,
        load_settings: Callable[[], Settings],
        metrics=None,
        alert_manager=None,
        status_board=None,
        renderer=None,
        cycle_log=None,
        health_checker=None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.gateway = gateway
        self.feed = feed
        self._load_settings = load_settings
        self.metrics = metrics
        self.alerts = alert_manager
        self.status_board = status_board
        self.renderer = renderer
        self.cycle_log = cycle_log
        self.health = health_checker
        self._sleep = sleep
        self._clock = clock

        self.settings: Optional[Settings] = None
        self.state = CycleState(script_start_time=clock())
        self.scope = TaskScope("cycle")
        self.stats = StatsAggregator()
        self.ledger = OrderLedger()
        self.resolver: Optional[PriceResolver] = None
        self.reconciler: Optional[Reconciler] = None
        self.liquidator: Optional[PositionLiquidator] = None
        self.current_price: Optional[PriceInfo] = None
        self.stopped = asyncio.Event()

        self._lock = asyncio.Lock()
        self._stop_requested = False
        self._last_render = 0.0
        self._no_fill_deadline: Optional[float] = None

    @property
    def running(self) -> bool:
        return self.state.running

    @property
    def phase(self) -> CyclePhase:
        return self.state.phase

    # ------------------------------------------------------------------ lifecycle

    async def initialize(self) -> None:
        """Load settings and build fresh per-cycle components."""
        self.state.phase = CyclePhase.INITIALIZING
        settings = self._load_settings()
        self.settings = settings
        self.state.trading_coin = settings.trading_coin
        self.state.symbol = settings.symbol

        self.ledger = OrderLedger()
        self.resolver = PriceResolver(settings.symbol, self.feed, self.gateway, spawn=self.scope.spawn)
        self.reconciler = Reconciler(settings.symbol, self.gateway, self.ledger, self.stats.is_processed)
        self.liquidator = PositionLiquidator(
            self.gateway,
            LiquidationConfig(
                sell_offset_pct=settings.sell_offset_pct,
                second_sell_offset_pct=settings.second_sell_offset_pct,
                price_decimals=settings.price_decimals,
                qty_step=settings.qty_step,
                retry_delay_sec=settings.liquidation_retry_delay_sec,
            ),
            sleep=self._sleep,
            on_incomplete=self._on_liquidation_incomplete,
        )

        try:
            ticker = await self.gateway.get_ticker(settings.symbol)
            if ticker.last_price and ticker.last_price > 0:
                self.resolver.remember(
                    PriceInfo(price=ticker.last_price, symbol=settings.symbol, source=PriceSource.API, update_time=self._clock())
                )
                self.current_price = self.resolver.resolve(self.stats.average_price)
        except Exception as exc:
            log.warning(dumps({"event": "initial_ticker_error", "symbol": settings.symbol, "err": str(exc)}))
            self._count_api_error("get_ticker", str(exc))
        log_event(log, "cycle_initialized", symbol=settings.symbol, cycle_id=self.state.cycle_id)

    async def start(self) -> bool:
        self._stop_requested = False
        return await self._start()

    async def _start(self) -> bool:
        if self.state.running:
            log.warning(dumps({"event": "start_refused", "reason": "already running"}))
            return False
        await self.initialize()
        settings = self.settings

        self.feed.set_price_callback(self.handle_price_update)
        try:
            await self.feed.start_monitoring(settings.symbol)
        except Exception as exc:
            log.error(dumps({"event": "feed_start_error", "symbol": settings.symbol, "err": str(exc)}))
        self.scope.every("price_poll", settings.price_poll_interval_sec, self._poll_price)

        self.state.running = True
        self.state.phase = CyclePhase.RUNNING
        self.stopped.clear()
        if self.metrics is not None:
            self.metrics.cycles_started.labels(coin=settings.trading_coin).inc()
            self.metrics.running.labels(coin=settings.trading_coin).set(1)
        if self.health is not None:
            self.health.set_ready(True)
        log_event(log, "cycle_started", symbol=settings.symbol, cycle_id=self.state.cycle_id)
        return True

    async def stop(self) -> None:
        """Idempotent; every cleanup step is attempted even if an earlier one fails."""
        self._stop_requested = True
        if not self.state.running:
            return
        symbol = self.state.symbol
        try:
            # Let an exit already selling the position finish first.
            exit_task = self.scope.task("cycle_exit")
            if exit_task is not None and not exit_task.done() and exit_task is not asyncio.current_task():
                await asyncio.wait([exit_task], timeout=30.0)
            try:
                await self.cancel_all_orders()
            except Exception as exc:
                log.error(dumps({"event": "stop_cancel_error", "symbol": symbol, "err": str(exc)}))
            try:
                await self.feed.stop_monitoring()
            except Exception as exc:
                log.error(dumps({"event": "stop_feed_error", "symbol": symbol, "err": str(exc)}))
            try:
                await self.feed.close_connections()
            except Exception as exc:
                log.error(dumps({"event": "stop_close_error", "symbol": symbol, "err": str(exc)}))
            try:
                self.scope.cancel_all()
                await self.scope.join()
            except Exception as exc:
                log.error(dumps({"event": "stop_tasks_error", "symbol": symbol, "err": str(exc)}))
            try:
                self._log_summary()
            except Exception as exc:
                log.error(dumps({"event": "stop_summary_error", "symbol": symbol, "err": str(exc)}))
        finally:
            self.state.running = False
            self.state.phase = CyclePhase.STOPPED
            self.state.cycle_id += 1
            if self.metrics is not None and self.state.trading_coin:
                self.metrics.running.labels(coin=self.state.trading_coin).set(0)
            if self.health is not None:
                self.health.set_ready(False)
            self.stopped.set()
            log_event(log, "cycle_stopped", symbol=symbol)

    def reset(self) -> None:
        """Clear per-cycle state. Timers must already be stopped."""
        self.stats.reset()
        self.ledger.reset()
        self.state.exit_reason = None
        self.state.first_fill_seen = False
        self.state.cycle_id += 1
        self.state.script_start_time = self._clock()
        self.current_price = None
        self._no_fill_deadline = None
        if self.resolver is not None:
            self.resolver.clear()
        if self.cycle_log is not None and self.state.symbol:
            try:
                self.cycle_log.rotate(self.state.symbol)
            except OSError as exc:
                log.warning(dumps({"event": "cycle_log_rotate_error", "err": str(exc)}))
        log_event(log, "cycle_reset", symbol=self.state.symbol, cycle_id=self.state.cycle_id)

    # ------------------------------------------------------------------ prices

    def handle_price_update(self, tick: PriceTick) -> None:
        """Feed callback, called on the event loop."""
        if not self.state.running or self.resolver is None:
            return
        self.resolver.remember(PriceInfo(price=tick.price, symbol=tick.symbol, source=PriceSource.PUSH, update_time=tick.time))
        self._on_price(self.resolver.resolve(self.stats.average_price))

    async def _poll_price(self) -> None:
        if not self.state.running or self.resolver is None:
            return
        self.resolver.refresh_from_cache()
        info = self.resolver.resolve(self.stats.average_price)
        if info is None:
            log.warning(dumps({"event": "price_unavailable", "symbol": self.state.symbol}))
            return
        self._on_price(info)

    def _on_price(self, info: Optional[PriceInfo]) -> None:
        if info is None:
            return
        self.current_price = info
        if self.metrics is not None:
            coin = self.state.trading_coin
            self.metrics.price.labels(coin=coin).set(info.price)
            self.metrics.price_age_sec.labels(coin=coin).set(info.age(self._clock()))
            if info.increase is not None:
                self.metrics.price_increase_pct.labels(coin=coin).set(info.increase)
        self._check_take_profit(info)
        self._render()

    # ------------------------------------------------------------------ exits

    def _check_take_profit(self, info: PriceInfo) -> None:
        settings = self.settings
        if settings is None or self.stats.filled_orders <= 0:
            return
        avg = self.stats.average_price
        if not is_take_profit_triggered(info.price, avg, settings.take_profit_pct):
            return
        if not self._begin_exit(ExitReason.TAKE_PROFIT):
            return
        log_event(
            log,
            "take_profit_triggered",
            symbol=self.state.symbol,
            price=info.price,
            average_price=avg,
            increase_pct=info.increase,
            source=info.source.value,
        )
        if self.metrics is not None:
            self.metrics.take_profits.labels(coin=self.state.trading_coin).inc()
        if self.alerts is not None:
            self._spawn_alert(
                "take_profit",
                self.alerts.alert_take_profit(self.state.symbol, info.price, avg, info.increase or 0.0),
            )
        self.scope.spawn("cycle_exit", self._run_exit(ExitReason.TAKE_PROFIT))

    def _begin_exit(self, reason: ExitReason) -> bool:
        """Leave RUNNING. Synchronous: nothing may await between check and set."""
        if not self.state.running or self.state.phase != CyclePhase.RUNNING:
            return False
        if reason == ExitReason.NO_FILL and self.state.first_fill_seen:
            return False
        self.state.exit_reason = reason
        self.state.phase = CyclePhase.TAKE_PROFIT if reason == ExitReason.TAKE_PROFIT else CyclePhase.NO_FILL_RESTART
        return True

    async def _run_exit(self, reason: ExitReason) -> None:
        settings = self.settings
        symbol = self.state.symbol
        self.scope.cancel("monitor", "heartbeat", "no_fill")
        await self.cancel_all_orders()

        result: Optional[LiquidationResult] = None
        try:
            result = await self.liquidator.liquidate(self.state.trading_coin, symbol)
        except Exception as exc:
            log.error(dumps({"event": "liquidation_error", "symbol": symbol, "err": str(exc)}))
        self._record_liquidation(result)
        log_event(
            log,
            "cycle_exit_done",
            symbol=symbol,
            reason=reason.value,
            sold=result.sold_quantity if result else 0.0,
            unsold=result.unsold_quantity if result else 0.0,
        )

        restart = reason == ExitReason.NO_FILL or settings.restart_after_take_profit
        if self._stop_requested:
            return
        if restart:
            await self._restart_cycle()
        else:
            await self.stop()

    async def _restart_cycle(self) -> None:
        self.state.phase = CyclePhase.RESETTING
        await self._teardown()
        self.reset()
        self.state.running = False
        if self._stop_requested:
            self.state.phase = CyclePhase.STOPPED
            self.stopped.set()
            return
        try:
            started = await self._start()
        except Exception as exc:
            log.error(dumps({"event": "restart_error", "symbol": self.state.symbol, "err": str(exc)}))
            self.state.phase = CyclePhase.STOPPED
            self.stopped.set()
            return
        if not started:
            return
        if self._stop_requested:
            await self.stop()
            return
        placement = await self.execute_trade()
        if not placement.success and self.state.running:
            log.warning(dumps({
                "event": "placement_retry_scheduled",
                "symbol": self.state.symbol,
                "err": placement.error,
                "retry_in_sec": self.settings.monitor_interval_sec,
            }))
            self.scope.spawn("placement_retry", self._retry_placement(self.settings.monitor_interval_sec))

    async def _retry_placement(self, interval: float) -> None:
        """Re-run execute_trade every interval until a ladder is placed or the cycle ends."""
        while True:
            await asyncio.sleep(interval)
            if not self.state.running or self.state.phase != CyclePhase.RUNNING:
                return
            result = await self.execute_trade()
            if result.success:
                log_event(log, "placement_retry_succeeded", symbol=self.state.symbol, placed=result.placed)
                return

    async def _teardown(self) -> None:
        """Stop the feed and every timer except the calling task."""
        try:
            await self.feed.stop_monitoring()
        except Exception as exc:
            log.warning(dumps({"event": "teardown_feed_error", "err": str(exc)}))
        try:
            await self.feed.close_connections()
        except Exception as exc:
            log.warning(dumps({"event": "teardown_close_error", "err": str(exc)}))
        self.scope.cancel_all()
        await self.scope.join()

    async def _no_fill_watch(self, window_sec: float) -> None:
        await self._sleep(window_sec)
        # fills since the last monitor tick must not be sold as a no-fill exit
        await self.refresh_fills()
        if self.state.first_fill_seen or not self._begin_exit(ExitReason.NO_FILL):
            return
        window_min = window_sec / 60.0
        log_event(log, "no_fill_restart", symbol=self.state.symbol, window_min=window_min)
        if self.metrics is not None:
            self.metrics.no_fill_restarts.labels(coin=self.state.trading_coin).inc()
        if self.alerts is not None:
            self._spawn_alert("no_fill", self.alerts.alert_no_fill_restart(self.state.symbol, window_min))
        self.scope.spawn("cycle_exit", self._run_exit(ExitReason.NO_FILL))

    # ------------------------------------------------------------------ orders

    async def execute_trade(self) -> PlacementResult:
        """Place the ladder under the current price and start monitoring."""
        if not self.state.running or self.settings is None:
            return PlacementResult(success=False, error="not running")
        settings = self.settings
        symbol = settings.symbol

        info = self.resolver.resolve(self.stats.average_price)
        if info is None:
            try:
                ticker = await self.gateway.get_ticker(symbol)
                if ticker.last_price and ticker.last_price > 0:
                    info = PriceInfo(price=ticker.last_price, symbol=symbol, source=PriceSource.API, update_time=self._clock())
                    self.resolver.remember(info)
            except Exception as exc:
                log.error(dumps({"event": "placement_ticker_error", "symbol": symbol, "err": str(exc)}))
                self._count_api_error("get_ticker", str(exc))
        if info is None:
            log.error(dumps({"event": "placement_aborted", "symbol": symbol, "reason": "no price"}))
            return PlacementResult(success=False, error="no price available")
        self.current_price = info

        await self.cancel_all_orders()

        try:
            params = settings.ladder_params()
        except ConfigurationError as exc:
            log.error(dumps({"event": "placement_aborted", "symbol": symbol, "reason": "config", "err": str(exc)}))
            return PlacementResult(success=False, error=str(exc))

        ladder = calculate_ladder_orders(info.price, params)
        if not ladder:
            log.warning(dumps({
                "event": "ladder_empty",
                "symbol": symbol,
                "price": info.price,
                "total_amount": params.total_amount,
                "min_order_amount": params.min_order_amount,
            }))
            return PlacementResult(success=False, error="empty ladder")

        result = PlacementResult(success=False, attempted=len(ladder))
        cycle_id = self.state.cycle_id
        coin = settings.trading_coin
        async with self._lock:
            for leg in ladder:
                signature = order_signature(symbol, leg.price, leg.quantity, settings.price_decimals)
                if self.ledger.has_signature(signature):
                    result.skipped_duplicates += 1
                    if self.metrics is not None:
                        self.metrics.orders_skipped.labels(coin=coin).inc()
                    continue
                try:
                    ack = await self.gateway.create_order(
                        OrderRequest(symbol=symbol, side=OrderSide.BUY, price=leg.price, quantity=leg.quantity)
                    )
                except Exception as exc:
                    log.error(dumps({"event": "order_error", "symbol": symbol, "price": leg.price, "err": str(exc)}))
                    self._count_api_error("create_order", str(exc))
                    result.failed += 1
                    continue
                if cycle_id != self.state.cycle_id or not self.state.running:
                    result.error = "cycle changed during placement"
                    log.warning(dumps({"event": "placement_discarded", "symbol": symbol, "cycle_id": cycle_id}))
                    return result
                if not ack.success or not ack.id:
                    log.warning(dumps({"event": "order_rejected", "symbol": symbol, "price": leg.price, "err": ack.error}))
                    result.failed += 1
                    if self.metrics is not None:
                        self.metrics.orders_failed.labels(coin=coin).inc()
                    continue
                self.ledger.add(Order(
                    id=ack.id,
                    symbol=symbol,
                    side=OrderSide.BUY,
                    price=leg.price,
                    quantity=leg.quantity,
                    signature=signature,
                    created_at=self._clock(),
                ))
                self.stats.record_order_placed()
                result.placed += 1
                if self.metrics is not None:
                    self.metrics.orders_submitted.labels(coin=coin).inc()
                log_event(log, "order_placed", symbol=symbol, id=ack.id, price=leg.price, quantity=leg.quantity)

        result.success = result.placed > 0 or result.skipped_duplicates > 0
        log_event(
            log,
            "ladder_placed",
            symbol=symbol,
            price=info.price,
            attempted=result.attempted,
            placed=result.placed,
            skipped=result.skipped_duplicates,
            failed=result.failed,
        )
        if self.alerts is not None and result.placed:
            self._spawn_alert("startup", self.alerts.alert_startup(symbol, orders=result.placed, price=info.price))
        self.start_take_profit_monitoring()
        return result

    async def cancel_all_orders(self) -> bool:
        symbol = self.state.symbol
        if not symbol:
            return False
        try:
            ok = await self.gateway.cancel_all_orders(symbol)
        except Exception as exc:
            log.warning(dumps({"event": "cancel_all_error", "symbol": symbol, "err": str(exc)}))
            self._count_api_error("cancel_all_orders", str(exc))
            return False
        if ok:
            cancelled = self.ledger.mark_open_cancelled()
            if cancelled:
                log_event(log, "orders_cancelled", symbol=symbol, count=cancelled)
        return bool(ok)

    # ------------------------------------------------------------------ monitoring

    def start_take_profit_monitoring(self) -> None:
        settings = self.settings
        self.scope.every("monitor", settings.monitor_interval_sec, self._monitor_tick)
        self.scope.every("heartbeat", settings.heartbeat_interval_sec, self._heartbeat)
        if settings.auto_restart_no_fill and not self.state.first_fill_seen:
            window = settings.no_fill_restart_sec
            self._no_fill_deadline = self._clock() + window
            self.scope.spawn("no_fill", self._no_fill_watch(window))

    async def _monitor_tick(self) -> None:
        if not self.state.running or self.state.phase != CyclePhase.RUNNING:
            return
        await self.refresh_fills()
        if self.resolver is not None:
            self._on_price(self.resolver.resolve(self.stats.average_price))
        self._render(force=True)

    async def refresh_fills(self) -> Optional[ReconcileResult]:
        """Reconcile against the exchange and feed new fills into the stats."""
        if self.reconciler is None:
            return None
        coin = self.state.trading_coin
        async with self._lock:
            cycle_id = self.state.cycle_id
            started = time.monotonic()
            result = await self.reconciler.reconcile()
            if self.metrics is not None:
                self.metrics.reconcile_duration_ms.labels(coin=coin).observe((time.monotonic() - started) * 1000)
            if cycle_id != self.state.cycle_id or not self.state.running:
                log.info(dumps({"event": "reconcile_discarded", "symbol": self.state.symbol, "cycle_id": cycle_id}))
                return result
            if not result.success:
                self._count_api_error("reconcile", result.error)
            new_fills = 0
            for order in result.newly_filled:
                if self.stats.update(order):
                    new_fills += 1
        if new_fills:
            self.state.first_fill_seen = True
            self._no_fill_deadline = None
            self.scope.cancel("no_fill")
            avg = self.stats.average_price
            log_event(
                log,
                "fills_recorded",
                symbol=self.state.symbol,
                new=new_fills,
                filled_orders=self.stats.filled_orders,
                average_price=avg,
            )
            if self.metrics is not None:
                self.metrics.fills_total.labels(coin=coin).inc(new_fills)
                self.metrics.average_price.labels(coin=coin).set(avg or 0.0)
                self.metrics.filled_quantity.labels(coin=coin).set(self.stats.stats.total_filled_quantity)
        return result

    async def _heartbeat(self) -> None:
        price = self.current_price.price if self.current_price else None
        log_event(
            log,
            "heartbeat",
            symbol=self.state.symbol,
            phase=self.state.phase.name,
            price=price,
            filled_orders=self.stats.filled_orders,
            average_price=self.stats.average_price,
            open_orders=len(self.ledger.open_orders()),
        )
        if self.health is not None:
            self.health.heartbeat()
            self.health.set_component_health("price_feed", self._feed_live())
        pnl = self.stats.unrealized_pnl(price)
        if self.metrics is not None and pnl is not None:
            self.metrics.unrealized_pnl.labels(coin=self.state.trading_coin).set(pnl)

    # ------------------------------------------------------------------ status

    def _feed_live(self) -> bool:
        if not self.feed.is_monitoring():
            return False
        age = getattr(self.feed, "data_age", None)
        if callable(age) and self.settings is not None:
            value = age()
            return value is not None and value <= self.settings.ws_stale_after
        return True

    def status_snapshot(self) -> StatusSnapshot:
        settings = self.settings
        info = self.current_price
        price = info.price if info else None
        avg = self.stats.average_price
        s = self.stats.stats
        now = self._clock()
        tp_pct = settings.take_profit_pct if settings else 0.0
        return StatusSnapshot(
            symbol=self.state.symbol,
            phase=self.state.phase.name,
            running=self.state.running,
            cycle_id=self.state.cycle_id,
            runtime_sec=max(0.0, now - self.state.script_start_time),
            price=price,
            price_source=info.source.value if info else None,
            price_age_sec=info.age(now) if info else None,
            average_price=avg,
            increase_pct=info.increase if info else None,
            take_profit_pct=tp_pct,
            progress_pct=progress_percent(price, avg, tp_pct) if price else 0.0,
            total_orders=s.total_orders,
            filled_orders=s.filled_orders,
            filled_quantity=s.total_filled_quantity,
            filled_amount=s.total_filled_amount,
            unrealized_pnl=self.stats.unrealized_pnl(price),
            open_order_ids=sorted(o.id for o in self.ledger.open_orders()),
            no_fill_remaining_sec=max(0.0, self._no_fill_deadline - now) if self._no_fill_deadline else None,
            feed_live=self._feed_live(),
        )

    def _render(self, force: bool = False) -> None:
        settings = self.settings
        if settings is None:
            return
        now = self._clock()
        if not force and now - self._last_render < settings.status_interval_sec:
            return
        self._last_render = now
        snap = self.status_snapshot()
        if self.renderer is not None:
            try:
                self.renderer.render(snap)
            except Exception as exc:
                log.warning(dumps({"event": "render_error", "err": str(exc)}))
        if self.status_board is not None:
            self.scope.spawn("status_publish", self.status_board.update(snap.symbol, snap.to_dict()))

    def _log_summary(self) -> None:
        runtime = self._clock() - self.state.script_start_time
        log_event(
            log,
            "cycle_summary",
            symbol=self.state.symbol,
            cycle_id=self.state.cycle_id,
            runtime_sec=round(runtime, 1),
            exit_reason=self.state.exit_reason.value if self.state.exit_reason else None,
            **self.stats.snapshot(),
        )

    # ------------------------------------------------------------------ helpers

    def _record_liquidation(self, result: Optional[LiquidationResult]) -> None:
        if self.metrics is None:
            return
        coin = self.state.trading_coin
        if result is None:
            outcome = "nothing"
        elif result.complete:
            outcome = "complete"
        else:
            outcome = "incomplete"
        self.metrics.liquidations.labels(coin=coin, outcome=outcome).inc()
        self.metrics.unsold_quantity.labels(coin=coin).set(result.unsold_quantity if result else 0.0)

    def _on_liquidation_incomplete(self, result: LiquidationResult) -> None:
        if self.alerts is not None:
            self._spawn_alert(
                "liquidation",
                self.alerts.alert_liquidation_incomplete(result.symbol, result.unsold_quantity, result.error),
            )

    def _count_api_error(self, op: str, error: Optional[str] = None) -> None:
        if self.metrics is not None and self.state.trading_coin:
            self.metrics.api_errors_total.labels(coin=self.state.trading_coin, op=op).inc()
        if self.alerts is not None:
            # AlertManager rate-limits API_ERROR per type
            self._spawn_alert("api_error", self.alerts.alert_api_error(f"{op} failed: {error or 'unknown'}", symbol=self.state.symbol, op=op))

    def _spawn_alert(self, name: str, coro: Awaitable[Any]) -> None:
        # Outside the cycle scope: teardown must not cancel queued alerts.
        task = asyncio.get_running_loop().create_task(coro, name=f"alert:{name}")
        task.add_done_callback(_log_alert_failure)


def _log_alert_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log.warning(dumps({"event": "alert_failed", "task": task.get_name(), "err": str(exc)}))
