"""
Entry point wiring all components.

    python -m ladderbot.main
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

import httpx
from hyperliquid.exchange import Exchange
from hyperliquid.info import Info

from ladderbot.config.config import Settings
from ladderbot.config.config_validator import validate_and_log
from ladderbot.core.json_utils import dumps
from ladderbot.exchange.hyperliquid_gateway import HyperliquidGateway
from ladderbot.infra.async_execution import AsyncExchange
from ladderbot.infra.async_info import AsyncInfo
from ladderbot.infra.logging_cfg import CycleLogFile, build_logger
from ladderbot.market_data.price_feed import HyperliquidPriceFeed
from ladderbot.monitoring.alerting import AlertSeverity, configure_alerts
from ladderbot.monitoring.metrics import HealthChecker, start_metrics_server
from ladderbot.monitoring.metrics_rich import RichMetrics
from ladderbot.monitoring.status import StatusBoard, StatusRenderer
from ladderbot.orchestrator.cycle_orchestrator import CycleOrchestrator

log = build_logger("ladderbot", file_path=os.path.join(os.getenv("HL_LOG_DIR", "logs"), "ladderbot.log"))


async def main() -> None:
    cfg = Settings.load()
    log.setLevel(getattr(logging, str(cfg.log_level).upper(), logging.INFO))

    if not validate_and_log(cfg, log):
        log.error("Configuration validation failed, exiting")
        sys.exit(1)

    alert_manager = configure_alerts(
        webhook_url=cfg.alert_webhook_url,
        webhook_type=cfg.alert_webhook_type,
        min_severity=AlertSeverity.INFO,
        enabled=cfg.alert_enabled,
        bot_name="LadderBot",
    )
    health_checker = HealthChecker()
    health_checker.set_component_health("config", True, "Configuration validated")

    wallet = cfg.resolve_signer()
    account = cfg.resolve_account()
    info = Info(cfg.base_url, skip_ws=False)
    # One shared HTTP/2 client for Info endpoints.
    shared_info_client = httpx.AsyncClient(base_url=cfg.base_url.rstrip("/"), http2=True, timeout=cfg.http_timeout)
    async_info = AsyncInfo(cfg.base_url, timeout=cfg.http_timeout, client=shared_info_client)
    base_exchange = Exchange(wallet, cfg.base_url, account_address=account)
    async_exchange = AsyncExchange(base_exchange, timeout=cfg.http_timeout)

    gateway = HyperliquidGateway(info, async_info, async_exchange, account)
    feed = HyperliquidPriceFeed(info, stale_after=cfg.ws_stale_after, watch_interval=cfg.ws_watch_interval)
    metrics = RichMetrics()
    status_board = StatusBoard()
    cycle_log = CycleLogFile(log, cfg.log_dir, enabled=cfg.cycle_log_enabled)
    cycle_log.rotate(cfg.symbol)

    srv = await start_metrics_server(
        metrics, cfg.metrics_port, status_board, auth_token=cfg.metrics_token, health_checker=health_checker
    )

    orchestrator = CycleOrchestrator(
        gateway,
        feed,
        load_settings=Settings.load,
        metrics=metrics,
        alert_manager=alert_manager,
        status_board=status_board,
        renderer=StatusRenderer(),
        cycle_log=cycle_log,
        health_checker=health_checker,
    )

    log.info(dumps({"event": "startup", "symbol": cfg.symbol, "account": account}))

    loop = asyncio.get_running_loop()
    stop_task = None

    def request_stop() -> None:
        nonlocal stop_task
        if stop_task is None:
            log.info("Shutdown signal received, cleaning up...")
            stop_task = asyncio.create_task(orchestrator.stop())

    # Windows doesn't support add_signal_handler, so rely on KeyboardInterrupt handling
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_stop)
        except NotImplementedError:
            pass

    try:
        if await orchestrator.start():
            placement = await orchestrator.execute_trade()
            if not placement.success:
                # nothing is monitored without a placed ladder
                log.error(dumps({"event": "initial_placement_failed", "err": placement.error}))
                await orchestrator.stop()
            await orchestrator.stopped.wait()
    except (asyncio.CancelledError, KeyboardInterrupt):
        log.info("Interrupted, stopping cycle...")
    finally:
        if stop_task is not None:
            await asyncio.gather(stop_task, return_exceptions=True)
        await orchestrator.stop()
        await alert_manager.alert_shutdown("normal" if stop_task is not None else "cycle_finished")
        await alert_manager.flush()
        log.info("Closing servers and connections...")
        srv.close()
        await srv.wait_closed()
        await async_exchange.close()
        await async_info.close()
        await shared_info_client.aclose()
        # Disconnect hyperliquid SDK websocket to stop its background thread
        try:
            info.disconnect_websocket()
        except Exception as exc:
            log.warning(dumps({"event": "ws_disconnect_error", "err": str(exc)}))
        cycle_log.close()
        log.info("Shutdown complete")


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nBot stopped by user")
    sys.exit(0)


if __name__ == "__main__":
    run()
