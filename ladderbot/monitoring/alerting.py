"""
Webhook alerting for cycle events.

- Send alerts to webhooks (Slack, Discord, generic HTTP)
- Rate limiting per alert type to prevent alert storms
- Batching of alerts raised within a short window
- Async non-blocking delivery over aiohttp
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)


class AlertSeverity(Enum):
    """Alert severity levels."""
    CRITICAL = auto()  # Immediate attention required
    WARNING = auto()   # Potential issue
    INFO = auto()      # Informational


class AlertType(Enum):
    """Types of alerts."""
    STARTUP = auto()
    SHUTDOWN = auto()
    TAKE_PROFIT = auto()
    NO_FILL_RESTART = auto()
    LIQUIDATION_INCOMPLETE = auto()
    API_ERROR = auto()
    CUSTOM = auto()


@dataclass
class Alert:
    """An alert to be sent."""
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    timestamp_ms: int = field(default_factory=lambda: int(time.time() * 1000))
    details: Dict[str, Any] = field(default_factory=dict)
    symbol: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.alert_type.name,
            "severity": self.severity.name,
            "title": self.title,
            "message": self.message,
            "timestamp_ms": self.timestamp_ms,
            "timestamp_iso": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.timestamp_ms / 1000)),
            "details": self.details,
            "symbol": self.symbol,
        }


@dataclass
class AlertConfig:
    """Configuration for alerting."""
    webhook_url: Optional[str] = None
    webhook_type: str = "generic"  # generic, slack, discord
    min_severity: AlertSeverity = AlertSeverity.INFO
    rate_limit_seconds: int = 60  # Min seconds between same alert type
    batch_window_ms: int = 3000  # Batch alerts within this window
    enabled: bool = True
    include_details: bool = True
    bot_name: str = "LadderBot"


class WebhookFormatter:
    """Formats alerts for different webhook types."""

    @staticmethod
    def format_generic(alert: Alert, config: AlertConfig) -> Dict[str, Any]:
        return alert.to_dict()

    @staticmethod
    def format_slack(alert: Alert, config: AlertConfig) -> Dict[str, Any]:
        color = {
            AlertSeverity.CRITICAL: "#FF0000",
            AlertSeverity.WARNING: "#FFA500",
            AlertSeverity.INFO: "#2E8B57",
        }.get(alert.severity, "#808080")

        fields = []
        if alert.symbol:
            fields.append({"title": "Pair", "value": alert.symbol, "short": True})
        fields.append({"title": "Type", "value": alert.alert_type.name, "short": True})
        if config.include_details and alert.details:
            for key, value in list(alert.details.items())[:5]:
                fields.append({"title": key, "value": str(value), "short": True})

        return {
            "username": config.bot_name,
            "attachments": [{
                "color": color,
                "title": alert.title,
                "text": alert.message,
                "fields": fields,
                "footer": f"{config.bot_name} | {alert.severity.name}",
                "ts": alert.timestamp_ms // 1000,
            }]
        }

    @staticmethod
    def format_discord(alert: Alert, config: AlertConfig) -> Dict[str, Any]:
        color = {
            AlertSeverity.CRITICAL: 0xFF0000,
            AlertSeverity.WARNING: 0xFFA500,
            AlertSeverity.INFO: 0x2E8B57,
        }.get(alert.severity, 0x808080)

        fields = []
        if alert.symbol:
            fields.append({"name": "Pair", "value": alert.symbol, "inline": True})
        fields.append({"name": "Type", "value": alert.alert_type.name, "inline": True})
        if config.include_details and alert.details:
            for key, value in list(alert.details.items())[:5]:
                fields.append({"name": key, "value": str(value), "inline": True})

        return {
            "username": config.bot_name,
            "embeds": [{
                "title": alert.title,
                "description": alert.message,
                "color": color,
                "fields": fields,
                "footer": {"text": f"{config.bot_name} | {alert.severity.name}"},
                "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(alert.timestamp_ms / 1000)),
            }]
        }


class AlertManager:
    """
    Manages alert delivery with rate limiting and batching.
    """

    def __init__(self, config: Optional[AlertConfig] = None) -> None:
        self.config = config or AlertConfig()
        self._last_alert_times: Dict[AlertType, int] = {}
        self._pending_alerts: List[Alert] = []
        self._batch_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    async def send_alert(self, alert: Alert) -> bool:
        """
        Queue an alert for delivery.

        Returns:
            True if alert was queued, False if rate limited or disabled
        """
        if not self.config.enabled:
            return False
        if not self.config.webhook_url:
            logger.debug(f"Alert not sent (no webhook): {alert.title}")
            return False
        if alert.severity.value > self.config.min_severity.value:
            return False

        now_ms = int(time.time() * 1000)
        last_time = self._last_alert_times.get(alert.alert_type, 0)
        if now_ms - last_time < self.config.rate_limit_seconds * 1000:
            logger.debug(f"Alert rate limited: {alert.alert_type.name}")
            return False

        async with self._lock:
            self._pending_alerts.append(alert)
            self._last_alert_times[alert.alert_type] = now_ms
            if self._batch_task is None or self._batch_task.done():
                self._batch_task = asyncio.create_task(self._batch_deliver())
        return True

    async def flush(self, timeout: float = 10.0) -> None:
        """Wait for a pending batch (used at shutdown)."""
        task = self._batch_task
        if task is not None and not task.done():
            await asyncio.wait([task], timeout=timeout)

    async def _batch_deliver(self) -> None:
        await asyncio.sleep(self.config.batch_window_ms / 1000)
        async with self._lock:
            alerts = self._pending_alerts.copy()
            self._pending_alerts.clear()
        if not alerts:
            return
        if len(alerts) == 1:
            await self._http_post(self._format_alert(alerts[0]))
        else:
            await self._deliver_batch(alerts)

    async def _deliver_batch(self, alerts: List[Alert]) -> bool:
        if self.config.webhook_type == "slack":
            payload = self._format_alert(alerts[0])
            for alert in alerts[1:]:
                payload["attachments"].extend(self._format_alert(alert)["attachments"])
        elif self.config.webhook_type == "discord":
            payload = self._format_alert(alerts[0])
            for alert in alerts[1:]:
                payload["embeds"].extend(self._format_alert(alert)["embeds"])
        else:
            payload = {"alerts": [alert.to_dict() for alert in alerts]}
        return await self._http_post(payload)

    def _format_alert(self, alert: Alert) -> Dict[str, Any]:
        formatters = {
            "generic": WebhookFormatter.format_generic,
            "slack": WebhookFormatter.format_slack,
            "discord": WebhookFormatter.format_discord,
        }
        formatter = formatters.get(self.config.webhook_type, WebhookFormatter.format_generic)
        return formatter(alert, self.config)

    async def _http_post(self, payload: Dict[str, Any], retries: int = 2) -> bool:
        if not self.config.webhook_url:
            return False
        async with aiohttp.ClientSession() as session:
            for attempt in range(retries + 1):
                try:
                    async with session.post(
                        self.config.webhook_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=10),
                    ) as resp:
                        if resp.status < 300:
                            logger.debug("Alert delivered successfully")
                            return True
                        logger.warning(f"Alert delivery failed: HTTP {resp.status}")
                except asyncio.TimeoutError:
                    logger.warning(f"Alert delivery timeout (attempt {attempt + 1})")
                except aiohttp.ClientError as e:
                    logger.warning(f"Alert delivery error: {e}")
                if attempt < retries:
                    await asyncio.sleep(1 * (attempt + 1))
        return False

    # ─────────────────────────────────────────────────────────────────────
    # Convenience Methods for Cycle Events
    # ─────────────────────────────────────────────────────────────────────

    async def alert_startup(self, symbol: str, **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.STARTUP,
            severity=AlertSeverity.INFO,
            title="Bot Started",
            message=f"{self.config.bot_name} started a ladder cycle on {symbol}",
            symbol=symbol,
            details=details,
        ))

    async def alert_shutdown(self, reason: str = "normal", **details) -> bool:
        severity = AlertSeverity.INFO if reason == "normal" else AlertSeverity.WARNING
        return await self.send_alert(Alert(
            alert_type=AlertType.SHUTDOWN,
            severity=severity,
            title="Bot Shutdown",
            message=f"{self.config.bot_name} shutting down: {reason}",
            details=details,
        ))

    async def alert_take_profit(self, symbol: str, price: float, average_price: float, increase_pct: float, **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.TAKE_PROFIT,
            severity=AlertSeverity.INFO,
            title="Take-Profit Triggered",
            message=f"{symbol} at {price} is {increase_pct:.2f}% above average cost {average_price:.6g}",
            symbol=symbol,
            details={"price": price, "average_price": average_price, "increase_pct": round(increase_pct, 4), **details},
        ))

    async def alert_no_fill_restart(self, symbol: str, window_min: float, **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.NO_FILL_RESTART,
            severity=AlertSeverity.INFO,
            title="No-Fill Restart",
            message=f"No fills on {symbol} within {window_min:g} minutes; restarting cycle",
            symbol=symbol,
            details=details,
        ))

    async def alert_liquidation_incomplete(self, symbol: str, unsold_quantity: float, error: Optional[str] = None, **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.LIQUIDATION_INCOMPLETE,
            severity=AlertSeverity.CRITICAL,
            title="Liquidation Incomplete",
            message=f"{unsold_quantity} left unsold on {symbol}" + (f": {error}" if error else ""),
            symbol=symbol,
            details={"unsold_quantity": unsold_quantity, **details},
        ))

    async def alert_api_error(self, error: str, symbol: Optional[str] = None, **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.API_ERROR,
            severity=AlertSeverity.WARNING,
            title="API Error",
            message=error,
            symbol=symbol,
            details=details,
        ))


# Global alert manager instance
_alert_manager: Optional[AlertManager] = None


def get_alert_manager() -> AlertManager:
    global _alert_manager
    if _alert_manager is None:
        _alert_manager = AlertManager()
    return _alert_manager


def configure_alerts(
    webhook_url: Optional[str] = None,
    webhook_type: str = "generic",
    min_severity: AlertSeverity = AlertSeverity.INFO,
    enabled: bool = True,
    bot_name: str = "LadderBot",
) -> AlertManager:
    """
    Configure the global alert manager.

    Args:
        webhook_url: URL to send alerts to
        webhook_type: Type of webhook (generic, slack, discord)
        min_severity: Minimum severity to send
        enabled: Whether alerting is enabled
        bot_name: Name to use in alerts
    """
    global _alert_manager
    _alert_manager = AlertManager(AlertConfig(
        webhook_url=webhook_url,
        webhook_type=webhook_type,
        min_severity=min_severity,
        enabled=enabled,
        bot_name=bot_name,
    ))
    return _alert_manager
