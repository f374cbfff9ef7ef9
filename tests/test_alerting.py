"""
Tests for webhook alerting: gating, rate limiting, batching and formats.
"""
from unittest.mock import AsyncMock

import pytest

from ladderbot.monitoring.alerting import (
    Alert,
    AlertConfig,
    AlertManager,
    AlertSeverity,
    AlertType,
    WebhookFormatter,
    configure_alerts,
    get_alert_manager,
)


def _manager(**kw) -> AlertManager:
    cfg = AlertConfig(webhook_url="https://hooks.example/alert", batch_window_ms=0, **kw)
    mgr = AlertManager(cfg)
    mgr._http_post = AsyncMock(return_value=True)
    return mgr


def _alert(alert_type=AlertType.CUSTOM, severity=AlertSeverity.INFO) -> Alert:
    return Alert(alert_type=alert_type, severity=severity, title="t", message="m", symbol="HYPE/USDC",
                 details={"k": 1})


class TestGating:
    @pytest.mark.asyncio
    async def test_disabled(self):
        mgr = _manager(enabled=False)
        assert not await mgr.send_alert(_alert())

    @pytest.mark.asyncio
    async def test_no_webhook(self):
        mgr = AlertManager(AlertConfig(webhook_url=None))
        assert not await mgr.alert_startup("HYPE/USDC")

    @pytest.mark.asyncio
    async def test_min_severity(self):
        mgr = _manager(min_severity=AlertSeverity.WARNING)
        assert not await mgr.send_alert(_alert(severity=AlertSeverity.INFO))
        assert await mgr.send_alert(_alert(severity=AlertSeverity.CRITICAL))
        await mgr.flush()

    @pytest.mark.asyncio
    async def test_rate_limited_per_type(self):
        mgr = _manager()
        assert await mgr.alert_take_profit("HYPE/USDC", 110.0, 100.0, 10.0)
        assert not await mgr.alert_take_profit("HYPE/USDC", 111.0, 100.0, 11.0)
        assert await mgr.alert_no_fill_restart("HYPE/USDC", 60)
        await mgr.flush()


class TestDelivery:
    @pytest.mark.asyncio
    async def test_single_alert_posted(self):
        mgr = _manager()
        await mgr.alert_liquidation_incomplete("HYPE/USDC", 0.4, "rejected")
        await mgr.flush()

        mgr._http_post.assert_awaited_once()
        payload = mgr._http_post.await_args.args[0]
        assert payload["type"] == "LIQUIDATION_INCOMPLETE"
        assert payload["severity"] == "CRITICAL"
        assert payload["details"]["unsold_quantity"] == 0.4

    @pytest.mark.asyncio
    async def test_alerts_in_window_are_batched(self):
        mgr = _manager(webhook_type="slack")
        mgr.config.batch_window_ms = 50
        await mgr.alert_startup("HYPE/USDC", orders=3)
        await mgr.alert_api_error("create_order failed", symbol="HYPE/USDC")
        await mgr.flush()

        mgr._http_post.assert_awaited_once()
        payload = mgr._http_post.await_args.args[0]
        assert len(payload["attachments"]) == 2


class TestFormatters:
    def test_slack(self):
        out = WebhookFormatter.format_slack(_alert(severity=AlertSeverity.CRITICAL), AlertConfig())
        att = out["attachments"][0]
        assert att["color"] == "#FF0000"
        assert {"title": "Pair", "value": "HYPE/USDC", "short": True} in att["fields"]
        assert out["username"] == "LadderBot"

    def test_discord(self):
        out = WebhookFormatter.format_discord(_alert(), AlertConfig(include_details=False))
        embed = out["embeds"][0]
        assert embed["color"] == 0x2E8B57
        assert [f["name"] for f in embed["fields"]] == ["Pair", "Type"]

    def test_generic(self):
        out = WebhookFormatter.format_generic(_alert(), AlertConfig())
        assert out["type"] == "CUSTOM"
        assert out["timestamp_iso"].endswith("Z")


def test_configure_alerts_replaces_global():
    mgr = configure_alerts(webhook_url="https://hooks.example/x", webhook_type="discord", bot_name="Test")
    assert get_alert_manager() is mgr
    assert mgr.config.webhook_type == "discord"
    assert mgr.config.bot_name == "Test"
