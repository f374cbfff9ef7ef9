"""
Environment-driven configuration with validation.

Values come from the process environment (a local .env is loaded first) and
may be overridden per-key by a flat YAML file, see overrides.py.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from ladderbot.config.overrides import load_overrides
from ladderbot.core.json_utils import dumps
from ladderbot.strategy.ladder import LadderParams

load_dotenv()


class ConfigurationError(ValueError):
    """Required trading parameters are missing or invalid."""


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "y"}


@dataclass(frozen=True)
class Settings:
    base_url: str
    private_key: str | None
    agent_key: str | None
    user_address: str | None
    http_timeout: float
    # Trading pair
    trading_coin: str
    quote_asset: str
    # Ladder
    total_amount: Optional[float]
    max_drop_pct: Optional[float]
    order_count: Optional[int]
    increment_pct: Optional[float]
    min_order_amount: float
    price_decimals: int
    qty_step: float
    # Exit
    take_profit_pct: float
    sell_offset_pct: float
    second_sell_offset_pct: float
    liquidation_retry_delay_sec: float
    # Timers
    monitor_interval_sec: float
    price_poll_interval_sec: float
    heartbeat_interval_sec: float
    status_interval_sec: float
    no_fill_restart_min: float
    ws_stale_after: float
    ws_watch_interval: float
    # Actions
    auto_restart_no_fill: bool
    restart_after_take_profit: bool
    # Observability
    log_dir: str
    log_level: str
    cycle_log_enabled: bool
    metrics_port: int
    metrics_token: str | None
    alert_webhook_url: str | None
    alert_webhook_type: str  # generic, slack, discord
    alert_enabled: bool

    def dump(self) -> dict:
        """Return a dict of settings for sanity checks/logging, secrets masked."""
        data = self.__dict__.copy()
        for key in ("private_key", "agent_key", "metrics_token"):
            if data.get(key):
                data[key] = "***"
        return data

    @property
    def symbol(self) -> str:
        return f"{self.trading_coin}/{self.quote_asset}"

    @property
    def no_fill_restart_sec(self) -> float:
        return self.no_fill_restart_min * 60.0

    def ladder_params(self) -> LadderParams:
        """
        Trading parameters for one placement attempt.

        Raises ConfigurationError when a required value is missing or
        non-positive (increment_pct may be 0); callers abort the placement,
        not the process.
        """
        missing = [
            name
            for name in ("max_drop_pct", "total_amount", "order_count")
            if not getattr(self, name) or getattr(self, name) <= 0
        ]
        # 0 means equal leg weights
        if self.increment_pct is None or self.increment_pct < 0:
            missing.append("increment_pct")
        if missing:
            raise ConfigurationError(f"invalid trading parameters: {', '.join(missing)}")
        return LadderParams(
            max_drop_pct=float(self.max_drop_pct),
            total_amount=float(self.total_amount),
            order_count=int(self.order_count),
            increment_pct=float(self.increment_pct),
            min_order_amount=self.min_order_amount,
            price_decimals=self.price_decimals,
            qty_step=self.qty_step,
        )

    @classmethod
    def load(cls, overrides: Optional[Mapping[str, Any]] = None) -> "Settings":
        if overrides is None:
            overrides = load_overrides()

        def _raw(field: str, key: str) -> Any:
            if field in overrides:
                return overrides[field]
            return os.getenv(key)

        def _str(field: str, key: str, default: Optional[str]) -> Optional[str]:
            raw = _raw(field, key)
            if raw is None or raw == "":
                return default
            return str(raw)

        def _int(field: str, key: str, default: Optional[int]) -> Optional[int]:
            raw = _raw(field, key)
            if raw is None or raw == "":
                return default
            return int(raw)

        def _float(field: str, key: str, default: Optional[float]) -> Optional[float]:
            raw = _raw(field, key)
            if raw is None or raw == "":
                return default
            return float(raw)

        def _bool(field: str, key: str, default: bool) -> bool:
            if field in overrides:
                val = overrides[field]
                if isinstance(val, bool):
                    return val
                return str(val).lower() in {"1", "true", "yes", "y"}
            return env_bool(key, default)

        cfg = cls(
            base_url=_str("base_url", "HL_BASE_URL", "https://api.hyperliquid.xyz"),
            private_key=os.getenv("HL_PRIVATE_KEY"),
            agent_key=os.getenv("HL_AGENT_KEY"),
            user_address=os.getenv("HL_USER_ADDRESS"),
            http_timeout=_float("http_timeout", "HL_HTTP_TIMEOUT", 5.0),
            trading_coin=_str("trading_coin", "HL_TRADING_COIN", "HYPE"),
            quote_asset=_str("quote_asset", "HL_QUOTE_ASSET", "USDC"),
            total_amount=_float("total_amount", "HL_TOTAL_AMOUNT", None),
            max_drop_pct=_float("max_drop_pct", "HL_MAX_DROP_PCT", 3.0),
            order_count=_int("order_count", "HL_ORDER_COUNT", 8),
            increment_pct=_float("increment_pct", "HL_INCREMENT_PCT", 20.0),
            min_order_amount=_float("min_order_amount", "HL_MIN_ORDER_AMOUNT", 10.0),
            price_decimals=_int("price_decimals", "HL_PRICE_DECIMALS", 2),
            qty_step=_float("qty_step", "HL_QTY_STEP", 0.01),
            take_profit_pct=_float("take_profit_pct", "HL_TAKE_PROFIT_PCT", 0.5),
            sell_offset_pct=_float("sell_offset_pct", "HL_SELL_OFFSET_PCT", 0.05),
            second_sell_offset_pct=_float("second_sell_offset_pct", "HL_SECOND_SELL_OFFSET_PCT", 0.3),
            liquidation_retry_delay_sec=_float("liquidation_retry_delay_sec", "HL_LIQUIDATION_RETRY_DELAY_SEC", 2.0),
            monitor_interval_sec=_float("monitor_interval_sec", "HL_MONITOR_INTERVAL_SEC", 15.0),
            price_poll_interval_sec=_float("price_poll_interval_sec", "HL_PRICE_POLL_INTERVAL_SEC", 5.0),
            heartbeat_interval_sec=_float("heartbeat_interval_sec", "HL_HEARTBEAT_INTERVAL_SEC", 60.0),
            status_interval_sec=_float("status_interval_sec", "HL_STATUS_INTERVAL_SEC", 15.0),
            no_fill_restart_min=_float("no_fill_restart_min", "HL_NO_FILL_RESTART_MIN", 60.0),
            ws_stale_after=_float("ws_stale_after", "HL_WS_STALE_AFTER_SEC", 30.0),
            ws_watch_interval=_float("ws_watch_interval", "HL_WS_WATCH_INTERVAL_SEC", 5.0),
            auto_restart_no_fill=_bool("auto_restart_no_fill", "HL_AUTO_RESTART_NO_FILL", True),
            restart_after_take_profit=_bool("restart_after_take_profit", "HL_RESTART_AFTER_TAKE_PROFIT", True),
            log_dir=_str("log_dir", "HL_LOG_DIR", "logs"),
            log_level=_str("log_level", "HL_LOG_LEVEL", "INFO"),
            cycle_log_enabled=_bool("cycle_log_enabled", "HL_CYCLE_LOG", True),
            metrics_port=_int("metrics_port", "HL_METRICS_PORT", 9095),
            metrics_token=os.getenv("HL_METRICS_TOKEN"),
            alert_webhook_url=_str("alert_webhook_url", "HL_ALERT_WEBHOOK_URL", None),
            alert_webhook_type=_str("alert_webhook_type", "HL_ALERT_WEBHOOK_TYPE", "generic"),
            alert_enabled=_bool("alert_enabled", "HL_ALERT_ENABLED", True),
        )
        _sanity_check(cfg)
        cfg._validate()
        return cfg

    def resolve_account(self) -> str:
        if self.private_key:
            from eth_account import Account

            return Account.from_key(self.private_key).address
        if self.user_address:
            return self.user_address
        raise RuntimeError("Missing HL_USER_ADDRESS or HL_PRIVATE_KEY")

    def resolve_signer(self):
        from eth_account import Account

        if self.private_key:
            return Account.from_key(self.private_key)
        if self.agent_key:
            return Account.from_key(self.agent_key)
        raise RuntimeError("Missing credentials: set HL_PRIVATE_KEY or HL_AGENT_KEY")

    def _validate(self) -> None:
        """Structural checks only; trading parameters are checked per placement."""
        if not self.trading_coin or not self.quote_asset:
            raise ValueError("HL_TRADING_COIN and HL_QUOTE_ASSET must be set")
        if self.qty_step <= 0:
            raise ValueError("HL_QTY_STEP must be > 0")
        if self.price_decimals < 0:
            raise ValueError("HL_PRICE_DECIMALS must be >= 0")
        for name in (
            "monitor_interval_sec",
            "price_poll_interval_sec",
            "heartbeat_interval_sec",
            "status_interval_sec",
            "ws_stale_after",
            "ws_watch_interval",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.no_fill_restart_min <= 0:
            raise ValueError("HL_NO_FILL_RESTART_MIN must be > 0")
        if self.second_sell_offset_pct <= self.sell_offset_pct:
            logging.getLogger("ladderbot").warning(
                "WARNING: HL_SECOND_SELL_OFFSET_PCT should be larger than HL_SELL_OFFSET_PCT "
                "so the retry sell is priced lower than the first attempt."
            )


def _sanity_check(cfg: Settings) -> None:
    """
    Log critical settings once at startup so overrides are obvious.
    """
    logger = logging.getLogger("ladderbot")
    payload: Dict[str, Any] = {
        "event": "config_loaded",
        "symbol": cfg.symbol,
        "total_amount": cfg.total_amount,
        "max_drop_pct": cfg.max_drop_pct,
        "order_count": cfg.order_count,
        "increment_pct": cfg.increment_pct,
        "take_profit_pct": cfg.take_profit_pct,
        "no_fill_restart_min": cfg.no_fill_restart_min if cfg.auto_restart_no_fill else None,
    }
    logger.info(dumps(payload))
