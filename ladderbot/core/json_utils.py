"""
Fast JSON utilities for high-frequency operations.

Every structured log line and status payload goes through here, so it
uses orjson (3-10x faster than stdlib json).

Usage:
    from ladderbot.core.json_utils import dumps, loads

    log.info(dumps({"event": "order_created", "px": 100.0}))
"""

from __future__ import annotations

from typing import Any

import orjson


def _default(obj: Any) -> Any:
    """Serialize sets and enums that show up in event payloads."""
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    value = getattr(obj, "value", None)
    if value is not None:
        return value
    return str(obj)


def dumps(obj: Any) -> str:
    """Fast JSON encode to string."""
    return orjson.dumps(obj, default=_default).decode("utf-8")


def dumps_bytes(obj: Any) -> bytes:
    """Fast JSON encode to bytes (skips the utf-8 decode)."""
    return orjson.dumps(obj, default=_default)


def loads(s: str | bytes) -> Any:
    """Fast JSON decode."""
    return orjson.loads(s)
