"""
Structured logging setup for the ladder bot.

- Rich console handler for humans, JSON lines for files
- Async-safe queue handler so file writes never block the event loop
- Throttling for repetitive warnings (stale feed, retries)
- One JSON log file per trading cycle, rotated on every reset
"""

from __future__ import annotations

import atexit
import logging
import os
import queue
import sys
import threading
import time
from datetime import datetime
from typing import Dict, Optional, Set

from rich.logging import RichHandler

from ladderbot.core.json_utils import dumps, loads


# Log level constants for semantic clarity
CRITICAL_SAFETY = logging.CRITICAL  # Unsold position left after liquidation
ERROR = logging.ERROR               # Failures requiring attention
WARNING = logging.WARNING           # Recoverable issues (feed reconnect, retries)
INFO = logging.INFO                 # Lifecycle events (fills, take-profit, restart)
DEBUG = logging.DEBUG               # High-frequency debug (ticks, resolutions)


class JsonFormatter(logging.Formatter):
    """Compact JSON formatter for structured log ingestion."""

    def format(self, record: logging.LogRecord) -> str:
        ts = time.time()
        payload = {
            "ts": ts,
            "ts_iso": datetime.fromtimestamp(ts).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return dumps(payload)


class AsyncQueueHandler(logging.Handler):
    """
    Non-blocking handler that queues log records for background processing.

    Records are written by a dedicated thread; when the queue is full the
    record is dropped and counted.
    """

    def __init__(self, target_handler: logging.Handler, max_queue_size: int = 10000):
        super().__init__()
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self._target = target_handler
        self._shutdown = False
        self._dropped = 0
        self._thread = threading.Thread(target=self._worker, daemon=True, name="log-writer")
        self._thread.start()
        atexit.register(self.close)

    def emit(self, record: logging.LogRecord) -> None:
        if self._shutdown:
            return
        try:
            self._queue.put_nowait(record)
        except queue.Full:
            self._dropped += 1

    def _worker(self) -> None:
        while not self._shutdown or not self._queue.empty():
            try:
                record = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                self._target.emit(record)
            except Exception:
                self._target.handleError(record)
            finally:
                self._queue.task_done()

    def close(self) -> None:
        if self._shutdown:
            return
        self._shutdown = True
        if self._thread.is_alive():
            self._thread.join(timeout=2.0)
        if self._dropped > 0:
            sys.stderr.write(f"[logging] Dropped {self._dropped} log records due to queue overflow\n")
        self._target.close()
        super().close()


class ThrottledFilter(logging.Filter):
    """
    Filter that throttles repetitive log messages.

    Allows first occurrence, then suppresses duplicates for cooldown_sec.
    """

    def __init__(self, cooldown_sec: float = 30.0, throttled_events: Optional[Set[str]] = None):
        super().__init__()
        self._cooldown = cooldown_sec
        self._last_seen: Dict[str, float] = {}
        self._throttled_events = throttled_events or {
            "feed_stale_detected", "http_retry", "price_unavailable", "reconcile_history_error",
        }

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        if not msg.startswith("{"):
            return True
        try:
            data = loads(msg)
        except ValueError:
            return True
        if not isinstance(data, dict):
            return True
        event = data.get("event", "")
        if event not in self._throttled_events:
            return True

        now = time.time()
        key = f"{event}:{data.get('symbol', '')}"
        last = self._last_seen.get(key, 0)
        if now - last < self._cooldown:
            return False
        self._last_seen[key] = now
        return True


def build_logger(
    name: str = "ladderbot",
    level: int = logging.INFO,
    file_path: Optional[str] = "ladderbot.log",
    async_file: bool = True,
    throttle_warnings: bool = True,
) -> logging.Logger:
    """
    Build the process logger.

    Args:
        name: Logger name
        level: Minimum log level
        file_path: Path to log file (None to disable file logging)
        async_file: Use async queue handler for file to avoid blocking
        throttle_warnings: Apply throttling filter to reduce repetitive warnings
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Idempotent handler setup
    if logger.handlers:
        for h in logger.handlers:
            h.setLevel(level)
        return logger

    stream_handler = RichHandler(
        rich_tracebacks=False,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
    )
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter("%(message)s"))
    if throttle_warnings:
        stream_handler.addFilter(ThrottledFilter(cooldown_sec=30.0))
    logger.addHandler(stream_handler)

    if file_path:
        directory = os.path.dirname(file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(JsonFormatter())
        file_handler.setLevel(level)
        if async_file:
            async_handler = AsyncQueueHandler(file_handler, max_queue_size=10000)
            async_handler.setLevel(level)
            logger.addHandler(async_handler)
        else:
            logger.addHandler(file_handler)

    logger.propagate = False
    return logger


class CycleLogFile:
    """
    Attaches a fresh JSON log file to the logger for each trading cycle.

    rotate() closes the previous cycle file (if any) and opens
    ``<log_dir>/cycle_<symbol>_<YYYYmmdd_HHMMSS>.log``.
    """

    def __init__(self, logger: logging.Logger, log_dir: str = "logs", enabled: bool = True) -> None:
        self._logger = logger
        self._log_dir = log_dir
        self._enabled = enabled
        self._handler: Optional[logging.Handler] = None
        self.path: Optional[str] = None

    def rotate(self, symbol: str) -> Optional[str]:
        self.close()
        if not self._enabled:
            return None
        os.makedirs(self._log_dir, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        safe_symbol = symbol.replace("/", "-")
        path = os.path.join(self._log_dir, f"cycle_{safe_symbol}_{stamp}.log")
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(JsonFormatter())
        handler.setLevel(self._logger.level or logging.INFO)
        self._logger.addHandler(handler)
        self._handler = handler
        self.path = path
        return path

    def close(self) -> None:
        if self._handler is None:
            return
        self._logger.removeHandler(self._handler)
        self._handler.close()
        self._handler = None


# Convenience function for structured event logging
def log_event(
    logger: logging.Logger,
    event: str,
    level: int = logging.INFO,
    **data
) -> None:
    """
    Log a structured event with proper level.

    Usage:
        log_event(log, "order_filled", level=INFO, side="buy", px=100.0)
    """
    payload = {"event": event, **data}
    logger.log(level, dumps(payload))
