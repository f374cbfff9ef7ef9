"""
Health tracking and a small HTTP server for metrics, status and probes.

- /metrics - Prometheus exposition of the RichMetrics registry
- /status  - Status board JSON
- /health  - Liveness probe
- /ready   - Readiness probe (cycle running)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ladderbot.core.json_utils import dumps
from ladderbot.monitoring.metrics_rich import RichMetrics

log = logging.getLogger("ladderbot")


@dataclass
class HealthStatus:
    """Health status for the bot."""
    healthy: bool = True
    ready: bool = False
    last_heartbeat_ms: int = 0
    components: Dict[str, bool] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)


class HealthChecker:
    """
    Tracks component health for:
    - /health - is the process alive and every component ok?
    - /ready - is a cycle running?
    """

    def __init__(self) -> None:
        self._components: Dict[str, bool] = {}
        self._details: Dict[str, Any] = {}
        self._ready = False
        self._last_heartbeat = int(time.time() * 1000)
        self._callbacks: List[Callable[[str, bool], None]] = []

    def set_component_health(self, name: str, healthy: bool, detail: Optional[str] = None) -> None:
        changed = self._components.get(name) != healthy
        self._components[name] = healthy
        if detail:
            self._details[name] = detail
        elif healthy:
            self._details.pop(name, None)
        self._last_heartbeat = int(time.time() * 1000)
        if not changed:
            return
        for cb in self._callbacks:
            try:
                cb(name, healthy)
            except Exception as exc:
                log.warning(dumps({"event": "health_callback_error", "component": name, "err": str(exc)}))

    def set_ready(self, ready: bool) -> None:
        self._ready = ready
        self._last_heartbeat = int(time.time() * 1000)

    def heartbeat(self) -> None:
        self._last_heartbeat = int(time.time() * 1000)

    def register_callback(self, callback: Callable[[str, bool], None]) -> None:
        self._callbacks.append(callback)

    def is_healthy(self) -> bool:
        if not self._components:
            return True
        return all(self._components.values())

    def is_ready(self) -> bool:
        return self._ready and self.is_healthy()

    def get_status(self) -> HealthStatus:
        return HealthStatus(
            healthy=self.is_healthy(),
            ready=self.is_ready(),
            last_heartbeat_ms=self._last_heartbeat,
            components=dict(self._components),
            details=dict(self._details),
        )

    def to_dict(self) -> Dict[str, Any]:
        status = self.get_status()
        return {
            "healthy": status.healthy,
            "ready": status.ready,
            "last_heartbeat_ms": status.last_heartbeat_ms,
            "components": status.components,
            "details": status.details,
        }


def _response(status: bytes, body: bytes, content_type: bytes = b"application/json") -> bytes:
    return (
        b"HTTP/1.1 " + status + b"\r\n"
        b"Content-Type: " + content_type + b"\r\n"
        b"Content-Length: " + str(len(body)).encode() + b"\r\n"
        b"Connection: close\r\n\r\n"
        + body
    )


def _parse_request(req: bytes):
    path_raw = b"/"
    header_lines = req.split(b"\r\n") if b"\r\n" in req else []
    if header_lines and b" " in header_lines[0]:
        parts = header_lines[0].split(b" ")
        if len(parts) > 1:
            path_raw = parts[1]
    headers: Dict[bytes, bytes] = {}
    for line in header_lines[1:]:
        if b":" in line:
            k, v = line.split(b":", 1)
            headers[k.strip().lower()] = v.strip()
    parsed = urlparse(path_raw.decode("utf-8", errors="ignore"))
    return parsed.path, parse_qs(parsed.query), headers


async def start_metrics_server(
    metrics: RichMetrics,
    port: int,
    status_board=None,
    auth_token: Optional[str] = None,
    health_checker: Optional[HealthChecker] = None,
    host: str = "0.0.0.0",
) -> asyncio.AbstractServer:
    """
    Start the HTTP server.

    /health and /ready never require auth. /metrics and /status require the
    bearer token (header or ?token=) when auth_token is set.
    """
    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            req = await reader.read(2048)
            path, query, headers = _parse_request(req)

            if path == "/health":
                healthy = health_checker.is_healthy() if health_checker else True
                body = dumps(health_checker.to_dict() if health_checker else {"healthy": True, "ready": True})
                code = b"200 OK" if healthy else b"503 Service Unavailable"
                writer.write(_response(code, body.encode()))
                return

            if path == "/ready":
                ready = health_checker.is_ready() if health_checker else True
                code = b"200 OK" if ready else b"503 Service Unavailable"
                writer.write(_response(code, dumps({"ready": ready}).encode()))
                return

            if auth_token:
                header_auth = headers.get(b"authorization", b"").decode("utf-8", errors="ignore")
                if header_auth != f"Bearer {auth_token}" and query.get("token", [""])[0] != auth_token:
                    writer.write(b"HTTP/1.1 401 Unauthorized\r\nConnection: close\r\n\r\n")
                    return

            if path.startswith("/status") and status_board is not None:
                try:
                    snap = await status_board.snapshot()
                    writer.write(_response(b"200 OK", dumps(snap).encode()))
                except Exception as exc:
                    log.warning(dumps({"event": "status_endpoint_error", "err": str(exc)}))
                    writer.write(b"HTTP/1.1 500 Internal Server Error\r\nConnection: close\r\n\r\n")
                return

            body = generate_latest(metrics.get_registry())
            writer.write(_response(b"200 OK", body, CONTENT_TYPE_LATEST.encode()))
        finally:
            try:
                await writer.drain()
            finally:
                writer.close()

    server = await asyncio.start_server(handle, host, port)
    log.info(dumps({"event": "metrics_server_started", "port": port}))
    return server
