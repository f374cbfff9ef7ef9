"""
Monitoring package: Prometheus metrics, health/status HTTP server, status
board and console renderer, webhook alerting.
"""

from ladderbot.monitoring.alerting import (
    Alert,
    AlertConfig,
    AlertManager,
    AlertSeverity,
    AlertType,
    configure_alerts,
    get_alert_manager,
)
from ladderbot.monitoring.metrics import HealthChecker, start_metrics_server
from ladderbot.monitoring.metrics_rich import RichMetrics
from ladderbot.monitoring.status import StatusBoard, StatusRenderer, StatusSnapshot

__all__ = [
    "Alert",
    "AlertConfig",
    "AlertManager",
    "AlertSeverity",
    "AlertType",
    "configure_alerts",
    "get_alert_manager",
    "HealthChecker",
    "start_metrics_server",
    "RichMetrics",
    "StatusBoard",
    "StatusRenderer",
    "StatusSnapshot",
]
