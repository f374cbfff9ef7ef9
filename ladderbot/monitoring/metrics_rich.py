"""
Prometheus metrics for the ladder cycle.

Organized into: execution, fills, cycle, liquidation, operational.
"""

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from typing import Optional


class RichMetrics:
    """Metrics for ladder bot observability."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()

        # === Execution Metrics ===
        self.orders_submitted = Counter(
            'orders_submitted_total',
            'Ladder buy orders accepted by the exchange',
            labelnames=['coin'],
            registry=reg
        )
        self.orders_failed = Counter(
            'orders_failed_total',
            'Ladder buy orders rejected or errored',
            labelnames=['coin'],
            registry=reg
        )
        self.orders_skipped = Counter(
            'orders_skipped_total',
            'Ladder orders skipped as duplicates of an existing signature',
            labelnames=['coin'],
            registry=reg
        )

        # === Fill Metrics ===
        self.fills_total = Counter(
            'fills_total',
            'Ladder orders recorded as filled',
            labelnames=['coin'],
            registry=reg
        )
        self.average_price = Gauge(
            'average_price',
            'Average cost of filled ladder orders',
            labelnames=['coin'],
            registry=reg
        )
        self.filled_quantity = Gauge(
            'filled_quantity',
            'Total filled quantity this cycle (coins)',
            labelnames=['coin'],
            registry=reg
        )
        self.unrealized_pnl = Gauge(
            'unrealized_pnl',
            'Unrealized PnL of the accumulated position (quote)',
            labelnames=['coin'],
            registry=reg
        )

        # === Cycle Metrics ===
        self.cycles_started = Counter(
            'cycles_started_total',
            'Cycles started (including restarts)',
            labelnames=['coin'],
            registry=reg
        )
        self.take_profits = Counter(
            'take_profits_total',
            'Take-profit exits',
            labelnames=['coin'],
            registry=reg
        )
        self.no_fill_restarts = Counter(
            'no_fill_restarts_total',
            'Cycles restarted because nothing filled in the window',
            labelnames=['coin'],
            registry=reg
        )
        self.running = Gauge(
            'running',
            'Cycle running (1=running, 0=stopped)',
            labelnames=['coin'],
            registry=reg
        )
        self.price_increase_pct = Gauge(
            'price_increase_pct',
            'Current price vs average cost (%)',
            labelnames=['coin'],
            registry=reg
        )

        # === Liquidation Metrics ===
        self.liquidations = Counter(
            'liquidations_total',
            'Liquidation attempts by outcome',
            labelnames=['coin', 'outcome'],
            registry=reg
        )
        self.unsold_quantity = Gauge(
            'unsold_quantity',
            'Quantity left unsold by the last liquidation (coins)',
            labelnames=['coin'],
            registry=reg
        )

        # === Operational Metrics ===
        self.price = Gauge(
            'price',
            'Last resolved price',
            labelnames=['coin'],
            registry=reg
        )
        self.price_age_sec = Gauge(
            'price_age_sec',
            'Age of the last resolved price (seconds)',
            labelnames=['coin'],
            registry=reg
        )
        self.reconcile_duration_ms = Histogram(
            'reconcile_duration_ms',
            'Fill reconciliation duration (milliseconds)',
            labelnames=['coin'],
            buckets=[50, 100, 250, 500, 1000, 2000, 5000],
            registry=reg
        )
        self.api_errors_total = Counter(
            'api_errors_total',
            'API errors encountered',
            labelnames=['coin', 'op'],
            registry=reg
        )

        self.registry = reg

    def get_registry(self):
        """Return the Prometheus registry for export."""
        return self.registry
