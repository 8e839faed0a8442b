"""Prometheus metrics definitions."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server


class Metrics:
    """Expose core trading metrics for monitoring."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.open_positions = Gauge(
            "open_positions", "Number of open positions", registry=self.registry
        )
        self.daily_pnl = Gauge(
            "daily_pnl", "Realized PnL today in the reference currency", registry=self.registry
        )
        self.trading_enabled = Gauge(
            "trading_enabled", "1 unless the daily loss limit is hit", registry=self.registry
        )
        self.orders_placed_total = Counter(
            "orders_placed_total",
            "Orders sent to the exchange by side and outcome",
            ["side", "result"],
            registry=self.registry,
        )
        self.positions_closed_total = Counter(
            "positions_closed_total",
            "Positions closed by reason",
            ["reason"],
            registry=self.registry,
        )
        self.exchange_retries_total = Counter(
            "exchange_retries_total",
            "Exchange call retries by operation",
            ["operation"],
            registry=self.registry,
        )
        self.cycle_duration_sec = Gauge(
            "cycle_duration_sec", "Duration of the last trading cycle", registry=self.registry
        )
        self.healthy = Gauge(
            "healthy", "1 when the last health check passed", registry=self.registry
        )

    def start(self, port: int) -> None:
        start_http_server(port, registry=self.registry)
