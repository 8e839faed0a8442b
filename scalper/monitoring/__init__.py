"""Monitoring utilities."""

from scalper.monitoring.health import HealthChecker, HealthReport
from scalper.monitoring.logging import configure_logging
from scalper.monitoring.metrics import Metrics
from scalper.monitoring.performance import PerformanceStats, PerformanceTracker, TradeRecord

__all__ = [
    "configure_logging",
    "HealthChecker",
    "HealthReport",
    "Metrics",
    "PerformanceStats",
    "PerformanceTracker",
    "TradeRecord",
]
