"""Periodic health check of exchange connectivity, storage, losses and error logs."""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

from scalper.config.settings import MonitoringConfig, StorageConfig
from scalper.connectors.errors import ExchangeError
from scalper.monitoring.logging import ERROR_LOG_NAME
from scalper.risk.engine import RiskGate

if TYPE_CHECKING:
    from scalper.monitoring.metrics import Metrics
    from scalper.monitoring.performance import PerformanceTracker

log = structlog.get_logger(__name__)

EXCHANGE_ERROR_EVENT = "exchange_call_exhausted"


class ServerClock(Protocol):
    async def get_server_time(self) -> int:
        ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class HealthReport:
    checked_at: datetime
    api_connected: bool = True
    storage_writable: bool = True
    performance_ok: bool = True
    logs_ok: bool = True
    issues: list[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return self.api_connected and self.storage_writable and self.performance_ok and self.logs_ok


class HealthChecker:
    """Run every check and report the combined result.

    A failing check never raises; it marks the report unhealthy and adds an
    issue line. The check itself does not stop trading, the risk gate does.
    """

    def __init__(
        self,
        market_data: ServerClock,
        storage: StorageConfig,
        monitoring: MonitoringConfig,
        risk_gate: RiskGate,
        performance: PerformanceTracker | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.market_data = market_data
        self.storage = storage
        self.monitoring = monitoring
        self.risk_gate = risk_gate
        self.performance = performance
        self._clock = clock
        self.metrics: Metrics | None = None
        self.last_report: HealthReport | None = None

    def set_metrics(self, metrics: Metrics) -> None:
        self.metrics = metrics

    async def run_check(self) -> HealthReport:
        report = HealthReport(checked_at=self._clock())
        report.api_connected = await self._check_api(report)
        report.storage_writable = self._check_storage(report)
        report.performance_ok = self._check_performance(report)
        report.logs_ok = self._check_error_log(report)

        if report.healthy:
            log.info("health_check_passed")
        else:
            log.warning("health_check_failed", issues=report.issues)
        if self.metrics:
            self.metrics.healthy.set(1 if report.healthy else 0)
        self.last_report = report
        return report

    async def _check_api(self, report: HealthReport) -> bool:
        try:
            await self.market_data.get_server_time()
        except ExchangeError as exc:
            report.issues.append(f"exchange unreachable: {exc}")
            return False
        return True

    def _check_storage(self, report: HealthReport) -> bool:
        logs_dir = Path(self.storage.logs_path)
        if not logs_dir.is_dir() or not os.access(logs_dir, os.W_OK):
            report.issues.append(f"logs directory not writable: {logs_dir}")
            return False
        performance_file = Path(self.storage.performance_path)
        if performance_file.exists() and not os.access(performance_file, os.R_OK | os.W_OK):
            report.issues.append(f"performance file not accessible: {performance_file}")
            return False
        return True

    def _check_performance(self, report: HealthReport) -> bool:
        ok = True
        if not self.risk_gate.state.trading_enabled:
            report.issues.append(
                f"daily loss limit reached: {self.risk_gate.daily_pnl():.2f} "
                f"{self.risk_gate.config.reference_currency}"
            )
            ok = False
        if self.performance is not None:
            losses = consecutive_losses(self.performance.trades)
            if losses >= self.monitoring.max_consecutive_losses:
                report.issues.append(f"consecutive losing trades: {losses}")
                ok = False
        return ok

    def _check_error_log(self, report: HealthReport) -> bool:
        path = Path(self.storage.logs_path) / ERROR_LOG_NAME
        if not path.exists():
            return True
        try:
            lines = [line for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]
        except OSError as exc:
            report.issues.append(f"error log unreadable: {exc}")
            return False
        if len(lines) > self.monitoring.max_error_log_lines:
            report.issues.append(f"excessive error log entries: {len(lines)}")
            return False
        exchange_errors = sum(1 for line in lines if EXCHANGE_ERROR_EVENT in line)
        if exchange_errors > self.monitoring.max_exchange_error_lines:
            report.issues.append(f"excessive exchange errors: {exchange_errors}")
            return False
        return True


def consecutive_losses(trades: list[dict]) -> int:
    """Losing trades at the end of the trade list, most recent last."""
    count = 0
    for trade in reversed(trades):
        if float(trade.get("profit") or 0.0) < 0:
            count += 1
        else:
            break
    return count
