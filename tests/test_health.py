"""Tests for the periodic health check."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from prometheus_client import CollectorRegistry

from scalper.config.settings import MonitoringConfig, RiskConfig, StorageConfig
from scalper.connectors.errors import ExchangeError
from scalper.monitoring.health import HealthChecker, consecutive_losses
from scalper.monitoring.metrics import Metrics
from scalper.monitoring.performance import PerformanceTracker, TradeRecord
from scalper.risk.engine import RiskGate


class _DummyMarketData:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    async def get_server_time(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return 1_700_000_000


def _trade(profit: float) -> TradeRecord:
    return TradeRecord(
        symbol="XBTGBP",
        side="LONG",
        entry_price=100.0,
        exit_price=100.0 + profit,
        volume=1.0,
        profit=profit,
        leveraged=False,
        leverage=1,
        currency="GBP",
        reason="STOP_LOSS" if profit < 0 else "TAKE_PROFIT",
        closed_at=datetime.now(timezone.utc),
    )


def _checker(tmp_path, market_data=None, performance=None, risk_gate=None, **monitoring):
    storage = StorageConfig(
        logs_path=str(tmp_path),
        performance_path=str(tmp_path / "performance.json"),
    )
    checker = HealthChecker(
        market_data or _DummyMarketData(),
        storage,
        MonitoringConfig(**monitoring),
        risk_gate or RiskGate(RiskConfig()),
        performance=performance,
    )
    metrics = Metrics(registry=CollectorRegistry())
    checker.set_metrics(metrics)
    return checker, metrics


def test_healthy_when_all_checks_pass(tmp_path) -> None:
    market_data = _DummyMarketData()
    checker, metrics = _checker(tmp_path, market_data)

    report = asyncio.run(checker.run_check())

    assert report.healthy
    assert report.issues == []
    assert market_data.calls == 1
    assert metrics.registry.get_sample_value("healthy") == 1.0
    assert checker.last_report is report


def test_unreachable_exchange_is_unhealthy(tmp_path) -> None:
    market_data = _DummyMarketData(error=ExchangeError("EService:Unavailable", "Time"))
    checker, metrics = _checker(tmp_path, market_data)

    report = asyncio.run(checker.run_check())

    assert not report.healthy
    assert not report.api_connected
    assert report.storage_writable
    assert "exchange unreachable" in report.issues[0]
    assert metrics.registry.get_sample_value("healthy") == 0.0


def test_missing_logs_directory_is_unhealthy(tmp_path) -> None:
    checker, _ = _checker(tmp_path / "missing")

    report = asyncio.run(checker.run_check())

    assert not report.storage_writable
    assert not report.healthy


def test_consecutive_losses_flag_performance(tmp_path) -> None:
    tracker = PerformanceTracker(tmp_path / "performance.json")
    for profit in (1.0, -0.5, -0.4, -0.3):
        tracker.record_trade(_trade(profit))
    checker, _ = _checker(tmp_path, performance=tracker)

    report = asyncio.run(checker.run_check())

    assert not report.performance_ok
    assert report.issues == ["consecutive losing trades: 3"]


def test_daily_loss_lockout_flags_performance(tmp_path) -> None:
    gate = RiskGate(RiskConfig())
    gate.record_pnl(-6.0, "GBP")
    assert not gate.can_open(100.0, 0)
    checker, _ = _checker(tmp_path, risk_gate=gate)

    report = asyncio.run(checker.run_check())

    assert not report.performance_ok
    assert report.issues[0].startswith("daily loss limit reached")


def test_error_log_patterns(tmp_path) -> None:
    lines = ['{"event": "exchange_call_exhausted"}'] * 4 + ['{"event": "monitor_loop_error"}']
    (tmp_path / "errors.log").write_text("\n".join(lines) + "\n", encoding="utf-8")

    checker, _ = _checker(tmp_path, max_exchange_error_lines=3)
    report = asyncio.run(checker.run_check())
    assert not report.logs_ok
    assert report.issues == ["excessive exchange errors: 4"]

    checker, _ = _checker(tmp_path, max_error_log_lines=2)
    report = asyncio.run(checker.run_check())
    assert report.issues == ["excessive error log entries: 5"]

    checker, _ = _checker(tmp_path)
    assert asyncio.run(checker.run_check()).logs_ok


def test_consecutive_losses_counts_from_latest() -> None:
    trades = [{"profit": -1.0}, {"profit": 2.0}, {"profit": -1.0}, {"profit": -0.1}]
    assert consecutive_losses(trades) == 2
    assert consecutive_losses([]) == 0
