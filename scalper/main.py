"""Main runtime loop for the trading bot."""

from __future__ import annotations

import asyncio
import signal
import sys
import time
from datetime import datetime, timezone

import structlog
from pydantic import ValidationError

from scalper.config.settings import Settings, load_settings
from scalper.connectors import (
    ExchangeError,
    KrakenRestClient,
    MarketDataReader,
    PaperExchangeGateway,
    RetryingCaller,
)
from scalper.connectors.retry import ExchangeGateway
from scalper.execution import FORCED_EXIT, PositionLifecycleController, TradingCycle
from scalper.ledger import PositionLedger
from scalper.monitoring import HealthChecker, Metrics, PerformanceTracker, configure_logging
from scalper.risk import RiskGate

log = structlog.get_logger(__name__)


async def _wait_or_stop(stop: asyncio.Event, delay_sec: float) -> None:
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay_sec)
    except asyncio.TimeoutError:
        pass


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops; Ctrl+C still cancels asyncio.run
            log.debug("signal_handler_unavailable", signal=sig.name)


def _seed_daily_pnl(risk_gate: RiskGate, performance: PerformanceTracker) -> None:
    """Carry today's realized P&L across a restart so the loss limit still holds."""
    for currency, amount in performance.daily_pnl().items():
        if amount:
            risk_gate.record_pnl(amount, currency)


async def main_async() -> int:
    try:
        settings = load_settings()
    except ValidationError as exc:
        log.error("settings_validation_failed", errors=[err["msg"] for err in exc.errors()])
        return 1
    configure_logging(settings.monitoring.log_level, settings.storage.logs_path, settings.monitoring)
    errors = settings.validate_for_trading()
    if errors:
        log.error("settings_validation_failed", errors=errors, run_mode=settings.run.mode)
        return 1

    rest = KrakenRestClient(settings)
    gateway: ExchangeGateway = rest
    if settings.run.mode == "paper":
        gateway = PaperExchangeGateway(rest, settings.paper)
    metrics = Metrics()
    caller = RetryingCaller(gateway, settings.retry)
    caller.set_metrics(metrics)
    market_data = MarketDataReader(caller)

    try:
        server_time = await market_data.get_server_time()
        await market_data.get_pair_metadata()
    except ExchangeError as exc:
        log.error("exchange_unreachable", error=str(exc), operation=exc.operation)
        await rest.close()
        return 1
    log.info(
        "server_time_checked",
        server_time=server_time,
        drift_sec=round(time.time() - server_time, 1),
        run_mode=settings.run.mode,
    )

    ledger = PositionLedger()
    log.warning(
        "ledger_starts_empty",
        detail="positions opened before this start are not tracked",
    )
    performance = PerformanceTracker(settings.storage.performance_path)
    risk_gate = RiskGate(settings.risk)
    _seed_daily_pnl(risk_gate, performance)

    controller = PositionLifecycleController(
        settings.execution,
        caller,
        ledger,
        risk_gate,
        market_data,
        performance=performance,
        quote_currencies=settings.scheduler.quote_currencies,
    )
    controller.set_metrics(metrics)
    cycle = TradingCycle(settings, market_data, controller)
    cycle.set_metrics(metrics)
    health = HealthChecker(
        market_data, settings.storage, settings.monitoring, risk_gate, performance=performance
    )
    health.set_metrics(metrics)

    if settings.monitoring.metrics_enabled:
        metrics.start(settings.monitoring.metrics_port)
        log.info("metrics_server_started", port=settings.monitoring.metrics_port)

    stop = asyncio.Event()
    _install_signal_handlers(stop)
    return await _run(settings, cycle, controller, rest, stop, health)


async def _run(
    settings: Settings,
    cycle: TradingCycle,
    controller: PositionLifecycleController,
    rest: KrakenRestClient,
    stop: asyncio.Event,
    health: HealthChecker | None = None,
) -> int:
    scheduler = settings.scheduler
    monitoring = settings.monitoring

    async def trading_loop() -> None:
        while not stop.is_set():
            delay_sec = scheduler.cycle_interval_sec
            try:
                report = await cycle.run_once()
                if cycle.off_hours(report.currency, datetime.now(timezone.utc)):
                    delay_sec = scheduler.off_hours_interval_sec
            except Exception as exc:
                log.warning("trading_cycle_error", error=str(exc), error_type=type(exc).__name__)
            await _wait_or_stop(stop, delay_sec)

    async def monitor_loop() -> None:
        while not stop.is_set():
            try:
                await controller.monitor_positions()
            except Exception as exc:
                log.error("monitor_loop_error", error=str(exc), error_type=type(exc).__name__)
                stop.set()
                raise
            await _wait_or_stop(stop, scheduler.monitor_interval_sec)

    async def health_loop(checker: HealthChecker) -> None:
        while not stop.is_set():
            try:
                await checker.run_check()
            except Exception as exc:
                log.error("health_check_error", error=str(exc), error_type=type(exc).__name__)
            await _wait_or_stop(stop, monitoring.health_check_interval_sec)

    tasks = [
        asyncio.create_task(trading_loop(), name="trading_loop"),
        asyncio.create_task(monitor_loop(), name="monitor_loop"),
    ]
    if health is not None and monitoring.health_check_enabled:
        tasks.append(asyncio.create_task(health_loop(health), name="health_loop"))
    exit_code = 0
    try:
        await asyncio.gather(*tasks)
    except Exception:
        exit_code = 1
    finally:
        stop.set()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        log.info("shutdown_started", open_positions=controller.ledger.count())
        await controller.close_all(FORCED_EXIT)
        await rest.close()
        log.info("shutdown_complete", open_positions=controller.ledger.count())
    return exit_code


def main() -> None:
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
