"""One pass of pair selection, analysis and decision hand-off."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import pandas as pd
import structlog

from scalper.config.settings import Settings
from scalper.connectors.errors import ExchangeError
from scalper.connectors.market_data import MarketDataReader, candles_to_frame
from scalper.execution.lifecycle import CycleContext, PositionLifecycleController
from scalper.features.indicators import calculate_macd, calculate_rsi
from scalper.ledger.positions import PositionInvariantError
from scalper.risk.currency import is_good_trading_time, select_quote_currency
from scalper.strategy.combiner import SignalCombiner
from scalper.strategy.regime import MarketAnalyzer, rsi_thresholds
from scalper.strategy.signals import MacdSignalGenerator, RsiSignalGenerator, Signal
from scalper.strategy.universe import PairSelector

if TYPE_CHECKING:
    from scalper.monitoring.metrics import Metrics

log = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CycleReport:
    currency: str
    pairs: list[str] = field(default_factory=list)
    decisions: dict[str, Signal] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)


class TradingCycle:
    """Run the trading pass: context, pair selection, per-pair decision."""

    def __init__(
        self,
        settings: Settings,
        market_data: MarketDataReader,
        controller: PositionLifecycleController,
        selector: PairSelector | None = None,
        analyzer: MarketAnalyzer | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.settings = settings
        self.market_data = market_data
        self.controller = controller
        self.selector = selector or PairSelector(market_data, settings.scheduler, settings.execution)
        self.analyzer = analyzer or MarketAnalyzer(settings.regime)
        self.rsi_generator = RsiSignalGenerator()
        self.macd_generator = MacdSignalGenerator()
        self.combiner = SignalCombiner()
        self._clock = clock
        self.metrics: Metrics | None = None

    def set_metrics(self, metrics: Metrics) -> None:
        self.metrics = metrics

    def off_hours(self, currency: str, now: datetime) -> bool:
        return not is_good_trading_time(currency, now)

    async def build_context(self, now: datetime) -> CycleContext:
        """Resolve currency, balance and margin availability for this cycle."""
        execution = self.settings.execution
        currency = select_quote_currency(now, self.settings.scheduler.quote_currencies)
        balance = await self.market_data.get_balance(currency)

        margin_enabled = execution.use_margin
        reduce_size = self.off_hours(currency, now)
        if margin_enabled:
            try:
                trade_balance = await self.market_data.get_trade_balance()
            except ExchangeError as exc:
                log.warning("trade_balance_unavailable", error=str(exc))
                margin_enabled = False
            else:
                if trade_balance.equity < execution.min_margin_equity:
                    log.info(
                        "margin_disabled_low_equity",
                        equity=trade_balance.equity,
                        min_equity=execution.min_margin_equity,
                    )
                    margin_enabled = False
                elif (
                    trade_balance.margin_level is not None
                    and trade_balance.margin_level < execution.min_margin_level
                ):
                    log.info(
                        "position_size_reduced_margin_level",
                        margin_level=trade_balance.margin_level,
                        min_margin_level=execution.min_margin_level,
                    )
                    reduce_size = True

        return CycleContext(
            currency=currency,
            account_balance=balance,
            margin_enabled=margin_enabled,
            reduce_size=reduce_size,
        )

    async def run_once(self, now: datetime | None = None) -> CycleReport:
        started = time.monotonic()
        now = now or self._clock()
        context = await self.build_context(now)
        report = CycleReport(currency=context.currency)

        scheduler = self.settings.scheduler
        off_hours = self.off_hours(context.currency, now)
        max_pairs = scheduler.off_hours_max_pairs if off_hours else scheduler.max_pairs
        selection = await self.selector.select(context.currency, context.account_balance, max_pairs)
        pairs = selection.symbols
        # Held symbols are always analyzed so exit signals are not missed
        for symbol in self.controller.ledger.symbols():
            if symbol not in pairs:
                pairs.append(symbol)
        report.pairs = pairs

        log.info(
            "trading_cycle_started",
            currency=context.currency,
            balance=round(context.account_balance, 2),
            margin_enabled=context.margin_enabled,
            reduce_size=context.reduce_size,
            off_hours=off_hours,
            pairs=pairs,
        )

        for symbol in pairs:
            try:
                decision = await self.analyze_pair(symbol, context)
            except PositionInvariantError:
                raise
            except Exception as exc:
                log.warning("pair_analysis_failed", symbol=symbol, error=str(exc))
                report.errors[symbol] = str(exc)
                continue
            if decision is not None:
                report.decisions[symbol] = decision

        duration = time.monotonic() - started
        if self.metrics:
            self.metrics.cycle_duration_sec.set(duration)
            self.metrics.trading_enabled.set(
                1 if self.controller.risk_gate.state.trading_enabled else 0
            )
        log.info(
            "trading_cycle_completed",
            currency=context.currency,
            decisions={symbol: signal.action.value for symbol, signal in report.decisions.items()},
            errors=len(report.errors),
            open_positions=self.controller.ledger.count(),
            duration_sec=round(duration, 3),
        )
        return report

    async def analyze_pair(self, symbol: str, context: CycleContext) -> Signal | None:
        strategy = self.settings.strategy
        candles = await self.market_data.get_candles(
            symbol, strategy.interval_minutes, strategy.lookback_minutes
        )
        if not candles:
            log.info("pair_skipped_no_data", symbol=symbol)
            return None

        frame = candles_to_frame(candles)
        position = self.controller.ledger.get(symbol)
        if position is None and not self.analyzer.has_enough_activity(frame):
            log.info("pair_skipped_low_activity", symbol=symbol, candles=len(frame))
            return None

        closes = frame["close"]
        profile = self.analyzer.activity_profile(frame)
        conditions = self.analyzer.analyze(frame)
        thresholds = rsi_thresholds(conditions.condition, profile.low_activity, strategy.rsi_thresholds)
        if self.analyzer.validate_prices(frame, profile):
            rsi = calculate_rsi(closes, profile.rsi_period)
        else:
            rsi = pd.Series(dtype=float)
        macd = calculate_macd(closes, strategy.macd_fast, strategy.macd_slow, strategy.macd_signal)

        rsi_signal = self.rsi_generator.get_signal(rsi, position, thresholds)
        macd_signal = self.macd_generator.get_signal(macd, position)
        decision = self.combiner.combine(rsi_signal, macd_signal, conditions, position)
        price = float(closes.iloc[-1])

        log.info(
            "pair_analysis",
            symbol=symbol,
            price=price,
            condition=conditions.condition.value,
            volatility=round(conditions.volatility, 4),
            price_trend=round(conditions.price_trend, 4),
            rsi=round(float(rsi.iloc[-1]), 2) if len(rsi) else None,
            rsi_period=profile.rsi_period,
            rsi_signal=rsi_signal.describe(),
            macd_signal=macd_signal.describe(),
            decision=decision.action.value,
            reason=decision.describe(),
            position=position.side if position else None,
        )

        await self.controller.handle_decision(symbol, decision, price, context, conditions.volatility)
        return decision
