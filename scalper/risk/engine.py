"""Admission control and risk-bounded sizing."""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

import structlog

from scalper.config.settings import RiskConfig
from scalper.risk.currency import CurrencyConverter

log = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DailyRiskState:
    day: date
    cumulative_pnl: dict[str, float] = field(default_factory=dict)
    trading_enabled: bool = True


@dataclass(frozen=True)
class RiskCheckResult:
    approved: bool
    reasons: list[str] = field(default_factory=list)


class RiskGate:
    """Decide whether a new position may open and how large it may be.

    Daily P&L accumulates per settlement currency and is compared in the
    reference currency. Once the daily loss limit is hit, entries stay blocked
    until the UTC day rolls over.
    """

    def __init__(
        self,
        config: RiskConfig,
        clock: Callable[[], datetime] = _utc_now,
        converter: CurrencyConverter | None = None,
    ) -> None:
        self.config = config
        self._clock = clock
        self.converter = converter or CurrencyConverter(
            config.exchange_rates, config.reference_currency
        )
        self._state = DailyRiskState(day=self._today())

    def _today(self) -> date:
        return self._clock().astimezone(timezone.utc).date()

    @property
    def state(self) -> DailyRiskState:
        today = self._today()
        if self._state.day != today:
            log.info(
                "daily_risk_reset",
                previous_day=self._state.day.isoformat(),
                previous_pnl=self._state.cumulative_pnl,
                day=today.isoformat(),
            )
            self._state = DailyRiskState(day=today)
        return self._state

    def record_pnl(self, profit: float, currency: str) -> DailyRiskState:
        state = self.state
        if not math.isfinite(profit):
            log.warning("daily_pnl_ignored", profit=profit, currency=currency)
            return state
        state.cumulative_pnl[currency] = state.cumulative_pnl.get(currency, 0.0) + profit
        log.info(
            "daily_pnl_updated",
            currency=currency,
            profit=round(profit, 8),
            cumulative=state.cumulative_pnl,
            reference_total=round(self.daily_pnl(state), 8),
        )
        return state

    def daily_pnl(self, state: DailyRiskState | None = None) -> float:
        """Cumulative P&L for the day in the reference currency."""
        state = state or self.state
        total = 0.0
        for currency, amount in state.cumulative_pnl.items():
            try:
                total += self.converter.convert(amount, currency)
            except KeyError:
                log.warning("currency_conversion_missing", currency=currency)
                total += amount
        return total

    def evaluate(
        self,
        account_balance: float,
        open_position_count: int,
        state: DailyRiskState | None = None,
    ) -> RiskCheckResult:
        state = state or self.state
        reasons: list[str] = []

        if not math.isfinite(account_balance) or account_balance <= 0:
            reasons.append("INVALID_BALANCE")
        elif state.trading_enabled:
            pnl = self.daily_pnl(state)
            limit = account_balance * self.config.max_daily_loss_fraction
            if pnl < 0 and abs(pnl) >= limit:
                state.trading_enabled = False
                log.warning(
                    "daily_loss_limit_reached",
                    daily_pnl=round(pnl, 8),
                    limit=round(limit, 8),
                    currency=self.config.reference_currency,
                )
        if not state.trading_enabled:
            reasons.append("DAILY_LOSS_LIMIT")

        if open_position_count >= self.config.max_open_positions:
            reasons.append("MAX_POSITIONS_REACHED")

        return RiskCheckResult(approved=not reasons, reasons=reasons)

    def can_open(
        self,
        account_balance: float,
        open_position_count: int,
        state: DailyRiskState | None = None,
    ) -> bool:
        return self.evaluate(account_balance, open_position_count, state).approved

    def volatility_multiplier(self, volatility: float) -> float:
        if volatility > self.config.high_volatility:
            return self.config.high_volatility_multiplier
        if volatility < self.config.low_volatility:
            return self.config.low_volatility_multiplier
        return 1.0

    def size_position(
        self,
        account_balance: float,
        price: float,
        stop_loss_percent: float,
        volatility: float = 1.0,
    ) -> float:
        """Volume risking ``max_risk_per_trade`` of the balance at the stop distance.

        Returns 0.0 for any non-finite or non-positive input.
        """
        inputs = (account_balance, price, stop_loss_percent, volatility)
        if not all(math.isfinite(value) for value in inputs):
            return 0.0
        if account_balance <= 0 or price <= 0 or stop_loss_percent <= 0 or volatility < 0:
            return 0.0
        risk_amount = account_balance * self.config.max_risk_per_trade
        risk_amount *= self.volatility_multiplier(volatility)
        stop_distance = price * stop_loss_percent / 100
        volume = risk_amount / stop_distance
        if not math.isfinite(volume) or volume <= 0:
            return 0.0
        return volume
