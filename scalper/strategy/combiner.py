"""Fixed-priority combination of RSI and MACD signals."""

from __future__ import annotations

import structlog

from scalper.ledger.positions import Position
from scalper.strategy.regime import MarketCondition, MarketConditions
from scalper.strategy.signals import Signal, SignalAction

log = structlog.get_logger(__name__)


class SignalCombiner:
    """Merge two generator signals into one decision.

    Rules, first match wins:

    1. Position open: the first exit signal wins, otherwise hold.
    2. Both generators agree on a non-wait action: consensus.
    3. An extreme RSI reading acts alone.
    4. Volatile regime: buys need both generators, otherwise wait.
    5. Trending regime: a signal aligned with the price-trend sign acts alone.
    6. Otherwise wait.
    """

    def combine(
        self,
        rsi_signal: Signal,
        macd_signal: Signal,
        conditions: MarketConditions,
        position: Position | None,
    ) -> Signal:
        if position is not None:
            for signal in (rsi_signal, macd_signal):
                if signal.is_exit:
                    return signal
            return Signal(SignalAction.HOLD, "HOLDING_POSITION")

        if rsi_signal.is_entry and rsi_signal.action == macd_signal.action:
            return Signal(
                rsi_signal.action,
                "CONSENSUS",
                f"{rsi_signal.describe()} & {macd_signal.describe()}",
            )

        if rsi_signal.is_entry and "EXTREME" in rsi_signal.reason:
            return rsi_signal

        either_buy = SignalAction.BUY in (rsi_signal.action, macd_signal.action)
        if conditions.condition == MarketCondition.VOLATILE and either_buy:
            # Agreement was handled by the consensus rule
            return Signal(SignalAction.WAIT, "VOLATILE_MARKET_CAUTION")

        if conditions.condition == MarketCondition.TRENDING:
            wanted = None
            if conditions.price_trend > 0:
                wanted = SignalAction.BUY
            elif conditions.price_trend < 0:
                wanted = SignalAction.SELL
            if wanted is not None:
                for signal in (rsi_signal, macd_signal):
                    if signal.action == wanted:
                        return Signal(wanted, "TREND_FOLLOWING", signal.describe())

        return Signal(SignalAction.WAIT, "NO_STRONG_SIGNAL")
