"""RSI and MACD signal generators."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import pandas as pd

from scalper.config.settings import RsiThresholds
from scalper.features.indicators import MacdResult
from scalper.ledger.positions import Position


class SignalAction(str, Enum):
    BUY = "buy"
    SELL = "sell"
    EXIT = "exit"
    WAIT = "wait"
    HOLD = "hold"


@dataclass(frozen=True)
class Signal:
    action: SignalAction
    reason: str
    detail: str = ""

    @property
    def is_entry(self) -> bool:
        return self.action in (SignalAction.BUY, SignalAction.SELL)

    @property
    def is_exit(self) -> bool:
        return self.action == SignalAction.EXIT

    def describe(self) -> str:
        return f"{self.reason} ({self.detail})" if self.detail else self.reason


def _tail(values: pd.Series | Sequence[float], count: int) -> list[float]:
    if isinstance(values, pd.Series):
        values = values.dropna().tolist()
    return [float(v) for v in list(values)[-count:]]


class RsiSignalGenerator:
    """Threshold crossings of RSI against a regime-dependent threshold set.

    With a position open only exits relative to the position side are
    considered; otherwise the latest and previous RSI decide the entry.
    """

    def get_signal(
        self,
        rsi_values: pd.Series | Sequence[float],
        position: Position | None,
        thresholds: RsiThresholds,
    ) -> Signal:
        values = _tail(rsi_values, 2)
        if len(values) < 2:
            return Signal(SignalAction.WAIT, "INSUFFICIENT_DATA")
        previous, current = values
        detail = f"rsi={current:.2f}"

        if position is not None:
            if position.side == "LONG":
                if current > thresholds.overbought_extreme:
                    return Signal(SignalAction.EXIT, "STRONG_OVERBOUGHT", detail)
                if current > thresholds.overbought:
                    return Signal(SignalAction.EXIT, "OVERBOUGHT", detail)
            else:
                if current < thresholds.oversold_extreme:
                    return Signal(SignalAction.EXIT, "STRONG_OVERSOLD", detail)
                if current < thresholds.oversold:
                    return Signal(SignalAction.EXIT, "OVERSOLD", detail)
            return Signal(SignalAction.HOLD, "HOLDING_POSITION", detail)

        if current < thresholds.oversold_extreme:
            return Signal(
                SignalAction.BUY,
                "EXTREME_OVERSOLD",
                f"{current:.2f} < {thresholds.oversold_extreme:g}",
            )
        if current < thresholds.oversold <= previous:
            return Signal(
                SignalAction.BUY,
                "CROSSING_OVERSOLD",
                f"{previous:.2f} -> {current:.2f}",
            )
        if current > thresholds.overbought_extreme:
            return Signal(
                SignalAction.SELL,
                "EXTREME_OVERBOUGHT",
                f"{current:.2f} > {thresholds.overbought_extreme:g}",
            )
        if current > thresholds.overbought >= previous:
            return Signal(
                SignalAction.SELL,
                "CROSSING_OVERBOUGHT",
                f"{previous:.2f} -> {current:.2f}",
            )
        return Signal(SignalAction.WAIT, "NEUTRAL_RSI", detail)


class MacdSignalGenerator:
    """Line/signal crossovers and histogram slope, with exits mirroring entries."""

    def get_signal(self, macd: MacdResult | None, position: Position | None) -> Signal:
        if macd is None:
            return Signal(SignalAction.WAIT, "INSUFFICIENT_DATA")
        lines = _tail(macd.macd, 2)
        signals = _tail(macd.signal, 2)
        histogram = _tail(macd.histogram, 2)
        if len(lines) < 2 or len(signals) < 2 or len(histogram) < 2:
            return Signal(SignalAction.WAIT, "INSUFFICIENT_DATA")

        prev_macd, cur_macd = lines
        prev_signal, cur_signal = signals
        prev_hist, cur_hist = histogram
        bullish_cross = prev_macd < prev_signal and cur_macd > cur_signal
        bearish_cross = prev_macd > prev_signal and cur_macd < cur_signal
        rising = cur_hist > prev_hist
        falling = cur_hist < prev_hist
        detail = f"macd={cur_macd:.6f} signal={cur_signal:.6f} hist={cur_hist:.6f}"

        if position is not None:
            if position.side == "LONG":
                if bearish_cross:
                    return Signal(SignalAction.EXIT, "MACD_BEARISH_CROSSOVER", detail)
                if cur_macd < cur_signal and falling:
                    return Signal(SignalAction.EXIT, "MACD_BEARISH_CROSS", detail)
            else:
                if bullish_cross:
                    return Signal(SignalAction.EXIT, "MACD_BULLISH_CROSSOVER", detail)
                if cur_macd > cur_signal and rising:
                    return Signal(SignalAction.EXIT, "MACD_BULLISH_CROSS", detail)
            return Signal(SignalAction.HOLD, "HOLDING_POSITION", detail)

        if bullish_cross:
            return Signal(SignalAction.BUY, "MACD_BULLISH_CROSSOVER", detail)
        if bearish_cross:
            return Signal(SignalAction.SELL, "MACD_BEARISH_CROSSOVER", detail)
        if cur_macd > cur_signal and rising:
            reason = "MACD_BULLISH_CROSS_BELOW_ZERO" if cur_macd < 0 else "MACD_BULLISH_CROSS_ABOVE_ZERO"
            return Signal(SignalAction.BUY, reason, detail)
        if cur_macd < cur_signal and falling:
            reason = "MACD_BEARISH_CROSS_ABOVE_ZERO" if cur_macd > 0 else "MACD_BEARISH_CROSS_BELOW_ZERO"
            return Signal(SignalAction.SELL, reason, detail)
        return Signal(SignalAction.WAIT, "NEUTRAL_MACD", detail)
