"""Tests for RSI and MACD signal generation."""

from __future__ import annotations

import pandas as pd

from scalper.config.settings import RsiThresholdsConfig
from scalper.features.indicators import MacdResult
from scalper.ledger.positions import Position
from scalper.strategy.signals import MacdSignalGenerator, RsiSignalGenerator, SignalAction

DEFAULT = RsiThresholdsConfig().default


def _position(side="LONG"):
    return Position(symbol="XBTGBP", side=side, entry_price=100.0, volume=1.0, currency="GBP")


def _macd(lines, signals):
    macd = pd.Series(lines, dtype=float)
    signal = pd.Series(signals, dtype=float)
    return MacdResult(macd=macd, signal=signal, histogram=macd - signal)


class TestRsiSignals:
    def test_insufficient_data_waits(self) -> None:
        signal = RsiSignalGenerator().get_signal([25.0], None, DEFAULT)
        assert signal.action == SignalAction.WAIT
        assert signal.reason == "INSUFFICIENT_DATA"

    def test_empty_series_waits(self) -> None:
        signal = RsiSignalGenerator().get_signal(pd.Series(dtype=float), None, DEFAULT)
        assert signal.reason == "INSUFFICIENT_DATA"

    def test_extreme_oversold_buys(self) -> None:
        signal = RsiSignalGenerator().get_signal([22.0, 15.0], None, DEFAULT)
        assert signal.action == SignalAction.BUY
        assert signal.reason == "EXTREME_OVERSOLD"

    def test_crossing_into_oversold_buys(self) -> None:
        signal = RsiSignalGenerator().get_signal([32.0, 28.0], None, DEFAULT)
        assert signal.action == SignalAction.BUY
        assert signal.reason == "CROSSING_OVERSOLD"

    def test_staying_oversold_does_not_retrigger(self) -> None:
        signal = RsiSignalGenerator().get_signal([27.0, 26.0], None, DEFAULT)
        assert signal.action == SignalAction.WAIT
        assert signal.reason == "NEUTRAL_RSI"

    def test_overbought_sells(self) -> None:
        generator = RsiSignalGenerator()
        assert generator.get_signal([70.0, 85.0], None, DEFAULT).reason == "EXTREME_OVERBOUGHT"
        crossing = generator.get_signal([68.0, 72.0], None, DEFAULT)
        assert crossing.action == SignalAction.SELL
        assert crossing.reason == "CROSSING_OVERBOUGHT"

    def test_long_exits_when_overbought(self) -> None:
        generator = RsiSignalGenerator()
        assert generator.get_signal([60.0, 82.0], _position(), DEFAULT).reason == "STRONG_OVERBOUGHT"
        exit_signal = generator.get_signal([60.0, 72.0], _position(), DEFAULT)
        assert exit_signal.action == SignalAction.EXIT
        assert exit_signal.reason == "OVERBOUGHT"

    def test_short_exits_when_oversold(self) -> None:
        generator = RsiSignalGenerator()
        assert generator.get_signal([40.0, 18.0], _position("SHORT"), DEFAULT).reason == "STRONG_OVERSOLD"
        assert generator.get_signal([40.0, 28.0], _position("SHORT"), DEFAULT).reason == "OVERSOLD"

    def test_open_position_never_proposes_entry(self) -> None:
        signal = RsiSignalGenerator().get_signal([22.0, 10.0], _position(), DEFAULT)
        assert signal.action == SignalAction.HOLD
        assert signal.reason == "HOLDING_POSITION"


class TestMacdSignals:
    def test_none_waits(self) -> None:
        assert MacdSignalGenerator().get_signal(None, None).reason == "INSUFFICIENT_DATA"

    def test_bullish_crossover_buys(self) -> None:
        signal = MacdSignalGenerator().get_signal(_macd([-0.2, 0.1], [0.0, 0.0]), None)
        assert signal.action == SignalAction.BUY
        assert signal.reason == "MACD_BULLISH_CROSSOVER"

    def test_bearish_crossover_sells(self) -> None:
        signal = MacdSignalGenerator().get_signal(_macd([0.2, -0.1], [0.0, 0.0]), None)
        assert signal.action == SignalAction.SELL
        assert signal.reason == "MACD_BEARISH_CROSSOVER"

    def test_rising_histogram_below_zero(self) -> None:
        signal = MacdSignalGenerator().get_signal(_macd([-0.5, -0.3], [-0.6, -0.6]), None)
        assert signal.action == SignalAction.BUY
        assert signal.reason == "MACD_BULLISH_CROSS_BELOW_ZERO"

    def test_falling_histogram_above_zero(self) -> None:
        signal = MacdSignalGenerator().get_signal(_macd([0.5, 0.3], [0.6, 0.6]), None)
        assert signal.action == SignalAction.SELL
        assert signal.reason == "MACD_BEARISH_CROSS_ABOVE_ZERO"

    def test_long_exit_on_bearish_crossover(self) -> None:
        signal = MacdSignalGenerator().get_signal(_macd([0.2, -0.1], [0.0, 0.0]), _position())
        assert signal.action == SignalAction.EXIT
        assert signal.reason == "MACD_BEARISH_CROSSOVER"

    def test_short_exit_mirrors_long(self) -> None:
        signal = MacdSignalGenerator().get_signal(
            _macd([-0.5, -0.3], [-0.6, -0.6]), _position("SHORT")
        )
        assert signal.action == SignalAction.EXIT
        assert signal.reason == "MACD_BULLISH_CROSS"

    def test_position_without_exit_holds(self) -> None:
        signal = MacdSignalGenerator().get_signal(_macd([-0.5, -0.3], [-0.6, -0.6]), _position())
        assert signal.action == SignalAction.HOLD
