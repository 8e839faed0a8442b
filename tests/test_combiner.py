"""Tests for combining RSI and MACD signals into one decision."""

from __future__ import annotations

from scalper.ledger.positions import Position
from scalper.strategy.combiner import SignalCombiner
from scalper.strategy.regime import MarketCondition, MarketConditions
from scalper.strategy.signals import Signal, SignalAction


def _conditions(condition=MarketCondition.NEUTRAL, price_trend=0.0):
    return MarketConditions(
        volatility=1.0, volume_trend=0.0, price_trend=price_trend, condition=condition
    )


BUY_CROSS = Signal(SignalAction.BUY, "CROSSING_OVERSOLD")
BUY_EXTREME = Signal(SignalAction.BUY, "EXTREME_OVERSOLD")
MACD_BUY = Signal(SignalAction.BUY, "MACD_BULLISH_CROSSOVER")
MACD_SELL = Signal(SignalAction.SELL, "MACD_BEARISH_CROSSOVER")
WAIT = Signal(SignalAction.WAIT, "NEUTRAL_MACD")
RSI_WAIT = Signal(SignalAction.WAIT, "NEUTRAL_RSI")


def test_volatile_market_needs_agreement_for_buy() -> None:
    decision = SignalCombiner().combine(
        BUY_CROSS, WAIT, _conditions(MarketCondition.VOLATILE), None
    )
    assert decision.action == SignalAction.WAIT
    assert decision.reason == "VOLATILE_MARKET_CAUTION"


def test_consensus_combines_reasons() -> None:
    decision = SignalCombiner().combine(BUY_CROSS, MACD_BUY, _conditions(), None)
    assert decision.action == SignalAction.BUY
    assert decision.reason == "CONSENSUS"
    assert "CROSSING_OVERSOLD" in decision.detail
    assert "MACD_BULLISH_CROSSOVER" in decision.detail


def test_extreme_rsi_acts_alone_even_when_volatile() -> None:
    decision = SignalCombiner().combine(
        BUY_EXTREME, MACD_SELL, _conditions(MarketCondition.VOLATILE), None
    )
    assert decision == BUY_EXTREME


def test_trending_follows_aligned_signal() -> None:
    combiner = SignalCombiner()
    up = combiner.combine(RSI_WAIT, MACD_BUY, _conditions(MarketCondition.TRENDING, 0.01), None)
    assert up.action == SignalAction.BUY
    assert up.reason == "TREND_FOLLOWING"

    against = combiner.combine(RSI_WAIT, MACD_BUY, _conditions(MarketCondition.TRENDING, -0.01), None)
    assert against.reason == "NO_STRONG_SIGNAL"


def test_disagreement_waits() -> None:
    decision = SignalCombiner().combine(BUY_CROSS, MACD_SELL, _conditions(), None)
    assert decision.action == SignalAction.WAIT
    assert decision.reason == "NO_STRONG_SIGNAL"


def test_open_position_prefers_first_exit() -> None:
    position = Position(symbol="XBTGBP", side="LONG", entry_price=100.0, volume=1.0, currency="GBP")
    rsi_exit = Signal(SignalAction.EXIT, "OVERBOUGHT")
    macd_exit = Signal(SignalAction.EXIT, "MACD_BEARISH_CROSSOVER")
    combiner = SignalCombiner()

    assert combiner.combine(rsi_exit, macd_exit, _conditions(), position) == rsi_exit
    assert combiner.combine(RSI_WAIT, macd_exit, _conditions(), position) == macd_exit
    held = combiner.combine(RSI_WAIT, WAIT, _conditions(), position)
    assert held.action == SignalAction.HOLD
    assert held.reason == "HOLDING_POSITION"
