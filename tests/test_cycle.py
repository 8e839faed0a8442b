"""Tests for the trading cycle: context, pair selection and hand-off."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from scalper.config.settings import Settings
from scalper.connectors.errors import ExchangeError
from scalper.connectors.market_data import Candle, TradeBalance
from scalper.execution.cycle import TradingCycle
from scalper.execution.lifecycle import PositionLifecycleController
from scalper.ledger.positions import Position, PositionLedger
from scalper.risk.engine import RiskGate
from scalper.strategy.signals import Signal, SignalAction
from scalper.strategy.universe import PairCandidate, PairSelectionResult

MONDAY_NOON = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)
MONDAY_NIGHT = datetime(2024, 3, 4, 21, 0, tzinfo=timezone.utc)
MONDAY_LATE = datetime(2024, 3, 4, 23, 0, tzinfo=timezone.utc)
MONDAY_EARLY = datetime(2024, 3, 4, 8, 30, tzinfo=timezone.utc)


def _candles(closes, volume=2000.0):
    start = MONDAY_NOON - timedelta(minutes=len(closes))
    return [
        Candle(
            timestamp=start + timedelta(minutes=i),
            open=close,
            high=close,
            low=close,
            close=close,
            volume=volume,
            trade_count=5,
        )
        for i, close in enumerate(closes)
    ]


ALTERNATING = [100.0 if i % 2 == 0 else 101.0 for i in range(30)]


class _DummyMarketData:
    def __init__(self, candles=None, trade_balance=None, failing=()):
        self.candles = candles or {}
        self.trade_balance = trade_balance or TradeBalance(equity=200.0, free_margin=200.0, margin_level=None)
        self.failing = set(failing)
        self.balance_currencies = []

    async def get_balance(self, currency):
        self.balance_currencies.append(currency)
        return 100.0

    async def get_trade_balance(self):
        if isinstance(self.trade_balance, Exception):
            raise self.trade_balance
        return self.trade_balance

    async def get_candles(self, symbol, interval_minutes=1, lookback_minutes=60):
        if symbol in self.failing:
            raise RuntimeError(f"{symbol} feed broken")
        return self.candles.get(symbol, [])

    def pair_info(self, symbol):
        return None

    async def get_last_prices(self, symbols):
        return {}


class _DummySelector:
    def __init__(self, symbols):
        self.symbols = symbols
        self.requests = []

    async def select(self, currency, balance, max_pairs):
        self.requests.append((currency, balance, max_pairs))
        return PairSelectionResult(
            selected=[PairCandidate(symbol, 0.0, 0.0, 0.0) for symbol in self.symbols[:max_pairs]]
        )


class _DummyCaller:
    def __init__(self):
        self.calls = []

    async def call(self, operation, params=None):
        self.calls.append((operation, params))
        return {"txid": [f"TX{len(self.calls)}"]}


class _FixedCombiner:
    def __init__(self, decision):
        self.decision = decision

    def combine(self, rsi_signal, macd_signal, conditions, position):
        return self.decision


def _cycle(market_data, symbols=(), **execution):
    settings = Settings(execution=execution, _env_file=None)
    caller = _DummyCaller()
    controller = PositionLifecycleController(
        settings.execution,
        caller,
        PositionLedger(),
        RiskGate(settings.risk),
        market_data,
        quote_currencies=settings.scheduler.quote_currencies,
    )
    selector = _DummySelector(list(symbols))
    cycle = TradingCycle(settings, market_data, controller, selector=selector)
    return cycle, caller, selector


class TestContext:
    def test_margin_enabled_with_healthy_trade_balance(self) -> None:
        cycle, _, _ = _cycle(_DummyMarketData())
        context = asyncio.run(cycle.build_context(MONDAY_NOON))
        assert context.currency == "GBP"
        assert context.account_balance == 100.0
        assert context.margin_enabled
        assert not context.reduce_size

    def test_low_equity_disables_margin(self) -> None:
        market_data = _DummyMarketData(trade_balance=TradeBalance(2.0, 2.0, None))
        cycle, _, _ = _cycle(market_data)
        assert not asyncio.run(cycle.build_context(MONDAY_NOON)).margin_enabled

    def test_low_margin_level_reduces_size(self) -> None:
        market_data = _DummyMarketData(trade_balance=TradeBalance(200.0, 50.0, 150.0))
        cycle, _, _ = _cycle(market_data)
        context = asyncio.run(cycle.build_context(MONDAY_NOON))
        assert context.margin_enabled
        assert context.reduce_size

    def test_trade_balance_failure_disables_margin(self) -> None:
        market_data = _DummyMarketData(trade_balance=ExchangeError("EAPI:Rate limit exceeded"))
        cycle, _, _ = _cycle(market_data)
        assert not asyncio.run(cycle.build_context(MONDAY_NOON)).margin_enabled

    def test_margin_not_configured(self) -> None:
        cycle, _, _ = _cycle(_DummyMarketData(), use_margin=False)
        assert not asyncio.run(cycle.build_context(MONDAY_NOON)).margin_enabled

    def test_usd_evening_session_runs_at_full_activity(self) -> None:
        market_data = _DummyMarketData()
        cycle, _, selector = _cycle(market_data, symbols=["XBTUSD", "ETHUSD", "SOLUSD"])
        report = asyncio.run(cycle.run_once(MONDAY_NIGHT))
        assert report.currency == "USD"
        assert market_data.balance_currencies == ["USD"]
        assert selector.requests == [("USD", 100.0, 5)]
        assert report.pairs == ["XBTUSD", "ETHUSD", "SOLUSD"]
        assert not asyncio.run(cycle.build_context(MONDAY_NIGHT)).reduce_size

    def test_quiet_usd_hours_reduce_pairs_and_size(self) -> None:
        market_data = _DummyMarketData()
        cycle, _, selector = _cycle(market_data, symbols=["XBTUSD", "ETHUSD", "SOLUSD"])
        report = asyncio.run(cycle.run_once(MONDAY_LATE))
        assert report.currency == "USD"
        assert selector.requests == [("USD", 100.0, 2)]
        assert report.pairs == ["XBTUSD", "ETHUSD"]
        assert asyncio.run(cycle.build_context(MONDAY_LATE)).reduce_size

    def test_gbp_session_hours(self) -> None:
        cycle, _, _ = _cycle(_DummyMarketData())
        assert not cycle.off_hours("GBP", MONDAY_NOON)
        assert not cycle.off_hours("GBP", MONDAY_EARLY)
        assert cycle.off_hours("USD", MONDAY_EARLY)


class TestRunOnce:
    def test_decision_is_handed_to_controller(self) -> None:
        market_data = _DummyMarketData(candles={"SOLGBP": _candles(ALTERNATING)})
        cycle, caller, _ = _cycle(market_data, symbols=["SOLGBP"], use_margin=False)
        cycle.combiner = _FixedCombiner(Signal(SignalAction.BUY, "CONSENSUS"))

        report = asyncio.run(cycle.run_once(MONDAY_NOON))

        assert report.decisions["SOLGBP"].action == SignalAction.BUY
        position = cycle.controller.ledger.get("SOLGBP")
        assert position is not None
        assert position.entry_price == 101.0
        assert caller.calls[0][1]["volume"] == "0.0990"

    def test_pair_failures_do_not_abort_cycle(self) -> None:
        market_data = _DummyMarketData(
            candles={
                "XBTGBP": _candles([100.0] * 30),
                "SOLGBP": _candles(ALTERNATING),
            },
            failing=["BADGBP"],
        )
        cycle, _, _ = _cycle(market_data, symbols=["BADGBP", "XBTGBP", "SOLGBP"])

        report = asyncio.run(cycle.run_once(MONDAY_NOON))

        assert report.errors == {"BADGBP": "BADGBP feed broken"}
        # Flat prices carry no activity and are skipped
        assert "XBTGBP" not in report.decisions
        assert "SOLGBP" in report.decisions

    def test_held_symbols_are_always_analyzed(self) -> None:
        market_data = _DummyMarketData(candles={"ETHGBP": _candles([100.0] * 30)})
        cycle, _, _ = _cycle(market_data, symbols=["SOLGBP"])
        cycle.controller.ledger.upsert(
            "ETHGBP",
            Position(symbol="ETHGBP", side="LONG", entry_price=100.0, volume=0.1, currency="GBP"),
        )
        cycle.combiner = _FixedCombiner(Signal(SignalAction.HOLD, "HOLDING_POSITION"))

        report = asyncio.run(cycle.run_once(MONDAY_NOON))

        assert report.pairs == ["SOLGBP", "ETHGBP"]
        # Low activity does not hide a held symbol from exit evaluation
        assert report.decisions["ETHGBP"].action == SignalAction.HOLD
        assert "SOLGBP" not in report.decisions
