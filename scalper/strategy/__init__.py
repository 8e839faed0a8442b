"""Market analysis, signal generation and pair selection."""

from scalper.strategy.combiner import SignalCombiner
from scalper.strategy.regime import (
    ActivityProfile,
    MarketAnalyzer,
    MarketCondition,
    MarketConditions,
    rsi_thresholds,
)
from scalper.strategy.signals import (
    MacdSignalGenerator,
    RsiSignalGenerator,
    Signal,
    SignalAction,
)
from scalper.strategy.universe import (
    FilteredPair,
    PairCandidate,
    PairSelectionResult,
    PairSelector,
)

__all__ = [
    # Analysis
    "ActivityProfile",
    "MarketAnalyzer",
    "MarketCondition",
    "MarketConditions",
    "rsi_thresholds",
    # Signals
    "MacdSignalGenerator",
    "RsiSignalGenerator",
    "Signal",
    "SignalAction",
    "SignalCombiner",
    # Pair selection
    "FilteredPair",
    "PairCandidate",
    "PairSelectionResult",
    "PairSelector",
]
