"""Technical indicators module."""

from scalper.features.indicators import (
    MacdResult,
    calculate_ema,
    calculate_macd,
    calculate_returns_pct,
    calculate_rsi,
)

__all__ = [
    "MacdResult",
    "calculate_ema",
    "calculate_macd",
    "calculate_returns_pct",
    "calculate_rsi",
]
