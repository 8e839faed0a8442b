"""Technical indicator calculations."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd

# Saturation values used when the RS ratio is undefined
RSI_NEUTRAL = 50.0
RSI_ALL_GAINS = 70.0
RSI_ALL_LOSSES = 30.0


@dataclass(frozen=True)
class MacdResult:
    macd: pd.Series
    signal: pd.Series
    histogram: pd.Series


def calculate_ema(series: pd.Series, period: int) -> pd.Series:
    """Exponential moving average."""
    return series.ewm(span=period, adjust=False).mean()


def calculate_returns_pct(closes: pd.Series) -> pd.Series:
    """Percent change between consecutive closes, non-finite values dropped."""
    returns = closes.astype(float).pct_change() * 100
    return returns.replace([np.inf, -np.inf], np.nan).dropna()


def calculate_rsi(closes: pd.Series, period: int = 14) -> pd.Series:
    """Relative Strength Index over percent changes.

    Averages are simple means of the last ``period`` gains and losses. Where the
    RS ratio is undefined the value saturates instead of going NaN or infinite:

    - no gains and no losses: 50
    - gains but no losses: 70
    - losses but no gains: 30

    Returns only the defined values; an empty series means there is not enough
    data for the window.
    """
    if period < 1 or len(closes) <= period:
        return pd.Series(dtype=float)
    changes = closes.astype(float).pct_change() * 100
    changes = changes.replace([np.inf, -np.inf], np.nan)
    gains = changes.clip(lower=0)
    losses = (-changes).clip(lower=0)
    avg_gain = gains.rolling(window=period, min_periods=period).mean()
    avg_loss = losses.rolling(window=period, min_periods=period).mean()

    with np.errstate(divide="ignore", invalid="ignore"):
        rs = avg_gain / avg_loss
        raw = 100 - (100 / (1 + rs))
    rsi = np.select(
        [
            (avg_loss == 0) & (avg_gain > 0),
            (avg_loss == 0),
            (avg_gain == 0),
        ],
        [RSI_ALL_GAINS, RSI_NEUTRAL, RSI_ALL_LOSSES],
        default=raw,
    )
    result = pd.Series(rsi, index=closes.index, dtype=float)
    return result[avg_gain.notna() & avg_loss.notna()]


def calculate_macd(
    closes: pd.Series,
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MacdResult | None:
    """MACD line, signal line and histogram. None when fewer than ``slow_period`` closes."""
    if len(closes) < slow_period:
        return None
    closes = closes.astype(float)
    macd_line = calculate_ema(closes, fast_period) - calculate_ema(closes, slow_period)
    # Drop the warm-up segment where the slow EMA is still dominated by its seed
    macd_line = macd_line.iloc[slow_period - 1 :]
    signal_line = calculate_ema(macd_line, signal_period)
    return MacdResult(macd=macd_line, signal=signal_line, histogram=macd_line - signal_line)
