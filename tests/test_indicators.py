"""Tests for RSI, EMA and MACD calculations."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from scalper.features.indicators import (
    RSI_ALL_GAINS,
    RSI_ALL_LOSSES,
    RSI_NEUTRAL,
    calculate_macd,
    calculate_returns_pct,
    calculate_rsi,
)


def test_flat_series_rsi_is_neutral_not_nan() -> None:
    rsi = calculate_rsi(pd.Series([100.0] * 10), period=5)
    assert len(rsi) == 5
    assert not rsi.isna().any()
    assert (rsi == RSI_NEUTRAL).all()


def test_only_gains_saturates_high() -> None:
    rsi = calculate_rsi(pd.Series(np.linspace(100, 120, 20)), period=14)
    assert rsi.iloc[-1] == RSI_ALL_GAINS


def test_only_losses_saturates_low() -> None:
    rsi = calculate_rsi(pd.Series(np.linspace(120, 100, 20)), period=14)
    assert rsi.iloc[-1] == RSI_ALL_LOSSES


def test_mixed_series_uses_formula() -> None:
    closes = pd.Series([100, 101, 100, 102, 101, 103, 102, 104, 103, 105], dtype=float)
    rsi = calculate_rsi(closes, period=3)
    assert ((rsi > 0) & (rsi < 100)).all()
    assert rsi.iloc[-1] > 50


def test_rsi_empty_when_window_not_filled() -> None:
    assert calculate_rsi(pd.Series([1.0, 2.0, 3.0]), period=14).empty


def test_returns_drop_infinite_moves() -> None:
    returns = calculate_returns_pct(pd.Series([0.0, 1.0, 2.0]))
    assert returns.tolist() == pytest.approx([100.0])


def test_macd_requires_slow_window() -> None:
    assert calculate_macd(pd.Series(np.arange(25, dtype=float) + 1)) is None


def test_macd_drops_warm_up_segment() -> None:
    closes = pd.Series(np.linspace(100, 110, 40))
    result = calculate_macd(closes, 12, 26, 9)
    assert result is not None
    assert len(result.macd) == 15
    assert result.histogram.iloc[-1] == pytest.approx(result.macd.iloc[-1] - result.signal.iloc[-1])
    assert result.macd.iloc[-1] > 0
