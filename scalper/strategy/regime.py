"""Market condition classification and activity-adaptive RSI settings."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import pandas as pd

from scalper.config.settings import RegimeConfig, RsiThresholds, RsiThresholdsConfig
from scalper.features.indicators import calculate_returns_pct


class MarketCondition(str, Enum):
    """Coarse market regime."""

    TRENDING = "trending"
    RANGING = "ranging"
    VOLATILE = "volatile"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class MarketConditions:
    """Result of market condition analysis.

    ``volatility`` is the population standard deviation of percent returns,
    ``volume_trend`` the change of the last five candles' mean volume against
    the five before them, and ``price_trend`` the percent move from the first
    to the last close of the window.
    """

    volatility: float
    volume_trend: float
    price_trend: float
    condition: MarketCondition


@dataclass(frozen=True)
class ActivityProfile:
    activity_ratio: float
    min_trades: int
    rsi_period: int
    low_activity: bool


class MarketAnalyzer:
    """Classify recent candles into a regime and derive activity-adjusted RSI settings."""

    RECENT_VOLUME_CANDLES = 5
    VALIDATION_WINDOW = 10

    def __init__(self, config: RegimeConfig | None = None) -> None:
        self.config = config or RegimeConfig()

    def analyze(self, frame: pd.DataFrame) -> MarketConditions:
        if len(frame) < self.config.min_candles:
            return MarketConditions(
                volatility=1.0,
                volume_trend=0.0,
                price_trend=0.0,
                condition=MarketCondition.NEUTRAL,
            )

        closes = frame["close"].astype(float)
        volumes = frame["volume"].astype(float)

        returns = calculate_returns_pct(closes)
        volatility = float(returns.std(ddof=0)) if len(returns) else 0.0

        volume_trend = self._volume_trend(volumes)
        price_trend = self._price_trend(closes)

        return MarketConditions(
            volatility=volatility,
            volume_trend=volume_trend,
            price_trend=price_trend,
            condition=self.classify(volatility, volume_trend, price_trend),
        )

    def classify(self, volatility: float, volume_trend: float, price_trend: float) -> MarketCondition:
        cfg = self.config
        if volatility > cfg.trending_volatility and volume_trend > cfg.trending_volume_trend:
            return MarketCondition.TRENDING
        if volatility < cfg.ranging_volatility and abs(price_trend) < cfg.ranging_price_trend:
            return MarketCondition.RANGING
        if volatility > cfg.volatile_volatility:
            return MarketCondition.VOLATILE
        return MarketCondition.NEUTRAL

    def activity_profile(self, frame: pd.DataFrame) -> ActivityProfile:
        """Loosen the RSI window as the share of moving candles drops."""
        closes = frame["close"].astype(float)
        ratio = 0.0
        if len(closes) > 0:
            previous = closes.shift(1)
            moves = ((closes - previous).abs() / previous).iloc[1:]
            active = int((moves > self.config.activity_move_threshold).sum())
            ratio = active / len(closes) * 100

        min_trades = self.config.default_min_trades
        rsi_period = self.config.default_rsi_period
        for tier in sorted(self.config.activity_tiers, key=lambda t: t.max_ratio):
            if ratio < tier.max_ratio:
                min_trades = tier.min_trades
                rsi_period = tier.rsi_period
                break
        return ActivityProfile(
            activity_ratio=ratio,
            min_trades=min_trades,
            rsi_period=rsi_period,
            low_activity=min_trades <= self.config.low_activity_max_trades,
        )

    def has_enough_activity(self, frame: pd.DataFrame) -> bool:
        if len(frame) < self.config.min_candles:
            return False
        avg_volume = float(frame["volume"].astype(float).mean())
        returns = calculate_returns_pct(frame["close"])
        avg_move = float(returns.abs().mean()) if len(returns) else 0.0
        return avg_volume > self.config.min_avg_volume and avg_move > self.config.min_avg_move_pct

    def validate_prices(self, frame: pd.DataFrame, profile: ActivityProfile) -> bool:
        """Whether the candles carry enough traded activity for an RSI reading."""
        if frame.empty:
            return False
        recent = frame["close"].astype(float).iloc[-self.VALIDATION_WINDOW :]
        unique_prices = recent.nunique()
        if "trades" in frame:
            active_candles = int((frame["trades"] > 0).sum())
        else:
            active_candles = int((frame["volume"] > 0).sum())
        if profile.min_trades <= 1:
            return active_candles >= 1 and unique_prices >= 1
        if profile.min_trades <= 2:
            return active_candles >= 2 and unique_prices >= 1
        return active_candles >= 5 and unique_prices >= 3

    def _volume_trend(self, volumes: pd.Series) -> float:
        window = self.RECENT_VOLUME_CANDLES
        if len(volumes) < 2 * window:
            return 0.0
        recent = float(volumes.iloc[-window:].mean())
        previous = float(volumes.iloc[-2 * window : -window].mean())
        if previous <= 0:
            return 0.0
        return (recent - previous) / previous

    @staticmethod
    def _price_trend(closes: pd.Series) -> float:
        if len(closes) < 2:
            return 0.0
        first = float(closes.iloc[0])
        if first == 0:
            return 0.0
        return (float(closes.iloc[-1]) - first) / first * 100


def rsi_thresholds(
    condition: MarketCondition,
    low_activity: bool,
    config: RsiThresholdsConfig | None = None,
) -> RsiThresholds:
    """Pick the threshold set: regime first, then the low-activity set, else default."""
    config = config or RsiThresholdsConfig()
    if condition == MarketCondition.TRENDING:
        return config.trending
    if condition == MarketCondition.RANGING:
        return config.ranging
    if condition == MarketCondition.VOLATILE:
        return config.volatile
    if low_activity:
        return config.low_activity
    return config.default
