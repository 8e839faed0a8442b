"""Settlement currency helpers."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone


class CurrencyConverter:
    """Convert amounts between settlement currencies using configured rates."""

    def __init__(self, rates: dict[str, float], reference: str = "GBP") -> None:
        self.rates = dict(rates)
        self.reference = reference

    def convert(self, amount: float, source: str, target: str | None = None) -> float:
        target = target or self.reference
        if source == target:
            return amount
        rate = self.rates.get(f"{source}/{target}")
        if rate is None:
            inverse = self.rates.get(f"{target}/{source}")
            if not inverse:
                raise KeyError(f"no conversion rate for {source}/{target}")
            rate = 1 / inverse
        return amount * rate

    def to_reference(self, amounts: dict[str, float]) -> float:
        return sum(self.convert(amount, currency) for currency, amount in amounts.items())


def quote_currency(symbol: str, supported: Sequence[str]) -> str | None:
    """Settlement currency from the pair suffix (XBTGBP -> GBP, XXBTZUSD -> USD)."""
    upper = symbol.upper()
    for currency in supported:
        if upper.endswith(currency.upper()):
            return currency
    return None


def select_quote_currency(now: datetime, supported: Sequence[str]) -> str:
    """USD outside UK trading hours and at weekends, GBP otherwise."""
    if not supported:
        raise ValueError("no quote currencies configured")
    preferred = "USD" if is_uk_night_or_weekend(now) else "GBP"
    return preferred if preferred in supported else supported[0]


def is_uk_night_or_weekend(now: datetime) -> bool:
    now = now.astimezone(timezone.utc)
    return now.weekday() >= 5 or now.hour >= 20 or now.hour < 6


def is_good_trading_time(currency: str, now: datetime) -> bool:
    """Whether the session for ``currency`` is liquid enough for full activity.

    USD: weekdays outside 08-09 and 22-24 UTC (Asian, US extended and US
    market hours); weekends only during Asian hours, 00-08 UTC.
    GBP: weekdays 07-22 UTC; weekends only during UK and European hours,
    07-19 UTC.
    """
    now = now.astimezone(timezone.utc)
    hour = now.hour
    weekend = now.weekday() >= 5
    asian_hours = hour < 8
    if currency == "USD":
        if weekend:
            return asian_hours
        return asian_hours or 9 <= hour < 22
    if weekend:
        return 7 <= hour < 19
    return 7 <= hour < 22
