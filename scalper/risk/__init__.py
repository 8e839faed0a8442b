"""Risk management module."""

from scalper.risk.currency import CurrencyConverter, quote_currency, select_quote_currency
from scalper.risk.engine import DailyRiskState, RiskCheckResult, RiskGate
from scalper.risk.sizing import base_asset, format_order_volume

__all__ = [
    "RiskGate",
    "RiskCheckResult",
    "DailyRiskState",
    "CurrencyConverter",
    "quote_currency",
    "select_quote_currency",
    "base_asset",
    "format_order_volume",
]
