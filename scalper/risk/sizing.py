"""Order volume formatting."""

from __future__ import annotations

import math
from collections.abc import Sequence
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

# Kraken asset codes mapped to the common ticker used in precision tables
ASSET_ALIASES = {"XBT": "BTC", "XXBT": "BTC", "XETH": "ETH", "XXRP": "XRP", "XLTC": "LTC"}


def base_asset(symbol: str, quote_currencies: Sequence[str]) -> str:
    """Base asset of a pair symbol (XBTGBP -> BTC, SOLUSD -> SOL)."""
    upper = symbol.upper()
    for quote in quote_currencies:
        for suffix in (f"Z{quote.upper()}", quote.upper()):
            if upper.endswith(suffix) and len(upper) > len(suffix):
                asset = upper[: -len(suffix)]
                return ASSET_ALIASES.get(asset, asset)
    return ASSET_ALIASES.get(upper, upper)


def volume_precision(asset: str, precision_map: dict[str, int]) -> int:
    if asset in precision_map:
        return precision_map[asset]
    return precision_map.get("default", 8)


def format_order_volume(
    volume: float,
    asset: str,
    precision_map: dict[str, int],
    min_volume: float = 0.0,
    whole_unit_threshold: float = 1000.0,
) -> Decimal:
    """Round ``volume`` to the asset's precision without dropping below ``min_volume``.

    Volumes above ``whole_unit_threshold`` are rounded up to whole units.
    Returns ``Decimal(0)`` for non-finite or non-positive input.
    """
    if not math.isfinite(volume) or volume <= 0:
        return Decimal(0)
    value = Decimal(str(volume))
    if volume > whole_unit_threshold:
        return value.to_integral_value(rounding=ROUND_CEILING)
    quant = Decimal(1).scaleb(-volume_precision(asset, precision_map))
    rounded = value.quantize(quant, rounding=ROUND_HALF_UP)
    if min_volume > 0 and rounded < Decimal(str(min_volume)):
        rounded = value.quantize(quant, rounding=ROUND_CEILING)
    return rounded
