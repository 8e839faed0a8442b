"""Candle, ticker and account reads normalized from Kraken payloads."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import pandas as pd
import structlog

from scalper.connectors.errors import ExchangeError
from scalper.connectors.retry import RetryingCaller


@dataclass(frozen=True)
class Candle:
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    trade_count: int


@dataclass(frozen=True)
class TickerSnapshot:
    symbol: str
    last_price: float
    volume: float
    low: float
    high: float
    change_24h_pct: float


@dataclass(frozen=True)
class PairMetadata:
    symbol: str
    altname: str
    wsname: str | None
    base: str
    quote: str
    min_volume: float
    leverage_buy: list[int] = field(default_factory=list)
    leverage_sell: list[int] = field(default_factory=list)

    @property
    def margin_eligible(self) -> bool:
        return bool(self.leverage_buy or self.leverage_sell)

    def max_leverage(self, side: str) -> int:
        levels = self.leverage_buy if side == "buy" else self.leverage_sell
        return max(levels, default=1)


@dataclass(frozen=True)
class TradeBalance:
    equity: float
    free_margin: float
    margin_level: float | None


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    rows = [
        {
            "timestamp": candle.timestamp,
            "open": candle.open,
            "high": candle.high,
            "low": candle.low,
            "close": candle.close,
            "volume": candle.volume,
            "trades": candle.trade_count,
        }
        for candle in candles
    ]
    if not rows:
        return pd.DataFrame(columns=["open", "high", "low", "close", "volume", "trades"])
    return pd.DataFrame(rows).set_index("timestamp")


class MarketDataReader:
    """Read market and account data through the retrying caller."""

    def __init__(
        self,
        caller: RetryingCaller,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.caller = caller
        self._clock = clock
        self._pairs: dict[str, PairMetadata] = {}
        self.log = structlog.get_logger(__name__)

    async def get_server_time(self) -> int:
        result = await self.caller.call("Time")
        return int(result["unixtime"])

    async def get_candles(
        self,
        symbol: str,
        interval_minutes: int = 1,
        lookback_minutes: int = 60,
    ) -> list[Candle]:
        """Return candles oldest first, or an empty list when none are available."""
        since = int(self._clock() - lookback_minutes * 60)
        try:
            result = await self.caller.call(
                "OHLC", {"pair": symbol, "interval": interval_minutes, "since": since}
            )
        except ExchangeError as exc:
            self.log.warning("candles_fetch_failed", symbol=symbol, error=str(exc))
            return []
        pair_key = next((key for key in result if key != "last"), None)
        if pair_key is None:
            self.log.info("candles_empty", symbol=symbol)
            return []
        candles: list[Candle] = []
        for row in result.get(pair_key) or []:
            try:
                candles.append(
                    Candle(
                        timestamp=datetime.fromtimestamp(int(row[0]), tz=timezone.utc),
                        open=float(row[1]),
                        high=float(row[2]),
                        low=float(row[3]),
                        close=float(row[4]),
                        volume=float(row[6]),
                        trade_count=int(row[7]),
                    )
                )
            except (TypeError, ValueError, IndexError) as exc:
                self.log.warning("candle_parse_failed", symbol=symbol, error=str(exc))
                continue
        return candles

    async def get_ticker_snapshot(self, symbol: str) -> TickerSnapshot:
        result = await self.caller.call("Ticker", {"pair": symbol})
        key = self._match_key(symbol, result)
        if key is None:
            raise ExchangeError(f"Ticker missing for {symbol}", "Ticker")
        return self._parse_ticker(symbol, result[key])

    async def get_ticker_snapshots(
        self, symbols: list[str] | None = None
    ) -> dict[str, TickerSnapshot]:
        params = {"pair": ",".join(symbols)} if symbols else None
        result = await self.caller.call("Ticker", params)
        snapshots: dict[str, TickerSnapshot] = {}
        for key, data in result.items():
            try:
                snapshots[key] = self._parse_ticker(key, data)
            except (KeyError, TypeError, ValueError, IndexError) as exc:
                self.log.warning("ticker_parse_failed", symbol=key, error=str(exc))
        return snapshots

    async def get_last_prices(self, symbols: list[str]) -> dict[str, float]:
        if not symbols:
            return {}
        snapshots = await self.get_ticker_snapshots(symbols)
        prices: dict[str, float] = {}
        for symbol in symbols:
            key = self._match_key(symbol, snapshots, allow_single=len(symbols) == 1)
            if key is not None:
                prices[symbol] = snapshots[key].last_price
        return prices

    async def get_pair_metadata(self) -> dict[str, PairMetadata]:
        result = await self.caller.call("AssetPairs")
        pairs: dict[str, PairMetadata] = {}
        for key, data in result.items():
            try:
                pairs[key] = PairMetadata(
                    symbol=key,
                    altname=data.get("altname", key),
                    wsname=data.get("wsname"),
                    base=data.get("base", ""),
                    quote=data.get("quote", ""),
                    min_volume=float(data.get("ordermin") or 0.0),
                    leverage_buy=[int(level) for level in data.get("leverage_buy") or []],
                    leverage_sell=[int(level) for level in data.get("leverage_sell") or []],
                )
            except (TypeError, ValueError) as exc:
                self.log.warning("pair_metadata_parse_failed", symbol=key, error=str(exc))
        self._pairs = pairs
        self.log.info("pair_metadata_loaded", pairs=len(pairs))
        return pairs

    def pair_info(self, symbol: str) -> PairMetadata | None:
        meta = self._pairs.get(symbol)
        if meta is not None:
            return meta
        for candidate in self._pairs.values():
            if symbol in (candidate.altname, candidate.wsname):
                return candidate
        return None

    async def get_balance(self, currency: str) -> float:
        result = await self.caller.call("Balance")
        for key in (f"Z{currency}", currency, f"X{currency}"):
            if key in result:
                return float(result[key])
        return 0.0

    async def get_trade_balance(self) -> TradeBalance:
        result = await self.caller.call("TradeBalance")
        margin_level = result.get("ml")
        return TradeBalance(
            equity=float(result.get("e") or 0.0),
            free_margin=float(result.get("mf") or 0.0),
            margin_level=float(margin_level) if margin_level not in (None, "") else None,
        )

    def _match_key(
        self, symbol: str, result: dict[str, Any], allow_single: bool = True
    ) -> str | None:
        # Kraken answers with its canonical pair key (XXBTZUSD for XBTUSD)
        if symbol in result:
            return symbol
        for key in result:
            meta = self._pairs.get(key)
            if meta and symbol in (meta.altname, meta.wsname):
                return key
        if allow_single and len(result) == 1:
            return next(iter(result))
        return None

    @staticmethod
    def _parse_ticker(symbol: str, data: dict[str, Any]) -> TickerSnapshot:
        last_price = float(data["c"][0])
        open_price = float(data["o"])
        change = (last_price - open_price) / open_price * 100 if open_price else 0.0
        return TickerSnapshot(
            symbol=symbol,
            last_price=last_price,
            volume=float(data["v"][1]),
            low=float(data["l"][1]),
            high=float(data["h"][1]),
            change_24h_pct=change,
        )
