"""Kraken API connectors module."""

from scalper.connectors.errors import ExchangeError, is_retryable
from scalper.connectors.market_data import (
    Candle,
    MarketDataReader,
    PairMetadata,
    TickerSnapshot,
    TradeBalance,
    candles_to_frame,
)
from scalper.connectors.paper import PaperExchangeGateway
from scalper.connectors.rest_client import KrakenRestClient
from scalper.connectors.retry import ExchangeGateway, RetryingCaller

__all__ = [
    "ExchangeError",
    "ExchangeGateway",
    "is_retryable",
    "KrakenRestClient",
    "PaperExchangeGateway",
    "RetryingCaller",
    "MarketDataReader",
    "Candle",
    "TickerSnapshot",
    "PairMetadata",
    "TradeBalance",
    "candles_to_frame",
]
