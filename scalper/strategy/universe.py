"""Trading pair selection."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from scalper.config.settings import ExecutionConfig, SchedulerConfig
from scalper.connectors.market_data import MarketDataReader, PairMetadata, TickerSnapshot

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PairCandidate:
    symbol: str
    last_price: float
    change_24h_pct: float
    min_order_value: float


@dataclass(frozen=True)
class FilteredPair:
    """A pair skipped because the balance cannot cover its minimum order."""

    symbol: str
    min_order_value: float
    balance: float


@dataclass
class PairSelectionResult:
    selected: list[PairCandidate]
    filtered: list[FilteredPair] = field(default_factory=list)

    @property
    def symbols(self) -> list[str]:
        return [candidate.symbol for candidate in self.selected]


class PairSelector:
    """Pick the pairs to analyze this cycle.

    Configured symbols are used as-is. Otherwise every pair quoted in the
    active currency whose minimum order fits within the balance is ranked
    by absolute 24h change, largest first.
    """

    def __init__(
        self,
        market_data: MarketDataReader,
        config: SchedulerConfig,
        execution: ExecutionConfig,
    ) -> None:
        self.market_data = market_data
        self.config = config
        self.execution = execution

    async def select(self, currency: str, balance: float, max_pairs: int) -> PairSelectionResult:
        if self.config.symbols:
            return PairSelectionResult(
                selected=[
                    PairCandidate(symbol, 0.0, 0.0, 0.0)
                    for symbol in self.config.symbols[:max_pairs]
                ]
            )

        pairs = await self.market_data.get_pair_metadata()
        quoted = {
            key: meta for key, meta in pairs.items() if self._quoted_in(meta, currency)
        }
        if not quoted:
            log.warning("no_pairs_for_currency", currency=currency)
            return PairSelectionResult(selected=[])

        tickers = await self.market_data.get_ticker_snapshots(list(quoted))
        budget = balance * self.config.min_order_value_fraction
        candidates: list[PairCandidate] = []
        filtered: list[FilteredPair] = []
        for key, meta in quoted.items():
            ticker = tickers.get(key) or tickers.get(meta.altname)
            if ticker is None or ticker.last_price <= 0:
                continue
            min_value = self._min_order_value(meta, ticker)
            if min_value > budget:
                filtered.append(FilteredPair(meta.altname, min_value, balance))
                log.debug(
                    "pair_filtered_min_order",
                    symbol=meta.altname,
                    min_order_value=round(min_value, 4),
                    balance=round(balance, 4),
                )
                continue
            candidates.append(
                PairCandidate(
                    symbol=meta.altname,
                    last_price=ticker.last_price,
                    change_24h_pct=ticker.change_24h_pct,
                    min_order_value=min_value,
                )
            )

        candidates.sort(key=lambda candidate: abs(candidate.change_24h_pct), reverse=True)
        selected = candidates[:max_pairs]
        log.info(
            "pairs_selected",
            currency=currency,
            pairs=[candidate.symbol for candidate in selected],
            considered=len(quoted),
            filtered=len(filtered),
        )
        return PairSelectionResult(selected=selected, filtered=filtered)

    def _min_order_value(self, meta: PairMetadata, ticker: TickerSnapshot) -> float:
        min_volume = max(meta.min_volume, self.execution.min_order_size(meta.altname))
        return min_volume * ticker.last_price

    @staticmethod
    def _quoted_in(meta: PairMetadata, currency: str) -> bool:
        # Kraken quotes fiat as ZGBP/ZUSD; dark-pool pairs end in .d
        if meta.altname.endswith(".d"):
            return False
        return meta.quote in (currency, f"Z{currency}") or meta.altname.endswith(currency)
