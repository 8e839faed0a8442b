"""Closed-trade performance tracking persisted as JSON."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import orjson
import structlog

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TradeRecord:
    symbol: str
    side: str
    entry_price: float
    exit_price: float
    volume: float
    profit: float
    leveraged: bool
    leverage: int
    currency: str
    reason: str
    closed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["closed_at"] = self.closed_at.isoformat()
        return data


@dataclass
class PerformanceStats:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    break_even_trades: int = 0
    total_profit: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0

    @property
    def win_rate(self) -> float:
        return self.winning_trades / self.total_trades * 100 if self.total_trades else 0.0

    @property
    def average_win(self) -> float:
        return self.gross_profit / self.winning_trades if self.winning_trades else 0.0

    @property
    def average_loss(self) -> float:
        return self.gross_loss / self.losing_trades if self.losing_trades else 0.0

    @property
    def profit_factor(self) -> float:
        if self.gross_loss == 0:
            return float("inf") if self.gross_profit > 0 else 0.0
        return self.gross_profit / self.gross_loss

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        profit_factor = self.profit_factor
        data.update(
            win_rate=self.win_rate,
            average_win=self.average_win,
            average_loss=self.average_loss,
            # JSON has no infinity
            profit_factor=None if profit_factor == float("inf") else profit_factor,
        )
        return data


class PerformanceTracker:
    """Record closed trades and keep aggregate statistics on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.stats = PerformanceStats()
        self.trades: list[dict[str, Any]] = []
        self._load()

    def record_trade(self, trade: TradeRecord) -> None:
        stats = self.stats
        stats.total_trades += 1
        stats.total_profit += trade.profit
        if trade.profit > 0:
            stats.winning_trades += 1
            stats.gross_profit += trade.profit
            stats.largest_win = max(stats.largest_win, trade.profit)
        elif trade.profit < 0:
            stats.losing_trades += 1
            stats.gross_loss += abs(trade.profit)
            stats.largest_loss = min(stats.largest_loss, trade.profit)
        else:
            stats.break_even_trades += 1
        self.trades.append(trade.to_dict())
        self._save()
        log.info(
            "trade_recorded",
            symbol=trade.symbol,
            side=trade.side,
            profit=round(trade.profit, 8),
            currency=trade.currency,
            reason=trade.reason,
            win_rate=round(stats.win_rate, 2),
        )

    def daily_pnl(self, day: date | None = None) -> dict[str, float]:
        """Realized profit per currency for trades closed on ``day`` (UTC)."""
        day = day or datetime.now(timezone.utc).date()
        totals: dict[str, float] = {}
        for trade in self.trades:
            closed_at = datetime.fromisoformat(trade["closed_at"])
            if closed_at.astimezone(timezone.utc).date() != day:
                continue
            currency = trade.get("currency", "")
            totals[currency] = totals.get(currency, 0.0) + float(trade.get("profit", 0.0))
        return totals

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = orjson.loads(self.path.read_bytes())
        except orjson.JSONDecodeError as exc:
            log.warning("performance_file_unreadable", path=str(self.path), error=str(exc))
            return
        if not isinstance(data, dict):
            log.warning("performance_file_unreadable", path=str(self.path), error="not an object")
            return
        stats = data.get("stats") or {}
        self.stats = PerformanceStats(
            **{key: stats[key] for key in PerformanceStats.__dataclass_fields__ if key in stats}
        )
        self.trades = list(data.get("trades") or [])

    def _save(self) -> None:
        payload = {"stats": self.stats.to_dict(), "trades": self.trades}
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        tmp_path.replace(self.path)
