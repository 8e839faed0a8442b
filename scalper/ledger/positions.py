"""In-memory position ledger."""

from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

PositionSide = Literal["LONG", "SHORT"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PositionInvariantError(RuntimeError):
    """A position state rule was broken. Always a programming defect."""


@dataclass(frozen=True)
class Position:
    symbol: str
    side: PositionSide
    entry_price: float
    volume: float
    currency: str
    leveraged: bool = False
    leverage: int = 1
    opened_at: datetime = field(default_factory=utc_now)
    order_id: str | None = None

    def __post_init__(self) -> None:
        if self.side not in ("LONG", "SHORT"):
            raise PositionInvariantError(f"invalid side {self.side!r} for {self.symbol}")
        if not math.isfinite(self.entry_price) or self.entry_price <= 0:
            raise PositionInvariantError(f"entry_price must be > 0 for {self.symbol}")
        if not math.isfinite(self.volume) or self.volume <= 0:
            raise PositionInvariantError(f"volume must be > 0 for {self.symbol}")
        if self.leverage < 1 or (not self.leveraged and self.leverage != 1):
            raise PositionInvariantError(
                f"leverage {self.leverage} inconsistent with leveraged={self.leveraged}"
            )

    @property
    def close_side(self) -> str:
        return "sell" if self.side == "LONG" else "buy"

    def pnl_percent(self, price: float) -> float:
        """Unleveraged directional move from entry, in percent."""
        move = (price - self.entry_price) / self.entry_price * 100
        pnl = move if self.side == "LONG" else -move
        return pnl if math.isfinite(pnl) else 0.0

    def leveraged_pnl_percent(self, price: float) -> float:
        pnl = self.pnl_percent(price)
        return pnl * self.leverage if self.leveraged else pnl


class PositionLedger:
    """Authoritative record of open positions, at most one per symbol.

    Only the lifecycle controller writes to the ledger. The ledger is not
    persisted: after a restart it starts empty regardless of what the exchange
    still holds.
    """

    def __init__(self) -> None:
        self._positions: dict[str, Position] = {}

    def get(self, symbol: str) -> Position | None:
        return self._positions.get(symbol)

    def upsert(self, symbol: str, position: Position) -> None:
        if position.symbol != symbol:
            raise PositionInvariantError(
                f"ledger key {symbol} does not match position symbol {position.symbol}"
            )
        self._positions[symbol] = position

    def remove(self, symbol: str) -> Position | None:
        return self._positions.pop(symbol, None)

    def count(self) -> int:
        return len(self._positions)

    def all(self) -> list[tuple[str, Position]]:
        return list(self._positions.items())

    def symbols(self) -> list[str]:
        return list(self._positions)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._positions

    def __iter__(self) -> Iterator[Position]:
        return iter(list(self._positions.values()))

    def __len__(self) -> int:
        return len(self._positions)
