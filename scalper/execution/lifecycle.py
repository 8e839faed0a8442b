"""Position lifecycle: open, monitor and close positions against the exchange."""

from __future__ import annotations

import asyncio
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from scalper.config.settings import ExecutionConfig
from scalper.connectors.errors import ExchangeError, error_matches
from scalper.connectors.market_data import MarketDataReader, PairMetadata
from scalper.connectors.retry import RetryingCaller
from scalper.ledger.positions import Position, PositionInvariantError, PositionLedger
from scalper.monitoring.performance import PerformanceTracker, TradeRecord
from scalper.risk.currency import quote_currency
from scalper.risk.engine import RiskGate
from scalper.risk.sizing import base_asset, format_order_volume
from scalper.strategy.signals import Signal, SignalAction

if TYPE_CHECKING:
    from scalper.monitoring.metrics import Metrics

STOP_LOSS = "STOP_LOSS"
TAKE_PROFIT = "TAKE_PROFIT"
FORCED_EXIT = "FORCED_EXIT"


class PositionState(str, Enum):
    FLAT = "FLAT"
    OPENING = "OPENING"
    OPEN = "OPEN"
    CLOSING = "CLOSING"


@dataclass(frozen=True)
class CycleContext:
    """Per-cycle runtime values; margin and sizing overrides live here, not in config."""

    currency: str
    account_balance: float
    margin_enabled: bool = False
    reduce_size: bool = False


@dataclass(frozen=True)
class OpenResult:
    opened: bool
    reason: str | None = None
    position: Position | None = None


@dataclass(frozen=True)
class CloseResult:
    closed: bool
    symbol: str
    reason: str | None = None
    profit: float | None = None
    pnl_percent: float | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PositionLifecycleController:
    """Drive each symbol through FLAT -> OPENING -> OPEN -> CLOSING -> FLAT.

    A position is only recorded after the exchange returns a transaction id
    and only removed after a close order is confirmed the same way. A failed
    close leaves the position untouched so the next monitoring tick retries it.
    Work on one symbol is serialized by a per-symbol lock because the trading
    and monitoring loops interleave at every exchange call.
    """

    def __init__(
        self,
        config: ExecutionConfig,
        caller: RetryingCaller,
        ledger: PositionLedger,
        risk_gate: RiskGate,
        market_data: MarketDataReader,
        performance: PerformanceTracker | None = None,
        quote_currencies: Sequence[str] = ("GBP", "USD"),
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.config = config
        self.caller = caller
        self.ledger = ledger
        self.risk_gate = risk_gate
        self.market_data = market_data
        self.performance = performance
        self.quote_currencies = list(quote_currencies)
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._transitions: dict[str, PositionState] = {}
        self.metrics: Metrics | None = None
        self.log = structlog.get_logger(__name__)

    def set_metrics(self, metrics: Metrics) -> None:
        self.metrics = metrics

    def state(self, symbol: str) -> PositionState:
        if symbol in self._transitions:
            return self._transitions[symbol]
        return PositionState.OPEN if symbol in self.ledger else PositionState.FLAT

    def _lock(self, symbol: str) -> asyncio.Lock:
        return self._locks.setdefault(symbol, asyncio.Lock())

    async def handle_decision(
        self,
        symbol: str,
        decision: Signal,
        reference_price: float,
        context: CycleContext,
        volatility: float = 1.0,
    ) -> OpenResult | CloseResult | None:
        if decision.is_entry:
            return await self.open_position(
                symbol, decision.action, reference_price, context, volatility
            )
        if decision.is_exit:
            return await self.close_position(symbol, reference_price, decision.reason)
        return None

    async def open_position(
        self,
        symbol: str,
        action: SignalAction,
        reference_price: float,
        context: CycleContext,
        volatility: float = 1.0,
    ) -> OpenResult:
        if action not in (SignalAction.BUY, SignalAction.SELL):
            raise ValueError(f"cannot open a position from {action.value}")
        async with self._lock(symbol):
            existing = self.ledger.get(symbol)
            if existing is not None or symbol in self._transitions:
                self.log.error(
                    "position_invariant_violation",
                    symbol=symbol,
                    state=self.state(symbol).value,
                    requested=action.value,
                )
                raise PositionInvariantError(f"{symbol} is not flat; refusing to open")

            if not math.isfinite(reference_price) or reference_price <= 0:
                self.log.warning("entry_invalid_price", symbol=symbol, price=reference_price)
                return OpenResult(opened=False, reason="INVALID_PRICE")

            side = "LONG" if action == SignalAction.BUY else "SHORT"
            order_side = "buy" if side == "LONG" else "sell"
            pair = self.market_data.pair_info(symbol)
            margin_ok = (
                context.margin_enabled
                and self.config.use_margin
                and (pair is None or pair.margin_eligible)
            )
            if side == "SHORT" and not margin_ok:
                self.log.info("entry_skipped_short_requires_margin", symbol=symbol)
                return OpenResult(opened=False, reason="SHORT_REQUIRES_MARGIN")

            risk = self.risk_gate.evaluate(context.account_balance, self.ledger.count())
            if not risk.approved:
                self.log.info(
                    "entry_rejected_by_risk",
                    symbol=symbol,
                    reasons=risk.reasons,
                    balance=context.account_balance,
                    open_positions=self.ledger.count(),
                )
                return OpenResult(opened=False, reason=",".join(risk.reasons))

            leverage = self._leverage(pair, order_side) if margin_ok else 1
            currency = quote_currency(symbol, self.quote_currencies) or context.currency
            raw_volume = self._order_volume(reference_price, context, currency, volatility)
            min_volume = self._min_volume(symbol, pair)
            if raw_volume <= 0 or raw_volume < min_volume:
                self.log.info(
                    "entry_volume_below_minimum",
                    symbol=symbol,
                    volume=raw_volume,
                    min_volume=min_volume,
                )
                return OpenResult(opened=False, reason="BELOW_MIN_VOLUME")
            volume = format_order_volume(
                raw_volume,
                base_asset(symbol, self.quote_currencies),
                self.config.volume_precision,
                min_volume=min_volume,
                whole_unit_threshold=self.config.whole_unit_volume_threshold,
            )

            params: dict[str, Any] = {
                "pair": symbol,
                "type": order_side,
                "ordertype": "market",
                "volume": format(volume, "f"),
            }
            if leverage > 1:
                params["leverage"] = str(leverage)
            if self.config.validate_orders:
                params["validate"] = "true"

            self._transitions[symbol] = PositionState.OPENING
            try:
                result = await self.caller.call("AddOrder", params)
            except ExchangeError as exc:
                self._diagnose(symbol, exc, volume=params["volume"], leverage=leverage)
                self._count_order(order_side, "failed")
                return OpenResult(opened=False, reason="ORDER_FAILED")
            finally:
                self._transitions.pop(symbol, None)

            txid = self._txid(result)
            if txid is None:
                self.log.warning("order_unconfirmed", symbol=symbol, side=order_side, result=result)
                self._count_order(order_side, "unconfirmed")
                return OpenResult(opened=False, reason="NO_CONFIRMATION")

            position = Position(
                symbol=symbol,
                side=side,
                entry_price=reference_price,
                volume=float(volume),
                currency=currency,
                leveraged=leverage > 1,
                leverage=leverage,
                opened_at=self._clock(),
                order_id=txid,
            )
            self.ledger.upsert(symbol, position)
            self._count_order(order_side, "filled")
            self.log.info(
                "position_opened",
                symbol=symbol,
                side=side,
                entry_price=reference_price,
                volume=params["volume"],
                leverage=leverage,
                currency=currency,
                txid=txid,
            )
            return OpenResult(opened=True, position=position)

    async def close_position(
        self, symbol: str, current_price: float | None, reason: str
    ) -> CloseResult:
        """Close the full recorded volume.

        ``current_price`` may be None on a forced exit when no quote could be
        read; the order is still sent but no realized P&L is recorded.
        """
        async with self._lock(symbol):
            position = self.ledger.get(symbol)
            if position is None:
                self.log.warning("close_skipped_no_position", symbol=symbol, reason=reason)
                return CloseResult(closed=False, symbol=symbol, reason="NO_POSITION")
            return await self._close_locked(position, current_price, reason)

    def exit_trigger(self, position: Position, price: float) -> str | None:
        """STOP_LOSS or TAKE_PROFIT when the leverage-scaled move breaches its threshold."""
        pnl = position.leveraged_pnl_percent(price)
        if position.leveraged:
            stop_loss = self.config.leveraged_stop_loss_pct
            take_profit = self.config.leveraged_take_profit_pct
        else:
            stop_loss = self.config.stop_loss_pct
            take_profit = self.config.take_profit_pct
        if pnl <= -stop_loss:
            return STOP_LOSS
        if pnl >= take_profit:
            return TAKE_PROFIT
        return None

    async def monitor_positions(self) -> list[CloseResult]:
        """Re-price every open position once and close those past stop-loss or take-profit."""
        symbols = self.ledger.symbols()
        if not symbols:
            return []
        try:
            prices = await self.market_data.get_last_prices(symbols)
        except ExchangeError as exc:
            self.log.warning("position_prices_unavailable", symbols=symbols, error=str(exc))
            return []

        results: list[CloseResult] = []
        for symbol in symbols:
            price = prices.get(symbol)
            if price is None:
                self.log.warning("position_price_missing", symbol=symbol)
                continue
            async with self._lock(symbol):
                position = self.ledger.get(symbol)
                if position is None:
                    continue
                reason = self.exit_trigger(position, price)
                self.log.debug(
                    "position_checked",
                    symbol=symbol,
                    price=price,
                    pnl_pct=round(position.leveraged_pnl_percent(price), 4),
                )
                if reason is None:
                    continue
                self.log.info(
                    "stop_loss_triggered" if reason == STOP_LOSS else "take_profit_triggered",
                    symbol=symbol,
                    side=position.side,
                    entry_price=position.entry_price,
                    price=price,
                    pnl_pct=round(position.leveraged_pnl_percent(price), 4),
                    leverage=position.leverage,
                )
                results.append(await self._close_locked(position, price, reason))
        return results

    async def close_all(self, reason: str = FORCED_EXIT) -> list[CloseResult]:
        """Best-effort close of every open position; failures are logged, not retried."""
        symbols = self.ledger.symbols()
        if not symbols:
            return []
        self.log.warning("closing_all_positions", symbols=symbols, reason=reason)
        try:
            prices = await self.market_data.get_last_prices(symbols)
        except ExchangeError as exc:
            self.log.warning("position_prices_unavailable", symbols=symbols, error=str(exc))
            prices = {}
        results: list[CloseResult] = []
        for symbol in symbols:
            position = self.ledger.get(symbol)
            if position is None:
                continue
            price = prices.get(symbol)
            if price is None:
                price = await self._last_price(symbol)
            result = await self.close_position(symbol, price, reason)
            if not result.closed:
                self.log.error("forced_exit_failed", symbol=symbol, reason=result.reason)
            results.append(result)
        return results

    async def _last_price(self, symbol: str) -> float | None:
        try:
            prices = await self.market_data.get_last_prices([symbol])
        except ExchangeError as exc:
            self.log.warning("position_price_unavailable", symbol=symbol, error=str(exc))
            return None
        return prices.get(symbol)

    async def _close_locked(
        self, position: Position, price: float | None, reason: str
    ) -> CloseResult:
        symbol = position.symbol
        if price is not None and (not math.isfinite(price) or price <= 0):
            self.log.warning("close_invalid_price", symbol=symbol, price=price)
            return CloseResult(closed=False, symbol=symbol, reason="INVALID_PRICE")

        params: dict[str, Any] = {
            "pair": symbol,
            "type": position.close_side,
            "ordertype": "market",
            "volume": format(Decimal(repr(position.volume)), "f"),
        }
        if position.leveraged:
            params["leverage"] = str(position.leverage)

        self._transitions[symbol] = PositionState.CLOSING
        try:
            result = await self.caller.call("AddOrder", params)
        except ExchangeError as exc:
            self._diagnose(symbol, exc, volume=params["volume"], leverage=position.leverage)
            self.log.warning("position_close_failed", symbol=symbol, reason=reason, error=str(exc))
            self._count_order(position.close_side, "failed")
            return CloseResult(closed=False, symbol=symbol, reason="ORDER_FAILED")
        finally:
            self._transitions.pop(symbol, None)

        txid = self._txid(result)
        if txid is None:
            self.log.warning("close_unconfirmed", symbol=symbol, reason=reason, result=result)
            self._count_order(position.close_side, "unconfirmed")
            return CloseResult(closed=False, symbol=symbol, reason="NO_CONFIRMATION")

        self.ledger.remove(symbol)
        self._count_order(position.close_side, "filled")
        if price is None:
            self.log.warning(
                "forced_exit_price_unknown",
                symbol=symbol,
                side=position.side,
                entry_price=position.entry_price,
                volume=position.volume,
                reason=reason,
                txid=txid,
            )
            if self.metrics:
                self.metrics.positions_closed_total.labels(reason=reason).inc()
            return CloseResult(closed=True, symbol=symbol, reason=reason)

        pnl_percent = position.pnl_percent(price)
        profit = position.volume * price * pnl_percent / 100
        self.log.info(
            "position_closed",
            symbol=symbol,
            side=position.side,
            entry_price=position.entry_price,
            exit_price=price,
            pnl_pct=round(pnl_percent, 4),
            profit=round(profit, 8),
            currency=position.currency,
            reason=reason,
            txid=txid,
        )
        self._record_close(position, price, profit, reason)
        return CloseResult(
            closed=True,
            symbol=symbol,
            reason=reason,
            profit=profit,
            pnl_percent=pnl_percent,
        )

    def _record_close(self, position: Position, price: float, profit: float, reason: str) -> None:
        self.risk_gate.record_pnl(profit, position.currency)
        if self.performance is not None:
            trade = TradeRecord(
                symbol=position.symbol,
                side=position.side,
                entry_price=position.entry_price,
                exit_price=price,
                volume=position.volume,
                profit=profit,
                leveraged=position.leveraged,
                leverage=position.leverage,
                currency=position.currency,
                reason=reason,
                closed_at=self._clock(),
            )
            try:
                self.performance.record_trade(trade)
            except OSError as exc:
                self.log.error("trade_record_failed", symbol=position.symbol, error=str(exc))
        if self.metrics:
            self.metrics.positions_closed_total.labels(reason=reason).inc()
            self.metrics.daily_pnl.set(self.risk_gate.daily_pnl())

    def _order_volume(
        self,
        price: float,
        context: CycleContext,
        currency: str,
        volatility: float,
    ) -> float:
        if self.config.sizing_mode == "risk":
            volume = self.risk_gate.size_position(
                context.account_balance, price, self.config.stop_loss_pct, volatility
            )
            if context.reduce_size:
                volume *= self.config.reduced_size_multiplier
            return volume
        base_amount = min(self.config.trade_amount.get(currency, 0.0), self.config.max_trade_amount)
        if context.reduce_size:
            amount = base_amount * self.config.reduced_size_multiplier
        else:
            amount = min(base_amount, context.account_balance * self.config.max_balance_fraction)
        return amount / price if amount > 0 else 0.0

    def _min_volume(self, symbol: str, pair: PairMetadata | None) -> float:
        configured = self.config.min_order_size(symbol)
        if pair is not None:
            configured = max(configured, pair.min_volume, self.config.min_order_size(pair.altname))
        return configured

    def _leverage(self, pair: PairMetadata | None, order_side: str) -> int:
        leverage = min(self.config.leverage, self.config.max_leverage)
        if pair is not None and pair.margin_eligible:
            leverage = min(leverage, pair.max_leverage(order_side))
        return max(leverage, 1)

    @staticmethod
    def _txid(result: dict[str, Any]) -> str | None:
        txids = result.get("txid") if isinstance(result, dict) else None
        if isinstance(txids, list) and txids:
            return str(txids[0])
        if isinstance(txids, str) and txids:
            return txids
        return None

    def _diagnose(self, symbol: str, exc: ExchangeError, **context: Any) -> None:
        if error_matches(exc, "Insufficient funds"):
            event = "insufficient_funds"
        elif error_matches(exc, "Invalid leverage"):
            event = "invalid_leverage"
        elif error_matches(exc, "Permission denied"):
            event = "margin_permission_denied"
        else:
            event = "order_submit_failed"
        self.log.warning(event, symbol=symbol, error=str(exc), **context)

    def _count_order(self, side: str, result: str) -> None:
        if self.metrics:
            self.metrics.orders_placed_total.labels(side=side, result=result).inc()
            self.metrics.open_positions.set(self.ledger.count())
