"""Paper-trading gateway: real market data, simulated account and orders."""

from __future__ import annotations

from collections import deque
from typing import Any
from uuid import uuid4

import structlog

from scalper.config.settings import PaperConfig
from scalper.connectors.errors import ExchangeError
from scalper.connectors.rest_client import PUBLIC_OPERATIONS
from scalper.connectors.retry import ExchangeGateway


class PaperExchangeGateway:
    """Delegate public operations to ``inner`` and answer private ones locally."""

    def __init__(self, inner: ExchangeGateway, config: PaperConfig | None = None) -> None:
        self.inner = inner
        self.config = config or PaperConfig()
        self.orders: deque[dict[str, Any]] = deque(maxlen=self.config.max_order_history)
        self.log = structlog.get_logger(__name__)

    async def call(self, operation: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if operation in PUBLIC_OPERATIONS:
            return await self.inner.call(operation, params)
        if operation == "Balance":
            return {f"Z{currency}": f"{amount:.4f}" for currency, amount in self.config.balances.items()}
        if operation == "TradeBalance":
            return {
                "e": f"{self.config.equity:.4f}",
                "mf": f"{self.config.equity:.4f}",
                "ml": f"{self.config.margin_level:.2f}",
            }
        if operation == "AddOrder":
            return self._add_order(params or {})
        raise ExchangeError(f"EGeneral:Unknown method {operation} in paper mode", operation)

    def _add_order(self, params: dict[str, Any]) -> dict[str, Any]:
        missing = [key for key in ("pair", "type", "ordertype", "volume") if not params.get(key)]
        if missing:
            raise ExchangeError(f"EGeneral:Invalid arguments: missing {', '.join(missing)}", "AddOrder")
        description = f"{params['type']} {params['volume']} {params['pair']} @ market"
        if params.get("leverage"):
            description += f" with {params['leverage']}:1 leverage"
        if params.get("validate"):
            return {"descr": {"order": description}}
        txid = f"PAPER-{uuid4().hex[:12].upper()}"
        self.orders.append({**params, "txid": txid})
        self.log.info("paper_order_filled", txid=txid, order=description)
        return {"descr": {"order": description}, "txid": [txid]}
