"""Tests for the paper-trading gateway."""

from __future__ import annotations

import asyncio

import pytest

from scalper.config.settings import PaperConfig
from scalper.connectors.errors import ExchangeError
from scalper.connectors.paper import PaperExchangeGateway


class _DummyInner:
    def __init__(self):
        self.calls = []

    async def call(self, operation, params=None):
        self.calls.append(operation)
        return {"unixtime": 1700000000}


def test_public_operations_are_delegated() -> None:
    inner = _DummyInner()
    gateway = PaperExchangeGateway(inner, PaperConfig())
    assert asyncio.run(gateway.call("Time")) == {"unixtime": 1700000000}
    assert inner.calls == ["Time"]


def test_private_reads_are_simulated() -> None:
    inner = _DummyInner()
    gateway = PaperExchangeGateway(inner, PaperConfig(balances={"GBP": 50.0}, equity=75.0))

    assert asyncio.run(gateway.call("Balance")) == {"ZGBP": "50.0000"}
    assert asyncio.run(gateway.call("TradeBalance"))["e"] == "75.0000"
    assert inner.calls == []


def test_add_order_returns_paper_txid() -> None:
    gateway = PaperExchangeGateway(_DummyInner())
    result = asyncio.run(
        gateway.call(
            "AddOrder",
            {"pair": "XBTGBP", "type": "buy", "ordertype": "market", "volume": "0.1", "leverage": "2"},
        )
    )

    assert result["txid"][0].startswith("PAPER-")
    assert "2:1 leverage" in result["descr"]["order"]
    assert gateway.orders[0]["pair"] == "XBTGBP"


def test_validate_only_order_has_no_txid() -> None:
    gateway = PaperExchangeGateway(_DummyInner())
    result = asyncio.run(
        gateway.call(
            "AddOrder",
            {"pair": "XBTGBP", "type": "buy", "ordertype": "market", "volume": "0.1", "validate": "true"},
        )
    )
    assert "txid" not in result
    assert list(gateway.orders) == []


def test_invalid_order_and_unknown_operation_raise() -> None:
    gateway = PaperExchangeGateway(_DummyInner())
    with pytest.raises(ExchangeError, match="Invalid arguments"):
        asyncio.run(gateway.call("AddOrder", {"pair": "XBTGBP"}))
    with pytest.raises(ExchangeError):
        asyncio.run(gateway.call("CancelOrder", {"txid": "X"}))


def test_order_history_is_bounded() -> None:
    gateway = PaperExchangeGateway(_DummyInner(), PaperConfig(max_order_history=2))
    for volume in ("0.1", "0.2", "0.3"):
        asyncio.run(
            gateway.call(
                "AddOrder",
                {"pair": "XBTGBP", "type": "buy", "ordertype": "market", "volume": volume},
            )
        )
    assert [order["volume"] for order in gateway.orders] == ["0.2", "0.3"]
