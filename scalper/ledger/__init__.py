"""Open position ledger module."""

from scalper.ledger.positions import Position, PositionInvariantError, PositionLedger, PositionSide

__all__ = ["Position", "PositionInvariantError", "PositionLedger", "PositionSide"]
