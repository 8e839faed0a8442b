"""Position lifecycle and trading cycle orchestration."""

from scalper.execution.cycle import CycleReport, TradingCycle
from scalper.execution.lifecycle import (
    FORCED_EXIT,
    STOP_LOSS,
    TAKE_PROFIT,
    CloseResult,
    CycleContext,
    OpenResult,
    PositionLifecycleController,
    PositionState,
)

__all__ = [
    "CloseResult",
    "CycleContext",
    "CycleReport",
    "FORCED_EXIT",
    "OpenResult",
    "PositionLifecycleController",
    "PositionState",
    "STOP_LOSS",
    "TAKE_PROFIT",
    "TradingCycle",
]
