"""Execution layer for the trading engine.

This package turns strategy signals into managed positions. It handles the
risk gate, position bookkeeping, exits, and the two periodic loops that
drive them.

The layer is intentionally conservative: a single exposure cap across the
portfolio, a drawdown circuit breaker, one position per symbol, and no
order routing of its own. Realizing a trade is delegated to an executor.

Modules:
    trading_engine   -- Engine facade: signal and monitoring loops, manual hooks
    position_manager -- Open position book, P&L, stop-loss / take-profit exits
    risk_manager     -- Sizing, exposure limit, drawdown checks
    executor         -- Executor protocol and the paper executor
"""

from autotrader.execution.executor import ExecutionResult, ExecutionStatus, Executor, PaperExecutor
from autotrader.execution.position_manager import PositionManager
from autotrader.execution.risk_manager import RiskCheck, RiskManager, RiskViolation
from autotrader.execution.trading_engine import TradingEngine

__all__ = [
    "ExecutionResult",
    "ExecutionStatus",
    "Executor",
    "PaperExecutor",
    "PositionManager",
    "RiskCheck",
    "RiskManager",
    "RiskViolation",
    "TradingEngine",
]
