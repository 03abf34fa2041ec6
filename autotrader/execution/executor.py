"""Trade executor: the seam where an execution adapter plugs in.

The engine only decides and manages risk; realizing a signal is delegated to
an ``Executor``. The bundled ``PaperExecutor`` fills every signal at its own
price without touching any venue, which is what the engine runs with unless
the host supplies a real adapter.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol

from pydantic import BaseModel, Field

from autotrader.config import ORDER_LOG_LIMIT
from autotrader.models import TradeSignal, utcnow

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ExecutionStatus(str, Enum):
    """Outcome of a submission."""

    FILLED = "filled"       # Realized by a live adapter
    PAPER = "paper"         # Simulated fill (not sent anywhere)
    REJECTED = "rejected"   # Venue refused the order
    FAILED = "failed"       # Submission error


class ExecutionResult(BaseModel):
    """Result from realizing a signal."""

    signal: TradeSignal
    status: ExecutionStatus = ExecutionStatus.FAILED
    order_id: str = ""
    fill_price: Optional[float] = None
    error_msg: str = ""
    submitted_at: datetime = Field(default_factory=utcnow)

    @property
    def success(self) -> bool:
        return self.status in (ExecutionStatus.FILLED, ExecutionStatus.PAPER)


class Executor(Protocol):
    async def submit(self, signal: TradeSignal) -> ExecutionResult: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Paper executor
# ---------------------------------------------------------------------------


class PaperExecutor:
    """Fills every signal immediately at the signal price.

    Attributes:
        _order_log: Most recent results, oldest first.
    """

    def __init__(self, max_log: int = ORDER_LOG_LIMIT) -> None:
        self._order_log: deque[ExecutionResult] = deque(maxlen=max_log)
        self._n_orders = 0

    async def submit(self, signal: TradeSignal) -> ExecutionResult:
        self._n_orders += 1
        result = ExecutionResult(
            signal=signal,
            status=ExecutionStatus.PAPER,
            order_id=f"paper_{int(time.time() * 1000)}_{self._n_orders}",
            fill_price=signal.price,
        )
        logger.info(
            "order_paper_fill",
            extra={
                "order_id": result.order_id,
                "symbol": signal.symbol,
                "action": signal.action.value,
                "price": signal.price,
                "size": signal.size,
                "strategy": signal.strategy,
            },
        )
        self._order_log.append(result)
        return result

    @property
    def order_log(self) -> list[ExecutionResult]:
        """Return the in-memory order log."""
        return list(self._order_log)

    async def close(self) -> None:
        logger.info("executor_closed", extra={"orders": self._n_orders})
