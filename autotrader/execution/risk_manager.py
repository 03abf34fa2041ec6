"""Risk manager: pre-trade sizing checks and portfolio exposure bookkeeping.

Every candidate signal passes through ``check_signal`` before it may be
executed. The manager enforces:

1. An observation must be present (fail closed)
2. A positive portfolio value (no division by zero)
3. Positive candidate size from the per-trade risk budget
4. Portfolio exposure limit (open notional plus candidate)
5. Drawdown circuit breaker on aggregate unrealized P&L

Checks are advisory: an approved size is not reserved. Exposure state only
changes through ``update_position``/``remove_position``/``reset``.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from autotrader.config import (
    RISK_MAX_DRAWDOWN,
    RISK_MAX_POSITION_SIZE,
    RISK_STOP_LOSS_PCT,
    RISK_TAKE_PROFIT_RATIO,
)
from autotrader.models import MarketObservation, Position, PositionSide, TradeSignal

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class RiskViolation(str, Enum):
    """Type of risk limit violated."""

    MISSING_OBSERVATION = "missing_observation"
    INVALID_PORTFOLIO = "invalid_portfolio"
    INVALID_PRICE = "invalid_price"
    INVALID_SIZE = "invalid_size"
    EXPOSURE_LIMIT = "exposure_limit"
    DRAWDOWN_LIMIT = "drawdown_limit"


class RiskCheck(BaseModel):
    """Result of a pre-trade risk check."""

    approved: bool = False
    violation: Optional[RiskViolation] = None
    message: str = ""
    adjusted_size: Optional[float] = None       # Units of the instrument
    max_allowed_size: Optional[float] = None    # Notional cap


class _Exposure(BaseModel):
    notional: float = 0.0
    unrealized_pnl: float = 0.0


# ---------------------------------------------------------------------------
# Risk Manager
# ---------------------------------------------------------------------------


class RiskManager:
    """Pre-trade and portfolio-level risk controls.

    Attributes:
        max_position_size: Max total exposure as a fraction of portfolio value.
        max_drawdown: Max aggregate unrealized loss as a fraction of portfolio.
        stop_loss_percent: Per-trade stop distance; also the risk budget.
        take_profit_ratio: Reward:risk multiple applied to the stop distance.
    """

    def __init__(
        self,
        max_position_size: float = RISK_MAX_POSITION_SIZE,
        max_drawdown: float = RISK_MAX_DRAWDOWN,
        stop_loss_percent: float = RISK_STOP_LOSS_PCT,
        take_profit_ratio: float = RISK_TAKE_PROFIT_RATIO,
        portfolio_value: float = 0.0,
    ) -> None:
        self.max_position_size = max_position_size
        self.max_drawdown = max_drawdown
        self.stop_loss_percent = stop_loss_percent
        self.take_profit_ratio = take_profit_ratio
        self._portfolio_value = portfolio_value
        self._exposures: dict[str, _Exposure] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Portfolio value
    # ------------------------------------------------------------------

    def set_portfolio_value(self, value: float) -> None:
        """Replace the reference portfolio value used for sizing."""
        with self._lock:
            self._portfolio_value = value
        logger.info("portfolio_value_set", extra={"portfolio_value": value})

    @property
    def portfolio_value(self) -> float:
        return self._portfolio_value

    # ------------------------------------------------------------------
    # Pre-trade checks
    # ------------------------------------------------------------------

    def validate_signal(
        self,
        signal: TradeSignal,
        observation: Optional[MarketObservation],
    ) -> bool:
        """True if ``signal`` may be executed given current exposure."""
        return self.check_signal(signal, observation).approved

    def check_signal(
        self,
        signal: TradeSignal,
        observation: Optional[MarketObservation],
    ) -> RiskCheck:
        """Run pre-trade risk checks on a candidate signal.

        Args:
            signal: Proposed trade.
            observation: Market state the signal was derived from.

        Returns:
            RiskCheck indicating approval or rejection.
        """
        if observation is None:
            return RiskCheck(
                violation=RiskViolation.MISSING_OBSERVATION,
                message=f"No market observation for {signal.symbol}.",
            )

        with self._lock:
            portfolio = self._portfolio_value
            exposure = self._total_exposure()
            unrealized = self._unrealized_pnl()

        if portfolio <= 0:
            return RiskCheck(
                violation=RiskViolation.INVALID_PORTFOLIO,
                message=f"Portfolio value {portfolio:.2f} must be positive.",
            )

        price = observation.reference_price
        if price <= 0:
            return RiskCheck(
                violation=RiskViolation.INVALID_PRICE,
                message=f"Price {price} for {signal.symbol} must be positive.",
            )

        units = self.position_size(price)
        limit = portfolio * self.max_position_size
        # units <= limit / price, clamp float round-off on the way back
        candidate = min(units * price, limit)

        if units <= 0:
            return RiskCheck(
                violation=RiskViolation.INVALID_SIZE,
                message="Computed position size is not positive.",
                max_allowed_size=limit,
            )

        if exposure + candidate > limit:
            return RiskCheck(
                violation=RiskViolation.EXPOSURE_LIMIT,
                message=(
                    f"Exposure ${exposure:.2f} + ${candidate:.2f} "
                    f"exceeds limit ${limit:.2f}."
                ),
                max_allowed_size=limit,
            )

        drawdown = abs(unrealized) / portfolio
        if drawdown > self.max_drawdown:
            return RiskCheck(
                violation=RiskViolation.DRAWDOWN_LIMIT,
                message=(
                    f"Drawdown {drawdown:.1%} exceeds limit {self.max_drawdown:.1%}."
                ),
                max_allowed_size=limit,
            )

        return RiskCheck(
            approved=True,
            adjusted_size=units,
            max_allowed_size=limit,
            message="Signal approved.",
        )

    def position_size(self, price: float) -> float:
        """Units affordable at ``price`` within the per-trade budget and cap.

        The risk budget is ``portfolio * stop_loss_percent`` spread over a
        stop distance of ``price * stop_loss_percent``; the result is capped
        so its notional never exceeds ``portfolio * max_position_size``.
        """
        portfolio = self._portfolio_value
        if portfolio <= 0 or price <= 0 or self.stop_loss_percent <= 0:
            return 0.0
        risk_amount = portfolio * self.stop_loss_percent
        by_risk = risk_amount / (price * self.stop_loss_percent)
        by_cap = portfolio * self.max_position_size / price
        return min(by_risk, by_cap)

    # ------------------------------------------------------------------
    # Exit levels
    # ------------------------------------------------------------------

    def calculate_stop_loss(self, entry_price: float, direction: PositionSide | str) -> float:
        if PositionSide(direction) == PositionSide.LONG:
            return entry_price * (1 - self.stop_loss_percent)
        return entry_price * (1 + self.stop_loss_percent)

    def calculate_take_profit(self, entry_price: float, direction: PositionSide | str) -> float:
        distance = entry_price * self.stop_loss_percent * self.take_profit_ratio
        if PositionSide(direction) == PositionSide.LONG:
            return entry_price + distance
        return entry_price - distance

    # ------------------------------------------------------------------
    # Exposure bookkeeping
    # ------------------------------------------------------------------

    def update_position(self, position: Position) -> None:
        """Record (or refresh) a position's notional and unrealized P&L."""
        with self._lock:
            notional = abs(position.size) * self._portfolio_value
            self._exposures[position.symbol] = _Exposure(
                notional=notional,
                unrealized_pnl=notional * position.pnl_percentage / 100,
            )

    def remove_position(self, symbol: str) -> None:
        with self._lock:
            self._exposures.pop(symbol, None)

    def reset(self) -> None:
        """Forget all tracked exposure (used on bulk position resets)."""
        with self._lock:
            self._exposures.clear()
        logger.info("risk_exposure_reset")

    @property
    def total_exposure(self) -> float:
        with self._lock:
            return self._total_exposure()

    @property
    def unrealized_pnl(self) -> float:
        with self._lock:
            return self._unrealized_pnl()

    @property
    def current_drawdown(self) -> float:
        with self._lock:
            if self._portfolio_value <= 0:
                return 0.0
            return abs(self._unrealized_pnl()) / self._portfolio_value

    def status(self) -> dict:
        """Return current risk status summary."""
        with self._lock:
            portfolio = self._portfolio_value
            return {
                "portfolio_value": portfolio,
                "total_exposure": self._total_exposure(),
                "max_exposure": portfolio * self.max_position_size,
                "unrealized_pnl": self._unrealized_pnl(),
                "drawdown": abs(self._unrealized_pnl()) / portfolio if portfolio > 0 else 0.0,
                "drawdown_limit": self.max_drawdown,
                "tracked_symbols": sorted(self._exposures),
            }

    def _total_exposure(self) -> float:
        return sum(e.notional for e in self._exposures.values())

    def _unrealized_pnl(self) -> float:
        return sum(e.unrealized_pnl for e in self._exposures.values())
