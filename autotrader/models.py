"""Shared data models for the trading engine.

Observations, predictions and signals are immutable values passed between
components. ``Position`` is the only mutable model: the position manager
re-prices it in place and hands out copies to everyone else.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Direction(str, Enum):
    """Predicted price direction."""

    UP = "up"
    DOWN = "down"


class SignalAction(str, Enum):
    BUY = "buy"
    SELL = "sell"


class PositionSide(str, Enum):
    LONG = "long"
    SHORT = "short"

    @classmethod
    def from_action(cls, action: SignalAction) -> PositionSide:
        return cls.LONG if action == SignalAction.BUY else cls.SHORT


class CloseReason(str, Enum):
    """Why a position left the open set."""

    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    MANUAL = "manual"
    REPLACED = "replaced"   # Closed to make room for a newer signal on the symbol


# ---------------------------------------------------------------------------
# Market inputs
# ---------------------------------------------------------------------------


class MarketObservation(BaseModel):
    """A single market snapshot for one symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., description="Instrument symbol, e.g. BTC.")
    price: float = Field(..., description="Last traded price.")
    volume: float = Field(default=0.0, ge=0.0)
    timestamp: datetime = Field(default_factory=utcnow)
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None

    @property
    def reference_price(self) -> float:
        """Close when the bar carries one, otherwise the last price."""
        return self.close if self.close is not None else self.price


class Prediction(BaseModel):
    """Opaque model output for one observation."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    direction: Direction
    magnitude: float = Field(default=0.0, description="Expected fractional price move.")
    confidence: float = Field(..., ge=0.0, le=1.0)
    timeframe: str = Field(default="1h")
    timestamp: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Signals and positions
# ---------------------------------------------------------------------------


class TradeSignal(BaseModel):
    """Candidate action produced by a strategy (or submitted manually)."""

    model_config = ConfigDict(frozen=True)

    action: SignalAction
    symbol: str
    price: float
    confidence: float = Field(..., ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=utcnow)
    strategy: str = Field(default="manual", description="Originating strategy key.")
    size: float = Field(default=0.0, description="Fraction of portfolio; 0 means unsized.")

    @property
    def side(self) -> PositionSide:
        return PositionSide.from_action(self.action)


class Position(BaseModel):
    """An executed signal with running P&L."""

    id: str
    symbol: str
    side: PositionSide
    entry_price: float
    size: float = Field(..., description="Fraction of portfolio.")
    opened_at: datetime = Field(default_factory=utcnow)
    strategy: str = "manual"
    stop_loss_price: float = 0.0
    take_profit_price: float = 0.0
    current_price: float = 0.0
    pnl: float = 0.0
    pnl_percentage: float = 0.0
    updated_at: datetime = Field(default_factory=utcnow)

    def mark_to_market(self, price: float) -> None:
        """Recompute P&L against ``price``."""
        self.current_price = price
        if self.side == PositionSide.LONG:
            self.pnl = (price - self.entry_price) * self.size
        else:
            self.pnl = (self.entry_price - price) * self.size
        basis = self.entry_price * self.size
        self.pnl_percentage = self.pnl / basis * 100 if basis else 0.0
        self.updated_at = utcnow()

    def stop_loss_hit(self, price: float) -> bool:
        if self.side == PositionSide.LONG:
            return price <= self.stop_loss_price
        return price >= self.stop_loss_price

    def take_profit_hit(self, price: float) -> bool:
        if self.side == PositionSide.LONG:
            return price >= self.take_profit_price
        return price <= self.take_profit_price
