"""Position manager: owns the open-position book and applies exits.

Maintains at most one open position per symbol. Opening a position for a
symbol that already has one closes the old position first. Re-pricing
updates running P&L and closes positions whose price crosses the stop-loss
or take-profit level fixed when the position was opened.

All access to the book is serialized by a single lock so the signal loop's
``execute`` and the monitoring loop's ``reprice``/``close`` never interleave
on the same symbol. Lifecycle events are published while the lock is held,
which keeps their order identical to the order of the mutations.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Mapping
from typing import Optional

from autotrader.events import EventBus, PositionClosed, PositionOpened, PositionUpdated
from autotrader.execution.risk_manager import RiskManager
from autotrader.models import CloseReason, Position, PositionSide, TradeSignal, utcnow
from autotrader.strategies.registry import StrategyConfig

logger = logging.getLogger(__name__)


class PositionManager:
    """Tracks open positions, computes P&L and enforces exits.

    Attributes:
        bus: Event bus lifecycle events are published on.
        risk: Risk manager whose exposure ledger mirrors the book.
        strategies: Strategy configs used to derive exit levels.
    """

    def __init__(
        self,
        bus: EventBus,
        risk: RiskManager,
        strategies: Optional[Mapping[str, StrategyConfig]] = None,
    ) -> None:
        self.bus = bus
        self.risk = risk
        self.strategies = strategies or {}
        self._positions: dict[str, Position] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def execute(self, signal: TradeSignal, fill_price: Optional[float] = None) -> Position:
        """Open a position for an accepted signal.

        Args:
            signal: Risk-accepted signal with a positive size.
            fill_price: Realized entry price; defaults to the signal price.

        Returns:
            The newly opened Position (a copy).

        Raises:
            ValueError: If the signal size or entry price is not positive.
        """
        if signal.size <= 0:
            raise ValueError(f"Signal size must be positive, got {signal.size}")
        entry = fill_price if fill_price is not None else signal.price
        if entry <= 0:
            raise ValueError(f"Entry price must be positive, got {entry}")

        side = signal.side
        stop_loss, take_profit = self._exit_levels(signal.strategy, entry, side)

        with self._lock:
            if signal.symbol in self._positions:
                self._close_locked(signal.symbol, CloseReason.REPLACED)

            pos = Position(
                id=f"{signal.symbol}-{uuid.uuid4().hex[:12]}",
                symbol=signal.symbol,
                side=side,
                entry_price=entry,
                size=signal.size,
                strategy=signal.strategy,
                stop_loss_price=stop_loss,
                take_profit_price=take_profit,
                current_price=entry,
            )
            self._positions[signal.symbol] = pos
            self.risk.update_position(pos)

            logger.info(
                "position_opened",
                extra={
                    "position_id": pos.id,
                    "symbol": pos.symbol,
                    "side": pos.side.value,
                    "entry": entry,
                    "size": pos.size,
                    "stop_loss": round(stop_loss, 6),
                    "take_profit": round(take_profit, 6),
                    "strategy": pos.strategy,
                    "n_positions": len(self._positions),
                },
            )
            snapshot = pos.model_copy()
            self.bus.publish(PositionOpened(position=snapshot))
            return snapshot

    def reprice(self, symbol: str, current_price: float) -> Optional[Position]:
        """Mark a position to market and apply stop-loss / take-profit.

        Returns:
            The updated Position, the closed Position if an exit fired, or
            None if no position exists for ``symbol``.
        """
        with self._lock:
            pos = self._positions.get(symbol)
            if pos is None:
                return None

            pos.mark_to_market(current_price)

            if pos.stop_loss_hit(current_price):
                return self._close_locked(symbol, CloseReason.STOP_LOSS)
            if pos.take_profit_hit(current_price):
                return self._close_locked(symbol, CloseReason.TAKE_PROFIT)

            self.risk.update_position(pos)
            snapshot = pos.model_copy()
            self.bus.publish(PositionUpdated(position=snapshot))
            return snapshot

    def close(self, symbol: str, reason: CloseReason | str = CloseReason.MANUAL) -> Optional[Position]:
        """Close the position for ``symbol``.

        Returns:
            The closed Position with its final P&L, or None (no event) if
            there is no open position for the symbol.
        """
        with self._lock:
            return self._close_locked(symbol, CloseReason(reason))

    # ------------------------------------------------------------------
    # Manual hooks
    # ------------------------------------------------------------------

    def replace(self, symbol: str, position: Position) -> Position:
        """Overwrite the book entry for ``symbol`` without emitting events."""
        if position.symbol != symbol:
            raise ValueError(
                f"Position symbol {position.symbol!r} does not match {symbol!r}"
            )
        with self._lock:
            stored = position.model_copy()
            self._positions[symbol] = stored
            self.risk.update_position(stored)
            return stored.model_copy()

    def clear(self) -> int:
        """Drop every open position without emitting close events.

        Returns:
            Number of positions dropped.
        """
        with self._lock:
            n = len(self._positions)
            self._positions.clear()
            self.risk.reset()
        logger.info("positions_cleared", extra={"n_positions": n})
        return n

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, symbol: str) -> Optional[Position]:
        with self._lock:
            pos = self._positions.get(symbol)
            return pos.model_copy() if pos else None

    def positions(self) -> list[Position]:
        """Copies of all open positions."""
        with self._lock:
            return [p.model_copy() for p in self._positions.values()]

    def symbols(self) -> list[str]:
        with self._lock:
            return list(self._positions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._positions)

    def __contains__(self, symbol: object) -> bool:
        with self._lock:
            return symbol in self._positions

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _close_locked(self, symbol: str, reason: CloseReason) -> Optional[Position]:
        pos = self._positions.pop(symbol, None)
        if pos is None:
            return None

        pos.updated_at = utcnow()
        self.risk.remove_position(symbol)

        logger.info(
            "position_closed",
            extra={
                "position_id": pos.id,
                "symbol": symbol,
                "side": pos.side.value,
                "entry": pos.entry_price,
                "exit": pos.current_price,
                "pnl": round(pos.pnl, 6),
                "pnl_pct": round(pos.pnl_percentage, 4),
                "reason": reason.value,
            },
        )
        snapshot = pos.model_copy()
        self.bus.publish(PositionClosed(position=snapshot, reason=reason))
        return snapshot

    def _exit_levels(self, strategy: str, entry: float, side: PositionSide) -> tuple[float, float]:
        """Stop-loss and take-profit prices from the strategy config.

        Signals from unknown strategies (manual ones included) fall back to
        the risk manager's default stop distance and reward:risk ratio.
        """
        cfg = self.strategies.get(strategy)
        if cfg is None:
            return (
                self.risk.calculate_stop_loss(entry, side),
                self.risk.calculate_take_profit(entry, side),
            )
        if side == PositionSide.LONG:
            return entry * (1 - cfg.stop_loss), entry * (1 + cfg.take_profit)
        return entry * (1 + cfg.stop_loss), entry * (1 - cfg.take_profit)
