"""Trading engine: the two periodic loops and the external control surface.

On each signal cycle the engine:

1. Drains manually queued signals through the risk gate
2. For every strategy, fetches observations for the strategy's timeframe
3. For each tracked symbol, obtains a prediction and runs the strategy rule
4. Passes produced signals through the risk manager
5. Realizes accepted signals through the executor and opens positions

On each monitor cycle it re-prices every open position, which applies
stop-loss and take-profit exits.

The loops are independent ``asyncio`` tasks. They share nothing but the
position manager and risk manager, each of which serializes its own state.
Signals are checked and executed one at a time, so the exposure seen by a
check always includes every position accepted before it.
``stop()`` clears the running flag and wakes sleeping loops; an iteration in
progress is allowed to finish.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Optional

from autotrader.config import MIN_SIGNAL_CONFIDENCE, MONITOR_INTERVAL, SIGNAL_INTERVAL
from autotrader.events import (
    EventBus,
    EventKind,
    Handler,
    MarketUpdate,
    PredictionReceived,
    SignalRejected,
    Subscription,
    TradeError,
    TradingStarted,
    TradingStopped,
)
from autotrader.execution.executor import Executor, PaperExecutor
from autotrader.execution.position_manager import PositionManager
from autotrader.execution.risk_manager import RiskManager
from autotrader.market.source import MarketSource
from autotrader.models import (
    CloseReason,
    MarketObservation,
    Position,
    Prediction,
    TradeSignal,
)
from autotrader.strategies.registry import DEFAULT_STRATEGIES, StrategyConfig
from autotrader.strategies.rules import DEFAULT_RULES, Rule, evaluate

logger = logging.getLogger(__name__)

INVALID_SIGNAL = "invalid_signal"


class TradingEngine:
    """Decision and risk core wired to a market source and an executor.

    Attributes:
        source: Market & prediction collaborator.
        risk: Risk manager gating every candidate signal.
        strategies: Immutable strategy registry evaluated each cycle.
        rules: Immutable signal rule per strategy key.
        executor: Adapter that realizes accepted signals.
        bus: Event channel exposed to external consumers.
        positions: Authoritative open-position book.
    """

    def __init__(
        self,
        market_source: MarketSource,
        risk_manager: RiskManager,
        strategies: Optional[Mapping[str, StrategyConfig]] = None,
        *,
        rules: Optional[Mapping[str, Rule]] = None,
        executor: Optional[Executor] = None,
        event_bus: Optional[EventBus] = None,
        symbols: Optional[list[str]] = None,
        signal_interval: float = SIGNAL_INTERVAL,
        monitor_interval: float = MONITOR_INTERVAL,
        min_signal_confidence: float = MIN_SIGNAL_CONFIDENCE,
    ) -> None:
        if signal_interval <= 0 or monitor_interval <= 0:
            raise ValueError("Loop intervals must be positive")

        self.source = market_source
        self.risk = risk_manager
        self.strategies: Mapping[str, StrategyConfig] = MappingProxyType(
            dict(DEFAULT_STRATEGIES if strategies is None else strategies)
        )
        self.rules: Mapping[str, Rule] = MappingProxyType({**DEFAULT_RULES, **(rules or {})})
        self.executor: Executor = executor or PaperExecutor()
        self.bus = event_bus or EventBus()
        self.positions = PositionManager(self.bus, self.risk, self.strategies)
        self.symbols = set(symbols) if symbols else None
        self.signal_interval = signal_interval
        self.monitor_interval = monitor_interval
        self.min_signal_confidence = min_signal_confidence

        self._running = False
        self._wake = asyncio.Event()
        self._tasks: list[asyncio.Task] = []
        self._pending: deque[TradeSignal] = deque()
        # Spans risk check, executor submit and position open
        self._submit_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start both loops. No-op if already running."""
        if self._running:
            return
        self._running = True
        self._wake.clear()
        self.bus.publish(TradingStarted())

        self._tasks = [
            asyncio.create_task(self._signal_loop(), name="signal-loop"),
            asyncio.create_task(self._monitor_loop(), name="monitor-loop"),
        ]
        logger.info(
            "trading_started",
            extra={
                "strategies": list(self.strategies),
                "signal_interval": self.signal_interval,
                "monitor_interval": self.monitor_interval,
            },
        )

    async def stop(self) -> None:
        """Prevent further iterations and wait for in-flight ones to finish."""
        if not self._running:
            return
        self._running = False
        self._wake.set()
        self.bus.publish(TradingStopped())

        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("trading_stopped", extra={"n_positions": len(self.positions)})

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, kind: EventKind | str, handler: Handler) -> Subscription:
        return self.bus.subscribe(kind, handler)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.bus.unsubscribe(subscription)

    # ------------------------------------------------------------------
    # Queries and manual hooks
    # ------------------------------------------------------------------

    def get_positions(self) -> list[Position]:
        return self.positions.positions()

    def add_signal(self, signal: TradeSignal) -> None:
        """Queue a manual signal for the next signal cycle."""
        self._pending.append(signal)
        logger.info(
            "signal_queued",
            extra={"symbol": signal.symbol, "action": signal.action.value},
        )

    def update_position(self, symbol: str, position: Position) -> Position:
        return self.positions.replace(symbol, position)

    def close_position(
        self, symbol: str, reason: CloseReason | str = CloseReason.MANUAL
    ) -> Optional[Position]:
        return self.positions.close(symbol, reason)

    def close_all_positions(self) -> int:
        """Bulk-clear the book without per-position close events."""
        return self.positions.clear()

    def update_market_data(self, observation: MarketObservation) -> Optional[Position]:
        """Push an externally received observation into the engine."""
        self.bus.publish(MarketUpdate(observation=observation))
        return self.positions.reprice(observation.symbol, observation.reference_price)

    def process_prediction(self, prediction: Prediction) -> None:
        self.bus.publish(PredictionReceived(prediction=prediction))

    async def process_signal(
        self,
        signal: TradeSignal,
        observation: Optional[MarketObservation] = None,
    ) -> Optional[Position]:
        """Risk-check and execute a signal that did not come from a strategy.

        Signals below the engine's confidence floor are rejected outright.
        Without an observation the signal's own price stands in for one.
        """
        if signal.confidence < self.min_signal_confidence:
            self._reject(signal, INVALID_SIGNAL, "confidence below engine minimum")
            return None

        if observation is None:
            observation = MarketObservation(
                symbol=signal.symbol,
                price=signal.price,
                timestamp=signal.timestamp,
                open=signal.price,
                high=signal.price,
                low=signal.price,
                close=signal.price,
            )
        return await self._submit(signal, observation)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_signal_cycle(self) -> None:
        """One pass of the signal generation loop."""
        while self._pending:
            await self.process_signal(self._pending.popleft())

        await asyncio.gather(
            *(self._run_strategy(cfg) for cfg in self.strategies.values())
        )

    async def run_monitor_cycle(self) -> None:
        """One pass of the position monitoring loop."""
        symbols = self.positions.symbols()
        if symbols:
            await asyncio.gather(*(self._monitor_symbol(s) for s in symbols))

    async def _signal_loop(self) -> None:
        while self._running:
            try:
                await self.run_signal_cycle()
            except Exception:
                logger.error("signal_cycle_error", exc_info=True)
            await self._sleep(self.signal_interval)

    async def _monitor_loop(self) -> None:
        while self._running:
            try:
                await self.run_monitor_cycle()
            except Exception:
                logger.error("monitor_cycle_error", exc_info=True)
            await self._sleep(self.monitor_interval)

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------
    # Signal path
    # ------------------------------------------------------------------

    async def _run_strategy(self, cfg: StrategyConfig) -> None:
        try:
            observations = await self.source.get_observations(cfg.timeframe.value)
        except Exception:
            logger.warning(
                "observation_fetch_failed",
                extra={"strategy": cfg.key, "timeframe": cfg.timeframe.value},
                exc_info=True,
            )
            return

        tracked = [o for o in observations if self._is_tracked(o.symbol)]
        await asyncio.gather(*(self._evaluate(cfg, o) for o in tracked))

    async def _evaluate(self, cfg: StrategyConfig, observation: MarketObservation) -> None:
        self.bus.publish(MarketUpdate(observation=observation))
        try:
            prediction = await self.source.predict(observation)
        except Exception:
            logger.warning(
                "prediction_failed",
                extra={"strategy": cfg.key, "symbol": observation.symbol},
                exc_info=True,
            )
            return
        self.bus.publish(PredictionReceived(prediction=prediction))

        try:
            signal = evaluate(observation, prediction, cfg, self.rules)
        except Exception:
            logger.error(
                "strategy_error",
                extra={"strategy": cfg.key, "symbol": observation.symbol},
                exc_info=True,
            )
            return

        if signal is not None:
            await self._submit(signal, observation)

    async def _submit(
        self, signal: TradeSignal, observation: MarketObservation
    ) -> Optional[Position]:
        async with self._submit_lock:
            return await self._check_and_execute(signal, observation)

    async def _check_and_execute(
        self, signal: TradeSignal, observation: MarketObservation
    ) -> Optional[Position]:
        check = self.risk.check_signal(signal, observation)
        if not check.approved:
            reason = check.violation.value if check.violation else INVALID_SIGNAL
            self._reject(signal, reason, check.message)
            return None

        if signal.size <= 0:
            # Unsized (manual) signal: take the risk manager's advisory size
            notional = (check.adjusted_size or 0.0) * observation.reference_price
            signal = signal.model_copy(
                update={"size": notional / self.risk.portfolio_value}
            )

        logger.info(
            "signal_accepted",
            extra={
                "symbol": signal.symbol,
                "action": signal.action.value,
                "price": signal.price,
                "size": signal.size,
                "confidence": signal.confidence,
                "strategy": signal.strategy,
            },
        )
        return await self._execute(signal)

    async def _execute(self, signal: TradeSignal) -> Optional[Position]:
        try:
            result = await self.executor.submit(signal)
        except Exception as e:
            logger.error(
                "execution_failed",
                extra={"symbol": signal.symbol, "error": str(e)},
                exc_info=True,
            )
            self.bus.publish(TradeError(signal=signal, error=str(e)))
            return None

        if not result.success:
            error = result.error_msg or f"execution {result.status.value}"
            logger.warning(
                "execution_unsuccessful",
                extra={"symbol": signal.symbol, "status": result.status.value, "error": error},
            )
            self.bus.publish(TradeError(signal=signal, error=error))
            return None

        try:
            return self.positions.execute(signal, fill_price=result.fill_price)
        except ValueError as e:
            self.bus.publish(TradeError(signal=signal, error=str(e)))
            return None

    def _reject(self, signal: TradeSignal, reason: str, message: str = "") -> None:
        logger.info(
            "signal_rejected",
            extra={
                "symbol": signal.symbol,
                "strategy": signal.strategy,
                "reason": reason,
                "detail": message,
            },
        )
        self.bus.publish(SignalRejected(signal=signal, reason=reason))

    # ------------------------------------------------------------------
    # Monitor path
    # ------------------------------------------------------------------

    async def _monitor_symbol(self, symbol: str) -> None:
        try:
            price = await self.source.get_current_price(symbol)
        except Exception:
            logger.warning("price_fetch_failed", extra={"symbol": symbol}, exc_info=True)
            return
        if price is None or price <= 0:
            logger.warning("price_invalid", extra={"symbol": symbol, "price": price})
            return
        self.positions.reprice(symbol, price)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_tracked(self, symbol: str) -> bool:
        return self.symbols is None or symbol in self.symbols

    def status(self) -> dict[str, Any]:
        """Return current engine status summary."""
        return {
            "running": self._running,
            "strategies": list(self.strategies),
            "tracked_symbols": sorted(self.symbols) if self.symbols else "all",
            "pending_signals": len(self._pending),
            "n_positions": len(self.positions),
            "positions": [p.model_dump(mode="json") for p in self.get_positions()],
            "risk": self.risk.status(),
        }
