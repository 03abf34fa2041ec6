"""Service host: wires the engine from config and runs it until shutdown."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

from aiohttp import web

from autotrader.config import (
    HEALTH_CHECK_PORT,
    MARKET_API_URL,
    MARKET_SOURCE,
    MIN_SIGNAL_CONFIDENCE,
    MONITOR_INTERVAL,
    PORTFOLIO_VALUE,
    RECENT_EVENTS_LIMIT,
    SIGNAL_INTERVAL,
    SIMULATION_SEED,
    TRACKED_SYMBOLS,
)
from autotrader.events import EventRecorder, Subscription, log_event
from autotrader.execution.risk_manager import RiskManager
from autotrader.execution.trading_engine import TradingEngine
from autotrader.market import HttpMarketSource, MarketSource, SimulatedMarketSource

logger = logging.getLogger(__name__)


def build_market_source(kind: str = MARKET_SOURCE) -> MarketSource:
    """Create the configured market source (``simulated`` or ``http``)."""
    if kind == "simulated":
        return SimulatedMarketSource(TRACKED_SYMBOLS, seed=SIMULATION_SEED)
    if kind == "http":
        return HttpMarketSource(MARKET_API_URL, symbols=TRACKED_SYMBOLS)
    raise ValueError(f"Unknown MARKET_SOURCE: {kind!r}")


def build_engine(source: Optional[MarketSource] = None) -> TradingEngine:
    """Construct a fully wired engine from environment configuration."""
    risk = RiskManager(portfolio_value=PORTFOLIO_VALUE)
    return TradingEngine(
        source or build_market_source(),
        risk,
        symbols=TRACKED_SYMBOLS,
        signal_interval=SIGNAL_INTERVAL,
        monitor_interval=MONITOR_INTERVAL,
        min_signal_confidence=MIN_SIGNAL_CONFIDENCE,
    )


class TradingService:
    """Runs the engine next to a health endpoint until a shutdown signal."""

    def __init__(self, engine: Optional[TradingEngine] = None, port: int = HEALTH_CHECK_PORT) -> None:
        self.engine = engine or build_engine()
        self.port = port
        self.recorder = EventRecorder(maxlen=RECENT_EVENTS_LIMIT)
        self._subscriptions: list[Subscription] = []
        self._shutdown_event = asyncio.Event()
        self._health_runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start the engine and health server, and block until shutdown."""
        self._subscriptions = [
            self.engine.bus.subscribe_all(self.recorder),
            self.engine.bus.subscribe_all(log_event),
        ]
        await self.engine.start()

        await self._start_health_server()

        # Register signal handlers
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler)

        # Block until shutdown
        await self._shutdown_event.wait()
        await self._stop()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def _stop(self) -> None:
        logger.info("service_stopping")
        await self.engine.stop()
        await self.engine.executor.close()
        await self.engine.source.close()

        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions.clear()

        if self._health_runner:
            await self._health_runner.cleanup()

        logger.info("service_stopped")

    def _signal_handler(self) -> None:
        logger.info("shutdown_signal_received")
        self._shutdown_event.set()

    # ------------------------------------------------------------------
    # Health check
    # ------------------------------------------------------------------

    async def _start_health_server(self) -> None:
        app = web.Application()
        app.router.add_get("/health", self._health_handler)

        self._health_runner = web.AppRunner(app)
        await self._health_runner.setup()
        site = web.TCPSite(self._health_runner, "0.0.0.0", self.port)
        await site.start()
        logger.info("health_server_started", extra={"port": self.port})

    async def _health_handler(self, request: web.Request) -> web.Response:
        return web.json_response(self.health())

    def health(self) -> dict:
        return {
            "status": "ok" if self.engine.is_running else "stopped",
            "engine": self.engine.status(),
            "subscribers": self.engine.bus.subscriber_count(),
            "recent_events": [
                e.model_dump(mode="json") for e in self.recorder.events
            ],
        }
