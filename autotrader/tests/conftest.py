"""Shared fixtures: a scripted market source and engine wiring."""

from __future__ import annotations

from typing import Optional

import pytest

from autotrader.events import EventBus, EventRecorder
from autotrader.execution.position_manager import PositionManager
from autotrader.execution.risk_manager import RiskManager
from autotrader.models import (
    Direction,
    MarketObservation,
    Prediction,
    SignalAction,
    TradeSignal,
)
from autotrader.strategies.registry import DEFAULT_STRATEGIES


class FakeMarketSource:
    """Market source driven by dictionaries; any entry may be an exception."""

    def __init__(
        self,
        observations: Optional[dict[str, object]] = None,
        predictions: Optional[dict[str, object]] = None,
        prices: Optional[dict[str, object]] = None,
    ) -> None:
        self.observations = observations or {}
        self.predictions = predictions or {}
        self.prices = prices or {}
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def get_observations(self, timeframe: str) -> list[MarketObservation]:
        self.calls.append(("observations", timeframe))
        value = self.observations.get(timeframe, [])
        if isinstance(value, Exception):
            raise value
        return list(value)

    async def get_current_price(self, symbol: str) -> float:
        self.calls.append(("price", symbol))
        value = self.prices[symbol]
        if isinstance(value, Exception):
            raise value
        return value

    async def predict(self, observation: MarketObservation) -> Prediction:
        self.calls.append(("predict", observation.symbol))
        value = self.predictions[observation.symbol]
        if isinstance(value, Exception):
            raise value
        return value

    async def close(self) -> None:
        self.closed = True


def make_observation(symbol: str = "BTC", price: float = 100.0) -> MarketObservation:
    return MarketObservation(
        symbol=symbol,
        price=price,
        volume=1_000.0,
        open=price,
        high=price,
        low=price,
        close=price,
    )


def make_prediction(
    symbol: str = "BTC",
    direction: str = "up",
    confidence: float = 0.9,
    magnitude: float = 0.02,
) -> Prediction:
    return Prediction(
        symbol=symbol,
        direction=Direction(direction),
        magnitude=magnitude,
        confidence=confidence,
        timeframe="1h",
    )


def make_signal(
    symbol: str = "BTC",
    action: str = "buy",
    price: float = 100.0,
    confidence: float = 0.9,
    strategy: str = "trend_following",
    size: float = 0.1,
) -> TradeSignal:
    return TradeSignal(
        action=SignalAction(action),
        symbol=symbol,
        price=price,
        confidence=confidence,
        strategy=strategy,
        size=size,
    )


@pytest.fixture
def risk():
    return RiskManager(
        max_position_size=0.1,
        max_drawdown=0.2,
        stop_loss_percent=0.02,
        take_profit_ratio=2.0,
        portfolio_value=10_000.0,
    )


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorder(bus):
    rec = EventRecorder()
    bus.subscribe_all(rec)
    return rec


@pytest.fixture
def manager(bus, risk):
    return PositionManager(bus, risk, DEFAULT_STRATEGIES)
