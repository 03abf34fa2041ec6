"""Simulated market source for paper runs.

Prices follow a geometric random walk per symbol. Each timeframe samples a
bar (open/high/low/close) from the walk, and the predictor turns recent drift
into a direction with a logistic confidence. Nothing here is meant to be a
good model; it only exercises the engine end to end.
"""

from __future__ import annotations

import asyncio
import math
from collections import deque
from typing import Optional

import numpy as np

from autotrader.models import Direction, MarketObservation, Prediction, utcnow

# Seed prices for the default symbols
_BASE_PRICES = {
    "BTC": 52368.91,
    "ETH": 3245.67,
    "SOL": 124.35,
}
_BASE_VOLUMES = {
    "BTC": 38_500_000_000.0,
    "ETH": 18_700_000_000.0,
    "SOL": 6_200_000_000.0,
}

# Random-walk steps per bar for each timeframe
_STEPS_PER_BAR = {"1h": 12, "4h": 48, "1d": 288}
_STEP_VOLATILITY = 0.002    # per-step log-return std
_HISTORY = 64               # closes kept per symbol for the predictor


class SimulatedMarketSource:
    """Seedable random-walk market with a momentum predictor."""

    def __init__(
        self,
        symbols: list[str],
        seed: Optional[int] = None,
        volatility: float = _STEP_VOLATILITY,
        latency: float = 0.0,
    ) -> None:
        self._rng = np.random.default_rng(seed)
        self._volatility = volatility
        self._latency = latency
        self._prices: dict[str, float] = {
            s: _BASE_PRICES.get(s, 100.0) for s in symbols
        }
        self._closes: dict[str, deque[float]] = {
            s: deque([p], maxlen=_HISTORY) for s, p in self._prices.items()
        }

    @property
    def symbols(self) -> list[str]:
        return list(self._prices)

    async def get_observations(self, timeframe: str) -> list[MarketObservation]:
        await self._sleep()
        steps = _STEPS_PER_BAR.get(timeframe, _STEPS_PER_BAR["1h"])
        return [self._bar(symbol, steps) for symbol in self._prices]

    async def get_current_price(self, symbol: str) -> float:
        await self._sleep()
        if symbol not in self._prices:
            raise KeyError(f"Unknown symbol: {symbol}")
        self._walk(symbol, 1)
        return self._prices[symbol]

    async def predict(self, observation: MarketObservation) -> Prediction:
        closes = np.asarray(self._closes.get(observation.symbol, [observation.price]))
        if closes.size < 3:
            drift, z = 0.0, 0.0
        else:
            returns = np.diff(np.log(closes))
            drift = float(returns.mean())
            std = float(returns.std())
            z = drift / std * math.sqrt(returns.size) if std > 0 else 0.0

        confidence = 1.0 / (1.0 + math.exp(-abs(z)))    # 0.5 .. 1.0
        return Prediction(
            symbol=observation.symbol,
            direction=Direction.UP if drift >= 0 else Direction.DOWN,
            magnitude=abs(drift),
            confidence=min(max(confidence, 0.0), 1.0),
            timestamp=utcnow(),
        )

    async def close(self) -> None:
        return None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _walk(self, symbol: str, steps: int) -> np.ndarray:
        shocks = self._rng.normal(0.0, self._volatility, size=steps)
        path = self._prices[symbol] * np.exp(np.cumsum(shocks))
        self._prices[symbol] = float(path[-1])
        return path

    def _bar(self, symbol: str, steps: int) -> MarketObservation:
        open_ = self._prices[symbol]
        path = self._walk(symbol, steps)
        close = float(path[-1])
        self._closes[symbol].append(close)
        volume = _BASE_VOLUMES.get(symbol, 1_000_000.0) * float(self._rng.uniform(0.8, 1.2))
        return MarketObservation(
            symbol=symbol,
            price=close,
            volume=volume,
            timestamp=utcnow(),
            open=open_,
            high=float(max(open_, path.max())),
            low=float(min(open_, path.min())),
            close=close,
        )

    async def _sleep(self) -> None:
        if self._latency > 0:
            await asyncio.sleep(self._latency)
