"""Market & prediction source contract consumed by the engine."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from autotrader.models import MarketObservation, Prediction


@runtime_checkable
class MarketSource(Protocol):
    """Supplies observations, prices and model predictions.

    Implementations own their own timeouts; the engine treats any raised
    exception as a transient fault for the symbol or strategy involved.
    """

    async def get_observations(self, timeframe: str) -> list[MarketObservation]:
        """Latest observation per tracked symbol sampled at ``timeframe``."""
        ...

    async def get_current_price(self, symbol: str) -> float:
        ...

    async def predict(self, observation: MarketObservation) -> Prediction:
        ...

    async def close(self) -> None:
        ...
