"""HTTP market source backed by a REST market-data / prediction service."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from autotrader.config import HTTP_TIMEOUT, MARKET_API_URL
from autotrader.models import MarketObservation, Prediction

logger = logging.getLogger(__name__)


class HttpMarketSource:
    """Async client for the market-data and prediction endpoints.

    Endpoints:
        GET  /observations?timeframe=1h -> [observation, ...]
        GET  /prices/{symbol}           -> {"price": 52368.91}
        POST /predict                   -> prediction

    Errors are raised to the caller; the engine isolates them per symbol.
    """

    def __init__(
        self,
        base_url: str = MARKET_API_URL,
        timeout: float = HTTP_TIMEOUT,
        symbols: Optional[list[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._symbols = set(symbols) if symbols else None
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    async def get_observations(self, timeframe: str) -> list[MarketObservation]:
        resp = await self._client.get("/observations", params={"timeframe": timeframe})
        resp.raise_for_status()
        payload = resp.json()
        rows: list[dict[str, Any]] = payload.get("data", []) if isinstance(payload, dict) else payload

        observations = []
        for row in rows:
            try:
                obs = MarketObservation.model_validate(row)
            except ValueError:
                logger.warning("observation_parse_error", extra={"row": str(row)[:200]})
                continue
            if self._symbols is None or obs.symbol in self._symbols:
                observations.append(obs)
        return observations

    async def get_current_price(self, symbol: str) -> float:
        resp = await self._client.get(f"/prices/{symbol}")
        resp.raise_for_status()
        return float(resp.json()["price"])

    # ------------------------------------------------------------------
    # Predictions
    # ------------------------------------------------------------------

    async def predict(self, observation: MarketObservation) -> Prediction:
        resp = await self._client.post(
            "/predict",
            json=observation.model_dump(mode="json"),
        )
        resp.raise_for_status()
        return Prediction.model_validate(resp.json())
