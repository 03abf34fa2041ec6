"""Tests for the HTTP and simulated market sources."""

import json

import httpx
import pytest

from autotrader.market import HttpMarketSource, MarketSource, SimulatedMarketSource
from autotrader.models import Direction

from conftest import FakeMarketSource, make_observation


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/observations":
        rows = [
            {"symbol": "BTC", "price": 52368.91, "volume": 1.0, "close": 52368.91},
            {"symbol": "DOGE", "price": 0.12},
            {"symbol": "ETH"},   # no price, dropped
        ]
        if request.url.params.get("timeframe") == "1d":
            return httpx.Response(200, json={"data": rows})
        return httpx.Response(200, json=rows)
    if request.url.path == "/prices/ETH":
        return httpx.Response(200, json={"price": "3245.67"})
    if request.url.path == "/predict":
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={"symbol": body["symbol"], "direction": "down", "confidence": 0.8},
        )
    return httpx.Response(503, json={"error": "unavailable"})


def _http_source(symbols=None):
    return HttpMarketSource(
        "http://market.test",
        symbols=symbols,
        transport=httpx.MockTransport(_handler),
    )


# ------------------------------------------------------------------
# HTTP source
# ------------------------------------------------------------------

@pytest.mark.asyncio
async def test_http_observations_skip_invalid_rows():
    source = _http_source()
    obs = await source.get_observations("1h")
    await source.close()

    assert [o.symbol for o in obs] == ["BTC", "DOGE"]
    assert obs[0].reference_price == 52368.91


@pytest.mark.asyncio
async def test_http_observations_accept_wrapped_payload_and_filter_symbols():
    source = _http_source(symbols=["BTC"])
    obs = await source.get_observations("1d")
    await source.close()

    assert [o.symbol for o in obs] == ["BTC"]


@pytest.mark.asyncio
async def test_http_price_and_prediction():
    source = _http_source()
    price = await source.get_current_price("ETH")
    prediction = await source.predict(make_observation("ETH", 3245.67))
    await source.close()

    assert price == pytest.approx(3245.67)
    assert prediction.symbol == "ETH"
    assert prediction.direction == Direction.DOWN
    assert prediction.confidence == 0.8


@pytest.mark.asyncio
async def test_http_errors_propagate():
    source = _http_source()
    with pytest.raises(httpx.HTTPStatusError):
        await source.get_current_price("SOL")
    await source.close()


def test_sources_satisfy_protocol():
    assert isinstance(SimulatedMarketSource(["BTC"]), MarketSource)
    assert isinstance(FakeMarketSource(), MarketSource)


# ------------------------------------------------------------------
# Simulated source
# ------------------------------------------------------------------

@pytest.mark.asyncio
async def test_simulated_is_deterministic_for_seed():
    a = SimulatedMarketSource(["BTC", "ETH"], seed=7)
    b = SimulatedMarketSource(["BTC", "ETH"], seed=7)

    obs_a = await a.get_observations("4h")
    obs_b = await b.get_observations("4h")

    assert [o.close for o in obs_a] == [o.close for o in obs_b]
    assert await a.get_current_price("BTC") == await b.get_current_price("BTC")


@pytest.mark.asyncio
async def test_simulated_bars_are_well_formed():
    source = SimulatedMarketSource(["BTC", "XYZ"], seed=1)

    for _ in range(5):
        for obs in await source.get_observations("1h"):
            assert None not in (obs.open, obs.high, obs.low, obs.close)
            assert obs.low <= min(obs.open, obs.close)
            assert obs.high >= max(obs.open, obs.close)
            assert obs.price > 0
            assert obs.volume > 0


@pytest.mark.asyncio
async def test_simulated_predictions_are_bounded():
    source = SimulatedMarketSource(["SOL"], seed=3)

    for _ in range(10):
        [obs] = await source.get_observations("1h")
        prediction = await source.predict(obs)
        assert prediction.symbol == "SOL"
        assert 0.5 <= prediction.confidence <= 1.0


@pytest.mark.asyncio
async def test_simulated_unknown_symbol_price():
    source = SimulatedMarketSource(["BTC"], seed=0)
    with pytest.raises(KeyError):
        await source.get_current_price("DOGE")
