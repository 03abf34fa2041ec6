"""Market and prediction sources for the trading engine.

Modules:
    source      -- MarketSource protocol the engine consumes
    http_source -- httpx client for a REST market-data / prediction service
    simulated   -- Random-walk market with a momentum predictor (paper runs)
"""

from autotrader.market.http_source import HttpMarketSource
from autotrader.market.simulated import SimulatedMarketSource
from autotrader.market.source import MarketSource

__all__ = ["HttpMarketSource", "MarketSource", "SimulatedMarketSource"]
