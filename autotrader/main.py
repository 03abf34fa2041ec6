"""Entry point for the trading engine service."""

from __future__ import annotations

import asyncio
import logging

from autotrader.config import MARKET_SOURCE, setup_logging
from autotrader.service import TradingService

logger = logging.getLogger(__name__)


async def _main() -> None:
    setup_logging()
    logger.info("engine_starting", extra={"market_source": MARKET_SOURCE})

    service = TradingService()
    await service.start()


def main() -> None:
    asyncio.run(_main())


if __name__ == "__main__":
    main()
