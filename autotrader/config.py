"""Engine configuration loaded from environment variables."""

import logging
import os
import sys

from pythonjsonlogger import jsonlogger

# ---------------------------------------------------------------------------
# Market source
# ---------------------------------------------------------------------------
MARKET_SOURCE = os.environ.get("MARKET_SOURCE", "simulated").lower()  # or "http"
MARKET_API_URL = os.environ.get("MARKET_API_URL", "http://localhost:8000")
HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "10.0"))  # httpx timeout in seconds
TRACKED_SYMBOLS = [
    s.strip().upper()
    for s in os.environ.get("TRACKED_SYMBOLS", "BTC,ETH,SOL").split(",")
    if s.strip()
]
SIMULATION_SEED = (
    int(os.environ["SIMULATION_SEED"]) if os.environ.get("SIMULATION_SEED") else None
)

# ---------------------------------------------------------------------------
# Loop intervals (seconds)
# ---------------------------------------------------------------------------
SIGNAL_INTERVAL = float(os.environ.get("SIGNAL_INTERVAL", "60"))     # 1 minute
MONITOR_INTERVAL = float(os.environ.get("MONITOR_INTERVAL", "30"))   # 30 seconds

# ---------------------------------------------------------------------------
# Portfolio / risk limits (fractions: 0.02 = 2%)
# ---------------------------------------------------------------------------
PORTFOLIO_VALUE = float(os.environ.get("PORTFOLIO_VALUE", "10000"))
MIN_SIGNAL_CONFIDENCE = float(os.environ.get("MIN_SIGNAL_CONFIDENCE", "0.7"))
RISK_MAX_POSITION_SIZE = float(os.environ.get("RISK_MAX_POSITION_SIZE", "0.1"))
RISK_MAX_DRAWDOWN = float(os.environ.get("RISK_MAX_DRAWDOWN", "0.2"))
RISK_STOP_LOSS_PCT = float(os.environ.get("RISK_STOP_LOSS_PCT", "0.02"))
RISK_TAKE_PROFIT_RATIO = float(os.environ.get("RISK_TAKE_PROFIT_RATIO", "2.0"))  # reward:risk

# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------
HEALTH_CHECK_PORT = int(os.environ.get("HEALTH_CHECK_PORT", "8080"))
RECENT_EVENTS_LIMIT = int(os.environ.get("RECENT_EVENTS_LIMIT", "50"))
ORDER_LOG_LIMIT = int(os.environ.get("ORDER_LOG_LIMIT", "1000"))   # paper fills kept in memory

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


def setup_logging() -> None:
    """Configure structured JSON logging."""
    handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(LOG_LEVEL)

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
