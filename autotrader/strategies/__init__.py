"""Strategy set for the trading engine.

Modules:
    registry -- Immutable strategy configurations and registry builders
    rules    -- Per-strategy signal rules and confidence-scaled sizing
"""

from autotrader.strategies.registry import (
    DEFAULT_STRATEGIES,
    RiskTier,
    StrategyConfig,
    Timeframe,
    build_registry,
)
from autotrader.strategies.rules import (
    DEFAULT_RULES,
    Rule,
    directional_signal,
    evaluate,
    position_size,
)

__all__ = [
    "DEFAULT_RULES",
    "DEFAULT_STRATEGIES",
    "RiskTier",
    "Rule",
    "StrategyConfig",
    "Timeframe",
    "build_registry",
    "directional_signal",
    "evaluate",
    "position_size",
]
