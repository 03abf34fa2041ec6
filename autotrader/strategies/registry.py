"""Strategy registry: fixed set of named strategy configurations.

Configurations are built once when the engine starts and never change
afterwards. Overrides are applied by building a fresh registry, not by
mutating an existing one.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Timeframe(str, Enum):
    """Observation-sampling cadence a strategy evaluates on."""

    H1 = "1h"
    H4 = "4h"
    D1 = "1d"


@dataclass(frozen=True)
class StrategyConfig:
    """Immutable parameters for one strategy (all fractions are decimals)."""

    key: str
    name: str
    risk_tier: RiskTier
    timeframe: Timeframe
    min_confidence: float
    max_position_size: float    # fraction of portfolio
    stop_loss: float            # 0.05 = exit 5% against entry
    take_profit: float          # 0.15 = exit 15% in favour of entry

    def __post_init__(self) -> None:
        # Overrides may arrive as plain strings from env or JSON
        object.__setattr__(self, "risk_tier", RiskTier(self.risk_tier))
        object.__setattr__(self, "timeframe", Timeframe(self.timeframe))
        if not 0.0 < self.min_confidence <= 1.0:
            raise ValueError(f"{self.key}: min_confidence must be in (0, 1]")
        for name in ("max_position_size", "stop_loss", "take_profit"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{self.key}: {name} must be positive")


TREND_FOLLOWING = StrategyConfig(
    key="trend_following",
    name="Trend Following",
    risk_tier=RiskTier.MEDIUM,
    timeframe=Timeframe.H4,
    min_confidence=0.7,
    max_position_size=0.1,
    stop_loss=0.05,
    take_profit=0.15,
)

MEAN_REVERSION = StrategyConfig(
    key="mean_reversion",
    name="Mean Reversion",
    risk_tier=RiskTier.MEDIUM,
    timeframe=Timeframe.H1,
    min_confidence=0.75,
    max_position_size=0.08,
    stop_loss=0.03,
    take_profit=0.09,
)

BREAKOUT = StrategyConfig(
    key="breakout",
    name="Breakout Trading",
    risk_tier=RiskTier.HIGH,
    timeframe=Timeframe.D1,
    min_confidence=0.8,
    max_position_size=0.15,
    stop_loss=0.07,
    take_profit=0.21,
)

PATTERN = StrategyConfig(
    key="pattern",
    name="Confidence-Weighted Pattern",
    risk_tier=RiskTier.HIGH,
    timeframe=Timeframe.H1,
    min_confidence=0.85,
    max_position_size=0.12,
    stop_loss=0.06,
    take_profit=0.18,
)

DEFAULT_STRATEGIES: Mapping[str, StrategyConfig] = MappingProxyType({
    cfg.key: cfg for cfg in (TREND_FOLLOWING, MEAN_REVERSION, BREAKOUT, PATTERN)
})


def build_registry(
    overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
    include: Optional[list[str]] = None,
) -> Mapping[str, StrategyConfig]:
    """Build an immutable registry from the defaults.

    Args:
        overrides: Per-strategy field overrides, e.g.
            ``{"breakout": {"min_confidence": 0.9}}``.
        include: Restrict the registry to these keys (defaults to all).

    Raises:
        ValueError: On unknown strategy keys or fields.
    """
    overrides = overrides or {}
    keys = list(include) if include is not None else list(DEFAULT_STRATEGIES)

    for key in [*keys, *overrides]:
        if key not in DEFAULT_STRATEGIES:
            raise ValueError(f"Unknown strategy: {key}")

    registry: dict[str, StrategyConfig] = {}
    for key in keys:
        cfg = DEFAULT_STRATEGIES[key]
        fields = dict(overrides.get(key, {}))
        if "key" in fields:
            raise ValueError("Strategy key cannot be overridden")
        try:
            registry[key] = replace(cfg, **fields) if fields else cfg
        except TypeError as e:
            raise ValueError(f"Invalid override for {key}: {e}") from e
    return MappingProxyType(registry)
