"""Signal rules: ``(observation, prediction, config) -> TradeSignal | None``.

Every default rule is a confidence-gated directional signal scaled by
size. Returning ``None`` is the normal outcome for most evaluations.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Optional

from autotrader.models import Direction, MarketObservation, Prediction, SignalAction, TradeSignal
from autotrader.strategies.registry import StrategyConfig

logger = logging.getLogger(__name__)

Rule = Callable[[MarketObservation, Prediction, StrategyConfig], Optional[TradeSignal]]


def position_size(confidence: float, config: StrategyConfig) -> float:
    """Scale size by how far confidence clears the strategy's threshold.

    ``min(max_size, max_size * confidence / min_confidence)``: at or above the
    threshold this is always ``max_size``.
    """
    base = config.max_position_size
    return min(base, base * confidence / config.min_confidence)


def directional_signal(
    observation: MarketObservation,
    prediction: Prediction,
    config: StrategyConfig,
) -> Optional[TradeSignal]:
    """Buy on an ``up`` prediction, sell on ``down``, at the observed price."""
    if prediction.confidence < config.min_confidence:
        return None

    price = observation.reference_price
    if price <= 0:
        return None

    size = position_size(prediction.confidence, config)
    if size <= 0:
        return None

    action = SignalAction.BUY if prediction.direction == Direction.UP else SignalAction.SELL
    return TradeSignal(
        action=action,
        symbol=observation.symbol,
        price=price,
        confidence=prediction.confidence,
        timestamp=prediction.timestamp,
        strategy=config.key,
        size=size,
    )


# Rule per default strategy key; engines take a copy and may extend it
DEFAULT_RULES: Mapping[str, Rule] = MappingProxyType({
    key: directional_signal
    for key in ("trend_following", "mean_reversion", "breakout", "pattern")
})


def evaluate(
    observation: MarketObservation,
    prediction: Prediction,
    config: StrategyConfig,
    rules: Optional[Mapping[str, Rule]] = None,
) -> Optional[TradeSignal]:
    """Run the strategy's rule for one observation/prediction pair.

    ``rules`` maps strategy keys to rules; keys without an entry use
    ``directional_signal``.
    """
    if prediction.symbol != observation.symbol:
        logger.debug(
            "prediction_symbol_mismatch",
            extra={
                "strategy": config.key,
                "observation": observation.symbol,
                "prediction": prediction.symbol,
            },
        )
        return None
    if prediction.confidence < config.min_confidence:
        return None
    rule = (DEFAULT_RULES if rules is None else rules).get(config.key, directional_signal)
    return rule(observation, prediction, config)
