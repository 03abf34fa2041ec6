"""Event channel: the engine's only push interface to the outside world.

Consumers (UI, logging, downstream automation) subscribe per event kind and
receive immutable payloads in emission order. Handlers run synchronously on
the publishing side, so they should hand heavy work off to their own queue.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable, Iterable
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from autotrader.models import (
    CloseReason,
    MarketObservation,
    Position,
    Prediction,
    TradeSignal,
    utcnow,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event models
# ---------------------------------------------------------------------------


class EventKind(str, Enum):
    """Fixed event taxonomy."""

    SIGNAL_REJECTED = "signal_rejected"
    POSITION_OPENED = "position_opened"
    POSITION_UPDATED = "position_updated"
    POSITION_CLOSED = "position_closed"
    TRADE_ERROR = "trade_error"
    TRADING_STARTED = "trading_started"
    TRADING_STOPPED = "trading_stopped"
    MARKET_UPDATE = "market_update"
    PREDICTION_RECEIVED = "prediction_received"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: EventKind
    emitted_at: datetime = Field(default_factory=utcnow)


class SignalRejected(_Event):
    kind: EventKind = EventKind.SIGNAL_REJECTED
    signal: TradeSignal
    reason: str


class PositionOpened(_Event):
    kind: EventKind = EventKind.POSITION_OPENED
    position: Position


class PositionUpdated(_Event):
    kind: EventKind = EventKind.POSITION_UPDATED
    position: Position


class PositionClosed(_Event):
    kind: EventKind = EventKind.POSITION_CLOSED
    position: Position
    reason: CloseReason


class TradeError(_Event):
    kind: EventKind = EventKind.TRADE_ERROR
    signal: TradeSignal
    error: str


class TradingStarted(_Event):
    kind: EventKind = EventKind.TRADING_STARTED


class TradingStopped(_Event):
    kind: EventKind = EventKind.TRADING_STOPPED


class MarketUpdate(_Event):
    kind: EventKind = EventKind.MARKET_UPDATE
    observation: MarketObservation


class PredictionReceived(_Event):
    kind: EventKind = EventKind.PREDICTION_RECEIVED
    prediction: Prediction


Event = Union[
    SignalRejected,
    PositionOpened,
    PositionUpdated,
    PositionClosed,
    TradeError,
    TradingStarted,
    TradingStopped,
    MarketUpdate,
    PredictionReceived,
]

Handler = Callable[[Event], None]


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------


class Subscription:
    """Cancellation handle returned by :meth:`EventBus.subscribe`."""

    def __init__(self, bus: EventBus, kinds: tuple[EventKind, ...], handler: Handler) -> None:
        self._bus = bus
        self.kinds = kinds
        self.handler = handler
        self.active = True

    def cancel(self) -> None:
        """Stop delivery to this handler. Safe to call more than once."""
        if self.active:
            self._bus.unsubscribe(self)

    def __repr__(self) -> str:
        kinds = ",".join(k.value for k in self.kinds)
        return f"<Subscription kinds={kinds} active={self.active}>"


class EventBus:
    """Typed publish/subscribe channel owned by an engine instance."""

    def __init__(self) -> None:
        self._subscribers: dict[EventKind, list[Subscription]] = {k: [] for k in EventKind}
        self._lock = threading.RLock()

    def subscribe(self, kind: EventKind | str, handler: Handler) -> Subscription:
        """Register ``handler`` for one event kind."""
        return self._add((EventKind(kind),), handler)

    def subscribe_all(self, handler: Handler) -> Subscription:
        """Register ``handler`` for every event kind."""
        return self._add(tuple(EventKind), handler)

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            for kind in subscription.kinds:
                subs = self._subscribers[kind]
                if subscription in subs:
                    subs.remove(subscription)
            subscription.active = False

    def publish(self, event: Event) -> None:
        """Deliver ``event`` to its subscribers in registration order.

        A failing handler is logged and skipped; remaining handlers still
        receive the event.
        """
        with self._lock:
            subs = list(self._subscribers[event.kind])

        for sub in subs:
            if not sub.active:
                continue
            try:
                sub.handler(event)
            except Exception:
                logger.error(
                    "event_handler_failed",
                    extra={"kind": event.kind.value, "subscription": repr(sub)},
                    exc_info=True,
                )

    def subscriber_count(self, kind: Optional[EventKind] = None) -> int:
        with self._lock:
            if kind is not None:
                return len(self._subscribers[EventKind(kind)])
            return len({id(s) for subs in self._subscribers.values() for s in subs})

    def _add(self, kinds: tuple[EventKind, ...], handler: Handler) -> Subscription:
        sub = Subscription(self, kinds, handler)
        with self._lock:
            for kind in kinds:
                self._subscribers[kind].append(sub)
        return sub


class EventRecorder:
    """Handler that keeps the most recent events in memory."""

    def __init__(self, maxlen: Optional[int] = None) -> None:
        self._events: deque[Event] = deque(maxlen=maxlen)

    def __call__(self, event: Event) -> None:
        self._events.append(event)

    @property
    def events(self) -> list[Event]:
        return list(self._events)

    def kinds(self) -> list[EventKind]:
        return [e.kind for e in self._events]

    def of_kind(self, *kinds: EventKind) -> list[Event]:
        wanted = set(kinds)
        return [e for e in self._events if e.kind in wanted]

    def clear(self) -> None:
        self._events.clear()


def log_event(event: Event) -> None:
    """Subscriber that mirrors lifecycle events into the structured log."""
    extra: dict = {"kind": event.kind.value}
    for name in ("signal", "position", "observation", "prediction"):
        payload = getattr(event, name, None)
        if payload is not None:
            extra["symbol"] = payload.symbol
    for name in ("reason", "error"):
        value = getattr(event, name, None)
        if value is not None:
            extra[name] = value.value if isinstance(value, Enum) else value
    level = logging.DEBUG if event.kind in _CHATTY_KINDS else logging.INFO
    logger.log(level, "engine_event", extra=extra)


_CHATTY_KINDS: Iterable[EventKind] = frozenset({
    EventKind.MARKET_UPDATE,
    EventKind.PREDICTION_RECEIVED,
    EventKind.POSITION_UPDATED,
})
