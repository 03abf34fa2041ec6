"""Tests for the event bus: subscription handles, ordering, isolation."""

from autotrader.events import (
    EventBus,
    EventKind,
    EventRecorder,
    MarketUpdate,
    SignalRejected,
    TradingStarted,
    TradingStopped,
    log_event,
)

from conftest import make_observation, make_signal


def test_subscribe_per_kind():
    bus = EventBus()
    started, stopped = EventRecorder(), EventRecorder()
    bus.subscribe(EventKind.TRADING_STARTED, started)
    bus.subscribe("trading_stopped", stopped)

    bus.publish(TradingStarted())
    bus.publish(TradingStopped())

    assert started.kinds() == [EventKind.TRADING_STARTED]
    assert stopped.kinds() == [EventKind.TRADING_STOPPED]


def test_unsubscribe_does_not_affect_others():
    bus = EventBus()
    a, b = EventRecorder(), EventRecorder()
    sub_a = bus.subscribe(EventKind.TRADING_STARTED, a)
    bus.subscribe(EventKind.TRADING_STARTED, b)

    sub_a.cancel()
    sub_a.cancel()
    bus.publish(TradingStarted())

    assert a.events == []
    assert len(b.events) == 1
    assert not sub_a.active
    assert bus.subscriber_count(EventKind.TRADING_STARTED) == 1


def test_unsubscribe_via_bus():
    bus = EventBus()
    rec = EventRecorder()
    sub = bus.subscribe_all(rec)
    bus.unsubscribe(sub)
    bus.publish(TradingStarted())
    assert rec.events == []
    assert bus.subscriber_count() == 0


def test_delivery_order_matches_emission_order():
    bus = EventBus()
    rec = EventRecorder()
    bus.subscribe_all(rec)

    bus.publish(TradingStarted())
    bus.publish(MarketUpdate(observation=make_observation("ETH")))
    bus.publish(SignalRejected(signal=make_signal(), reason="exposure_limit"))
    bus.publish(TradingStopped())

    assert rec.kinds() == [
        EventKind.TRADING_STARTED,
        EventKind.MARKET_UPDATE,
        EventKind.SIGNAL_REJECTED,
        EventKind.TRADING_STOPPED,
    ]
    assert rec.of_kind(EventKind.SIGNAL_REJECTED)[0].reason == "exposure_limit"


def test_failing_handler_is_isolated():
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("consumer bug")

    bus.subscribe(EventKind.TRADING_STARTED, broken)
    bus.subscribe(EventKind.TRADING_STARTED, seen.append)

    bus.publish(TradingStarted())
    assert len(seen) == 1


def test_handler_may_unsubscribe_itself_during_delivery():
    bus = EventBus()
    calls = []
    holder = {}

    def once(event):
        calls.append(event)
        holder["sub"].cancel()

    holder["sub"] = bus.subscribe(EventKind.TRADING_STARTED, once)
    bus.publish(TradingStarted())
    bus.publish(TradingStarted())
    assert len(calls) == 1


def test_recorder_maxlen():
    rec = EventRecorder(maxlen=2)
    for _ in range(5):
        rec(TradingStarted())
    assert len(rec.events) == 2


def test_log_event_accepts_every_payload_shape():
    log_event(TradingStarted())
    log_event(MarketUpdate(observation=make_observation()))
    log_event(SignalRejected(signal=make_signal(), reason="drawdown_limit"))
