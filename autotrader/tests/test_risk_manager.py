"""Tests for the risk manager: sizing, exposure cap, drawdown, exit levels."""

import math

import pytest

from autotrader.execution.risk_manager import RiskManager, RiskViolation
from autotrader.models import Position, PositionSide

from conftest import make_observation, make_signal


def _position(symbol="BTC", size=0.05, pnl_percentage=0.0):
    return Position(
        id=f"{symbol}-1",
        symbol=symbol,
        side=PositionSide.LONG,
        entry_price=100.0,
        size=size,
        pnl_percentage=pnl_percentage,
    )


# ------------------------------------------------------------------
# Sizing
# ------------------------------------------------------------------

def test_position_size_caps_at_portfolio_fraction(risk):
    # Risk budget allows 100 units; 10% of 10k at 100 caps it at 10
    assert risk.position_size(100.0) == pytest.approx(10.0)

    check = risk.check_signal(make_signal(price=100.0), make_observation(price=100.0))
    assert check.approved
    assert check.adjusted_size == pytest.approx(10.0)
    assert check.max_allowed_size == pytest.approx(1_000.0)


def test_validate_signal_with_zero_exposure(risk):
    assert risk.total_exposure == 0.0
    assert risk.validate_signal(make_signal(), make_observation()) is True


def test_sizes_on_close_when_present(risk):
    obs = make_observation(price=200.0).model_copy(update={"close": 50.0})
    check = risk.check_signal(make_signal(), obs)
    assert check.adjusted_size == pytest.approx(1_000.0 / 50.0)


# ------------------------------------------------------------------
# Rejections
# ------------------------------------------------------------------

def test_missing_observation_fails_closed(risk):
    check = risk.check_signal(make_signal(), None)
    assert not check.approved
    assert check.violation == RiskViolation.MISSING_OBSERVATION
    assert risk.validate_signal(make_signal(), None) is False


def test_zero_portfolio_is_rejected_not_nan():
    rm = RiskManager(portfolio_value=0.0)
    check = rm.check_signal(make_signal(), make_observation())
    assert not check.approved
    assert check.violation == RiskViolation.INVALID_PORTFOLIO
    assert rm.current_drawdown == 0.0


def test_non_positive_price_is_rejected(risk):
    check = risk.check_signal(make_signal(), make_observation(price=0.0))
    assert check.violation == RiskViolation.INVALID_PRICE


def test_exposure_limit(risk):
    risk.update_position(_position("ETH", size=0.05))
    assert risk.total_exposure == pytest.approx(500.0)

    check = risk.check_signal(make_signal(), make_observation())
    assert not check.approved
    assert check.violation == RiskViolation.EXPOSURE_LIMIT


def test_never_approves_over_exposure_limit():
    prices = [0.5, 3.0, 17.0, 100.0, 2_500.0, 52_368.91]
    for max_size in (0.05, 0.1, 0.25, 1.0):
        for existing in (0.0, 0.01, 0.05, 0.2):
            rm = RiskManager(max_position_size=max_size, portfolio_value=10_000.0)
            if existing:
                rm.update_position(_position("ETH", size=existing))
            for price in prices:
                check = rm.check_signal(make_signal(price=price), make_observation(price=price))
                candidate = check.adjusted_size * price if check.approved else 0.0
                limit = 10_000.0 * max_size
                if check.approved:
                    assert rm.total_exposure + candidate <= limit + 1e-9


def test_drawdown_limit(risk):
    risk.set_portfolio_value(10_000.0)
    risk.update_position(_position("ETH", size=1.0, pnl_percentage=-25.0))
    risk.max_position_size = 10.0   # keep the exposure check out of the way
    assert risk.current_drawdown == pytest.approx(0.25)

    check = risk.check_signal(make_signal(), make_observation())
    assert not check.approved
    assert check.violation == RiskViolation.DRAWDOWN_LIMIT


def test_check_has_no_side_effects(risk):
    for _ in range(3):
        assert risk.validate_signal(make_signal(), make_observation())
    assert risk.total_exposure == 0.0


# ------------------------------------------------------------------
# Exit levels
# ------------------------------------------------------------------

def test_long_exit_levels(risk):
    sl = risk.calculate_stop_loss(100.0, "long")
    tp = risk.calculate_take_profit(100.0, PositionSide.LONG)
    assert sl == pytest.approx(98.0)
    assert tp == pytest.approx(104.0)
    assert sl < 100.0 < tp


def test_short_exit_levels(risk):
    sl = risk.calculate_stop_loss(100.0, "short")
    tp = risk.calculate_take_profit(100.0, "short")
    assert sl == pytest.approx(102.0)
    assert tp == pytest.approx(96.0)
    assert tp < 100.0 < sl


def test_take_profit_distance_scales_with_ratio():
    rm = RiskManager(stop_loss_percent=0.05, take_profit_ratio=3.0)
    assert rm.calculate_take_profit(200.0, "long") - 200.0 == pytest.approx(30.0)


# ------------------------------------------------------------------
# Bookkeeping
# ------------------------------------------------------------------

def test_update_and_remove_position(risk):
    risk.update_position(_position("BTC", size=0.02, pnl_percentage=10.0))
    risk.update_position(_position("ETH", size=0.03, pnl_percentage=-10.0))
    assert risk.total_exposure == pytest.approx(500.0)
    assert risk.unrealized_pnl == pytest.approx(20.0 - 30.0)

    risk.remove_position("BTC")
    risk.remove_position("BTC")
    assert risk.total_exposure == pytest.approx(300.0)

    risk.reset()
    assert risk.total_exposure == 0.0
    assert risk.status()["tracked_symbols"] == []


def test_status_reports_limits(risk):
    status = risk.status()
    assert status["max_exposure"] == pytest.approx(1_000.0)
    assert status["drawdown_limit"] == 0.2
    assert not math.isnan(status["drawdown"])
