"""Tests for trade plan generation."""

import pytest

from forecastbot.errors import BelowThreshold, InvalidInput, UncertainForecast, UnknownStrategy
from forecastbot.models import MarketSnapshot
from forecastbot.trade_generator import generate_trade_plan

from conftest import NO_TOKEN, YES_TOKEN, make_forecast, make_snapshot


def test_underpriced_plan_trades_yes_token():
    """Test that both legs of an underpriced YES plan use the YES token."""
    plan = generate_trade_plan(
        make_forecast(probability=70, confidence=100), make_snapshot(0.40), "abc"
    )

    assert plan.plan_id == "prediction-abc"
    assert plan.mode == "paper"
    assert [trade.market_token_id for trade in plan.trades] == [YES_TOKEN, YES_TOKEN]
    assert plan.trades[1].price == pytest.approx(0.55)
    assert "underpriced" in plan.notes


def test_overpriced_plan_trades_no_token():
    """Test that an overpriced YES forecast buys the NO token."""
    plan = generate_trade_plan(
        make_forecast(probability=55, confidence=60), make_snapshot(0.80), "abc"
    )

    entry, exit_leg = plan.trades
    assert entry.outcome == "NO"
    assert entry.market_token_id == NO_TOKEN
    assert exit_leg.market_token_id == NO_TOKEN
    assert exit_leg.price == pytest.approx(0.275)


def test_plan_wire_format():
    """Test that the entry leg has no price and the exit leg does."""
    plan = generate_trade_plan(
        make_forecast(probability=70, confidence=100), make_snapshot(0.40), "abc", mode="live"
    )

    data = plan.to_dict()
    assert data["planId"] == "prediction-abc"
    assert data["mode"] == "live"
    assert data["notes"] == plan.notes
    assert data["trades"][0] == {
        "marketTokenId": YES_TOKEN,
        "outcome": "YES",
        "side": "BUY",
        "orderType": "MARKET",
        "size": 1.0,
    }
    assert data["trades"][1]["orderType"] == "LIMIT"
    assert data["trades"][1]["price"] == pytest.approx(0.55)


def test_plan_is_idempotent():
    """Test that the same inputs give the same plan."""
    forecast = make_forecast(probability=30, confidence=80)
    snapshot = make_snapshot(0.65)

    first = generate_trade_plan(forecast, snapshot, "p-1")
    second = generate_trade_plan(forecast, snapshot, "p-1")

    assert first == second
    assert first.to_dict() == second.to_dict()


def test_uncertain_forecast_is_not_traded():
    """Test that UNCERTAIN forecasts never produce a plan."""
    with pytest.raises(UncertainForecast):
        generate_trade_plan(make_forecast(outcome="UNCERTAIN", probability=90), make_snapshot(0.10), "abc")


def test_small_edge_is_not_traded():
    """Test that the minimum delta gate applies."""
    with pytest.raises(BelowThreshold):
        generate_trade_plan(make_forecast(probability=52), make_snapshot(0.51), "abc")


def test_closed_market_rejected():
    """Test that closed markets cannot be traded."""
    with pytest.raises(InvalidInput):
        generate_trade_plan(make_forecast(), make_snapshot(0.40, closed=True), "abc")


def test_missing_token_ids_rejected():
    """Test that a snapshot without token ids cannot be bound to orders."""
    snapshot = MarketSnapshot(market_id="123", yes_price=0.40)

    with pytest.raises(InvalidInput):
        generate_trade_plan(make_forecast(probability=70), snapshot, "abc")


def test_unknown_mode_rejected():
    """Test that only paper and live modes exist."""
    with pytest.raises(InvalidInput):
        generate_trade_plan(make_forecast(), make_snapshot(0.40), "abc", mode="backtest")


def test_unknown_strategy_rejected():
    """Test that the strategy name is resolved."""
    with pytest.raises(UnknownStrategy):
        generate_trade_plan(make_forecast(), make_snapshot(0.40), "abc", strategy_name="scalp")
