"""
Trade plan generation.

Joins a validated forecast with a market snapshot, runs the configured
strategy and binds each leg to the CLOB token of the outcome it trades.
"""

import logging

from forecastbot.errors import InvalidInput, UncertainForecast
from forecastbot.models import (
    PAPER,
    PLAN_MODES,
    UNCERTAIN,
    Forecast,
    MarketSnapshot,
    PlannedTrade,
    StrategyInput,
    TradePlan,
)
from forecastbot.strategies import DEFAULT_MIN_DELTA_PERCENT, evaluate_trade

# Configure module logger
logger = logging.getLogger(__name__)


def plan_id_for(prediction_id: str) -> str:
    """Deterministic plan identifier for a stored prediction."""
    return f"prediction-{prediction_id}"


def generate_trade_plan(
    forecast: Forecast,
    snapshot: MarketSnapshot,
    prediction_id: str,
    strategy_name: str = "takeProfit",
    min_delta_percent: float = DEFAULT_MIN_DELTA_PERCENT,
    mode: str = PAPER,
) -> TradePlan:
    """
    Generate a two-leg trade plan from a forecast.

    Args:
        forecast: Validated forecast
        snapshot: Market snapshot with prices and token ids
        prediction_id: Identifier of the stored prediction
        strategy_name: Registered strategy to run
        min_delta_percent: Minimum divergence to trade
        mode: "paper" or "live"

    Returns:
        TradePlan with entry and exit legs

    Raises:
        UncertainForecast: If the forecast outcome is UNCERTAIN
        BelowThreshold: If the divergence is too small
        InvalidInput: If the market is closed, the mode is unknown, or token ids are missing
        UnknownStrategy: If the strategy is not registered
    """
    if mode not in PLAN_MODES:
        raise InvalidInput(f"Unknown plan mode {mode!r}, expected one of {', '.join(PLAN_MODES)}")

    if snapshot.closed:
        raise InvalidInput(f"Market {snapshot.market_id} is closed")

    if forecast.outcome == UNCERTAIN:
        logger.info(f"No trade for market {snapshot.market_id}: forecast outcome is UNCERTAIN")
        raise UncertainForecast(
            f"Forecast for market {snapshot.market_id} is UNCERTAIN - no directional trade"
        )

    strategy_input = StrategyInput.from_forecast(forecast, snapshot)
    _, output = evaluate_trade(strategy_input, strategy_name, min_delta_percent)

    trades = tuple(
        PlannedTrade(
            market_token_id=snapshot.token_id_for(leg.outcome),
            outcome=leg.outcome,
            side=leg.side,
            order_type=leg.order_type,
            size=leg.size,
            price=leg.price,
        )
        for leg in output.trades
    )

    plan = TradePlan(
        plan_id=plan_id_for(prediction_id),
        mode=mode,
        trades=trades,
        notes=output.reasoning,
    )

    logger.info(f"Generated trade plan {plan.plan_id} with {len(plan.trades)} trades")
    return plan
