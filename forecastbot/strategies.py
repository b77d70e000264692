"""
Trade strategies for turning a forecast/market divergence into orders.

The take-profit strategy handles both directions of mispricing:

UNDERPRICED (market < forecast):
- Buy the predicted outcome at market
- Sell at a profit target part of the way toward the forecast price

OVERPRICED (market > forecast):
- Buy the OPPOSITE outcome at market
- Sell at a profit target part of the way toward the inverse forecast price

The share of the edge targeted is confidence / 200: a 100-confidence
forecast aims for half the predicted edge, a 50-confidence forecast for a
quarter.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from forecastbot.errors import BelowThreshold, StrategyInvariantError, UnknownStrategy
from forecastbot.models import (
    BUY,
    LIMIT,
    MARKET,
    SELL,
    StrategyInput,
    StrategyOutput,
    TradeLeg,
    opposite,
)

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_MIN_DELTA_PERCENT = 2.5

# Decimal places kept when comparing a divergence against the threshold
DELTA_PRECISION = 9

# Normalized trading size; position sizing is not modelled
DEFAULT_TRADE_SIZE = 1.0

UNDERPRICED = "underpriced"
OVERPRICED = "overpriced"


@dataclass(frozen=True)
class TradeOpportunity:
    """A divergence that cleared the threshold gate."""
    delta_percent: float
    min_delta_percent: float


def profit_fraction(confidence: float) -> float:
    """Share of the predicted edge the exit order targets."""
    return confidence / 200.0


def profit_target(entry_price: float, target_price: float, confidence: float) -> float:
    """
    Exit price between the entry and the forecast target, scaled by confidence.

    Args:
        entry_price: Price paid on entry
        target_price: Price the forecast implies for the bought outcome
        confidence: Forecast confidence (0 to 100)

    Returns:
        entry + (target - entry) * confidence / 200
    """
    return entry_price + (target_price - entry_price) * profit_fraction(confidence)


def validate_trade_opportunity(
    strategy_input: StrategyInput,
    min_delta_percent: float = DEFAULT_MIN_DELTA_PERCENT,
) -> TradeOpportunity:
    """
    Gate a strategy input on the minimum divergence.

    Both underpriced and overpriced markets are valid opportunities; only the
    size of the divergence matters here.

    Args:
        strategy_input: Forecast and market price
        min_delta_percent: Minimum divergence in percentage points

    Returns:
        TradeOpportunity with the observed delta

    Raises:
        BelowThreshold: If the divergence is smaller than min_delta_percent
    """
    # A divergence exactly at the threshold passes
    delta_percent = round(
        abs(strategy_input.prediction_price - strategy_input.outcome_market_price) * 100.0,
        DELTA_PRECISION,
    )

    if delta_percent < min_delta_percent:
        logger.info(
            f"No trade: delta {delta_percent:.2f}% below threshold {min_delta_percent}%"
        )
        raise BelowThreshold(delta_percent, min_delta_percent)

    return TradeOpportunity(delta_percent=delta_percent, min_delta_percent=min_delta_percent)


def take_profit_strategy(
    strategy_input: StrategyInput,
    trade_size: float = DEFAULT_TRADE_SIZE,
) -> StrategyOutput:
    """
    Build a market entry plus limit take-profit exit.

    Args:
        strategy_input: Forecast and market price
        trade_size: Size of both legs

    Returns:
        StrategyOutput with the entry leg followed by the exit leg

    Raises:
        StrategyInvariantError: If the market price equals the forecast price
    """
    prediction_price = strategy_input.prediction_price
    outcome_price = strategy_input.outcome_market_price
    confidence = strategy_input.confidence
    outcome = strategy_input.outcome

    logger.info(
        f"Calculating take profit strategy: outcome={outcome}, "
        f"prediction={prediction_price:.3f}, market={outcome_price:.3f}, confidence={confidence}"
    )

    fraction_pct = profit_fraction(confidence) * 100.0

    if outcome_price < prediction_price:
        buy_outcome = outcome
        entry_price = outcome_price
        full_target = prediction_price
        target_price = profit_target(entry_price, full_target, confidence)
        branch = UNDERPRICED

        entry_notes = (
            f"Entry: Buy {buy_outcome} at market {entry_price:.3f} "
            f"(underpriced vs AI prediction {prediction_price:.3f}, confidence: {confidence:g}%)"
        )
        reasoning = (
            f"Take profit (underpriced): Buy {buy_outcome} at market {entry_price:.3f}, "
            f"sell at {target_price:.3f} ({fraction_pct:.0f}% toward AI target {full_target:.3f}). "
            f"Expected edge: {(target_price - entry_price) * 100:.1f}%"
        )

    elif outcome_price > prediction_price:
        buy_outcome = opposite(outcome)
        entry_price = 1.0 - outcome_price
        full_target = 1.0 - prediction_price
        target_price = profit_target(entry_price, full_target, confidence)
        branch = OVERPRICED

        entry_notes = (
            f"Entry: Buy {buy_outcome} at market {entry_price:.3f} "
            f"(AI predicts {outcome} overpriced at {outcome_price:.3f} vs {prediction_price:.3f}, "
            f"confidence: {confidence:g}%)"
        )
        reasoning = (
            f"Take profit (overpriced): AI predicts {outcome} at {prediction_price:.3f} "
            f"but market is {outcome_price:.3f}. Buy opposite outcome {buy_outcome} at "
            f"{entry_price:.3f}, sell at {target_price:.3f} ({fraction_pct:.0f}% toward AI target "
            f"{full_target:.3f}). Expected edge: {(target_price - entry_price) * 100:.1f}%"
        )

    else:
        raise StrategyInvariantError(
            f"Market price {outcome_price:.3f} equals prediction price - no trade opportunity"
        )

    trades = (
        TradeLeg(
            outcome=buy_outcome,
            side=BUY,
            order_type=MARKET,
            size=trade_size,
            notes=entry_notes,
        ),
        TradeLeg(
            outcome=buy_outcome,
            side=SELL,
            order_type=LIMIT,
            size=trade_size,
            price=target_price,
            notes=(
                f"Take profit: Sell {buy_outcome} at {target_price:.3f} "
                f"({fraction_pct:.0f}% toward AI target {full_target:.3f})"
            ),
        ),
    )

    return StrategyOutput(
        strategy_name="takeProfit",
        branch=branch,
        trades=trades,
        reasoning=reasoning,
    )


STRATEGIES: dict[str, Callable[[StrategyInput], StrategyOutput]] = {
    "takeProfit": take_profit_strategy,
}


def calculate_trade_strategy(strategy_name: str, strategy_input: StrategyInput) -> StrategyOutput:
    """
    Run a registered strategy by name.

    Raises:
        UnknownStrategy: If no strategy is registered under the name
    """
    strategy = STRATEGIES.get(strategy_name)
    if strategy is None:
        raise UnknownStrategy(f"Unknown strategy: {strategy_name}")
    return strategy(strategy_input)


def evaluate_trade(
    strategy_input: StrategyInput,
    strategy_name: str = "takeProfit",
    min_delta_percent: float = DEFAULT_MIN_DELTA_PERCENT,
) -> tuple[TradeOpportunity, StrategyOutput]:
    """
    Gate on the minimum divergence, then run the strategy.

    Deterministic: identical inputs always give identical outputs.

    Returns:
        (opportunity, strategy output)

    Raises:
        BelowThreshold: If the divergence is too small to trade
        UnknownStrategy: If the strategy name is not registered
    """
    opportunity = validate_trade_opportunity(strategy_input, min_delta_percent)
    output = calculate_trade_strategy(strategy_name, strategy_input)

    logger.info(
        f"Strategy {output.strategy_name} selected {output.branch} branch "
        f"(delta {opportunity.delta_percent:.2f}%)"
    )
    return opportunity, output
