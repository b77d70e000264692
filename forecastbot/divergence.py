"""
Divergence between market-implied and forecast probabilities.

The delta is measured on the axis of the forecast's predicted outcome: a NO
forecast is compared against the NO price (1 - YES price), not the YES
price. The result is always the absolute distance on a 0-1 scale; the
direction of the mispricing is recovered separately by the strategy engine.
"""

import logging
import math
from typing import Optional

from forecastbot.errors import InvalidInput
from forecastbot.models import NO, Forecast, MarketSnapshot
from forecastbot.utils import parse_outcome_prices

# Configure module logger
logger = logging.getLogger(__name__)


def divergence_between(market_price: float, probability: float) -> float:
    """
    Absolute distance between a market price and a forecast probability.

    Args:
        market_price: Market-implied probability of an outcome (0.0 to 1.0)
        probability: Forecast probability of the same outcome (0 to 100)

    Returns:
        Delta on a 0.0-1.0 scale

    Raises:
        InvalidInput: If either input is out of range or not finite
    """
    if probability is None or not math.isfinite(probability):
        raise InvalidInput(f"predictedProbability is not a number: {probability!r}")
    if not (0 <= probability <= 100):
        raise InvalidInput(f"predictedProbability out of range (0-100): {probability}")

    if market_price is None or not math.isfinite(market_price):
        raise InvalidInput(f"market price is not a number: {market_price!r}")
    if not (0.0 <= market_price <= 1.0):
        raise InvalidInput(f"market price out of range (0-1): {market_price}")

    return abs(market_price - probability / 100.0)


def outcome_price(snapshot: MarketSnapshot, outcome: str) -> float:
    """
    Market price on the predicted outcome's axis.

    NO forecasts read 1 - YES price; YES and UNCERTAIN forecasts read the
    YES price.
    """
    if outcome == NO:
        return snapshot.no_price
    return snapshot.yes_price


def calculate_divergence(snapshot: MarketSnapshot, forecast: Forecast) -> float:
    """
    Compute the divergence between a market snapshot and a forecast.

    Selects the market price of the forecast's predicted outcome (YES price
    for YES, 1 - YES price for NO) and compares it with probability / 100,
    taking the absolute value. This is the same comparison the take-profit
    strategy gates on.

    Args:
        snapshot: Market price snapshot
        forecast: Validated forecast

    Returns:
        Non-negative delta in [0, 1]

    Raises:
        InvalidInput: If the forecast probability is out of range or the market has no usable price
    """
    price = outcome_price(snapshot, forecast.outcome)
    delta = divergence_between(price, forecast.probability)

    logger.debug(
        f"Divergence for market {snapshot.market_id}: outcome={forecast.outcome}, "
        f"market={price:.4f}, forecast={forecast.probability / 100.0:.4f}, delta={delta:.4f}"
    )
    return delta


def format_outcome_prices(outcome_prices: Optional[str]) -> str:
    """
    Format outcome prices for display in prompts.

    Args:
        outcome_prices: Raw outcomePrices string from the Gamma API

    Returns:
        String like "YES: 62.3%, NO: 37.7%", or "N/A" if unusable
    """
    try:
        prices = parse_outcome_prices(outcome_prices)
    except InvalidInput:
        return "N/A"

    if len(prices) < 2:
        return "N/A"

    return f"YES: {prices[0] * 100:.1f}%, NO: {prices[1] * 100:.1f}%"
