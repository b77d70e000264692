"""
Utility functions for the forecast pipeline.

This module provides shared helper utilities used across the codebase.
All functions are pure helpers with no domain logic.
"""

import json
import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from forecastbot.errors import InvalidInput

# Configure module logger
logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def current_utc_timestamp() -> str:
    """
    Get current UTC timestamp as ISO 8601 string.

    Returns:
        ISO 8601 formatted timestamp string (e.g., "2024-01-15T10:30:45.123456+00:00")
    """
    return utc_now().isoformat()


# Date, time (minutes required), optional seconds and fraction, optional offset
ISO_TIMESTAMP_PATTERN = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2})"
    r"(?::(\d{2})(?:[.,](\d{1,9}))?)?"
    r"(?:([Zz])|([+-])(\d{2}):?(\d{2}))?$"
)


def parse_iso_timestamp(value: str) -> datetime:
    """
    Parse an ISO 8601 date-time, accepting a trailing "Z".

    A time component is required; date-only strings are rejected. Fractions
    beyond microseconds are truncated. Naive timestamps are interpreted as UTC.

    Args:
        value: Timestamp string

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If the string is not a valid ISO 8601 date-time
    """
    match = ISO_TIMESTAMP_PATTERN.match(value.strip())
    if match is None:
        raise ValueError(f"Not an ISO 8601 date-time: {value!r}")

    year, month, day, hour, minute, second, fraction, _, sign, off_h, off_m = match.groups()

    if sign:
        if int(off_m) > 59:
            raise ValueError(f"Invalid UTC offset in {value!r}")
        offset = timedelta(hours=int(off_h), minutes=int(off_m))
        tz = timezone(-offset if sign == "-" else offset)
    else:
        tz = timezone.utc

    return datetime(
        int(year),
        int(month),
        int(day),
        int(hour),
        int(minute),
        int(second or 0),
        int((fraction or "0").ljust(6, "0")[:6]),
        tzinfo=tz,
    )


def is_finite_number(value: Any) -> bool:
    """True for int/float values that are not bool, NaN or infinite."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def safe_float(value: Any, default: float = 0.0) -> float:
    """
    Safely convert a value to float with a default fallback.

    Handles None, strings, integers, and floats. Returns default on failure.

    Args:
        value: Value to convert (string, int, float, or None)
        default: Default value if conversion fails (default: 0.0)

    Returns:
        Float value or default if conversion fails
    """
    if value is None:
        return default

    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default

    return default


def parse_json_string_array(raw: Any) -> list[str]:
    """
    Parse a Gamma API stringified JSON array such as '["a", "b"]'.

    Already-decoded lists are accepted as-is.

    Args:
        raw: Stringified JSON array or list

    Returns:
        List of string elements

    Raises:
        InvalidInput: If the value is not a JSON array
    """
    if isinstance(raw, list):
        items = raw
    else:
        if not raw or not isinstance(raw, str):
            raise InvalidInput("Expected a stringified JSON array, got nothing")
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidInput(f"Invalid JSON array: {e}") from e

    if not isinstance(items, list):
        raise InvalidInput(f"Expected a JSON array, got {type(items).__name__}")

    return [str(item) for item in items]


def parse_outcome_prices(outcome_prices: Any) -> list[float]:
    """
    Parse Polymarket outcomePrices into floats.

    Expected format: '["0.45", "0.55"]' or "[0.45, 0.55]". Index 0 is YES.

    Args:
        outcome_prices: Raw outcomePrices value from the API

    Returns:
        List of prices

    Raises:
        InvalidInput: If the feed is missing, malformed or contains a non-number
    """
    if not outcome_prices:
        raise InvalidInput("outcomePrices is undefined or empty")

    if isinstance(outcome_prices, list):
        items = outcome_prices
    else:
        try:
            items = json.loads(outcome_prices)
        except (json.JSONDecodeError, TypeError) as e:
            raise InvalidInput(f"Failed to parse outcomePrices: {e}") from e

    if not isinstance(items, list):
        raise InvalidInput("outcomePrices is not an array")

    prices: list[float] = []
    for index, item in enumerate(items):
        try:
            price = float(item)
        except (TypeError, ValueError):
            raise InvalidInput(f"Invalid price at index {index}: {item!r}")
        if not math.isfinite(price):
            raise InvalidInput(f"Invalid price at index {index}: {item!r}")
        prices.append(price)

    return prices


def yes_price_from_outcome_prices(outcome_prices: Any) -> float:
    """
    Extract the YES price (first element) from a raw outcomePrices value.

    Raises:
        InvalidInput: If the feed is missing, malformed or empty
    """
    prices = parse_outcome_prices(outcome_prices)
    if not prices:
        raise InvalidInput("outcomePrices array is empty")
    return prices[0]


def format_percentage(value: float, decimals: int = 1) -> str:
    """
    Format a 0.0-1.0 fraction as a percentage string.

    Args:
        value: Fraction to format
        decimals: Number of decimal places (default: 1)

    Returns:
        Formatted percentage string (e.g., "65.5%")
    """
    return f"{value * 100.0:.{decimals}f}%"


def truncate(text: Optional[str], limit: int) -> str:
    """Shorten text to at most ``limit`` characters, marking the cut with '...'."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)] + "..."
