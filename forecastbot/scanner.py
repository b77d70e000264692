"""
Market scanner for fetching markets from Polymarket.

This module handles the retrieval and normalization of market data from the
Polymarket Gamma API. It performs no business logic - only data fetching and
transformation into structured Python objects.
"""

import json
import logging
import re
from typing import Any, Optional
from datetime import datetime
import requests
from requests.exceptions import RequestException, Timeout, ConnectionError

from forecastbot.config import Config
from forecastbot.errors import MarketDataError
from forecastbot.models import Market
from forecastbot.utils import safe_float

# Configure module logger
logger = logging.getLogger(__name__)

_EVENT_URL = re.compile(r"polymarket\.com/event/[^/]+/([^/?#]+)")
_MARKET_URL = re.compile(r"polymarket\.com/market/([^/?#]+)")
_SINGLE_EVENT_URL = re.compile(r"polymarket\.com/event/([^/?#]+)/?(?:[?#].*)?$")


def extract_market_slug(url_or_slug: str) -> str:
    """
    Extract a market slug from a Polymarket URL, or return a slug as-is.

    Handles /event/{event-slug}/{market-slug}, /market/{market-slug} and
    single-market /event/{slug} URLs.

    Args:
        url_or_slug: Polymarket URL or bare slug

    Returns:
        Market slug

    Raises:
        MarketDataError: If nothing usable was given
    """
    value = (url_or_slug or "").strip()
    if not value:
        raise MarketDataError("Either a market URL or a slug must be provided")

    for pattern in (_EVENT_URL, _MARKET_URL, _SINGLE_EVENT_URL):
        match = pattern.search(value)
        if match:
            return match.group(1)

    return value


def _get(path: str, params: Optional[dict] = None) -> Any:
    """
    GET a Gamma API path and decode the JSON body.

    Raises:
        MarketDataError: On transport failure, HTTP error or invalid JSON
    """
    url = f"{Config.GAMMA_API_URL.rstrip('/')}{path}"
    logger.debug(f"Requesting {url} with params: {params}")

    try:
        response = requests.get(
            url,
            params=params,
            timeout=Config.API_TIMEOUT,
            headers={
                "Accept": "application/json",
                "User-Agent": "forecastbot/1.0"
            }
        )

        response.raise_for_status()

        return response.json()

    except Timeout as e:
        logger.error(f"Request to Polymarket API timed out after {Config.API_TIMEOUT}s")
        raise MarketDataError(f"Request to {path} timed out") from e

    except ConnectionError as e:
        logger.error(f"Connection error while fetching {path}: {e}")
        raise MarketDataError(f"Connection error: {e}") from e

    except RequestException as e:
        logger.error(f"API request failed: {e}")
        if e.response is not None:
            logger.error(f"Response status: {e.response.status_code}")
            logger.debug(f"Response body: {e.response.text[:500]}")
        raise MarketDataError(f"Failed to fetch {path}: {e}") from e

    except ValueError as e:
        logger.error(f"Failed to parse JSON response: {e}")
        raise MarketDataError(f"Invalid JSON from {path}") from e


def fetch_market_by_slug(slug: str) -> Market:
    """
    Fetch a single market by slug.

    Args:
        slug: Market slug

    Returns:
        Parsed Market

    Raises:
        MarketDataError: If the request fails or no market has the slug
    """
    logger.info(f"Fetching market from Polymarket: {slug}")

    data = _get("/markets", params={"slug": slug})
    market_data = data[0] if isinstance(data, list) and data else data

    if not market_data or not isinstance(market_data, dict):
        raise MarketDataError(f"Market with slug {slug} not found")

    return parse_market(market_data)


def fetch_market_by_id(market_id: str) -> Market:
    """
    Fetch a single market by Gamma id.

    Raises:
        MarketDataError: If the request fails or the market does not exist
    """
    logger.info(f"Fetching market by id: {market_id}")

    data = _get(f"/markets/{market_id}")
    if not data or not isinstance(data, dict):
        raise MarketDataError(f"Market with ID {market_id} not found")

    return parse_market(data)


def fetch_top_markets(limit: int = 10) -> list[Market]:
    """
    Fetch active, open markets.

    Handles API failures gracefully and returns an empty list on error.

    Args:
        limit: Maximum number of markets to fetch

    Returns:
        List of Market objects. Entries that fail to parse are skipped.
    """
    logger.info(f"Fetching up to {limit} active markets from Polymarket")

    try:
        data = _get("/markets", params={"limit": limit, "active": "true", "closed": "false"})
    except MarketDataError as e:
        logger.error(f"Could not fetch top markets: {e}")
        return []

    if not isinstance(data, list):
        logger.warning(f"Expected list of markets, got {type(data).__name__}")
        return []

    markets: list[Market] = []
    for idx, market_data in enumerate(data):
        try:
            markets.append(parse_market(market_data))
        except MarketDataError as e:
            logger.warning(f"Failed to parse market at index {idx}: {e}")
            continue

    logger.info(f"Successfully normalized {len(markets)} markets")
    return markets


# Trending selection defaults
TRENDING_LIMIT = 100
TRENDING_MAX_SPREAD_PERCENT = 25.0
TRENDING_EXCLUDE_TAGS = ("Crypto", "Hide From New", "Weekly", "Recurring")


def _tag_labels(event: dict) -> set[str]:
    """Lower-cased tag labels of a Gamma event."""
    labels = set()
    for tag in event.get("tags") or []:
        if isinstance(tag, dict) and tag.get("label"):
            labels.add(str(tag["label"]).strip().lower())
        elif isinstance(tag, str):
            labels.add(tag.strip().lower())
    return labels


def _market_spread(data: dict) -> Optional[float]:
    """Bid/ask spread as a 0-1 fraction; None when the market does not report one."""
    if data.get("spread") is not None:
        spread = safe_float(data.get("spread"), default=-1.0)
        return spread if spread >= 0 else None

    if data.get("bestBid") is None or data.get("bestAsk") is None:
        return None
    return safe_float(data.get("bestAsk")) - safe_float(data.get("bestBid"))


def fetch_trending_markets(
    limit: int = TRENDING_LIMIT,
    max_spread_percent: float = TRENDING_MAX_SPREAD_PERCENT,
    exclude_tags: tuple[str, ...] = TRENDING_EXCLUDE_TAGS,
) -> list[Market]:
    """
    Fetch open markets from the events with the highest 24h volume.

    Events carrying any excluded tag are skipped (tags compare
    case-insensitively). Within the remaining events, closed markets and
    markets whose spread is unknown or wider than max_spread_percent are
    dropped. Markets keep event order, highest 24h volume first within an
    event.

    Args:
        limit: Number of events to request
        max_spread_percent: Widest acceptable bid/ask spread, in percentage points
        exclude_tags: Event tag labels to skip

    Returns:
        Tradable trending markets, most active first

    Raises:
        MarketDataError: If the request fails or the response is not a list
    """
    logger.info(
        f"Fetching trending markets: limit={limit}, max spread={max_spread_percent}%, "
        f"excluding {', '.join(exclude_tags) or 'nothing'}"
    )

    data = _get(
        "/events",
        params={
            "limit": limit,
            "active": "true",
            "closed": "false",
            "order": "volume24hr",
            "ascending": "false",
        },
    )
    if not isinstance(data, list):
        raise MarketDataError(f"Expected list of events, got {type(data).__name__}")

    excluded = {tag.strip().lower() for tag in exclude_tags}
    max_spread = max_spread_percent / 100.0

    markets: list[Market] = []
    for event in data:
        if not isinstance(event, dict):
            continue

        if _tag_labels(event) & excluded:
            logger.debug(f"Skipping event {event.get('slug')}: excluded tag")
            continue

        event_markets = [m for m in event.get("markets") or [] if isinstance(m, dict)]
        event_markets.sort(key=lambda m: safe_float(m.get("volume24hr")), reverse=True)

        for market_data in event_markets:
            if market_data.get("closed") or market_data.get("active") is False:
                continue

            spread = _market_spread(market_data)
            if spread is None or spread > max_spread:
                logger.debug(f"Skipping market {market_data.get('id')}: spread {spread}")
                continue

            try:
                markets.append(parse_market({
                    **market_data,
                    "events": [{"title": event.get("title"), "slug": event.get("slug")}],
                }))
            except MarketDataError as e:
                logger.warning(f"Failed to parse trending market: {e}")

    logger.info(f"Found {len(markets)} trending markets across {len(data)} events")
    return markets


def select_trending_market() -> Market:
    """
    Pick the most active trending market.

    Raises:
        MarketDataError: If the request fails or no market passes the filters
    """
    markets = fetch_trending_markets()
    if not markets:
        raise MarketDataError("No trending markets passed the filters")
    return markets[0]


def parse_market(data: dict) -> Market:
    """
    Parse a Gamma market dictionary into a Market object.

    Price and token arrays are kept as the raw strings the API returns.

    Args:
        data: Dictionary containing market data from API.

    Returns:
        Market object

    Raises:
        MarketDataError: If the id or question is missing
    """
    if not isinstance(data, dict):
        raise MarketDataError(f"Expected market object, got {type(data).__name__}")

    market_id = data.get("id")
    if not market_id:
        raise MarketDataError("Market missing 'id' field")

    question = data.get("question") or data.get("title")
    if not question:
        raise MarketDataError(f"Market {market_id} missing 'question' field")

    events = data.get("events") or []
    event = events[0] if isinstance(events, list) and events and isinstance(events[0], dict) else {}

    return Market(
        id=str(market_id),
        question=question,
        description=data.get("description") or "",
        slug=data.get("slug") or "",
        condition_id=data.get("conditionId") or "",
        active=bool(data.get("active", True)),
        closed=bool(data.get("closed", False)),
        volume=safe_float(data.get("volume"), 0.0),
        liquidity=safe_float(data.get("liquidity"), 0.0),
        end_date=_parse_end_date(data.get("endDate")),
        outcome_prices=_raw_array(data.get("outcomePrices")),
        clob_token_ids=_raw_array(data.get("clobTokenIds")),
        event_title=event.get("title") or data.get("groupItemTitle") or "",
        event_slug=data.get("eventSlug") or event.get("slug") or "",
    )


def _raw_array(value: Any) -> Optional[str]:
    """Keep stringified arrays as-is; re-serialise arrays that arrive decoded."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, list):
        return json.dumps([str(item) for item in value])
    return str(value)


def _parse_end_date(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parse end date string into datetime object.

    Args:
        date_str: Date string from API (ISO 8601 format expected).

    Returns:
        Datetime object if parsing succeeds, None otherwise.
    """
    if not date_str:
        return None

    try:
        return datetime.fromisoformat(date_str.replace('Z', '+00:00'))
    except (ValueError, AttributeError):
        logger.debug(f"Could not parse end_date: {date_str}")
        return None
