"""Tests for the Polymarket market scanner."""

import pytest
import responses

from forecastbot.config import Config
from forecastbot.errors import MarketDataError
from forecastbot.scanner import (
    extract_market_slug,
    fetch_market_by_id,
    fetch_market_by_slug,
    fetch_top_markets,
    fetch_trending_markets,
    parse_market,
    select_trending_market,
)

from conftest import NO_TOKEN, YES_TOKEN

MARKETS_URL = f"{Config.GAMMA_API_URL.rstrip('/')}/markets"
EVENTS_URL = f"{Config.GAMMA_API_URL.rstrip('/')}/events"


@pytest.mark.parametrize("value, slug", [
    ("https://polymarket.com/event/us-election/will-x-win?tid=1", "will-x-win"),
    ("https://polymarket.com/market/some-market", "some-market"),
    ("https://polymarket.com/event/single-market", "single-market"),
    ("  bare-slug  ", "bare-slug"),
])
def test_extract_market_slug(value, slug):
    """Test slug extraction from the supported URL shapes."""
    assert extract_market_slug(value) == slug


@pytest.mark.parametrize("value", ["", "   ", None])
def test_extract_market_slug_empty(value):
    """Test that nothing to look up is an error."""
    with pytest.raises(MarketDataError):
        extract_market_slug(value)


def test_parse_market(sample_market_data):
    """Test parsing a Gamma market into a Market."""
    market = parse_market(sample_market_data)

    assert market.id == "123"
    assert market.question == "Will it rain tomorrow?"
    assert market.volume == 10000.0
    assert market.end_date.year == 2025
    assert market.event_slug == "weather"
    assert market.url == "https://polymarket.com/event/weather/rain-tomorrow"


def test_parse_market_snapshot(sample_market_data):
    """Test that the raw price and token arrays become a typed snapshot."""
    snapshot = parse_market(sample_market_data).snapshot()

    assert snapshot.yes_price == pytest.approx(0.40)
    assert snapshot.no_price == pytest.approx(0.60)
    assert snapshot.token_id_for("YES") == YES_TOKEN
    assert snapshot.token_id_for("NO") == NO_TOKEN


def test_parse_market_with_decoded_arrays(sample_market_data):
    """Test that arrays the API sends already decoded are accepted."""
    sample_market_data["outcomePrices"] = [0.25, 0.75]
    sample_market_data["clobTokenIds"] = [YES_TOKEN, NO_TOKEN]

    snapshot = parse_market(sample_market_data).snapshot()

    assert snapshot.yes_price == pytest.approx(0.25)
    assert snapshot.yes_token_id == YES_TOKEN


@pytest.mark.parametrize("field", ["id", "question"])
def test_parse_market_missing_required(sample_market_data, field):
    """Test that markets without an id or question are rejected."""
    del sample_market_data[field]

    with pytest.raises(MarketDataError):
        parse_market(sample_market_data)


@responses.activate
def test_fetch_market_by_slug(sample_market_data):
    """Test fetching a market by slug."""
    responses.add(responses.GET, MARKETS_URL, json=[sample_market_data], status=200)

    market = fetch_market_by_slug("rain-tomorrow")

    assert market.id == "123"
    assert "slug=rain-tomorrow" in responses.calls[0].request.url


@responses.activate
def test_fetch_market_by_slug_not_found():
    """Test that an empty result is an error."""
    responses.add(responses.GET, MARKETS_URL, json=[], status=200)

    with pytest.raises(MarketDataError):
        fetch_market_by_slug("missing")


@responses.activate
def test_fetch_market_by_slug_http_error():
    """Test that HTTP errors surface as MarketDataError."""
    responses.add(responses.GET, MARKETS_URL, json={"error": "server"}, status=500)

    with pytest.raises(MarketDataError):
        fetch_market_by_slug("rain-tomorrow")


@responses.activate
def test_fetch_market_by_id(sample_market_data):
    """Test fetching a market by Gamma id."""
    responses.add(responses.GET, f"{MARKETS_URL}/123", json=sample_market_data, status=200)

    assert fetch_market_by_id("123").question == "Will it rain tomorrow?"


@responses.activate
def test_fetch_top_markets_skips_bad_entries(sample_market_data):
    """Test that unparseable markets are skipped."""
    responses.add(
        responses.GET,
        MARKETS_URL,
        json=[sample_market_data, {"question": "No id"}],
        status=200,
    )

    markets = fetch_top_markets(limit=2)

    assert [m.id for m in markets] == ["123"]
    assert "active=true" in responses.calls[0].request.url


@responses.activate
def test_fetch_top_markets_api_error():
    """Test graceful handling of API errors."""
    responses.add(responses.GET, MARKETS_URL, json={"error": "Server error"}, status=500)

    assert fetch_top_markets() == []


def trending_event(slug, tags, markets):
    return {
        "id": f"event-{slug}",
        "title": slug.replace("-", " ").title(),
        "slug": slug,
        "tags": [{"id": str(i), "label": label, "slug": label.lower()} for i, label in enumerate(tags)],
        "markets": markets,
    }


def trending_market(sample_market_data, market_id, **fields):
    data = dict(sample_market_data, id=market_id, slug=f"market-{market_id}")
    del data["events"]
    data.update(fields)
    return data


@responses.activate
def test_fetch_trending_markets_filters(sample_market_data):
    """Test the tag, spread and status filters over events ordered by volume."""
    events = [
        trending_event("btc-daily", ["Crypto"], [
            trending_market(sample_market_data, "1", spread=0.01),
        ]),
        trending_event("weekly-jobs", ["Economy", "weekly"], [
            trending_market(sample_market_data, "2", spread=0.01),
        ]),
        trending_event("election", ["Politics"], [
            trending_market(sample_market_data, "3", spread=0.30),
            trending_market(sample_market_data, "4", spread=0.02, volume24hr=500),
            trending_market(sample_market_data, "5", spread=0.25, volume24hr=9000),
            trending_market(sample_market_data, "6", spread=0.01, closed=True),
            trending_market(sample_market_data, "7"),
        ]),
        trending_event("weather", [], [
            trending_market(sample_market_data, "8", bestBid=0.40, bestAsk=0.42),
        ]),
    ]
    responses.add(responses.GET, EVENTS_URL, json=events, status=200)

    markets = fetch_trending_markets()

    assert [m.id for m in markets] == ["5", "4", "8"]
    assert markets[0].event_slug == "election"
    assert markets[0].url == "https://polymarket.com/event/election/market-5"
    url = responses.calls[0].request.url
    assert "limit=100" in url
    assert "order=volume24hr" in url
    assert "ascending=false" in url
    assert "closed=false" in url


@responses.activate
def test_fetch_trending_markets_custom_filters(sample_market_data):
    """Test that the limit, spread and tag filters can be overridden."""
    events = [
        trending_event("btc-daily", ["Crypto"], [
            trending_market(sample_market_data, "1", spread=0.01),
        ]),
        trending_event("election", ["Politics"], [
            trending_market(sample_market_data, "2", spread=0.05),
        ]),
    ]
    responses.add(responses.GET, EVENTS_URL, json=events, status=200)

    markets = fetch_trending_markets(limit=5, max_spread_percent=2, exclude_tags=())

    assert [m.id for m in markets] == ["1"]
    assert "limit=5" in responses.calls[0].request.url


@responses.activate
def test_fetch_trending_markets_api_error():
    """Test that a failed trending request is an error, not an empty list."""
    responses.add(responses.GET, EVENTS_URL, json={"error": "Server error"}, status=500)

    with pytest.raises(MarketDataError):
        fetch_trending_markets()


@responses.activate
def test_select_trending_market(sample_market_data):
    """Test that the most active tradable market is selected."""
    events = [trending_event("weather", ["Weather"], [
        trending_market(sample_market_data, "123", spread=0.02),
    ])]
    responses.add(responses.GET, EVENTS_URL, json=events, status=200)

    market = select_trending_market()

    assert market.id == "123"
    assert market.snapshot().yes_price == pytest.approx(0.40)


@responses.activate
def test_select_trending_market_none_pass():
    """Test that an empty selection is a market data error."""
    responses.add(responses.GET, EVENTS_URL, json=[], status=200)

    with pytest.raises(MarketDataError):
        select_trending_market()
