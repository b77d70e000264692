"""Pytest configuration and shared fixtures."""

import json

import pytest

from forecastbot.models import Market, MarketSnapshot
from forecastbot.scanner import parse_market
from forecastbot.validator import validate_forecast

YES_TOKEN = "token-yes-111"
NO_TOKEN = "token-no-222"


def forecast_payload(**overrides):
    """A well-formed forecast payload, with optional field overrides."""
    payload = {
        "outcome": "YES",
        "outcomeReasoning": "Polling and fundraising both favour the incumbent.",
        "confidence": 60,
        "confidenceReasoning": "Several independent sources agree on the trend.",
        "probability": 70,
        "keyFactors": ["Polling lead", "Fundraising advantage"],
        "dataQuality": 75,
        "lastUpdated": "2025-01-15T10:30:00Z",
    }
    payload.update(overrides)
    return payload


def make_forecast(**overrides):
    return validate_forecast(forecast_payload(**overrides))


def make_snapshot(yes_price=0.40, closed=False):
    return MarketSnapshot(
        market_id="123",
        yes_price=yes_price,
        closed=closed,
        yes_token_id=YES_TOKEN,
        no_token_id=NO_TOKEN,
    )


def completion_body(text, prompt_tokens=120, completion_tokens=80):
    """OpenRouter chat-completion response body."""
    return {
        "id": "gen-1",
        "model": "openai/gpt-5",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


@pytest.fixture
def valid_payload():
    """Well-formed forecast payload."""
    return forecast_payload()


@pytest.fixture
def sample_market_data():
    """Sample Gamma market data for testing."""
    return {
        "id": "123",
        "question": "Will it rain tomorrow?",
        "description": "Resolves YES if measurable rain falls in the city.",
        "slug": "rain-tomorrow",
        "conditionId": "0xabc",
        "active": True,
        "closed": False,
        "outcomes": "[\"Yes\", \"No\"]",
        "outcomePrices": "[\"0.40\", \"0.60\"]",
        "clobTokenIds": json.dumps([YES_TOKEN, NO_TOKEN]),
        "volume": "10000",
        "liquidity": "5000",
        "endDate": "2025-12-31T23:59:59Z",
        "events": [{"title": "Weather", "slug": "weather"}],
    }


@pytest.fixture
def market(sample_market_data) -> Market:
    """Parsed market with YES at 0.40."""
    return parse_market(sample_market_data)


@pytest.fixture
def db_path(tmp_path):
    """Path for a throwaway SQLite database."""
    return tmp_path / "forecastbot.db"
