"""
Data models for the forecast pipeline.

This module defines the core dataclasses used throughout the application
for representing markets, forecasts, strategy inputs and trade plans.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from forecastbot.errors import InvalidInput
from forecastbot.utils import parse_json_string_array, yes_price_from_outcome_prices

# Outcomes
YES = "YES"
NO = "NO"
UNCERTAIN = "UNCERTAIN"
OUTCOMES = (YES, NO, UNCERTAIN)

# Order sides and types
BUY = "BUY"
SELL = "SELL"
MARKET = "MARKET"
LIMIT = "LIMIT"

# Plan modes
PAPER = "paper"
LIVE = "live"
PLAN_MODES = (PAPER, LIVE)


def opposite(outcome: str) -> str:
    """Return the complementary binary outcome."""
    if outcome == YES:
        return NO
    if outcome == NO:
        return YES
    raise InvalidInput(f"Outcome {outcome!r} has no opposite")


@dataclass
class Market:
    """
    Represents a prediction market from the Polymarket Gamma API.

    Price and token fields are kept as the raw stringified JSON arrays the
    API returns; ``snapshot()`` turns them into typed values.

    Attributes:
        id: Gamma market identifier
        question: Market question
        description: Resolution criteria / description
        slug: URL-friendly identifier
        condition_id: CTF condition identifier
        active: Whether the market is active
        closed: Whether the market is closed for trading
        volume: Lifetime volume in USD
        liquidity: Current liquidity in USD
        end_date: Scheduled resolution date
        outcome_prices: Raw outcomePrices string, e.g. '["0.62", "0.38"]'
        clob_token_ids: Raw clobTokenIds string, YES token first
        event_title: Title of the parent event, if any
        event_slug: Slug of the parent event, if any
    """
    id: str
    question: str
    description: str = ""
    slug: str = ""
    condition_id: str = ""
    active: bool = True
    closed: bool = False
    volume: float = 0.0
    liquidity: float = 0.0
    end_date: Optional[datetime] = None
    outcome_prices: Optional[str] = None
    clob_token_ids: Optional[str] = None
    event_title: str = ""
    event_slug: str = ""

    @property
    def url(self) -> str:
        if self.event_slug:
            return f"https://polymarket.com/event/{self.event_slug}/{self.slug}"
        return f"https://polymarket.com/event/{self.slug}"

    def snapshot(self) -> "MarketSnapshot":
        """
        Build a typed price snapshot from the raw API fields.

        Returns:
            MarketSnapshot with the YES price and both outcome token ids

        Raises:
            InvalidInput: If the price feed is missing or unparseable
        """
        yes_price = yes_price_from_outcome_prices(self.outcome_prices)

        yes_token_id = None
        no_token_id = None
        if self.clob_token_ids:
            token_ids = parse_json_string_array(self.clob_token_ids)
            if len(token_ids) >= 2:
                yes_token_id, no_token_id = token_ids[0], token_ids[1]

        return MarketSnapshot(
            market_id=self.id,
            yes_price=yes_price,
            closed=self.closed,
            yes_token_id=yes_token_id,
            no_token_id=no_token_id,
        )


@dataclass(frozen=True)
class MarketSnapshot:
    """
    Point-in-time market-implied probability.

    Attributes:
        market_id: Market the snapshot belongs to
        yes_price: Price of the YES token (0.0 to 1.0)
        closed: Whether the market is closed
        yes_token_id: CLOB token id of the YES outcome
        no_token_id: CLOB token id of the NO outcome
    """
    market_id: str
    yes_price: float
    closed: bool = False
    yes_token_id: Optional[str] = None
    no_token_id: Optional[str] = None

    def __post_init__(self):
        if not (0.0 <= self.yes_price <= 1.0):
            raise InvalidInput(
                f"yes_price must be between 0.0 and 1.0, got {self.yes_price}"
            )

    @property
    def no_price(self) -> float:
        return 1.0 - self.yes_price

    def price_for(self, outcome: str) -> float:
        """Market-implied probability of the given binary outcome."""
        if outcome == YES:
            return self.yes_price
        if outcome == NO:
            return self.no_price
        raise InvalidInput(f"No market price for outcome {outcome!r}")

    def token_id_for(self, outcome: str) -> str:
        """
        Resolve the CLOB token id for an outcome.

        Raises:
            InvalidInput: If the snapshot carries no token id for the outcome
        """
        if outcome == YES:
            token_id = self.yes_token_id
        elif outcome == NO:
            token_id = self.no_token_id
        else:
            raise InvalidInput(f"No token for outcome {outcome!r}")

        if not token_id:
            raise InvalidInput(
                f"clobTokenIds not available for outcome {outcome} on market {self.market_id}"
            )
        return token_id


@dataclass(frozen=True)
class Forecast:
    """
    A validated, structured model forecast.

    Only ever constructed by the validator, so every instance has passed
    the full schema check.

    Attributes:
        outcome: Predicted outcome ("YES", "NO" or "UNCERTAIN")
        probability: Probability the YES outcome resolves true (0 to 100)
        confidence: Model confidence in the forecast (0 to 100)
        outcome_reasoning: Reasoning for the predicted outcome
        confidence_reasoning: Reasoning for the confidence level
        key_factors: Ordered key factors
        data_quality: Quality of the underlying data (0 to 100)
        last_updated: Timestamp of the forecast (timezone-aware)
    """
    outcome: str
    probability: float
    confidence: float
    outcome_reasoning: str
    confidence_reasoning: str
    key_factors: tuple[str, ...]
    data_quality: float
    last_updated: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome,
            "outcomeReasoning": self.outcome_reasoning,
            "confidence": self.confidence,
            "confidenceReasoning": self.confidence_reasoning,
            "probability": self.probability,
            "keyFactors": list(self.key_factors),
            "dataQuality": self.data_quality,
            "lastUpdated": self.last_updated.isoformat(),
        }


@dataclass(frozen=True)
class StrategyInput:
    """
    Read-only view combining a forecast and a market price.

    Attributes:
        prediction_probability: Forecast YES probability (0 to 100)
        current_market_price: Current YES price (0.0 to 1.0)
        confidence: Forecast confidence (0 to 100)
        outcome: Predicted binary outcome ("YES" or "NO")
    """
    prediction_probability: float
    current_market_price: float
    confidence: float
    outcome: str

    def __post_init__(self):
        if self.outcome not in (YES, NO):
            raise InvalidInput(
                f"Strategy input requires a YES or NO outcome, got {self.outcome!r}"
            )

    @classmethod
    def from_forecast(cls, forecast: Forecast, snapshot: MarketSnapshot) -> "StrategyInput":
        return cls(
            prediction_probability=forecast.probability,
            current_market_price=snapshot.yes_price,
            confidence=forecast.confidence,
            outcome=forecast.outcome,
        )

    @property
    def prediction_price(self) -> float:
        return self.prediction_probability / 100.0

    @property
    def outcome_market_price(self) -> float:
        """Market price of the predicted outcome, not always the YES price."""
        if self.outcome == YES:
            return self.current_market_price
        return 1.0 - self.current_market_price


@dataclass(frozen=True)
class TradeLeg:
    """One order of a strategy's output, before token resolution."""
    outcome: str
    side: str
    order_type: str
    size: float
    price: Optional[float] = None
    notes: str = ""


@dataclass(frozen=True)
class StrategyOutput:
    """
    Result of a strategy evaluation.

    Attributes:
        strategy_name: Registered name of the strategy
        branch: "underpriced" or "overpriced"
        trades: Entry leg followed by exit leg
        reasoning: Human-readable summary used as plan notes
    """
    strategy_name: str
    branch: str
    trades: tuple[TradeLeg, ...]
    reasoning: str


@dataclass(frozen=True)
class PlannedTrade:
    """A trade leg bound to the venue token for its outcome."""
    market_token_id: str
    outcome: str
    side: str
    order_type: str
    size: float
    price: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "marketTokenId": self.market_token_id,
            "outcome": self.outcome,
            "side": self.side,
            "orderType": self.order_type,
            "size": self.size,
        }
        if self.price is not None:
            data["price"] = self.price
        return data


@dataclass(frozen=True)
class TradePlan:
    """
    Two-leg trade plan in the exported wire format.

    Attributes:
        plan_id: Deterministic plan identifier
        mode: "paper" or "live"
        trades: Ordered planned trades (entry, then exit)
        notes: Plan-level rationale
    """
    plan_id: str
    mode: str
    trades: tuple[PlannedTrade, ...]
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "planId": self.plan_id,
            "mode": self.mode,
        }
        if self.notes:
            data["notes"] = self.notes
        data["trades"] = [trade.to_dict() for trade in self.trades]
        return data


@dataclass
class ResearchResult:
    """
    Merged web research context for a market.

    Attributes:
        context: Formatted research text for the prompt
        exa_success: Whether the Exa search succeeded
        grok_success: Whether the Grok search succeeded
        exa_sources: Number of Exa sources kept
        grok_sources: Number of Grok results kept
        exa_characters: Characters of Exa content kept
        grok_characters: Characters of Grok content kept
    """
    context: str
    exa_success: bool = False
    grok_success: bool = False
    exa_sources: int = 0
    grok_sources: int = 0
    exa_characters: int = 0
    grok_characters: int = 0

    @property
    def success(self) -> bool:
        return self.exa_success or self.grok_success

    def metadata(self) -> dict[str, Any]:
        return {
            "exaSuccess": self.exa_success,
            "grokSuccess": self.grok_success,
            "exaSources": self.exa_sources,
            "grokSources": self.grok_sources,
            "exaCharacters": self.exa_characters,
            "grokCharacters": self.grok_characters,
        }


@dataclass
class GenerationResult:
    """
    Output of a forecast-generation variant.

    Attributes:
        raw_text: Raw completion text to be parsed
        messages: Request messages sent to the model
        model: Model identifier used
        temperature: Sampling temperature used
        raw_response: Provider response body, for auditing
        prompt_tokens: Prompt token count, if reported
        completion_tokens: Completion token count, if reported
        research: Research used to enrich the prompt, if any
    """
    raw_text: str
    messages: list[dict[str, str]]
    model: str
    temperature: float
    raw_response: Optional[dict] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    research: Optional[ResearchResult] = None

    def raw_request(self) -> dict[str, Any]:
        request: dict[str, Any] = {
            "messages": self.messages,
            "model": self.model,
            "temperature": self.temperature,
        }
        if self.research is not None:
            request["enrichment"] = self.research.metadata()
        return request


@dataclass
class PipelineResult:
    """
    Outcome of one dispatcher run.

    Attributes:
        variant_id: Variant that produced the forecast
        market_id: Market the forecast is about
        forecast: Validated forecast
        delta: Divergence between market and forecast (0.0 to 1.0)
        trade_plan: Generated plan, or None when no trade was warranted
        skip_reason: Why no plan was produced, if applicable
        prediction_id: Storage id of the saved prediction, if persisted
    """
    variant_id: str
    market_id: str
    forecast: Forecast
    delta: float
    trade_plan: Optional[TradePlan] = None
    skip_reason: Optional[dict[str, Any]] = None
    prediction_id: Optional[str] = None
    generation: Optional[GenerationResult] = field(default=None, repr=False)

    @property
    def traded(self) -> bool:
        return self.trade_plan is not None
