"""
Experiment variants and the dispatcher that runs them.

A variant is one way of producing a raw forecast for a market (which model,
which prompt, whether to gather web research). The table of variants is
fixed at import time; the dispatcher resolves a variant id, runs its
generator and pushes the completion through the shared pipeline:

    generate -> parse -> validate -> divergence -> trade plan

Valid forecasts with no tradable edge come back as a PipelineResult without
a plan. Every other typed failure is recorded as a failed job and re-raised.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from forecastbot.completion import CompletionClient
from forecastbot.config import Config
from forecastbot.divergence import calculate_divergence
from forecastbot.errors import (
    ForecastBotError,
    InvalidInput,
    NoTradeSignal,
    UnknownVariant,
    VariantDisabled,
    VariantLoadError,
)
from forecastbot.models import GenerationResult, Market, PipelineResult
from forecastbot.parser import parse_completion
from forecastbot.prompts import (
    build_context_prompt,
    build_messages,
    build_research_system_prompt,
    build_system_prompt,
)
from forecastbot.research_agent import ALL_SOURCES, EXA, ResearchAgent, gather_research
from forecastbot.scanner import select_trending_market
from forecastbot.storage import Storage
from forecastbot.trade_generator import generate_trade_plan
from forecastbot.validator import validate_forecast, with_default_timestamp

# Configure module logger
logger = logging.getLogger(__name__)


class ForecastGenerator:
    """
    Base class for variant forecast generators.

    Subclasses implement ``generate`` and return the raw completion; parsing
    and validation happen in the dispatcher.
    """

    def __init__(
        self,
        completion_client: CompletionClient,
        research: Optional[ResearchAgent] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ):
        self.completion_client = completion_client
        self.research = research
        self.model = model or Config.PREDICTION_MODEL
        self.temperature = Config.PREDICTION_TEMPERATURE if temperature is None else temperature

    def generate(self, market: Market) -> GenerationResult:
        raise NotImplementedError

    def _complete(self, messages: list[dict[str, str]], research=None) -> GenerationResult:
        response = self.completion_client.complete(messages, self.model, self.temperature)
        return GenerationResult(
            raw_text=response.text,
            messages=messages,
            model=self.model,
            temperature=self.temperature,
            raw_response=response.raw,
            prompt_tokens=response.prompt_tokens,
            completion_tokens=response.completion_tokens,
            research=research,
        )


class BaselineGenerator(ForecastGenerator):
    """Market question and metadata only, no research."""

    def generate(self, market: Market) -> GenerationResult:
        messages = build_messages(build_system_prompt(), build_context_prompt(market))
        logger.info(f"Requesting baseline forecast for market {market.id} from {self.model}")
        return self._complete(messages)


class ResearchEnrichedGenerator(ForecastGenerator):
    """Adds merged web research from the selected sources to the prompt."""

    def __init__(
        self,
        completion_client: CompletionClient,
        research: Optional[ResearchAgent] = None,
        sources: tuple[str, ...] = ALL_SOURCES,
        **kwargs,
    ):
        super().__init__(completion_client, research=research, **kwargs)
        self.sources = tuple(sources)

    def generate(self, market: Market) -> GenerationResult:
        agent = self.research or ResearchAgent(completion_client=self.completion_client)
        research = gather_research(market, agent, sources=self.sources)

        messages = build_messages(
            build_research_system_prompt(),
            build_context_prompt(market, research.context),
        )
        logger.info(
            f"Requesting research-enriched forecast ({'+'.join(self.sources)}) "
            f"for market {market.id} from {self.model}"
        )
        return self._complete(messages, research=research)


def _load_baseline(completion_client, research) -> ForecastGenerator:
    return BaselineGenerator(completion_client)


def _load_research_enriched(completion_client, research) -> ForecastGenerator:
    return ResearchEnrichedGenerator(completion_client, research=research)


def _load_exa_research(completion_client, research) -> ForecastGenerator:
    return ResearchEnrichedGenerator(completion_client, research=research, sources=(EXA,))


@dataclass(frozen=True)
class Variant:
    """
    A registered experiment.

    Attributes:
        id: Three-digit identifier, e.g. "001"
        name: Human-readable name
        description: What the variant does
        version: Version string
        enabled: Whether the variant may be run
        tags: Labels for listing
        loader: Builds the variant's generator from the shared collaborators
        market_selector: Picks a market when the caller gives none; variants
            without one always need an explicit market
    """
    id: str
    name: str
    description: str
    version: str
    enabled: bool
    loader: Callable[[CompletionClient, Optional[ResearchAgent]], ForecastGenerator] = field(repr=False)
    tags: tuple[str, ...] = ()
    market_selector: Optional[Callable[[], Market]] = field(default=None, repr=False)


VARIANTS: dict[str, Variant] = {
    variant.id: variant
    for variant in (
        Variant(
            id="001",
            name="Baseline OpenRouter Prediction",
            description=(
                "Sends the market question, description and current prices to the "
                "prediction model with no additional research."
            ),
            version="1.0.0",
            enabled=True,
            tags=("baseline", "openrouter"),
            loader=_load_baseline,
        ),
        Variant(
            id="002",
            name="Research-Enriched Prediction",
            description=(
                "Runs Exa and Grok web searches concurrently and adds the merged "
                "research to a prompt with structured reasoning requirements."
            ),
            version="1.0.0",
            enabled=True,
            tags=("research", "exa", "grok", "openrouter"),
            loader=_load_research_enriched,
        ),
        Variant(
            id="004",
            name="Exa Research-Enriched Prediction",
            description=(
                "Adds Exa neural web search results, with page text, highlights and "
                "summaries, to the structured reasoning prompt."
            ),
            version="1.0.0",
            enabled=True,
            tags=("research", "exa", "openrouter"),
            loader=_load_exa_research,
        ),
        Variant(
            id="006",
            name="Trending Markets Auto-Analysis",
            description=(
                "Picks the top trending market (by 24h volume, tight spread, excluding "
                "crypto and recurring series) when no market is given, then runs the "
                "Exa and Grok research-enriched prediction."
            ),
            version="1.0.0",
            enabled=True,
            tags=("research", "exa", "grok", "trending", "openrouter"),
            loader=_load_research_enriched,
            market_selector=select_trending_market,
        ),
    )
}


def normalize_variant_id(variant_id) -> str:
    """Zero-pad a variant id to three characters ("1" -> "001")."""
    return str(variant_id).strip().zfill(3)


class ExperimentDispatcher:
    """
    Resolves experiment variants and runs the forecast pipeline.

    Example:
        dispatcher = ExperimentDispatcher(storage=Storage())
        result = dispatcher.run("002", market)
        if result.traded:
            print(result.trade_plan.to_dict())
    """

    def __init__(
        self,
        variants: Optional[dict[str, Variant]] = None,
        completion_client: Optional[CompletionClient] = None,
        research: Optional[ResearchAgent] = None,
        storage: Optional[Storage] = None,
        min_delta_percent: Optional[float] = None,
        strategy_name: Optional[str] = None,
        mode: Optional[str] = None,
    ):
        """
        Args:
            variants: Variant table (default: VARIANTS)
            completion_client: Shared completion client
            research: Shared research agent for enriched variants
            storage: Persistence for predictions, plans and failed jobs; None disables it
            min_delta_percent: Trade threshold (default: Config.MIN_DELTA_PERCENT)
            strategy_name: Trade strategy (default: Config.TRADE_STRATEGY)
            mode: Plan mode (default: Config.TRADE_MODE)
        """
        self.variants = VARIANTS if variants is None else variants
        self.completion_client = completion_client or CompletionClient()
        self.research = research
        self.storage = storage
        self.min_delta_percent = (
            Config.MIN_DELTA_PERCENT if min_delta_percent is None else min_delta_percent
        )
        self.strategy_name = strategy_name or Config.TRADE_STRATEGY
        self.mode = mode or Config.TRADE_MODE

    def list_variants(self, include_disabled: bool = False) -> list[Variant]:
        return [
            variant for variant in sorted(self.variants.values(), key=lambda v: v.id)
            if include_disabled or variant.enabled
        ]

    def _lookup(self, variant_id) -> Variant:
        key = normalize_variant_id(variant_id)

        variant = self.variants.get(key)
        if variant is None:
            logger.error(f"Experiment {key} not found")
            raise UnknownVariant(key)

        if not variant.enabled:
            logger.error(f"Experiment {key} ({variant.name}) is disabled")
            raise VariantDisabled(key, variant.name)

        return variant

    def resolve(self, variant_id) -> tuple[Variant, ForecastGenerator]:
        """
        Look up a variant and build its generator.

        Args:
            variant_id: Variant id, zero-padded to three digits if shorter

        Returns:
            (variant, generator)

        Raises:
            UnknownVariant: If no variant has the id
            VariantDisabled: If the variant is switched off
            VariantLoadError: If the loader raises
        """
        variant = self._lookup(variant_id)

        try:
            generator = variant.loader(self.completion_client, self.research)
        except Exception as e:
            logger.error(f"Failed to load experiment {variant.id}: {e}")
            raise VariantLoadError(variant.id, e) from e

        return variant, generator

    def select_market(self, variant_id) -> Market:
        """
        Let a variant pick its own market.

        Raises:
            UnknownVariant, VariantDisabled: On resolution failure
            InvalidInput: If the variant has no market selector
            MarketDataError: If the selector cannot find a market
        """
        variant = self._lookup(variant_id)

        if variant.market_selector is None:
            raise InvalidInput(f"Experiment {variant.id} ({variant.name}) needs a market")

        try:
            market = variant.market_selector()
        except ForecastBotError as e:
            self._record_failure(variant.id, None, e)
            raise

        logger.info(f"Experiment {variant.id} selected market {market.id}: {market.question}")
        return market

    def run(self, variant_id, market: Optional[Market] = None) -> PipelineResult:
        """
        Run one variant against one market.

        Args:
            variant_id: Variant to run
            market: Market to forecast; None lets the variant select one

        Returns:
            PipelineResult; trade_plan is None when the forecast carries no tradable edge

        Raises:
            UnknownVariant, VariantDisabled, VariantLoadError: On resolution failure
            InvalidInput: If market is None and the variant cannot select one
            ForecastBotError: Any pipeline failure, after it has been recorded
        """
        variant, generator = self.resolve(variant_id)

        if market is None:
            market = self.select_market(variant.id)

        logger.info(
            f"Starting experiment {variant.id} ({variant.name} v{variant.version}) "
            f"on market {market.id}"
        )

        if self.storage is not None:
            self.storage.save_market(market)

        try:
            generation = generator.generate(market)
            decoded = parse_completion(generation.raw_text)
            forecast = validate_forecast(with_default_timestamp(decoded))
            snapshot = market.snapshot()
            delta = calculate_divergence(snapshot, forecast)
        except ForecastBotError as e:
            self._record_failure(variant.id, market.id, e)
            raise

        logger.info(
            f"Experiment {variant.id} forecast for market {market.id}: "
            f"{forecast.outcome} p={forecast.probability:g} conf={forecast.confidence:g} "
            f"delta={delta:.4f}"
        )

        prediction_id = None
        if self.storage is not None:
            prediction_id = self.storage.save_prediction(
                market.id, variant.id, forecast, generation=generation, delta=delta
            )

        result = PipelineResult(
            variant_id=variant.id,
            market_id=market.id,
            forecast=forecast,
            delta=delta,
            prediction_id=prediction_id,
            generation=generation,
        )

        try:
            plan = generate_trade_plan(
                forecast,
                snapshot,
                prediction_id or f"{variant.id}-{market.id}",
                strategy_name=self.strategy_name,
                min_delta_percent=self.min_delta_percent,
                mode=self.mode,
            )
        except NoTradeSignal as e:
            logger.info(f"No trade for market {market.id}: {e}")
            result.skip_reason = e.payload()
            if self.storage is not None and prediction_id is not None:
                self.storage.save_skip_reason(prediction_id, result.skip_reason)
            return result
        except ForecastBotError as e:
            self._record_failure(variant.id, market.id, e)
            raise

        result.trade_plan = plan
        if self.storage is not None and prediction_id is not None:
            self.storage.save_trade_plan(prediction_id, plan)

        return result

    def _record_failure(
        self, variant_id: str, market_id: Optional[str], error: ForecastBotError
    ) -> None:
        logger.error(f"Experiment {variant_id} failed for market {market_id}: {error}")
        logger.debug(f"Failure details: {error.payload()}")
        if self.storage is not None:
            self.storage.save_failed_job(
                market_id, variant_id, error.kind, str(error), error.payload()
            )
