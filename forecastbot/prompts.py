"""
Prompt builders for forecast generation.

Each variant sends a system prompt describing the analyst role and a context
prompt carrying the market details (and, for enriched variants, the web
research). Both ask for the same flat JSON forecast object.
"""

from typing import Optional

from forecastbot.divergence import format_outcome_prices
from forecastbot.models import Market

FORECAST_FIELD_GUIDE = """{
  "outcome": "YES" | "NO" | "UNCERTAIN",
  "outcomeReasoning": "<reasoning for the predicted outcome, at least 10 characters>",
  "confidence": <number 0-100>,
  "confidenceReasoning": "<reasoning for the confidence level, at least 10 characters>",
  "probability": <number 0-100, probability that YES resolves true>,
  "keyFactors": ["<factor 1>", "<factor 2>", ...],
  "dataQuality": <number 0-100, quality of the data available for this analysis>,
  "lastUpdated": "<ISO 8601 timestamp>"
}"""

RESPONSE_RULES = """IMPORTANT:
- Respond ONLY with valid JSON
- Do not include markdown code blocks or any other text
- The probability field is your estimated probability of the YES outcome (0-100), even when you predict NO
- Ensure all required fields are included"""


def build_system_prompt() -> str:
    """System prompt for the baseline variant."""
    return """You are an expert prediction analyst for Polymarket markets. Your role is to analyze market questions and provide structured, data-driven predictions.

Guidelines:
- Analyze the question carefully and consider all available information
- Provide a clear outcome prediction: YES, NO, or UNCERTAIN
- Provide separate reasoning for your outcome and for your confidence level
- Assign a confidence level (0-100) based on the strength of available evidence
- Estimate a probability (0-100) for the YES outcome
- Identify key factors that influence the outcome
- Score the quality of available data (0-100)

Be objective, balanced, and transparent about uncertainty. Focus on verifiable information over speculation."""


def build_research_system_prompt() -> str:
    """System prompt for variants that include web research."""
    return """You are an expert prediction analyst for Polymarket markets. Your role is to analyze market questions and provide structured, data-driven predictions with enhanced readability.

You have access to web research data gathered specifically for this prediction. Use this research to inform your analysis.

Guidelines:
- Analyze the market question and all available information including web research
- Synthesize insights from multiple sources in the research data
- Provide a clear outcome prediction: YES, NO, or UNCERTAIN
- Provide separate, detailed reasoning for your outcome prediction and your confidence level
- Assign a confidence level (0-100) based on the strength of available evidence
- Estimate a probability (0-100) for the YES outcome
- Identify key factors that influence the outcome
- Score the quality of available data (0-100), including the web research
- Reference specific sources from the research when relevant

FORMATTING REQUIREMENTS FOR REASONING SECTIONS:
- Use numbered points format: (1), (2), (3) for clear enumeration
- Include paragraph breaks between major arguments for readability
- Provide clear source citations with context

Be objective, balanced, and transparent about uncertainty. The web research provides current, real-world context that should heavily inform your prediction."""


def format_market_details(market: Market) -> str:
    """Bullet list of market metadata shared by all context prompts."""
    end_date = market.end_date.strftime("%Y-%m-%d %H:%M UTC") if market.end_date else "N/A"
    return "\n".join([
        f"- Market ID: {market.id}",
        f"- Condition ID: {market.condition_id or 'N/A'}",
        f"- Active: {'Yes' if market.active else 'No'}",
        f"- Closed: {'Yes' if market.closed else 'No'}",
        f"- End Date: {end_date}",
        f"- Current Volume: {market.volume:,.0f}" if market.volume else "- Current Volume: N/A",
        f"- Current Liquidity: {market.liquidity:,.0f}" if market.liquidity else "- Current Liquidity: N/A",
        f"- Current Outcome Prices: {format_outcome_prices(market.outcome_prices)}",
    ])


def build_context_prompt(market: Market, research_context: Optional[str] = None) -> str:
    """
    Build the user prompt for a market.

    Args:
        market: Market to forecast
        research_context: Formatted web research, if the variant gathers any

    Returns:
        Prompt text ending with the JSON field guide
    """
    sections = [
        "# Market Information",
        f"## Market Question\n{market.question}",
        f"## Description\n{market.description or 'No description available'}",
        f"## Market Details\n{format_market_details(market)}",
    ]

    if research_context is not None:
        sections.append(f"---\n\n{research_context}\n\n---")
        task = (
            "Please analyze this market using ALL the information above (both market "
            "details and web research) and provide a structured prediction following "
            "this EXACT JSON format:"
        )
    else:
        task = (
            "Please analyze this market and provide a structured prediction following "
            "this EXACT JSON format:"
        )

    sections.append(f"# Task\n\n{task}\n\n{FORECAST_FIELD_GUIDE}\n\n{RESPONSE_RULES}")
    return "\n\n".join(sections)


def build_messages(system_prompt: str, context_prompt: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": context_prompt},
    ]
