"""
Research agent for gathering web context about prediction markets.

This module queries Exa (neural web search with page contents) and Grok
(real-time web search via OpenRouter) and merges both into a single context
block for the forecast prompt. It performs NO reasoning or probability
estimation - only evidence gathering.

The two searches run concurrently. A failure in either source is logged and
degrades the context; it never aborts the forecast.
"""

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypedDict

import requests
from requests.exceptions import RequestException, Timeout, ConnectionError

from forecastbot.completion import CompletionClient
from forecastbot.config import Config
from forecastbot.errors import CompletionError
from forecastbot.models import Market, ResearchResult
from forecastbot.parser import strip_code_fences

# Configure module logger
logger = logging.getLogger(__name__)

NO_RESEARCH_CONTEXT = "No additional research data available due to API errors."

# Research sources
EXA = "exa"
GROK = "grok"
ALL_SOURCES = (EXA, GROK)

EXA_TEXT_MAX_CHARACTERS = 1500
STRING_FALLBACK_KEYS = ("text", "summary", "content", "snippet", "value")
_URL_PATTERN = re.compile(r"https?://[^\s<>\"]+")


class ExaContent(TypedDict, total=False):
    """Normalised Exa search result with page contents."""
    url: str
    title: str
    text: str
    summary: str
    highlights: list[str]
    publishedDate: str
    author: str


class GrokResult(TypedDict, total=False):
    """One Grok web search hit."""
    url: str
    title: str
    snippet: str
    publishedDate: str
    source: str


@dataclass
class SearchOutcome:
    """
    Result of one research source.

    Attributes:
        success: Whether the source returned usable data
        items: Kept results, in source order
        total_characters: Characters of content kept
        truncated: Whether results were dropped to fit the character budget
        error: Failure description when success is False
    """
    success: bool
    items: list[dict] = field(default_factory=list)
    total_characters: int = 0
    truncated: bool = False
    error: Optional[str] = None


def _extract_string(value: Any) -> Optional[str]:
    """Flatten Exa's string / list / object content shapes into a string."""
    if not value:
        return None

    if isinstance(value, str):
        return value

    if isinstance(value, list):
        parts = [
            item if isinstance(item, str) else _extract_string(item)
            for item in value
        ]
        joined = " ".join(part for part in parts if part).strip()
        return joined or None

    if isinstance(value, dict):
        for key in STRING_FALLBACK_KEYS:
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate

    return None


def _extract_highlights(value: Any) -> Optional[list[str]]:
    if not value:
        return None

    if isinstance(value, str):
        return [value]

    if not isinstance(value, list):
        single = _extract_string(value)
        return [single] if single else None

    highlights = []
    for item in value:
        text = item if isinstance(item, str) else _extract_string(item)
        if text and text.strip():
            highlights.append(text)

    return highlights or None


def normalize_exa_result(result: dict) -> ExaContent:
    """
    Normalise one Exa API result.

    Exa may return contents inline or nested under "contents"/"content";
    inline values win.

    Args:
        result: Raw result object from the Exa search response

    Returns:
        ExaContent with only the fields that carry data
    """
    nested = result.get("contents") or result.get("content") or {}
    if not isinstance(nested, dict):
        nested = {}

    content: ExaContent = {
        "url": result.get("url", ""),
        "title": result.get("title") or "Untitled Source",
    }

    text = _extract_string(result.get("text") or nested.get("text"))
    if text:
        content["text"] = text

    summary = _extract_string(result.get("summary") or nested.get("summary"))
    if summary:
        content["summary"] = summary

    highlights = _extract_highlights(result.get("highlights") or nested.get("highlights"))
    if highlights:
        content["highlights"] = highlights

    published = result.get("publishedDate") or nested.get("publishedDate")
    if published:
        content["publishedDate"] = published

    author = result.get("author") or nested.get("author")
    if author:
        content["author"] = author

    return content


def exa_content_length(content: ExaContent) -> int:
    segments = [
        content.get("title"),
        content.get("summary"),
        content.get("text"),
        " ".join(content.get("highlights") or []) or None,
    ]
    return len(" ".join(segment for segment in segments if segment))


def grok_result_length(result: GrokResult) -> int:
    return sum(
        len(result.get(key) or "")
        for key in ("title", "snippet", "url", "publishedDate", "source")
    )


def limit_characters(
    items: list[dict],
    measure: Callable[[dict], int],
    max_characters: int,
) -> tuple[list[dict], int, bool]:
    """
    Keep leading results while they fit in a character budget.

    Stops at the first result that would overflow the budget.

    Returns:
        (kept results, total characters kept, whether anything was dropped)
    """
    kept: list[dict] = []
    total = 0

    for item in items:
        length = measure(item)
        if total + length > max_characters:
            logger.warning(
                f"Research truncated at {total} characters (limit {max_characters})"
            )
            return kept, total, True
        kept.append(item)
        total += length

    return kept, total, False


def parse_grok_results(content: str) -> list[GrokResult]:
    """
    Decode Grok's JSON answer into search results.

    Accepts a bare array or an object with a "results" array, optionally
    fenced. When the answer is not JSON, URLs found in the text are used as
    bare results.
    """
    try:
        parsed = json.loads(strip_code_fences(content))
    except json.JSONDecodeError:
        logger.warning("Failed to parse Grok JSON response, extracting URLs from text")
        return extract_results_from_text(content)

    if isinstance(parsed, dict):
        parsed = parsed.get("results") or []
    if not isinstance(parsed, list):
        return []

    results: list[GrokResult] = []
    for item in parsed:
        if not isinstance(item, dict) or not item.get("url"):
            continue
        result: GrokResult = {
            "url": str(item["url"]),
            "title": str(item.get("title") or item["url"]),
        }
        for key in ("snippet", "publishedDate", "source"):
            if item.get(key):
                result[key] = str(item[key])
        results.append(result)

    return results


def extract_results_from_text(text: str, limit: int = 10) -> list[GrokResult]:
    results: list[GrokResult] = []
    for url in _URL_PATTERN.findall(text)[:limit]:
        parts = url.split("/")
        host = parts[2] if len(parts) > 2 else url
        results.append({
            "url": url,
            "title": f"Search result: {host}",
            "snippet": "No snippet available",
        })
    return results


def format_exa_context(contents: list[ExaContent]) -> str:
    """
    Format Exa contents into a readable context block for the model.

    Args:
        contents: Kept Exa results

    Returns:
        Markdown-style context string
    """
    if not contents:
        return "No additional research data available."

    sections = []
    for index, content in enumerate(contents, start=1):
        parts = [
            f"## Source {index}: {content.get('title', 'Untitled Source')}",
            f"URL: {content.get('url', '')}",
        ]
        if content.get("publishedDate"):
            parts.append(f"Published: {content['publishedDate']}")
        if content.get("author"):
            parts.append(f"Author: {content['author']}")
        if content.get("summary"):
            parts.append(f"\n### Summary\n{content['summary']}")
        if content.get("highlights"):
            bullets = "\n".join(f"- {highlight.strip()}" for highlight in content["highlights"])
            parts.append(f"\n### Key Highlights\n{bullets}")
        if content.get("text"):
            parts.append(f"\n### Content\n{content['text']}")
        sections.append("\n".join(parts))

    return (
        "# Web Research Data\n\n"
        "The following information was gathered from web research to provide "
        "context for this prediction:\n\n"
        + "\n\n---\n\n".join(sections)
    )


def format_grok_context(results: list[GrokResult]) -> str:
    """Format Grok search results into a readable context block."""
    if not results:
        return "No Grok search results available."

    sections = []
    for index, result in enumerate(results, start=1):
        parts = [
            f"## Result {index}: {result.get('title', '')}",
            f"URL: {result.get('url', '')}",
        ]
        if result.get("source"):
            parts.append(f"Source: {result['source']}")
        if result.get("publishedDate"):
            parts.append(f"Published: {result['publishedDate']}")
        if result.get("snippet"):
            parts.append(f"\n{result['snippet']}")
        sections.append("\n".join(parts))

    return (
        "# Grok Web Search Results\n\n"
        "The following search results provide additional real-time context:\n\n"
        + "\n\n---\n\n".join(sections)
    )


def _build_grok_prompt(query: str, max_results: int) -> str:
    return f"""Perform a comprehensive web search to find the latest information about: "{query}"

Search for the most recent, relevant information including:
- Latest news and developments
- Current data and statistics
- Expert opinions and analysis
- Official announcements or statements

Return up to {max_results} high-quality results formatted as a JSON array. Each result must include:
- url: The source URL
- title: Headline or title
- snippet: Brief excerpt or summary (2-3 sentences)
- publishedDate: Date if available (ISO format preferred)
- source: Publication or website name

Respond ONLY with a valid JSON array, no additional text or markdown formatting."""


class ResearchAgent:
    """
    Gathers Exa and Grok research for a market.

    Example:
        agent = ResearchAgent()
        research = agent.gather(market)
        print(research.context)
    """

    def __init__(
        self,
        completion_client: Optional[CompletionClient] = None,
        exa_api_key: Optional[str] = None,
        exa_api_url: Optional[str] = None,
        max_results: Optional[int] = None,
        max_characters: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            completion_client: Client used for Grok searches
                (default: a client with the research timeout)
            exa_api_key: Exa API key (default: Config.EXA_API_KEY)
            exa_api_url: Exa base URL (default: Config.EXA_API_URL)
            max_results: Results requested from each source
            max_characters: Character budget per source
            session: Optional requests session for Exa calls
        """
        self.completion_client = completion_client or CompletionClient(
            timeout=Config.RESEARCH_TIMEOUT
        )
        self.exa_api_key = exa_api_key or Config.EXA_API_KEY
        self.exa_api_url = (exa_api_url or Config.EXA_API_URL).rstrip("/")
        self.max_results = max_results or Config.RESEARCH_MAX_RESULTS
        self.max_characters = max_characters or Config.RESEARCH_MAX_CHARACTERS
        self.session = session or requests.Session()

    def search_exa(self, query: str) -> SearchOutcome:
        """
        Search Exa with page contents.

        Args:
            query: Search query (usually the market question)

        Returns:
            SearchOutcome with normalised ExaContent items
        """
        if not self.exa_api_key:
            logger.error("EXA_API_KEY not configured")
            return SearchOutcome(success=False, error="EXA_API_KEY not configured")

        payload = {
            "query": query,
            "numResults": self.max_results,
            "useAutoprompt": True,
            "type": "neural",
            "contents": {
                "text": {"maxCharacters": EXA_TEXT_MAX_CHARACTERS},
                "highlights": {"numSentences": 3, "highlightsPerUrl": 3},
                "summary": True,
            },
        }

        try:
            logger.info(f"Starting Exa research: {query[:80]}")
            response = self.session.post(
                f"{self.exa_api_url}/search",
                json=payload,
                headers={"x-api-key": self.exa_api_key, "Content-Type": "application/json"},
                timeout=Config.RESEARCH_TIMEOUT,
            )
            response.raise_for_status()
            data = response.json()

        except Timeout:
            logger.error(f"Exa request timed out after {Config.RESEARCH_TIMEOUT}s")
            return SearchOutcome(success=False, error="Exa request timed out")

        except ConnectionError as e:
            logger.error(f"Connection error calling Exa: {e}")
            return SearchOutcome(success=False, error=f"Connection error: {e}")

        except RequestException as e:
            logger.error(f"Exa request failed: {e}")
            return SearchOutcome(success=False, error=str(e))

        except ValueError as e:
            logger.error(f"Exa returned a non-JSON body: {e}")
            return SearchOutcome(success=False, error="Invalid JSON from Exa")

        results = data.get("results") or []
        contents = [normalize_exa_result(result) for result in results if isinstance(result, dict)]
        kept, total, truncated = limit_characters(contents, exa_content_length, self.max_characters)

        logger.info(
            f"Exa research completed: {len(kept)}/{len(contents)} sources, "
            f"{total} characters, truncated={truncated}"
        )
        return SearchOutcome(success=True, items=kept, total_characters=total, truncated=truncated)

    def search_grok(self, query: str) -> SearchOutcome:
        """
        Search the web through Grok on OpenRouter.

        Args:
            query: Search query (usually the market question)

        Returns:
            SearchOutcome with GrokResult items
        """
        messages = [{"role": "user", "content": _build_grok_prompt(query, self.max_results)}]

        try:
            logger.info(f"Starting Grok web search: {query[:80]}")
            response = self.completion_client.complete(
                messages,
                model=Config.RESEARCH_MODEL,
                temperature=Config.RESEARCH_TEMPERATURE,
            )
        except CompletionError as e:
            logger.error(f"Grok search failed: {e}")
            return SearchOutcome(success=False, error=str(e))

        results = parse_grok_results(response.text)
        kept, total, truncated = limit_characters(results, grok_result_length, self.max_characters)

        logger.info(
            f"Grok search completed: {len(kept)} results, {total} characters, truncated={truncated}"
        )
        return SearchOutcome(success=True, items=kept, total_characters=total, truncated=truncated)

    def gather(self, market: Market, sources: tuple[str, ...] = ALL_SOURCES) -> ResearchResult:
        """
        Run the selected searches concurrently and merge their context.

        Every selected search is awaited before merging. Any of them may fail;
        the rest still contribute. Sources that were not selected are reported
        as unsuccessful with no results.

        Args:
            market: Market to research
            sources: Which of EXA and GROK to query (default: both)

        Returns:
            ResearchResult with the merged context and per-source metadata

        Raises:
            ValueError: If sources names an unknown source
        """
        unknown = [source for source in sources if source not in ALL_SOURCES]
        if unknown:
            raise ValueError(f"Unknown research sources: {', '.join(unknown)}")

        query = market.question
        searches = {EXA: self.search_exa, GROK: self.search_grok}

        with ThreadPoolExecutor(max_workers=len(ALL_SOURCES)) as executor:
            futures = {
                source: executor.submit(searches[source], query)
                for source in ALL_SOURCES if source in sources
            }
            outcomes = {source: _settle(future, source) for source, future in futures.items()}

        exa = outcomes.get(EXA) or SearchOutcome(success=False, error="not requested")
        grok = outcomes.get(GROK) or SearchOutcome(success=False, error="not requested")

        parts = []
        if exa.success:
            parts.append(format_exa_context(exa.items))
        if grok.success:
            parts.append(format_grok_context(grok.items))

        context = "\n\n---\n\n".join(parts) if parts else NO_RESEARCH_CONTEXT

        research = ResearchResult(
            context=context,
            exa_success=exa.success,
            grok_success=grok.success,
            exa_sources=len(exa.items),
            grok_sources=len(grok.items),
            exa_characters=exa.total_characters,
            grok_characters=grok.total_characters,
        )

        logger.info(
            f"Research prepared for market {market.id} from {', '.join(futures)}: "
            f"exa={exa.success} ({research.exa_sources} sources), "
            f"grok={grok.success} ({research.grok_sources} results)"
        )
        return research


def _settle(future, source: str) -> SearchOutcome:
    """Wait for a search future; an unexpected exception becomes a failed outcome."""
    try:
        return future.result()
    except Exception as e:
        logger.error(f"Unexpected error during {source} search: {e}", exc_info=True)
        return SearchOutcome(success=False, error=str(e))


def gather_research(
    market: Market,
    agent: Optional[ResearchAgent] = None,
    sources: tuple[str, ...] = ALL_SOURCES,
) -> ResearchResult:
    """
    Gather merged web research for a market.

    Args:
        market: Market to research
        agent: Configured agent (default: one built from Config)
        sources: Which of EXA and GROK to query (default: both)

    Returns:
        ResearchResult
    """
    return (agent or ResearchAgent()).gather(market, sources)
