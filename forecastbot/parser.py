"""
Forecast parser for raw model completions.

Two stages: strip a markdown code fence if one is present, then decode the
remaining text as strict JSON. There are no fallbacks; text that does not
decode is a ParseError carrying the original completion.
"""

import json
import logging
import re
from typing import Any

from forecastbot.errors import ParseError

# Configure module logger
logger = logging.getLogger(__name__)

_JSON_FENCE = re.compile(r"```[ \t]*json[ \t]*\r?\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_PLAIN_FENCE = re.compile(r"```[ \t]*\r?\n?(.*?)```", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """
    Extract the contents of a fenced code block.

    A block tagged "json" wins over an untagged one, which also picks the
    inner block when an untagged fence wraps a json-tagged one. Without any
    fence the whole text is returned. Surrounding whitespace is stripped
    either way.

    Args:
        text: Raw completion text

    Returns:
        Text to hand to the JSON decoder
    """
    match = _JSON_FENCE.search(text) or _PLAIN_FENCE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def decode_json(raw_text: str, extracted: str) -> Any:
    """
    Strictly decode extracted text as JSON.

    Args:
        raw_text: Original completion, kept for diagnostics
        extracted: Output of strip_code_fences

    Returns:
        Decoded JSON value

    Raises:
        ParseError: If the text is empty or not valid JSON
    """
    if not extracted:
        raise ParseError(raw_text, "completion contained no JSON content")

    try:
        return json.loads(extracted)
    except json.JSONDecodeError as e:
        raise ParseError(raw_text, str(e)) from e


def parse_completion(raw_text: str) -> Any:
    """
    Parse a raw model completion into a decoded JSON value.

    Args:
        raw_text: Raw completion text, possibly wrapped in prose or fences

    Returns:
        Decoded JSON value (usually a dict)

    Raises:
        ParseError: If no JSON could be decoded
    """
    if not isinstance(raw_text, str):
        raise ParseError(repr(raw_text), f"expected completion text, got {type(raw_text).__name__}")

    extracted = strip_code_fences(raw_text)

    try:
        decoded = decode_json(raw_text, extracted)
    except ParseError as e:
        logger.warning(f"Could not parse completion: {e.reason}")
        logger.debug(f"Completion text: {raw_text[:500]}")
        raise

    logger.debug(f"Decoded completion into {type(decoded).__name__}")
    return decoded
