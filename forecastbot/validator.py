"""
Forecast validator.

Checks a decoded completion against the forecast schema and builds a
Forecast. Validation is all-or-nothing: every violation is collected and
reported together, and no partial Forecast is ever returned.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from forecastbot.errors import ValidationError
from forecastbot.models import OUTCOMES, Forecast
from forecastbot.utils import is_finite_number, parse_iso_timestamp, utc_now

# Configure module logger
logger = logging.getLogger(__name__)

MIN_REASONING_LENGTH = 10

SCORE_FIELDS = ("probability", "confidence", "dataQuality")
REASONING_FIELDS = ("outcomeReasoning", "confidenceReasoning")
REQUIRED_FIELDS = (
    "outcome",
    "outcomeReasoning",
    "confidence",
    "confidenceReasoning",
    "probability",
    "keyFactors",
    "dataQuality",
    "lastUpdated",
)


def with_default_timestamp(payload: Any, now: Optional[datetime] = None) -> Any:
    """
    Inject lastUpdated when the model left it out.

    This is a pipeline policy, applied before validation. The payload is
    copied, never mutated. Non-dict payloads, and payloads where the key is
    present with any value (including "" or null), are returned untouched so
    the validator can report them.

    Args:
        payload: Decoded completion
        now: Timestamp to inject (default: current UTC time)

    Returns:
        Payload with lastUpdated present
    """
    if not isinstance(payload, dict) or "lastUpdated" in payload:
        return payload

    stamped = dict(payload)
    stamped["lastUpdated"] = (now or utc_now()).isoformat()
    return stamped


def _check_score(data: dict, field: str, violations: list[str]) -> None:
    value = data[field]
    if not is_finite_number(value):
        violations.append(f"{field} must be a number, got {type(value).__name__}")
    elif not (0 <= value <= 100):
        violations.append(f"{field} {value} out of range [0, 100]")


def _check_reasoning(data: dict, field: str, violations: list[str]) -> None:
    value = data[field]
    if not isinstance(value, str):
        violations.append(f"{field} must be a string, got {type(value).__name__}")
    elif len(value.strip()) < MIN_REASONING_LENGTH:
        violations.append(
            f"{field} must be at least {MIN_REASONING_LENGTH} characters"
        )


def _check_key_factors(data: dict, violations: list[str]) -> None:
    value = data["keyFactors"]
    if not isinstance(value, list):
        violations.append(f"keyFactors must be a list, got {type(value).__name__}")
    elif len(value) == 0:
        violations.append("keyFactors must contain at least one entry")
    elif not all(isinstance(item, str) for item in value):
        violations.append("keyFactors entries must be strings")


def _check_timestamp(data: dict, violations: list[str]) -> Optional[datetime]:
    value = data["lastUpdated"]
    if not isinstance(value, str):
        violations.append(f"lastUpdated must be an ISO 8601 string, got {type(value).__name__}")
        return None
    try:
        return parse_iso_timestamp(value)
    except ValueError:
        violations.append(f"lastUpdated {value!r} is not a valid ISO 8601 timestamp")
        return None


def collect_violations(data: Any) -> list[str]:
    """
    List every schema violation in a decoded payload.

    Args:
        data: Decoded completion

    Returns:
        Violation messages; empty when the payload is valid
    """
    if not isinstance(data, dict):
        return [f"forecast must be a JSON object, got {type(data).__name__}"]

    violations: list[str] = []

    missing = [field for field in REQUIRED_FIELDS if field not in data]
    for field in missing:
        violations.append(f"missing required field '{field}'")

    if "outcome" not in missing and data["outcome"] not in OUTCOMES:
        violations.append(
            f"outcome must be one of {', '.join(OUTCOMES)}, got {data['outcome']!r}"
        )

    for field in SCORE_FIELDS:
        if field not in missing:
            _check_score(data, field, violations)

    for field in REASONING_FIELDS:
        if field not in missing:
            _check_reasoning(data, field, violations)

    if "keyFactors" not in missing:
        _check_key_factors(data, violations)

    if "lastUpdated" not in missing:
        _check_timestamp(data, violations)

    return violations


def validate_forecast(data: Any) -> Forecast:
    """
    Validate a decoded completion and build a Forecast.

    Args:
        data: Decoded JSON value from the parser

    Returns:
        Validated Forecast

    Raises:
        ValidationError: Listing every violated constraint
    """
    violations = collect_violations(data)

    if violations:
        logger.warning(f"Forecast failed validation with {len(violations)} violations")
        for violation in violations:
            logger.debug(f"  - {violation}")
        raise ValidationError(data, violations)

    forecast = Forecast(
        outcome=data["outcome"],
        probability=float(data["probability"]),
        confidence=float(data["confidence"]),
        outcome_reasoning=data["outcomeReasoning"],
        confidence_reasoning=data["confidenceReasoning"],
        key_factors=tuple(data["keyFactors"]),
        data_quality=float(data["dataQuality"]),
        last_updated=parse_iso_timestamp(data["lastUpdated"]),
    )

    logger.debug(
        f"Validated forecast: outcome={forecast.outcome}, "
        f"probability={forecast.probability}, confidence={forecast.confidence}"
    )
    return forecast
