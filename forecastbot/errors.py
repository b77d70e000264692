"""
Typed failures for the forecast pipeline.

Every failure carries a stable ``kind`` string and a ``payload()`` dict so
callers can record why a job did not produce a trade. None of these are
retried internally.
"""

from typing import Any, Optional


class ForecastBotError(Exception):
    """Base class for all pipeline failures."""

    kind = "error"

    def payload(self) -> dict[str, Any]:
        """Diagnostic details suitable for logging and persistence."""
        return {"kind": self.kind, "message": str(self)}


class ParseError(ForecastBotError):
    """
    Raw model output could not be decoded as JSON.

    Attributes:
        raw_text: The original completion text, untouched
        reason: The decoder's error message
    """

    kind = "parse_error"

    def __init__(self, raw_text: str, reason: str):
        super().__init__(f"Failed to parse forecast: {reason}")
        self.raw_text = raw_text
        self.reason = reason

    def payload(self) -> dict[str, Any]:
        data = super().payload()
        data["reason"] = self.reason
        data["raw_text"] = self.raw_text
        return data


class ValidationError(ForecastBotError):
    """
    Decoded payload violates the forecast schema.

    Attributes:
        decoded: The decoded object that failed validation
        violations: Every violated constraint, one message per entry
    """

    kind = "validation_error"

    def __init__(self, decoded: Any, violations: list[str]):
        summary = "; ".join(violations)
        super().__init__(f"Invalid forecast ({len(violations)} violations): {summary}")
        self.decoded = decoded
        self.violations = list(violations)

    def payload(self) -> dict[str, Any]:
        data = super().payload()
        data["violations"] = self.violations
        data["decoded"] = self.decoded
        return data


class InvalidInput(ForecastBotError):
    """Divergence or strategy inputs are unusable (bad probability, missing price feed)."""

    kind = "invalid_input"


class StrategyInvariantError(ForecastBotError):
    """Market price equals the prediction price, so no branch applies."""

    kind = "strategy_invariant"


class UnknownStrategy(ForecastBotError):
    """Requested trade strategy is not registered."""

    kind = "unknown_strategy"


class UnknownVariant(ForecastBotError):
    """Requested experiment variant does not exist."""

    kind = "unknown_variant"

    def __init__(self, variant_id: str):
        super().__init__(f"Experiment {variant_id} does not exist")
        self.variant_id = variant_id


class VariantDisabled(ForecastBotError):
    """Requested experiment variant exists but is switched off."""

    kind = "variant_disabled"

    def __init__(self, variant_id: str, name: str = ""):
        label = f"{variant_id} ({name})" if name else variant_id
        super().__init__(f"Experiment {label} is currently disabled")
        self.variant_id = variant_id


class VariantLoadError(ForecastBotError):
    """A variant's loader raised while building its forecast generator."""

    kind = "variant_load_error"

    def __init__(self, variant_id: str, cause: BaseException):
        super().__init__(f"Failed to load experiment {variant_id}: {cause}")
        self.variant_id = variant_id
        self.cause = cause


class CompletionError(ForecastBotError):
    """The completion collaborator did not return usable text."""

    kind = "completion_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    def payload(self) -> dict[str, Any]:
        data = super().payload()
        data["status_code"] = self.status_code
        return data


class MarketDataError(ForecastBotError):
    """Market metadata could not be fetched or is incomplete."""

    kind = "market_data_error"


class NoTradeSignal(Exception):
    """
    Base for valid-but-not-tradable outcomes.

    Not a ForecastBotError: "no edge" is a normal negative result.
    """

    kind = "no_trade"

    def payload(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": str(self)}


class BelowThreshold(NoTradeSignal):
    """
    Divergence is smaller than the minimum tradable delta.

    Attributes:
        delta_percent: Observed divergence in percentage points
        min_delta_percent: Threshold it was compared against
    """

    kind = "below_threshold"

    def __init__(self, delta_percent: float, min_delta_percent: float):
        super().__init__(
            f"Delta {delta_percent:.2f}% is below minimum threshold {min_delta_percent}%"
        )
        self.delta_percent = delta_percent
        self.min_delta_percent = min_delta_percent

    def payload(self) -> dict[str, Any]:
        data = super().payload()
        data["delta_percent"] = self.delta_percent
        data["min_delta_percent"] = self.min_delta_percent
        return data


class UncertainForecast(NoTradeSignal):
    """The model declined to pick a direction, so there is nothing to trade."""

    kind = "uncertain_forecast"
