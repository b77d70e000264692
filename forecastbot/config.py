"""
Configuration management for the forecast pipeline.

This module handles all configuration loading from environment variables
and provides type-safe access to configuration values throughout the application.
"""

import os
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


# Model identifiers understood by OpenRouter
MODEL_IDS = {
    "ANTHROPIC_CLAUDE_SONNET_4_5": "anthropic/claude-sonnet-4.5",
    "XAI_GROK_4": "x-ai/grok-4",
    "XAI_GROK_3_MINI": "x-ai/grok-3-mini",
    "OPENAI_GPT_5": "openai/gpt-5",
    "OPENAI_GPT_5_PRO": "openai/gpt-5-pro",
}


class Config:
    """
    Centralized configuration class for the forecast pipeline.

    All configuration values are loaded from environment variables with
    sensible defaults where appropriate. API keys must be provided via
    environment variables for security.
    """

    # API Keys
    OPENROUTER_API_KEY: Optional[str] = os.getenv("OPENROUTER_API_KEY")
    EXA_API_KEY: Optional[str] = os.getenv("EXA_API_KEY")

    # Endpoints
    OPENROUTER_API_URL: str = os.getenv(
        "OPENROUTER_API_URL",
        "https://openrouter.ai/api/v1/chat/completions"
    )
    EXA_API_URL: str = os.getenv("EXA_API_URL", "https://api.exa.ai")
    GAMMA_API_URL: str = os.getenv("GAMMA_API_URL", "https://gamma-api.polymarket.com")

    # Sent to OpenRouter for attribution
    SITE_URL: str = os.getenv("SITE_URL", "")
    SITE_NAME: str = os.getenv("SITE_NAME", "forecastbot")

    # Forecast model configuration
    PREDICTION_MODEL: str = os.getenv("PREDICTION_MODEL", MODEL_IDS["OPENAI_GPT_5"])
    PREDICTION_TEMPERATURE: float = float(os.getenv("PREDICTION_TEMPERATURE", "0.7"))

    # Research configuration
    RESEARCH_MODEL: str = os.getenv("RESEARCH_MODEL", MODEL_IDS["XAI_GROK_3_MINI"])
    RESEARCH_TEMPERATURE: float = float(os.getenv("RESEARCH_TEMPERATURE", "0.3"))
    RESEARCH_MAX_RESULTS: int = int(os.getenv("RESEARCH_MAX_RESULTS", "10"))
    # Per source; Exa and Grok share a 50K budget
    RESEARCH_MAX_CHARACTERS: int = int(os.getenv("RESEARCH_MAX_CHARACTERS", "25000"))

    # Request Timeouts (seconds)
    API_TIMEOUT: int = int(os.getenv("API_TIMEOUT", "120"))
    RESEARCH_TIMEOUT: int = int(os.getenv("RESEARCH_TIMEOUT", "60"))

    # Trade generation
    MIN_DELTA_PERCENT: float = float(os.getenv("MIN_DELTA_PERCENT", "2.5"))
    TRADE_STRATEGY: str = os.getenv("TRADE_STRATEGY", "takeProfit")
    TRADE_MODE: str = os.getenv("TRADE_MODE", "paper")

    # Database Configuration
    DB_PATH: Path = Path(os.getenv("DB_PATH", "data/forecastbot.db"))

    # Telegram Configuration (optional)
    TELEGRAM_BOT_TOKEN: Optional[str] = os.getenv("TELEGRAM_BOT_TOKEN")
    TELEGRAM_CHAT_ID: Optional[str] = os.getenv("TELEGRAM_CHAT_ID")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: Optional[Path] = Path(os.getenv("LOG_FILE", "logs/forecastbot.log")) if os.getenv("LOG_FILE") else None

    @classmethod
    def validate(cls) -> tuple[bool, list[str]]:
        """
        Validate that all required configuration values are present.

        Returns:
            tuple: (is_valid, list_of_errors)
        """
        errors: list[str] = []

        if not cls.OPENROUTER_API_KEY:
            errors.append("OPENROUTER_API_KEY is required but not set")

        if cls.MIN_DELTA_PERCENT < 0:
            errors.append("MIN_DELTA_PERCENT cannot be negative")

        if cls.TRADE_MODE not in ("paper", "live"):
            errors.append("TRADE_MODE must be 'paper' or 'live'")

        if not (0.0 <= cls.PREDICTION_TEMPERATURE <= 2.0):
            errors.append("PREDICTION_TEMPERATURE must be between 0.0 and 2.0")

        if not (0.0 <= cls.RESEARCH_TEMPERATURE <= 2.0):
            errors.append("RESEARCH_TEMPERATURE must be between 0.0 and 2.0")

        if cls.RESEARCH_MAX_RESULTS < 1:
            errors.append("RESEARCH_MAX_RESULTS must be at least 1")

        if cls.RESEARCH_MAX_CHARACTERS < 1:
            errors.append("RESEARCH_MAX_CHARACTERS must be at least 1")

        return (len(errors) == 0, errors)

    @classmethod
    def ensure_directories(cls) -> None:
        """
        Ensure all required directories exist.

        Creates directories for the database and log file if they don't exist.
        """
        cls.DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        if cls.LOG_FILE:
            cls.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
