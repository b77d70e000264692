"""
Telegram notifier for publishing forecast results.

This module formats pipeline results (forecast, divergence and trade plan)
and sends them to Telegram using the python-telegram-bot library.
"""

import asyncio
import logging
from typing import Optional

from telegram import Bot, LinkPreviewOptions
from telegram.error import TelegramError, TimedOut, NetworkError
from telegram.helpers import escape_markdown

from forecastbot.config import Config
from forecastbot.models import Market, PipelineResult
from forecastbot.utils import format_percentage, truncate

# Configure module logger
logger = logging.getLogger(__name__)

OUTCOME_EMOJI = {"YES": "✅", "NO": "❌", "UNCERTAIN": "⏸️"}


def _escape(text: str) -> str:
    """Escape free text for the legacy Markdown parse mode."""
    return escape_markdown(text or "", version=1)


def format_pipeline_result(result: PipelineResult, market: Market, variant_name: str = "") -> str:
    """
    Format a pipeline result into a readable Telegram message.

    Market and model text is escaped so that only the message's own markup is
    interpreted by Telegram.

    Args:
        result: Result of a dispatcher run
        market: Market the forecast is about
        variant_name: Display name of the experiment variant

    Returns:
        Markdown message text
    """
    forecast = result.forecast
    emoji = OUTCOME_EMOJI.get(forecast.outcome, "")
    experiment = f"[{result.variant_id}] {variant_name}".strip()

    lines = [
        f"📊 *{_escape(market.question)}*",
        f"🔗 {_escape(market.url)}",
        f"🧪 Experiment: {experiment}",
        "",
        f"⚡ Outcome: {emoji} {forecast.outcome}",
        f"🎯 Probability (YES): {forecast.probability:g}%",
        f"🎲 Confidence: {forecast.confidence:g}%",
        f"📈 Divergence: {format_percentage(result.delta)}",
    ]

    if forecast.key_factors:
        lines.append("")
        lines.append("*Key factors:*")
        for factor in forecast.key_factors[:5]:
            lines.append(f"  • {_escape(truncate(factor, 120))}")

    lines.append("")
    if result.trade_plan is not None:
        lines.append(f"💰 *Trade plan* `{result.trade_plan.plan_id}` ({result.trade_plan.mode})")
        for trade in result.trade_plan.trades:
            price = f" @ {trade.price:.3f}" if trade.price is not None else ""
            lines.append(f"  {trade.side} {trade.outcome} {trade.order_type}{price} x{trade.size:g}")
    else:
        reason = (result.skip_reason or {}).get("message", "no tradable edge")
        lines.append(f"⏸️ No trade: {_escape(reason)}")

    lines.append("")
    lines.append(f"💭 {_escape(truncate(forecast.outcome_reasoning, 300))}")

    return "\n".join(lines)


async def _send(bot: Bot, chat_id, message: str) -> None:
    async with bot:
        await bot.send_message(
            chat_id=chat_id,
            text=message,
            parse_mode="Markdown",
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )


def send_telegram_message(message: str, bot: Optional[Bot] = None) -> bool:
    """
    Send a message to Telegram safely with error handling.

    Handles network errors, timeouts, and other Telegram API errors.
    Returns False on any failure, True on success.

    Args:
        message: Message text to send (supports Markdown formatting)
        bot: Bot instance (default: one built from Config.TELEGRAM_BOT_TOKEN)

    Returns:
        True if message sent successfully, False otherwise
    """
    if not Config.TELEGRAM_BOT_TOKEN or not Config.TELEGRAM_CHAT_ID:
        logger.debug("Telegram not configured (missing token or chat_id)")
        return False

    if not message or not message.strip():
        logger.warning("Empty message, not sending")
        return False

    # Parse chat_id (handle both string and int)
    try:
        chat_id = int(Config.TELEGRAM_CHAT_ID)
    except ValueError:
        chat_id = Config.TELEGRAM_CHAT_ID

    try:
        logger.debug(f"Sending message to Telegram chat {chat_id}")
        asyncio.run(_send(bot or Bot(token=Config.TELEGRAM_BOT_TOKEN), chat_id, message))
        logger.info("Telegram message sent successfully")
        return True

    except TimedOut:
        logger.error("Telegram API request timed out")
        return False

    except NetworkError as e:
        logger.error(f"Network error sending Telegram message: {e}")
        return False

    except TelegramError as e:
        logger.error(f"Telegram API error: {e}")
        return False


def publish_result(result: PipelineResult, market: Market, variant_name: str = "") -> bool:
    """
    Format and publish a pipeline result to Telegram.

    Returns:
        True if sent successfully, False otherwise
    """
    message = format_pipeline_result(result, market, variant_name)
    return send_telegram_message(message)
