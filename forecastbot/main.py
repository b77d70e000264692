"""
Command-line entry point for the forecast pipeline.

Commands:
1. list-experiments   - show registered experiment variants
2. run-experiment     - forecast one market and derive a trade plan
3. run-batch          - run one variant over a JSON list of market URLs
4. generate-trade     - (re)generate the trade plan for a stored prediction
5. ingest-markets     - fetch and store the top active markets
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from forecastbot.config import Config
from forecastbot.errors import ForecastBotError, MarketDataError, NoTradeSignal
from forecastbot.experiments import ExperimentDispatcher, normalize_variant_id
from forecastbot.models import Market, PipelineResult
from forecastbot.scanner import (
    extract_market_slug,
    fetch_market_by_id,
    fetch_market_by_slug,
    fetch_top_markets,
)
from forecastbot.storage import Storage
from forecastbot.telegram_notifier import publish_result
from forecastbot.trade_generator import generate_trade_plan
from forecastbot.validator import validate_forecast


# Configure logging
def setup_logging() -> None:
    """Configure logging for the application."""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_level = getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]

    if Config.LOG_FILE:
        Config.ensure_directories()
        handlers.append(logging.FileHandler(Config.LOG_FILE))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers
    )


logger = logging.getLogger(__name__)


def _check_config() -> bool:
    is_valid, errors = Config.validate()
    if not is_valid:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
    return is_valid


def _print_result(result: PipelineResult, market: Market) -> None:
    forecast = result.forecast
    print(f"\nMarket: {market.question}")
    print(f"  URL: {market.url}")
    print(f"  Experiment: {result.variant_id}")
    if result.prediction_id:
        print(f"  Prediction ID: {result.prediction_id}")
    print(f"  Outcome: {forecast.outcome}")
    print(f"  Probability (YES): {forecast.probability:g}%")
    print(f"  Confidence: {forecast.confidence:g}%")
    print(f"  Divergence: {result.delta * 100:.2f}%")

    if result.trade_plan is not None:
        print("\nTrade plan:")
        print(json.dumps(result.trade_plan.to_dict(), indent=2))
    else:
        reason = (result.skip_reason or {}).get("message", "no tradable edge")
        print(f"\nNo trade: {reason}")


def cmd_list_experiments(args: argparse.Namespace) -> int:
    dispatcher = ExperimentDispatcher()
    variants = dispatcher.list_variants(include_disabled=args.all)

    if not variants:
        print("No experiments available.")
        return 0

    print("\nAvailable experiments:\n")
    for variant in variants:
        status = "enabled" if variant.enabled else "disabled"
        print(f"  [{variant.id}] {variant.name} (v{variant.version}, {status})")
        print(f"        {variant.description}")
        if variant.tags:
            print(f"        tags: {', '.join(variant.tags)}")
    print()
    return 0


def _run_one(
    dispatcher: ExperimentDispatcher, variant_id: str, slug: Optional[str], publish: bool
) -> bool:
    """
    Fetch a market and run one variant on it. Returns True on success.

    Without a slug the variant selects its own market.
    """
    try:
        if slug:
            market = fetch_market_by_slug(slug)
        else:
            market = dispatcher.select_market(variant_id)
        result = dispatcher.run(variant_id, market)
    except ForecastBotError as e:
        logger.error(f"Experiment {variant_id} failed for {slug or 'selected market'}: {e}")
        return False

    _print_result(result, market)

    if publish:
        variant = dispatcher.variants.get(result.variant_id)
        if publish_result(result, market, variant.name if variant else ""):
            logger.info("Published result to Telegram")
        else:
            logger.warning("Result was not published to Telegram")

    return True


def cmd_run_experiment(args: argparse.Namespace) -> int:
    if not _check_config():
        return 1

    slug = None
    if args.url or args.slug:
        try:
            slug = extract_market_slug(args.url or args.slug)
        except MarketDataError as e:
            logger.error(str(e))
            return 1

    Config.ensure_directories()
    dispatcher = ExperimentDispatcher(storage=Storage())

    return 0 if _run_one(dispatcher, args.experiment, slug, args.publish) else 1


def cmd_run_batch(args: argparse.Namespace) -> int:
    if not _check_config():
        return 1

    path = Path(args.json)
    try:
        urls = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Could not read market list from {path}: {e}")
        return 1

    if not isinstance(urls, list):
        logger.error(f"{path} must contain a JSON array of market URLs")
        return 1

    Config.ensure_directories()
    dispatcher = ExperimentDispatcher(storage=Storage())
    variant_id = normalize_variant_id(args.experiment)

    succeeded = 0
    failed = 0
    for index, url in enumerate(urls, 1):
        print(f"\n[{index}/{len(urls)}] Processing: {url}")
        try:
            slug = extract_market_slug(str(url))
        except MarketDataError as e:
            logger.error(str(e))
            failed += 1
            continue

        if _run_one(dispatcher, variant_id, slug, publish=False):
            succeeded += 1
        else:
            failed += 1

    print(f"\nBatch complete. Total: {len(urls)}, succeeded: {succeeded}, failed: {failed}")
    return 0 if failed == 0 else 1


def cmd_generate_trade(args: argparse.Namespace) -> int:
    Config.ensure_directories()
    storage = Storage()

    stored = storage.get_prediction(args.prediction)
    if stored is None:
        logger.error(f"Prediction {args.prediction} not found")
        return 1

    try:
        forecast = validate_forecast(stored["prediction"])
        market = fetch_market_by_id(stored["market_id"])
        plan = generate_trade_plan(
            forecast,
            market.snapshot(),
            stored["id"],
            strategy_name=Config.TRADE_STRATEGY,
            min_delta_percent=Config.MIN_DELTA_PERCENT,
            mode=Config.TRADE_MODE,
        )
    except NoTradeSignal as e:
        storage.save_skip_reason(stored["id"], e.payload())
        print(f"No trade: {e}")
        return 0
    except ForecastBotError as e:
        logger.error(f"Could not generate trade for prediction {args.prediction}: {e}")
        return 1

    storage.save_trade_plan(stored["id"], plan)
    print(json.dumps(plan.to_dict(), indent=2))
    return 0


def cmd_ingest_markets(args: argparse.Namespace) -> int:
    Config.ensure_directories()
    storage = Storage()

    markets = fetch_top_markets(limit=args.limit)
    if not markets:
        logger.error("No markets fetched")
        return 1

    saved = sum(1 for market in markets if storage.save_market(market))
    print(f"Stored {saved}/{len(markets)} markets")
    return 0 if saved == len(markets) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forecastbot",
        description="AI forecast validation and trade-signal generation for Polymarket",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  forecastbot list-experiments --all
  forecastbot run-experiment -e 002 -u https://polymarket.com/event/some-event/some-market
  forecastbot run-experiment -e 006
  forecastbot run-batch -e 001 -j markets.json
  forecastbot generate-trade -p <prediction-id>
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list-experiments", help="List experiment variants")
    list_parser.add_argument(
        "-a", "--all",
        action="store_true",
        help="Include disabled experiments"
    )
    list_parser.set_defaults(func=cmd_list_experiments)

    run_parser = subparsers.add_parser(
        "run-experiment",
        help="Run an experiment on one market",
        description="Run an experiment on one market. Without --url or --slug, "
                    "experiments that select their own market (e.g. 006) pick one."
    )
    run_parser.add_argument("-e", "--experiment", default="001", help="Experiment id (e.g. 001)")
    target = run_parser.add_mutually_exclusive_group()
    target.add_argument("-u", "--url", help="Polymarket market URL")
    target.add_argument("-s", "--slug", help="Market slug")
    run_parser.add_argument(
        "--publish",
        action="store_true",
        help="Publish the result to Telegram"
    )
    run_parser.set_defaults(func=cmd_run_experiment)

    batch_parser = subparsers.add_parser("run-batch", help="Run an experiment over many markets")
    batch_parser.add_argument("-e", "--experiment", default="001", help="Experiment id (e.g. 001)")
    batch_parser.add_argument(
        "-j", "--json",
        required=True,
        help="Path to a JSON file containing an array of Polymarket market URLs"
    )
    batch_parser.set_defaults(func=cmd_run_batch)

    trade_parser = subparsers.add_parser(
        "generate-trade",
        help="Generate the trade plan for a stored prediction"
    )
    trade_parser.add_argument("-p", "--prediction", required=True, help="Prediction id")
    trade_parser.set_defaults(func=cmd_generate_trade)

    ingest_parser = subparsers.add_parser("ingest-markets", help="Fetch and store top markets")
    ingest_parser.add_argument("-l", "--limit", type=int, default=10, help="Number of markets")
    ingest_parser.set_defaults(func=cmd_ingest_markets)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = build_parser().parse_args(argv)

    setup_logging()

    try:
        return args.func(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
