"""Tests for the command-line interface."""

import dataclasses
import json

import pytest

from forecastbot import main as cli
from forecastbot.completion import CompletionResponse
from forecastbot.experiments import VARIANTS, BaselineGenerator, ExperimentDispatcher, Variant
from forecastbot.storage import Storage

from conftest import forecast_payload, make_forecast


class CannedClient:
    """Completion client that always returns the same forecast."""

    def __init__(self, payload):
        self.text = json.dumps(payload)

    def complete(self, messages, model, temperature):
        return CompletionResponse(text=self.text, raw={})


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep log lines out of captured stdout."""
    monkeypatch.setattr(cli, "setup_logging", lambda: None)


def test_list_experiments(capsys):
    """Test listing enabled experiments."""
    assert cli.main(["list-experiments"]) == 0

    out = capsys.readouterr().out
    assert "[001] Baseline OpenRouter Prediction" in out
    assert "[004] Exa Research-Enriched Prediction" in out
    assert "[006] Trending Markets Auto-Analysis" in out


def test_list_all_experiments(monkeypatch, capsys):
    """Test that disabled experiments are only listed with --all."""
    monkeypatch.setitem(VARIANTS, "090", Variant(
        id="090",
        name="Switched Off",
        description="Registered but not runnable",
        version="0.1.0",
        enabled=False,
        loader=lambda completion_client, research: BaselineGenerator(completion_client),
    ))

    assert cli.main(["list-experiments"]) == 0
    assert "[090]" not in capsys.readouterr().out

    assert cli.main(["list-experiments", "--all"]) == 0
    assert "[090] Switched Off (v0.1.0, disabled)" in capsys.readouterr().out


def test_run_experiment_target_is_optional():
    """Test that a URL and a slug are mutually exclusive but both optional."""
    args = cli.build_parser().parse_args(["run-experiment", "-e", "006"])
    assert args.url is None and args.slug is None

    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["run-experiment", "-u", "https://x", "-s", "y"])


def test_run_experiment_selects_market(monkeypatch, db_path, market, capsys):
    """Test running a self-selecting experiment without a market."""
    storage = Storage(db_path)
    variants = {"006": dataclasses.replace(
        VARIANTS["006"],
        loader=lambda completion_client, research: BaselineGenerator(completion_client),
        market_selector=lambda: market,
    )}

    def dispatcher_factory(storage):
        return ExperimentDispatcher(
            variants=variants,
            completion_client=CannedClient(forecast_payload(probability=70)),
            storage=storage,
            min_delta_percent=2.5,
            strategy_name="takeProfit",
            mode="paper",
        )

    def no_slug_lookup(slug):
        raise AssertionError(f"unexpected slug lookup: {slug}")

    monkeypatch.setattr(cli, "_check_config", lambda: True)
    monkeypatch.setattr(cli, "Storage", lambda: storage)
    monkeypatch.setattr(cli, "ExperimentDispatcher", dispatcher_factory)
    monkeypatch.setattr(cli, "fetch_market_by_slug", no_slug_lookup)
    monkeypatch.setattr(cli.Config, "DB_PATH", db_path)
    monkeypatch.setattr(cli.Config, "LOG_FILE", None)

    assert cli.main(["run-experiment", "-e", "006"]) == 0

    out = capsys.readouterr().out
    assert "Market: Will it rain tomorrow?" in out
    assert "Experiment: 006" in out
    assert "Trade plan:" in out


def test_run_experiment_without_market_or_selector(monkeypatch, db_path):
    """Test that an experiment without a selector fails without a market."""
    storage = Storage(db_path)
    monkeypatch.setattr(cli, "_check_config", lambda: True)
    monkeypatch.setattr(cli, "Storage", lambda: storage)
    monkeypatch.setattr(cli.Config, "DB_PATH", db_path)
    monkeypatch.setattr(cli.Config, "LOG_FILE", None)

    assert cli.main(["run-experiment", "-e", "001"]) == 1


def test_generate_trade(monkeypatch, db_path, market, capsys):
    """Test regenerating a plan for a stored prediction."""
    storage = Storage(db_path)
    prediction_id = storage.save_prediction("123", "001", make_forecast(probability=70))
    monkeypatch.setattr(cli, "Storage", lambda: storage)
    monkeypatch.setattr(cli, "fetch_market_by_id", lambda market_id: market)
    monkeypatch.setattr(cli.Config, "DB_PATH", db_path)
    monkeypatch.setattr(cli.Config, "TRADE_MODE", "paper")
    monkeypatch.setattr(cli.Config, "TRADE_STRATEGY", "takeProfit")
    monkeypatch.setattr(cli.Config, "MIN_DELTA_PERCENT", 2.5)

    assert cli.main(["generate-trade", "-p", prediction_id]) == 0

    plan = json.loads(capsys.readouterr().out)
    assert plan["planId"] == f"prediction-{prediction_id}"
    assert storage.get_trade_plan(prediction_id) == plan


def test_generate_trade_unknown_prediction(monkeypatch, db_path):
    """Test that unknown prediction ids fail."""
    storage = Storage(db_path)
    monkeypatch.setattr(cli, "Storage", lambda: storage)
    monkeypatch.setattr(cli.Config, "DB_PATH", db_path)

    assert cli.main(["generate-trade", "-p", "missing"]) == 1


def test_generate_trade_below_threshold_stores_reason(monkeypatch, db_path, market, capsys):
    """Test that a regenerated no-trade outcome is kept with the prediction."""
    storage = Storage(db_path)
    prediction_id = storage.save_prediction("123", "001", make_forecast(probability=41))
    monkeypatch.setattr(cli, "Storage", lambda: storage)
    monkeypatch.setattr(cli, "fetch_market_by_id", lambda market_id: market)
    monkeypatch.setattr(cli.Config, "DB_PATH", db_path)
    monkeypatch.setattr(cli.Config, "MIN_DELTA_PERCENT", 2.5)

    assert cli.main(["generate-trade", "-p", prediction_id]) == 0

    assert "No trade:" in capsys.readouterr().out
    assert storage.get_prediction(prediction_id)["skip_reason"]["kind"] == "below_threshold"
    assert storage.get_trade_plan(prediction_id) is None
