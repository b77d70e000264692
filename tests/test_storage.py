"""Tests for SQLite storage."""

import sqlite3

import pytest

from forecastbot.models import GenerationResult, ResearchResult
from forecastbot.storage import Storage
from forecastbot.trade_generator import generate_trade_plan

from conftest import make_forecast, make_snapshot


@pytest.fixture
def storage(db_path):
    return Storage(db_path)


def test_market_round_trip(storage, market):
    """Test saving and reloading a market."""
    assert storage.save_market(market)

    loaded = storage.get_market("123")

    assert loaded == market
    assert loaded.snapshot() == market.snapshot()


def test_save_market_updates_existing(storage, market):
    """Test that saving again replaces the stored fields."""
    storage.save_market(market)
    market.closed = True
    storage.save_market(market)

    assert storage.get_market("123").closed is True


def test_get_missing_market(storage):
    """Test that unknown ids return None."""
    assert storage.get_market("nope") is None


def test_prediction_round_trip(storage):
    """Test saving a prediction with its generation details."""
    forecast = make_forecast()
    generation = GenerationResult(
        raw_text="{}",
        messages=[{"role": "user", "content": "Will it rain?"}],
        model="openai/gpt-5",
        temperature=0.7,
        raw_response={"id": "gen-1"},
        prompt_tokens=10,
        completion_tokens=20,
        research=ResearchResult(context="# Web Research Data", exa_success=True),
    )

    prediction_id = storage.save_prediction("123", "002", forecast, generation=generation, delta=0.3)
    stored = storage.get_prediction(prediction_id)

    assert stored["market_id"] == "123"
    assert stored["variant_id"] == "002"
    assert stored["model"] == "openai/gpt-5"
    assert stored["prediction_delta"] == pytest.approx(0.3)
    assert stored["prediction"] == forecast.to_dict()
    assert stored["skip_reason"] is None
    assert stored["job_id"]


def test_get_missing_prediction(storage):
    """Test that unknown prediction ids return None."""
    assert storage.get_prediction("missing") is None


def test_failed_jobs(storage):
    """Test recording and listing failed jobs."""
    storage.save_failed_job("123", "001", "parse_error", "bad json", {"raw_text": "nope"})
    storage.save_failed_job(None, "999", "unknown_variant", "no such experiment")

    jobs = storage.get_failed_jobs()

    assert len(jobs) == 2
    kinds = {job["error_kind"] for job in jobs}
    assert kinds == {"parse_error", "unknown_variant"}
    parse_job = next(job for job in jobs if job["error_kind"] == "parse_error")
    assert parse_job["details"] == {"raw_text": "nope"}
    assert len(storage.get_failed_jobs(limit=1)) == 1


def test_completed_jobs_are_not_failures(storage):
    """Test that saving a prediction does not create a failed job."""
    storage.save_prediction("123", "001", make_forecast())
    assert storage.get_failed_jobs() == []


def test_trade_plan_round_trip(storage):
    """Test that plans are stored in wire format and replaced on regeneration."""
    prediction_id = storage.save_prediction("123", "001", make_forecast(probability=70))
    plan = generate_trade_plan(make_forecast(probability=70), make_snapshot(0.40), prediction_id)

    assert storage.save_trade_plan(prediction_id, plan)
    assert storage.save_trade_plan(prediction_id, plan)

    assert storage.get_trade_plan(prediction_id) == plan.to_dict()


def test_missing_trade_plan(storage):
    """Test that predictions without a plan return None."""
    assert storage.get_trade_plan("missing") is None


def test_skip_reason_round_trip(storage):
    """Test that a no-trade reason is attached to its prediction."""
    prediction_id = storage.save_prediction("123", "001", make_forecast(probability=41))
    reason = {
        "kind": "below_threshold",
        "message": "Delta 1.00% is below minimum 2.5%",
        "delta_percent": 1.0,
        "min_delta_percent": 2.5,
    }

    assert storage.save_skip_reason(prediction_id, reason)

    assert storage.get_prediction(prediction_id)["skip_reason"] == reason


def test_skip_reason_for_missing_prediction(storage):
    """Test that nothing is updated for an unknown prediction."""
    assert storage.save_skip_reason("missing", {"kind": "uncertain_forecast"}) is False


def test_skip_reason_column_added_to_existing_database(db_path):
    """Test that an older predictions table gains the skip_reason column."""
    conn = sqlite3.connect(str(db_path))
    conn.execute("""
        CREATE TABLE predictions (
            id TEXT PRIMARY KEY,
            job_id TEXT NOT NULL,
            market_id TEXT NOT NULL,
            variant_id TEXT NOT NULL,
            prediction TEXT NOT NULL,
            raw_request TEXT,
            raw_response TEXT,
            research_context TEXT,
            model TEXT,
            prompt_tokens INTEGER,
            completion_tokens INTEGER,
            prediction_delta REAL,
            created_at TEXT NOT NULL
        )
    """)
    conn.commit()
    conn.close()

    storage = Storage(db_path)
    prediction_id = storage.save_prediction("123", "001", make_forecast(outcome="UNCERTAIN"))

    assert storage.save_skip_reason(prediction_id, {"kind": "uncertain_forecast"})
    assert storage.get_prediction(prediction_id)["skip_reason"] == {"kind": "uncertain_forecast"}
