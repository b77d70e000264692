"""
Storage module for persisting markets, prediction jobs, predictions and trade plans.

This module provides a clean repository interface for SQLite database operations.
It handles table creation, insertion, and retrieval with parameterized queries.
"""

import json
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Optional
from contextlib import contextmanager

from forecastbot.config import Config
from forecastbot.models import Forecast, GenerationResult, Market, TradePlan
from forecastbot.utils import current_utc_timestamp, parse_iso_timestamp

# Configure module logger
logger = logging.getLogger(__name__)

JOB_COMPLETED = "completed"
JOB_FAILED = "failed"


class Storage:
    """
    Repository for database operations.

    Provides methods for storing and retrieving markets, prediction jobs,
    predictions and trade plans. Handles table creation automatically.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize storage with database path.

        Args:
            db_path: Path to SQLite database file. If None, uses Config.DB_PATH
        """
        self.db_path = Path(db_path or Config.DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_database()

    @contextmanager
    def _get_connection(self):
        """
        Context manager for database connections.

        Ensures proper connection handling and transaction management.
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row  # Enable column access by name
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_database(self) -> None:
        """Create database tables if they don't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS markets (
                    id TEXT PRIMARY KEY,
                    question TEXT NOT NULL,
                    description TEXT,
                    slug TEXT,
                    condition_id TEXT,
                    active INTEGER NOT NULL DEFAULT 1,
                    closed INTEGER NOT NULL DEFAULT 0,
                    volume REAL DEFAULT 0.0,
                    liquidity REAL DEFAULT 0.0,
                    end_date TEXT,
                    outcome_prices TEXT,
                    clob_token_ids TEXT,
                    event_title TEXT,
                    event_slug TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS prediction_jobs (
                    id TEXT PRIMARY KEY,
                    market_id TEXT,
                    variant_id TEXT,
                    status TEXT NOT NULL,
                    error_kind TEXT,
                    error TEXT,
                    error_details TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS predictions (
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
                    skip_reason TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (job_id) REFERENCES prediction_jobs(id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS trade_plans (
                    plan_id TEXT PRIMARY KEY,
                    prediction_id TEXT NOT NULL,
                    mode TEXT NOT NULL,
                    plan TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (prediction_id) REFERENCES predictions(id)
                )
            """)

            # Databases created before skip reasons were stored lack the column
            cursor.execute("PRAGMA table_info(predictions)")
            columns = {row["name"] for row in cursor.fetchall()}
            if "skip_reason" not in columns:
                cursor.execute("ALTER TABLE predictions ADD COLUMN skip_reason TEXT")

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_predictions_market_id
                ON predictions(market_id)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_status
                ON prediction_jobs(status)
            """)

            logger.info(f"Database initialized at {self.db_path}")

    # Market operations

    def save_market(self, market: Market) -> bool:
        """
        Save or update a market in the database.

        Args:
            market: Market object to save

        Returns:
            True if successful, False otherwise
        """
        try:
            now = current_utc_timestamp()

            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT OR REPLACE INTO markets
                    (id, question, description, slug, condition_id, active, closed,
                     volume, liquidity, end_date, outcome_prices, clob_token_ids,
                     event_title, event_slug, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
                            COALESCE((SELECT created_at FROM markets WHERE id = ?), ?),
                            ?)
                """, (
                    market.id,
                    market.question,
                    market.description,
                    market.slug,
                    market.condition_id,
                    int(market.active),
                    int(market.closed),
                    market.volume,
                    market.liquidity,
                    market.end_date.isoformat() if market.end_date else None,
                    market.outcome_prices,
                    market.clob_token_ids,
                    market.event_title,
                    market.event_slug,
                    market.id,  # For COALESCE check
                    now,  # Default created_at if new
                    now   # updated_at
                ))

            logger.debug(f"Saved market: {market.id}")
            return True

        except sqlite3.Error as e:
            logger.error(f"Error saving market {market.id}: {e}", exc_info=True)
            return False

    def get_market(self, market_id: str) -> Optional[Market]:
        """
        Retrieve a market by ID.

        Args:
            market_id: Market identifier

        Returns:
            Market object if found, None otherwise
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT * FROM markets WHERE id = ?", (market_id,))

                row = cursor.fetchone()
                if not row:
                    return None

                return self._row_to_market(row)

        except sqlite3.Error as e:
            logger.error(f"Error retrieving market {market_id}: {e}", exc_info=True)
            return None

    def _row_to_market(self, row: sqlite3.Row) -> Market:
        """Convert database row to Market object."""
        end_date = None
        if row["end_date"]:
            try:
                end_date = parse_iso_timestamp(row["end_date"])
            except ValueError:
                logger.debug(f"Ignoring unparseable end_date for market {row['id']}")

        return Market(
            id=row["id"],
            question=row["question"],
            description=row["description"] or "",
            slug=row["slug"] or "",
            condition_id=row["condition_id"] or "",
            active=bool(row["active"]),
            closed=bool(row["closed"]),
            volume=row["volume"] or 0.0,
            liquidity=row["liquidity"] or 0.0,
            end_date=end_date,
            outcome_prices=row["outcome_prices"],
            clob_token_ids=row["clob_token_ids"],
            event_title=row["event_title"] or "",
            event_slug=row["event_slug"] or "",
        )

    # Prediction operations

    def save_prediction(
        self,
        market_id: str,
        variant_id: str,
        forecast: Forecast,
        generation: Optional[GenerationResult] = None,
        delta: Optional[float] = None,
    ) -> Optional[str]:
        """
        Save a completed prediction together with its job record.

        Args:
            market_id: Market identifier
            variant_id: Experiment variant that produced the forecast
            forecast: Validated forecast
            generation: Request/response details for auditing
            delta: Divergence between market and forecast

        Returns:
            Prediction id if successful, None otherwise
        """
        job_id = str(uuid.uuid4())
        prediction_id = str(uuid.uuid4())
        now = current_utc_timestamp()

        raw_request = None
        raw_response = None
        research_context = None
        model = None
        prompt_tokens = None
        completion_tokens = None
        if generation is not None:
            raw_request = json.dumps(generation.raw_request())
            raw_response = json.dumps(generation.raw_response, default=str) if generation.raw_response else None
            research_context = generation.research.context if generation.research else None
            model = generation.model
            prompt_tokens = generation.prompt_tokens
            completion_tokens = generation.completion_tokens

        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO prediction_jobs
                    (id, market_id, variant_id, status, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (job_id, market_id, variant_id, JOB_COMPLETED, now))

                cursor.execute("""
                    INSERT INTO predictions
                    (id, job_id, market_id, variant_id, prediction, raw_request,
                     raw_response, research_context, model, prompt_tokens,
                     completion_tokens, prediction_delta, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    prediction_id,
                    job_id,
                    market_id,
                    variant_id,
                    json.dumps(forecast.to_dict()),
                    raw_request,
                    raw_response,
                    research_context,
                    model,
                    prompt_tokens,
                    completion_tokens,
                    delta,
                    now
                ))

            logger.info(f"Saved prediction {prediction_id} for market {market_id} (job {job_id})")
            return prediction_id

        except sqlite3.Error as e:
            logger.error(f"Error saving prediction for {market_id}: {e}", exc_info=True)
            return None

    def get_prediction(self, prediction_id: str) -> Optional[dict[str, Any]]:
        """
        Retrieve a stored prediction.

        Args:
            prediction_id: Prediction identifier

        Returns:
            Dictionary with the decoded forecast payload and metadata, or None
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT * FROM predictions WHERE id = ?", (prediction_id,))

                row = cursor.fetchone()
                if not row:
                    return None

                return {
                    "id": row["id"],
                    "job_id": row["job_id"],
                    "market_id": row["market_id"],
                    "variant_id": row["variant_id"],
                    "prediction": json.loads(row["prediction"]),
                    "model": row["model"],
                    "prediction_delta": row["prediction_delta"],
                    "skip_reason": json.loads(row["skip_reason"]) if row["skip_reason"] else None,
                    "created_at": row["created_at"],
                }

        except sqlite3.Error as e:
            logger.error(f"Error retrieving prediction {prediction_id}: {e}", exc_info=True)
            return None

    def save_skip_reason(self, prediction_id: str, reason: dict[str, Any]) -> bool:
        """
        Record why a stored prediction produced no trade plan.

        Args:
            prediction_id: Prediction that was not traded
            reason: Skip payload, e.g. {"kind": "below_threshold", ...}

        Returns:
            True if the prediction was updated, False otherwise
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "UPDATE predictions SET skip_reason = ? WHERE id = ?",
                    (json.dumps(reason), prediction_id)
                )
                updated = cursor.rowcount > 0

            if not updated:
                logger.warning(f"No prediction {prediction_id} to attach skip reason to")
            return updated

        except sqlite3.Error as e:
            logger.error(f"Error saving skip reason for {prediction_id}: {e}", exc_info=True)
            return False

    # Job operations

    def save_failed_job(
        self,
        market_id: Optional[str],
        variant_id: str,
        error_kind: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> Optional[str]:
        """
        Record a prediction job that failed.

        Args:
            market_id: Market identifier, if known
            variant_id: Experiment variant being run
            error_kind: Stable failure kind (e.g. "parse_error")
            message: Human-readable failure message
            details: Diagnostic payload (raw text, violations, ...)

        Returns:
            Job id if successful, None otherwise
        """
        job_id = str(uuid.uuid4())

        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO prediction_jobs
                    (id, market_id, variant_id, status, error_kind, error, error_details, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    job_id,
                    market_id,
                    variant_id,
                    JOB_FAILED,
                    error_kind,
                    message,
                    json.dumps(details, default=str) if details is not None else None,
                    current_utc_timestamp()
                ))

            logger.info(f"Recorded failed job {job_id} for market {market_id}: {error_kind}")
            return job_id

        except sqlite3.Error as e:
            logger.error(f"Error recording failed job for {market_id}: {e}", exc_info=True)
            return None

    def get_failed_jobs(self, limit: Optional[int] = None) -> list[dict[str, Any]]:
        """
        Retrieve failed jobs, newest first.

        Args:
            limit: Maximum number of jobs to return

        Returns:
            List of job dictionaries
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                query = """
                    SELECT * FROM prediction_jobs
                    WHERE status = ?
                    ORDER BY created_at DESC
                """
                if limit and isinstance(limit, int) and limit > 0:
                    query += f" LIMIT {int(limit)}"

                cursor.execute(query, (JOB_FAILED,))
                rows = cursor.fetchall()

                return [
                    {
                        "id": row["id"],
                        "market_id": row["market_id"],
                        "variant_id": row["variant_id"],
                        "error_kind": row["error_kind"],
                        "error": row["error"],
                        "details": json.loads(row["error_details"]) if row["error_details"] else None,
                        "created_at": row["created_at"],
                    }
                    for row in rows
                ]

        except sqlite3.Error as e:
            logger.error(f"Error retrieving failed jobs: {e}", exc_info=True)
            return []

    # Trade plan operations

    def save_trade_plan(self, prediction_id: str, plan: TradePlan) -> bool:
        """
        Save or replace the trade plan generated from a prediction.

        Args:
            prediction_id: Prediction the plan was generated from
            plan: Trade plan

        Returns:
            True if successful, False otherwise
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT OR REPLACE INTO trade_plans
                    (plan_id, prediction_id, mode, plan, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    plan.plan_id,
                    prediction_id,
                    plan.mode,
                    json.dumps(plan.to_dict()),
                    current_utc_timestamp()
                ))

            logger.debug(f"Saved trade plan {plan.plan_id}")
            return True

        except sqlite3.Error as e:
            logger.error(f"Error saving trade plan {plan.plan_id}: {e}", exc_info=True)
            return False

    def get_trade_plan(self, prediction_id: str) -> Optional[dict[str, Any]]:
        """
        Retrieve the exported trade plan for a prediction.

        Returns:
            Plan in wire format, or None if no plan was stored
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT plan FROM trade_plans WHERE prediction_id = ?",
                    (prediction_id,)
                )

                row = cursor.fetchone()
                if not row:
                    return None

                return json.loads(row["plan"])

        except sqlite3.Error as e:
            logger.error(f"Error retrieving trade plan for {prediction_id}: {e}", exc_info=True)
            return None
