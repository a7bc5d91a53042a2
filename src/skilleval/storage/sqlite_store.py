"""SQLite implementation of the result repository.

One connection per process, opened with a busy timeout, WAL journaling,
foreign keys, and synchronous=NORMAL. Every write is its own transaction.
Timestamps are stored as integer milliseconds since the epoch.
"""

from __future__ import annotations

import logging
import sqlite3
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from skilleval.models.cases import TestType
from skilleval.models.result import ActivationResult, CaseMetrics, QualityResult, RunTotals
from skilleval.models.run import SkillSnapshot, SkillVersion, TestRun
from skilleval.storage.base import ResultRepository, StorageError

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

BUSY_TIMEOUT_MS = 5000

_METRIC_COLUMNS = (
    "input_tokens",
    "output_tokens",
    "cache_creation_tokens",
    "cache_read_tokens",
    "thinking_tokens",
    "latency_ms",
    "estimated_cost_usd",
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _metric_values(metrics: CaseMetrics | None) -> tuple:
    if metrics is None:
        return (None,) * len(_METRIC_COLUMNS)
    return tuple(getattr(metrics, column) for column in _METRIC_COLUMNS)


class SQLiteResultStore(ResultRepository):
    """Persist runs, per-case results, logs, and skill versions in SQLite.

    Args:
        db_path: Database file path, or ":memory:" for a throwaway store.
            Parent directories are created as needed.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn: sqlite3.Connection | None = sqlite3.connect(
                self.db_path, timeout=BUSY_TIMEOUT_MS / 1000
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA synchronous = NORMAL")
            self._conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
        except sqlite3.Error as exc:
            raise StorageError(str(exc), operation="open") from exc
        logger.debug("Opened results database at %s", self.db_path)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("store is closed")
        return self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction, wrapping driver errors."""
        conn = self.conn
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StorageError(str(exc), operation=operation) from exc

    def _query(self, operation: str, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(str(exc), operation=operation) from exc

    # -- runs ---------------------------------------------------------------

    def create_run(
        self,
        model: str,
        test_type: TestType,
        total_tests: int,
        git_commit_hash: str | None = None,
    ) -> str:
        run_id = str(uuid.uuid4())
        now = _now_ms()
        with self._transaction("create_run") as conn:
            conn.execute(
                """
                INSERT INTO test_runs (
                    id, run_timestamp, model, git_commit_hash,
                    total_tests, passed_tests, failed_tests, test_type,
                    total_input_tokens, total_output_tokens, total_cache_read_tokens,
                    total_latency_ms, total_cost_usd, avg_latency_ms, created_at
                )
                VALUES (?, ?, ?, ?, ?, 0, 0, ?, 0, 0, 0, 0, 0.0, 0.0, ?)
                """,
                (run_id, now, model, git_commit_hash, total_tests, TestType(test_type).value, now),
            )
        return run_id

    def finalize_run(self, run_id: str, totals: RunTotals) -> None:
        with self._transaction("finalize_run") as conn:
            conn.execute(
                """
                UPDATE test_runs
                SET
                    total_tests = ?,
                    passed_tests = ?,
                    failed_tests = ?,
                    total_input_tokens = ?,
                    total_output_tokens = ?,
                    total_cache_read_tokens = ?,
                    total_latency_ms = ?,
                    total_cost_usd = ?,
                    avg_latency_ms = ?
                WHERE id = ?
                """,
                (
                    totals.total,
                    totals.passed,
                    totals.failed,
                    totals.input_tokens,
                    totals.output_tokens,
                    totals.cache_read_tokens,
                    totals.latency_ms,
                    totals.cost_usd,
                    totals.avg_latency_ms,
                    run_id,
                ),
            )

    def recompute_run_aggregates(self, run_id: str) -> RunTotals:
        """Rebuild aggregates from stored rows and write them back.

        Used to repair a run whose batch died before finalization.

        Raises:
            StorageError: If the run does not exist.
        """
        run = self.get_run(run_id)
        if run is None:
            raise StorageError(f"unknown run {run_id}", operation="recompute_run_aggregates")

        tables = {
            TestType.activation: ("activation_results",),
            TestType.quality: ("quality_results",),
        }.get(run.test_type, ("activation_results", "quality_results"))

        totals = RunTotals()
        for table in tables:
            rows = self._query(
                "recompute_run_aggregates",
                f"""
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(passed), 0) AS passed,
                    COALESCE(SUM(input_tokens), 0) AS input_tokens,
                    COALESCE(SUM(output_tokens), 0) AS output_tokens,
                    COALESCE(SUM(cache_read_tokens), 0) AS cache_read_tokens,
                    COALESCE(SUM(latency_ms), 0) AS latency_ms,
                    COALESCE(SUM(estimated_cost_usd), 0.0) AS cost_usd
                FROM {table}
                WHERE run_id = ?
                """,
                (run_id,),
            )
            row = rows[0]
            totals.total += row["total"]
            totals.passed += row["passed"]
            totals.input_tokens += row["input_tokens"]
            totals.output_tokens += row["output_tokens"]
            totals.cache_read_tokens += row["cache_read_tokens"]
            totals.latency_ms += row["latency_ms"]
            totals.cost_usd += row["cost_usd"]

        totals.finalize()
        self.finalize_run(run_id, totals)
        logger.info("Recomputed aggregates for run %s: %d/%d passed", run_id, totals.passed, totals.total)
        return totals

    def delete_run(self, run_id: str) -> bool:
        with self._transaction("delete_run") as conn:
            conn.execute(
                """
                DELETE FROM test_logs WHERE test_result_id IN (
                    SELECT id FROM activation_results WHERE run_id = ?
                    UNION
                    SELECT id FROM quality_results WHERE run_id = ?
                )
                """,
                (run_id, run_id),
            )
            cursor = conn.execute("DELETE FROM test_runs WHERE id = ?", (run_id,))
        return cursor.rowcount > 0

    def get_run(self, run_id: str) -> TestRun | None:
        rows = self._query("get_run", "SELECT * FROM test_runs WHERE id = ?", (run_id,))
        return self._to_run(rows[0]) if rows else None

    def list_runs(self, limit: int = 10, test_type: TestType | None = None) -> list[TestRun]:
        if test_type is not None:
            rows = self._query(
                "list_runs",
                "SELECT * FROM test_runs WHERE test_type = ? ORDER BY run_timestamp DESC LIMIT ?",
                (TestType(test_type).value, limit),
            )
        else:
            rows = self._query(
                "list_runs",
                "SELECT * FROM test_runs ORDER BY run_timestamp DESC LIMIT ?",
                (limit,),
            )
        return [self._to_run(row) for row in rows]

    @staticmethod
    def _to_run(row: sqlite3.Row) -> TestRun:
        data = dict(row)
        data["run_timestamp"] = _from_ms(data["run_timestamp"])
        data["created_at"] = _from_ms(data["created_at"])
        data["avg_latency_ms"] = data["avg_latency_ms"] or 0.0
        return TestRun.model_validate(data)

    # -- results ------------------------------------------------------------

    def store_activation_result(self, run_id: str, result: ActivationResult) -> str:
        result_id = str(uuid.uuid4())
        now = _now_ms()
        with self._transaction("store_activation_result") as conn:
            conn.execute(
                f"""
                INSERT INTO activation_results (
                    id, run_id, test_id, query, expected_skill, activated_skill,
                    should_activate, passed, error, metrics_error, test_case_source, session_context,
                    {", ".join(_METRIC_COLUMNS)}, created_at
                )
                VALUES ({", ".join("?" * 20)})
                """,
                (
                    result_id,
                    run_id,
                    result.test_id,
                    result.query,
                    result.expected_skill,
                    result.activated_skill,
                    int(result.should_activate),
                    int(result.passed),
                    result.error,
                    result.metrics_error,
                    result.test_case_source.value,
                    result.session_context,
                    *_metric_values(result.metrics),
                    now,
                ),
            )
            self._insert_logs(conn, result_id, "activation", result.logs)
        return result_id

    def store_quality_result(self, run_id: str, result: QualityResult) -> str:
        result_id = str(uuid.uuid4())
        now = _now_ms()
        with self._transaction("store_quality_result") as conn:
            conn.execute(
                f"""
                INSERT INTO quality_results (
                    id, run_id, test_id, skill, query, response_preview, response_full_text,
                    passed, error, metrics_error, test_case_source, session_context,
                    {", ".join(_METRIC_COLUMNS)}, created_at
                )
                VALUES ({", ".join("?" * 20)})
                """,
                (
                    result_id,
                    run_id,
                    result.test_id,
                    result.skill,
                    result.query,
                    result.response_preview,
                    result.response_full_text,
                    int(result.passed),
                    result.error,
                    result.metrics_error,
                    result.test_case_source.value,
                    result.session_context,
                    *_metric_values(result.metrics),
                    now,
                ),
            )
            conn.executemany(
                "INSERT INTO missing_facts (quality_result_id, fact) VALUES (?, ?)",
                [(result_id, fact) for fact in result.missing_facts],
            )
            conn.executemany(
                "INSERT INTO forbidden_content (quality_result_id, content) VALUES (?, ?)",
                [(result_id, content) for content in result.forbidden_content],
            )
            self._insert_logs(conn, result_id, "quality", result.logs)
        return result_id

    @staticmethod
    def _insert_logs(conn: sqlite3.Connection, result_id: str, test_type: str, logs: list[str]) -> None:
        now = _now_ms()
        conn.executemany(
            """
            INSERT INTO test_logs (test_result_id, test_type, log_message, log_timestamp)
            VALUES (?, ?, ?, ?)
            """,
            [(result_id, test_type, line, now) for line in logs],
        )

    def get_results(self, run_id: str) -> list[dict[str, Any]]:
        activation = self._query(
            "get_results",
            "SELECT * FROM activation_results WHERE run_id = ? ORDER BY created_at, rowid",
            (run_id,),
        )
        quality = self._query(
            "get_results",
            "SELECT * FROM quality_results WHERE run_id = ? ORDER BY created_at, rowid",
            (run_id,),
        )

        results: list[dict[str, Any]] = []
        for row in activation:
            results.append({"kind": "activation", **dict(row)})
        for row in quality:
            data = {"kind": "quality", **dict(row)}
            data["missing_facts"] = [
                r["fact"]
                for r in self._query(
                    "get_results",
                    "SELECT fact FROM missing_facts WHERE quality_result_id = ? ORDER BY id",
                    (row["id"],),
                )
            ]
            data["forbidden_content"] = [
                r["content"]
                for r in self._query(
                    "get_results",
                    "SELECT content FROM forbidden_content WHERE quality_result_id = ? ORDER BY id",
                    (row["id"],),
                )
            ]
            results.append(data)
        return results

    def get_logs(self, result_id: str) -> list[str]:
        rows = self._query(
            "get_logs",
            "SELECT log_message FROM test_logs WHERE test_result_id = ? ORDER BY id",
            (result_id,),
        )
        return [row["log_message"] for row in rows]

    # -- skill versions -----------------------------------------------------

    def find_or_create_skill_version(self, snapshot: SkillSnapshot) -> SkillVersion:
        existing = self._find_skill_version(snapshot.skill_name, snapshot.content_hash)
        if existing is not None:
            return existing

        version_id = str(uuid.uuid4())
        try:
            with self._transaction("find_or_create_skill_version") as conn:
                conn.execute(
                    """
                    INSERT INTO skill_versions (id, skill_name, content_hash, files_json, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (version_id, snapshot.skill_name, snapshot.content_hash, snapshot.files_json(), _now_ms()),
                )
        except StorageError as exc:
            # Another writer stored the same (skill_name, content_hash) first.
            if not isinstance(exc.__cause__, sqlite3.IntegrityError):
                raise
            existing = self._find_skill_version(snapshot.skill_name, snapshot.content_hash)
            if existing is None:
                raise
            return existing

        logger.info("Recorded new version of skill %s (%s)", snapshot.skill_name, snapshot.content_hash[:12])
        return self._find_skill_version(snapshot.skill_name, snapshot.content_hash)

    def _find_skill_version(self, skill_name: str, content_hash: str) -> SkillVersion | None:
        rows = self._query(
            "find_or_create_skill_version",
            "SELECT * FROM skill_versions WHERE skill_name = ? AND content_hash = ?",
            (skill_name, content_hash),
        )
        return self._to_version(rows[0]) if rows else None

    @staticmethod
    def _to_version(row: sqlite3.Row) -> SkillVersion:
        data = dict(row)
        data["created_at"] = _from_ms(data["created_at"])
        return SkillVersion.model_validate(data)

    def link_run_to_skill_versions(self, run_id: str, version_ids: list[str]) -> None:
        with self._transaction("link_run_to_skill_versions") as conn:
            conn.executemany(
                "INSERT OR IGNORE INTO test_run_skill_versions (test_run_id, skill_version_id) VALUES (?, ?)",
                [(run_id, version_id) for version_id in version_ids],
            )

    def list_skill_versions(self, skill_name: str | None = None) -> list[SkillVersion]:
        if skill_name is not None:
            rows = self._query(
                "list_skill_versions",
                "SELECT * FROM skill_versions WHERE skill_name = ? ORDER BY created_at DESC, rowid DESC",
                (skill_name,),
            )
        else:
            rows = self._query(
                "list_skill_versions",
                "SELECT * FROM skill_versions ORDER BY skill_name, created_at DESC, rowid DESC",
            )
        return [self._to_version(row) for row in rows]

    # -- analysis views -----------------------------------------------------

    def activation_history(self, test_id: str) -> list[dict[str, Any]]:
        rows = self._query(
            "activation_history",
            "SELECT * FROM v_activation_test_history WHERE test_id = ?",
            (test_id,),
        )
        return [dict(row) for row in rows]

    def quality_history(self, test_id: str) -> list[dict[str, Any]]:
        rows = self._query(
            "quality_history",
            "SELECT * FROM v_quality_test_history WHERE test_id = ?",
            (test_id,),
        )
        return [dict(row) for row in rows]

    def missing_facts_frequency(self, skill: str | None = None) -> list[dict[str, Any]]:
        if skill is not None:
            rows = self._query(
                "missing_facts_frequency",
                "SELECT * FROM v_missing_facts_frequency WHERE skill = ?",
                (skill,),
            )
        else:
            rows = self._query("missing_facts_frequency", "SELECT * FROM v_missing_facts_frequency")
        return [dict(row) for row in rows]

    def skill_trends(self, test_type: TestType, skill: str | None = None) -> list[dict[str, Any]]:
        test_type = TestType(test_type)
        if test_type == TestType.activation:
            view, column = "v_skill_activation_trends", "expected_skill"
        elif test_type == TestType.quality:
            view, column = "v_quality_test_trends", "skill"
        else:
            raise ValueError(f"No trend view for test type '{test_type.value}'")

        if skill is not None:
            rows = self._query("skill_trends", f"SELECT * FROM {view} WHERE {column} = ?", (skill,))
        else:
            rows = self._query("skill_trends", f"SELECT * FROM {view}")
        return [dict(row) for row in rows]

    def source_comparison(self) -> list[dict[str, Any]]:
        rows = self._query("source_comparison", "SELECT * FROM v_test_source_comparison")
        return [dict(row) for row in rows]

    def close(self) -> None:
        """Close the connection. Further calls raise StorageError."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
