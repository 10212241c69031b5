"""SQLite database for storing runs, results and per-test history."""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator, Iterable, Optional

from convtest.core.results import TestOutcome, TestResult
from convtest.storage.models import TestHistory, TestRun

SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS test_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at TIMESTAMP,
    finished_at TIMESTAMP,
    containers TEXT,
    total_tests INTEGER DEFAULT 0,
    passed INTEGER DEFAULT 0,
    failed INTEGER DEFAULT 0,
    skipped INTEGER DEFAULT 0,
    cancelled INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS test_results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id INTEGER REFERENCES test_runs(id) ON DELETE CASCADE,
    test_id TEXT NOT NULL,
    container TEXT,
    outcome TEXT NOT NULL,
    duration_ms INTEGER DEFAULT 0,
    message TEXT,
    skip_reason TEXT,
    location TEXT,
    output TEXT
);

CREATE INDEX IF NOT EXISTS idx_test_results_run_id ON test_results(run_id);

CREATE TABLE IF NOT EXISTS test_history (
    test_id TEXT PRIMARY KEY,
    last_failed_at TIMESTAMP,
    failure_count INTEGER DEFAULT 0,
    total_runs INTEGER DEFAULT 0,
    avg_duration_ms REAL DEFAULT 0.0
);
"""

# Running average and counters are folded in place; SET expressions see the old row.
_UPSERT_HISTORY = """
INSERT INTO test_history (test_id, last_failed_at, failure_count, total_runs, avg_duration_ms)
VALUES (:test_id, :failed_at, :failures, 1, :duration_ms)
ON CONFLICT(test_id) DO UPDATE SET
    last_failed_at = COALESCE(excluded.last_failed_at, test_history.last_failed_at),
    failure_count = test_history.failure_count + excluded.failure_count,
    avg_duration_ms = (test_history.avg_duration_ms * test_history.total_runs
                       + excluded.avg_duration_ms) / (test_history.total_runs + 1),
    total_runs = test_history.total_runs + 1
"""


def _result_from_row(row: sqlite3.Row) -> TestResult:
    return TestResult(
        test_id=row["test_id"],
        container=row["container"] or "",
        outcome=TestOutcome(row["outcome"]),
        duration_ms=row["duration_ms"] or 0,
        message=row["message"],
        skip_reason=row["skip_reason"],
        location=row["location"],
        output=tuple(json.loads(row["output"])) if row["output"] else (),
    )


class Database:
    """Run history kept in a single SQLite file."""

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.executescript(SCHEMA)
            conn.execute(
                "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
                (self.SCHEMA_VERSION,),
            )

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Open a connection that commits on success and rolls back on error."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _fetchone(self, query: str, params: Iterable[Any] = ()) -> Optional[sqlite3.Row]:
        with self._connection() as conn:
            return conn.execute(query, tuple(params)).fetchone()

    def _fetchall(self, query: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        with self._connection() as conn:
            return conn.execute(query, tuple(params)).fetchall()

    # Writing

    def create_run(self, containers: Optional[list[str]] = None) -> TestRun:
        """Start recording a run over ``containers``."""
        run = TestRun(started_at=datetime.now(), containers=list(containers or []))
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT INTO test_runs (started_at, containers) VALUES (?, ?)",
                (run.started_at.isoformat(), json.dumps(run.containers)),
            )
            run.id = cursor.lastrowid
        return run

    def finish_run(self, run: TestRun) -> None:
        """Store the final counts of ``run`` and stamp its finish time."""
        run.finished_at = datetime.now()
        with self._connection() as conn:
            conn.execute(
                """
                UPDATE test_runs
                SET finished_at = :finished_at, total_tests = :total_tests, passed = :passed,
                    failed = :failed, skipped = :skipped, cancelled = :cancelled
                WHERE id = :id
                """,
                {
                    "finished_at": run.finished_at.isoformat(),
                    "total_tests": run.total_tests,
                    "passed": run.passed,
                    "failed": run.failed,
                    "skipped": run.skipped,
                    "cancelled": int(run.cancelled),
                    "id": run.id,
                },
            )

    def add_result(self, run_id: int, result: TestResult) -> None:
        """Store a result and, unless it was skipped, fold it into the test's history."""
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO test_results
                (run_id, test_id, container, outcome, duration_ms, message, skip_reason, location, output)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run_id,
                    result.test_id,
                    result.container,
                    result.outcome.value,
                    result.duration_ms,
                    result.message,
                    result.skip_reason,
                    result.location,
                    json.dumps(list(result.output)),
                ),
            )
            if result.outcome == TestOutcome.SKIPPED:
                return

            failed = result.outcome == TestOutcome.FAILED
            conn.execute(
                _UPSERT_HISTORY,
                {
                    "test_id": result.test_id,
                    "failed_at": datetime.now().isoformat() if failed else None,
                    "failures": int(failed),
                    "duration_ms": float(result.duration_ms),
                },
            )

    def clear_history(self) -> None:
        """Delete every stored run, result and history row."""
        with self._connection() as conn:
            conn.executescript(
                "DELETE FROM test_results; DELETE FROM test_runs; DELETE FROM test_history;"
            )

    # Reading

    def get_run(self, run_id: int) -> Optional[TestRun]:
        row = self._fetchone("SELECT * FROM test_runs WHERE id = ?", (run_id,))
        return TestRun.from_row(row) if row else None

    def get_run_results(self, run_id: int) -> dict[str, Any]:
        """Results of one run, in the order they were recorded.

        The dictionary has the same shape as ``ResultCollector.to_dict`` plus
        a ``run`` entry, or is empty if the run does not exist.
        """
        run = self.get_run(run_id)
        if run is None:
            return {}

        rows = self._fetchall("SELECT * FROM test_results WHERE run_id = ? ORDER BY id", (run_id,))
        results = [_result_from_row(row).to_dict() for row in rows]
        return {
            "run": run.to_dict(),
            "total": run.total_tests,
            "passed": run.passed,
            "failed": run.failed,
            "skipped": run.skipped,
            "duration_ms": sum(r["duration_ms"] for r in results),
            "results": results,
            "failed_tests": [r for r in results if r["outcome"] == TestOutcome.FAILED.value],
        }

    def get_latest_run_results(self) -> dict[str, Any]:
        row = self._fetchone("SELECT id FROM test_runs ORDER BY id DESC LIMIT 1")
        return self.get_run_results(row["id"]) if row else {}

    def get_recent_runs(self, limit: int = 10) -> list[TestRun]:
        """Most recent runs, newest first."""
        rows = self._fetchall("SELECT * FROM test_runs ORDER BY id DESC LIMIT ?", (limit,))
        return [TestRun.from_row(row) for row in rows]

    def get_test_history(self, test_id: str) -> Optional[TestHistory]:
        row = self._fetchone("SELECT * FROM test_history WHERE test_id = ?", (test_id,))
        return TestHistory.from_row(row) if row else None

    def get_flaky_tests(self, min_failure_rate: float = 0.1) -> list[TestHistory]:
        """Tests that have both passed and failed, most failure-prone first."""
        rows = self._fetchall(
            """
            SELECT * FROM test_history
            WHERE total_runs > 1
              AND failure_count > 0
              AND failure_count < total_runs
              AND CAST(failure_count AS REAL) / total_runs >= ?
            ORDER BY CAST(failure_count AS REAL) / total_runs DESC, test_id
            """,
            (min_failure_rate,),
        )
        return [TestHistory.from_row(row) for row in rows]
