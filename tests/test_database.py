"""Tests for the database module."""

import tempfile
from pathlib import Path

import pytest

from convtest.core.results import TestOutcome, TestResult
from convtest.storage.database import Database


@pytest.fixture
def db():
    """Create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "nested" / "test.db"
        database = Database(db_path)
        yield database


def passed(test_id, duration_ms=0):
    return TestResult(test_id=test_id, outcome=TestOutcome.PASSED, duration_ms=duration_ms, container="suite")


def failed(test_id, message="Expected 1, got 2"):
    return TestResult(
        test_id=test_id,
        outcome=TestOutcome.FAILED,
        message=message,
        location="suite.py:12",
        container="suite",
    )


class TestDatabase:
    """Tests for the Database class."""

    def test_create_run(self, db):
        """Test creating a test run."""
        run = db.create_run(["suite.py", "other.module"])

        assert run.id is not None
        assert run.containers == ["suite.py", "other.module"]
        assert run.started_at is not None
        assert db.get_run(run.id).containers == ["suite.py", "other.module"]

    def test_finish_run(self, db):
        """Test finishing a test run."""
        run = db.create_run()
        run.total_tests = 10
        run.passed = 7
        run.failed = 2
        run.skipped = 1
        run.cancelled = True

        db.finish_run(run)

        retrieved = db.get_run(run.id)
        assert retrieved.total_tests == 10
        assert retrieved.passed == 7
        assert retrieved.failed == 2
        assert retrieved.skipped == 1
        assert retrieved.cancelled is True
        assert retrieved.finished_at is not None
        assert run.finished_at is not None

    def test_get_missing_run(self, db):
        assert db.get_run(404) is None
        assert db.get_run_results(404) == {}
        assert db.get_latest_run_results() == {}

    def test_get_run_results(self, db):
        """Results come back in the order they were added."""
        run = db.create_run(["suite"])
        db.add_result(run.id, failed("suite::b"))
        db.add_result(
            run.id,
            TestResult(
                test_id="suite::a",
                outcome=TestOutcome.PASSED,
                duration_ms=5,
                output=("step one", "step two"),
                container="suite",
            ),
        )
        run.total_tests = 2
        run.passed = 1
        run.failed = 1
        db.finish_run(run)

        results = db.get_run_results(run.id)
        assert results["total"] == 2
        assert results["passed"] == 1
        assert results["failed"] == 1
        assert results["duration_ms"] == 5
        assert [r["test_id"] for r in results["results"]] == ["suite::b", "suite::a"]
        assert results["results"][1]["output"] == ["step one", "step two"]
        assert results["failed_tests"][0]["message"] == "Expected 1, got 2"
        assert results["failed_tests"][0]["location"] == "suite.py:12"
        assert results["run"]["id"] == run.id

    def test_skipped_result_round_trip(self, db):
        run = db.create_run()
        db.add_result(run.id, TestResult(test_id="suite::later", outcome=TestOutcome.SKIPPED, skip_reason="not ready"))

        (stored,) = db.get_run_results(run.id)["results"]
        assert stored["outcome"] == "skipped"
        assert stored["skip_reason"] == "not ready"
        assert stored["message"] is None

    def test_multiline_output_and_containers_kept_whole(self, db):
        """Embedded newlines survive storage in log lines and container references."""
        run = db.create_run(["first\nsecond.py"])
        db.add_result(
            run.id,
            TestResult(test_id="suite::a", outcome=TestOutcome.PASSED, output=("a\nb", "c")),
        )

        assert db.get_run(run.id).containers == ["first\nsecond.py"]
        (stored,) = db.get_run_results(run.id)["results"]
        assert stored["output"] == ["a\nb", "c"]

    def test_empty_output_and_containers(self, db):
        run = db.create_run()
        db.add_result(run.id, passed("suite::a"))

        assert db.get_run(run.id).containers == []
        assert db.get_run_results(run.id)["results"][0]["output"] == []

    def test_get_latest_run_results(self, db):
        """Test getting results from the latest run."""
        run1 = db.create_run()
        db.add_result(run1.id, passed("suite::first"))
        db.finish_run(run1)

        run2 = db.create_run()
        db.add_result(run2.id, failed("suite::second"))
        db.finish_run(run2)

        results = db.get_latest_run_results()
        assert len(results["results"]) == 1
        assert results["results"][0]["test_id"] == "suite::second"

    def test_get_recent_runs(self, db):
        """Recent runs are returned newest first."""
        ids = []
        for i in range(5):
            run = db.create_run([f"container{i}"])
            db.finish_run(run)
            ids.append(run.id)

        runs = db.get_recent_runs(limit=3)
        assert [r.id for r in runs] == ids[::-1][:3]

    def test_test_history_tracking(self, db):
        """Test that test history is tracked."""
        run = db.create_run()
        db.add_result(run.id, failed("suite::flaky"))

        history = db.get_test_history("suite::flaky")
        assert history is not None
        assert history.failure_count == 1
        assert history.total_runs == 1
        assert history.last_failed_at is not None

        run2 = db.create_run()
        db.add_result(run2.id, passed("suite::flaky", duration_ms=10))

        history = db.get_test_history("suite::flaky")
        assert history.failure_count == 1
        assert history.total_runs == 2
        assert history.avg_duration_ms == 5.0

    def test_skipped_results_not_in_history(self, db):
        run = db.create_run()
        db.add_result(run.id, TestResult(test_id="suite::later", outcome=TestOutcome.SKIPPED, skip_reason="x"))
        assert db.get_test_history("suite::later") is None

    def test_get_flaky_tests(self, db):
        """Tests that only ever fail are broken, not flaky."""
        run = db.create_run()

        for _ in range(10):
            db.add_result(run.id, passed("suite::stable"))
        for i in range(5):
            db.add_result(run.id, failed("suite::flaky") if i < 3 else passed("suite::flaky"))
        for _ in range(3):
            db.add_result(run.id, failed("suite::broken"))

        flaky = db.get_flaky_tests(min_failure_rate=0.5)
        assert [t.test_id for t in flaky] == ["suite::flaky"]
        assert flaky[0].failure_rate == 0.6

    def test_clear_history(self, db):
        """Test clearing all history."""
        run = db.create_run()
        db.add_result(run.id, passed("suite::example"))
        db.finish_run(run)

        db.clear_history()

        assert db.get_recent_runs() == []
        assert db.get_test_history("suite::example") is None
