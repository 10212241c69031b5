"""Records for stored runs and per-test history."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional


def _timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class TestRun:
    """One recorded execution pass and its outcome counts."""

    id: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    containers: list[str] = field(default_factory=list)
    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "started_at": _isoformat(self.started_at),
            "finished_at": _isoformat(self.finished_at),
            "containers": list(self.containers),
            "total_tests": self.total_tests,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TestRun":
        """Create from a ``test_runs`` row."""
        containers = row["containers"]
        return cls(
            id=row["id"],
            started_at=_timestamp(row["started_at"]),
            finished_at=_timestamp(row["finished_at"]),
            containers=json.loads(containers) if containers else [],
            total_tests=row["total_tests"] or 0,
            passed=row["passed"] or 0,
            failed=row["failed"] or 0,
            skipped=row["skipped"] or 0,
            cancelled=bool(row["cancelled"]),
        )


@dataclass
class TestHistory:
    """Accumulated pass/fail statistics for one test id across runs."""

    test_id: str = ""
    last_failed_at: Optional[datetime] = None
    failure_count: int = 0
    total_runs: int = 0
    avg_duration_ms: float = 0.0

    @property
    def failure_rate(self) -> float:
        if not self.total_runs:
            return 0.0
        return self.failure_count / self.total_runs

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "test_id": self.test_id,
            "last_failed_at": _isoformat(self.last_failed_at),
            "failure_count": self.failure_count,
            "total_runs": self.total_runs,
            "failure_rate": self.failure_rate,
            "avg_duration_ms": self.avg_duration_ms,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TestHistory":
        """Create from a ``test_history`` row."""
        return cls(
            test_id=row["test_id"],
            last_failed_at=_timestamp(row["last_failed_at"]),
            failure_count=row["failure_count"] or 0,
            total_runs=row["total_runs"] or 0,
            avg_duration_ms=row["avg_duration_ms"] or 0.0,
        )
