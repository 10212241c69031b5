"""Test outcomes and result records."""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


class TestOutcome(str, Enum):
    """Terminal outcome of a single test run."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def label(self) -> str:
        """Capitalized form used in text output."""
        return self.value.capitalize()


@dataclass(frozen=True)
class TestResult:
    """Immutable snapshot of one executed test.

    ``message`` is set if and only if the outcome is failed, and
    ``skip_reason`` if and only if the outcome is skipped.
    """

    test_id: str
    outcome: TestOutcome
    duration_ms: int = 0
    message: Optional[str] = None
    skip_reason: Optional[str] = None
    location: Optional[str] = None
    output: tuple[str, ...] = ()
    container: str = ""

    def __post_init__(self) -> None:
        if (self.outcome == TestOutcome.FAILED) != (self.message is not None):
            raise ValueError(
                f"Result for {self.test_id!r}: message must be present iff the test failed"
            )
        if (self.outcome == TestOutcome.SKIPPED) != (self.skip_reason is not None):
            raise ValueError(
                f"Result for {self.test_id!r}: skip_reason must be present iff the test was skipped"
            )

    @property
    def detail(self) -> Optional[str]:
        """The failure message or skip reason, whichever applies."""
        return self.message if self.message is not None else self.skip_reason

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "test_id": self.test_id,
            "container": self.container,
            "outcome": self.outcome.value,
            "duration_ms": self.duration_ms,
            "message": self.message,
            "skip_reason": self.skip_reason,
            "location": self.location,
            "output": list(self.output),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TestResult":
        """Create from a dictionary produced by ``to_dict``."""
        return cls(
            test_id=data["test_id"],
            container=data.get("container") or "",
            outcome=TestOutcome(data["outcome"]),
            duration_ms=data.get("duration_ms") or 0,
            message=data.get("message"),
            skip_reason=data.get("skip_reason"),
            location=data.get("location"),
            output=tuple(data.get("output") or ()),
        )


ResultSink = Callable[[TestResult], None]


class SerializedSink:
    """Wraps a sink so that only one thread writes to it at a time."""

    def __init__(self, sink: ResultSink):
        self._sink = sink
        self._lock = threading.Lock()

    def __call__(self, result: TestResult) -> None:
        with self._lock:
            self._sink(result)


@dataclass
class ResultCollector:
    """Sink that keeps every result it receives, in arrival order."""

    results: list[TestResult] = field(default_factory=list)

    def __call__(self, result: TestResult) -> None:
        self.results.append(result)

    def count(self, outcome: TestOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def passed(self) -> int:
        return self.count(TestOutcome.PASSED)

    @property
    def failed(self) -> int:
        return self.count(TestOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return self.count(TestOutcome.SKIPPED)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def duration_ms(self) -> int:
        return sum(r.duration_ms for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        """Summarize in the shape used by the report generator and storage."""
        results = [r.to_dict() for r in self.results]
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration_ms": self.duration_ms,
            "results": results,
            "failed_tests": [r for r in results if r["outcome"] == TestOutcome.FAILED.value],
        }
