"""Test execution engine.

Runs selected test cases from a registry, one ``AssertionContext`` per test,
converting assertion failures, skips and unexpected exceptions into
``TestResult`` records that are pushed to a result sink as soon as each test
completes.
"""

import logging
import threading
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Iterable, Optional

from convtest.core.context import AssertionContext, AssertionFailure, SkipSignal
from convtest.core.registry import Registry, TestCase
from convtest.core.results import ResultSink, SerializedSink, TestOutcome, TestResult
from convtest.errors import ResultSinkError

log = logging.getLogger(__name__)

_PACKAGE_DIR = Path(__file__).resolve().parent.parent


class CancellationToken:
    """Cooperative cancellation flag, checked between tests."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class ExecutionSummary:
    """Counts for one execution pass."""

    selected: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False

    @property
    def completed(self) -> int:
        return self.passed + self.failed + self.skipped

    @property
    def success(self) -> bool:
        return self.failed == 0

    def add(self, result: TestResult) -> None:
        if result.outcome == TestOutcome.PASSED:
            self.passed += 1
        elif result.outcome == TestOutcome.FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    def merge(self, other: "ExecutionSummary") -> None:
        self.passed += other.passed
        self.failed += other.failed
        self.skipped += other.skipped
        self.cancelled = self.cancelled or other.cancelled


def _failure_location(tb: Optional[TracebackType]) -> Optional[str]:
    """Innermost traceback frame outside this package, as ``file:line``."""
    frames = [
        frame
        for frame in traceback.extract_tb(tb)
        if not Path(frame.filename).resolve().is_relative_to(_PACKAGE_DIR)
    ]
    if not frames:
        return None
    frame = frames[-1]
    return f"{frame.filename}:{frame.lineno}"


class TestExecutor:
    """Executes registered tests and streams their results."""

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        fail_fast: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize test executor.

        Args:
            timeout_seconds: Default per-test timeout. ``None`` runs bodies
                on the calling thread with no time limit; a test's own
                timeout overrides this value
            fail_fast: Stop starting new tests after the first failure
            logger: Logger for progress and adapter-level warnings
        """
        self.timeout_seconds = timeout_seconds
        self.fail_fast = fail_fast
        self.logger = logger or log

    def select(self, registry: Registry, selection: Optional[Iterable[str]] = None) -> list[TestCase]:
        """Resolve a selection of ids to test cases in registry order."""
        if selection is None:
            return registry.tests()
        wanted = set(selection)
        for test_id in sorted(wanted):
            if test_id not in registry:
                self.logger.warning(f"Ignoring unknown test id: {test_id}")
        return [test for test in registry.tests() if test.id in wanted]

    def run(
        self,
        registry: Registry,
        selection: Optional[Iterable[str]],
        sink: ResultSink,
        cancellation: Optional[CancellationToken] = None,
    ) -> ExecutionSummary:
        """Run the selected tests sequentially in registry order.

        Raises:
            ResultSinkError: If the sink raises while accepting a result.
        """
        tests = self.select(registry, selection)
        return self._run_tests(tests, sink, cancellation or CancellationToken())

    def run_parallel(
        self,
        registry: Registry,
        selection: Optional[Iterable[str]],
        sink: ResultSink,
        cancellation: Optional[CancellationToken] = None,
        workers: int = 2,
    ) -> ExecutionSummary:
        """Run independent top-level groups concurrently.

        Each worker owns a disjoint partition of the selection and runs it in
        registry order; sink writes are serialized.
        """
        tests = self.select(registry, selection)
        if workers <= 1:
            return self._run_tests(tests, sink, cancellation or CancellationToken())

        selected_ids = {t.id for t in tests}
        partitions = registry.partitions(selected_ids)
        cancellation = cancellation or CancellationToken()
        serialized = SerializedSink(sink)

        summary = ExecutionSummary(selected=len(tests))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self._run_tests, partition, serialized, cancellation)
                for partition in partitions
            ]
            for future in futures:
                summary.merge(future.result())
        summary.cancelled = summary.cancelled or cancellation.cancelled
        return summary

    def _run_tests(
        self,
        tests: list[TestCase],
        sink: ResultSink,
        cancellation: CancellationToken,
    ) -> ExecutionSummary:
        summary = ExecutionSummary(selected=len(tests))
        for test in tests:
            if cancellation.cancelled:
                summary.cancelled = True
                self.logger.debug(f"Cancelled before {test.id}")
                break

            result = self.run_test(test)
            summary.add(result)
            try:
                sink(result)
            except Exception as e:
                # Parallel workers sharing the token stop at their next test.
                cancellation.cancel()
                raise ResultSinkError(f"Result sink failed for {test.id}: {e}") from e

            if self.fail_fast and result.outcome == TestOutcome.FAILED:
                cancellation.cancel()
        return summary

    def run_test(self, test: TestCase) -> TestResult:
        """Run one test inside the isolation boundary."""
        context = AssertionContext(test.id)
        self.logger.debug(f"Running {test.id}")

        if test.skip_if is not None:
            try:
                condition = test.skip_if()
            except (Exception, SystemExit) as e:
                context.record_failure(f"Skip condition raised {type(e).__name__}: {e}")
                return self._result(test, context, 0, _failure_location(e.__traceback__))
            if condition:
                if isinstance(condition, str):
                    reason = condition
                else:
                    reason = test.skip_reason or "Skip condition met"
                context.record_skip(reason)
                return self._result(test, context, 0)

        timeout = test.timeout if test.timeout is not None else self.timeout_seconds
        start_time = time.perf_counter()
        if timeout is None:
            location = self._invoke(test, context)
        else:
            location = self._invoke_with_timeout(test, context, timeout)
        duration_ms = int((time.perf_counter() - start_time) * 1000)

        context.record_pass()
        return self._result(test, context, duration_ms, location)

    def _invoke(self, test: TestCase, context: AssertionContext) -> Optional[str]:
        """Call the test body and return the failure location, if any."""
        try:
            test.body(context)
        except AssertionFailure as e:
            context.record_failure(str(e))
            return _failure_location(e.__traceback__)
        except SkipSignal as e:
            context.record_skip(str(e.reason))
        except (Exception, SystemExit) as e:
            context.record_failure(f"{type(e).__name__}: {e}")
            return _failure_location(e.__traceback__)
        return None

    def _invoke_with_timeout(
        self, test: TestCase, context: AssertionContext, timeout: float
    ) -> Optional[str]:
        location: list[Optional[str]] = [None]

        def target() -> None:
            location[0] = self._invoke(test, context)

        worker = threading.Thread(target=target, name=f"convtest-{test.name}", daemon=True)
        worker.start()
        worker.join(timeout)
        if worker.is_alive():
            # The body keeps running on its daemon thread but can no longer
            # change the outcome.
            context.record_failure(f"Test timed out after {timeout:g} seconds")
            self.logger.warning(f"{test.id} timed out after {timeout:g}s")
            return None
        return location[0]

    @staticmethod
    def _result(
        test: TestCase,
        context: AssertionContext,
        duration_ms: int,
        location: Optional[str] = None,
    ) -> TestResult:
        outcome = context.outcome
        return TestResult(
            test_id=test.id,
            container=test.container,
            outcome=outcome,
            duration_ms=duration_ms,
            message=context.message if outcome == TestOutcome.FAILED else None,
            skip_reason=context.skip_reason if outcome == TestOutcome.SKIPPED else None,
            location=location if outcome == TestOutcome.FAILED else None,
            output=context.messages,
        )
