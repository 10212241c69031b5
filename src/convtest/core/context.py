"""Per-test assertion context.

Every executing test receives its own ``AssertionContext``. Comparisons that
do not hold record a failed outcome on the context and raise
``AssertionFailure``, which ends the test body. ``skip`` records a skipped
outcome and raises ``SkipSignal``. Once a terminal outcome is recorded, the
context is finished and any further assertion raises ``ContextFinishedError``
without touching the recorded outcome.
"""

import threading
from contextlib import contextmanager
from typing import Any, Generator, Optional

from convtest.core.results import TestOutcome


class AssertionFailure(AssertionError):
    """An expected condition was not met."""

    pass


class SkipSignal(Exception):
    """Raised by ``AssertionContext.skip`` to end a test as skipped."""

    def __init__(self, reason: str):
        reason = str(reason)
        super().__init__(reason)
        self.reason = reason


class ContextFinishedError(RuntimeError):
    """Raised when an assertion is made after the outcome is already known."""

    pass


class AssertionContext:
    """Comparison, failure and skip operations bound to one test."""

    def __init__(self, test_id: str):
        self.test_id = test_id
        self._lock = threading.Lock()
        self._outcome: Optional[TestOutcome] = None
        self._message: Optional[str] = None
        self._skip_reason: Optional[str] = None
        self._messages: list[str] = []

    @property
    def outcome(self) -> Optional[TestOutcome]:
        return self._outcome

    @property
    def message(self) -> Optional[str]:
        return self._message

    @property
    def skip_reason(self) -> Optional[str]:
        return self._skip_reason

    @property
    def messages(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._messages)

    @property
    def finished(self) -> bool:
        return self._outcome is not None

    def log(self, message: str) -> None:
        """Attach a non-terminal message to the test's output."""
        with self._lock:
            self._messages.append(str(message))

    # Terminal outcomes

    def _check_open(self) -> None:
        if self._outcome is not None:
            raise ContextFinishedError(
                f"Test {self.test_id!r} already finished as {self._outcome.value}"
            )

    def record_failure(self, message: str) -> bool:
        """Record a failed outcome unless one is already recorded.

        Returns True if this call set the outcome.
        """
        with self._lock:
            if self._outcome is not None:
                return False
            self._outcome = TestOutcome.FAILED
            self._message = message
            return True

    def record_skip(self, reason: str) -> bool:
        """Record a skipped outcome unless one is already recorded."""
        with self._lock:
            if self._outcome is not None:
                return False
            self._outcome = TestOutcome.SKIPPED
            self._skip_reason = reason
            return True

    def record_pass(self) -> bool:
        """Record a passed outcome unless one is already recorded."""
        with self._lock:
            if self._outcome is not None:
                return False
            self._outcome = TestOutcome.PASSED
            return True

    def fail(self, message: str = "Test failed") -> None:
        """Fail the test unconditionally."""
        self._check_open()
        message = str(message)
        self.record_failure(message)
        raise AssertionFailure(message)

    def skip(self, reason: str = "Skipped") -> None:
        """Stop the test here and report it as skipped."""
        self._check_open()
        reason = str(reason)
        self.record_skip(reason)
        raise SkipSignal(reason)

    def _failed(self, detail: str, msg: Optional[str]) -> None:
        self.fail(f"{msg}: {detail}" if msg else detail)

    # Comparisons

    def assert_equal(self, expected: Any, actual: Any, msg: Optional[str] = None) -> None:
        self._check_open()
        if not expected == actual:
            self._failed(f"Expected {expected!r}, got {actual!r}", msg)

    def assert_not_equal(self, unexpected: Any, actual: Any, msg: Optional[str] = None) -> None:
        self._check_open()
        if unexpected == actual:
            self._failed(f"Expected a value other than {unexpected!r}, got {actual!r}", msg)

    def assert_true(self, value: Any, msg: Optional[str] = None) -> None:
        self._check_open()
        if not value:
            self._failed(f"Expected a true value, got {value!r}", msg)

    def assert_false(self, value: Any, msg: Optional[str] = None) -> None:
        self._check_open()
        if value:
            self._failed(f"Expected a false value, got {value!r}", msg)

    def assert_is_none(self, value: Any, msg: Optional[str] = None) -> None:
        self._check_open()
        if value is not None:
            self._failed(f"Expected None, got {value!r}", msg)

    def assert_is_not_none(self, value: Any, msg: Optional[str] = None) -> None:
        self._check_open()
        if value is None:
            self._failed("Expected a value other than None, got None", msg)

    def assert_is_instance(self, value: Any, expected_type: type | tuple[type, ...], msg: Optional[str] = None) -> None:
        self._check_open()
        if not isinstance(value, expected_type):
            if isinstance(expected_type, tuple):
                type_name = " or ".join(t.__name__ for t in expected_type)
            else:
                type_name = expected_type.__name__
            self._failed(
                f"Expected an instance of {type_name}, got {type(value).__name__} ({value!r})",
                msg,
            )

    def assert_in(self, member: Any, container: Any, msg: Optional[str] = None) -> None:
        self._check_open()
        if member not in container:
            self._failed(f"Expected {member!r} to be in {container!r}", msg)

    def assert_not_in(self, member: Any, container: Any, msg: Optional[str] = None) -> None:
        self._check_open()
        if member in container:
            self._failed(f"Expected {member!r} not to be in {container!r}", msg)

    @contextmanager
    def assert_raises(
        self, expected: type[BaseException] | tuple[type[BaseException], ...], msg: Optional[str] = None
    ) -> Generator[None, None, None]:
        """Context manager that fails the test unless the block raises ``expected``."""
        self._check_open()
        names = (
            " or ".join(e.__name__ for e in expected)
            if isinstance(expected, tuple)
            else expected.__name__
        )
        try:
            yield
        except expected:
            return
        except (AssertionFailure, SkipSignal):
            raise
        except Exception as e:
            self._failed(f"Expected {names} to be raised, got {type(e).__name__}: {e}", msg)
        self._failed(f"Expected {names} to be raised, but nothing was raised", msg)
