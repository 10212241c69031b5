"""Standalone text runner that drives the host adapter without a host."""

import sys
from typing import Iterable, Optional, TextIO

from convtest.adapter.protocol import HostAdapter
from convtest.core.discovery import ContainerRef
from convtest.core.executor import CancellationToken, ExecutionSummary
from convtest.core.results import ResultCollector, TestResult
from convtest.errors import AdapterError

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ADAPTER_ERROR = 2


def format_result(result: TestResult) -> str:
    """Format one result as ``<Outcome> <id> (<ms> ms)[ - <detail>]``."""
    line = f"{result.outcome.label} {result.test_id} ({result.duration_ms} ms)"
    if result.detail:
        line += f" - {result.detail}"
    return line


class TextRunner:
    """Writes one line per result to a text stream."""

    def __init__(self, adapter: HostAdapter, stream: Optional[TextIO] = None):
        self.adapter = adapter
        self.stream = stream or sys.stdout
        self.results = ResultCollector()
        self.summary: Optional[ExecutionSummary] = None

    def _write(self, result: TestResult) -> None:
        self.results(result)
        self.stream.write(format_result(result) + "\n")
        self.stream.flush()

    def run(
        self,
        containers: Optional[Iterable[ContainerRef]] = None,
        selection: Optional[Iterable[str]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> int:
        """Discover and run tests, returning the process exit code.

        0 if every result passed or was skipped, 1 if any failed, 2 if the
        adapter itself failed.
        """
        self.results = ResultCollector()
        try:
            for _ in self.adapter.discover(containers):
                pass
            self.summary = self.adapter.execute(selection, self._write, cancellation)
        except AdapterError as e:
            self.adapter.logger.error(str(e))
            return EXIT_ADAPTER_ERROR

        return EXIT_FAILED if self.summary.failed else EXIT_OK
