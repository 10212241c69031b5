"""Host adapter: the contract a test explorer uses to discover and run tests."""

import logging
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from convtest.config import ConvtestConfig
from convtest.core.discovery import ContainerRef, Diagnostic, DiscoveredTest, DiscoveryResult, TestDiscovery
from convtest.core.executor import CancellationToken, ExecutionSummary, TestExecutor
from convtest.core.registry import Registry
from convtest.core.results import TestResult
from convtest.errors import AdapterError

ResultCallback = Callable[[TestResult], None]


class HostAdapter:
    """Wraps discovery and execution behind the host-facing operations.

    Diagnostics that are not test outcomes (malformed containers, unknown
    ids, cancellation) are written to ``logger``, never mixed into the
    sequence of test cases or results.
    """

    def __init__(
        self,
        config: Optional[ConvtestConfig] = None,
        base_dir: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or ConvtestConfig()
        self.base_dir = base_dir or Path.cwd()
        self.logger = logger or logging.getLogger("convtest.adapter")

        self.discovery = TestDiscovery(
            search_paths=[self.base_dir / p for p in self.config.discovery.search_paths],
            parallel_workers=self.config.discovery.parallel_workers,
            base_dir=self.base_dir,
            logger=self.logger,
        )
        self.executor = TestExecutor(
            timeout_seconds=self.config.execution.timeout_seconds,
            fail_fast=self.config.execution.fail_fast,
            logger=self.logger,
        )
        self._last_discovery: Optional[DiscoveryResult] = None

    @property
    def registry(self) -> Optional[Registry]:
        """Registry built by the last completed discovery pass."""
        return self._last_discovery.registry if self._last_discovery else None

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return list(self._last_discovery.diagnostics) if self._last_discovery else []

    def discover(self, containers: Optional[Iterable[ContainerRef]] = None) -> Iterator[DiscoveredTest]:
        """Yield test case descriptors container by container.

        Defaults to the containers named in the configuration. The registry
        is available for ``execute`` once the sequence is exhausted.

        Raises:
            ContainerReferenceError: If a container reference is invalid.
        """
        if containers is None:
            containers = self.config.discovery.containers
        result = DiscoveryResult()
        for discovered in self.discovery.iter_merge(containers, result):
            yield from discovered.tests

        self._last_discovery = result
        self.logger.info(
            f"Discovered {result.total_count} test(s), {len(result.diagnostics)} container error(s)"
        )

    def execute(
        self,
        selection: Optional[Iterable[str]],
        result_callback: ResultCallback,
        cancellation_token: Optional[CancellationToken] = None,
        containers: Optional[Iterable[ContainerRef]] = None,
    ) -> ExecutionSummary:
        """Run the selected tests, pushing each result to ``result_callback``.

        ``selection`` of ``None`` runs every discovered test. When
        ``containers`` is given they are discovered first; otherwise the last
        discovery pass is used.

        Raises:
            AdapterError: If nothing has been discovered, or the callback fails.
        """
        if containers is not None:
            for _ in self.discover(containers):
                pass
        if self._last_discovery is None:
            raise AdapterError("execute() requires a completed discovery pass")
        if not callable(result_callback):
            raise AdapterError("result_callback is not callable")

        registry = self._last_discovery.registry
        cancellation = cancellation_token or CancellationToken()
        workers = self.config.execution.workers
        if workers > 1:
            summary = self.executor.run_parallel(
                registry, selection, result_callback, cancellation, workers=workers
            )
        else:
            summary = self.executor.run(registry, selection, result_callback, cancellation)

        if summary.cancelled:
            self.logger.warning(
                f"Execution cancelled: {summary.selected - summary.completed} of "
                f"{summary.selected} selected test(s) not run"
            )
        return summary
