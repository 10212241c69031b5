"""Tests for the host adapter and the standalone text runner."""

import io
import logging

import pytest

from conftest import CALCULATOR, CALCULATOR_IDS, fixture_container
from convtest.adapter.protocol import HostAdapter
from convtest.adapter.standalone import (
    EXIT_ADAPTER_ERROR,
    EXIT_FAILED,
    EXIT_OK,
    TextRunner,
    format_result,
)
from convtest.config import ConvtestConfig, DiscoveryConfig, ExecutionConfig
from convtest.core.executor import CancellationToken
from convtest.core.results import ResultCollector, TestOutcome, TestResult
from convtest.errors import AdapterError, ContainerReferenceError


@pytest.fixture
def adapter(diag_logger, tmp_path):
    return HostAdapter(base_dir=tmp_path, logger=diag_logger)


class TestHostAdapter:
    """Tests for HostAdapter."""

    def test_discover_streams_descriptors(self, adapter):
        tests = adapter.discover([CALCULATOR])

        first = next(tests)
        assert first.id == CALCULATOR_IDS[0]
        assert adapter.registry is None

        rest = list(tests)
        assert [t.id for t in [first, *rest]] == CALCULATOR_IDS
        assert len(adapter.registry) == 7

    def test_discover_uses_configured_containers(self, diag_logger, tmp_path):
        config = ConvtestConfig(discovery=DiscoveryConfig(containers=[CALCULATOR]))
        adapter = HostAdapter(config=config, base_dir=tmp_path, logger=diag_logger)

        assert [t.id for t in adapter.discover()] == CALCULATOR_IDS

    def test_diagnostics_kept_out_of_test_sequence(self, adapter):
        bad = fixture_container("no_entry_point")
        tests = list(adapter.discover([bad, CALCULATOR]))

        assert [t.id for t in tests] == CALCULATOR_IDS
        assert [d.container for d in adapter.diagnostics] == [bad]

    def test_unresolvable_container_raises(self, adapter, tmp_path):
        with pytest.raises(ContainerReferenceError):
            list(adapter.discover([str(tmp_path / "missing.py")]))
        assert adapter.registry is None

    def test_contract_error_is_adapter_error(self):
        assert issubclass(ContainerReferenceError, AdapterError)

    def test_execute_requires_discovery(self, adapter):
        with pytest.raises(AdapterError, match="discovery"):
            adapter.execute(None, ResultCollector())

    def test_execute_after_discover(self, adapter):
        list(adapter.discover([CALCULATOR]))
        collector = ResultCollector()
        summary = adapter.execute(CALCULATOR_IDS[:2], collector)

        assert [r.test_id for r in collector.results] == CALCULATOR_IDS[:2]
        assert summary.passed == 2

    def test_execute_with_containers(self, adapter):
        collector = ResultCollector()
        summary = adapter.execute(None, collector, containers=[CALCULATOR])

        assert len(collector.results) == 7
        assert summary.failed == 2

    def test_rediscovery_replaces_registry(self, adapter):
        list(adapter.discover([CALCULATOR]))
        list(adapter.discover([fixture_container("decorated_suite")]))

        collector = ResultCollector()
        adapter.execute([CALCULATOR_IDS[0]], collector)
        assert collector.results == []

    def test_parallel_workers_from_config(self, diag_logger, tmp_path):
        config = ConvtestConfig(execution=ExecutionConfig(workers=3))
        adapter = HostAdapter(config=config, base_dir=tmp_path, logger=diag_logger)
        collector = ResultCollector()
        summary = adapter.execute(None, collector, containers=[CALCULATOR])

        assert sorted(r.test_id for r in collector.results) == sorted(CALCULATOR_IDS)
        assert summary.completed == 7

    def test_cancellation_logged(self, adapter, caplog):
        token = CancellationToken()
        token.cancel()
        with caplog.at_level(logging.WARNING, logger="convtest_tests"):
            summary = adapter.execute(None, ResultCollector(), token, containers=[CALCULATOR])

        assert summary.cancelled
        assert "7 of 7 selected test(s) not run" in caplog.text


class TestFormatResult:
    """Tests for the standalone line format."""

    def test_passed(self):
        result = TestResult(test_id="suite::adds", outcome=TestOutcome.PASSED, duration_ms=3)
        assert format_result(result) == "Passed suite::adds (3 ms)"

    def test_failed(self):
        result = TestResult(
            test_id="suite::adds", outcome=TestOutcome.FAILED, duration_ms=12, message="Expected 1, got 2"
        )
        assert format_result(result) == "Failed suite::adds (12 ms) - Expected 1, got 2"

    def test_skipped(self):
        result = TestResult(test_id="suite::later", outcome=TestOutcome.SKIPPED, skip_reason="not ready")
        assert format_result(result) == "Skipped suite::later (0 ms) - not ready"


class TestTextRunner:
    """Tests for TextRunner."""

    def test_writes_one_line_per_result(self, adapter):
        stream = io.StringIO()
        exit_code = TextRunner(adapter, stream).run([CALCULATOR])

        lines = stream.getvalue().splitlines()
        assert len(lines) == 7
        assert lines[0].startswith(f"Passed {CALCULATOR_IDS[0]} (")
        assert lines[3].startswith(f"Failed {CALCULATOR_IDS[3]} (")
        assert lines[3].endswith(" - ZeroDivisionError: division by zero")
        assert lines[6].startswith(f"Skipped {CALCULATOR_IDS[6]} (")
        assert lines[6].endswith(" ms) - not ready")
        assert exit_code == EXIT_FAILED

    def test_exit_ok_when_nothing_fails(self, adapter):
        stream = io.StringIO()
        runner = TextRunner(adapter, stream)
        exit_code = runner.run([CALCULATOR], selection=[CALCULATOR_IDS[0], CALCULATOR_IDS[6]])

        assert exit_code == EXIT_OK
        assert runner.results.passed == 1
        assert runner.results.skipped == 1

    def test_exit_code_for_adapter_error(self, adapter, tmp_path):
        stream = io.StringIO()
        exit_code = TextRunner(adapter, stream).run([str(tmp_path / "missing.py")])

        assert exit_code == EXIT_ADAPTER_ERROR
        assert stream.getvalue() == ""

    def test_malformed_container_does_not_stop_run(self, adapter):
        stream = io.StringIO()
        runner = TextRunner(adapter, stream)
        exit_code = runner.run([fixture_container("import_error"), fixture_container("decorated_suite")])

        assert exit_code == EXIT_OK
        assert runner.summary.completed == 3
        assert runner.results.skipped == 2
