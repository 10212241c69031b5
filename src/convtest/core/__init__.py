"""Core registration, discovery and execution functionality."""

from convtest.core.context import AssertionContext, AssertionFailure, ContextFinishedError, SkipSignal
from convtest.core.discovery import DiscoveredTest, DiscoveryResult, TestDiscovery
from convtest.core.executor import CancellationToken, ExecutionSummary, TestExecutor
from convtest.core.registry import GroupHandle, Registrar, Registry, TestCase, TestGroup
from convtest.core.results import ResultCollector, TestOutcome, TestResult

__all__ = [
    "AssertionContext",
    "AssertionFailure",
    "CancellationToken",
    "ContextFinishedError",
    "DiscoveredTest",
    "DiscoveryResult",
    "ExecutionSummary",
    "GroupHandle",
    "Registrar",
    "Registry",
    "ResultCollector",
    "SkipSignal",
    "TestCase",
    "TestDiscovery",
    "TestExecutor",
    "TestGroup",
    "TestOutcome",
    "TestResult",
]
