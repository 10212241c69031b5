"""Shared fixtures for convtest tests."""

import logging
import textwrap
from pathlib import Path

import pytest

from convtest.core.discovery import TestDiscovery

FIXTURES = Path(__file__).parent / "fixtures" / "containers"


def fixture_container(name: str) -> str:
    """Reference to a bundled sample container."""
    return str(FIXTURES / f"{name}.py")


CALCULATOR = fixture_container("calculator_suite")

CALCULATOR_IDS = [
    f"{CALCULATOR}::Arithmetic::adds two numbers",
    f"{CALCULATOR}::Arithmetic::subtracts",
    f"{CALCULATOR}::Arithmetic::Division::divides evenly",
    f"{CALCULATOR}::Arithmetic::Division::divides by zero",
    f"{CALCULATOR}::Comparisons::equal values",
    f"{CALCULATOR}::Comparisons::unequal values",
    f"{CALCULATOR}::not ready yet",
]


@pytest.fixture
def write_container(tmp_path):
    """Write a container module into a temporary directory and return its path."""

    def _write(name: str, source: str) -> str:
        path = tmp_path / f"{name}.py"
        path.write_text(textwrap.dedent(source))
        return str(path)

    return _write


@pytest.fixture
def diag_logger():
    """A logger whose records are collected for assertions."""
    logger = logging.getLogger("convtest_tests")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def discovery(diag_logger):
    return TestDiscovery(logger=diag_logger)


@pytest.fixture
def calculator_registry(discovery):
    result = discovery.discover([CALCULATOR])
    assert result.success
    return result.registry
