"""Storage layer for run history and results."""

from convtest.storage.database import Database
from convtest.storage.models import TestHistory, TestRun

__all__ = ["Database", "TestRun", "TestHistory"]
