"""
convtest - convention-based test registration and execution.

This package provides tools to:
- Register groups and tests with a Registrar instead of decorators or naming rules
- Discover tests by locating one registration function per module
- Run selected tests with per-test isolation and streamed results
- Drive discovery and execution from an IDE test explorer over a JSON-lines protocol
"""

from convtest.core.context import AssertionContext
from convtest.core.registry import Registrar

__version__ = "0.1.0"
__author__ = "convtest Team"

__all__ = ["AssertionContext", "Registrar", "__version__"]
