"""Serialization-stable message shapes exchanged with a host test explorer.

Every message is one JSON object per line. Field names are camelCase on the
wire; unset optional fields are omitted.
"""

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from convtest.core.discovery import DiscoveredTest
from convtest.core.executor import ExecutionSummary
from convtest.core.results import TestOutcome, TestResult

PROTOCOL_VERSION = 1

RequestId = Union[int, str]


class WireModel(BaseModel):
    """Base for all protocol messages."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class SourceLocation(WireModel):
    file: str
    line: Optional[int] = None


class TestCaseMessage(WireModel):
    """A discovered test case."""

    type: Literal["testCase"] = "testCase"
    request: Optional[RequestId] = None
    id: str
    display_name: str
    container_ref: str
    source_location: Optional[SourceLocation] = None

    @classmethod
    def from_descriptor(cls, test: DiscoveredTest, request: Optional[RequestId] = None) -> "TestCaseMessage":
        location = None
        if test.source_file is not None:
            location = SourceLocation(file=test.source_file, line=test.line_number)
        return cls(
            request=request,
            id=test.id,
            display_name=test.display_name,
            container_ref=test.container,
            source_location=location,
        )


class ResultMessage(WireModel):
    """The result of one executed test case."""

    type: Literal["result"] = "result"
    request: Optional[RequestId] = None
    id: str
    outcome: TestOutcome
    duration_ms: int
    message: Optional[str] = None
    skip_reason: Optional[str] = None
    location: Optional[str] = None
    output: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: TestResult, request: Optional[RequestId] = None) -> "ResultMessage":
        return cls(
            request=request,
            id=result.test_id,
            outcome=result.outcome,
            duration_ms=result.duration_ms,
            message=result.message,
            skip_reason=result.skip_reason,
            location=result.location,
            output=list(result.output),
        )

    def to_result(self) -> TestResult:
        return TestResult(
            test_id=self.id,
            outcome=self.outcome,
            duration_ms=self.duration_ms,
            message=self.message,
            skip_reason=self.skip_reason,
            location=self.location,
            output=tuple(self.output),
        )


class LogMessage(WireModel):
    """Diagnostic that is not a test outcome."""

    type: Literal["log"] = "log"
    level: str
    message: str
    container: Optional[str] = None


class HelloMessage(WireModel):
    type: Literal["hello"] = "hello"
    request: Optional[RequestId] = None
    protocol_version: int = PROTOCOL_VERSION
    version: str


class DoneMessage(WireModel):
    """Marks the end of a request."""

    type: Literal["done"] = "done"
    request: Optional[RequestId] = None
    tests: Optional[int] = None
    passed: Optional[int] = None
    failed: Optional[int] = None
    skipped: Optional[int] = None
    cancelled: Optional[bool] = None

    @classmethod
    def from_summary(cls, summary: ExecutionSummary, request: Optional[RequestId] = None) -> "DoneMessage":
        return cls(
            request=request,
            tests=summary.completed,
            passed=summary.passed,
            failed=summary.failed,
            skipped=summary.skipped,
            cancelled=summary.cancelled,
        )


class ErrorMessage(WireModel):
    """Adapter-level failure of a request."""

    type: Literal["error"] = "error"
    request: Optional[RequestId] = None
    message: str


class Request(WireModel):
    """A request sent by the host."""

    id: Optional[RequestId] = None
    method: Literal["handshake", "discover", "execute", "cancel", "shutdown"]
    params: dict[str, Any] = Field(default_factory=dict)


class DiscoverParams(WireModel):
    containers: Optional[list[str]] = None


class ExecuteParams(WireModel):
    containers: Optional[list[str]] = None
    selection: Optional[list[str]] = None
