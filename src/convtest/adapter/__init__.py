"""Host adapter protocol, wire messages and the standalone runner."""

from convtest.adapter.protocol import HostAdapter
from convtest.adapter.server import AdapterServer
from convtest.adapter.standalone import TextRunner, format_result
from convtest.adapter.wire import PROTOCOL_VERSION, ResultMessage, TestCaseMessage

__all__ = [
    "PROTOCOL_VERSION",
    "AdapterServer",
    "HostAdapter",
    "ResultMessage",
    "TestCaseMessage",
    "TextRunner",
    "format_result",
]
