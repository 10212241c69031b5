"""JSON-lines server exposing the host adapter across a process boundary.

The host writes one request per line to stdin and reads events from stdout.
Test code that prints is redirected to stderr so it cannot corrupt the
event stream.
"""

import logging
import sys
import threading
from contextlib import redirect_stdout
from typing import Optional, TextIO

from pydantic import ValidationError

from convtest import __version__
from convtest.adapter.protocol import HostAdapter
from convtest.adapter.wire import (
    DiscoverParams,
    DoneMessage,
    ErrorMessage,
    ExecuteParams,
    HelloMessage,
    LogMessage,
    Request,
    RequestId,
    ResultMessage,
    TestCaseMessage,
    WireModel,
)
from convtest.core.executor import CancellationToken
from convtest.errors import AdapterError


class _ForwardingHandler(logging.Handler):
    """Turns adapter log records into ``log`` events."""

    def __init__(self, server: "AdapterServer", level: int = logging.INFO):
        super().__init__(level)
        self.server = server

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.server.send(
                LogMessage(
                    level=record.levelname.lower(),
                    message=record.getMessage(),
                    container=getattr(record, "container", None),
                )
            )
        except Exception:
            self.handleError(record)


class AdapterServer:
    """Reads requests, dispatches them to a ``HostAdapter`` and streams events."""

    def __init__(
        self,
        adapter: HostAdapter,
        input_stream: Optional[TextIO] = None,
        output_stream: Optional[TextIO] = None,
        log_level: int = logging.INFO,
    ):
        self.adapter = adapter
        self.input_stream = input_stream or sys.stdin
        self.output_stream = output_stream or sys.stdout
        self.log_level = log_level
        self._write_lock = threading.Lock()
        self._execution: Optional[threading.Thread] = None
        self._cancellation: Optional[CancellationToken] = None

    def send(self, message: WireModel) -> None:
        """Write one event; safe to call from any thread."""
        with self._write_lock:
            self.output_stream.write(message.to_json() + "\n")
            self.output_stream.flush()

    @property
    def busy(self) -> bool:
        return self._execution is not None and self._execution.is_alive()

    def serve(self) -> int:
        """Process requests until ``shutdown`` or end of input."""
        handler = _ForwardingHandler(self, self.log_level)
        self.adapter.logger.addHandler(handler)
        try:
            with redirect_stdout(sys.stderr):
                self.send(HelloMessage(version=__version__))
                for line in self.input_stream:
                    line = line.strip()
                    if not line:
                        continue
                    if not self.handle_line(line):
                        break
        finally:
            # End of input lets a running execution finish; shutdown cancels it.
            self.wait()
            self.adapter.logger.removeHandler(handler)
        return 0

    def wait(self, timeout: Optional[float] = None) -> None:
        """Wait for a running execution to finish."""
        if self._execution is not None:
            self._execution.join(timeout)

    def handle_line(self, line: str) -> bool:
        """Handle one raw request line. Returns False to stop serving."""
        try:
            request = Request.model_validate_json(line)
        except ValidationError as e:
            self.send(ErrorMessage(message=f"Invalid request: {e.errors()[0]['msg']}"))
            return True
        return self.handle(request)

    def handle(self, request: Request) -> bool:
        """Dispatch a parsed request. Returns False to stop serving."""
        try:
            if request.method == "handshake":
                self.send(HelloMessage(request=request.id, version=__version__))
            elif request.method == "discover":
                self._discover(request)
            elif request.method == "execute":
                self._start_execute(request)
            elif request.method == "cancel":
                if self._cancellation is not None:
                    self._cancellation.cancel()
                self.send(DoneMessage(request=request.id))
            elif request.method == "shutdown":
                if self._cancellation is not None:
                    self._cancellation.cancel()
                self.wait()
                self.send(DoneMessage(request=request.id))
                return False
        except ValidationError as e:
            self.send(ErrorMessage(request=request.id, message=f"Invalid params: {e.errors()[0]['msg']}"))
        except AdapterError as e:
            self.send(ErrorMessage(request=request.id, message=str(e)))
        return True

    def _check_idle(self) -> None:
        if self.busy:
            raise AdapterError("An execution is already running")

    def _discover(self, request: Request) -> None:
        self._check_idle()
        params = DiscoverParams.model_validate(request.params)
        count = 0
        for test in self.adapter.discover(params.containers):
            self.send(TestCaseMessage.from_descriptor(test, request=request.id))
            count += 1
        self.send(DoneMessage(request=request.id, tests=count))

    def _start_execute(self, request: Request) -> None:
        self._check_idle()
        params = ExecuteParams.model_validate(request.params)
        if params.containers is None and self.adapter.registry is None:
            raise AdapterError("Nothing discovered yet; send discover or pass containers")

        self._cancellation = CancellationToken()
        self._execution = threading.Thread(
            target=self._execute,
            args=(request.id, params, self._cancellation),
            name="convtest-execute",
            daemon=True,
        )
        self._execution.start()

    def _execute(
        self, request_id: Optional[RequestId], params: ExecuteParams, cancellation: CancellationToken
    ) -> None:
        def on_result(result) -> None:
            self.send(ResultMessage.from_result(result, request=request_id))

        try:
            summary = self.adapter.execute(
                params.selection,
                on_result,
                cancellation,
                containers=params.containers,
            )
        except AdapterError as e:
            self.send(ErrorMessage(request=request_id, message=str(e)))
            return
        except Exception as e:
            self.adapter.logger.exception("Execution failed")
            self.send(ErrorMessage(request=request_id, message=f"{type(e).__name__}: {e}"))
            return
        self.send(DoneMessage.from_summary(summary, request=request_id))
