"""Background worker thread hosting the interpreter for jxabridge."""

import json
import logging
import queue
import threading
from collections.abc import Sequence

from jxabridge.constants import CALL_CREATE_VAR
from jxabridge.constants import CALL_DISPOSE
from jxabridge.constants import CALL_EXECUTE
from jxabridge.constants import CALL_SPAWN
from jxabridge.constants import STATUS_ERROR
from jxabridge.constants import STATUS_OK
from jxabridge.constants import STATUS_PENDING
from jxabridge.errors import BufferOverflowError
from jxabridge.errors import JXAError
from jxabridge.repl import ReplProcess

logger = logging.getLogger(__name__)


class ResponseRegion:
    """Fixed-capacity response buffer for one pending call.

    The payload holds UTF-8 bytes followed by one terminator byte, so a
    payload must be strictly shorter than the capacity.
    """

    _capacity: int
    _status: int
    _payload: bytearray
    _length: int

    def __init__(self, capacity: int) -> None:
        """Allocate an empty region.

        :param capacity: Payload segment size in bytes.
        """
        self._capacity = capacity
        self._status = STATUS_PENDING
        self._payload = bytearray(capacity)
        self._length = 0

    @property
    def capacity(self) -> int:
        """Return the payload capacity in bytes.

        :returns: Capacity.
        """
        return self._capacity

    @property
    def status(self) -> int:
        """Return the status word.

        :returns: ``STATUS_PENDING``, ``STATUS_OK`` or ``STATUS_ERROR``.
        """
        return self._status

    def _store(self, status: int, data: bytes) -> None:
        self._payload[: len(data)] = data
        self._payload[len(data)] = 0
        self._length = len(data)
        self._status = status

    def store_result(self, text: str) -> None:
        """Store a successful result.

        :param text: Result text.
        :raises BufferOverflowError: If the encoded text does not fit.
        """
        encoded: bytes = text.encode("utf-8")
        if len(encoded) >= self._capacity:
            raise BufferOverflowError(
                f"Message length ({len(encoded)} bytes) exceeds buffer size ({self._capacity} bytes)"
            )
        self._store(STATUS_OK, encoded)

    def store_error(self, kind: str, message: str) -> None:
        """Store a serialized error, substituting an overflow report if it does not fit.

        :param kind: Error kind name.
        :param message: Error message.
        """
        encoded: bytes = json.dumps({"kind": kind, "message": message}).encode("utf-8")
        if len(encoded) >= self._capacity:
            fallback: dict[str, str] = {
                "kind": "BufferOverflowError",
                "message": (
                    f"Error message length ({len(encoded)} bytes) exceeds buffer size "
                    + f"({self._capacity} bytes)"
                ),
            }
            encoded = json.dumps(fallback).encode("utf-8")
        self._store(STATUS_ERROR, encoded)

    def load(self) -> bytes:
        """Return the stored payload bytes without the terminator.

        :returns: Payload bytes.
        """
        return bytes(self._payload[: self._length])


class PendingCall:
    """One request travelling from the foreground to the worker thread."""

    call_type: str
    payload: str
    region: ResponseRegion
    done: threading.Event

    def __init__(self, call_type: str, payload: str, capacity: int) -> None:
        """Initialize a call with a fresh response region and completion flag.

        :param call_type: Request type.
        :param payload: Request payload.
        :param capacity: Response capacity in bytes.
        """
        self.call_type = call_type
        self.payload = payload
        self.region = ResponseRegion(capacity)
        self.done = threading.Event()


def complete_call(call: PendingCall, result: str | None, error: BaseException | None) -> None:
    """Store the outcome of ``call`` and signal completion exactly once.

    :param call: Call to complete.
    :param result: Result text when the call succeeded.
    :param error: Exception when the call failed.
    """
    try:
        if error is None:
            try:
                call.region.store_result(result if result is not None else "")
            except BufferOverflowError as exc:
                error = exc
        if error is not None:
            call.region.store_error(type(error).__name__, str(error))
    finally:
        call.done.set()


class WorkerRuntime:
    """Dispatch pending calls to the interpreter process."""

    _requests: "queue.SimpleQueue[PendingCall]"
    _command: list[str]
    _shutdown_timeout: float
    _repl: ReplProcess | None

    def __init__(
        self,
        requests: "queue.SimpleQueue[PendingCall]",
        command: Sequence[str],
        shutdown_timeout: float,
    ) -> None:
        """Initialize worker state.

        :param requests: Queue the foreground submits calls to.
        :param command: Interpreter command line.
        :param shutdown_timeout: Seconds to wait for the child on dispose.
        """
        self._requests = requests
        self._command = list(command)
        self._shutdown_timeout = shutdown_timeout
        self._repl = None

    def _require_repl(self) -> ReplProcess:
        if self._repl is None:
            raise JXAError("Interpreter is not running")
        return self._repl

    def _dispatch(self, call: PendingCall) -> str:
        """Run one call against the interpreter.

        :param call: Call to run.
        :returns: Result text.
        :raises JXAError: If the call type is unknown.
        """
        if call.call_type == CALL_EXECUTE:
            return self._require_repl().execute(call.payload)
        if call.call_type == CALL_CREATE_VAR:
            return self._require_repl().create_var(call.payload)
        if call.call_type == CALL_DISPOSE:
            if self._repl is not None:
                self._repl.dispose()
            return "disposed"
        raise JXAError(f"Unknown message type: {call.call_type}")

    def handle(self, call: PendingCall) -> None:
        """Run one call and complete it.

        :param call: Call to run.
        """
        try:
            result: str = self._dispatch(call)
        except Exception as exc:
            logger.debug("%s failed: %s", call.call_type, exc)
            complete_call(call, None, exc)
            return
        complete_call(call, result, None)

    def run(self, startup: PendingCall) -> None:
        """Spawn the interpreter, then serve calls until disposed.

        :param startup: Call completed once the interpreter is spawned.
        """
        try:
            self._repl = ReplProcess(self._command, shutdown_timeout=self._shutdown_timeout)
        except Exception as exc:
            complete_call(startup, None, JXAError(f"Failed to start interpreter: {exc}"))
            return
        complete_call(startup, "ready", None)
        logger.debug("worker ready for interpreter %s", self._repl.pid)

        while True:
            call: PendingCall = self._requests.get()
            self.handle(call)
            if call.call_type == CALL_DISPOSE:
                break
        logger.debug("worker stopped")


def worker_entry(
    requests: "queue.SimpleQueue[PendingCall]",
    startup: PendingCall,
    command: Sequence[str],
    shutdown_timeout: float,
) -> None:
    """Run the worker loop in the current thread.

    :param requests: Queue the foreground submits calls to.
    :param startup: Spawn handshake call.
    :param command: Interpreter command line.
    :param shutdown_timeout: Seconds to wait for the child on dispose.
    """
    if startup.call_type != CALL_SPAWN:
        complete_call(startup, None, JXAError(f"Unexpected startup call: {startup.call_type}"))
        return
    runtime: WorkerRuntime = WorkerRuntime(requests, command, shutdown_timeout)
    runtime.run(startup)
