"""Foreground runtime for jxabridge sessions."""

import atexit
import json
import logging
import queue
import threading
import uuid
from collections.abc import Sequence
from typing import Protocol

from jxabridge.constants import CALL_CREATE_VAR
from jxabridge.constants import CALL_DISPOSE
from jxabridge.constants import CALL_EXECUTE
from jxabridge.constants import CALL_SPAWN
from jxabridge.constants import DEFAULT_COMMAND
from jxabridge.constants import DEFAULT_SHUTDOWN_TIMEOUT
from jxabridge.constants import GLOBAL_VAR_NAME
from jxabridge.constants import MIN_BUFFER_SIZE
from jxabridge.constants import RESULT_BUFFER_SIZE
from jxabridge.constants import STATUS_OK
from jxabridge.errors import BufferOverflowError
from jxabridge.errors import ForeignHandleError
from jxabridge.errors import JXAError
from jxabridge.errors import MultiLineCodeError
from jxabridge.errors import NotSerializableError
from jxabridge.errors import ReplExecutionError
from jxabridge.errors import SessionClosedError
from jxabridge.errors import StreamEndedError
from jxabridge.errors import UnsupportedValueError
from jxabridge.handle import JSFunction
from jxabridge.handle import JXAHandle
from jxabridge.handle import json_literal
from jxabridge.worker import PendingCall
from jxabridge.worker import ResponseRegion
from jxabridge.worker import worker_entry

logger = logging.getLogger(__name__)

_REPL_ERROR_PREFIX: str = "REPL execution error: "


def _validate_command(command: Sequence[str] | None) -> list[str]:
    """Validate and normalize the interpreter command line.

    :param command: Requested command, or ``None`` for the default.
    :returns: Command as a list of strings.
    :raises ValueError: If the command is empty.
    :raises TypeError: If the command is a bare string or holds non-strings.
    """
    if command is None:
        return list(DEFAULT_COMMAND)
    if isinstance(command, str) is True:
        raise TypeError("command must be a sequence of arguments, not a string")
    normalized: list[str] = list(command)
    if len(normalized) == 0:
        raise ValueError("command cannot be empty")
    for argument in normalized:
        if isinstance(argument, str) is False:
            raise TypeError("command arguments must be strings")
    return normalized


def _validate_buffer_size(buffer_size: int) -> int:
    """Validate the response buffer capacity.

    :param buffer_size: Requested capacity in bytes.
    :returns: Validated capacity.
    :raises TypeError: If the capacity is not an integer.
    :raises ValueError: If the capacity is too small to hold an overflow report.
    """
    if isinstance(buffer_size, bool) is True or isinstance(buffer_size, int) is False:
        raise TypeError("buffer_size must be an integer")
    if buffer_size < MIN_BUFFER_SIZE:
        raise ValueError(f"buffer_size must be at least {MIN_BUFFER_SIZE} bytes")
    return buffer_size


def _validate_shutdown_timeout(shutdown_timeout: float) -> float:
    """Validate the child shutdown timeout.

    :param shutdown_timeout: Requested timeout in seconds.
    :returns: Validated timeout.
    :raises ValueError: If the timeout is not positive.
    """
    if shutdown_timeout <= 0:
        raise ValueError("shutdown_timeout must be positive")
    return float(shutdown_timeout)


def _raise_worker_error(raw_payload: bytes) -> None:
    """Raise the local exception described by a worker error payload.

    :param raw_payload: Serialized ``{"kind", "message"}`` payload.
    :raises JXAError: Always; the concrete class follows ``kind``.
    """
    text: str = raw_payload.decode("utf-8", errors="replace")
    try:
        payload: object = json.loads(text)
    except ValueError:
        raise JXAError(f"Malformed error payload from worker: {text!r}") from None
    if isinstance(payload, dict) is False:
        raise JXAError(f"Malformed error payload from worker: {text!r}")

    kind: object = payload.get("kind")
    message_obj: object = payload.get("message", "")
    message: str = message_obj if isinstance(message_obj, str) else str(message_obj)

    if kind == "MultiLineCodeError":
        raise MultiLineCodeError()
    if kind == "StreamEndedError":
        raise StreamEndedError()
    if kind == "ReplExecutionError":
        error_text: str = message
        if error_text.startswith(_REPL_ERROR_PREFIX) is True:
            error_text = error_text[len(_REPL_ERROR_PREFIX):]
        raise ReplExecutionError(error_text)
    if kind == "BufferOverflowError":
        raise BufferOverflowError(message)
    raise JXAError(message)


class Bridge(Protocol):
    """Blocking call interface used by sessions."""

    def call(self, call_type: str, payload: str) -> str: ...

    def close(self) -> None: ...


class SyncBridge:
    """Drive a worker thread that owns the interpreter, one blocking call at a time."""

    _command: list[str]
    _buffer_size: int
    _shutdown_timeout: float
    _requests: "queue.SimpleQueue[PendingCall]"
    _thread: threading.Thread | None
    _lock: threading.RLock
    _is_closed: bool

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_COMMAND,
        buffer_size: int = RESULT_BUFFER_SIZE,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> None:
        """Initialize an unstarted bridge.

        :param command: Interpreter command line.
        :param buffer_size: Response capacity in bytes.
        :param shutdown_timeout: Seconds to wait for the child and thread on close.
        """
        self._command = list(command)
        self._buffer_size = buffer_size
        self._shutdown_timeout = shutdown_timeout
        self._requests = queue.SimpleQueue()
        self._thread = None
        self._lock = threading.RLock()
        self._is_closed = False

    @property
    def is_closed(self) -> bool:
        """Report whether the bridge has been closed.

        :returns: ``True`` when closed.
        """
        with self._lock:
            return self._is_closed

    def start(self) -> None:
        """Start the worker thread and wait until the interpreter is spawned.

        :raises JXAError: If the interpreter cannot be started.
        """
        with self._lock:
            if self._thread is not None:
                return

            startup: PendingCall = PendingCall(CALL_SPAWN, "", self._buffer_size)
            thread: threading.Thread = threading.Thread(
                target=worker_entry,
                args=(self._requests, startup, self._command, self._shutdown_timeout),
                name="jxabridge-worker",
                daemon=True,
            )
            self._thread = thread
            thread.start()
            startup.done.wait()

            try:
                self._decode(startup.region)
            except JXAError:
                self._is_closed = True
                thread.join(timeout=self._shutdown_timeout)
                raise

    def _decode(self, region: ResponseRegion) -> str:
        """Decode a completed response region.

        :param region: Completed region.
        :returns: Result text.
        """
        raw_payload: bytes = region.load()
        if region.status == STATUS_OK:
            return raw_payload.decode("utf-8")
        _raise_worker_error(raw_payload)
        raise JXAError("Unreachable worker error state")

    def call(self, call_type: str, payload: str) -> str:
        """Send one request to the worker and block until it completes.

        :param call_type: Request type.
        :param payload: Request payload.
        :returns: Result text.
        :raises SessionClosedError: If the bridge is closed or not started.
        """
        with self._lock:
            if self._is_closed is True:
                raise SessionClosedError("Session is disposed")
            if self._thread is None:
                raise SessionClosedError("Session is not started")

            pending: PendingCall = PendingCall(call_type, payload, self._buffer_size)
            self._requests.put(pending)
            pending.done.wait()
            return self._decode(pending.region)

    def close(self) -> None:
        """Dispose the interpreter, then release the worker thread."""
        with self._lock:
            if self._is_closed is True:
                return
            thread: threading.Thread | None = self._thread
            try:
                if thread is not None:
                    self.call(CALL_DISPOSE, "")
            finally:
                self._is_closed = True
                if thread is not None:
                    thread.join(timeout=self._shutdown_timeout)


class JXASession:
    """Synchronous session with one interpreter process."""

    _session_id: str
    _bridge: Bridge
    _global_this: JXAHandle | None
    _is_disposed: bool

    def __init__(
        self,
        command: Sequence[str] | None = None,
        buffer_size: int = RESULT_BUFFER_SIZE,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        bridge: Bridge | None = None,
    ) -> None:
        """Start a session.

        :param command: Interpreter command line; defaults to the JXA REPL under ``script``.
        :param buffer_size: Response capacity in bytes.
        :param shutdown_timeout: Seconds to wait for the child on dispose.
        :param bridge: Pre-built bridge to use instead of spawning a worker.
        :raises JXAError: If the interpreter cannot be started.
        """
        self._session_id = uuid.uuid4().hex
        self._global_this = None
        self._is_disposed = False

        if bridge is None:
            sync_bridge: SyncBridge = SyncBridge(
                _validate_command(command),
                buffer_size=_validate_buffer_size(buffer_size),
                shutdown_timeout=_validate_shutdown_timeout(shutdown_timeout),
            )
            sync_bridge.start()
            bridge = sync_bridge
        self._bridge = bridge
        atexit.register(self.dispose)
        logger.debug("session %s started", self._session_id)

    @property
    def session_id(self) -> str:
        """Return this session's identifier.

        :returns: Session identifier.
        """
        return self._session_id

    @property
    def is_disposed(self) -> bool:
        """Report whether :meth:`dispose` has run.

        :returns: ``True`` once disposed.
        """
        return self._is_disposed

    def execute(self, code: str) -> str:
        """Execute one single-line statement.

        :param code: Statement text.
        :returns: Textual result printed by the interpreter.
        """
        return self._bridge.call(CALL_EXECUTE, code)

    def create_var(self, expression: str) -> str:
        """Bind ``expression`` to a fresh remote constant.

        :param expression: Single-line expression.
        :returns: Generated variable name.
        """
        return self._bridge.call(CALL_CREATE_VAR, expression)

    def owns(self, value: object) -> bool:
        """Report whether ``value`` is a handle created by this session.

        :param value: Any value.
        :returns: ``True`` for handles of this session.
        """
        if isinstance(value, JXAHandle) is False:
            return False
        return value.session_id == self._session_id

    def encode_argument(self, value: object) -> str:
        """Render one call argument as an expression.

        Handles of this session pass by variable name. Handles of other
        sessions cannot be resolved here and are sent as ``null``.

        :param value: Argument value.
        :returns: Expression text.
        """
        if isinstance(value, JXAHandle) is True:
            if value.session_id == self._session_id:
                return value.var_name
            logger.warning("handle %r belongs to another session; passing null", value)
            return "null"
        if isinstance(value, JSFunction) is True:
            return f"({value.source})"
        return json_literal(value)

    def wrap(self, value: object) -> JXAHandle:
        """Bind a local value in the interpreter.

        Handles of other sessions are bound as ``null``, like call arguments.

        :param value: JSON-representable value, :class:`JSFunction`, or a handle of this session.
        :returns: Handle to the bound value.
        :raises UnsupportedValueError: If ``value`` has no remote form.
        """
        if isinstance(value, JXAHandle) is True and value.session_id == self._session_id:
            return value

        expression: str
        if isinstance(value, JSFunction) is True:
            expression = value.source
        elif isinstance(value, JXAHandle) is False and callable(value) is True:
            raise UnsupportedValueError(
                f"Cannot render {type(value).__name__} as function source; use JSFunction"
            )
        else:
            expression = self.encode_argument(value)
        return JXAHandle(self, self.create_var(expression))

    def unwrap(self, handle: JXAHandle) -> object:
        """Fetch the JSON value of a remote binding.

        :param handle: Handle owned by this session.
        :returns: Decoded JSON value.
        :raises ForeignHandleError: If the handle belongs to another session.
        :raises NotSerializableError: If the value has no JSON representation.
        """
        if self.owns(handle) is False:
            raise ForeignHandleError("Handle does not belong to this session")

        text: str = self.execute(handle.var_name)
        try:
            return json.loads(text)
        except ValueError:
            raise NotSerializableError(
                f"Value of {handle.var_name} is not JSON serializable",
                original_output=text,
            ) from None

    @property
    def global_this(self) -> JXAHandle:
        """Return the handle on the interpreter's global object.

        :returns: Root handle.
        """
        if self._global_this is None:
            self._global_this = JXAHandle(self, GLOBAL_VAR_NAME)
        return self._global_this

    def dispose(self) -> None:
        """Stop the interpreter and the worker thread."""
        if self._is_disposed is True:
            return
        self._is_disposed = True
        atexit.unregister(self.dispose)
        try:
            self._bridge.close()
        finally:
            logger.debug("session %s disposed", self._session_id)

    def __enter__(self) -> "JXASession":
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        self.dispose()
