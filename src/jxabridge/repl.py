"""Child interpreter process and reply parsing for jxabridge."""

import enum
import logging
import subprocess
from collections.abc import Sequence
from typing import IO

from jxabridge.constants import DEFAULT_COMMAND
from jxabridge.constants import DEFAULT_SHUTDOWN_TIMEOUT
from jxabridge.constants import ERROR_MARKER
from jxabridge.constants import PROMPT_MARKER
from jxabridge.constants import SUCCESS_MARKER
from jxabridge.errors import JXAError
from jxabridge.errors import MultiLineCodeError
from jxabridge.errors import ReplExecutionError
from jxabridge.errors import StreamEndedError

logger = logging.getLogger(__name__)


class LineKind(enum.Enum):
    """Classification of one interpreter output line."""

    PROMPT = "prompt"
    SUCCESS = "success"
    ERROR = "error"
    OTHER = "other"


class ReplyState(enum.Enum):
    """States of the reply parser."""

    AWAITING_RESULT = "awaiting_result"
    HAVE_RESULT = "have_result"


def classify_line(line: str) -> tuple[LineKind, str]:
    """Classify one output line by its marker prefix.

    :param line: Output line without its line terminator.
    :returns: Tuple of ``(kind, remainder)``; the remainder is the whole line for ``OTHER``.
    """
    if line.startswith(PROMPT_MARKER) is True:
        return LineKind.PROMPT, line[len(PROMPT_MARKER):]
    if line.startswith(SUCCESS_MARKER) is True:
        return LineKind.SUCCESS, line[len(SUCCESS_MARKER):]
    if line.startswith(ERROR_MARKER) is True:
        return LineKind.ERROR, line[len(ERROR_MARKER):]
    return LineKind.OTHER, line


class ReplyParser:
    """Accumulate the reply to one submission, line by line.

    The parser skips the command echo and any chatter printed before the
    result, captures the first result line, appends continuation lines, and
    ignores the result of the trailing blank submission. The reply is complete
    at the first prompt line seen after a result.
    """

    _state: ReplyState
    _result: str
    _is_error: bool
    _is_complete: bool

    def __init__(self) -> None:
        """Initialize a parser waiting for a result."""
        self._state = ReplyState.AWAITING_RESULT
        self._result = ""
        self._is_error = False
        self._is_complete = False

    @property
    def state(self) -> ReplyState:
        """Return the current parser state.

        :returns: Parser state.
        """
        return self._state

    @property
    def is_complete(self) -> bool:
        """Report whether the reply has ended.

        :returns: ``True`` once a prompt followed a captured result.
        """
        return self._is_complete

    def feed(self, line: str) -> bool:
        """Consume one output line.

        :param line: Output line without its line terminator.
        :returns: ``True`` when the reply is complete.
        """
        kind, remainder = classify_line(line)

        if self._state is ReplyState.AWAITING_RESULT:
            if kind is LineKind.SUCCESS or kind is LineKind.ERROR:
                self._result = remainder
                self._is_error = kind is LineKind.ERROR
                self._state = ReplyState.HAVE_RESULT
            return False

        if kind is LineKind.SUCCESS or kind is LineKind.ERROR:
            return False
        if kind is LineKind.PROMPT:
            self._is_complete = True
            return True

        self._result += f"\n{line}"
        return False

    def result(self) -> str:
        """Return the captured result of a completed reply.

        :returns: Captured result text.
        :raises ReplExecutionError: If the interpreter reported an error.
        :raises RuntimeError: If the reply is not complete yet.
        """
        if self._is_complete is False:
            raise RuntimeError("Reply is not complete")
        if self._is_error is True:
            raise ReplExecutionError(self._result)
        return self._result


class ReplProcess:
    """Own one interpreter child process and run statements through it."""

    _command: list[str]
    _shutdown_timeout: float
    _process: "subprocess.Popen[str]"
    _stdin: IO[str]
    _stdout: IO[str]
    _var_counter: int
    _stream_ended: bool
    _is_disposed: bool

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_COMMAND,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> None:
        """Spawn the interpreter.

        :param command: Command line that starts the interpreter under a pty.
        :param shutdown_timeout: Seconds to wait for the child to exit on dispose.
        :raises OSError: If the command cannot be started.
        :raises JXAError: If the child was started without stdio pipes.
        """
        self._command = list(command)
        self._shutdown_timeout = shutdown_timeout
        self._var_counter = 0
        self._stream_ended = False
        self._is_disposed = False

        logger.debug("spawning interpreter: %s", " ".join(self._command))
        self._process = subprocess.Popen(
            self._command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        if self._process.stdin is None or self._process.stdout is None:
            self._process.kill()
            raise JXAError("Interpreter pipes are not available")
        self._stdin = self._process.stdin
        self._stdout = self._process.stdout

    @property
    def pid(self) -> int:
        """Return the child process id.

        :returns: Process id.
        """
        return self._process.pid

    def _write_submission(self, trimmed_code: str) -> None:
        """Write one statement followed by the terminating blank line.

        :param trimmed_code: Single-line statement.
        :raises StreamEndedError: If the child no longer accepts input.
        """
        try:
            self._stdin.write(f"{trimmed_code}\n\n")
            self._stdin.flush()
        except (BrokenPipeError, ValueError) as exc:
            self._stream_ended = True
            raise StreamEndedError() from exc

    def _read_line(self) -> str:
        """Read one output line.

        :returns: Line without its terminator.
        :raises StreamEndedError: If the output stream is exhausted.
        """
        line: str = self._stdout.readline()
        if line == "":
            self._stream_ended = True
            raise StreamEndedError()
        return line.rstrip("\r\n")

    def execute(self, code: str) -> str:
        """Execute one single-line statement and return its textual result.

        :param code: Statement to submit; surrounding whitespace is trimmed.
        :returns: Textual result printed by the interpreter.
        :raises MultiLineCodeError: If the trimmed code contains a newline.
        :raises ReplExecutionError: If the interpreter reports an error.
        :raises StreamEndedError: If the child output ends before the reply does.
        """
        trimmed_code: str = code.strip()
        if "\n" in trimmed_code:
            raise MultiLineCodeError()
        if self._stream_ended is True:
            raise StreamEndedError()

        logger.debug("submitting: %s", trimmed_code)
        self._write_submission(trimmed_code)

        parser: ReplyParser = ReplyParser()
        while parser.feed(self._read_line()) is False:
            pass
        return parser.result()

    def create_var(self, expression: str) -> str:
        """Bind ``expression`` to a fresh remote constant.

        :param expression: Single-line expression.
        :returns: Generated variable name.
        """
        var_name: str = f"${self._var_counter}"
        self._var_counter += 1
        self.execute(f"const {var_name} = {expression}")
        return var_name

    def dispose(self) -> None:
        """Close the input stream and wait for the child to exit."""
        if self._is_disposed is True:
            return
        self._is_disposed = True

        try:
            self._stdin.close()
        except (BrokenPipeError, OSError):
            pass

        try:
            self._process.wait(timeout=self._shutdown_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("interpreter %s did not exit; terminating", self._process.pid)
            self._process.terminate()
            try:
                self._process.wait(timeout=self._shutdown_timeout)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait()

        try:
            self._stdout.close()
        except OSError:
            pass
        logger.debug("interpreter %s exited with %s", self._process.pid, self._process.returncode)
