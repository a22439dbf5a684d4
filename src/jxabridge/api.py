"""User-facing API entrypoints for jxabridge."""

from collections.abc import Sequence

from jxabridge.constants import DEFAULT_SHUTDOWN_TIMEOUT
from jxabridge.constants import RESULT_BUFFER_SIZE
from jxabridge.runtime import JXASession


def session(
    command: Sequence[str] | None = None,
    buffer_size: int = RESULT_BUFFER_SIZE,
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
) -> JXASession:
    """Start an interpreter and return a session bound to it.

    :param command: Interpreter command line; defaults to the JXA REPL run under ``script``.
    :param buffer_size: Maximum encoded response size in bytes.
    :param shutdown_timeout: Seconds to wait for the interpreter to exit on dispose.
    :returns: A started session; dispose it or use it as a context manager.
    """
    return JXASession(
        command=command,
        buffer_size=buffer_size,
        shutdown_timeout=shutdown_timeout,
    )
