"""Custom error types for jxabridge."""


class JXAError(Exception):
    """Base class for all bridge errors."""


class MultiLineCodeError(JXAError):
    """Raised when submitted code spans more than one line."""

    def __init__(self) -> None:
        """Initialize with the fixed multi-line message."""
        super().__init__("Multi-line code is not supported")


class StreamEndedError(JXAError):
    """Raised when the interpreter output stream closes mid-call."""

    def __init__(self) -> None:
        """Initialize with the fixed stream-ended message."""
        super().__init__("Stream ended unexpectedly")


class ReplExecutionError(JXAError):
    """Raised when the remote interpreter reports an error result."""

    error: str

    def __init__(self, error: str) -> None:
        """Initialize a remote evaluation error.

        :param error: Error text reported by the interpreter.
        """
        self.error = error
        super().__init__(f"REPL execution error: {error}")


class BufferOverflowError(JXAError):
    """Raised when a response does not fit the response buffer."""


class NotSerializableError(JXAError):
    """Raised when a remote value has no JSON representation."""

    original_output: str

    def __init__(self, message: str, original_output: str) -> None:
        """Initialize a serialization failure.

        :param message: Human-readable failure description.
        :param original_output: Raw textual form printed by the interpreter.
        """
        self.original_output = original_output
        super().__init__(message)


class SessionClosedError(JXAError):
    """Raised when a disposed session is used."""


class UnsupportedValueError(JXAError):
    """Raised when a local value cannot be rendered as a remote literal."""


class ForeignHandleError(ValueError):
    """Raised when a handle is used with a session that does not own it."""
