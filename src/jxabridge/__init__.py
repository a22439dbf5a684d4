"""Public package API for jxabridge."""

from jxabridge.api import session
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
from jxabridge.runtime import JXASession

__all__: list[str] = [
    "session",
    "JSFunction",
    "JXAHandle",
    "JXASession",
    "BufferOverflowError",
    "ForeignHandleError",
    "JXAError",
    "MultiLineCodeError",
    "NotSerializableError",
    "ReplExecutionError",
    "SessionClosedError",
    "StreamEndedError",
    "UnsupportedValueError",
]
