"""Remote value handles for jxabridge."""

import json
import logging
import weakref
from collections.abc import Iterator
from typing import TYPE_CHECKING

from jxabridge.errors import JXAError
from jxabridge.errors import UnsupportedValueError

if TYPE_CHECKING:
    from jxabridge.runtime import JXASession

logger = logging.getLogger(__name__)


class JSFunction:
    """JavaScript function source to be bound in the interpreter."""

    source: str

    def __init__(self, source: str) -> None:
        """Initialize from function source text.

        :param source: Single-line JavaScript function expression.
        """
        self.source = source.strip()

    def __repr__(self) -> str:
        return f"JSFunction({self.source!r})"


def json_literal(value: object) -> str:
    """Render ``value`` as a compact JSON literal.

    :param value: JSON-representable value.
    :returns: Literal text.
    :raises UnsupportedValueError: If ``value`` has no JSON form.
    """
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise UnsupportedValueError(
            f"Cannot render {type(value).__name__} as a JSON literal"
        ) from exc


def compose_get(var_name: str, key: object) -> str:
    """Build a property read expression.

    :param var_name: Target variable.
    :param key: Property key.
    :returns: Expression text.
    """
    return f"Reflect.get({var_name}, {json_literal(key)})"


def compose_set(var_name: str, key: object, value_var_name: str) -> str:
    """Build a property write expression.

    :param var_name: Target variable.
    :param key: Property key.
    :param value_var_name: Variable holding the new value.
    :returns: Expression text.
    """
    return f"Reflect.set({var_name}, {json_literal(key)}, {value_var_name})"


def compose_apply(var_name: str, this_var_name: str | None, arguments: list[str]) -> str:
    """Build a function invocation expression.

    :param var_name: Function variable.
    :param this_var_name: Receiver variable, or ``None`` for ``undefined``.
    :param arguments: Already-encoded argument expressions.
    :returns: Expression text.
    """
    receiver: str = this_var_name if this_var_name is not None else "undefined"
    return f"Reflect.apply({var_name}, {receiver}, [{', '.join(arguments)}])"


class JXAHandle:
    """Reference to a value bound to a variable in the interpreter.

    ``get``, ``set`` and ``call`` build ``Reflect`` expressions and bind their
    results to fresh variables. Attribute access, item access and calling the
    handle are shorthands for the same operations.
    """

    _session_ref: "weakref.ReferenceType[JXASession]"
    _session_id: str
    _var_name: str
    _this_var_name: str | None

    def __init__(self, session: "JXASession", var_name: str, this_var_name: str | None = None) -> None:
        """Bind a handle to a remote variable.

        :param session: Owning session.
        :param var_name: Remote variable name.
        :param this_var_name: Receiver variable for a later call, if any.
        """
        object.__setattr__(self, "_session_ref", weakref.ref(session))
        object.__setattr__(self, "_session_id", session.session_id)
        object.__setattr__(self, "_var_name", var_name)
        object.__setattr__(self, "_this_var_name", this_var_name)

    @property
    def session_id(self) -> str:
        """Return the owning session identifier.

        :returns: Session identifier.
        """
        return self._session_id

    @property
    def var_name(self) -> str:
        """Return the remote variable name.

        :returns: Variable name.
        """
        return self._var_name

    @property
    def this_var_name(self) -> str | None:
        """Return the receiver variable captured by a property read.

        :returns: Receiver variable name or ``None``.
        """
        return self._this_var_name

    def _require_session(self) -> "JXASession":
        session: JXASession | None = self._session_ref()
        if session is None:
            raise JXAError(f"Session owning {self._var_name} no longer exists")
        return session

    def get(self, key: object) -> "JXAHandle":
        """Read a property of the remote value.

        :param key: Property name or index.
        :returns: Handle to the property value, bound to this value as receiver.
        """
        session: JXASession = self._require_session()
        var_name: str = session.create_var(compose_get(self._var_name, key))
        return JXAHandle(session, var_name, this_var_name=self._var_name)

    def set(self, key: object, value: object) -> bool:
        """Write a property of the remote value.

        :param key: Property name or index.
        :param value: New value; non-handles are wrapped first.
        :returns: ``True`` when the interpreter reports the write succeeded.
        """
        session: JXASession = self._require_session()
        value_handle: JXAHandle = session.wrap(value)
        outcome: str = session.execute(compose_set(self._var_name, key, value_handle.var_name))
        return outcome == "true"

    def call(self, *args: object) -> "JXAHandle":
        """Invoke the remote value as a function.

        :param args: Arguments; handles of the same session pass by reference.
        :returns: Handle to the return value.
        """
        session: JXASession = self._require_session()
        arguments: list[str] = [session.encode_argument(arg) for arg in args]
        var_name: str = session.create_var(compose_apply(self._var_name, self._this_var_name, arguments))
        return JXAHandle(session, var_name)

    def __getattr__(self, attr_name: str) -> "JXAHandle":
        if attr_name.startswith("_"):
            raise AttributeError(attr_name)
        return self.get(attr_name)

    def __setattr__(self, attr_name: str, value: object) -> None:
        if attr_name.startswith("_"):
            raise AttributeError(f"{attr_name} is read-only")
        self.set(attr_name, value)

    def __getitem__(self, key: object) -> "JXAHandle":
        return self.get(key)

    def __setitem__(self, key: object, value: object) -> None:
        self.set(key, value)

    def __call__(self, *args: object) -> "JXAHandle":
        return self.call(*args)

    def __iter__(self) -> Iterator[object]:
        raise TypeError("JXAHandle is not iterable; unwrap it first")

    def __repr__(self) -> str:
        if self._this_var_name is None:
            return f"<JXAHandle {self._var_name}>"
        return f"<JXAHandle {self._var_name} this={self._this_var_name}>"
