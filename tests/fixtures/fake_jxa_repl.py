"""Scripted stand-in for the JXA REPL, run as a child process by the tests.

Every input line is echoed behind ``>> ``; results are printed behind
``=> `` and thrown errors behind ``!! ``. Only the statement shapes the test
suite submits are understood.
"""

import json
import re
import sys

PROMPT: str = ">> "


class Undefined:
    """JavaScript ``undefined``."""


UNDEFINED: Undefined = Undefined()


class Thrown(Exception):
    """Error thrown by a fake statement."""


class Function:
    """Function value; only its name and source are kept."""

    name: str
    source: str

    def __init__(self, name: str, source: str = "") -> None:
        self.name = name
        self.source = source


class NativeMethod:
    """Built-in method looked up on an array."""

    name: str

    def __init__(self, name: str) -> None:
        self.name = name


BINDINGS: dict[str, object] = {
    "globalThis": {"answer": 42, "greeting": "hello"},
}

_CONST_PATTERN: re.Pattern[str] = re.compile(r"^const (\$\d+) = (.+)$")
_NAMED_FUNCTION_PATTERN: re.Pattern[str] = re.compile(r"^function\s+([A-Za-z_$][\w$]*)\s*\(")
_ARROW_PATTERN: re.Pattern[str] = re.compile(r"^\(?[\w$]*(?:\s*,\s*[\w$]+)*\)?\s*=>")
_SUM_PATTERN: re.Pattern[str] = re.compile(r"^(-?\d+) \+ (-?\d+)$")
_CALL_PATTERN: re.Pattern[str] = re.compile(r"^([A-Za-z.]+)\((.*)\)$")
_REPEAT_PATTERN: re.Pattern[str] = re.compile(r"^(.+)\.repeat\((\d+)\)$")


def split_arguments(text: str) -> list[str]:
    """Split comma-separated arguments at bracket depth zero."""
    parts: list[str] = []
    depth: int = 0
    quote: str | None = None
    escaped: bool = False
    current: list[str] = []
    for char in text:
        if quote is not None:
            current.append(char)
            if escaped is True:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in "\"'":
            quote = char
        elif char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        elif char == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    tail: str = "".join(current).strip()
    if len(tail) > 0:
        parts.append(tail)
    return parts


def reflect_get(target: object, key: object) -> object:
    if isinstance(target, dict):
        return target.get(str(key), UNDEFINED)
    if isinstance(target, list):
        if key == "length":
            return len(target)
        if key in ("push", "filter"):
            return NativeMethod(str(key))
        if isinstance(key, int) and 0 <= key < len(target):
            return target[key]
        return UNDEFINED
    if isinstance(target, str) and key == "length":
        return len(target)
    if isinstance(target, Function) and key == "name":
        return target.name
    if isinstance(target, (Undefined, type(None))):
        raise Thrown(f"TypeError: undefined is not an object (evaluating '{key}')")
    return UNDEFINED


def reflect_set(target: object, key: object, value: object) -> bool:
    if isinstance(target, dict):
        target[str(key)] = value
        return True
    if isinstance(target, list) and isinstance(key, int) and 0 <= key < len(target):
        target[key] = value
        return True
    return False


def call_predicate(predicate: object, item: object) -> bool:
    if not isinstance(predicate, Function):
        raise Thrown("TypeError: predicate is not a function")
    match = re.fullmatch(r"\(?(\w+)\)? => \1 % (\d+) === (\d+)", predicate.source)
    if match is None or not isinstance(item, int):
        raise Thrown("TypeError: fake interpreter cannot call this function")
    return item % int(match.group(2)) == int(match.group(3))


def reflect_apply(function: object, receiver: object, arguments: object) -> object:
    if not isinstance(function, NativeMethod):
        raise Thrown("TypeError: fake interpreter cannot call this function")
    if not isinstance(receiver, list) or not isinstance(arguments, list):
        raise Thrown(f"TypeError: Array.prototype.{function.name} called on undefined")
    if function.name == "push":
        receiver.extend(arguments)
        return len(receiver)
    return [item for item in receiver if call_predicate(arguments[0], item) is True]


def evaluate(expression: str) -> object:
    expression = expression.strip()

    const_match = _CONST_PATTERN.match(expression)
    if const_match is not None:
        name: str = const_match.group(1)
        if name in BINDINGS:
            raise Thrown(f"SyntaxError: Can't create duplicate variable: '{name}'")
        BINDINGS[name] = evaluate(const_match.group(2))
        return UNDEFINED

    if expression in BINDINGS:
        return BINDINGS[expression]
    if expression == "undefined":
        return UNDEFINED
    if expression == "Error":
        return Function("Error")

    named_match = _NAMED_FUNCTION_PATTERN.match(expression)
    if named_match is not None:
        return Function(named_match.group(1), expression)
    if expression.startswith("(") and expression.endswith(")"):
        return evaluate(expression[1:-1])
    if _ARROW_PATTERN.match(expression) is not None:
        return Function("anonymous", expression)

    sum_match = _SUM_PATTERN.match(expression)
    if sum_match is not None:
        return int(sum_match.group(1)) + int(sum_match.group(2))

    repeat_match = _REPEAT_PATTERN.match(expression)
    if repeat_match is not None:
        base: object = evaluate(repeat_match.group(1))
        return str(base) * int(repeat_match.group(2))

    if expression.startswith("throw new Error("):
        message: object = evaluate(expression[len("throw new Error("):-1])
        raise Thrown(f"Error: {message}")

    call_match = _CALL_PATTERN.match(expression)
    if call_match is not None:
        callee: str = call_match.group(1)
        arguments: list[object] = [evaluate(part) for part in split_arguments(call_match.group(2))]
        if callee == "console.log":
            emit(" ".join(argument if isinstance(argument, str) else render(argument) for argument in arguments))
            return UNDEFINED
        if callee == "Reflect.get":
            return reflect_get(arguments[0], arguments[1])
        if callee == "Reflect.set":
            return reflect_set(arguments[0], arguments[1], arguments[2])
        if callee == "Reflect.apply":
            return reflect_apply(arguments[0], arguments[1], arguments[2])

    if expression.startswith("[") and expression.endswith("]"):
        try:
            return json.loads(expression)
        except ValueError:
            return [evaluate(part) for part in split_arguments(expression[1:-1])]

    if expression.startswith("'") and expression.endswith("'"):
        return expression[1:-1]

    try:
        return json.loads(expression)
    except ValueError:
        raise Thrown(f"ReferenceError: Can't find variable: {expression}") from None


def render(value: object) -> str:
    if isinstance(value, Undefined):
        return "undefined"
    if isinstance(value, Function):
        return f"[function {value.name}]"
    if isinstance(value, NativeMethod):
        return f"[function {value.name}]"
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def render_lines(value: object) -> list[str]:
    if isinstance(value, Function) and value.name == "Error":
        return ["[function Error] {", "  stackTraceLimit: 100", "}"]
    return [render(value)]


def emit(line: str) -> None:
    sys.stdout.write(f"{line}\n")
    sys.stdout.flush()


def main() -> None:
    sys.stdin.reconfigure(encoding="utf-8")
    sys.stdout.reconfigure(encoding="utf-8")
    emit("fake jxa repl ready")
    for raw_line in sys.stdin:
        line: str = raw_line.rstrip("\n")
        emit(f"{PROMPT}{line}")
        statement: str = line.strip()
        if len(statement) == 0:
            continue
        try:
            value: object = evaluate(statement)
        except Thrown as exc:
            emit(f"!! {exc}")
            continue
        lines: list[str] = render_lines(value)
        emit(f"=> {lines[0]}")
        for continuation in lines[1:]:
            emit(continuation)


if __name__ == "__main__":
    main()
