"""Guest value model and the language's conversion rules.

Guest values map onto plain Python objects: ``None`` is null, ``UNDEFINED``
is undefined, ``bool``/``int``/``float``/``str`` are primitives, ``dict`` is
an object and ``list`` is an array. Functions are ``JSFunction`` (guest
closures) or ``HostFunction`` (trusted Python callables). Read-only
``Mapping`` objects that are not dicts model frozen host objects such as
capability modules.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from email_sandbox.core.errors import ExecutionLimitError

if TYPE_CHECKING:
    from email_sandbox.interpreter import Environment, Interpreter


class _Undefined:
    """Singleton for the guest ``undefined`` value."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()

MAX_SAFE_INTEGER = 2**53

# Applies when an array is stringified without an interpreter's budget
DEFAULT_MAX_STRING_LENGTH = 1_000_000


class JSThrow(Exception):
    """A value thrown by guest code (or a guest-visible error raised by the evaluator).

    Only this exception type is catchable by guest ``try``/``catch``.
    """

    def __init__(self, value: Any) -> None:
        super().__init__(describe_thrown(value))
        self.value = value


class ErrorObject(dict):
    """Guest ``Error`` instance; a plain object with ``name`` and ``message``."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(name=name, message=message, stack="")


def make_error(name: str, message: str) -> JSThrow:
    """Build a throwable guest error of the given constructor name."""
    return JSThrow(ErrorObject(name, message))


def describe_thrown(value: Any) -> str:
    """Human-readable message for a thrown guest value."""
    if isinstance(value, ErrorObject):
        name = to_string(value.get("name", "Error"))
        message = to_string(value.get("message", ""))
        return f"{name}: {message}" if message else name
    return f"Uncaught {to_string(value)}"


class JSFunction:
    """A guest function closure.

    Attributes:
        name: Function name ("" for anonymous functions)
        params: Parameter pattern nodes
        body: Body node (statement block or expression for arrows)
        env: Defining environment
        is_arrow: Whether the function is an arrow function
        interpreter: Interpreter that owns the closure's scope and budgets
        properties: Own properties (``defaultProps``, ``PreviewProps``, ...)
    """

    __slots__ = ("name", "params", "body", "env", "is_arrow", "interpreter", "properties")

    def __init__(
        self,
        name: str,
        params: list[Any],
        body: Any,
        env: Environment,
        is_arrow: bool,
        interpreter: Interpreter,
    ) -> None:
        self.name = name
        self.params = params
        self.body = body
        self.env = env
        self.is_arrow = is_arrow
        self.interpreter = interpreter
        self.properties: dict[str, Any] = {}

    def __call__(self, *args: Any) -> Any:
        return self.interpreter.call(self, list(args))

    def __repr__(self) -> str:
        return f"JSFunction({self.name or '<anonymous>'})"


class HostFunction:
    """A trusted Python callable exposed to guest code.

    The wrapped callable receives the guest argument list.
    """

    __slots__ = ("name", "fn")

    def __init__(self, name: str, fn: Callable[[list[Any]], Any]) -> None:
        self.name = name
        self.fn = fn

    def __call__(self, *args: Any) -> Any:
        return self.fn(list(args))

    def __repr__(self) -> str:
        return f"HostFunction({self.name})"


class HostConstructor(HostFunction):
    """A host function that also supports ``new`` and ``instanceof``."""

    __slots__ = ("instance_check",)

    def __init__(
        self,
        name: str,
        fn: Callable[[list[Any]], Any],
        instance_check: Callable[[Any], bool],
    ) -> None:
        super().__init__(name, fn)
        self.instance_check = instance_check


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_nullish(value: Any) -> bool:
    return value is None or value is UNDEFINED


def is_callable(value: Any) -> bool:
    """Whether a guest value can be invoked."""
    from email_sandbox.runtime.elements import HostComponent

    return isinstance(value, (JSFunction, HostFunction, HostComponent))


def normalize_number(value: int | float) -> int | float:
    """Keep integers within double precision, as the guest language would."""
    if isinstance(value, int) and not isinstance(value, bool) and abs(value) > MAX_SAFE_INTEGER:
        try:
            return float(value)
        except OverflowError:
            return math.inf if value > 0 else -math.inf
    return value


def typeof(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if is_callable(value):
        return "function"
    return "object"


def truthy(value: Any) -> bool:
    if value is None or value is UNDEFINED:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return not (value == 0 or (isinstance(value, float) and math.isnan(value)))
    if isinstance(value, str):
        return value != ""
    return True


def format_number(value: int | float) -> str:
    """Format a number the way the guest language prints it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    text = repr(value)
    if "e" not in text:
        return text
    mantissa, exponent = text.split("e")
    exp = int(exponent)
    if -7 < exp < 21:
        return format(Decimal(text), "f")
    sign = "+" if exp > 0 else "-"
    return f"{mantissa}e{sign}{abs(exp)}"


_DECIMAL_RE = re.compile(r"^[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)$")


def to_number(value: Any) -> int | float:
    if isinstance(value, bool):
        return 1 if value else 0
    if is_number(value):
        return value
    if value is None:
        return 0
    if value is UNDEFINED:
        return math.nan
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0
        if text in ("Infinity", "+Infinity"):
            return math.inf
        if text == "-Infinity":
            return -math.inf
        lowered = text.lower()
        for prefix, base in (("0x", 16), ("0o", 8), ("0b", 2)):
            if lowered.startswith(prefix):
                if len(text) > 1000:
                    return math.inf
                try:
                    return normalize_number(int(text[2:], base))
                except ValueError:
                    return math.nan
        if not _DECIMAL_RE.match(text):
            return math.nan
        if "." in text or "e" in lowered or len(text) > 16:
            return normalize_number(float(text))
        return normalize_number(int(text))
    if isinstance(value, list):
        return to_number(to_string(value))
    return math.nan


def to_int32(value: Any) -> int:
    number = to_number(value)
    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        return 0
    result = int(number) & 0xFFFFFFFF
    return result - 0x100000000 if result >= 0x80000000 else result


def to_string(value: Any, budget: Any = None) -> str:
    """Convert a guest value to a string.

    ``budget`` is the interpreter (or renderer) whose limits meter array
    joins; see join_array.
    """
    from email_sandbox.runtime.elements import Element

    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, list):
        return join_array(value, ",", budget)
    if isinstance(value, ErrorObject):
        return describe_thrown(value)
    if isinstance(value, JSFunction):
        return f"function {value.name}() {{ [code] }}"
    if is_callable(value):
        return f"function {getattr(value, 'name', '')}() {{ [native code] }}"
    if isinstance(value, (Mapping, Element)):
        return "[object Object]"
    return "[object Object]"


def check_default_length(length: int) -> None:
    if length > DEFAULT_MAX_STRING_LENGTH:
        raise ExecutionLimitError(
            f"String length limit of {DEFAULT_MAX_STRING_LENGTH} exceeded", "memory_limit"
        )


def join_array(items: list[Any], separator: str = ",", budget: Any = None) -> str:
    """Join array items as ``Array.prototype.join`` does.

    Nested arrays are flattened with an explicit stack and the running
    length is checked as each piece is produced, so arrays that share
    subarrays fail as soon as the output would pass the limit. An array
    that contains itself contributes an empty string.

    Args:
        items: Array to join
        separator: Separator between top-level items (nested arrays use ",")
        budget: Object with ``tick()`` and ``check_string_length(n)``;
                without one, DEFAULT_MAX_STRING_LENGTH bounds both the
                output length and the number of items visited

    Raises:
        ExecutionLimitError: If the output or the walk exceeds the budget
    """
    check = budget.check_string_length if budget is not None else check_default_length
    parts: list[str] = []
    size = 0
    visited = 0
    active = {id(items)}
    stack: list[tuple[list[Any], int, str]] = [(items, 0, separator)]
    while stack:
        current, position, sep = stack.pop()
        if position >= len(current):
            active.discard(id(current))
            continue
        stack.append((current, position + 1, sep))

        if budget is not None:
            budget.tick()
        else:
            visited += 1
            check(visited)
        if position:
            parts.append(sep)
            size += len(sep)

        item = current[position]
        if isinstance(item, list):
            if id(item) not in active:
                active.add(id(item))
                stack.append((item, 0, ","))
            continue
        if not is_nullish(item):
            text = to_string(item, budget)
            parts.append(text)
            size += len(text)
        check(size)
    check(size)
    return "".join(parts)


def to_property_key(value: Any) -> str:
    return to_string(value)


def array_index(key: Any) -> int | None:
    """Return the integer index a key denotes, or None."""
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key if key >= 0 else None
    if isinstance(key, float):
        return int(key) if key.is_integer() and key >= 0 else None
    if isinstance(key, str) and key.isdigit():
        return int(key)
    return None


def strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) and is_number(right):
        return left == right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    return left is right


def loose_equals(left: Any, right: Any) -> bool:
    if is_nullish(left) or is_nullish(right):
        return is_nullish(left) and is_nullish(right)
    if type(left) is type(right) or (is_number(left) and is_number(right)):
        return strict_equals(left, right)
    primitive = (str, int, float, bool)
    if isinstance(left, primitive) and isinstance(right, primitive):
        return to_number(left) == to_number(right)
    if isinstance(left, primitive):
        return loose_equals(left, to_string(right))
    if isinstance(right, primitive):
        return loose_equals(to_string(left), right)
    return left is right


_ESCAPE_RE = re.compile(
    r"\\(?:u\{([0-9a-fA-F]+)\}|u([0-9a-fA-F]{4})|x([0-9a-fA-F]{2})|(\r\n|[\s\S]))"
)
_SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}


def decode_string_escapes(raw: str) -> str:
    """Decode the escape sequences of a string or template literal body."""

    def replace(match: re.Match[str]) -> str:
        braced, four, two, single = match.groups()
        hex_digits = braced or four or two
        if hex_digits is not None:
            code = int(hex_digits, 16)
            return chr(code) if code <= 0x10FFFF else ""
        if single in ("\n", "\r", "\r\n", "\u2028", "\u2029"):
            return ""
        return _SIMPLE_ESCAPES.get(single, single)

    if "\\" not in raw:
        return raw
    return _ESCAPE_RE.sub(replace, raw)
