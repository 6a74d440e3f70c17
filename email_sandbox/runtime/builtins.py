"""Language intrinsics available to guest code.

Everything here is pure: no clock, randomness, I/O or host object access.
Globals are rebuilt for every interpreter so guest mutations never outlive
one invocation. Methods of primitives and arrays are looked up through the
explicit tables below rather than Python attribute access.
"""

from __future__ import annotations

import functools
import json
import math
import re
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from email_sandbox.runtime.elements import Element
from email_sandbox.runtime.values import (
    UNDEFINED,
    ErrorObject,
    HostConstructor,
    HostFunction,
    JSFunction,
    JSThrow,
    check_default_length,
    format_number,
    is_callable,
    is_nullish,
    is_number,
    join_array,
    make_error,
    normalize_number,
    strict_equals,
    to_int32,
    to_number,
    to_string,
    truthy,
)

if TYPE_CHECKING:
    from email_sandbox.interpreter import Interpreter

MethodTable = dict[str, Callable[["Interpreter", Any, list[Any]], Any]]

ERROR_TYPES = ("Error", "TypeError", "RangeError", "ReferenceError", "SyntaxError")


def _arg(args: list[Any], index: int, default: Any = UNDEFINED) -> Any:
    return args[index] if index < len(args) else default


def _integer(value: Any, default: int = 0) -> int:
    if value is UNDEFINED:
        return default
    number = to_number(value)
    if isinstance(number, float):
        if math.isnan(number):
            return 0
        if math.isinf(number):
            return 2**53 if number > 0 else -(2**53)
    return int(number)


def _relative(value: Any, length: int, default: int) -> int:
    """Resolve a possibly negative start/end index against ``length``."""
    index = _integer(value, default)
    if index < 0:
        return max(length + index, 0)
    return min(index, length)


def _require_callable(value: Any, method: str) -> Any:
    if not is_callable(value):
        raise make_error("TypeError", f"{to_string(value)} is not a function ({method} callback)")
    return value


def iterate(value: Any) -> list[Any]:
    """Materialize an iterable guest value (arrays and strings)."""
    if isinstance(value, list):
        return list(value)
    if isinstance(value, str):
        return list(value)
    raise make_error("TypeError", f"{_describe(value)} is not iterable")


def _describe(value: Any) -> str:
    if isinstance(value, (dict, Mapping, Element)):
        return "object"
    return to_string(value)


# -- arrays ----------------------------------------------------------------


def _array_map(interp: Interpreter, arr: list[Any], args: list[Any]) -> list[Any]:
    fn = _require_callable(_arg(args, 0), "map")
    return [interp.call(fn, [item, i, arr]) for i, item in enumerate(list(arr))]


def _array_filter(interp: Interpreter, arr: list[Any], args: list[Any]) -> list[Any]:
    fn = _require_callable(_arg(args, 0), "filter")
    return [item for i, item in enumerate(list(arr)) if truthy(interp.call(fn, [item, i, arr]))]


def _array_for_each(interp: Interpreter, arr: list[Any], args: list[Any]) -> Any:
    fn = _require_callable(_arg(args, 0), "forEach")
    for i, item in enumerate(list(arr)):
        interp.call(fn, [item, i, arr])
    return UNDEFINED


def _array_find_index(interp: Interpreter, arr: list[Any], args: list[Any]) -> int:
    fn = _require_callable(_arg(args, 0), "findIndex")
    for i, item in enumerate(list(arr)):
        if truthy(interp.call(fn, [item, i, arr])):
            return i
    return -1


def _array_find(interp: Interpreter, arr: list[Any], args: list[Any]) -> Any:
    index = _array_find_index(interp, arr, args)
    return arr[index] if index >= 0 else UNDEFINED


def _array_some(interp: Interpreter, arr: list[Any], args: list[Any]) -> bool:
    return _array_find_index(interp, arr, args) >= 0


def _array_every(interp: Interpreter, arr: list[Any], args: list[Any]) -> bool:
    fn = _require_callable(_arg(args, 0), "every")
    return all(truthy(interp.call(fn, [item, i, arr])) for i, item in enumerate(list(arr)))


def _array_reduce(interp: Interpreter, arr: list[Any], args: list[Any]) -> Any:
    fn = _require_callable(_arg(args, 0), "reduce")
    items = list(arr)
    start = 0
    if len(args) > 1:
        acc = args[1]
    elif items:
        acc, start = items[0], 1
    else:
        raise make_error("TypeError", "Reduce of empty array with no initial value")
    for i in range(start, len(items)):
        acc = interp.call(fn, [acc, items[i], i, arr])
    return acc


def _array_includes(interp: Interpreter, arr: list[Any], args: list[Any]) -> bool:
    target = _arg(args, 0)
    if isinstance(target, float) and math.isnan(target):
        return any(isinstance(x, float) and math.isnan(x) for x in arr)
    return any(strict_equals(item, target) for item in arr)


def _array_index_of(interp: Interpreter, arr: list[Any], args: list[Any]) -> int:
    target = _arg(args, 0)
    for i in range(_relative(_arg(args, 1), len(arr), 0), len(arr)):
        if strict_equals(arr[i], target):
            return i
    return -1


def _array_last_index_of(interp: Interpreter, arr: list[Any], args: list[Any]) -> int:
    target = _arg(args, 0)
    for i in range(len(arr) - 1, -1, -1):
        if strict_equals(arr[i], target):
            return i
    return -1


def _array_join(interp: Interpreter, arr: list[Any], args: list[Any]) -> str:
    sep = _arg(args, 0)
    sep = "," if sep is UNDEFINED else to_string(sep)
    return join_array(arr, sep, interp)


def _array_slice(interp: Interpreter, arr: list[Any], args: list[Any]) -> list[Any]:
    start = _relative(_arg(args, 0), len(arr), 0)
    end = _relative(_arg(args, 1), len(arr), len(arr))
    return arr[start:end]


def _array_concat(interp: Interpreter, arr: list[Any], args: list[Any]) -> list[Any]:
    result = list(arr)
    for value in args:
        if isinstance(value, list):
            result.extend(value)
        else:
            result.append(value)
    return interp.check_array(result)


def _array_push(interp: Interpreter, arr: list[Any], args: list[Any]) -> int:
    interp.check_array_length(len(arr) + len(args))
    arr.extend(args)
    return len(arr)


def _array_pop(interp: Interpreter, arr: list[Any], args: list[Any]) -> Any:
    return arr.pop() if arr else UNDEFINED


def _array_shift(interp: Interpreter, arr: list[Any], args: list[Any]) -> Any:
    return arr.pop(0) if arr else UNDEFINED


def _array_unshift(interp: Interpreter, arr: list[Any], args: list[Any]) -> int:
    interp.check_array_length(len(arr) + len(args))
    arr[0:0] = args
    return len(arr)


def _array_reverse(interp: Interpreter, arr: list[Any], args: list[Any]) -> list[Any]:
    arr.reverse()
    return arr


def _flatten(interp: Interpreter, items: list[Any], depth: int) -> list[Any]:
    result: list[Any] = []
    for item in items:
        if isinstance(item, list) and depth > 0:
            result.extend(_flatten(interp, item, depth - 1))
        else:
            result.append(item)
        interp.check_array_length(len(result))
    return result


def _array_flat(interp: Interpreter, arr: list[Any], args: list[Any]) -> list[Any]:
    return _flatten(interp, arr, _integer(_arg(args, 0), 1))


def _array_flat_map(interp: Interpreter, arr: list[Any], args: list[Any]) -> list[Any]:
    return _flatten(interp, _array_map(interp, arr, args), 1)


def _array_sort(interp: Interpreter, arr: list[Any], args: list[Any]) -> list[Any]:
    compare = _arg(args, 0)
    defined = [x for x in arr if x is not UNDEFINED]
    missing = len(arr) - len(defined)
    if compare is UNDEFINED:
        defined.sort(key=to_string)
    else:
        _require_callable(compare, "sort")

        def cmp(a: Any, b: Any) -> int:
            result = to_number(interp.call(compare, [a, b]))
            if isinstance(result, float) and math.isnan(result):
                return 0
            return (result > 0) - (result < 0)

        defined.sort(key=functools.cmp_to_key(cmp))
    arr[:] = defined + [UNDEFINED] * missing
    return arr


def _array_at(interp: Interpreter, arr: list[Any], args: list[Any]) -> Any:
    index = _integer(_arg(args, 0))
    if index < 0:
        index += len(arr)
    return arr[index] if 0 <= index < len(arr) else UNDEFINED


def _array_fill(interp: Interpreter, arr: list[Any], args: list[Any]) -> list[Any]:
    value = _arg(args, 0)
    start = _relative(_arg(args, 1), len(arr), 0)
    end = _relative(_arg(args, 2), len(arr), len(arr))
    for i in range(start, end):
        arr[i] = value
    return arr


def _array_keys(interp: Interpreter, arr: list[Any], args: list[Any]) -> list[int]:
    return list(range(len(arr)))


def _array_entries(interp: Interpreter, arr: list[Any], args: list[Any]) -> list[list[Any]]:
    return [[i, item] for i, item in enumerate(arr)]


ARRAY_METHODS: MethodTable = {
    "map": _array_map,
    "filter": _array_filter,
    "forEach": _array_for_each,
    "find": _array_find,
    "findIndex": _array_find_index,
    "some": _array_some,
    "every": _array_every,
    "reduce": _array_reduce,
    "includes": _array_includes,
    "indexOf": _array_index_of,
    "lastIndexOf": _array_last_index_of,
    "join": _array_join,
    "toString": lambda interp, arr, args: _array_join(interp, arr, []),
    "slice": _array_slice,
    "concat": _array_concat,
    "push": _array_push,
    "pop": _array_pop,
    "shift": _array_shift,
    "unshift": _array_unshift,
    "reverse": _array_reverse,
    "flat": _array_flat,
    "flatMap": _array_flat_map,
    "sort": _array_sort,
    "at": _array_at,
    "fill": _array_fill,
    "keys": _array_keys,
    "entries": _array_entries,
}


# -- strings ---------------------------------------------------------------


def _string_split(interp: Interpreter, s: str, args: list[Any]) -> list[str]:
    sep = _arg(args, 0)
    limit = _arg(args, 1)
    if sep is UNDEFINED:
        parts = [s]
    elif to_string(sep) == "":
        parts = list(s)
    else:
        parts = s.split(to_string(sep))
    if limit is not UNDEFINED:
        parts = parts[: max(_integer(limit), 0)]
    return interp.check_array(parts)


def _string_replace(interp: Interpreter, s: str, args: list[Any], count: int = 1) -> str:
    pattern = to_string(_arg(args, 0))
    replacement = _arg(args, 1)
    if is_callable(replacement):
        pieces = s.split(pattern) if count < 0 else s.split(pattern, count)
        out = pieces[0]
        offset = len(pieces[0])
        for piece in pieces[1:]:
            out += to_string(interp.call(replacement, [pattern, offset, s])) + piece
            offset += len(pattern) + len(piece)
        return interp.check_string(out)
    return interp.check_string(s.replace(pattern, to_string(replacement), count))


def _string_pad(interp: Interpreter, s: str, args: list[Any], start: bool) -> str:
    width = _integer(_arg(args, 0))
    fill = _arg(args, 1)
    fill = " " if fill is UNDEFINED else to_string(fill)
    if width <= len(s) or not fill:
        return s
    interp.check_string_length(width)
    needed = width - len(s)
    padding = (fill * (needed // len(fill) + 1))[:needed]
    return padding + s if start else s + padding


def _string_repeat(interp: Interpreter, s: str, args: list[Any]) -> str:
    count = _integer(_arg(args, 0))
    if count < 0:
        raise make_error("RangeError", f"Invalid count value: {count}")
    interp.check_string_length(len(s) * count)
    return s * count


def _string_slice(interp: Interpreter, s: str, args: list[Any]) -> str:
    start = _relative(_arg(args, 0), len(s), 0)
    end = _relative(_arg(args, 1), len(s), len(s))
    return s[start:end]


def _string_substring(interp: Interpreter, s: str, args: list[Any]) -> str:
    start = min(max(_integer(_arg(args, 0)), 0), len(s))
    end = min(max(_integer(_arg(args, 1), len(s)), 0), len(s))
    if start > end:
        start, end = end, start
    return s[start:end]


def _string_substr(interp: Interpreter, s: str, args: list[Any]) -> str:
    start = _relative(_arg(args, 0), len(s), 0)
    length = _integer(_arg(args, 1), len(s) - start)
    return s[start : start + max(length, 0)]


def _string_index_of(interp: Interpreter, s: str, args: list[Any]) -> int:
    return s.find(to_string(_arg(args, 0)), max(_integer(_arg(args, 1)), 0))


def _string_char_at(interp: Interpreter, s: str, args: list[Any]) -> str:
    index = _integer(_arg(args, 0))
    return s[index] if 0 <= index < len(s) else ""


def _string_char_code_at(interp: Interpreter, s: str, args: list[Any]) -> int | float:
    index = _integer(_arg(args, 0))
    return ord(s[index]) if 0 <= index < len(s) else math.nan


def _string_at(interp: Interpreter, s: str, args: list[Any]) -> Any:
    index = _integer(_arg(args, 0))
    if index < 0:
        index += len(s)
    return s[index] if 0 <= index < len(s) else UNDEFINED


def _string_concat(interp: Interpreter, s: str, args: list[Any]) -> str:
    return interp.check_string(s + "".join(to_string(a, interp) for a in args))


STRING_METHODS: MethodTable = {
    "toUpperCase": lambda interp, s, args: s.upper(),
    "toLowerCase": lambda interp, s, args: s.lower(),
    "trim": lambda interp, s, args: s.strip(),
    "trimStart": lambda interp, s, args: s.lstrip(),
    "trimEnd": lambda interp, s, args: s.rstrip(),
    "split": _string_split,
    "replace": _string_replace,
    "replaceAll": lambda interp, s, args: _string_replace(interp, s, args, count=-1),
    "includes": lambda interp, s, args: to_string(_arg(args, 0)) in s,
    "startsWith": lambda interp, s, args: s.startswith(to_string(_arg(args, 0)), max(_integer(_arg(args, 1)), 0)),
    "endsWith": lambda interp, s, args: s.endswith(to_string(_arg(args, 0))),
    "indexOf": _string_index_of,
    "lastIndexOf": lambda interp, s, args: s.rfind(to_string(_arg(args, 0))),
    "slice": _string_slice,
    "substring": _string_substring,
    "substr": _string_substr,
    "padStart": lambda interp, s, args: _string_pad(interp, s, args, start=True),
    "padEnd": lambda interp, s, args: _string_pad(interp, s, args, start=False),
    "repeat": _string_repeat,
    "charAt": _string_char_at,
    "charCodeAt": _string_char_code_at,
    "at": _string_at,
    "concat": _string_concat,
    "toString": lambda interp, s, args: s,
    "valueOf": lambda interp, s, args: s,
}


# -- numbers ---------------------------------------------------------------


def _number_to_fixed(interp: Interpreter, n: Any, args: list[Any]) -> str:
    digits = _integer(_arg(args, 0))
    if not 0 <= digits <= 100:
        raise make_error("RangeError", "toFixed() digits argument must be between 0 and 100")
    if isinstance(n, float) and (math.isnan(n) or math.isinf(n)):
        return to_string(n)
    return f"{n:.{digits}f}"


_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _number_to_string(interp: Interpreter, n: Any, args: list[Any]) -> str:
    radix = _integer(_arg(args, 0), 10)
    if radix == 10 or not (isinstance(n, int) or (isinstance(n, float) and n.is_integer())):
        return to_string(n)
    if not 2 <= radix <= 36:
        raise make_error("RangeError", "toString() radix must be between 2 and 36")
    value = int(n)
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = ""
    while True:
        value, rem = divmod(value, radix)
        digits = _DIGITS[rem] + digits
        if value == 0:
            break
    return sign + digits


def _number_to_locale_string(interp: Interpreter, n: Any, args: list[Any]) -> str:
    if isinstance(n, float) and (math.isnan(n) or math.isinf(n)):
        return to_string(n)
    if isinstance(n, int) or n.is_integer():
        return f"{int(n):,}"
    text = f"{n:,.3f}".rstrip("0").rstrip(".")
    return text


NUMBER_METHODS: MethodTable = {
    "toFixed": _number_to_fixed,
    "toString": _number_to_string,
    "toLocaleString": _number_to_locale_string,
    "valueOf": lambda interp, n, args: n,
}


def bound_method(interp: Interpreter, table: MethodTable, receiver: Any, name: str) -> HostFunction | None:
    """Bind a table method to its receiver, or None if there is no such method."""
    impl = table.get(name)
    if impl is None:
        return None
    return HostFunction(name, lambda args: impl(interp, receiver, args))


# -- globals ---------------------------------------------------------------


def _math_round(args: list[Any]) -> Any:
    value = to_number(_arg(args, 0))
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return value
    return normalize_number(math.floor(value + 0.5))


def _math_extreme(args: list[Any], pick: Callable[..., Any], empty: float) -> Any:
    numbers = [to_number(a) for a in args]
    if not numbers:
        return empty
    if any(isinstance(x, float) and math.isnan(x) for x in numbers):
        return math.nan
    return pick(numbers)


def _math_pow(args: list[Any]) -> Any:
    return power(to_number(_arg(args, 0)), to_number(_arg(args, 1)))


def power(base: Any, exponent: Any) -> int | float:
    """Exponentiation with double-precision overflow semantics."""
    if isinstance(base, int) and isinstance(exponent, int) and 0 <= exponent <= 60 and abs(base) <= 2**16:
        return normalize_number(base**exponent)
    try:
        result = float(base) ** float(exponent)
    except OverflowError:
        return math.inf
    except ZeroDivisionError:
        return math.inf
    if isinstance(result, complex):
        return math.nan
    return result


def _float_fn(fn: Callable[[float], float]) -> Callable[[list[Any]], Any]:
    def wrapper(args: list[Any]) -> Any:
        value = to_number(_arg(args, 0))
        try:
            result = fn(value)
        except (ValueError, OverflowError):
            return math.nan
        if isinstance(result, float) and result.is_integer() and abs(result) <= 2**53:
            return int(result)
        return result

    return wrapper


def _make_math() -> dict[str, Any]:
    def integral(fn: Callable[[float], int]) -> Callable[[list[Any]], Any]:
        def wrapper(args: list[Any]) -> Any:
            value = to_number(_arg(args, 0))
            if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
                return value
            return normalize_number(fn(value))

        return wrapper

    return {
        "PI": math.pi,
        "E": math.e,
        "LN2": math.log(2),
        "LN10": math.log(10),
        "SQRT2": math.sqrt(2),
        "abs": HostFunction("abs", lambda args: abs(to_number(_arg(args, 0)))),
        "floor": HostFunction("floor", integral(math.floor)),
        "ceil": HostFunction("ceil", integral(math.ceil)),
        "trunc": HostFunction("trunc", integral(math.trunc)),
        "round": HostFunction("round", _math_round),
        "sign": HostFunction("sign", lambda args: _sign(to_number(_arg(args, 0)))),
        "min": HostFunction("min", lambda args: _math_extreme(args, min, math.inf)),
        "max": HostFunction("max", lambda args: _math_extreme(args, max, -math.inf)),
        "pow": HostFunction("pow", _math_pow),
        "sqrt": HostFunction("sqrt", _float_fn(math.sqrt)),
        "log": HostFunction("log", _float_fn(math.log)),
        "exp": HostFunction("exp", _float_fn(math.exp)),
    }


def _sign(value: Any) -> Any:
    if isinstance(value, float) and math.isnan(value):
        return value
    return (value > 0) - (value < 0)


def own_keys(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(i) for i in range(len(value))]
    if isinstance(value, str):
        return [str(i) for i in range(len(value))]
    if isinstance(value, JSFunction):
        return list(value.properties)
    if isinstance(value, Mapping):
        return [str(k) for k in value]
    return []


def _own_value(value: Any, key: str) -> Any:
    if isinstance(value, (list, str)):
        return value[int(key)]
    if isinstance(value, JSFunction):
        return value.properties[key]
    return value[key]


def _object_assign(interp: Interpreter, args: list[Any]) -> Any:
    target = _arg(args, 0)
    if not isinstance(target, dict):
        raise make_error("TypeError", "Object.assign target must be a plain object")
    for source in args[1:]:
        for key in own_keys(source):
            target[key] = _own_value(source, key)
    return target


def _object_from_entries(args: list[Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for entry in iterate(_arg(args, 0)):
        if not isinstance(entry, list):
            raise make_error("TypeError", "Iterator value is not an entry object")
        result[to_string(_arg(entry, 0))] = _arg(entry, 1)
    return result


def _make_object(interp: Interpreter) -> HostConstructor:
    def construct(args: list[Any]) -> Any:
        value = _arg(args, 0)
        return {} if is_nullish(value) else value

    obj = HostConstructor("Object", construct, lambda v: isinstance(v, (dict, Mapping, list)) or is_callable(v))
    return obj


def _object_statics(interp: Interpreter) -> dict[str, Any]:
    return {
        "keys": HostFunction("keys", lambda args: own_keys(_arg(args, 0))),
        "values": HostFunction(
            "values", lambda args: [_own_value(args[0], k) for k in own_keys(_arg(args, 0))]
        ),
        "entries": HostFunction(
            "entries", lambda args: [[k, _own_value(args[0], k)] for k in own_keys(_arg(args, 0))]
        ),
        "assign": HostFunction("assign", lambda args: _object_assign(interp, args)),
        "freeze": HostFunction("freeze", lambda args: _arg(args, 0)),
        "fromEntries": HostFunction("fromEntries", _object_from_entries),
    }


def _array_from(interp: Interpreter, args: list[Any]) -> list[Any]:
    source = _arg(args, 0)
    mapper = _arg(args, 1)
    if isinstance(source, (list, str)):
        items = iterate(source)
    elif isinstance(source, Mapping) and "length" in source:
        length = _integer(source["length"])
        interp.check_array_length(length)
        items = [source.get(str(i), UNDEFINED) for i in range(max(length, 0))]
    else:
        items = []
    interp.check_array_length(len(items))
    if mapper is not UNDEFINED:
        _require_callable(mapper, "Array.from")
        items = [interp.call(mapper, [item, i]) for i, item in enumerate(items)]
    return items


def _make_array(interp: Interpreter) -> HostConstructor:
    def construct(args: list[Any]) -> list[Any]:
        if len(args) == 1 and is_number(args[0]):
            length = _integer(args[0])
            if length < 0 or length != args[0]:
                raise make_error("RangeError", "Invalid array length")
            interp.check_array_length(length)
            return [UNDEFINED] * length
        return list(args)

    return HostConstructor("Array", construct, lambda v: isinstance(v, list))


class _JsonConverter:
    """Converts guest values to json-serializable Python values under a budget.

    Every visited value costs one tick, and a running estimate of the
    serialized size is checked against the string limit, so shared or
    deeply repeated structures fail before ``json.dumps`` runs.
    """

    def __init__(self, budget: Any = None) -> None:
        self.budget = budget
        self.check = budget.check_string_length if budget is not None else check_default_length
        self.size = 0
        self.visited = 0
        self.active: set[int] = set()

    def _charge(self, length: int) -> None:
        if self.budget is not None:
            self.budget.tick()
        else:
            self.visited += 1
            self.check(self.visited)
        self.size += length
        self.check(self.size)

    def convert(self, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            self._charge(5)
            return value
        if isinstance(value, str):
            self._charge(len(value) + 2)
            return value
        if is_number(value):
            self._charge(len(format_number(value)))
            if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
                return None
            if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
                return int(value)
            return value
        if not isinstance(value, (list, Element, Mapping)):
            self._charge(4)
            return None

        if id(value) in self.active:
            raise make_error("TypeError", "Converting circular structure to JSON")
        self._charge(2)
        self.active.add(id(value))
        try:
            if isinstance(value, list):
                return [None if v is UNDEFINED or is_callable(v) else self.convert(v) for v in value]
            if isinstance(value, Element):
                return {
                    "type": value.type if isinstance(value.type, str) else None,
                    "key": value.key,
                    "props": self.convert(value.props),
                }
            result = {}
            for k, v in value.items():
                if v is UNDEFINED or is_callable(v):
                    continue
                key = str(k)
                self._charge(len(key) + 3)
                result[key] = self.convert(v)
            return result
        finally:
            self.active.discard(id(value))


def to_json_value(value: Any, budget: Any = None) -> Any:
    """Convert a guest value into a json-serializable Python value.

    Args:
        value: Guest value
        budget: Interpreter whose fuel and string limit meter the walk

    Raises:
        JSThrow: TypeError if the value contains itself
        ExecutionLimitError: If the walk exceeds the budget
    """
    return _JsonConverter(budget).convert(value)


def from_json_value(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer() and abs(value) <= 2**53:
        return int(value)
    if isinstance(value, list):
        return [from_json_value(v) for v in value]
    if isinstance(value, dict):
        return {k: from_json_value(v) for k, v in value.items()}
    return value


def _json_stringify(interp: Interpreter, args: list[Any]) -> Any:
    value = _arg(args, 0)
    if value is UNDEFINED or is_callable(value):
        return UNDEFINED
    indent = _arg(args, 2)
    if is_number(indent):
        indent = min(max(int(indent), 0), 10) or None
    elif isinstance(indent, str):
        indent = indent[:10] or None
    else:
        indent = None
    separators = (",", ":") if indent is None else (",", ": ")
    text = json.dumps(to_json_value(value, interp), indent=indent, separators=separators, ensure_ascii=False)
    return interp.check_string(text)


def _json_parse(args: list[Any]) -> Any:
    text = to_string(_arg(args, 0))
    try:
        return from_json_value(json.loads(text))
    except ValueError:
        raise make_error("SyntaxError", "Unexpected token in JSON") from None


_INT_PREFIX = re.compile(r"^\s*([+-]?)(0[xX])?([0-9a-zA-Z]*)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:Infinity|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?))")


def _parse_int(args: list[Any]) -> int | float:
    text = to_string(_arg(args, 0))
    radix = _integer(_arg(args, 1), 0)
    match = _INT_PREFIX.match(text)
    if match is None:
        return math.nan
    sign, hex_prefix, digits = match.groups()
    if radix == 0:
        radix = 16 if hex_prefix else 10
    elif hex_prefix and radix != 16:
        digits = "0"
    if not 2 <= radix <= 36:
        return math.nan
    valid = ""
    for ch in digits.lower():
        if ch not in _DIGITS[:radix]:
            break
        valid += ch
    if not valid:
        return math.nan
    if len(valid) > 1000:
        return -math.inf if sign == "-" else math.inf
    value = int(valid, radix)
    return normalize_number(-value if sign == "-" else value)


def _parse_float(args: list[Any]) -> int | float:
    match = _FLOAT_PREFIX.match(to_string(_arg(args, 0)))
    if match is None:
        return math.nan
    return to_number(match.group(1))


def _is_nan(args: list[Any]) -> bool:
    value = to_number(_arg(args, 0))
    return isinstance(value, float) and math.isnan(value)


def _is_finite(args: list[Any]) -> bool:
    value = to_number(_arg(args, 0))
    return not (isinstance(value, float) and (math.isnan(value) or math.isinf(value)))


def _error_constructor(name: str) -> HostConstructor:
    def construct(args: list[Any]) -> ErrorObject:
        message = _arg(args, 0)
        return ErrorObject(name, "" if message is UNDEFINED else to_string(message))

    def check(value: Any) -> bool:
        return isinstance(value, ErrorObject) and (name == "Error" or value.get("name") == name)

    return HostConstructor(name, construct, check)


def _make_console(interp: Interpreter) -> dict[str, Any]:
    def writer(level: str) -> HostFunction:
        def write(args: list[Any]) -> Any:
            interp.write_console(level, " ".join(_console_text(interp, a) for a in args))
            return UNDEFINED

        return HostFunction(level, write)

    return {level: writer(level) for level in ("log", "info", "warn", "error", "debug")}


def _console_text(interp: Interpreter, value: Any) -> str:
    if isinstance(value, (dict, list)) and not isinstance(value, ErrorObject):
        try:
            return json.dumps(to_json_value(value, interp), ensure_ascii=False)
        except JSThrow:
            return to_string(value, interp)
    return to_string(value, interp)


def _number_coerce(args: list[Any]) -> int | float:
    return to_number(_arg(args, 0, 0))


def _string_coerce(interp: Interpreter, args: list[Any]) -> str:
    return to_string(_arg(args, 0, ""), interp)


def make_globals(interp: Interpreter) -> dict[str, Any]:
    """Build a fresh set of global bindings for one interpreter."""
    obj = _make_object(interp)
    array = _make_array(interp)
    statics = {
        obj: _object_statics(interp),
        array: {
            "isArray": HostFunction("isArray", lambda args: isinstance(_arg(args, 0), list)),
            "from": HostFunction("from", lambda args: _array_from(interp, args)),
            "of": HostFunction("of", lambda args: interp.check_array(list(args))),
        },
    }
    interp.register_statics(statics)

    number = HostConstructor("Number", _number_coerce, is_number)
    interp.register_statics(
        {
            number: {
                "isInteger": HostFunction(
                    "isInteger",
                    lambda args: is_number(_arg(args, 0)) and float(args[0]).is_integer(),
                ),
                "isFinite": HostFunction(
                    "isFinite", lambda args: is_number(_arg(args, 0)) and _is_finite(args)
                ),
                "isNaN": HostFunction("isNaN", lambda args: is_number(_arg(args, 0)) and _is_nan(args)),
                "parseFloat": HostFunction("parseFloat", _parse_float),
                "parseInt": HostFunction("parseInt", _parse_int),
                "MAX_SAFE_INTEGER": 2**53 - 1,
                "MIN_SAFE_INTEGER": -(2**53 - 1),
            }
        }
    )

    env: dict[str, Any] = {
        "Math": _make_math(),
        "Object": obj,
        "Array": array,
        "JSON": {
            "stringify": HostFunction("stringify", lambda args: _json_stringify(interp, args)),
            "parse": HostFunction("parse", _json_parse),
        },
        "String": HostConstructor("String", lambda args: _string_coerce(interp, args), lambda v: False),
        "Number": number,
        "Boolean": HostConstructor("Boolean", lambda args: truthy(_arg(args, 0)), lambda v: False),
        "parseInt": HostFunction("parseInt", _parse_int),
        "parseFloat": HostFunction("parseFloat", _parse_float),
        "isNaN": HostFunction("isNaN", _is_nan),
        "isFinite": HostFunction("isFinite", _is_finite),
        "NaN": math.nan,
        "Infinity": math.inf,
        "console": _make_console(interp),
    }
    for name in ERROR_TYPES:
        env[name] = _error_constructor(name)
    return env


def bitwise(op: str, left: Any, right: Any) -> int:
    a = to_int32(left)
    b = to_int32(right)
    if op == "&":
        return a & b
    if op == "|":
        return to_int32(a | b)
    if op == "^":
        return to_int32(a ^ b)
    shift = b & 31
    if op == "<<":
        return to_int32(a << shift)
    if op == ">>":
        return a >> shift
    # >>>
    return (a & 0xFFFFFFFF) >> shift
