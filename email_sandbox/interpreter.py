"""Tree-walking evaluator for compiled template units.

The compiled unit is parsed with tree-sitter's JavaScript grammar and
evaluated node by node. Only an enumerated set of statement and expression
types is understood; everything else raises an unsupported-syntax fault.
Guest code never reaches Python attributes: member access goes through
explicit dispatch tables, and the only module loader is the capability
table behind ``require``.

Every evaluated node consumes one unit of fuel. Call depth, element count,
string length, array length and wall-clock time are bounded by the
CompilationPolicy, so hostile input stops deterministically.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Mapping
from typing import Any

import tree_sitter_javascript
from tree_sitter import Language, Node, Parser

from email_sandbox.capabilities import DEFAULT_CAPABILITIES, CapabilityTable
from email_sandbox.core.errors import (
    ExecutionLimitError,
    ModuleResolutionError,
    TranspileError,
    UnknownRuntimeFault,
)
from email_sandbox.core.models import CompilationPolicy
from email_sandbox.runtime import builtins
from email_sandbox.runtime.elements import Element, HostComponent
from email_sandbox.runtime.values import (
    UNDEFINED,
    HostConstructor,
    HostFunction,
    JSFunction,
    JSThrow,
    array_index,
    decode_string_escapes,
    format_number,
    is_nullish,
    is_number,
    loose_equals,
    make_error,
    normalize_number,
    strict_equals,
    to_int32,
    to_number,
    to_property_key,
    to_string,
    truthy,
    typeof,
)
from email_sandbox.transpiler import first_error_node

JS_LANGUAGE = Language(tree_sitter_javascript.language())

DEADLINE_CHECK_INTERVAL = 1024

_SKIPPED = frozenset({"comment", "hash_bang_line"})
_CHAIN_TYPES = frozenset({"member_expression", "subscript_expression", "call_expression"})
_MISSING = object()

_UNSUPPORTED_NAMES = {
    "class": "classes",
    "class_declaration": "classes",
    "generator_function": "generators",
    "generator_function_declaration": "generators",
    "yield_expression": "generators",
    "await_expression": "async functions",
    "this": "this",
    "super": "super",
    "regex": "regular expressions",
    "meta_property": "new.target / import.meta",
    "import": "dynamic import",
    "labeled_statement": "labels",
    "with_statement": "with statements",
    "private_property_identifier": "private fields",
    "import_statement": "import statements",
    "export_statement": "export statements",
}


class _ControlFlow(Exception):
    """Non-local exits; never visible to guest try/catch."""


class _Break(_ControlFlow):
    pass


class _Continue(_ControlFlow):
    pass


class _Return(_ControlFlow):
    def __init__(self, value: Any) -> None:
        super().__init__()
        self.value = value


class _ShortCircuit(_ControlFlow):
    """An optional chain hit null/undefined."""


class Environment:
    """Lexical scope: a name -> value mapping with a parent link."""

    __slots__ = ("vars", "consts", "parent", "is_function")

    def __init__(self, parent: Environment | None = None, is_function: bool = False) -> None:
        self.vars: dict[str, Any] = {}
        self.consts: set[str] = set()
        self.parent = parent
        self.is_function = is_function

    def declare(self, name: str, value: Any, kind: str = "let") -> None:
        if kind in ("let", "const") and name in self.vars:
            raise make_error("SyntaxError", f"Identifier '{name}' has already been declared")
        self.vars[name] = value
        if kind == "const":
            self.consts.add(name)
        else:
            self.consts.discard(name)

    def has(self, name: str) -> bool:
        env: Environment | None = self
        while env is not None:
            if name in env.vars:
                return True
            env = env.parent
        return False

    def lookup(self, name: str) -> Any:
        env: Environment | None = self
        while env is not None:
            value = env.vars.get(name, _MISSING)
            if value is not _MISSING:
                return value
            env = env.parent
        raise make_error("ReferenceError", f"{name} is not defined")

    def assign(self, name: str, value: Any) -> None:
        env: Environment | None = self
        while env is not None:
            if name in env.vars:
                if name in env.consts:
                    raise make_error("TypeError", "Assignment to constant variable.")
                env.vars[name] = value
                return
            env = env.parent
        raise make_error("ReferenceError", f"{name} is not defined")

    def function_scope(self) -> Environment:
        env = self
        while not env.is_function and env.parent is not None:
            env = env.parent
        return env


class Interpreter:
    """One isolated evaluation context.

    A new Interpreter is created for every invocation: fresh globals, fresh
    ``module``/``exports`` objects and fresh budget counters. The only
    shared object it touches is the read-only capability table.

    Attributes:
        policy: Budgets enforced during evaluation
        capabilities: Modules resolvable through ``require``
        fuel_consumed: Evaluation steps used so far
        elements_created: Elements produced by host calls so far
        deadline: perf_counter() value after which evaluation stops (None = no time budget)
        console: Captured console output lines
        module: The guest ``module`` object
    """

    def __init__(
        self,
        policy: CompilationPolicy | None = None,
        capabilities: CapabilityTable | None = None,
    ) -> None:
        self.policy = policy or CompilationPolicy()
        self.capabilities = capabilities or DEFAULT_CAPABILITIES
        self.fuel_consumed = 0
        self.elements_created = 0
        self.depth = 0
        self.console: list[str] = []
        self.console_truncated = False
        self._console_bytes = 0
        timeout = self.policy.timeout_seconds
        self.deadline = time.perf_counter() + timeout if timeout else None
        self._source = b""
        self._statics: dict[HostFunction, dict[str, Any]] = {}

        self.exports: dict[str, Any] = {}
        self.module: dict[str, Any] = {"exports": self.exports}
        self.global_env = Environment(is_function=True)
        for name, value in builtins.make_globals(self).items():
            self.global_env.declare(name, value, "var")
        self.global_env.declare("require", HostFunction("require", self._require), "var")
        self.global_env.declare("module", self.module, "var")
        self.global_env.declare("exports", self.exports, "var")

        self._statements: dict[str, Callable[[Node, Environment], None]] = {
            "expression_statement": self._exec_expression_statement,
            "lexical_declaration": self._exec_declaration,
            "variable_declaration": self._exec_declaration,
            "function_declaration": lambda node, env: None,
            "return_statement": self._exec_return,
            "if_statement": self._exec_if,
            "statement_block": self._exec_block,
            "for_statement": self._exec_for,
            "for_in_statement": self._exec_for_in,
            "while_statement": self._exec_while,
            "do_statement": self._exec_do,
            "break_statement": self._exec_break,
            "continue_statement": self._exec_continue,
            "throw_statement": self._exec_throw,
            "try_statement": self._exec_try,
            "switch_statement": self._exec_switch,
            "empty_statement": lambda node, env: None,
            "debugger_statement": lambda node, env: None,
        }
        self._expressions: dict[str, Callable[[Node, Environment], Any]] = {
            "identifier": self._eval_identifier,
            "undefined": lambda node, env: UNDEFINED,
            "null": lambda node, env: None,
            "true": lambda node, env: True,
            "false": lambda node, env: False,
            "number": self._eval_number,
            "string": self._eval_string,
            "template_string": self._eval_template,
            "parenthesized_expression": self._eval_parenthesized,
            "array": self._eval_array,
            "object": self._eval_object,
            "arrow_function": self._make_function,
            "function_expression": self._eval_function_expression,
            "function": self._eval_function_expression,
            "member_expression": self._eval_chain,
            "subscript_expression": self._eval_chain,
            "call_expression": self._eval_chain,
            "new_expression": self._eval_new,
            "assignment_expression": self._eval_assignment,
            "augmented_assignment_expression": self._eval_augmented_assignment,
            "binary_expression": self._eval_binary,
            "unary_expression": self._eval_unary,
            "update_expression": self._eval_update,
            "ternary_expression": self._eval_ternary,
            "sequence_expression": self._eval_sequence,
        }

    # -- entry point ---------------------------------------------------------

    def run(self, code: str) -> Any:
        """Evaluate a compiled unit and return the final ``module.exports``.

        Raises:
            TranspileError: If the compiled unit is not plain JavaScript
            JSThrow: If guest code throws and does not catch
            ModuleResolutionError: If guest code requires an unknown module
            ExecutionLimitError: If an evaluation budget is exhausted
            UnknownRuntimeFault: If guest code uses unsupported syntax
        """
        self._source = code.encode("utf-8")
        root = Parser(JS_LANGUAGE).parse(self._source).root_node
        if root.has_error:
            node = first_error_node(root)
            line, column = node.start_point[0] + 1, node.start_point[1] + 1
            raise TranspileError(
                f"SyntaxError: unsupported syntax at line {line}, column {column}", line, column
            )

        try:
            self._exec_statements(self._body(root), self.global_env)
        except _Return:
            pass
        except (_Break, _Continue):
            raise make_error("SyntaxError", "Illegal break or continue statement") from None
        return self.module.get("exports", UNDEFINED)

    # -- budgets ---------------------------------------------------------------

    def tick(self) -> None:
        """Charge one unit of fuel and check the wall-clock deadline."""
        self.fuel_consumed += 1
        if self.fuel_consumed > self.policy.fuel_budget:
            raise ExecutionLimitError(
                f"Evaluation budget of {self.policy.fuel_budget} steps exhausted", "out_of_fuel"
            )
        if (
            self.deadline is not None
            and self.fuel_consumed % DEADLINE_CHECK_INTERVAL == 0
            and time.perf_counter() > self.deadline
        ):
            raise ExecutionLimitError(
                f"Evaluation exceeded the {self.policy.timeout_seconds}s time budget", "timeout"
            )

    def check_string_length(self, length: int) -> None:
        if length > self.policy.max_string_length:
            raise ExecutionLimitError(
                f"String length limit of {self.policy.max_string_length} exceeded", "memory_limit"
            )

    def check_string(self, value: str) -> str:
        self.check_string_length(len(value))
        return value

    def check_array_length(self, length: int) -> None:
        if length > self.policy.max_array_length:
            raise ExecutionLimitError(
                f"Array length limit of {self.policy.max_array_length} exceeded", "memory_limit"
            )

    def check_array(self, value: list[Any]) -> list[Any]:
        self.check_array_length(len(value))
        return value

    def _track(self, result: Any) -> Any:
        if isinstance(result, Element):
            self.elements_created += 1
            if self.elements_created > self.policy.max_elements:
                raise ExecutionLimitError(
                    f"Element limit of {self.policy.max_elements} exceeded", "memory_limit"
                )
        return result

    def write_console(self, level: str, text: str) -> None:
        entry = text if level == "log" else f"[{level}] {text}"
        size = len(entry.encode("utf-8"))
        if self._console_bytes + size > self.policy.max_console_bytes:
            self.console_truncated = True
            return
        self._console_bytes += size
        self.console.append(entry)

    def register_statics(self, statics: Mapping[HostFunction, dict[str, Any]]) -> None:
        """Attach static members (``Object.keys``, ``Array.isArray``...) to host constructors."""
        self._statics.update(statics)

    def _require(self, args: list[Any]) -> Any:
        name = args[0] if args else UNDEFINED
        if not isinstance(name, str):
            raise ModuleResolutionError(to_string(name), self.capabilities.names)
        return self.capabilities.resolve(name)

    # -- helpers ---------------------------------------------------------------

    def _text(self, node: Node) -> str:
        return self._source[node.start_byte : node.end_byte].decode("utf-8")

    def _slice(self, start: int, end: int) -> str:
        return self._source[start:end].decode("utf-8")

    def _body(self, node: Node) -> list[Node]:
        return [child for child in node.named_children if child.type not in _SKIPPED]

    def _unsupported(self, node: Node) -> UnknownRuntimeFault:
        what = _UNSUPPORTED_NAMES.get(node.type, node.type.replace("_", " "))
        line, column = node.start_point[0] + 1, node.start_point[1] + 1
        return UnknownRuntimeFault(f"Unsupported syntax: {what} (line {line}, column {column})")

    def _label(self, node: Node) -> str:
        text = self._text(node)
        return text if len(text) <= 60 else text[:57] + "..."

    @staticmethod
    def _name_function(value: Any, name: str) -> None:
        if isinstance(value, JSFunction) and not value.name:
            value.name = name

    # -- statements ----------------------------------------------------------------

    def _exec_statements(self, statements: list[Node], env: Environment) -> None:
        for statement in statements:
            if statement.type == "function_declaration":
                fn = self._make_function(statement, env)
                env.declare(fn.name, fn, "var")
        for statement in statements:
            self._exec(statement, env)

    def _exec(self, node: Node, env: Environment) -> None:
        self.tick()
        handler = self._statements.get(node.type)
        if handler is None:
            raise self._unsupported(node)
        handler(node, env)

    def _exec_expression_statement(self, node: Node, env: Environment) -> None:
        for expression in self._body(node):
            self._eval(expression, env)

    def _exec_declaration(self, node: Node, env: Environment) -> None:
        kind = node.children[0].type
        target = env.function_scope() if kind == "var" else env
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            name = declarator.child_by_field_name("name")
            value_node = declarator.child_by_field_name("value")
            if value_node is None:
                if kind == "var" and name.type == "identifier" and self._text(name) in target.vars:
                    continue
                value = UNDEFINED
            else:
                value = self._eval(value_node, env)
                if name.type == "identifier":
                    self._name_function(value, self._text(name))
            self._bind(name, value, target, kind)

    def _exec_return(self, node: Node, env: Environment) -> None:
        body = self._body(node)
        raise _Return(self._eval(body[0], env) if body else UNDEFINED)

    def _exec_if(self, node: Node, env: Environment) -> None:
        if truthy(self._eval(node.child_by_field_name("condition"), env)):
            self._exec(node.child_by_field_name("consequence"), env)
            return
        alternative = node.child_by_field_name("alternative")
        if alternative is not None:
            for statement in self._body(alternative):
                self._exec(statement, env)

    def _exec_block(self, node: Node, env: Environment) -> None:
        self._exec_statements(self._body(node), Environment(env))

    def _eval_clause(self, node: Node, env: Environment) -> Any:
        if node.type == "expression_statement":
            body = self._body(node)
            return self._eval(body[-1], env) if body else True
        if node.type in ("empty_statement", ";"):
            return True
        return self._eval(node, env)

    def _exec_for(self, node: Node, env: Environment) -> None:
        loop_env = Environment(env)
        initializer = node.child_by_field_name("initializer")
        per_iteration = initializer is not None and initializer.type == "lexical_declaration"
        if initializer is not None:
            if initializer.type in self._statements:
                self._exec(initializer, loop_env)
            elif initializer.type != ";":
                self._eval(initializer, loop_env)

        condition = node.child_by_field_name("condition")
        increment = node.child_by_field_name("increment")
        body = node.child_by_field_name("body")
        while True:
            self.tick()
            if condition is not None and not truthy(self._eval_clause(condition, loop_env)):
                break
            try:
                self._exec(body, loop_env)
            except _Break:
                break
            except _Continue:
                pass
            if per_iteration:
                # closures created in this iteration keep their own copy of the loop variables
                next_env = Environment(env)
                next_env.vars = dict(loop_env.vars)
                next_env.consts = loop_env.consts
                loop_env = next_env
            if increment is not None:
                self._eval(increment, loop_env)

    def _exec_for_in(self, node: Node, env: Environment) -> None:
        if any(child.type == "await" for child in node.children):
            raise self._unsupported(node.child(1))
        kind_node = node.child_by_field_name("kind")
        kind = kind_node.type if kind_node is not None else None
        is_of = any(child.type == "of" for child in node.children)
        left = node.child_by_field_name("left")
        right = self._eval(node.child_by_field_name("right"), env)
        body = node.child_by_field_name("body")

        if is_of:
            if is_nullish(right):
                raise make_error("TypeError", f"{to_string(right)} is not iterable")
            items = builtins.iterate(right)
        else:
            items = [] if is_nullish(right) else builtins.own_keys(right)

        for item in items:
            self.tick()
            iteration_env = Environment(env)
            if kind in ("let", "const"):
                self._bind(left, item, iteration_env, kind)
            elif kind == "var":
                self._bind(left, item, env.function_scope(), "var")
            else:
                self._bind(left, item, env, None)
            try:
                self._exec(body, iteration_env)
            except _Break:
                break
            except _Continue:
                continue

    def _exec_while(self, node: Node, env: Environment) -> None:
        condition = node.child_by_field_name("condition")
        body = node.child_by_field_name("body")
        while truthy(self._eval(condition, env)):
            self.tick()
            try:
                self._exec(body, env)
            except _Break:
                break
            except _Continue:
                continue

    def _exec_do(self, node: Node, env: Environment) -> None:
        condition = node.child_by_field_name("condition")
        body = node.child_by_field_name("body")
        while True:
            self.tick()
            try:
                self._exec(body, env)
            except _Break:
                break
            except _Continue:
                pass
            if not truthy(self._eval(condition, env)):
                break

    def _exec_break(self, node: Node, env: Environment) -> None:
        if self._body(node):
            raise self._unsupported(node)
        raise _Break()

    def _exec_continue(self, node: Node, env: Environment) -> None:
        if self._body(node):
            raise self._unsupported(node)
        raise _Continue()

    def _exec_throw(self, node: Node, env: Environment) -> None:
        raise JSThrow(self._eval(self._body(node)[0], env))

    def _exec_try(self, node: Node, env: Environment) -> None:
        handler = node.child_by_field_name("handler")
        finalizer = node.child_by_field_name("finalizer")
        pending: Exception | None = None
        try:
            try:
                self._exec(node.child_by_field_name("body"), env)
            except JSThrow as thrown:
                if handler is None:
                    raise
                catch_env = Environment(env)
                parameter = handler.child_by_field_name("parameter")
                if parameter is not None:
                    self._bind(parameter, thrown.value, catch_env, "let")
                self._exec_statements(self._body(handler.child_by_field_name("body")), catch_env)
        except (JSThrow, _ControlFlow) as signal:
            pending = signal
        if finalizer is not None:
            self._exec(finalizer.child_by_field_name("body"), env)
        if pending is not None:
            raise pending

    def _exec_switch(self, node: Node, env: Environment) -> None:
        discriminant = self._eval(node.child_by_field_name("value"), env)
        cases = [c for c in node.child_by_field_name("body").named_children if c.type in ("switch_case", "switch_default")]

        start = None
        for i, case in enumerate(cases):
            if case.type == "switch_case" and strict_equals(
                self._eval(case.child_by_field_name("value"), env), discriminant
            ):
                start = i
                break
        if start is None:
            start = next((i for i, c in enumerate(cases) if c.type == "switch_default"), None)
        if start is None:
            return

        case_env = Environment(env)
        try:
            for case in cases[start:]:
                value = case.child_by_field_name("value")
                statements = [
                    c
                    for c in self._body(case)
                    if value is None or c.start_byte != value.start_byte
                ]
                self._exec_statements(statements, case_env)
        except _Break:
            pass

    # -- binding -------------------------------------------------------------------

    def _bind(self, pattern: Node, value: Any, env: Environment, kind: str | None) -> None:
        """Bind ``value`` to a declaration/parameter pattern, or assign when ``kind`` is None."""
        ptype = pattern.type
        if ptype in ("identifier", "shorthand_property_identifier_pattern"):
            name = self._text(pattern)
            if kind is None:
                env.assign(name, value)
            else:
                env.declare(name, value, kind)
        elif ptype == "assignment_pattern":
            left = pattern.child_by_field_name("left")
            if value is UNDEFINED:
                value = self._eval(pattern.child_by_field_name("right"), env)
                if left.type == "identifier":
                    self._name_function(value, self._text(left))
            self._bind(left, value, env, kind)
        elif ptype == "object_pattern":
            self._bind_object(pattern, value, env, kind)
        elif ptype == "array_pattern":
            self._bind_array(pattern, value, env, kind)
        elif ptype in ("member_expression", "subscript_expression") and kind is None:
            obj = self._eval(pattern.child_by_field_name("object"), env)
            self.set_member(obj, self._member_key(pattern, env), value)
        elif ptype == "parenthesized_expression" and kind is None:
            self._bind(self._body(pattern)[0], value, env, kind)
        else:
            raise self._unsupported(pattern)

    def _bind_object(self, pattern: Node, value: Any, env: Environment, kind: str | None) -> None:
        if is_nullish(value):
            raise make_error("TypeError", f"Cannot destructure '{to_string(value)}' as it is {to_string(value)}.")
        used: list[str] = []
        for child in self._body(pattern):
            ctype = child.type
            if ctype == "shorthand_property_identifier_pattern":
                key = self._text(child)
                used.append(key)
                self._bind(child, self.get_member(value, key), env, kind)
            elif ctype == "pair_pattern":
                key = self._property_key(child.child_by_field_name("key"), env)
                used.append(key)
                self._bind(child.child_by_field_name("value"), self.get_member(value, key), env, kind)
            elif ctype == "object_assignment_pattern":
                left = child.child_by_field_name("left")
                key = self._text(left)
                used.append(key)
                member = self.get_member(value, key)
                if member is UNDEFINED:
                    member = self._eval(child.child_by_field_name("right"), env)
                    self._name_function(member, key)
                self._bind(left, member, env, kind)
            elif ctype == "rest_pattern":
                rest = {
                    k: self.get_member(value, k) for k in builtins.own_keys(value) if k not in used
                }
                self._bind(self._body(child)[0], rest, env, kind)
            else:
                raise self._unsupported(child)

    def _bind_array(self, pattern: Node, value: Any, env: Environment, kind: str | None) -> None:
        if is_nullish(value):
            raise make_error("TypeError", f"{to_string(value)} is not iterable")
        items = builtins.iterate(value)
        index = 0
        for child in pattern.children:
            if child.type == ",":
                index += 1
            elif child.type in ("[", "]") or child.type in _SKIPPED:
                continue
            elif child.type == "rest_pattern":
                self._bind(self._body(child)[0], items[index:], env, kind)
            else:
                self._bind(child, items[index] if index < len(items) else UNDEFINED, env, kind)

    # -- functions -------------------------------------------------------------

    def _make_function(self, node: Node, env: Environment, name: str = "") -> JSFunction:
        if any(child.type in ("async", "*", "get", "set") for child in node.children):
            raise self._unsupported(node)
        name_node = node.child_by_field_name("name")
        if name_node is not None and node.type != "method_definition":
            name = self._text(name_node)

        parameter = node.child_by_field_name("parameter")
        if parameter is not None:
            params = [parameter]
        else:
            parameters = node.child_by_field_name("parameters")
            params = self._body(parameters) if parameters is not None else []

        return JSFunction(
            name,
            params,
            node.child_by_field_name("body"),
            env,
            node.type == "arrow_function",
            self,
        )

    def _eval_function_expression(self, node: Node, env: Environment) -> JSFunction:
        if node.child_by_field_name("name") is None:
            return self._make_function(node, env)
        scope = Environment(env)
        fn = self._make_function(node, scope)
        scope.declare(fn.name, fn, "var")
        return fn

    def call(self, callee: Any, args: list[Any], label: str | None = None) -> Any:
        """Invoke a guest-callable value with a guest argument list."""
        if isinstance(callee, JSFunction):
            return self._call_function(callee, args)
        if isinstance(callee, HostFunction):
            try:
                result = callee.fn(args)
            except (TypeError, ValueError, KeyError, IndexError, AttributeError, OverflowError, ZeroDivisionError) as exc:
                raise make_error("TypeError", f"Invalid arguments for {callee.name}()") from exc
            return self._track(result)
        if isinstance(callee, HostComponent):
            props = args[0] if args and isinstance(args[0], Mapping) else {}
            return self._track(callee(props))
        raise make_error("TypeError", f"{label or to_string(callee)} is not a function")

    def _call_function(self, fn: JSFunction, args: list[Any]) -> Any:
        self.depth += 1
        try:
            if self.depth > self.policy.max_call_depth:
                raise ExecutionLimitError(
                    f"Maximum call stack size exceeded (depth {self.policy.max_call_depth})",
                    "stack_overflow",
                )
            scope = Environment(fn.env, is_function=True)
            if not fn.is_arrow:
                scope.declare("arguments", list(args), "var")
            for i, param in enumerate(fn.params):
                if param.type == "rest_pattern":
                    self._bind(self._body(param)[0], list(args[i:]), scope, "var")
                    break
                self._bind(param, args[i] if i < len(args) else UNDEFINED, scope, "var")

            body = fn.body
            if body.type != "statement_block":
                return self._eval(body, scope)
            try:
                self._exec_statements(self._body(body), scope)
            except _Return as ret:
                return ret.value
            except (_Break, _Continue):
                raise make_error("SyntaxError", "Illegal break or continue statement") from None
            return UNDEFINED
        finally:
            self.depth -= 1

    # -- expressions -----------------------------------------------------------

    def _eval(self, node: Node, env: Environment) -> Any:
        self.tick()
        handler = self._expressions.get(node.type)
        if handler is None:
            raise self._unsupported(node)
        return handler(node, env)

    def _eval_identifier(self, node: Node, env: Environment) -> Any:
        name = self._text(node)
        if name == "undefined":
            return UNDEFINED
        return env.lookup(name)

    def _eval_number(self, node: Node, env: Environment) -> int | float:
        text = self._text(node).replace("_", "")
        if text.endswith("n"):
            raise self._unsupported(node)
        lowered = text.lower()
        for prefix, base in (("0x", 16), ("0o", 8), ("0b", 2)):
            if lowered.startswith(prefix):
                return normalize_number(int(text[2:], base))
        if "." in text or "e" in lowered or len(text) > 16:
            return normalize_number(float(text))
        return normalize_number(int(text))

    def _eval_string(self, node: Node, env: Environment) -> str:
        return decode_string_escapes(self._text(node)[1:-1])

    def _eval_template(self, node: Node, env: Environment) -> str:
        parts = []
        pos = node.start_byte + 1
        for child in node.children:
            if child.type != "template_substitution":
                continue
            parts.append(decode_string_escapes(self._slice(pos, child.start_byte)))
            parts.append(to_string(self._eval(self._body(child)[0], env), self))
            pos = child.end_byte
        parts.append(decode_string_escapes(self._slice(pos, node.end_byte - 1)))
        return self.check_string("".join(parts))

    def _eval_parenthesized(self, node: Node, env: Environment) -> Any:
        return self._eval(self._body(node)[0], env)

    def _eval_sequence(self, node: Node, env: Environment) -> Any:
        result = UNDEFINED
        for expression in self._body(node):
            result = self._eval(expression, env)
        return result

    def _eval_ternary(self, node: Node, env: Environment) -> Any:
        if truthy(self._eval(node.child_by_field_name("condition"), env)):
            return self._eval(node.child_by_field_name("consequence"), env)
        return self._eval(node.child_by_field_name("alternative"), env)

    def _eval_array(self, node: Node, env: Environment) -> list[Any]:
        result: list[Any] = []
        for child in self._body(node):
            if child.type == "spread_element":
                result.extend(builtins.iterate(self._eval(self._body(child)[0], env)))
            else:
                result.append(self._eval(child, env))
            self.check_array_length(len(result))
        return result

    def _property_key(self, node: Node, env: Environment) -> str:
        ktype = node.type
        if ktype in ("property_identifier", "shorthand_property_identifier_pattern", "identifier"):
            return self._text(node)
        if ktype == "string":
            return self._eval_string(node, env)
        if ktype == "number":
            return format_number(self._eval_number(node, env))
        if ktype == "computed_property_name":
            return to_property_key(self._eval(self._body(node)[0], env))
        raise self._unsupported(node)

    def _eval_object(self, node: Node, env: Environment) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for child in self._body(node):
            ctype = child.type
            if ctype == "pair":
                key = self._property_key(child.child_by_field_name("key"), env)
                value = self._eval(child.child_by_field_name("value"), env)
                self._name_function(value, key)
                result[key] = value
            elif ctype == "shorthand_property_identifier":
                name = self._text(child)
                result[name] = env.lookup(name)
            elif ctype == "spread_element":
                self._spread_into(result, self._eval(self._body(child)[0], env))
            elif ctype == "method_definition":
                key = self._property_key(child.child_by_field_name("name"), env)
                result[key] = self._make_function(child, env, key)
            else:
                raise self._unsupported(child)
        return result

    @staticmethod
    def _spread_into(target: dict[str, Any], value: Any) -> None:
        if isinstance(value, (str, list)):
            target.update((str(i), item) for i, item in enumerate(value))
        elif isinstance(value, JSFunction):
            target.update(value.properties)
        elif isinstance(value, Mapping):
            target.update((str(k), v) for k, v in value.items())
        elif isinstance(value, Element):
            target.update({"type": value.type, "props": value.props, "key": value.key})

    # member access ---------------------------------------------------------

    def _eval_chain(self, node: Node, env: Environment) -> Any:
        try:
            if node.type == "call_expression":
                return self._eval_call(node, env)
            return self._eval_member(node, env)
        except _ShortCircuit:
            if self._continues_chain(node):
                raise
            return UNDEFINED

    @staticmethod
    def _continues_chain(node: Node) -> bool:
        parent = node.parent
        if parent is None or parent.type not in _CHAIN_TYPES:
            return False
        field = "function" if parent.type == "call_expression" else "object"
        head = parent.child_by_field_name(field)
        return head is not None and head.start_byte == node.start_byte and head.end_byte == node.end_byte

    @staticmethod
    def _is_optional(node: Node) -> bool:
        return any(child.type == "optional_chain" for child in node.children)

    def _member_key(self, node: Node, env: Environment) -> Any:
        if node.type == "member_expression":
            prop = node.child_by_field_name("property")
            if prop.type == "private_property_identifier":
                raise self._unsupported(prop)
            return self._text(prop)
        return self._eval(node.child_by_field_name("index"), env)

    def _eval_member(self, node: Node, env: Environment) -> Any:
        obj = self._eval(node.child_by_field_name("object"), env)
        if is_nullish(obj) and self._is_optional(node):
            raise _ShortCircuit()
        return self.get_member(obj, self._member_key(node, env))

    def get_member(self, obj: Any, key: Any) -> Any:
        """Read a property through the explicit per-type dispatch."""
        if is_nullish(obj):
            raise make_error(
                "TypeError",
                f"Cannot read properties of {to_string(obj)} (reading '{to_property_key(key)}')",
            )
        if isinstance(obj, list):
            index = array_index(key)
            if index is not None:
                return obj[index] if index < len(obj) else UNDEFINED
            name = to_property_key(key)
            if name == "length":
                return len(obj)
            return builtins.bound_method(self, builtins.ARRAY_METHODS, obj, name) or UNDEFINED
        if isinstance(obj, str):
            index = array_index(key)
            if index is not None:
                return obj[index] if index < len(obj) else UNDEFINED
            name = to_property_key(key)
            if name == "length":
                return len(obj)
            return builtins.bound_method(self, builtins.STRING_METHODS, obj, name) or UNDEFINED

        name = to_property_key(key)
        if isinstance(obj, dict):
            value = obj.get(name, _MISSING)
            if value is not _MISSING:
                return value
            if name == "hasOwnProperty":
                return HostFunction(
                    "hasOwnProperty", lambda args: bool(args) and to_property_key(args[0]) in obj
                )
            return UNDEFINED
        if isinstance(obj, Mapping):
            return obj.get(name, UNDEFINED)
        if isinstance(obj, JSFunction):
            if name in obj.properties:
                return obj.properties[name]
            if name == "name":
                return obj.name
            if name == "length":
                return len(obj.params)
            return UNDEFINED
        if isinstance(obj, HostFunction):
            statics = self._statics.get(obj)
            if statics is not None and name in statics:
                return statics[name]
            return obj.name if name == "name" else UNDEFINED
        if isinstance(obj, HostComponent):
            return obj.name if name in ("name", "displayName") else UNDEFINED
        if isinstance(obj, Element):
            if name == "type":
                return obj.type
            if name == "props":
                return obj.props
            if name == "key":
                return obj.key
            return UNDEFINED
        if isinstance(obj, bool):
            if name == "toString":
                return HostFunction("toString", lambda args: to_string(obj))
            return UNDEFINED
        if is_number(obj):
            return builtins.bound_method(self, builtins.NUMBER_METHODS, obj, name) or UNDEFINED
        return UNDEFINED

    def set_member(self, obj: Any, key: Any, value: Any) -> None:
        """Write a property; host and capability objects are read-only."""
        name = to_property_key(key)
        if is_nullish(obj):
            raise make_error("TypeError", f"Cannot set properties of {to_string(obj)} (setting '{name}')")
        if isinstance(obj, list):
            index = array_index(key)
            if index is not None:
                if index >= len(obj):
                    self.check_array_length(index + 1)
                    obj.extend([UNDEFINED] * (index + 1 - len(obj)))
                obj[index] = value
                return
            if name == "length":
                length = to_number(value)
                if not (isinstance(length, int) or length.is_integer()) or length < 0:
                    raise make_error("RangeError", "Invalid array length")
                length = int(length)
                self.check_array_length(length)
                del obj[length:]
                obj.extend([UNDEFINED] * (length - len(obj)))
                return
            raise make_error("TypeError", f"Cannot add property '{name}' to an array")
        if isinstance(obj, dict):
            obj[name] = value
            return
        if isinstance(obj, JSFunction):
            obj.properties[name] = value
            return
        raise make_error("TypeError", f"Cannot assign to read only property '{name}' of {typeof(obj)}")

    # calls -----------------------------------------------------------------

    def _arguments(self, node: Node | None, env: Environment) -> list[Any]:
        args: list[Any] = []
        if node is None:
            return args
        for child in self._body(node):
            if child.type == "spread_element":
                args.extend(builtins.iterate(self._eval(self._body(child)[0], env)))
            else:
                args.append(self._eval(child, env))
        return args

    def _eval_call(self, node: Node, env: Environment) -> Any:
        fn_node = node.child_by_field_name("function")
        args_node = node.child_by_field_name("arguments")
        if args_node is not None and args_node.type == "template_string":
            raise UnknownRuntimeFault(
                f"Unsupported syntax: tagged templates (line {node.start_point[0] + 1}, "
                f"column {node.start_point[1] + 1})"
            )
        callee = self._eval(fn_node, env)
        if is_nullish(callee) and self._is_optional(node):
            raise _ShortCircuit()
        return self.call(callee, self._arguments(args_node, env), self._label(fn_node))

    def _eval_new(self, node: Node, env: Environment) -> Any:
        ctor_node = node.child_by_field_name("constructor")
        ctor = self._eval(ctor_node, env)
        args = self._arguments(node.child_by_field_name("arguments"), env)
        if isinstance(ctor, HostConstructor):
            return self.call(ctor, args)
        if isinstance(ctor, JSFunction):
            raise UnknownRuntimeFault(
                "Unsupported syntax: constructing guest functions with new "
                f"(line {node.start_point[0] + 1}, column {node.start_point[1] + 1})"
            )
        raise make_error("TypeError", f"{self._label(ctor_node)} is not a constructor")

    # assignment ---------------------------------------------------------------

    def _reference(self, target: Node, env: Environment) -> tuple[Callable[[], Any], Callable[[Any], None]]:
        """Return getter/setter closures for an assignable expression."""
        if target.type == "identifier":
            name = self._text(target)
            return (lambda: env.lookup(name)), (lambda value: env.assign(name, value))
        if target.type in ("member_expression", "subscript_expression"):
            obj = self._eval(target.child_by_field_name("object"), env)
            key = self._member_key(target, env)
            return (lambda: self.get_member(obj, key)), (lambda value: self.set_member(obj, key, value))
        if target.type == "parenthesized_expression":
            return self._reference(self._body(target)[0], env)
        raise self._unsupported(target)

    def _eval_assignment(self, node: Node, env: Environment) -> Any:
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left.type in ("object_pattern", "array_pattern"):
            value = self._eval(right, env)
            self._bind(left, value, env, None)
            return value
        _, setter = self._reference(left, env)
        value = self._eval(right, env)
        if left.type == "identifier":
            self._name_function(value, self._text(left))
        setter(value)
        return value

    def _eval_augmented_assignment(self, node: Node, env: Environment) -> Any:
        operator = self._text(node.child_by_field_name("operator"))[:-1]
        getter, setter = self._reference(node.child_by_field_name("left"), env)
        right = node.child_by_field_name("right")
        current = getter()
        if operator == "&&":
            if not truthy(current):
                return current
            value = self._eval(right, env)
        elif operator == "||":
            if truthy(current):
                return current
            value = self._eval(right, env)
        elif operator == "??":
            if not is_nullish(current):
                return current
            value = self._eval(right, env)
        else:
            value = self._binary_op(operator, current, self._eval(right, env))
        setter(value)
        return value

    def _eval_update(self, node: Node, env: Environment) -> Any:
        operator = self._text(node.child_by_field_name("operator"))
        getter, setter = self._reference(node.child_by_field_name("argument"), env)
        old = to_number(getter())
        new = normalize_number(old + (1 if operator == "++" else -1))
        setter(new)
        return new if node.children[0].type in ("++", "--") else old

    # operators ---------------------------------------------------------------

    def _eval_binary(self, node: Node, env: Environment) -> Any:
        operator = self._text(node.child_by_field_name("operator"))
        left = self._eval(node.child_by_field_name("left"), env)
        right_node = node.child_by_field_name("right")
        if operator == "&&":
            return self._eval(right_node, env) if truthy(left) else left
        if operator == "||":
            return left if truthy(left) else self._eval(right_node, env)
        if operator == "??":
            return self._eval(right_node, env) if is_nullish(left) else left
        return self._binary_op(operator, left, self._eval(right_node, env))

    def _binary_op(self, op: str, left: Any, right: Any) -> Any:
        if op == "+":
            a, b = _to_primitive(left, self), _to_primitive(right, self)
            if isinstance(a, str) or isinstance(b, str):
                text_a, text_b = to_string(a), to_string(b)
                self.check_string_length(len(text_a) + len(text_b))
                return text_a + text_b
            return normalize_number(to_number(a) + to_number(b))
        if op in ("-", "*", "/", "%", "**"):
            return _arithmetic(op, to_number(left), to_number(right))
        if op in ("<", ">", "<=", ">="):
            return _compare(op, _to_primitive(left, self), _to_primitive(right, self))
        if op == "===":
            return strict_equals(left, right)
        if op == "!==":
            return not strict_equals(left, right)
        if op == "==":
            return loose_equals(left, right)
        if op == "!=":
            return not loose_equals(left, right)
        if op in ("&", "|", "^", "<<", ">>", ">>>"):
            return builtins.bitwise(op, left, right)
        if op == "in":
            return self._has_property(right, left)
        if op == "instanceof":
            if isinstance(right, HostConstructor):
                return right.instance_check(left)
            if isinstance(right, JSFunction):
                return False
            raise make_error("TypeError", "Right-hand side of 'instanceof' is not callable")
        raise make_error("SyntaxError", f"Unknown operator {op}")

    @staticmethod
    def _has_property(obj: Any, key: Any) -> bool:
        name = to_property_key(key)
        if isinstance(obj, list):
            index = array_index(key)
            return name == "length" or (index is not None and index < len(obj))
        if isinstance(obj, Mapping):
            return name in obj
        if isinstance(obj, JSFunction):
            return name in obj.properties
        raise make_error("TypeError", f"Cannot use 'in' operator to search for '{name}' in {to_string(obj)}")

    def _eval_unary(self, node: Node, env: Environment) -> Any:
        operator = self._text(node.child_by_field_name("operator"))
        argument = node.child_by_field_name("argument")
        if operator == "typeof":
            if argument.type == "identifier" and not env.has(self._text(argument)):
                return "undefined"
            return typeof(self._eval(argument, env))
        if operator == "delete":
            return self._delete(argument, env)
        value = self._eval(argument, env)
        if operator == "!":
            return not truthy(value)
        if operator == "-":
            number = to_number(value)
            return -number if number != 0 or isinstance(number, float) else 0
        if operator == "+":
            return to_number(value)
        if operator == "~":
            return ~to_int32(value)
        if operator == "void":
            return UNDEFINED
        raise self._unsupported(node)

    def _delete(self, argument: Node, env: Environment) -> bool:
        if argument.type not in ("member_expression", "subscript_expression"):
            return True
        obj = self._eval(argument.child_by_field_name("object"), env)
        name = to_property_key(self._member_key(argument, env))
        if isinstance(obj, dict):
            obj.pop(name, None)
        elif isinstance(obj, JSFunction):
            obj.properties.pop(name, None)
        elif isinstance(obj, Mapping) or is_nullish(obj):
            raise make_error("TypeError", f"Cannot delete property '{name}' of {to_string(obj)}")
        return True


def _to_primitive(value: Any, budget: Any = None) -> Any:
    if value is None or value is UNDEFINED or isinstance(value, (str, bool, int, float)):
        return value
    return to_string(value, budget)


def _arithmetic(op: str, x: int | float, y: int | float) -> int | float:
    if op == "-":
        return normalize_number(x - y)
    if op == "*":
        return normalize_number(x * y)
    if op == "**":
        return builtins.power(x, y)
    if op == "/":
        if y == 0:
            if x == 0 or (isinstance(x, float) and math.isnan(x)):
                return math.nan
            return math.copysign(math.inf, x) * math.copysign(1, y)
        return x / y
    # %
    if y == 0 or (isinstance(x, float) and (math.isinf(x) or math.isnan(x))):
        return math.nan
    if isinstance(y, float) and math.isnan(y):
        return math.nan
    if isinstance(y, float) and math.isinf(y):
        return x
    result = math.fmod(x, y)
    return int(result) if isinstance(x, int) and isinstance(y, int) else result


def _compare(op: str, a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        x: Any = a
        y: Any = b
    else:
        x, y = to_number(a), to_number(b)
        if (isinstance(x, float) and math.isnan(x)) or (isinstance(y, float) and math.isnan(y)):
            return False
    if op == "<":
        return x < y
    if op == ">":
        return x > y
    if op == "<=":
        return x <= y
    return x >= y
