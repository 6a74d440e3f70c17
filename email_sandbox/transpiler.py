"""Syntactic TSX/JSX to plain JavaScript transform.

Parses source text with tree-sitter's TSX grammar and rewrites it node by
node: JSX becomes ``React.createElement`` calls, TypeScript-only syntax is
stripped and ES module syntax is rewritten to the CommonJS convention the
sandbox executor understands. Nothing is ever executed here.
"""

from __future__ import annotations

import html
import json
import re
from collections.abc import Callable

import tree_sitter_typescript
from tree_sitter import Language, Node, Parser

from email_sandbox.core.errors import TranspileError
from email_sandbox.core.models import CompilationPolicy

TSX_LANGUAGE = Language(tree_sitter_typescript.language_tsx())

JSX_PRAGMA = "React.createElement"
JSX_FRAGMENT_PRAGMA = "React.Fragment"
REACT_PROLOGUE = 'const React = require("react");\n'

# Nodes that only carry type information
_TYPE_ONLY = frozenset(
    {
        "type_annotation",
        "type_arguments",
        "type_parameters",
        "interface_declaration",
        "type_alias_declaration",
        "ambient_declaration",
        "function_signature",
        "accessibility_modifier",
        "override_modifier",
    }
)

# Wrapper expressions reduced to their inner expression
_ASSERTIONS = frozenset({"as_expression", "satisfies_expression", "non_null_expression"})

_UNSUPPORTED = {
    "enum_declaration": "enum declarations",
    "internal_module": "namespace declarations",
    "module": "module declarations",
    "import_alias": "import aliases",
    "decorator": "decorators",
}

_LINE_BREAK = re.compile(r"\r\n|\n|\r")


def transpile(source: str, policy: CompilationPolicy | None = None) -> str:
    """Rewrite TSX/JSX/TS source into plain CommonJS-style JavaScript.

    Args:
        source: Untrusted template source text
        policy: Budgets to enforce (only ``max_source_bytes`` applies here)

    Returns:
        str: The compiled unit

    Raises:
        TranspileError: If the source is too large, syntactically invalid,
                        too deeply nested, or uses unsupported TypeScript syntax
    """
    policy = policy or CompilationPolicy()
    data = source.encode("utf-8")
    if len(data) > policy.max_source_bytes:
        raise TranspileError(
            f"Source is {len(data)} bytes; the limit is {policy.max_source_bytes} bytes"
        )

    tree = Parser(TSX_LANGUAGE).parse(data)
    root = tree.root_node
    if root.has_error:
        raise _syntax_error(root)

    try:
        return _Transpiler(data).program(root)
    except RecursionError:
        raise TranspileError("SyntaxError: source nests too deeply to compile") from None


def first_error_node(root: Node) -> Node:
    """Return the first ERROR or MISSING node in document order."""
    stack = [root]
    while stack:
        node = stack.pop()
        if node.is_error or node.is_missing:
            return node
        for child in reversed(node.children):
            if child.has_error or child.is_missing:
                stack.append(child)
    return root


def _syntax_error(root: Node) -> TranspileError:
    node = first_error_node(root)
    line = node.start_point[0] + 1
    column = node.start_point[1] + 1
    if node.is_missing:
        what = f'Missing "{node.type}"'
    else:
        what = "Unexpected token"
    return TranspileError(f"SyntaxError: {what} at line {line}, column {column}", line, column)


def clean_jsx_text(raw: str) -> str:
    """Collapse JSX text whitespace.

    Lines are trimmed, whitespace-only lines dropped and the remaining lines
    joined by single spaces; leading whitespace on the first line and
    trailing whitespace on the last line are kept.
    """
    lines = _LINE_BREAK.split(raw)
    last_non_empty = -1
    for i, line in enumerate(lines):
        if line.strip(" \t"):
            last_non_empty = i

    result = []
    for i, line in enumerate(lines):
        trimmed = line.replace("\t", " ")
        if i != 0:
            trimmed = trimmed.lstrip(" ")
        if i != len(lines) - 1:
            trimmed = trimmed.rstrip(" ")
        if trimmed:
            if i != last_non_empty:
                trimmed += " "
            result.append(trimmed)
    return "".join(result)


def _js_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


class _Transpiler:
    """Single-use rewriter over one parsed source buffer."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.uses_jsx = False
        self._handlers: dict[str, Callable[[Node], str]] = {
            "jsx_element": self.jsx_element,
            "jsx_self_closing_element": self.jsx_element,
            "jsx_fragment": self.jsx_element,
            "import_statement": self.import_statement,
            "export_statement": self.export_statement,
            "optional_parameter": self.optional_parameter,
        }

    # -- helpers ---------------------------------------------------------

    def text(self, node: Node) -> str:
        return self.data[node.start_byte : node.end_byte].decode("utf-8")

    def slice(self, start: int, end: int) -> str:
        return self.data[start:end].decode("utf-8")

    def emit(self, node: Node) -> str:
        kind = node.type
        if kind in _TYPE_ONLY:
            return ""
        if kind in _ASSERTIONS:
            return self.emit(node.named_children[0])
        if kind in _UNSUPPORTED:
            line, column = node.start_point[0] + 1, node.start_point[1] + 1
            raise TranspileError(
                f"Unsupported syntax: {_UNSUPPORTED[kind]} (line {line}, column {column})",
                line,
                column,
            )
        handler = self._handlers.get(kind)
        if handler is not None:
            return handler(node)
        return self.emit_children(node)

    def emit_children(self, node: Node, skip: Callable[[Node], bool] | None = None) -> str:
        if node.child_count == 0:
            return self.text(node)
        parts = []
        pos = node.start_byte
        for child in node.children:
            parts.append(self.slice(pos, child.start_byte))
            if skip is None or not skip(child):
                parts.append(self.emit(child))
            pos = child.end_byte
        parts.append(self.slice(pos, node.end_byte))
        return "".join(parts)

    def program(self, root: Node) -> str:
        body = self.emit_children(root)
        if self.uses_jsx and not self._binds_react(root):
            return REACT_PROLOGUE + body
        return body

    def _binds_react(self, root: Node) -> bool:
        for statement in root.named_children:
            if statement.type == "import_statement":
                for clause in statement.named_children:
                    if clause.type != "import_clause":
                        continue
                    for part in clause.named_children:
                        if part.type == "identifier" and self.text(part) == "React":
                            return True
                        if part.type == "namespace_import" and self.text(part).endswith(" React"):
                            return True
            elif statement.type in ("lexical_declaration", "variable_declaration"):
                for declarator in statement.named_children:
                    name = declarator.child_by_field_name("name")
                    if name is not None and name.type == "identifier" and self.text(name) == "React":
                        return True
        return False

    # -- TypeScript --------------------------------------------------------

    def optional_parameter(self, node: Node) -> str:
        return self.emit_children(node, skip=lambda child: child.type == "?")

    # -- JSX -------------------------------------------------------------

    def jsx_element(self, node: Node) -> str:
        self.uses_jsx = True
        if node.type == "jsx_self_closing_element":
            return self._create_call(node, [])

        opening = node.children[0]
        closing = node.children[-1]
        children = self._jsx_children(node.children[1:-1], opening.end_byte, closing.start_byte)
        return self._create_call(opening, children)

    def _create_call(self, opening: Node, children: list[str]) -> str:
        name = opening.child_by_field_name("name")
        attributes = [c for c in opening.named_children if c.type in ("jsx_attribute", "jsx_expression")]
        args = [self._jsx_tag(name), self._jsx_props(attributes), *children]
        return f"{JSX_PRAGMA}({', '.join(args)})"

    def _jsx_tag(self, name: Node | None) -> str:
        if name is None:
            return JSX_FRAGMENT_PRAGMA
        tag = self.text(name)
        if name.type == "jsx_namespace_name":
            return _js_string(tag)
        if name.type == "identifier" and (tag[:1].islower() or "-" in tag):
            return _js_string(tag)
        return tag

    def _jsx_props(self, attributes: list[Node]) -> str:
        if not attributes:
            return "null"
        entries = []
        for attribute in attributes:
            if attribute.type == "jsx_expression":
                inner = self._expression_of(attribute)
                if inner is not None:
                    entries.append(self.emit(inner))
                continue
            parts = [c for c in attribute.named_children if c.type != "comment"]
            key = _js_string(self.text(parts[0]))
            value = self._jsx_attribute_value(parts[1]) if len(parts) > 1 else "true"
            entries.append(f"{key}: {value}")
        return "{" + ", ".join(entries) + "}"

    def _jsx_attribute_value(self, node: Node) -> str:
        if node.type == "string":
            return _js_string(html.unescape(self.text(node)[1:-1]))
        if node.type == "jsx_expression":
            inner = self._expression_of(node)
            if inner is None:
                line, column = node.start_point[0] + 1, node.start_point[1] + 1
                raise TranspileError(
                    f"SyntaxError: JSX attributes must only be assigned a non-empty expression "
                    f"at line {line}, column {column}",
                    line,
                    column,
                )
            return self.emit(inner)
        return self.emit(node)

    def _expression_of(self, container: Node) -> Node | None:
        for child in container.named_children:
            if child.type != "comment":
                return child
        return None

    def _jsx_children(self, nodes: list[Node], start: int, end: int) -> list[str]:
        out: list[str] = []
        pos = start
        for child in nodes:
            if child.type in ("jsx_text", "html_character_reference", "comment"):
                continue
            self._append_text(out, self.slice(pos, child.start_byte))
            if child.type == "jsx_expression":
                inner = self._expression_of(child)
                if inner is not None:
                    out.append(self.emit(inner))
            else:
                out.append(self.emit(child))
            pos = child.end_byte
        self._append_text(out, self.slice(pos, end))
        return out

    def _append_text(self, out: list[str], raw: str) -> None:
        cleaned = clean_jsx_text(raw)
        if cleaned:
            out.append(_js_string(html.unescape(cleaned)))

    # -- modules -----------------------------------------------------------

    def import_statement(self, node: Node) -> str:
        if any(child.type == "type" for child in node.children):
            return ""
        source = node.child_by_field_name("source")
        if source is None:
            line, column = node.start_point[0] + 1, node.start_point[1] + 1
            raise TranspileError(
                f"Unsupported syntax: import assignments (line {line}, column {column})", line, column
            )
        module = self.text(source)

        clause = next((c for c in node.named_children if c.type == "import_clause"), None)
        if clause is None:
            return f"require({module});"

        lines = []
        for part in clause.named_children:
            if part.type == "identifier":
                lines.append(f"const {self.text(part)} = require({module}).default;")
            elif part.type == "namespace_import":
                alias = [c for c in part.named_children if c.type == "identifier"][-1]
                lines.append(f"const {self.text(alias)} = require({module});")
            elif part.type == "named_imports":
                specs = []
                for specifier in part.named_children:
                    if specifier.type != "import_specifier" or any(c.type == "type" for c in specifier.children):
                        continue
                    name = self.text(specifier.child_by_field_name("name"))
                    alias = specifier.child_by_field_name("alias")
                    specs.append(f"{name}: {self.text(alias)}" if alias is not None else name)
                if specs:
                    lines.append(f"const {{ {', '.join(specs)} }} = require({module});")
        return " ".join(lines)

    def export_statement(self, node: Node) -> str:
        tokens = {child.type for child in node.children}
        if "type" in tokens:
            return ""
        if node.child_by_field_name("source") is not None:
            line, column = node.start_point[0] + 1, node.start_point[1] + 1
            raise TranspileError(
                f"Unsupported syntax: re-exports (line {line}, column {column})", line, column
            )
        is_default = "default" in tokens

        declaration = node.child_by_field_name("declaration")
        if declaration is not None:
            if declaration.type in _TYPE_ONLY:
                return ""
            code = self.emit(declaration)
            names = self._declared_names(declaration)
            if is_default:
                if names:
                    return f"{code}\nmodule.exports.default = {names[0]};"
                return f"module.exports.default = {code};"
            return code + "".join(f"\nexports.{name} = {name};" for name in names)

        value = node.child_by_field_name("value")
        if value is not None:
            return f"module.exports.default = {self.emit(value)};"

        lines = []
        for clause in node.named_children:
            if clause.type != "export_clause":
                continue
            for specifier in clause.named_children:
                if specifier.type != "export_specifier":
                    continue
                local = self.text(specifier.child_by_field_name("name"))
                alias = specifier.child_by_field_name("alias")
                exported = self.text(alias) if alias is not None else local
                if exported == "default":
                    lines.append(f"module.exports.default = {local};")
                else:
                    lines.append(f"exports.{exported} = {local};")
        return " ".join(lines)

    def _declared_names(self, declaration: Node) -> list[str]:
        if declaration.type in ("lexical_declaration", "variable_declaration"):
            names = []
            for declarator in declaration.named_children:
                name = declarator.child_by_field_name("name")
                if name is not None and name.type == "identifier":
                    names.append(self.text(name))
            return names
        name = declaration.child_by_field_name("name")
        return [self.text(name)] if name is not None else []
