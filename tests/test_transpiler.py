"""Tests for the TSX/JSX to JavaScript transpiler.

Verifies JSX lowering, TypeScript stripping, ES module rewriting and
syntax error reporting. Output is checked textually; nothing is executed.
"""

from __future__ import annotations

import pytest

from email_sandbox.core.errors import TranspileError
from email_sandbox.core.models import CompilationPolicy
from email_sandbox.transpiler import REACT_PROLOGUE, clean_jsx_text, transpile


class TestJsxLowering:
    """Test JSX to createElement conversion."""

    def test_self_closing_intrinsic(self):
        """Lowercase tags become string element types."""
        out = transpile('const x = <br />;')
        assert 'React.createElement("br", null)' in out

    def test_component_reference(self):
        """Capitalized tags stay identifiers."""
        out = transpile("const x = <Text>Hi</Text>;")
        assert 'React.createElement(Text, null, "Hi")' in out

    def test_member_expression_tag(self):
        """Dotted tags stay member expressions."""
        out = transpile("const x = <UI.Text />;")
        assert "React.createElement(UI.Text, null)" in out

    def test_attributes_become_props_object(self):
        """String and expression attributes become object entries."""
        out = transpile('const x = <a href="https://x.test" style={s} />;')
        assert 'React.createElement("a", {"href": "https://x.test", "style": s})' in out

    def test_boolean_attribute(self):
        """Bare attributes are true."""
        out = transpile("const x = <input disabled />;")
        assert '{"disabled": true}' in out

    def test_spread_attribute(self):
        """Spread attributes are kept inside the props object."""
        out = transpile("const x = <Text {...rest} id=\"a\" />;")
        assert '{...rest, "id": "a"}' in out

    def test_entities_in_attribute_decoded(self):
        """HTML entities in string attributes are decoded."""
        out = transpile('const x = <img alt="a &amp; b" />;')
        assert '"alt": "a & b"' in out

    def test_fragment(self):
        """Fragments lower to React.Fragment."""
        out = transpile("const x = <><br /></>;")
        assert "React.createElement(React.Fragment, null, " in out

    def test_expression_children(self):
        """Expression containers become positional children."""
        out = transpile("const x = <p>Hello {name}!</p>;")
        assert 'React.createElement("p", null, "Hello ", name, "!")' in out

    def test_empty_expression_child_dropped(self):
        """Comment-only expression containers produce no child."""
        out = transpile("const x = <p>{/* note */}</p>;")
        assert 'React.createElement("p", null)' in out

    def test_multiline_text_collapsed(self):
        """Whitespace-only lines between elements are removed."""
        out = transpile("const x = (\n  <p>\n    <b>a</b>\n    <i>b</i>\n  </p>\n);")
        assert 'React.createElement("p", null, React.createElement("b", null, "a"), React.createElement("i", null, "b"))' in out

    def test_react_prologue_added_when_unbound(self):
        """JSX without a React binding gets a require prologue."""
        out = transpile("module.exports.default = () => <br />;")
        assert out.startswith(REACT_PROLOGUE)

    def test_react_prologue_skipped_when_bound(self):
        """An existing React binding is reused."""
        out = transpile('const React = require("react");\nconst x = <br />;')
        assert not out.startswith(REACT_PROLOGUE)

    def test_no_jsx_no_prologue(self):
        """Plain JavaScript passes through unchanged."""
        source = "const a = 1 + 2;\nmodule.exports.default = a;"
        assert transpile(source) == source


class TestCleanJsxText:
    """Test JSX text whitespace rules."""

    def test_single_line_preserved(self):
        """Inline text keeps its spacing."""
        assert clean_jsx_text(" Hello world ") == " Hello world "

    def test_multiline_joined(self):
        """Lines are trimmed and joined by single spaces."""
        assert clean_jsx_text("\n  Hello\n  world\n") == "Hello world"

    def test_whitespace_only(self):
        """Whitespace with line breaks collapses to nothing."""
        assert clean_jsx_text("\n   \n  ") == ""


class TestTypeScriptStripping:
    """Test removal of type-only syntax."""

    def test_annotations_removed(self):
        """Parameter, variable and return annotations disappear."""
        out = transpile("function f(a: number, b?: string): string { const c: number = a; return b; }")
        assert ":" not in out.replace("::", "")
        assert "function f(a, b) { const c = a; return b; }" == out

    def test_interfaces_and_type_aliases_removed(self):
        """Interfaces and type aliases produce no code."""
        out = transpile("interface P { a: string }\ntype Q = { b: number };\nconst x = 1;")
        assert "interface" not in out
        assert "type Q" not in out
        assert "const x = 1;" in out

    def test_as_and_non_null_unwrapped(self):
        """Assertions reduce to their operand."""
        out = transpile("const a = (b as any)!;\nconst c = d satisfies E;")
        assert "const a = (b);" in out
        assert "const c = d;" in out

    def test_generic_call_arguments_removed(self):
        """Type arguments on calls are dropped."""
        out = transpile("const a = make<string>(1);")
        assert "const a = make(1);" in out

    def test_enum_unsupported(self):
        """Enums would need runtime code and are rejected."""
        with pytest.raises(TranspileError, match="enum declarations"):
            transpile("enum Color { Red, Blue }")


class TestModuleRewriting:
    """Test ES module syntax rewriting to CommonJS."""

    def test_named_imports(self):
        """Named imports become destructured requires."""
        out = transpile('import { Html, Text as T } from "@react-email/components";')
        assert out == 'const { Html, Text: T } = require("@react-email/components");'

    def test_default_import(self):
        """Default imports read the default property."""
        out = transpile('import React from "react";')
        assert out == 'const React = require("react").default;'

    def test_namespace_import(self):
        """Namespace imports bind the whole module."""
        out = transpile('import * as React from "react";')
        assert out == 'const React = require("react");'

    def test_type_only_import_removed(self):
        """import type produces no code."""
        assert transpile('import type { X } from "y";') == ""

    def test_side_effect_import(self):
        """Bare imports still require the module."""
        assert transpile('import "fs";') == 'require("fs");'

    def test_export_default_function(self):
        """Named default function exports keep the declaration."""
        out = transpile("export default function Email() { return null; }")
        assert "function Email() { return null; }" in out
        assert out.endswith("module.exports.default = Email;")

    def test_export_default_expression(self):
        """Default expression exports assign the slot."""
        out = transpile("export default () => null;")
        assert out == "module.exports.default = () => null;"

    def test_named_export_declaration(self):
        """Named declarations are mirrored onto exports."""
        out = transpile("export const a = 1, b = 2;")
        assert out == "const a = 1, b = 2;\nexports.a = a;\nexports.b = b;"

    def test_export_clause_with_default_alias(self):
        """export { X as default } sets the default slot."""
        out = transpile("const X = 1;\nexport { X as default, X as other };")
        assert "module.exports.default = X;" in out
        assert "exports.other = X;" in out

    def test_reexport_rejected(self):
        """Re-exports from other modules are not supported."""
        with pytest.raises(TranspileError, match="re-exports"):
            transpile('export { a } from "b";')


class TestSyntaxErrors:
    """Test syntax error detection and reporting."""

    def test_unbalanced_braces(self):
        """Broken input raises TranspileError with a position."""
        with pytest.raises(TranspileError) as exc_info:
            transpile("const x = {;\nmodule.exports.default = x;")

        error = exc_info.value
        assert error.message.startswith("SyntaxError")
        assert error.line is not None
        assert error.column is not None

    def test_unclosed_jsx(self):
        """An unclosed JSX element is a syntax error."""
        with pytest.raises(TranspileError):
            transpile("const x = <Text>hello;")

    def test_error_line_reported(self):
        """The reported line points at the broken statement."""
        with pytest.raises(TranspileError) as exc_info:
            transpile("const a = 1;\nconst b = 2;\nconst = ;\n")
        assert exc_info.value.line == 3

    def test_source_size_limit(self):
        """Oversized sources are rejected before parsing."""
        policy = CompilationPolicy(max_source_bytes=10)
        with pytest.raises(TranspileError, match="limit is 10 bytes"):
            transpile("const value = 123456789;", policy)
