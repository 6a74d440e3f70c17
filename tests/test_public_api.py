"""Tests for public API exports from the email_sandbox package.

Verifies all components are correctly exported and accessible
via 'from email_sandbox import ...' statements and that __all__ is
complete.
"""

from __future__ import annotations


class TestPublicAPIImports:
    """Test that all public API components can be imported."""

    def test_import_compilation_policy(self) -> None:
        """Test 'from email_sandbox import CompilationPolicy' works."""
        from email_sandbox import CompilationPolicy

        assert CompilationPolicy.__name__ == "CompilationPolicy"
        policy = CompilationPolicy()
        assert hasattr(policy, "model_dump")

    def test_import_pipeline_result(self) -> None:
        """Test 'from email_sandbox import PipelineResult' works."""
        from email_sandbox import PipelineResult

        assert hasattr(PipelineResult, "model_validate")

    def test_import_compile_functions(self) -> None:
        from email_sandbox import compile_template, compile_template_async

        assert callable(compile_template)
        assert callable(compile_template_async)

    def test_import_errors(self) -> None:
        """All failure classes derive from PipelineError."""
        from email_sandbox import (
            ComponentContractError,
            ExecutionLimitError,
            ModuleResolutionError,
            PipelineError,
            RenderError,
            TranspileError,
            UnknownRuntimeFault,
        )

        for cls in [
            ComponentContractError,
            ExecutionLimitError,
            ModuleResolutionError,
            RenderError,
            TranspileError,
            UnknownRuntimeFault,
        ]:
            assert issubclass(cls, PipelineError)

    def test_all_exports_resolve(self) -> None:
        """Every name in __all__ is importable."""
        import email_sandbox

        for name in email_sandbox.__all__:
            assert hasattr(email_sandbox, name), f"{name} listed in __all__ but missing"

    def test_version(self) -> None:
        import email_sandbox

        assert email_sandbox.__version__ == "0.1.0"

    def test_mcp_server_exports(self) -> None:
        import mcp_server

        for name in mcp_server.__all__:
            assert hasattr(mcp_server, name)


class TestQuickStart:
    """Test the documented minimal usage."""

    def test_compile_template_end_to_end(self) -> None:
        from email_sandbox import ErrorKind, compile_template

        ok = compile_template(
            'const React = require("react");\n'
            'module.exports.default = () => React.createElement("p", null, "Hi");'
        )
        bad = compile_template('require("os");')

        assert ok.ok and ok.html.endswith("<p>Hi</p>")
        assert bad.error_kind == ErrorKind.MODULE_RESOLUTION
