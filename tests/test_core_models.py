"""Tests for core Pydantic models and policy loading.

Tests CompilationPolicy validation, PipelineResult shapes, ErrorKind and
PipelineStage enums, and load_policy() integration with TOML configuration.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from email_sandbox.core import (
    CompilationPolicy,
    ErrorKind,
    PipelineResult,
    PipelineStage,
    PolicyValidationError,
)
from email_sandbox.policies import DEFAULT_POLICY, load_policy


class TestErrorKind:
    """Test ErrorKind enum values."""

    def test_values_match_class_names(self):
        """Wire values are the failure class names."""
        assert ErrorKind.TRANSPILE == "TranspileError"
        assert ErrorKind.MODULE_RESOLUTION == "ModuleResolutionError"
        assert ErrorKind.COMPONENT_CONTRACT == "ComponentContractError"
        assert ErrorKind.RENDER == "RenderError"
        assert ErrorKind.UNKNOWN_RUNTIME == "UnknownRuntimeFault"

    def test_enum_members(self):
        """Exactly five failure kinds exist."""
        assert len(list(ErrorKind)) == 5


class TestPipelineStage:
    """Test PipelineStage enum values."""

    def test_stage_order(self):
        """Stages are listed in pipeline order with terminal states last."""
        assert [s.value for s in PipelineStage] == [
            "received",
            "transpiled",
            "executed",
            "resolved",
            "rendered",
            "completed",
            "failed",
        ]


class TestCompilationPolicy:
    """Test CompilationPolicy model validation and defaults."""

    def test_default_values(self):
        """Test CompilationPolicy has correct default values."""
        policy = CompilationPolicy()

        assert policy.fuel_budget == 500_000
        assert policy.max_call_depth == 64
        assert policy.max_elements == 20_000
        assert policy.max_string_length == 1_000_000
        assert policy.max_array_length == 100_000
        assert policy.max_source_bytes == 256_000
        assert policy.max_html_bytes == 2_000_000
        assert policy.max_console_bytes == 16_000
        assert policy.timeout_seconds == 5.0

    def test_defaults_match_default_policy(self):
        """DEFAULT_POLICY and the model defaults agree."""
        assert CompilationPolicy().model_dump() == DEFAULT_POLICY

    def test_custom_values(self):
        """Test CompilationPolicy accepts custom values."""
        policy = CompilationPolicy(fuel_budget=1_000, max_elements=10, timeout_seconds=None)

        assert policy.fuel_budget == 1_000
        assert policy.max_elements == 10
        assert policy.timeout_seconds is None

    @pytest.mark.parametrize(
        "field",
        ["fuel_budget", "max_call_depth", "max_elements", "max_source_bytes", "max_html_bytes"],
    )
    def test_non_positive_limits_rejected(self, field):
        """Zero or negative limits raise PolicyValidationError."""
        with pytest.raises(PolicyValidationError):
            CompilationPolicy(**{field: 0})

    def test_negative_timeout_rejected(self):
        """Timeout must be positive when provided."""
        with pytest.raises(PolicyValidationError):
            CompilationPolicy(timeout_seconds=-1)

    def test_model_validate_wraps_errors(self):
        """model_validate also raises the domain error."""
        with pytest.raises(PolicyValidationError):
            CompilationPolicy.model_validate({"fuel_budget": "lots"})

    def test_json_serialization(self):
        """Policy round-trips through JSON."""
        policy = CompilationPolicy(fuel_budget=42)
        restored = CompilationPolicy.model_validate(json.loads(policy.model_dump_json()))
        assert restored == policy


class TestPipelineResult:
    """Test PipelineResult shapes and wire form."""

    def test_success_shape(self):
        """Successful result carries html and no error."""
        result = PipelineResult(ok=True, html="<html></html>", duration_ms=1.5)

        assert result.ok is True
        assert result.error_kind is None
        assert result.message is None
        assert result.to_wire() == {"ok": True, "html": "<html></html>"}

    def test_failure_shape(self):
        """Failed result carries kind and message with empty html."""
        result = PipelineResult(
            ok=False,
            error_kind=ErrorKind.RENDER,
            message="boom",
        )

        assert result.html == ""
        assert result.error_kind == "RenderError"
        assert result.to_wire() == {"ok": False, "errorKind": "RenderError", "message": "boom"}

    def test_alias_population(self):
        """errorKind alias is accepted on input and emitted by_alias."""
        result = PipelineResult.model_validate(
            {"ok": False, "errorKind": "TranspileError", "message": "bad"}
        )

        assert result.error_kind == "TranspileError"
        assert result.model_dump(by_alias=True)["errorKind"] == "TranspileError"

    def test_success_with_error_kind_rejected(self):
        """A successful result cannot carry an error kind."""
        with pytest.raises(ValidationError):
            PipelineResult(ok=True, error_kind=ErrorKind.RENDER)

    def test_failure_without_message_rejected(self):
        """A failed result needs both kind and message."""
        with pytest.raises(ValidationError):
            PipelineResult(ok=False, error_kind=ErrorKind.RENDER)
        with pytest.raises(ValidationError):
            PipelineResult(ok=False, message="no kind")

    def test_result_is_frozen(self):
        """Results are immutable once packaged."""
        result = PipelineResult(ok=True, html="x")
        with pytest.raises(ValidationError):
            result.html = "y"  # type: ignore[misc]


class TestLoadPolicy:
    """Test load_policy() TOML integration."""

    def test_missing_file_returns_defaults(self, tmp_path: Path):
        """A missing file yields the default policy."""
        policy = load_policy(str(tmp_path / "absent.toml"))
        assert policy == CompilationPolicy()

    def test_policy_table_merged_over_defaults(self, tmp_path: Path):
        """Keys under [policy] override defaults; others fall back."""
        path = tmp_path / "policy.toml"
        path.write_text("[policy]\nfuel_budget = 1234\ntimeout_seconds = 1.5\n")

        policy = load_policy(str(path))

        assert policy.fuel_budget == 1234
        assert policy.timeout_seconds == 1.5
        assert policy.max_elements == DEFAULT_POLICY["max_elements"]

    def test_top_level_keys_accepted(self, tmp_path: Path):
        """Keys may also live at the top level of the file."""
        path = tmp_path / "policy.toml"
        path.write_text("max_call_depth = 8\n")

        assert load_policy(str(path)).max_call_depth == 8

    def test_invalid_values_raise(self, tmp_path: Path):
        """Invalid budgets raise PolicyValidationError."""
        path = tmp_path / "policy.toml"
        path.write_text("[policy]\nfuel_budget = -5\n")

        with pytest.raises(PolicyValidationError):
            load_policy(str(path))

    def test_repository_policy_file_loads(self):
        """The shipped config/policy.toml is valid."""
        config = Path(__file__).resolve().parent.parent / "config" / "policy.toml"
        assert load_policy(str(config)) == CompilationPolicy()
