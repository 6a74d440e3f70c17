"""Pydantic models for type-safe pipeline configuration and results.

Provides validated data models for compilation policies, error kinds,
pipeline stages and the uniform PipelineResult returned to every caller,
with automatic field validation and JSON serialization support.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from email_sandbox.core.errors import PolicyValidationError


class ErrorKind(str, Enum):
    """Failure taxonomy exposed to callers.

    Values equal the corresponding exception class names so the wire
    format reads naturally in agent transcripts.
    """
    TRANSPILE = "TranspileError"
    MODULE_RESOLUTION = "ModuleResolutionError"
    COMPONENT_CONTRACT = "ComponentContractError"
    RENDER = "RenderError"
    UNKNOWN_RUNTIME = "UnknownRuntimeFault"


class PipelineStage(str, Enum):
    """Per-invocation state machine positions.

    RECEIVED -> TRANSPILED -> EXECUTED -> RESOLVED -> RENDERED -> COMPLETED,
    with FAILED reachable from every non-terminal state.
    """
    RECEIVED = "received"
    TRANSPILED = "transpiled"
    EXECUTED = "executed"
    RESOLVED = "resolved"
    RENDERED = "rendered"
    COMPLETED = "completed"
    FAILED = "failed"


class CompilationPolicy(BaseModel):
    """Type-safe configuration model for per-invocation evaluation budgets.

    All fields have conservative defaults and are validated at construction
    time. Budgets are enforced inside the evaluator, so a hostile template
    (infinite loop, runaway recursion, huge string) is stopped
    deterministically instead of hanging the host.

    Attributes:
        fuel_budget: Maximum evaluation steps (one per evaluated node)
        max_call_depth: Maximum nested guest function calls
        max_elements: Maximum elements created via createElement
        max_string_length: Maximum length of any string built by guest code
        max_array_length: Maximum length of any array built by guest code
        max_source_bytes: Maximum size of the submitted source text
        max_html_bytes: Maximum size of the rendered markup
        max_console_bytes: Maximum captured console output
        timeout_seconds: Wall-clock budget checked cooperatively (None = none)
    """

    fuel_budget: int = Field(
        default=500_000,
        gt=0,
        description="Maximum evaluation steps per invocation"
    )

    max_call_depth: int = Field(
        default=64,
        gt=0,
        description="Maximum nested guest function calls"
    )

    max_elements: int = Field(
        default=20_000,
        gt=0,
        description="Maximum elements created per invocation"
    )

    max_string_length: int = Field(
        default=1_000_000,
        gt=0,
        description="Maximum length of strings built by guest code"
    )

    max_array_length: int = Field(
        default=100_000,
        gt=0,
        description="Maximum length of arrays built by guest code"
    )

    max_source_bytes: int = Field(
        default=256_000,
        gt=0,
        description="Maximum size of submitted source text in bytes"
    )

    max_html_bytes: int = Field(
        default=2_000_000,
        gt=0,
        description="Maximum size of rendered markup in bytes"
    )

    max_console_bytes: int = Field(
        default=16_000,
        gt=0,
        description="Maximum captured console output in bytes"
    )

    timeout_seconds: float | None = Field(
        default=5.0,
        description="Cooperative wall-clock budget (None = no timeout)"
    )

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise PolicyValidationError(f"Invalid compilation policy: {e}") from e

    @classmethod
    def model_validate(cls, obj: Any, *, strict: bool | None = None, context: dict[str, Any] | None = None) -> "CompilationPolicy":
        try:
            return super().model_validate(obj, strict=strict, context=context)  # type: ignore[arg-type]
        except ValidationError as e:
            raise PolicyValidationError(f"Invalid compilation policy: {e}") from e

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float | None) -> float | None:
        """Ensure timeout is positive if provided."""
        if v is not None and v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class PipelineResult(BaseModel):
    """Immutable, uniform outcome of one compilation.

    This is the only entity collaborators ever observe. On success ``html``
    holds the rendered markup; on failure ``error_kind`` and ``message``
    describe what went wrong without exposing host stack traces.

    Attributes:
        ok: Whether the pipeline completed
        html: Rendered markup (empty on failure)
        error_kind: Failure classification (None on success)
        message: Human-readable failure message (None on success)
        duration_ms: Wall-clock pipeline time in milliseconds
        metadata: Stage reached, budget usage, console output, error guidance
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        use_enum_values=True,
        json_schema_extra={
            "examples": [
                {"ok": True, "html": "<!DOCTYPE html ...><html>...</html>"},
                {
                    "ok": False,
                    "errorKind": "ModuleResolutionError",
                    "message": 'Module not found: "fs".',
                },
            ]
        },
    )

    ok: bool = Field(description="Whether the pipeline completed")

    html: str = Field(default="", description="Rendered markup (empty on failure)")

    error_kind: ErrorKind | None = Field(
        default=None,
        alias="errorKind",
        description="Failure classification"
    )

    message: str | None = Field(default=None, description="Human-readable failure message")

    duration_ms: float = Field(default=0.0, description="Wall-clock pipeline time in milliseconds")

    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Stage reached, fuel consumed, console output, error guidance"
    )

    @model_validator(mode="after")
    def check_shape(self) -> "PipelineResult":
        """Enforce the two legal shapes of a result."""
        if self.ok and self.error_kind is not None:
            raise ValueError("Successful result cannot carry an error kind")
        if not self.ok and (self.error_kind is None or not self.message):
            raise ValueError("Failed result requires error_kind and message")
        return self

    def to_wire(self) -> dict[str, Any]:
        """Return the minimal wire form: ``{ok, html}`` or ``{ok, errorKind, message}``."""
        if self.ok:
            return {"ok": True, "html": self.html}
        return {"ok": False, "errorKind": self.error_kind, "message": self.message}
