"""Exception classes for pipeline failures and policy validation.

Provides the typed failure taxonomy for the template compilation pipeline.
Each stage raises one of these at its own boundary; the result packager
maps them to a PipelineResult and nothing else ever reaches callers.
"""

from __future__ import annotations


class PolicyValidationError(Exception):
    """Raised when compilation policy configuration is invalid.

    Indicates that a provided CompilationPolicy or policy TOML file
    contains invalid values (e.g., negative limits or unknown fields).

    This exception wraps Pydantic ValidationError with a clearer
    domain-specific name for pipeline consumers.
    """

    pass


class PipelineError(Exception):
    """Base class for every typed pipeline failure.

    Attributes:
        message: Human-readable description, safe to show to users and agents
        stage: Pipeline stage that produced the failure (set by the pipeline)
    """

    kind = "UnknownRuntimeFault"

    def __init__(self, message: str, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage


class TranspileError(PipelineError):
    """Raised when source text is not syntactically valid.

    Carries the line/column of the first syntax error so the generating
    agent can locate and fix it.
    """

    kind = "TranspileError"

    def __init__(
        self,
        message: str,
        line: int | None = None,
        column: int | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.line = line
        self.column = column


class ModuleResolutionError(PipelineError):
    """Raised when guest code requires a name outside the capability table."""

    kind = "ModuleResolutionError"

    def __init__(self, name: str, available: tuple[str, ...] = (), stage: str | None = None) -> None:
        listing = ", ".join(f'"{n}"' for n in available)
        message = f'Module not found: "{name}".'
        if listing:
            message += f" Only {listing} are available."
        super().__init__(message, stage=stage)
        self.name = name


class ComponentContractError(PipelineError):
    """Raised when the exports do not provide a usable component.

    Covers a missing or non-invokable default export, element types that
    are not tags or library components, and non-renderable children.
    """

    kind = "ComponentContractError"


class RenderError(PipelineError):
    """Raised when a valid component tree fails to serialize to markup."""

    kind = "RenderError"


class UnknownRuntimeFault(PipelineError):
    """Raised for any other fault during sandboxed evaluation or invocation.

    Guest `throw` statements, type errors inside the evaluator and
    unsupported syntax all land here.
    """

    kind = "UnknownRuntimeFault"


class ExecutionLimitError(UnknownRuntimeFault):
    """Raised when a per-invocation evaluation budget is exhausted.

    Attributes:
        trap_reason: Which budget tripped ("out_of_fuel", "stack_overflow",
                     "memory_limit" or "timeout")
    """

    def __init__(self, message: str, trap_reason: str, stage: str | None = None) -> None:
        super().__init__(message, stage=stage)
        self.trap_reason = trap_reason
