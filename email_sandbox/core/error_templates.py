"""Error guidance templates for actionable error resolution.

Provides structured error analysis and actionable solutions for each
pipeline failure kind. Guidance is attached to failed PipelineResults so
the generating agent can correct its template on the next attempt.
Templates are parameterized with context from the failure (module name,
line/column, budget that tripped).
"""

from __future__ import annotations

from typing import TypedDict

from email_sandbox.core.errors import (
    ComponentContractError,
    ExecutionLimitError,
    ModuleResolutionError,
    PipelineError,
    RenderError,
    TranspileError,
)


class CodeExample(TypedDict, total=False):
    """Structure for before/after code examples in error guidance."""

    before: str
    after: str
    explanation: str


class ErrorGuidance(TypedDict):
    """Structure for error guidance metadata in PipelineResult."""

    error_type: str
    actionable_guidance: list[str]
    code_examples: list[CodeExample] | None


ERROR_SYNTAX = "SyntaxError"
ERROR_FORBIDDEN_MODULE = "ForbiddenModule"
ERROR_MISSING_DEFAULT_EXPORT = "MissingDefaultExport"
ERROR_RENDER_FAILURE = "RenderFailure"
ERROR_BUDGET_EXHAUSTED = "BudgetExhausted"
ERROR_COMPONENT_THREW = "ComponentThrew"


def get_syntax_guidance(line: int | None = None, column: int | None = None) -> ErrorGuidance:
    """Generate guidance for TranspileError failures."""
    guidance = ["The template source could not be parsed."]
    if line is not None:
        guidance.append(f"First syntax error near line {line}, column {column or 1}.")
    guidance.extend(
        [
            "Check for unbalanced braces, parentheses or JSX tags.",
            "Every JSX element must be closed (<Img /> not <Img>).",
            "Return multiple sibling elements inside a single parent or <>...</>.",
        ]
    )
    return ErrorGuidance(
        error_type=ERROR_SYNTAX,
        actionable_guidance=guidance,
        code_examples=[
            CodeExample(
                before="return <Text>Hello</Text><Text>World</Text>;",
                after="return <><Text>Hello</Text><Text>World</Text></>;",
                explanation="Adjacent JSX elements need a wrapping fragment",
            )
        ],
    )


def get_module_guidance(name: str | None = None) -> ErrorGuidance:
    """Generate guidance for ModuleResolutionError failures."""
    guidance = []
    if name:
        guidance.append(f'"{name}" is not available inside the template sandbox.')
    guidance.extend(
        [
            'Only "react" and "@react-email/components" can be required or imported.',
            "Inline helpers and styles directly in the template instead of importing them.",
        ]
    )
    return ErrorGuidance(
        error_type=ERROR_FORBIDDEN_MODULE,
        actionable_guidance=guidance,
        code_examples=[
            CodeExample(
                before='const fs = require("fs");',
                after='const { Html, Body, Text } = require("@react-email/components");',
                explanation="Require only the component library and React",
            )
        ],
    )


def get_contract_guidance() -> ErrorGuidance:
    """Generate guidance for ComponentContractError failures."""
    return ErrorGuidance(
        error_type=ERROR_MISSING_DEFAULT_EXPORT,
        actionable_guidance=[
            "The template must export a function component as its default export.",
            "Use `module.exports.default = MyEmail;` or `export default function MyEmail() {...}`.",
            "Element types must be HTML tag names or components from @react-email/components.",
        ],
        code_examples=[
            CodeExample(
                before="module.exports.default = 42;",
                after="module.exports.default = () => React.createElement(Html, null);",
                explanation="The default export must be invokable",
            )
        ],
    )


def get_render_guidance() -> ErrorGuidance:
    """Generate guidance for RenderError failures."""
    return ErrorGuidance(
        error_type=ERROR_RENDER_FAILURE,
        actionable_guidance=[
            "The component tree was valid but could not be serialized to HTML.",
            "Keep the email reasonably small and avoid generating huge repeated content.",
        ],
        code_examples=None,
    )


def get_budget_guidance(trap_reason: str) -> ErrorGuidance:
    """Generate guidance for evaluation budget exhaustion."""
    causes = {
        "out_of_fuel": "The template performed too many evaluation steps (likely an unbounded loop).",
        "stack_overflow": "Functions nested too deeply (likely unbounded recursion).",
        "memory_limit": "The template built too many elements or too large strings/arrays.",
        "timeout": "The template took too long to evaluate.",
    }
    return ErrorGuidance(
        error_type=ERROR_BUDGET_EXHAUSTED,
        actionable_guidance=[
            causes.get(trap_reason, "An evaluation budget was exhausted."),
            "Templates should be declarative: build the tree directly without heavy computation.",
        ],
        code_examples=None,
    )


def get_runtime_guidance(message: str) -> ErrorGuidance:
    """Generate guidance for faults thrown while evaluating the template."""
    guidance = ["The template threw while it was evaluated or while its component ran."]
    if "is not defined" in message:
        guidance.append("A variable or component is used without being declared or required.")
        guidance.append("Destructure every component you use from require(\"@react-email/components\").")
    elif "Unsupported syntax" in message:
        guidance.append("Use plain functions, arrow functions and objects; classes and async are unavailable.")
    elif "Cannot read properties" in message:
        guidance.append("A value was null or undefined; add a default before reading its properties.")
    return ErrorGuidance(
        error_type=ERROR_COMPONENT_THREW,
        actionable_guidance=guidance,
        code_examples=None,
    )


def guidance_for(error: PipelineError) -> ErrorGuidance:
    """Select the guidance template matching a pipeline failure."""
    if isinstance(error, TranspileError):
        return get_syntax_guidance(error.line, error.column)
    if isinstance(error, ModuleResolutionError):
        return get_module_guidance(error.name)
    if isinstance(error, ComponentContractError):
        return get_contract_guidance()
    if isinstance(error, RenderError):
        return get_render_guidance()
    if isinstance(error, ExecutionLimitError):
        return get_budget_guidance(error.trap_reason)
    return get_runtime_guidance(error.message)
