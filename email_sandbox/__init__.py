"""Sandboxed compilation of AI-generated email templates.

Turns untrusted TSX/JSX/JS component source written against React Email
components into HTML, without ever executing it on the host runtime:

    Transpile -> Sandboxed Execute -> Component Resolve -> Render

Every outcome is reported as a PipelineResult.
"""

from __future__ import annotations

from email_sandbox.capabilities import DEFAULT_CAPABILITIES, CapabilityTable
from email_sandbox.core.errors import (
    ComponentContractError,
    ExecutionLimitError,
    ModuleResolutionError,
    PipelineError,
    PolicyValidationError,
    RenderError,
    TranspileError,
    UnknownRuntimeFault,
)
from email_sandbox.core.logging import PipelineLogger, configure_structlog
from email_sandbox.core.models import CompilationPolicy, ErrorKind, PipelineResult, PipelineStage
from email_sandbox.pipeline import TemplatePipeline, compile_template, compile_template_async
from email_sandbox.policies import load_policy

__version__ = "0.1.0"

__all__ = [
    "CapabilityTable",
    "CompilationPolicy",
    "ComponentContractError",
    "DEFAULT_CAPABILITIES",
    "ErrorKind",
    "ExecutionLimitError",
    "ModuleResolutionError",
    "PipelineError",
    "PipelineLogger",
    "PipelineResult",
    "PipelineStage",
    "PolicyValidationError",
    "RenderError",
    "TemplatePipeline",
    "TranspileError",
    "UnknownRuntimeFault",
    "compile_template",
    "compile_template_async",
    "configure_structlog",
    "load_policy",
]
