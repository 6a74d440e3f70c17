"""Core pipeline abstractions and models.

This module provides the foundational types for the template compilation
pipeline, including Pydantic models for type-safe configuration and
results, the failure taxonomy, and structured logging.
"""

from __future__ import annotations

from .errors import (
    ComponentContractError,
    ExecutionLimitError,
    ModuleResolutionError,
    PipelineError,
    PolicyValidationError,
    RenderError,
    TranspileError,
    UnknownRuntimeFault,
)
from .models import CompilationPolicy, ErrorKind, PipelineResult, PipelineStage

__all__ = [
    "CompilationPolicy",
    "ComponentContractError",
    "ErrorKind",
    "ExecutionLimitError",
    "ModuleResolutionError",
    "PipelineError",
    "PipelineResult",
    "PipelineStage",
    "PolicyValidationError",
    "RenderError",
    "TranspileError",
    "UnknownRuntimeFault",
]
