"""Policy management for template compilation.

Provides default evaluation budgets and TOML-based configuration loading
for controlling how much work a single untrusted template may perform.
"""

from __future__ import annotations

import os
import tomllib

from pydantic import ValidationError

from email_sandbox.core.errors import PolicyValidationError
from email_sandbox.core.models import CompilationPolicy

DEFAULT_POLICY = {
    # Evaluation step limit - stops infinite loops deterministically
    "fuel_budget": 500_000,

    # Guest call nesting - stops runaway recursion before the host stack
    "max_call_depth": 64,

    # Allocation caps - stop element/string/array bombs
    "max_elements": 20_000,
    "max_string_length": 1_000_000,
    "max_array_length": 100_000,

    # Input/output size caps
    "max_source_bytes": 256_000,
    "max_html_bytes": 2_000_000,
    "max_console_bytes": 16_000,

    # Cooperative wall-clock budget
    "timeout_seconds": 5.0,
}


def load_policy(path: str = "config/policy.toml") -> CompilationPolicy:
    """Load and merge user policy configuration with safe defaults.

    Performs a shallow merge of user-provided TOML settings with
    DEFAULT_POLICY so every budget has a fallback value.

    Args:
        path: Path to the policy TOML file. If file doesn't exist, returns
              CompilationPolicy with defaults.

    Returns:
        CompilationPolicy: Validated policy model with merged configuration.

    Raises:
        PolicyValidationError: If policy contains invalid values (negative limits,
                               invalid types, etc.)
        tomllib.TOMLDecodeError: If TOML file is malformed
        OSError: If file exists but cannot be read
    """
    if not os.path.exists(path):
        return CompilationPolicy(**DEFAULT_POLICY)  # type: ignore[arg-type]

    with open(path, "rb") as f:
        data = tomllib.load(f)

    # Policy keys may live at top level or under a [policy] table
    data = data.get("policy", data)
    policy = DEFAULT_POLICY | data

    try:
        return CompilationPolicy(**policy)  # type: ignore[arg-type]
    except PolicyValidationError:
        raise
    except ValidationError as e:
        raise PolicyValidationError(f"Policy validation failed: {e}") from e
