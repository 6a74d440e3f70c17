"""Component resolver: picks the entry component and expands guest components.

The resolved tree contains only tag names, fragments and trusted library
components, so the renderer never runs guest code.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from email_sandbox.capabilities import CapabilityTable
from email_sandbox.core.errors import ComponentContractError, ExecutionLimitError
from email_sandbox.executor import convert_fault
from email_sandbox.interpreter import Interpreter
from email_sandbox.runtime.elements import FRAGMENT, Element, HostComponent, create_element
from email_sandbox.runtime.values import (
    HostFunction,
    JSFunction,
    is_nullish,
    is_number,
    typeof,
)

MAX_TREE_DEPTH = 256

NO_DEFAULT_EXPORT = (
    "Email template must export a default React component via module.exports.default "
    "(no usable default export; got {kind})"
)

_TAG_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9:-]*$")


def _describe(value: Any) -> str:
    if isinstance(value, Element):
        return "element"
    if isinstance(value, list):
        return "array"
    if isinstance(value, HostFunction):
        return f"function {value.name}"
    if isinstance(value, str):
        return f'"{value[:40]}"'
    return typeof(value)


class ComponentResolver:
    """Resolve and instantiate the entry component of one invocation.

    Guest components are invoked through the same interpreter that
    evaluated the module, so its budgets also bound component rendering.
    """

    def __init__(self, interpreter: Interpreter, capabilities: CapabilityTable, max_depth: int = MAX_TREE_DEPTH) -> None:
        self.interpreter = interpreter
        self.capabilities = capabilities
        self.max_depth = max_depth
        self.elements_expanded = 0

    def resolve_entry_point(self, exports: Any) -> Any:
        """Pick the entry component from the exports slot.

        The ``default`` property wins when present; otherwise the slot
        itself is the candidate.

        Raises:
            ComponentContractError: If the candidate is missing or not invokable
        """
        candidate = exports
        if isinstance(exports, Mapping) and "default" in exports:
            candidate = exports["default"]
        elif isinstance(exports, JSFunction) and "default" in exports.properties:
            candidate = exports.properties["default"]

        if not isinstance(candidate, (JSFunction, HostComponent)):
            raise ComponentContractError(NO_DEFAULT_EXPORT.format(kind=_describe(candidate)))
        return candidate

    def instantiate(self, component: Any) -> Any:
        """Invoke the entry component with empty props and expand the result.

        Raises:
            ComponentContractError: If the tree contains an invalid element
                                    type or a non-renderable child
            UnknownRuntimeFault: If guest component code throws
        """
        try:
            element = create_element(component, {})
            return self._expand(element, 0)
        except ComponentContractError:
            raise
        except Exception as exc:
            raise convert_fault(exc) from None

    def _expand(self, node: Any, depth: int) -> Any:
        if depth > self.max_depth:
            raise ExecutionLimitError(
                f"Component tree nests deeper than {self.max_depth} levels", "stack_overflow"
            )
        self.interpreter.tick()
        if is_nullish(node) or isinstance(node, (bool, str)) or is_number(node):
            return node
        if isinstance(node, list):
            return [self._expand(child, depth + 1) for child in node]
        if not isinstance(node, Element):
            raise ComponentContractError(
                f"Objects are not valid as a React child (found: {_describe(node)})"
            )

        self.elements_expanded += 1
        limit = self.interpreter.policy.max_elements
        if self.elements_expanded > limit:
            raise ExecutionLimitError(f"Component tree expands to more than {limit} elements", "memory_limit")

        element_type = node.type
        if isinstance(element_type, JSFunction):
            rendered = self.interpreter.call(element_type, [node.props])
            return self._expand(rendered, depth + 1)

        if not self._is_renderable_type(element_type):
            raise ComponentContractError(
                "Element type is invalid: expected a string (for built-in elements) or a "
                f"component from @react-email/components but got: {_describe(element_type)}"
            )

        props = node.props
        if "children" in props:
            props = dict(props)
            props["children"] = self._expand(props["children"], depth + 1)
        return Element(element_type, props, node.key)

    def _is_renderable_type(self, element_type: Any) -> bool:
        if element_type is FRAGMENT:
            return True
        if isinstance(element_type, str):
            return bool(_TAG_NAME.match(element_type))
        return self.capabilities.is_library_component(element_type)
