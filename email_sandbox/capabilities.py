"""Capability table: the closed set of modules guest code may require.

Built once at import time from read-only mappings and shared by every
invocation. Guest writes to a capability module fail, so one template can
never tamper with what the next one sees.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from email_sandbox.core.errors import ModuleResolutionError
from email_sandbox.runtime.components import LIBRARY_COMPONENTS
from email_sandbox.runtime.elements import FRAGMENT, HostComponent, create_element
from email_sandbox.runtime.values import HostFunction

REACT_MODULE = "react"
COMPONENTS_MODULE = "@react-email/components"


def _frozen_module(members: dict[str, Any]) -> Mapping[str, Any]:
    """Freeze a module mapping; ``default`` points back at the module itself."""
    view = MappingProxyType(members)
    members["default"] = view
    return view


def _react_module() -> Mapping[str, Any]:
    return _frozen_module(
        {
            "createElement": HostFunction("createElement", lambda args: create_element(*args)),
            "Fragment": FRAGMENT,
            "version": "18.3.1",
        }
    )


def _components_module() -> Mapping[str, Any]:
    return _frozen_module(dict(LIBRARY_COMPONENTS))


class CapabilityTable:
    """Immutable map from module name to host module.

    Attributes:
        modules: Read-only name -> module mapping
    """

    def __init__(self, modules: Mapping[str, Mapping[str, Any]]) -> None:
        self.modules: Mapping[str, Mapping[str, Any]] = MappingProxyType(dict(modules))
        self._library = frozenset(
            value
            for module in self.modules.values()
            for value in module.values()
            if isinstance(value, HostComponent)
        )

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self.modules)

    def resolve(self, name: str) -> Mapping[str, Any]:
        """Return the module for ``name``.

        Raises:
            ModuleResolutionError: If ``name`` is not in the table
        """
        module = self.modules.get(name)
        if module is None:
            raise ModuleResolutionError(name, self.names)
        return module

    def is_library_component(self, value: Any) -> bool:
        """Whether ``value`` is one of the table's trusted components."""
        return isinstance(value, HostComponent) and value in self._library

    def component_names(self) -> list[str]:
        """Names of the components exported by the component library."""
        return sorted(k for k, v in self.modules[COMPONENTS_MODULE].items() if isinstance(v, HostComponent))


DEFAULT_CAPABILITIES = CapabilityTable(
    {
        REACT_MODULE: _react_module(),
        COMPONENTS_MODULE: _components_module(),
    }
)
