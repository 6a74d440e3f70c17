"""Guest value model, element primitives, intrinsics and the component library."""

from __future__ import annotations

from .elements import FRAGMENT, Element, HostComponent, create_element
from .values import UNDEFINED, HostFunction, JSFunction, JSThrow

__all__ = [
    "Element",
    "FRAGMENT",
    "HostComponent",
    "HostFunction",
    "JSFunction",
    "JSThrow",
    "UNDEFINED",
    "create_element",
]
