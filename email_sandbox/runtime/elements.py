"""Element tree primitives shared by the evaluator, resolver and renderer."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from email_sandbox.runtime.values import UNDEFINED, JSFunction, is_nullish, to_string


class _Fragment:
    __slots__ = ()

    def __repr__(self) -> str:
        return "Fragment"


FRAGMENT = _Fragment()


@dataclass(frozen=True, eq=False)
class Element:
    """An immutable element description: type, props and optional key.

    ``type`` is a tag name, ``FRAGMENT``, a library ``HostComponent`` or a
    guest ``JSFunction`` (until the resolver expands it).
    """

    type: Any
    props: dict[str, Any] = field(default_factory=dict)
    key: str | None = None


class HostComponent:
    """A trusted library component implemented in Python.

    Calling it with a props mapping returns the element subtree it stands
    for; the renderer expands these lazily.
    """

    __slots__ = ("name", "render")

    def __init__(self, name: str, render: Callable[[dict[str, Any]], Any]) -> None:
        self.name = name
        self.render = render

    def __call__(self, props: Mapping[str, Any]) -> Any:
        return self.render(dict(props))

    def __repr__(self) -> str:
        return f"HostComponent({self.name})"


def create_element(type_: Any = UNDEFINED, props: Any = None, *children: Any) -> Element:
    """Build an element the way ``React.createElement`` does.

    ``key`` and ``ref`` are lifted out of props, positional children become
    ``props.children`` (a single child stays unwrapped) and a guest
    component's ``defaultProps`` fill in missing props.
    """
    config = props if isinstance(props, Mapping) else {}
    new_props = {k: v for k, v in config.items() if k not in ("key", "ref")}

    key = config.get("key")
    key = None if is_nullish(key) else to_string(key)

    if len(children) == 1:
        new_props["children"] = children[0]
    elif len(children) > 1:
        new_props["children"] = list(children)

    if isinstance(type_, JSFunction):
        defaults = type_.properties.get("defaultProps")
        if isinstance(defaults, Mapping):
            for name, value in defaults.items():
                if new_props.get(name, UNDEFINED) is UNDEFINED:
                    new_props[name] = value

    return Element(type_, new_props, key)
