"""HTML serializer for resolved component trees.

Expands library components and writes deterministic markup with the XHTML
1.0 Transitional doctype that email clients expect. Attribute names and
inline styles follow React's server rendering conventions. The walk is
iterative so deep trees cannot exhaust the host stack.
"""

from __future__ import annotations

import html
import re
import time
from collections.abc import Mapping
from typing import Any

from email_sandbox.core.errors import ExecutionLimitError, PipelineError, RenderError
from email_sandbox.runtime.elements import FRAGMENT, Element, HostComponent
from email_sandbox.runtime.values import UNDEFINED, format_number, is_callable, is_number, to_string

DOCTYPE = (
    '<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.0 Transitional//EN" '
    '"http://www.w3.org/TR/xhtml1/DTD/xhtml1-transitional.dtd">'
)

VOID_ELEMENTS = frozenset(
    {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "source", "track", "wbr"}
)

ATTRIBUTE_ALIASES = {
    "className": "class",
    "htmlFor": "for",
    "httpEquiv": "http-equiv",
    "acceptCharset": "accept-charset",
}

BOOLEAN_ATTRIBUTES = frozenset(
    {
        "allowFullScreen",
        "async",
        "autoFocus",
        "autoPlay",
        "checked",
        "controls",
        "default",
        "defer",
        "disabled",
        "hidden",
        "loop",
        "multiple",
        "muted",
        "noValidate",
        "open",
        "readOnly",
        "required",
        "reversed",
        "selected",
    }
)

RESERVED_PROPS = frozenset(
    {"children", "key", "ref", "dangerouslySetInnerHTML", "suppressHydrationWarning", "suppressContentEditableWarning"}
)

UNITLESS_STYLES = frozenset(
    {
        "animationIterationCount",
        "aspectRatio",
        "borderImageOutset",
        "borderImageSlice",
        "borderImageWidth",
        "columnCount",
        "columns",
        "flex",
        "flexGrow",
        "flexPositive",
        "flexShrink",
        "flexNegative",
        "flexOrder",
        "fontWeight",
        "gridArea",
        "gridColumn",
        "gridColumnEnd",
        "gridColumnStart",
        "gridRow",
        "gridRowEnd",
        "gridRowStart",
        "lineClamp",
        "lineHeight",
        "opacity",
        "order",
        "orphans",
        "scale",
        "tabSize",
        "widows",
        "zIndex",
        "zoom",
        "fillOpacity",
        "floodOpacity",
        "stopOpacity",
        "strokeDasharray",
        "strokeDashoffset",
        "strokeMiterlimit",
        "strokeOpacity",
        "strokeWidth",
    }
)

DEADLINE_CHECK_INTERVAL = 1024

_TAG_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9:-]*$")
_ATTRIBUTE_NAME = re.compile(r"^[A-Za-z_:][A-Za-z0-9_.:-]*$")
_UPPERCASE = re.compile(r"([A-Z])")


class _Raw:
    __slots__ = ("text",)

    def __init__(self, text: str) -> None:
        self.text = text


def hyphenate_style_name(name: str) -> str:
    """Convert a camelCase style name to its CSS property name."""
    if name.startswith("--"):
        return name
    hyphenated = _UPPERCASE.sub(r"-\1", name).lower()
    if hyphenated.startswith("ms-"):
        hyphenated = "-" + hyphenated
    return hyphenated


def style_to_css(style: Any, budget: Any = None) -> str:
    """Serialize a style object to an inline ``style`` attribute value."""
    if not isinstance(style, Mapping):
        return ""
    declarations = []
    for name, value in style.items():
        if value is None or value is UNDEFINED or isinstance(value, bool) or value == "":
            continue
        name = str(name)
        if is_number(value):
            text = format_number(value)
            if value != 0 and name not in UNITLESS_STYLES and not name.startswith("--"):
                text += "px"
        else:
            text = to_string(value, budget).strip()
        declarations.append(f"{hyphenate_style_name(name)}:{text}")
    return ";".join(declarations)


def render_attributes(props: Mapping[str, Any], budget: Any = None) -> str:
    parts = []
    for name, value in props.items():
        if name in RESERVED_PROPS or value is None or value is UNDEFINED:
            continue
        if len(name) > 2 and name[:2].lower() == "on":
            continue
        if is_callable(value) or not _ATTRIBUTE_NAME.match(name):
            continue
        if name == "style":
            css = style_to_css(value, budget)
            if css:
                parts.append(f' style="{html.escape(css)}"')
            continue

        attribute = ATTRIBUTE_ALIASES.get(name, name)
        if isinstance(value, bool):
            if name in BOOLEAN_ATTRIBUTES:
                if value:
                    parts.append(f' {attribute.lower()}=""')
                continue
            if not name.startswith(("data-", "aria-")):
                continue
            text = "true" if value else "false"
        elif name in BOOLEAN_ATTRIBUTES:
            if value == "" or value == 0:
                continue
            text = ""
            attribute = attribute.lower()
        else:
            text = to_string(value, budget)
        parts.append(f' {attribute}="{html.escape(text)}"')
    return "".join(parts)


class HtmlRenderer:
    """Serialize one component tree to markup under size, step and time limits.

    The renderer also serves as the budget for stringifying guest values
    found in attributes, so an oversized array in a prop fails as soon as
    it passes the byte limit.

    Attributes:
        max_bytes: Largest allowed document, in UTF-8 bytes
        max_steps: Largest number of nodes and array items visited
                   (defaults to ``max_bytes``)
        deadline: perf_counter() value after which rendering stops
    """

    def __init__(
        self, max_bytes: int = 2_000_000, max_steps: int | None = None, deadline: float | None = None
    ) -> None:
        self.max_bytes = max_bytes
        self.max_steps = max_steps if max_steps is not None else max_bytes
        self.deadline = deadline
        self.steps = 0
        self._parts: list[str] = []
        self._size = 0

    def tick(self) -> None:
        self.steps += 1
        if self.steps > self.max_steps:
            raise RenderError(f"Rendering exceeded {self.max_steps} steps")
        if (
            self.deadline is not None
            and self.steps % DEADLINE_CHECK_INTERVAL == 0
            and time.perf_counter() > self.deadline
        ):
            raise ExecutionLimitError("Rendering exceeded the time budget", "timeout")

    def check_string_length(self, length: int) -> None:
        if length > self.max_bytes:
            raise RenderError(f"Rendered HTML exceeds the {self.max_bytes} byte limit")

    def _write(self, text: str) -> None:
        self._size += len(text.encode("utf-8"))
        self.check_string_length(self._size)
        self._parts.append(text)

    def render(self, tree: Any) -> str:
        self._parts = []
        self._size = 0
        self.steps = 0
        self._write(DOCTYPE)

        stack: list[Any] = [tree]
        while stack:
            self.tick()
            item = stack.pop()
            if isinstance(item, _Raw):
                self._write(item.text)
            elif isinstance(item, list):
                stack.extend(reversed(item))
            elif item is None or item is UNDEFINED or isinstance(item, bool):
                continue
            elif isinstance(item, str):
                self._write(html.escape(item))
            elif is_number(item):
                self._write(format_number(item))
            elif isinstance(item, Element):
                self._element(item, stack)
            else:
                raise RenderError("Objects are not valid as a React child")
        return "".join(self._parts)

    def _element(self, element: Element, stack: list[Any]) -> None:
        element_type = element.type
        if element_type is FRAGMENT:
            stack.append(element.props.get("children"))
            return
        if isinstance(element_type, HostComponent):
            stack.append(element_type(element.props))
            return
        if not isinstance(element_type, str) or not _TAG_NAME.match(element_type):
            raise RenderError(f"Cannot render element of type {to_string(element_type)}")

        props = element.props
        self._write(f"<{element_type}{render_attributes(props, self)}")
        if element_type.lower() in VOID_ELEMENTS:
            self._write(" />")
            return
        self._write(">")
        stack.append(_Raw(f"</{element_type}>"))

        inner = props.get("dangerouslySetInnerHTML")
        if isinstance(inner, Mapping) and isinstance(inner.get("__html"), str):
            stack.append(_Raw(inner["__html"]))
        else:
            stack.append(props.get("children"))


def render(tree: Any, max_bytes: int = 2_000_000, max_steps: int | None = None, deadline: float | None = None) -> str:
    """Render a resolved component tree to a complete HTML document.

    Args:
        tree: Resolved tree (tags, fragments and library components only)
        max_bytes: Largest allowed document, in UTF-8 bytes
        max_steps: Largest number of nodes visited (defaults to ``max_bytes``)
        deadline: perf_counter() value after which rendering stops

    Raises:
        RenderError: If serialization fails for any reason or the output
                     exceeds ``max_bytes``
        ExecutionLimitError: If the deadline passes
    """
    try:
        return HtmlRenderer(max_bytes, max_steps, deadline).render(tree)
    except PipelineError:
        raise
    except Exception as exc:
        raise RenderError(f"Failed to render email: {type(exc).__name__}") from None
