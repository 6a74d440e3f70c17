"""Email component library exposed as ``@react-email/components``.

Each component is a trusted ``HostComponent`` that expands into table-based,
inline-styled markup that renders consistently across email clients.
User ``style`` props are merged over the defaults.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from email_sandbox.runtime.elements import Element, HostComponent, create_element
from email_sandbox.runtime.values import UNDEFINED, format_number, is_nullish, is_number, to_string

PREVIEW_MAX_LENGTH = 150
PREVIEW_WHITESPACE = "\xa0\u200c\u200b\u200d\u200e\u200f\ufeff"

_HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
_CSS_UNSAFE = re.compile(r"[<>{};]")


def _h(tag: str, props: dict[str, Any] | None, *children: Any) -> Element:
    return create_element(tag, props, *children)


def _rest(props: Mapping[str, Any], *exclude: str) -> dict[str, Any]:
    skip = {"children", "style", *exclude}
    return {k: v for k, v in props.items() if k not in skip and v is not UNDEFINED}


def _style(props: Mapping[str, Any], base: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    user = props.get("style")
    if isinstance(user, Mapping):
        merged.update(user)
    return merged


def _children(props: Mapping[str, Any]) -> Any:
    return props.get("children")


def _layout_table(props: Mapping[str, Any], style: dict[str, Any], body: Any) -> Element:
    attrs = {"align": "center", "width": "100%", **_rest(props)}
    attrs.update(
        {
            "border": 0,
            "cellPadding": "0",
            "cellSpacing": "0",
            "role": "presentation",
            "style": style,
        }
    )
    return _h("table", attrs, body)


def html(props: dict[str, Any]) -> Element:
    attrs = {"lang": "en", "dir": "ltr", **_rest(props)}
    if "style" in props:
        attrs["style"] = props["style"]
    return _h("html", attrs, _children(props))


def head(props: dict[str, Any]) -> Element:
    return _h(
        "head",
        _rest(props),
        _h("meta", {"content": "text/html; charset=UTF-8", "httpEquiv": "Content-Type"}),
        _h("meta", {"name": "x-apple-disable-message-reformatting"}),
        _children(props),
    )


def body(props: dict[str, Any]) -> Element:
    return _h("body", {**_rest(props), "style": _style(props, {})}, _children(props))


def container(props: dict[str, Any]) -> Element:
    style = _style(props, {"maxWidth": "37.5em"})
    inner = _h("tbody", None, _h("tr", {"style": {"width": "100%"}}, _h("td", None, _children(props))))
    return _layout_table(props, style, inner)


def section(props: dict[str, Any]) -> Element:
    inner = _h("tbody", None, _h("tr", None, _h("td", None, _children(props))))
    return _layout_table(props, _style(props, {}), inner)


def row(props: dict[str, Any]) -> Element:
    inner = _h(
        "tbody",
        {"style": {"width": "100%"}},
        _h("tr", {"style": {"width": "100%"}}, _children(props)),
    )
    return _layout_table(props, _style(props, {}), inner)


def column(props: dict[str, Any]) -> Element:
    return _h("td", {**_rest(props), "style": _style(props, {})}, _children(props))


def text(props: dict[str, Any]) -> Element:
    style = _style(props, {"fontSize": "14px", "lineHeight": "24px", "margin": "16px 0"})
    return _h("p", {**_rest(props), "style": style}, _children(props))


def _margin_styles(props: Mapping[str, Any]) -> dict[str, Any]:
    def px(value: Any) -> str:
        return f"{format_number(value)}px" if is_number(value) else to_string(value)

    shorthand = {
        "m": ("margin",),
        "mx": ("marginLeft", "marginRight"),
        "my": ("marginTop", "marginBottom"),
        "mt": ("marginTop",),
        "mr": ("marginRight",),
        "mb": ("marginBottom",),
        "ml": ("marginLeft",),
    }
    styles: dict[str, Any] = {}
    for prop, targets in shorthand.items():
        value = props.get(prop)
        if not is_nullish(value):
            for target in targets:
                styles[target] = px(value)
    return styles


def heading(props: dict[str, Any]) -> Element:
    tag = props.get("as")
    tag = tag if tag in _HEADING_TAGS else "h1"
    attrs = _rest(props, "as", "m", "mx", "my", "mt", "mr", "mb", "ml")
    attrs["style"] = _style(props, _margin_styles(props))
    return _h(tag, attrs, _children(props))


def button(props: dict[str, Any]) -> Element:
    target = props.get("target")
    attrs = _rest(props)
    attrs["target"] = "_blank" if is_nullish(target) else target
    attrs["style"] = _style(
        props,
        {
            "lineHeight": "100%",
            "textDecoration": "none",
            "display": "inline-block",
            "maxWidth": "100%",
            "msoPaddingAlt": "0px",
        },
    )
    label = _h(
        "span",
        {
            "style": {
                "maxWidth": "100%",
                "display": "inline-block",
                "lineHeight": "120%",
                "msoPaddingAlt": "0px",
                "msoTextRaise": "0",
            }
        },
        _children(props),
    )
    return _h("a", attrs, label)


def img(props: dict[str, Any]) -> Element:
    style = _style(
        props,
        {"display": "block", "outline": "none", "border": "none", "textDecoration": "none"},
    )
    return _h("img", {**_rest(props), "style": style})


def link(props: dict[str, Any]) -> Element:
    target = props.get("target")
    attrs = _rest(props)
    attrs["target"] = "_blank" if is_nullish(target) else target
    attrs["style"] = _style(props, {"color": "#067df7", "textDecorationLine": "none"})
    return _h("a", attrs, _children(props))


def hr(props: dict[str, Any]) -> Element:
    style = _style(
        props,
        {"width": "100%", "border": "none", "borderTop": "1px solid #eaeaea"},
    )
    return _h("hr", {**_rest(props), "style": style})


def _flatten_text(value: Any) -> str:
    if isinstance(value, list):
        return "".join(_flatten_text(item) for item in value)
    if is_nullish(value) or isinstance(value, bool):
        return ""
    if isinstance(value, Element):
        return ""
    return to_string(value)


def preview(props: dict[str, Any]) -> Element:
    """Hidden inbox preview line, padded so clients do not pull body text into it."""
    content = _flatten_text(_children(props))[:PREVIEW_MAX_LENGTH]
    padding = None
    if len(content) < PREVIEW_MAX_LENGTH:
        padding = _h("div", None, PREVIEW_WHITESPACE * (PREVIEW_MAX_LENGTH - len(content)))
    style = {
        "display": "none",
        "overflow": "hidden",
        "lineHeight": "1px",
        "opacity": 0,
        "maxHeight": 0,
        "maxWidth": 0,
    }
    return _h("div", {**_rest(props), "style": style, "data-skip-in-text": "true"}, content, padding)


def _css_value(value: Any) -> str:
    return _CSS_UNSAFE.sub("", to_string(value))


def font(props: dict[str, Any]) -> Element:
    family = _css_value(props.get("fontFamily", ""))
    fallback = props.get("fallbackFontFamily", "Verdana")
    fallbacks = [_css_value(f) for f in fallback] if isinstance(fallback, list) else [_css_value(fallback)]
    font_style = _css_value(props.get("fontStyle", "normal"))
    font_weight = _css_value(props.get("fontWeight", 400))

    src = ""
    web_font = props.get("webFont")
    if isinstance(web_font, Mapping) and not is_nullish(web_font.get("url")):
        url = _css_value(web_font.get("url"))
        fmt = _css_value(web_font.get("format", "woff2"))
        src = f"src: url({url}) format('{fmt}');"

    css = (
        "\n    @font-face {\n"
        f"      font-family: '{family}';\n"
        f"      font-style: {font_style};\n"
        f"      font-weight: {font_weight};\n"
        f"      mso-font-alt: '{fallbacks[0] if fallbacks else ''}';\n"
        f"      {src}\n"
        "    }\n\n"
        "    * {\n"
        f"      font-family: '{family}', {', '.join(fallbacks)};\n"
        "    }\n  "
    )
    return _h("style", {"dangerouslySetInnerHTML": {"__html": css}})


LIBRARY_COMPONENTS: dict[str, HostComponent] = {
    name: HostComponent(name, render)
    for name, render in (
        ("Html", html),
        ("Head", head),
        ("Body", body),
        ("Container", container),
        ("Section", section),
        ("Row", row),
        ("Column", column),
        ("Text", text),
        ("Heading", heading),
        ("Button", button),
        ("Img", img),
        ("Link", link),
        ("Hr", hr),
        ("Preview", preview),
        ("Font", font),
    )
}
