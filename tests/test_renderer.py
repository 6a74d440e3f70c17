"""Tests for the HTML renderer."""

from __future__ import annotations

import time

import pytest

from email_sandbox.capabilities import COMPONENTS_MODULE, DEFAULT_CAPABILITIES
from email_sandbox.core.errors import ExecutionLimitError, RenderError
from email_sandbox.renderer import DOCTYPE, hyphenate_style_name, render, render_attributes, style_to_css
from email_sandbox.runtime.elements import FRAGMENT, Element, create_element

h = create_element


def body_of(markup: str) -> str:
    assert markup.startswith(DOCTYPE)
    return markup[len(DOCTYPE):]


class TestStyleToCss:
    """Test inline style serialization."""

    def test_hyphenates_names(self):
        assert style_to_css({"backgroundColor": "#fff", "fontSize": "14px"}) == (
            "background-color:#fff;font-size:14px"
        )

    def test_numbers_get_px(self):
        assert style_to_css({"padding": 12, "margin": 0}) == "padding:12px;margin:0"

    def test_unitless_properties(self):
        assert style_to_css({"lineHeight": 1.5, "fontWeight": 700, "opacity": 0.5}) == (
            "line-height:1.5;font-weight:700;opacity:0.5"
        )

    def test_empty_values_skipped(self):
        assert style_to_css({"color": None, "margin": "", "padding": True, "width": "10%"}) == "width:10%"

    def test_non_mapping(self):
        assert style_to_css("color:red") == ""

    def test_vendor_and_custom_properties(self):
        assert hyphenate_style_name("msTransform") == "-ms-transform"
        assert hyphenate_style_name("WebkitTransition") == "-webkit-transition"
        assert hyphenate_style_name("--brand") == "--brand"


class TestRenderAttributes:
    """Test attribute serialization."""

    def test_aliases(self):
        assert render_attributes({"className": "a", "htmlFor": "b"}) == ' class="a" for="b"'

    def test_values_escaped(self):
        assert render_attributes({"title": 'say "hi" & <bye>'}) == (
            ' title="say &quot;hi&quot; &amp; &lt;bye&gt;"'
        )

    def test_event_handlers_dropped(self):
        """Guest functions and on* props never reach the markup."""
        assert render_attributes({"onClick": "alert(1)", "onload": "x", "id": "a"}) == ' id="a"'

    def test_boolean_attributes(self):
        assert render_attributes({"disabled": True, "checked": False}) == ' disabled=""'

    def test_non_boolean_bools_dropped(self):
        assert render_attributes({"title": True, "data-x": False}) == ' data-x="false"'

    def test_reserved_props_skipped(self):
        assert render_attributes({"children": "x", "key": "k", "id": "a"}) == ' id="a"'

    def test_invalid_names_skipped(self):
        assert render_attributes({'x" onmouseover="y': "1", "id": "ok"}) == ' id="ok"'

    def test_numbers_formatted(self):
        assert render_attributes({"width": 600, "border": 0}) == ' width="600" border="0"'


class TestRender:
    """Test full document rendering."""

    def test_doctype_prefix(self):
        assert render(h("p", None, "x")) == DOCTYPE + "<p>x</p>"

    def test_text_escaped(self):
        assert body_of(render(h("p", None, "<script>alert(1)</script>"))) == (
            "<p>&lt;script&gt;alert(1)&lt;/script&gt;</p>"
        )

    def test_void_elements_self_close(self):
        assert body_of(render(h("div", None, h("br"), h("img", {"src": "a.png"})))) == (
            '<div><br /><img src="a.png" /></div>'
        )

    def test_children_order_and_skips(self):
        """null, undefined and booleans render nothing; numbers render as text."""
        tree = h("p", None, "a", None, True, 3, False, ["b", ["c"]])
        assert body_of(render(tree)) == "<p>a3bc</p>"

    def test_fragment(self):
        tree = Element(FRAGMENT, {"children": [h("b", None, "1"), h("i", None, "2")]})
        assert body_of(render(tree)) == "<b>1</b><i>2</i>"

    def test_style_attribute(self):
        assert body_of(render(h("td", {"style": {"paddingTop": 4}}))) == '<td style="padding-top:4px"></td>'

    def test_inner_html(self):
        tree = h("style", {"dangerouslySetInnerHTML": {"__html": "p{color:red}"}})
        assert body_of(render(tree)) == "<style>p{color:red}</style>"

    def test_library_components_expanded(self):
        text = DEFAULT_CAPABILITIES.resolve(COMPONENTS_MODULE)["Text"]
        markup = body_of(render(h(text, None, "Hello")))
        assert markup.startswith("<p style=")
        assert markup.endswith(">Hello</p>")

    def test_empty_tree(self):
        assert render(None) == DOCTYPE

    def test_deep_tree_does_not_recurse(self):
        """Deep nesting renders without exhausting the host stack."""
        tree: object = "leaf"
        for _ in range(5_000):
            tree = h("div", None, tree)
        markup = render(tree, max_bytes=10_000_000)
        assert markup.count("<div>") == 5_000

    def test_size_limit(self):
        with pytest.raises(RenderError, match="exceeds the 200 byte limit"):
            render(h("p", None, "x" * 500), max_bytes=200)

    def test_plain_object_child(self):
        with pytest.raises(RenderError, match="Objects are not valid"):
            render(h("p", None, {"a": 1}))

    def test_invalid_tag(self):
        with pytest.raises(RenderError, match="Cannot render element"):
            render(Element("bad tag", {}))


def _doubled(leaf: object, times: int = 30) -> object:
    value = leaf
    for _ in range(times):
        value = [value, value]
    return value


class TestRenderBudgets:
    """Test the step, size and time limits of one render."""

    def test_shared_child_lists_hit_step_limit(self):
        with pytest.raises(RenderError, match="exceeded 1000 steps"):
            render(h("div", None, _doubled(None)), max_steps=1_000)

    def test_shared_attribute_array_hits_size_limit(self):
        with pytest.raises(RenderError, match="byte limit"):
            render(h("p", {"title": _doubled("x")}), max_bytes=1_000, max_steps=10**6)

    def test_deadline(self):
        with pytest.raises(ExecutionLimitError) as exc_info:
            render(h("div", None, _doubled(None)), max_steps=10**9, deadline=time.perf_counter() - 1)
        assert exc_info.value.trap_reason == "timeout"

    def test_default_step_limit_allows_normal_trees(self):
        rows = [h("p", None, str(i)) for i in range(500)]
        assert body_of(render(h("div", None, rows))).count("<p>") == 500
