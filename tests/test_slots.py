"""
Tests for slot rendering.
"""

import pytest

from viewx.extensions.registry import ExtensionRegistry
from viewx.plugins.hooks import HookRegistry
from viewx.slots import SlotRenderer


@pytest.fixture
def registry():
    return ExtensionRegistry(HookRegistry())


@pytest.fixture
def renderer(registry):
    return SlotRenderer(registry)


class TestSlotQueries:
    def test_empty_slot(self, renderer):
        assert renderer.render("orders.index", "sidebar") == ""
        assert not renderer.has_slot("orders.index", "sidebar")
        assert renderer.slot_count("orders.index", "sidebar") == 0

    def test_slot_names(self, renderer, registry):
        registry.add_to_slot("v", "b", "x")
        registry.add_to_slot("v", "a", "y")
        assert renderer.slot_names("v") == ["a", "b"]


class TestRender:
    """Test rendering contributions."""

    def test_priority_order(self, renderer, registry):
        registry.add_to_slot("v", "s", "<p>5</p>", priority=5)
        registry.add_to_slot("v", "s", "<p>10</p>", priority=10)
        registry.add_to_slot("v", "s", "<p>1</p>", priority=1)
        assert renderer.render("v", "s") == "<p>1</p><p>5</p><p>10</p>"

    def test_callback_receives_context(self, renderer, registry):
        registry.add_to_slot("v", "s", lambda ctx: f"<b>{ctx['user']}</b>")
        assert renderer.render("v", "s", {"user": "ann"}) == "<b>ann</b>"

    def test_failing_callback_renders_empty(self, renderer, registry):
        def broken(ctx):
            raise RuntimeError("boom")

        registry.add_to_slot("v", "s", broken, priority=1)
        registry.add_to_slot("v", "s", "<p>ok</p>", priority=2)
        assert renderer.render("v", "s") == "<p>ok</p>"

    def test_non_string_callback_result_ignored(self, renderer, registry):
        registry.add_to_slot("v", "s", lambda ctx: 42)
        registry.add_to_slot("v", "s", lambda ctx: None)
        assert renderer.render("v", "s") == ""

    def test_contributions_resolved_at_render_time(self, renderer, registry):
        state = {"count": 0}
        registry.add_to_slot("v", "s", lambda ctx: str(state["count"]))
        state["count"] = 3
        assert renderer.render("v", "s") == "3"

    def test_slot_markup_filter(self, registry):
        registry.hooks.register_hook(
            'filter.slot_markup', lambda markup, view, slot, context: f"<aside>{markup}</aside>"
        )
        renderer = SlotRenderer(registry)
        registry.add_to_slot("v", "s", "x")
        assert renderer.render("v", "s") == "<aside>x</aside>"


class TestCurrentView:
    def test_render_current(self, renderer, registry):
        registry.add_to_slot("v", "s", "<p>x</p>")
        assert renderer.render_current("s") == ""
        with renderer.rendering("v"):
            assert renderer.current_view == "v"
            assert renderer.has_current_slot("s")
            assert renderer.render_current("s") == "<p>x</p>"
        assert renderer.current_view is None
        assert renderer.depth == 0


class TestSubViews:
    """Test sub-view contributions and their guards."""

    def test_without_view_renderer(self, renderer, registry):
        registry.add_to_slot("v", "s", {"view": "widgets.badge"})
        assert renderer.render("v", "s") == ""

    def test_data_merged_over_context(self, registry):
        calls = []

        def render_view(view, data):
            calls.append((view, data))
            return "<i>badge</i>"

        renderer = SlotRenderer(registry, view_renderer=render_view)
        registry.add_to_slot("v", "s", {"view": "widgets.badge", "data": {"size": "s"}})
        assert renderer.render("v", "s", {"user": "ann", "size": "l"}) == "<i>badge</i>"
        assert calls == [("widgets.badge", {"user": "ann", "size": "s"})]

    def test_view_already_rendering_is_skipped(self, registry):
        renderer = SlotRenderer(registry)

        def render_view(view, data):
            with renderer.rendering(view):
                return f"<div>{renderer.render_current('s', data)}</div>"

        renderer.view_renderer = render_view
        registry.add_to_slot("a", "s", {"view": "b"})
        registry.add_to_slot("b", "s", {"view": "a"})
        with renderer.rendering("a"):
            assert renderer.render("a", "s") == "<div></div>"

    def test_depth_limit(self, registry):
        renderer = SlotRenderer(registry, max_depth=2)

        def render_view(view, data):
            with renderer.rendering(view):
                return f"[{view}{renderer.render_current('s', data)}]"

        renderer.view_renderer = render_view
        for level in range(5):
            registry.add_to_slot(f"v{level}", "s", {"view": f"v{level + 1}"})
        with renderer.rendering("v0"):
            assert renderer.render("v0", "s") == "[v1]"

    def test_failing_sub_view_renders_empty(self, registry):
        def render_view(view, data):
            raise RuntimeError("boom")

        renderer = SlotRenderer(registry, view_renderer=render_view)
        registry.add_to_slot("v", "s", {"view": "w"})
        assert renderer.render("v", "s") == ""
