"""
Tests for the ViewEngine facade.
"""

import pytest

from viewx import ViewEngine
from viewx.config import ViewxConfig
from viewx.db.models import CompiledView, ViewDefinition
from viewx.exceptions import ViewDefinitionNotFound, ViewxError
from viewx.views.store import StaticFieldProvider
from viewx.views.types import ViewType


HEADER = '<div id="header"></div>'


class TemplateRenderer:
    """Renders views from a mapping of view name to fixed markup."""

    def __init__(self, templates):
        self.templates = templates
        self.calls = []

    def render(self, view, context):
        self.calls.append((view, dict(context)))
        return self.templates[view]


def _after_header(content="<p>x</p>"):
    return {"selector": "//*[@id='header']", "operation": "insert-after", "content": content}


@pytest.fixture
def engine():
    engine = ViewEngine(field_provider=StaticFieldProvider({"order": [{"slug": "number"}]}))
    yield engine
    engine.close()


class TestCompile:
    """Test compiling views through the engine."""

    def test_compile_view(self, engine):
        engine.register_extension("orders.index", _after_header(), owner="p")
        assert engine.compile_view("orders.index", HEADER) == HEADER + "<p>x</p>"

    def test_compile_view_without_extensions(self, engine):
        assert engine.compile_view("orders.index", "<p  a='1'>x</p>") == "<p  a='1'>x</p>"

    def test_compile_view_never_raises(self, engine, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(engine.compiler, "compile", explode)
        assert engine.compile_view("orders.index", HEADER) == HEADER

    def test_compile_returns_log(self, engine):
        extension = engine.register_extension("orders.index", _after_header())
        result = engine.compile("orders.index", HEADER)
        assert result.applied_extension_ids == [extension.id]
        assert result.log[0].matched == 1

    def test_extension_priority_argument(self, engine):
        assert engine.register_extension("v", _after_header(), priority=3).priority == 3
        assert engine.register_extension("v", dict(_after_header(), priority=4)).priority == 4

    def test_replaced_view_compiles_to_base(self, engine):
        engine.register_extension("orders.index", _after_header())
        engine.register_replacement("orders.index", "orders.custom")
        assert engine.compile_view("orders.index", HEADER) == HEADER


class TestReplacements:
    def test_chain(self, engine):
        engine.register_replacement("a", "b")
        engine.register_replacement("b", "c")
        assert engine.resolve_replacement("a") == "c"
        assert engine.resolve_replacement("z") == "z"

    def test_loop_stops(self, engine):
        engine.register_replacement("a", "b")
        engine.register_replacement("b", "a")
        assert engine.resolve_replacement("a") == "b"


class TestRenderView:
    """Test the render-then-compile pipeline."""

    def test_requires_renderer(self, engine):
        with pytest.raises(ViewxError):
            engine.render_view("orders.index")

    def test_render_and_compile(self):
        renderer = TemplateRenderer({"orders.index": HEADER})
        with ViewEngine(renderer=renderer) as engine:
            engine.register_extension("orders.index", _after_header())
            assert engine.render_view("orders.index", {"user": "ann"}) == HEADER + "<p>x</p>"
            assert renderer.calls == [("orders.index", {"user": "ann"})]

    def test_render_follows_replacement(self):
        renderer = TemplateRenderer({"orders.index": "<p>old</p>", "orders.custom": HEADER})
        with ViewEngine(renderer=renderer) as engine:
            engine.register_extension("orders.index", _after_header("<p>old ext</p>"))
            engine.register_extension("orders.custom", _after_header("<p>new ext</p>"))
            engine.register_replacement("orders.index", "orders.custom")
            assert engine.render_view("orders.index") == HEADER + "<p>new ext</p>"

    def test_sub_view_payload(self):
        renderer = TemplateRenderer({"orders.index": HEADER, "widgets.badge": "<b>badge</b>"})
        with ViewEngine(renderer=renderer) as engine:
            engine.register_extension("orders.index", {
                "selector": "//*[@id='header']",
                "operation": "append-inside",
                "view": "widgets.badge",
                "data": {"label": "New"},
            })
            assert engine.render_view("orders.index", {"user": "ann"}) == '<div id="header"><b>badge</b></div>'
            assert renderer.calls[1] == ("widgets.badge", {"user": "ann", "label": "New"})

    def test_self_nesting_is_cut(self):
        renderer = TemplateRenderer({"a": '<div id="a"></div>'})
        with ViewEngine(renderer=renderer) as engine:
            engine.register_extension("a", {"selector": "//*[@id='a']", "operation": "append-inside", "view": "a"})
            assert engine.render_view("a") == '<div id="a"><div id="a"></div></div>'

    def test_slot_sub_view(self):
        renderer = TemplateRenderer({"widgets.badge": "<b>badge</b>"})
        with ViewEngine(renderer=renderer) as engine:
            engine.register_slot_content("orders.index", "sidebar", {"view": "widgets.badge"})
            assert engine.render_slot("orders.index", "sidebar") == "<b>badge</b>"
            assert engine.has_slot("orders.index", "sidebar")
            assert engine.slot_count("orders.index", "sidebar") == 1

    def test_jinja_renderer_from_config(self, tmp_path):
        (tmp_path / "orders").mkdir()
        (tmp_path / "orders" / "index.html").write_text('<main>{{ slot("sidebar") }}</main>')
        config = ViewxConfig()
        config.render.template_dir = str(tmp_path)
        with ViewEngine(config=config) as engine:
            engine.register_slot_content("orders.index", "sidebar", "<p>side</p>")
            assert engine.render_view("orders.index") == "<main><p>side</p></main>"


class TestOwnerPurge:
    """Test removing all registrations of one owner."""

    def test_purge_counts_view_types(self, engine):
        engine.register_extension("orders.index", _after_header(), owner="crm")
        engine.register_slot_content("orders.index", "sidebar", "<p/>", owner="crm")
        engine.register_replacement("orders.form", "crm.form", owner="crm")
        engine.register_view_type(ViewType(name="pipeline", is_system=False), owner="crm")
        engine.register_extension("orders.index", _after_header("<p>kept</p>"), owner="core")

        counts = engine.remove_all_registrations_by_owner("crm")

        assert counts == {"extensions": 1, "slots": 1, "replacements": 1, "view_types": 1}
        assert engine.compile_view("orders.index", HEADER) == HEADER + "<p>kept</p>"
        assert engine.resolve_replacement("orders.form") == "orders.form"
        assert "pipeline" not in engine.catalogue

    def test_purge_removes_plain_view_type(self, engine):
        engine.register_view_type(ViewType(name="gallery", requires_entity=False), owner="p")
        assert engine.remove_all_registrations_by_owner("p")["view_types"] == 1
        assert not engine.catalogue.has("gallery")

    def test_view_definitions_survive_purge(self, engine):
        engine.register_view_definition("order", "list", {"columns": {"number": {}}}, owner="crm")
        engine.remove_all_registrations_by_owner("crm")
        assert engine.store.get("crm_order_list") is not None


class TestViewDefinitions:
    def test_register_and_get(self, engine):
        engine.register_view_definition("order", "list", {"columns": {"number": {"label": "#"}}})
        assert engine.get_view("order", "list")["columns"]["number"]["label"] == "#"

    def test_generated_default(self, engine):
        assert list(engine.get_view("order", "list")["columns"]) == ["number"]

    def test_extend_definition(self, engine):
        engine.register_view_definition("order", "list", {"columns": {"number": {}}})
        child = engine.extend_view_definition("order_list", [
            {"xpath": "//column[@name='number']", "position": "after", "content": ["total"]},
        ], owner="crm")
        assert child.slug == "crm_order_list_ext"
        assert list(engine.get_view("order", "list")["columns"]) == ["number", "total"]


class TestDefinitionCompile:
    """Test compiling views that have a stored definition."""

    def test_not_cacheable_definition(self, engine):
        engine.register_view_definition("order", "list", {"columns": {"number": {}}, "cacheable": False})
        engine.register_extension("order_list", _after_header())

        assert engine.compile_view("order_list", HEADER) == HEADER + "<p>x</p>"
        assert engine.compile_view("order_list", HEADER) == HEADER + "<p>x</p>"
        assert engine.cache.stats()["entries"] == 0

    def test_archetype_is_part_of_the_key(self, engine):
        engine.register_view_definition("order", "list", {"columns": {"number": {}}})
        engine.register_extension("order_list", _after_header())

        assert not engine.compile("order_list", HEADER).cached
        assert engine.compile("order_list", HEADER).cached

        engine.register_view_definition("order", "list", {"columns": {"number": {"label": "No."}}})
        assert not engine.compile("order_list", HEADER).cached

    def test_explicit_flag_wins(self, engine):
        engine.register_view_definition("order", "list", {"columns": {"number": {}}})
        engine.register_extension("order_list", _after_header())
        engine.compile("order_list", HEADER, cacheable=False)
        assert engine.cache.stats()["entries"] == 0

    def test_compile_definition(self, engine):
        engine.register_view_definition("order", "list", {"columns": {"number": {}}})
        engine.register_extension("order_list", _after_header())
        assert engine.compile_definition("order_list", HEADER).markup == HEADER + "<p>x</p>"
        with pytest.raises(ViewDefinitionNotFound):
            engine.compile_definition("missing", HEADER)


class TestLifecycle:
    """Test opening, closing and engine-wide helpers."""

    def test_open_with_file(self, tmp_path):
        engine = ViewEngine.open(tmp_path / "views.db")
        engine.register_view_definition("order", "list", {"columns": {"number": {}}})
        engine.close()

        reopened = ViewEngine.open(tmp_path / "views.db")
        try:
            assert reopened.store.get("order_list") is not None
        finally:
            reopened.close()

    def test_database_cache_backend(self):
        config = ViewxConfig()
        config.cache.backend = "database"
        with ViewEngine(config=config) as engine:
            engine.register_extension("v", _after_header())
            engine.compile_view("v", HEADER)
            assert engine.session.query(CompiledView).count() == 1
            assert engine.stats()["cache"]["backend"] == "database"

    def test_closed_hook(self):
        seen = []
        engine = ViewEngine()
        engine.hooks.register_hook('engine.closed', lambda: seen.append("closed"))
        engine.close()
        assert seen == ["closed"]

    def test_clear_caches(self, engine):
        engine.register_extension("v", _after_header())
        engine.compile_view("v", HEADER)
        engine.get_view("order", "list")
        engine.clear_caches()
        stats = engine.stats()
        assert stats["cache"]["entries"] == 0
        assert stats["compiler"]["parse_cache_size"] == 0
        assert stats["store"]["resolved_cached"] == 0

    def test_stats(self, engine):
        engine.register_extension("v", _after_header(), owner="p")
        stats = engine.stats()
        assert stats["registry"]["total_extensions"] == 1
        assert stats["view_types"] == 11
        assert stats["plugins"] == {"registered": [], "active": []}
        assert stats["store"]["definitions"] == engine.session.query(ViewDefinition).count()
