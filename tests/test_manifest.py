"""
Tests for YAML registration manifests.
"""

import pytest
import yaml

from viewx.engine import ViewEngine
from viewx.exceptions import RegistrationError
from viewx.manifest import dump_registrations, load_manifest, load_manifest_file


MANIFEST = """
owner: discounts
extensions:
  orders.form:
    - selector: "//*[@id='totals']"
      operation: insert-after
      content: "<div class='discount'></div>"
slots:
  orders.index:
    sidebar:
      - content: "<p>Promotions</p>"
        priority: 5
      - view: discounts.widget
        data: {limit: 3}
      - "<p>plain</p>"
replacements:
  orders.detail: discounts.order_detail
views:
  - entity: order
    type: list
    archetype:
      columns: [number, total]
view_extensions:
  - parent: discounts_order_list
    modifications:
      - {xpath: "//column[@name='total']", position: after, content: [discount]}
"""


@pytest.fixture
def engine():
    engine = ViewEngine()
    yield engine
    engine.close()


class TestLoadManifest:
    """Test registering a manifest."""

    def test_counts(self, engine):
        counts = load_manifest(MANIFEST, engine)
        assert counts == {"extensions": 1, "slots": 3, "replacements": 1, "views": 2}

    def test_registrations_are_owned(self, engine):
        load_manifest(MANIFEST, engine)
        assert engine.registry.owners() == ["discounts"]
        assert engine.store.get("discounts_order_list").owner_plugin == "discounts"

    def test_applied(self, engine):
        load_manifest(MANIFEST, engine)
        compiled = engine.compile_view("orders.form", '<div id="totals"></div>')
        assert compiled == '<div id="totals"></div><div class="discount"></div>'
        assert engine.resolve_replacement("orders.detail") == "discounts.order_detail"
        assert engine.get_view("order", "list")["columns"] == ["number", "total", "discount"]

    def test_slot_entries(self, engine):
        load_manifest(MANIFEST, engine)
        contributions = engine.registry.slot_contents("orders.index", "sidebar")
        assert [c.priority for c in contributions] == [5, 10, 10]
        assert contributions[1].content.view_name == "discounts.widget"
        assert contributions[1].content.data == {"limit": 3}

    def test_owner_override(self, engine):
        load_manifest({"owner": "a", "replacements": {"v": "w"}}, engine, owner="b")
        assert engine.registry.owners() == ["b"]

    def test_empty_manifest(self, engine):
        assert load_manifest("", engine) == {"extensions": 0, "slots": 0, "replacements": 0, "views": 0}

    def test_replacement_with_priority(self, engine):
        load_manifest({"replacements": {"v": {"view": "w", "priority": 2}}}, engine)
        assert engine.registry.replacement_for("v") == "w"

    def test_purge_after_load(self, engine):
        load_manifest(MANIFEST, engine)
        counts = engine.remove_all_registrations_by_owner("discounts")
        assert counts["extensions"] == 1
        assert counts["slots"] == 3
        assert engine.registry.owners() == []

    def test_load_file(self, engine, tmp_path):
        path = tmp_path / "discounts.yaml"
        path.write_text(MANIFEST)
        assert load_manifest_file(path, engine)["extensions"] == 1


class TestMalformedManifests:
    def test_not_a_mapping(self, engine):
        with pytest.raises(RegistrationError):
            load_manifest("- a\n- b\n", engine)

    def test_section_shape(self, engine):
        with pytest.raises(RegistrationError):
            load_manifest({"extensions": ["x"]}, engine)

    def test_view_needs_type(self, engine):
        with pytest.raises(RegistrationError):
            load_manifest({"views": [{"entity": "order"}]}, engine)

    def test_view_extension_needs_parent(self, engine):
        with pytest.raises(RegistrationError):
            load_manifest({"view_extensions": [{"modifications": []}]}, engine)

    def test_invalid_slot_entry(self, engine):
        with pytest.raises(RegistrationError):
            load_manifest({"slots": {"v": {"s": [42]}}}, engine)

    def test_unknown_sections_ignored(self, engine):
        assert load_manifest({"themes": {"x": 1}}, engine)["extensions"] == 0


class TestDump:
    """Test dumping registrations back to manifest form."""

    def test_dump_round_trip(self, engine):
        load_manifest(MANIFEST, engine)
        dumped = yaml.safe_load(dump_registrations(engine, owner="discounts"))

        assert dumped["owner"] == "discounts"
        assert dumped["extensions"]["orders.form"][0]["operation"] == "insert-after"
        assert dumped["replacements"]["orders.detail"]["view"] == "discounts.order_detail"

        other = ViewEngine()
        try:
            counts = load_manifest(dumped, other)
            assert counts["extensions"] == 1
            assert counts["slots"] == 3
            assert other.compile_view("orders.form", '<div id="totals"></div>') == \
                '<div id="totals"></div><div class="discount"></div>'
        finally:
            other.close()

    def test_dump_filters_by_owner(self, engine):
        engine.register_replacement("a", "b", owner="x")
        engine.register_replacement("c", "d", owner="y")
        dumped = yaml.safe_load(dump_registrations(engine, owner="y"))
        assert list(dumped["replacements"]) == ["c"]

    def test_callbacks_are_skipped(self, engine):
        engine.register_slot_content("v", "s", lambda ctx: "x", owner="p")
        engine.register_slot_content("v", "s", "<p/>", owner="p")
        dumped = yaml.safe_load(dump_registrations(engine))
        assert dumped["slots"]["v"]["s"] == [{"content": "<p/>", "priority": 10}]

    def test_empty(self, engine):
        assert yaml.safe_load(dump_registrations(engine)) == {}
