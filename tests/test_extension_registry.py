"""
Tests for the extension registry and registration records.
"""

import pytest

from viewx.exceptions import InvalidExtension
from viewx.extensions.models import (
    Callback, Condition, Literal, SubView, lookup, parse_modification, to_slot_content,
)
from viewx.extensions.registry import ExtensionRegistry
from viewx.markup.operations import ClassChange, Operation
from viewx.plugins.hooks import HookRegistry


@pytest.fixture
def hooks():
    return HookRegistry()


@pytest.fixture
def registry(hooks):
    return ExtensionRegistry(hooks)


def _mod(selector="//*[@id='header']", operation="insert-after", content="<p>x</p>", **extra):
    return dict(selector=selector, operation=operation, content=content, **extra)


class TestParseModification:
    """Test raw modification validation."""

    def test_defaults(self):
        fields = parse_modification({"selector": "//div", "content": "<p/>"})
        assert fields["operation"] is Operation.INSERT_AFTER
        assert fields["payload"] == "<p/>"
        assert fields["conditions"] == []

    def test_key_aliases(self):
        fields = parse_modification({"xpath": "//div", "position": "inside", "html": "<p/>"})
        assert fields["selector"] == "//div"
        assert fields["operation"] is Operation.APPEND_INSIDE
        assert fields["payload"] == "<p/>"

    def test_missing_selector(self):
        with pytest.raises(InvalidExtension):
            parse_modification({"operation": "remove"})

    def test_not_a_mapping(self):
        with pytest.raises(InvalidExtension):
            parse_modification(["//div"])

    def test_non_text_payload(self):
        with pytest.raises(InvalidExtension):
            parse_modification({"selector": "//div", "content": {"a": 1}})

    def test_set_attributes_requires_changes(self):
        with pytest.raises(InvalidExtension):
            parse_modification({"selector": "//div", "operation": "set-attributes"})

    def test_attribute_changes_normalized(self):
        fields = parse_modification({
            "selector": "//div",
            "operation": "attributes",
            "attributes": {"class": {"add": "x y"}},
        })
        assert fields["attribute_changes"]["class"] == ClassChange(add=("x", "y"))

    def test_single_condition_mapping(self):
        fields = parse_modification(_mod(conditions={"field": "user.admin", "type": "true"}))
        assert len(fields["conditions"]) == 1

    def test_unknown_condition_type(self):
        with pytest.raises(InvalidExtension):
            parse_modification(_mod(conditions=[{"field": "a", "type": "regex"}]))

    def test_view_data_must_be_mapping(self):
        with pytest.raises(InvalidExtension):
            parse_modification(_mod(content=None, view="widgets.x", data=[1]))


class TestConditions:
    """Test conditions evaluated against a compile context."""

    def test_lookup_nested(self):
        assert lookup({"user": {"role": "admin"}}, "user.role") == "admin"
        assert lookup({}, "user.role") is None
        assert lookup(None, "user") is None

    def test_equals(self):
        condition = Condition("status", "equals", "draft")
        assert condition.is_met({"status": "draft"})
        assert not condition.is_met({"status": "done"})

    def test_contains_string_and_list(self):
        condition = Condition("tags", "contains", "vip")
        assert condition.is_met({"tags": ["vip", "new"]})
        assert condition.is_met({"tags": "vip-customer"})
        assert not condition.is_met({"tags": 3})

    def test_in(self):
        condition = Condition("status", "in", ["a", "b"])
        assert condition.is_met({"status": "a"})
        assert not condition.is_met({"status": "c"})

    def test_exists(self):
        assert Condition("x", "exists").is_met({"x": 0})
        assert Condition("x", "not_exists").is_met({})

    def test_round_trip_dict(self):
        data = {"field": "a", "type": "not_equals", "value": 1}
        assert Condition.from_dict(data).to_dict() == {"type": "not_equals", "field": "a", "value": 1}


class TestRegister:
    """Test extension registration and ordering."""

    def test_register_returns_extension(self, registry):
        extension = registry.register("orders.index", _mod(), owner="p")
        assert extension.id.startswith("ext-")
        assert extension.owner == "p"
        assert extension.priority == 10
        assert registry.all_for("orders.index") == (extension,)

    def test_unique_ids(self, registry):
        first = registry.register("v", _mod())
        second = registry.register("v", _mod())
        assert first.id != second.id

    def test_priority_then_registration_order(self, registry):
        late = registry.register("v", _mod(content="<p>late</p>"), priority=20)
        first_tie = registry.register("v", _mod(content="<p>a</p>"), priority=5)
        second_tie = registry.register("v", _mod(content="<p>b</p>"), priority=5)
        assert registry.all_for("v") == (first_tie, second_tie, late)

    def test_priority_from_modification(self, registry):
        extension = registry.register("v", _mod(priority=3))
        assert extension.priority == 3

    def test_requires_view(self, registry):
        with pytest.raises(InvalidExtension):
            registry.register("", _mod())

    def test_invalid_selector_is_stored(self, registry):
        extension = registry.register("v", _mod(selector="//div["))
        assert extension in registry.all_for("v")

    def test_register_bulk(self, registry):
        extensions = registry.register_bulk("v", [_mod(), _mod(), _mod(priority=1)], owner="p", priority=10)
        assert [ext.priority for ext in extensions] == [10, 11, 1]
        assert registry.all_for("v")[0] is extensions[2]

    def test_all_for_filters_by_context(self, registry):
        registry.register("v", _mod(conditions=[{"field": "admin", "type": "true"}]))
        assert len(registry.all_for("v")) == 1
        assert registry.all_for("v", {"admin": False}) == ()
        assert len(registry.all_for("v", {"admin": True})) == 1

    def test_remove(self, registry):
        extension = registry.register("v", _mod())
        assert registry.remove(extension.id)
        assert not registry.has_extensions("v")
        assert not registry.remove(extension.id)

    def test_snapshot_is_immutable(self, registry):
        registry.register("v", _mod())
        snapshot = registry.all_for("v")
        registry.register("v", _mod())
        assert len(snapshot) == 1
        assert len(registry.all_for("v")) == 2

    def test_registered_hook(self, registry, hooks):
        seen = []
        hooks.register_hook('extension.registered', lambda view, ext: seen.append((view, ext.id)))
        extension = registry.register("v", _mod())
        assert seen == [("v", extension.id)]

    def test_to_dict_registers_equivalent_extension(self, registry):
        original = registry.register("v", _mod(
            operation="set-attributes", content=None,
            attributes={"class": {"add": "a"}, "disabled": True},
            conditions=[{"field": "x", "type": "exists"}],
        ), priority=4)
        copy = registry.register("w", original.to_dict())
        assert copy.operation is original.operation
        assert copy.attribute_changes == original.attribute_changes
        assert copy.conditions == original.conditions
        assert copy.priority == 4


class TestSlotContent:
    def test_coercion(self):
        assert to_slot_content("<p/>") == Literal("<p/>")
        assert isinstance(to_slot_content(lambda ctx: ""), Callback)
        sub_view = to_slot_content({"view": "w", "data": {"a": 1}}, {"b": 2})
        assert sub_view == SubView("w", {"a": 1, "b": 2})
        assert sub_view.data == {"a": 1, "b": 2}

    def test_unsupported(self):
        with pytest.raises(InvalidExtension):
            to_slot_content(42)


class TestSlots:
    """Test slot contributions."""

    def test_empty_slot(self, registry):
        assert registry.slot_contents("v", "sidebar") == ()
        assert not registry.has_slot("v", "sidebar")
        assert registry.slot_count("v", "sidebar") == 0

    def test_priority_order(self, registry):
        registry.add_to_slot("v", "s", "<p>5</p>", priority=5)
        registry.add_to_slot("v", "s", "<p>10</p>", priority=10)
        registry.add_to_slot("v", "s", "<p>1</p>", priority=1)
        contents = [c.content.markup for c in registry.slot_contents("v", "s")]
        assert contents == ["<p>1</p>", "<p>5</p>", "<p>10</p>"]
        assert registry.slot_count("v", "s") == 3

    def test_slots_for(self, registry):
        registry.add_to_slot("v", "a", "x")
        registry.add_to_slot("v", "b", "y")
        assert sorted(registry.slots_for("v")) == ["a", "b"]

    def test_requires_names(self, registry):
        with pytest.raises(InvalidExtension):
            registry.add_to_slot("v", "", "x")


class TestReplacements:
    """Test view replacements."""

    def test_lowest_priority_wins(self, registry):
        registry.replace("v", "w1", priority=10)
        registry.replace("v", "w2", priority=5)
        assert registry.replacement_for("v") == "w2"
        assert registry.has_replacement("v")

    def test_no_replacement(self, registry):
        assert registry.replacement_for("v") is None

    def test_self_replacement_rejected(self, registry):
        with pytest.raises(InvalidExtension):
            registry.replace("v", "v")


class TestOwnerPurge:
    """Test removing everything an owner registered."""

    def test_removes_only_that_owner(self, registry):
        registry.register("v", _mod(), owner="pluginX")
        kept = registry.register("v", _mod(), owner="pluginY")
        registry.register("w", _mod(), owner="pluginX")
        registry.add_to_slot("v", "s", "<p>x</p>", owner="pluginX")
        registry.add_to_slot("v", "s", "<p>y</p>", owner="pluginY")
        registry.replace("v", "x_view", owner="pluginX")
        registry.replace("u", "y_view", owner="pluginY")

        counts = registry.remove_all_by_owner("pluginX")

        assert counts == {"extensions": 2, "slots": 1, "replacements": 1}
        assert registry.all_for("v") == (kept,)
        assert registry.all_for("w") == ()
        assert [c.owner for c in registry.slot_contents("v", "s")] == ["pluginY"]
        assert registry.replacement_for("v") is None
        assert registry.replacement_for("u") == "y_view"
        assert registry.owners() == ["pluginY"]

    def test_triggers_hooks(self, registry, hooks):
        removed_views = []
        purged = []
        hooks.register_hook('extension.removed', removed_views.append)
        hooks.register_hook('owner.removed', lambda owner, counts: purged.append(owner))
        registry.register("v", _mod(), owner="p")
        registry.remove_all_by_owner("p")
        assert removed_views == ["v"]
        assert purged == ["p"]

    def test_unknown_owner(self, registry):
        registry.register("v", _mod(), owner="p")
        assert registry.remove_all_by_owner("nobody") == {"extensions": 0, "slots": 0, "replacements": 0}
        assert len(registry.all_for("v")) == 1


class TestStats:
    def test_stats(self, registry):
        registry.register("v", _mod(), owner="p")
        registry.add_to_slot("v", "s", "x", owner="q")
        stats = registry.stats()
        assert stats["total_extensions"] == 1
        assert stats["total_slot_contents"] == 1
        assert stats["owners"] == ["p", "q"]

    def test_clear(self, registry):
        registry.register("v", _mod())
        registry.clear()
        assert registry.views() == []


class TestChangeListeners:
    """Test the direct change notifications used for cache invalidation."""

    def test_notified_on_every_write(self, registry):
        changed = []
        registry.on_change(changed.append)
        extension = registry.register("v", _mod(), owner="p")
        registry.replace("u", "w", owner="p")
        registry.remove(extension.id)
        registry.register("x", _mod(), owner="p")
        registry.remove_all_by_owner("p")
        assert changed == ["v", "u", "v", "x", "u", "x"]

    def test_clear_notifies_replaced_views(self, registry):
        changed = []
        registry.on_change(changed.append)
        registry.register("v", _mod())
        registry.replace("u", "w")
        changed.clear()
        registry.clear()
        assert changed == ["u", "v"]

    def test_survive_clearing_hooks(self, registry, hooks):
        changed = []
        registry.on_change(changed.append)
        hooks.clear_hooks()
        registry.register("v", _mod())
        assert changed == ["v"]

    def test_failing_listener_is_isolated(self, registry):
        def broken(view):
            raise RuntimeError("boom")

        changed = []
        registry.on_change(broken)
        registry.on_change(changed.append)
        registry.register("v", _mod())
        assert changed == ["v"]
