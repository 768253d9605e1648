"""
Tests for patch operations and attribute changes.
"""

import pytest
from lxml import etree

from viewx.exceptions import InvalidExtension
from viewx.markup.operations import (
    ClassChange, Operation, PatchOperator, RemoveAttribute, SetValue,
    attribute_change_to_raw, normalize_attribute_change, normalize_attribute_changes,
)
from viewx.markup.selectors import match
from viewx.markup.tree import MarkupTree, parse_fragment


@pytest.fixture
def operator():
    return PatchOperator()


def patch(operator, markup, selector, operation, payload=None, attributes=None):
    """Apply one operation to every node matched in markup and serialize."""
    tree = MarkupTree.parse(markup)
    changed = [
        operator.apply(node, operation, payload, attributes)
        for node in match(tree, selector)
    ]
    return tree.serialize(), changed


class TestOperationParsing:
    """Test operation names and aliases."""

    def test_canonical_names(self):
        assert Operation.parse("insert-before") is Operation.INSERT_BEFORE
        assert Operation.parse("set-attributes") is Operation.SET_ATTRIBUTES

    def test_underscores(self):
        assert Operation.parse("append_inside") is Operation.APPEND_INSIDE

    def test_aliases(self):
        assert Operation.parse("before") is Operation.INSERT_BEFORE
        assert Operation.parse("after") is Operation.INSERT_AFTER
        assert Operation.parse("inside") is Operation.APPEND_INSIDE
        assert Operation.parse("inside_first") is Operation.PREPEND_INSIDE
        assert Operation.parse("attributes") is Operation.SET_ATTRIBUTES

    def test_case_insensitive(self):
        assert Operation.parse("REPLACE") is Operation.REPLACE

    def test_unknown(self):
        with pytest.raises(InvalidExtension):
            Operation.parse("explode")

    def test_needs_payload(self):
        assert Operation.WRAP.needs_payload
        assert not Operation.REMOVE.needs_payload
        assert not Operation.SET_ATTRIBUTES.needs_payload


class TestStructuralOperations:
    """Test each structural operation on real trees."""

    def test_insert_before(self, operator):
        output, changed = patch(operator, '<div><span id="x">T</span></div>',
                                "//*[@id='x']", "insert-before", "<b>B</b>")
        assert output == '<div><b>B</b><span id="x">T</span></div>'
        assert changed == [True]

    def test_insert_after_keeps_tail(self, operator):
        output, _ = patch(operator, '<p><span id="x">T</span> tail</p>',
                          "//*[@id='x']", "insert-after", "<b>B</b>")
        assert output == '<p><span id="x">T</span><b>B</b> tail</p>'

    def test_insert_after_text_payload(self, operator):
        output, _ = patch(operator, '<p><span id="x">T</span>!</p>',
                          "//*[@id='x']", "insert-after", " and more")
        assert output == '<p><span id="x">T</span> and more!</p>'

    def test_prepend_inside(self, operator):
        output, _ = patch(operator, '<ul id="l"><li>1</li></ul>',
                          "//*[@id='l']", "prepend-inside", "<li>0</li>")
        assert output == '<ul id="l"><li>0</li><li>1</li></ul>'

    def test_prepend_inside_keeps_existing_text(self, operator):
        output, _ = patch(operator, '<p id="p">world</p>', "//*[@id='p']", "prepend-inside", "hello ")
        assert output == '<p id="p">hello world</p>'

    def test_prepend_inside_element_before_text(self, operator):
        output, _ = patch(operator, '<p id="p">world</p>', "//*[@id='p']", "prepend-inside", "<b>hi</b> ")
        assert output == '<p id="p"><b>hi</b> world</p>'

    def test_append_inside(self, operator):
        output, _ = patch(operator, '<ul id="l"><li>1</li></ul>',
                          "//*[@id='l']", "append-inside", "<li>2</li>")
        assert output == '<ul id="l"><li>1</li><li>2</li></ul>'

    def test_replace(self, operator):
        output, _ = patch(operator, '<div><span id="x">T</span></div>',
                          "//*[@id='x']", "replace", "<em>E</em>")
        assert output == '<div><em>E</em></div>'

    def test_remove(self, operator):
        output, changed = patch(operator, '<div><span id="a"/><span id="b"/></div>',
                                "//*[@id='a']", "remove")
        assert 'id="a"' not in output
        assert 'id="b"' in output
        assert changed == [True]

    def test_remove_keeps_surrounding_text(self, operator):
        output, _ = patch(operator, '<p>a<span id="x">T</span>b</p>', "//*[@id='x']", "remove")
        assert output == '<p>ab</p>'

    def test_replace_with_empty_payload_equals_remove(self, operator):
        markup = '<div>one <span id="x">T</span> two<i>i</i></div>'
        replaced, _ = patch(operator, markup, "//*[@id='x']", "replace", "")
        removed, _ = patch(operator, markup, "//*[@id='x']", "remove")
        assert replaced == removed == '<div>one  two<i>i</i></div>'

    def test_wrap(self, operator):
        output, _ = patch(operator, '<span id="x">T</span>',
                          "//*[@id='x']", "wrap", '<div class="card"></div>')
        assert output == '<div class="card"><span id="x">T</span></div>'

    def test_wrap_descends_single_child_chain(self, operator):
        output, _ = patch(operator, '<p><span id="x">T</span>!</p>', "//*[@id='x']", "wrap",
                          '<div class="outer"><div class="inner"></div></div>')
        assert output == '<p><div class="outer"><div class="inner"><span id="x">T</span></div></div>!</p>'

    def test_wrap_without_element_is_noop(self, operator):
        output, changed = patch(operator, '<p><span id="x">T</span></p>', "//*[@id='x']", "wrap", "text")
        assert output == '<p><span id="x">T</span></p>'
        assert changed == [False]

    def test_empty_payload_is_noop(self, operator):
        _, changed = patch(operator, '<p><span id="x">T</span></p>', "//*[@id='x']", "insert-after", "")
        assert changed == [False]

    def test_detached_node_is_noop(self, operator):
        orphan = etree.Element("span")
        assert operator.apply(orphan, "insert-before", "<b/>") is False
        assert operator.apply(orphan, "remove") is False

    def test_same_fragment_at_several_nodes(self, operator):
        fragment = parse_fragment("<b>!</b>")
        tree = MarkupTree.parse('<p><i>1</i><i>2</i></p>')
        for node in match(tree, "//i"):
            operator.apply(node, "append-inside", fragment)
        assert tree.serialize() == '<p><i>1<b>!</b></i><i>2<b>!</b></i></p>'

    def test_html_payload_fallback(self, operator):
        output, _ = patch(operator, '<div id="x"></div>', "//*[@id='x']", "append-inside", "<p>a<br>b</p>")
        assert "<br" in output
        assert ">b</p>" in output


class TestAttributeChanges:
    """Test set-attributes."""

    def test_set_value(self, operator):
        output, _ = patch(operator, '<input id="x"/>', "//*[@id='x']", "set-attributes",
                          attributes={"placeholder": "Email"})
        assert output == '<input id="x" placeholder="Email"/>'

    def test_true_sets_empty_value(self, operator):
        output, _ = patch(operator, '<input id="x"/>', "//*[@id='x']", "set-attributes",
                          attributes={"disabled": True})
        assert output == '<input id="x" disabled=""/>'

    def test_none_removes(self, operator):
        output, _ = patch(operator, '<input id="x" disabled="disabled"/>', "//*[@id='x']",
                          "set-attributes", attributes={"disabled": None})
        assert output == '<input id="x"/>'

    def test_class_add_and_remove(self, operator):
        output, _ = patch(operator, '<span id="x" class="a c">T</span>', "//*[@id='x']",
                          "set-attributes", attributes={"class": {"add": "b", "remove": "a"}})
        assert output == '<span id="x" class="c b">T</span>'

    def test_empty_class_list_removes_attribute(self, operator):
        output, _ = patch(operator, '<span id="x" class="a">T</span>', "//*[@id='x']",
                          "set-attributes", attributes={"class": {"remove": "a"}})
        assert output == '<span id="x">T</span>'

    def test_unchanged_value_is_noop(self, operator):
        _, changed = patch(operator, '<span id="x" title="t">T</span>', "//*[@id='x']",
                           "set-attributes", attributes={"title": "t"})
        assert changed == [False]

    def test_class_change_order(self):
        change = ClassChange(add=("a", "b"), remove=("a",), toggle=("b", "c"))
        # removals, then additions, then toggles
        assert change.apply("a x x") == ["x", "a", "c"]

    def test_normalize_shapes(self):
        assert normalize_attribute_change("title", "t") == SetValue("t")
        assert normalize_attribute_change("size", 3) == SetValue("3")
        assert normalize_attribute_change("disabled", False) == RemoveAttribute()
        assert normalize_attribute_change("title", {"remove": True}) == RemoveAttribute()
        assert normalize_attribute_change("title", {"value": "v"}) == SetValue("v")
        assert normalize_attribute_change("class", {"toggle": ["a", "b"]}) == ClassChange(toggle=("a", "b"))

    def test_normalize_rejects_unknown_shape(self):
        with pytest.raises(InvalidExtension):
            normalize_attribute_change("title", ["a"])
        with pytest.raises(InvalidExtension):
            normalize_attribute_changes(["title"])

    def test_to_raw(self):
        assert attribute_change_to_raw(SetValue("v")) == "v"
        assert attribute_change_to_raw(RemoveAttribute()) is None
        assert attribute_change_to_raw(ClassChange(add=("a",))) == {"add": ["a"]}
