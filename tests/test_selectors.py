"""
Tests for XPath selector matching and the selector helpers.
"""

import pytest

from viewx.exceptions import SelectorError, SelectorSyntaxError
from viewx.markup import selectors
from viewx.markup.selectors import SelectorBuilder, match, quote, validate_selector
from viewx.markup.tree import MarkupTree


@pytest.fixture
def tree():
    return MarkupTree.parse(
        '<main id="main">'
        '<div class="card primary" data-role="summary"><span id="a">A</span></div>'
        '<div class="card"><span id="b">B</span></div>'
        '<form><input name="email"/><select name="country"></select><textarea name="notes"></textarea></form>'
        '<div data-extension-point="after_totals"></div>'
        '</main>'
    )


class TestMatch:
    """Test selector evaluation against a tree."""

    def test_absolute_selector(self, tree):
        nodes = match(tree, "//span")
        assert [node.get("id") for node in nodes] == ["a", "b"]

    def test_relative_selector(self, tree):
        nodes = match(tree, ".//span[@id='b']")
        assert len(nodes) == 1

    def test_zero_matches(self, tree):
        assert match(tree, "//*[@id='missing']") == []

    def test_synthetic_root_never_matches(self, tree):
        assert all(node.get("id") != "__viewx_root__" for node in match(tree, "//div"))

    def test_non_node_result(self, tree):
        assert match(tree, "count(//span)") == []

    def test_text_nodes_ignored(self, tree):
        assert match(tree, "//span/text()") == []

    def test_invalid_selector(self, tree):
        with pytest.raises(SelectorSyntaxError) as exc_info:
            match(tree, "//div[")
        assert exc_info.value.selector == "//div["

    def test_empty_selector(self, tree):
        with pytest.raises(SelectorSyntaxError):
            match(tree, "  ")

    def test_selector_error_alias(self):
        assert SelectorError is SelectorSyntaxError

    def test_document_order(self, tree):
        nodes = match(tree, "//span[@id='b'] | //span[@id='a']")
        assert [node.get("id") for node in nodes] == ["a", "b"]


class TestValidateSelector:
    def test_valid(self):
        assert validate_selector("//div[@id='x']")

    def test_invalid(self):
        with pytest.raises(SelectorSyntaxError):
            validate_selector("//div[@id=")


class TestQuote:
    def test_single_quotes(self):
        assert quote("abc") == "'abc'"

    def test_contains_single_quote(self):
        assert quote("it's") == '"it\'s"'

    def test_both_quotes(self, tree):
        literal = quote("a'b\"c")
        assert literal.startswith("concat(")
        # The literal must still be a valid expression
        validate_selector(f"//*[@title={literal}]")


class TestHelpers:
    """Test the selector shortcut functions."""

    def test_by_id(self, tree):
        assert match(tree, selectors.by_id("a"))[0].text == "A"

    def test_by_class_matches_whole_words(self, tree):
        assert len(match(tree, selectors.by_class("card"))) == 2
        assert len(match(tree, selectors.by_class("primary"))) == 1
        assert match(tree, selectors.by_class("car")) == []

    def test_by_tag(self, tree):
        assert len(match(tree, selectors.by_tag("form"))) == 1

    def test_by_data(self, tree):
        assert len(match(tree, selectors.by_data("role"))) == 1
        assert len(match(tree, selectors.by_data("role", "summary"))) == 1
        assert match(tree, selectors.by_data("role", "other")) == []

    def test_by_name(self, tree):
        assert match(tree, selectors.by_name("email"))[0].tag == "input"

    def test_by_attr(self, tree):
        assert len(match(tree, selectors.by_attr("name"))) == 3

    def test_by_field_name(self, tree):
        assert match(tree, selectors.by_field_name("country"))[0].tag == "select"
        assert match(tree, selectors.by_field_name("notes"))[0].tag == "textarea"

    def test_by_extension_point(self, tree):
        assert len(match(tree, selectors.by_extension_point("after_totals"))) == 1

    def test_by_extension_area(self):
        assert selectors.by_extension_area("sidebar") == "//*[@data-extension-area='sidebar']"

    def test_within(self, tree):
        selector = selectors.within(selectors.by_class("primary"), "//span")
        assert [node.get("id") for node in match(tree, selector)] == ["a"]


class TestSelectorBuilder:
    """Test the fluent selector builder."""

    def test_default(self):
        assert SelectorBuilder().build() == "//*"

    def test_tag_and_id(self):
        assert SelectorBuilder().tag("span").id("a").build() == "//span[@id='a']"

    def test_class_within(self, tree):
        selector = SelectorBuilder("span").within(selectors.by_class("primary")).build()
        assert [node.get("id") for node in match(tree, selector)] == ["a"]

    def test_data_and_name(self):
        selector = str(SelectorBuilder("input").name("email").data("x", "1"))
        assert selector == "//input[@name='email'][@data-x='1']"

    def test_text_contains(self, tree):
        selector = SelectorBuilder("span").text_contains("B").build()
        assert [node.get("id") for node in match(tree, selector)] == ["b"]

    def test_with_class(self, tree):
        selector = SelectorBuilder("div").with_class("primary").build()
        assert len(match(tree, selector)) == 1
