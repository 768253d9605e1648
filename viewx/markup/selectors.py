"""
XPath selector matching and a fluent builder for common selectors.

Selectors are evaluated with the view's content root as the context node, so
both absolute (``//div``) and relative (``.//div``) expressions work.
"""

import logging
from typing import List, Optional

from lxml import etree

from ..exceptions import SelectorSyntaxError
from .tree import MarkupTree, is_element

logger = logging.getLogger(__name__)


def match(tree: MarkupTree, selector: str) -> List[etree._Element]:
    """
    Find the elements of a view matched by an XPath selector.

    Args:
        tree: Parsed view
        selector: XPath 1.0 expression

    Returns:
        Matched elements in document order. Empty when nothing matches or the
        expression yields strings, numbers or booleans.

    Raises:
        SelectorSyntaxError: If the expression is invalid
    """
    if not selector or not selector.strip():
        raise SelectorSyntaxError(selector or "", "empty selector")

    try:
        result = tree.content_root.xpath(selector)
    except etree.XPathError as e:
        raise SelectorSyntaxError(selector, str(e)) from e

    if not isinstance(result, list):
        logger.debug(f"Selector {selector!r} returned a {type(result).__name__}, not nodes")
        return []

    return [node for node in result if is_element(node) and tree.contains(node)]


def validate_selector(selector: str) -> bool:
    """
    Check that a selector compiles.

    Raises:
        SelectorSyntaxError: If the expression is invalid
    """
    if not selector or not selector.strip():
        raise SelectorSyntaxError(selector or "", "empty selector")
    try:
        etree.XPath(selector)
    except etree.XPathSyntaxError as e:
        raise SelectorSyntaxError(selector, str(e)) from e
    return True


def quote(value: str) -> str:
    """Quote a string as an XPath 1.0 literal."""
    value = str(value)
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    # Both quote kinds present: XPath 1.0 has no escapes, so concatenate.
    parts = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{part}'" for part in parts) + ")"


def _class_predicate(class_name: str) -> str:
    return f"contains(concat(' ', normalize-space(@class), ' '), {quote(' ' + class_name + ' ')})"


def by_id(element_id: str) -> str:
    return f"//*[@id={quote(element_id)}]"


def by_class(class_name: str, tag: str = "*") -> str:
    return f"//{tag}[{_class_predicate(class_name)}]"


def by_tag(tag: str) -> str:
    return f"//{tag}"


def by_data(name: str, value: Optional[str] = None, tag: str = "*") -> str:
    if value is None:
        return f"//{tag}[@data-{name}]"
    return f"//{tag}[@data-{name}={quote(value)}]"


def by_name(name: str, tag: str = "*") -> str:
    return f"//{tag}[@name={quote(name)}]"


def by_attr(attribute: str, value: Optional[str] = None, tag: str = "*") -> str:
    if value is None:
        return f"//{tag}[@{attribute}]"
    return f"//{tag}[@{attribute}={quote(value)}]"


def by_field_name(field_name: str) -> str:
    """Form controls (input, select, textarea) for a field."""
    name = quote(field_name)
    return f"//input[@name={name}] | //select[@name={name}] | //textarea[@name={name}]"


def by_extension_point(name: str) -> str:
    return by_data("extension-point", name)


def by_extension_area(name: str) -> str:
    return by_data("extension-area", name)


def within(parent: str, child: str) -> str:
    """Restrict a child selector to descendants of a parent selector."""
    child = child.lstrip("/")
    return f"{parent}//{child}"


class SelectorBuilder:
    """
    Fluent builder for XPath selectors.

    Usage:
        SelectorBuilder().tag("div").with_class("card").within(by_id("main")).build()
    """

    def __init__(self, tag: str = "*"):
        self._tag = tag
        self._predicates: List[str] = []
        self._parent: Optional[str] = None

    def tag(self, tag: str) -> 'SelectorBuilder':
        self._tag = tag
        return self

    def id(self, element_id: str) -> 'SelectorBuilder':
        self._predicates.append(f"@id={quote(element_id)}")
        return self

    def with_class(self, class_name: str) -> 'SelectorBuilder':
        self._predicates.append(_class_predicate(class_name))
        return self

    def data(self, name: str, value: Optional[str] = None) -> 'SelectorBuilder':
        return self.attr(f"data-{name}", value)

    def name(self, name: str) -> 'SelectorBuilder':
        return self.attr("name", name)

    def attr(self, attribute: str, value: Optional[str] = None) -> 'SelectorBuilder':
        if value is None:
            self._predicates.append(f"@{attribute}")
        else:
            self._predicates.append(f"@{attribute}={quote(value)}")
        return self

    def text_contains(self, text: str) -> 'SelectorBuilder':
        self._predicates.append(f"contains(., {quote(text)})")
        return self

    def within(self, parent: str) -> 'SelectorBuilder':
        self._parent = parent
        return self

    def build(self) -> str:
        expression = self._tag
        for predicate in self._predicates:
            expression += f"[{predicate}]"
        if self._parent:
            return f"{self._parent}//{expression}"
        return f"//{expression}"

    def __str__(self):
        return self.build()
