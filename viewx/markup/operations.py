"""
Patch operations applied to matched nodes of a working tree.

Operations never raise for structural no-ops (detached target, empty payload);
they return False instead so the compiler can log them.
"""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from lxml import etree

from ..exceptions import InvalidExtension
from .tree import Fragment, is_element, join_text, parse_fragment

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Structural operations an extension can perform."""
    INSERT_BEFORE = "insert-before"
    INSERT_AFTER = "insert-after"
    REPLACE = "replace"
    REMOVE = "remove"
    PREPEND_INSIDE = "prepend-inside"
    APPEND_INSIDE = "append-inside"
    WRAP = "wrap"
    SET_ATTRIBUTES = "set-attributes"

    @classmethod
    def parse(cls, value: Union[str, 'Operation']) -> 'Operation':
        """
        Resolve an operation name, accepting the short aliases.

        Raises:
            InvalidExtension: If the name is unknown
        """
        if isinstance(value, Operation):
            return value
        key = str(value).strip().lower()
        if key in OPERATION_ALIASES:
            return OPERATION_ALIASES[key]
        try:
            return cls(key.replace("_", "-"))
        except ValueError:
            raise InvalidExtension(f"Unknown operation: {value}")

    @property
    def needs_payload(self) -> bool:
        return self in (
            Operation.INSERT_BEFORE, Operation.INSERT_AFTER,
            Operation.PREPEND_INSIDE, Operation.APPEND_INSIDE, Operation.WRAP,
        )


OPERATION_ALIASES: Dict[str, Operation] = {
    "before": Operation.INSERT_BEFORE,
    "after": Operation.INSERT_AFTER,
    "inside_first": Operation.PREPEND_INSIDE,
    "prepend": Operation.PREPEND_INSIDE,
    "inside_last": Operation.APPEND_INSIDE,
    "inside": Operation.APPEND_INSIDE,
    "append": Operation.APPEND_INSIDE,
    "attributes": Operation.SET_ATTRIBUTES,
    "attrs": Operation.SET_ATTRIBUTES,
}


# Attribute changes

@dataclass(frozen=True)
class SetValue:
    value: str


@dataclass(frozen=True)
class RemoveAttribute:
    pass


def _split_classes(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return [str(item) for item in value if item]


@dataclass(frozen=True)
class ClassChange:
    """Edit of the class list: removals first, then additions, then toggles."""
    add: tuple = ()
    remove: tuple = ()
    toggle: tuple = ()

    def apply(self, current: Optional[str]) -> List[str]:
        classes: List[str] = []
        for name in _split_classes(current):
            if name not in classes:
                classes.append(name)
        classes = [name for name in classes if name not in self.remove]
        for name in self.add:
            if name not in classes:
                classes.append(name)
        for name in self.toggle:
            if name in classes:
                classes.remove(name)
            else:
                classes.append(name)
        return classes


AttributeChange = Union[SetValue, RemoveAttribute, ClassChange]

_CLASS_CHANGE_KEYS = {"add", "remove", "toggle"}


def normalize_attribute_change(name: str, raw: Any) -> AttributeChange:
    """
    Turn one raw attribute change into its tagged form.

    Raises:
        InvalidExtension: If the shape is not recognised
    """
    if isinstance(raw, (SetValue, RemoveAttribute, ClassChange)):
        return raw
    if raw is None or raw is False:
        return RemoveAttribute()
    if raw is True:
        return SetValue("")
    if isinstance(raw, (str, int, float)):
        return SetValue(str(raw))
    if isinstance(raw, Mapping):
        if name == "class" and raw and set(raw) <= _CLASS_CHANGE_KEYS:
            return ClassChange(
                add=tuple(_split_classes(raw.get("add"))),
                remove=tuple(_split_classes(raw.get("remove"))),
                toggle=tuple(_split_classes(raw.get("toggle"))),
            )
        if raw.get("remove"):
            return RemoveAttribute()
        if "value" in raw:
            return normalize_attribute_change(name, raw["value"])
    raise InvalidExtension(f"Unsupported change for attribute '{name}': {raw!r}")


def normalize_attribute_changes(raw: Optional[Mapping[str, Any]]) -> Dict[str, AttributeChange]:
    """Normalize a whole attribute change map, keeping its order."""
    if not raw:
        return {}
    if not isinstance(raw, Mapping):
        raise InvalidExtension(f"Attribute changes must be a mapping, got {type(raw).__name__}")
    return {str(name): normalize_attribute_change(str(name), value) for name, value in raw.items()}


def attribute_change_to_raw(change: AttributeChange) -> Any:
    """Inverse of normalize_attribute_change, for YAML dumps."""
    if isinstance(change, SetValue):
        return change.value
    if isinstance(change, ClassChange):
        return {key: list(getattr(change, key)) for key in ("add", "remove", "toggle") if getattr(change, key)}
    return None


def apply_attribute_changes(node: etree._Element, changes: Mapping[str, AttributeChange]) -> bool:
    """Apply normalized attribute changes to one element. Returns True if anything changed."""
    changed = False
    for name, change in changes.items():
        before = node.get(name)
        if isinstance(change, RemoveAttribute):
            if name in node.attrib:
                del node.attrib[name]
        elif isinstance(change, ClassChange):
            classes = change.apply(before)
            if classes:
                node.set(name, " ".join(classes))
            elif name in node.attrib:
                del node.attrib[name]
        else:
            node.set(name, change.value)
        if node.get(name) != before:
            changed = True
    return changed


# Structural helpers

def _add_text_before(parent: etree._Element, index: int, text: Optional[str]) -> None:
    """Put text right before the child at index (or at the end when index == len)."""
    if not text:
        return
    if index == 0:
        parent.text = join_text(parent.text, text)
    else:
        previous = parent[index - 1]
        previous.tail = join_text(previous.tail, text)


def _splice(parent: etree._Element, index: int, fragment: Fragment) -> None:
    """Insert a fragment's text and elements into parent at index."""
    _add_text_before(parent, index, fragment.text)
    for offset, element in enumerate(fragment.elements):
        parent.insert(index + offset, element)


def insert_before(node: etree._Element, fragment: Fragment) -> bool:
    parent = node.getparent()
    if parent is None or fragment.is_empty:
        return False
    _splice(parent, parent.index(node), fragment)
    return True


def insert_after(node: etree._Element, fragment: Fragment) -> bool:
    parent = node.getparent()
    if parent is None or fragment.is_empty:
        return False
    index = parent.index(node) + 1
    # Text that followed the node now follows the inserted content.
    tail, node.tail = node.tail, None
    _splice(parent, index, fragment)
    last = parent[index + len(fragment.elements) - 1] if fragment.elements else node
    last.tail = join_text(last.tail, tail)
    return True


def remove(node: etree._Element) -> bool:
    parent = node.getparent()
    if parent is None:
        return False
    index = parent.index(node)
    tail = node.tail
    parent.remove(node)
    _add_text_before(parent, index, tail)
    return True


def replace(node: etree._Element, fragment: Fragment) -> bool:
    if node.getparent() is None:
        return False
    if not fragment.is_empty:
        insert_before(node, fragment)
    return remove(node)


def prepend_inside(node: etree._Element, fragment: Fragment) -> bool:
    if fragment.is_empty:
        return False
    original_text, node.text = node.text, None
    _splice(node, 0, fragment)
    if original_text:
        _add_text_before(node, len(fragment.elements), original_text)
    return True


def append_inside(node: etree._Element, fragment: Fragment) -> bool:
    if fragment.is_empty:
        return False
    _splice(node, len(node), fragment)
    return True


def _deepest_single_child(element: etree._Element) -> etree._Element:
    current = element
    while True:
        children = [child for child in current if is_element(child)]
        if len(children) != 1:
            return current
        current = children[0]


def wrap(node: etree._Element, fragment: Fragment) -> bool:
    parent = node.getparent()
    wrapper = fragment.first_element()
    if parent is None or wrapper is None:
        return False
    target = _deepest_single_child(wrapper)
    clone = copy.deepcopy(node)
    clone.tail = None
    target.append(clone)
    wrapper.tail = node.tail
    index = parent.index(node)
    parent.remove(node)
    parent.insert(index, wrapper)
    return True


@dataclass
class PatchOperator:
    """
    Applies a single operation to a single node.

    Attributes:
        strict_xml_first: Try parsing payloads as XML before lenient HTML
    """
    strict_xml_first: bool = True
    _handlers: Dict[Operation, Any] = field(init=False, repr=False)

    def __post_init__(self):
        self._handlers = {
            Operation.INSERT_BEFORE: insert_before,
            Operation.INSERT_AFTER: insert_after,
            Operation.REPLACE: replace,
            Operation.PREPEND_INSIDE: prepend_inside,
            Operation.APPEND_INSIDE: append_inside,
            Operation.WRAP: wrap,
        }

    def parse_payload(self, payload: Optional[str]) -> Fragment:
        return parse_fragment(payload, strict_first=self.strict_xml_first)

    def apply(self,
              node: etree._Element,
              operation: Union[str, Operation],
              payload: Optional[Union[str, Fragment]] = None,
              attribute_changes: Optional[Mapping[str, Any]] = None) -> bool:
        """
        Apply an operation to a node of a working tree.

        Args:
            node: Target element
            operation: Operation (or alias)
            payload: Markup or an already parsed fragment
            attribute_changes: Raw or normalized changes for set-attributes

        Returns:
            True if the tree was changed, False for a no-op
        """
        operation = Operation.parse(operation)

        if operation == Operation.REMOVE:
            return remove(node)

        if operation == Operation.SET_ATTRIBUTES:
            changes = normalize_attribute_changes(attribute_changes)
            if not changes:
                return False
            return apply_attribute_changes(node, changes)

        if isinstance(payload, Fragment):
            fragment = payload.copy()
        else:
            fragment = self.parse_payload(payload)
        return self._handlers[operation](node, fragment)
