"""
In-memory registration records: extensions, slot contributions, replacements.

These are rebuilt on every boot by plugins and are never persisted.
"""

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import jmespath
from jmespath.exceptions import JMESPathError

from ..exceptions import InvalidExtension
from ..markup.operations import (
    AttributeChange, Operation, attribute_change_to_raw, normalize_attribute_changes,
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=512)
def _compile_field(expression: str):
    return jmespath.compile(expression)


def lookup(context: Optional[Mapping[str, Any]], expression: str) -> Any:
    """Read a (dotted) field from the compile context; None if absent or invalid."""
    if not context:
        return None
    try:
        return _compile_field(expression).search(context)
    except JMESPathError as e:
        logger.warning(f"Invalid condition field {expression!r}: {e}")
        return None


def _contains(haystack: Any, needle: Any) -> bool:
    if isinstance(haystack, str):
        return needle is not None and str(needle) in haystack
    if isinstance(haystack, (list, tuple, set, frozenset)):
        return needle in haystack
    return False


def _is_collection(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


CONDITION_TESTS: Dict[str, Callable[[Any, Any], bool]] = {
    'equals': lambda actual, expected: actual == expected,
    'not_equals': lambda actual, expected: actual != expected,
    'contains': _contains,
    'in': lambda actual, expected: _is_collection(expected) and actual in expected,
    'not_in': lambda actual, expected: _is_collection(expected) and actual not in expected,
    'exists': lambda actual, expected: actual is not None,
    'not_exists': lambda actual, expected: actual is None,
    'true': lambda actual, expected: bool(actual),
    'false': lambda actual, expected: not actual,
}


@dataclass(frozen=True)
class Condition:
    """A predicate on the compile context."""
    field: str
    type: str = "equals"
    value: Any = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Condition':
        if not isinstance(data, Mapping):
            raise InvalidExtension(f"Condition must be a mapping, got {data!r}")
        if not data.get("field"):
            raise InvalidExtension(f"Condition without a field: {dict(data)!r}")
        condition_type = data.get("type", "equals")
        if condition_type not in CONDITION_TESTS:
            raise InvalidExtension(f"Unknown condition type: {condition_type}")
        return cls(field=data["field"], type=condition_type, value=data.get("value"))

    def is_met(self, context: Optional[Mapping[str, Any]]) -> bool:
        return CONDITION_TESTS[self.type](lookup(context, self.field), self.value)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "field": self.field, "value": self.value}


@dataclass
class Extension:
    """
    A registered structural patch for one view.

    Attributes:
        id: Registry-assigned identifier, e.g. ``"ext-12"``
        target_view: Dotted name of the view being patched
        selector: XPath expression selecting target nodes
        operation: What to do with each matched node
        payload: Literal markup to insert
        view: Sub-view rendered as the payload when no literal payload is given
        view_data: Extra context for the sub-view
        attribute_changes: Normalized changes for set-attributes
        conditions: All must hold in the compile context for the patch to apply
        owner: Slug of the registering plugin
        priority: Lower runs first
        sequence: Registration counter, breaks priority ties
    """
    id: str
    target_view: str
    selector: str
    operation: Operation
    payload: Optional[str] = None
    view: Optional[str] = None
    view_data: Dict[str, Any] = field(default_factory=dict)
    attribute_changes: Dict[str, AttributeChange] = field(default_factory=dict)
    conditions: List[Condition] = field(default_factory=list)
    owner: Optional[str] = None
    priority: int = 10
    sequence: int = 0

    @property
    def sort_key(self):
        return (self.priority, self.sequence)

    def conditions_met(self, context: Optional[Mapping[str, Any]] = None) -> bool:
        return all(condition.is_met(context) for condition in self.conditions)

    def describe(self) -> str:
        return f"{self.operation.value} {self.selector}"

    def to_dict(self) -> Dict[str, Any]:
        """Raw modification mapping that registers an equivalent extension."""
        data: Dict[str, Any] = {
            "selector": self.selector,
            "operation": self.operation.value,
            "priority": self.priority,
        }
        if self.payload is not None:
            data["content"] = self.payload
        if self.view:
            data["view"] = self.view
            if self.view_data:
                data["data"] = dict(self.view_data)
        if self.attribute_changes:
            data["attributes"] = {
                name: attribute_change_to_raw(change) for name, change in self.attribute_changes.items()
            }
        if self.conditions:
            data["conditions"] = [condition.to_dict() for condition in self.conditions]
        return data

    def __repr__(self):
        return (f"<Extension(id={self.id}, view={self.target_view}, "
                f"operation={self.operation.value}, selector={self.selector!r}, "
                f"priority={self.priority})>")


def parse_modification(modification: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate a raw modification mapping and normalize its fields.

    Accepted keys: ``selector`` (or ``xpath``), ``operation`` (or
    ``position``), ``content`` (or ``payload``/``html``), ``view``, ``data``
    (or ``view_data``), ``attributes`` (or ``attribute_changes``),
    ``conditions`` and ``priority``.

    Raises:
        InvalidExtension: If the modification is malformed
    """
    if not isinstance(modification, Mapping):
        raise InvalidExtension(f"Modification must be a mapping, got {type(modification).__name__}")

    selector = modification.get("selector") or modification.get("xpath")
    if not selector or not isinstance(selector, str):
        raise InvalidExtension("Modification requires a selector")

    raw_operation = modification.get("operation") or modification.get("position") or "insert-after"
    operation = Operation.parse(raw_operation)

    payload = modification.get("content", modification.get("payload", modification.get("html")))
    if payload is not None and not isinstance(payload, str):
        raise InvalidExtension(f"Payload must be markup text, got {type(payload).__name__}")

    view = modification.get("view")
    view_data = modification.get("data", modification.get("view_data")) or {}
    if not isinstance(view_data, Mapping):
        raise InvalidExtension("Sub-view data must be a mapping")

    attribute_changes = normalize_attribute_changes(
        modification.get("attributes", modification.get("attribute_changes"))
    )
    if operation == Operation.SET_ATTRIBUTES and not attribute_changes:
        raise InvalidExtension("set-attributes requires attribute changes")

    raw_conditions = modification.get("conditions") or []
    if isinstance(raw_conditions, Mapping):
        raw_conditions = [raw_conditions]
    conditions = [Condition.from_dict(condition) for condition in raw_conditions]

    return {
        "selector": selector,
        "operation": operation,
        "payload": payload,
        "view": view,
        "view_data": dict(view_data),
        "attribute_changes": attribute_changes,
        "conditions": conditions,
    }


@dataclass(frozen=True)
class Literal:
    """Slot content rendered as-is."""
    markup: str


@dataclass(frozen=True)
class Callback:
    """Slot content produced by calling ``func(context)``."""
    func: Callable[[Dict[str, Any]], Any]


@dataclass(frozen=True)
class SubView:
    """Slot content rendered from another view with merged data."""
    view_name: str
    data: Dict[str, Any] = field(default_factory=dict, hash=False)


SlotContent = Union[Literal, Callback, SubView]


def to_slot_content(content: Any, data: Optional[Mapping[str, Any]] = None) -> SlotContent:
    """
    Coerce raw slot content.

    Strings are literal markup, callables are callbacks, and a mapping with a
    ``view`` key is a sub-view reference.

    Raises:
        InvalidExtension: For anything else
    """
    if isinstance(content, (Literal, Callback, SubView)):
        return content
    if isinstance(content, str):
        return Literal(content)
    if callable(content):
        return Callback(content)
    if isinstance(content, Mapping) and content.get("view"):
        merged = dict(content.get("data") or {})
        merged.update(data or {})
        return SubView(content["view"], merged)
    raise InvalidExtension(f"Unsupported slot content: {content!r}")


@dataclass
class SlotContribution:
    target_view: str
    slot_name: str
    content: SlotContent
    owner: Optional[str] = None
    priority: int = 10
    sequence: int = 0

    @property
    def sort_key(self):
        return (self.priority, self.sequence)


@dataclass
class Replacement:
    target_view: str
    replacement_view: str
    owner: Optional[str] = None
    priority: int = 10
    sequence: int = 0

    @property
    def sort_key(self):
        return (self.priority, self.sequence)
