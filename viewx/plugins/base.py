"""
Base class for viewx plugins.

A plugin contributes extensions, slot content, replacements, view types and
view definitions to an engine. Every registration made through the helpers
below is tagged with the plugin's name as owner, so deactivating the plugin
removes all of it in one pass.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

from ..markup import selectors

if TYPE_CHECKING:
    from ..engine import ViewEngine
    from ..extensions.models import Extension, Replacement, SlotContribution
    from ..views.builder import ViewBuilder
    from ..views.types import ViewType


class ViewPlugin(ABC):
    """
    Base class for all viewx plugins.

    Subclasses name themselves and override ``register()``::

        class Discounts(ViewPlugin):
            name = "discounts"
            version = "1.0.0"

            def register(self):
                self.insert_after("orders.form", selectors.by_id("totals"),
                                  "<div class='discount'></div>")
    """

    def __init__(self):
        self.engine: Optional['ViewEngine'] = None
        self.config: Dict[str, Any] = {}

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name (slug) for this plugin."""
        pass

    @property
    @abstractmethod
    def version(self) -> str:
        """Plugin version."""
        pass

    @property
    def description(self) -> str:
        """Plugin description."""
        return ""

    @property
    def author(self) -> str:
        """Plugin author."""
        return ""

    @property
    def requires(self) -> List[str]:
        """Names of plugins that must be active first."""
        return []

    def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Store plugin configuration."""
        self.config = dict(config or {})

    def validate_config(self) -> bool:
        return True

    def register(self) -> None:
        """Make this plugin's registrations. Called on activation."""

    def activate(self, engine: 'ViewEngine') -> None:
        """Bind to an engine and register everything."""
        self.engine = engine
        self.register()

    def deactivate(self) -> Dict[str, int]:
        """Remove every registration owned by this plugin."""
        if self.engine is None:
            return {}
        counts = self.engine.remove_all_registrations_by_owner(self.name)
        self.cleanup()
        self.engine = None
        return counts

    def cleanup(self) -> None:
        """Release plugin resources after deactivation."""

    def _engine(self) -> 'ViewEngine':
        if self.engine is None:
            raise RuntimeError(f"Plugin {self.name} is not active")
        return self.engine

    # Structural extensions

    def extend_view(self, view: str, modification: Mapping[str, Any], priority: Optional[int] = None) -> 'Extension':
        return self._engine().register_extension(view, modification, owner=self.name, priority=priority)

    def extend_view_many(self, view: str, modifications: Sequence[Mapping[str, Any]],
                         priority: int = 10) -> List['Extension']:
        return self._engine().register_extensions(view, modifications, owner=self.name, priority=priority)

    def _patch(self, view: str, selector: str, operation: str, content: Optional[str] = None,
               priority: int = 10, **extra) -> 'Extension':
        modification = {"selector": selector, "operation": operation, **extra}
        if content is not None:
            modification["content"] = content
        return self.extend_view(view, modification, priority)

    def insert_before(self, view: str, selector: str, content: str, priority: int = 10) -> 'Extension':
        return self._patch(view, selector, "insert-before", content, priority)

    def insert_after(self, view: str, selector: str, content: str, priority: int = 10) -> 'Extension':
        return self._patch(view, selector, "insert-after", content, priority)

    def prepend_to(self, view: str, selector: str, content: str, priority: int = 10) -> 'Extension':
        return self._patch(view, selector, "prepend-inside", content, priority)

    def append_to(self, view: str, selector: str, content: str, priority: int = 10) -> 'Extension':
        return self._patch(view, selector, "append-inside", content, priority)

    def replace_element(self, view: str, selector: str, content: str = "", priority: int = 10) -> 'Extension':
        return self._patch(view, selector, "replace", content, priority)

    def remove_element(self, view: str, selector: str, priority: int = 10) -> 'Extension':
        return self._patch(view, selector, "remove", None, priority)

    def wrap_element(self, view: str, selector: str, wrapper: str, priority: int = 10) -> 'Extension':
        return self._patch(view, selector, "wrap", wrapper, priority)

    def modify_attributes(self, view: str, selector: str, attributes: Mapping[str, Any],
                          priority: int = 10) -> 'Extension':
        return self._patch(view, selector, "set-attributes", None, priority, attributes=dict(attributes))

    def add_class(self, view: str, selector: str, classes: str, priority: int = 10) -> 'Extension':
        return self.modify_attributes(view, selector, {"class": {"add": classes}}, priority)

    def remove_class(self, view: str, selector: str, classes: str, priority: int = 10) -> 'Extension':
        return self.modify_attributes(view, selector, {"class": {"remove": classes}}, priority)

    def set_attribute(self, view: str, selector: str, attribute: str, value: Any,
                      priority: int = 10) -> 'Extension':
        return self.modify_attributes(view, selector, {attribute: value}, priority)

    # Slots and replacements

    def add_to_slot(self, view: str, slot: str, content: Any, priority: int = 10) -> 'SlotContribution':
        return self._engine().register_slot_content(view, slot, content, owner=self.name, priority=priority)

    def add_view_to_slot(self, view: str, slot: str, sub_view: str,
                         data: Optional[Mapping[str, Any]] = None, priority: int = 10) -> 'SlotContribution':
        content = {"view": sub_view, "data": dict(data or {})}
        return self.add_to_slot(view, slot, content, priority)

    def replace_view(self, view: str, replacement: str, priority: int = 10) -> 'Replacement':
        return self._engine().register_replacement(view, replacement, owner=self.name, priority=priority)

    # View types and definitions

    def register_view_type(self, view_type: 'ViewType') -> 'ViewType':
        return self._engine().register_view_type(view_type, owner=self.name)

    def register_view(self, entity: str, view_type: str, archetype: Mapping[str, Any],
                      inherit_from: Optional[str] = None):
        return self._engine().register_view_definition(
            entity, view_type, archetype, owner=self.name, inherit_from=inherit_from
        )

    def build_view(self, view_type: str, entity: str = "") -> 'ViewBuilder':
        """
        Start a view definition owned by this plugin.

        Example:
            self.build_view("list", "order").columns(["number"]).register(self.engine)
        """
        from ..views.builder import ViewBuilder
        return ViewBuilder.make(view_type, entity).plugin(self.name)

    # Selector shortcuts

    by_id = staticmethod(selectors.by_id)
    by_class = staticmethod(selectors.by_class)
    by_data = staticmethod(selectors.by_data)
    by_field_name = staticmethod(selectors.by_field_name)
    by_extension_point = staticmethod(selectors.by_extension_point)
    by_extension_area = staticmethod(selectors.by_extension_area)

    def __repr__(self):
        return f"<{type(self).__name__}(name='{self.name}', version='{self.version}')>"
