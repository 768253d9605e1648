"""
Catalogue of view types.

System types are registered at construction and are permanent. Plugins can
add their own types and replace other non-system ones.
"""

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..exceptions import DuplicateSystemType, RegistrationError
from ..plugins.hooks import HookRegistry
from .types import BUILTIN_VIEW_TYPES, CATEGORIES, ValidationIssue, ViewType

logger = logging.getLogger(__name__)


class ViewTypeCatalogue:
    """Registry of available view types."""

    def __init__(self, hooks: Optional[HookRegistry] = None, register_builtins: bool = True):
        self.hooks = hooks or HookRegistry()
        self._types: Dict[str, ViewType] = {}
        self._owners: Dict[str, str] = {}
        self._listeners: List[Callable[[ViewType, Optional[str]], Any]] = []
        self._lock = threading.RLock()

        if register_builtins:
            for type_class in BUILTIN_VIEW_TYPES:
                self.register(type_class())

    def register(self, view_type: ViewType, owner: Optional[str] = None) -> ViewType:
        """
        Register a view type.

        Args:
            view_type: The type to register
            owner: Slug of the plugin providing it

        Raises:
            DuplicateSystemType: If the name belongs to a system type
            RegistrationError: If a non-system type would be replaced without an owner
        """
        if not isinstance(view_type, ViewType):
            raise RegistrationError(f"Not a view type: {view_type!r}")
        if owner and view_type.is_system:
            # Owned types must stay removable, even when derived from a built-in
            view_type.is_system = False

        name = view_type.name
        with self._lock:
            existing = self._types.get(name)
            if existing is not None:
                if existing.is_system:
                    raise DuplicateSystemType(name)
                if owner is None:
                    raise RegistrationError(f"View type '{name}' is already registered")
                logger.info(f"View type '{name}' replaced by plugin {owner}")

            self._types[name] = view_type
            if owner:
                self._owners[name] = owner
            else:
                self._owners.pop(name, None)
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(view_type, owner)
            except Exception as e:
                logger.error(f"View type listener failed for {name}: {e}")
        self.hooks.trigger('view_type.registered', view_type, owner)

        logger.debug(f"Registered view type {name} (owner: {owner})")
        return view_type

    def unregister(self, name: str) -> bool:
        """
        Remove a non-system view type.

        Returns:
            False if the type is unknown or a system type
        """
        with self._lock:
            view_type = self._types.get(name)
            if view_type is None:
                return False
            if view_type.is_system:
                logger.warning(f"Refusing to unregister system view type {name}")
                return False
            del self._types[name]
            self._owners.pop(name, None)
        logger.debug(f"Unregistered view type {name}")
        return True

    def remove_by_owner(self, owner: str) -> int:
        """Unregister every type provided by an owner."""
        names = [name for name, type_owner in self._owners.items() if type_owner == owner]
        return sum(1 for name in names if self.unregister(name))

    def on_register(self, listener: Callable[[ViewType, Optional[str]], Any]) -> 'ViewTypeCatalogue':
        self._listeners.append(listener)
        return self

    # Lookups

    def get(self, name: Optional[str]) -> Optional[ViewType]:
        return self._types.get(name) if name else None

    def has(self, name: Optional[str]) -> bool:
        return bool(name) and name in self._types

    def __contains__(self, name):
        return self.has(name)

    def __len__(self):
        return len(self._types)

    def names(self) -> List[str]:
        return list(self._types)

    def all(self) -> List[ViewType]:
        """All types, ordered by priority then name."""
        return sorted(self._types.values(), key=lambda vt: (vt.priority, vt.name))

    def by_category(self, category: str) -> List[ViewType]:
        return [vt for vt in self.all() if vt.category == category]

    def categories(self) -> List[str]:
        used = {vt.category for vt in self._types.values()}
        ordered = [category for category in CATEGORIES if category in used]
        return ordered + sorted(used - set(CATEGORIES))

    def grouped_by_category(self) -> Dict[str, List[ViewType]]:
        return {category: self.by_category(category) for category in self.categories()}

    def by_feature(self, feature: str) -> List[ViewType]:
        return [vt for vt in self.all() if vt.supports(feature)]

    def by_owner(self, owner: str) -> List[ViewType]:
        return [vt for vt in self.all() if self._owners.get(vt.name) == owner]

    def system_types(self) -> List[ViewType]:
        return [vt for vt in self.all() if vt.is_system]

    def plugin_types(self) -> List[ViewType]:
        return [vt for vt in self.all() if not vt.is_system]

    def entity_types(self) -> List[ViewType]:
        return [vt for vt in self.all() if vt.requires_entity]

    def standalone_types(self) -> List[ViewType]:
        return [vt for vt in self.all() if not vt.requires_entity]

    def owner(self, name: str) -> Optional[str]:
        return self._owners.get(name)

    def supports(self, name: str, feature: str) -> bool:
        view_type = self.get(name)
        return view_type is not None and view_type.supports(feature)

    # Validation and defaults

    def validate(self, definition: Mapping[str, Any]) -> List[ValidationIssue]:
        """
        Validate a definition against the type named in its ``type`` key.

        Unknown or missing types are reported as issues, not raised.
        """
        name = definition.get("type")
        if not name:
            return [ValidationIssue("type", "View type is required")]
        view_type = self.get(name)
        if view_type is None:
            return [ValidationIssue("type", f"Unknown view type: {name}")]
        return view_type.validate(definition)

    def generate_default(self, name: str, entity_name: str,
                         fields: Optional[Iterable[Any]] = None) -> Optional[Dict[str, Any]]:
        view_type = self.get(name)
        if view_type is None:
            return None
        return view_type.generate_default(entity_name, fields)

    def as_options(self, grouped: bool = False):
        """Choices for a view type picker."""
        if grouped:
            return {
                category: {vt.name: vt.label for vt in types}
                for category, types in self.grouped_by_category().items()
            }
        return {vt.name: vt.label for vt in self.all()}

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {vt.name: dict(vt.to_dict(), owner=self._owners.get(vt.name)) for vt in self.all()}
