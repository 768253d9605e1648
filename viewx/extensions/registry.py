"""
Extension registry: structural patches, slot contributions and replacements.

Per-view collections are immutable tuples that are swapped whole on every
write, so compiles running concurrently with a registration never see a
half-sorted list. Writes are serialized by one lock.
"""

import itertools
import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..exceptions import InvalidExtension, SelectorSyntaxError
from ..markup.selectors import validate_selector
from ..plugins.hooks import HookRegistry
from .models import (
    Extension, Replacement, SlotContribution, parse_modification, to_slot_content,
)

logger = logging.getLogger(__name__)


def _insert_sorted(items: Tuple, item) -> Tuple:
    return tuple(sorted(items + (item,), key=lambda entry: entry.sort_key))


class ExtensionRegistry:
    """
    Registry of everything plugins contribute to views.

    Usage:
        registry = ExtensionRegistry()
        registry.register("orders.index", {
            "selector": "//*[@id='header']",
            "operation": "insert-after",
            "content": "<p>Hello</p>",
        }, owner="greeter")
    """

    def __init__(self, hooks: Optional[HookRegistry] = None):
        self.hooks = hooks or HookRegistry()
        self._extensions: Dict[str, Tuple[Extension, ...]] = {}
        self._slots: Dict[str, Dict[str, Tuple[SlotContribution, ...]]] = {}
        self._replacements: Dict[str, Tuple[Replacement, ...]] = {}
        self._sequence = itertools.count()
        self._ids = itertools.count(1)
        self._lock = threading.RLock()
        self._change_listeners: List[Callable[[str], Any]] = []

    def on_change(self, listener: Callable[[str], Any]) -> Callable[[str], Any]:
        """
        Call listener with the view name whenever a view's extensions or
        replacements change. Unlike hooks these survive ``clear_hooks``.
        """
        self._change_listeners.append(listener)
        return listener

    def _changed(self, view: str) -> None:
        for listener in list(self._change_listeners):
            try:
                listener(view)
            except Exception as e:
                logger.error(f"Change listener failed for {view}: {e}")

    # Extensions

    def register(self, view: str, modification: Mapping[str, Any],
                 owner: Optional[str] = None, priority: Optional[int] = None) -> Extension:
        """
        Register a structural patch for a view.

        Args:
            view: Dotted view name
            modification: Raw modification (selector, operation, content, ...)
            owner: Registering plugin slug
            priority: Lower runs first; defaults to the modification's own
                ``priority`` key, then 10

        Returns:
            The stored Extension

        Raises:
            InvalidExtension: If the modification is malformed
        """
        if not view:
            raise InvalidExtension("Extension requires a target view")
        fields = parse_modification(modification)

        try:
            validate_selector(fields["selector"])
        except SelectorSyntaxError as e:
            # Stored anyway; the compiler logs and skips it at render time.
            logger.warning(f"Extension for {view} has an invalid selector: {e}")

        if priority is None:
            priority = modification.get("priority", 10)

        with self._lock:
            extension = Extension(
                id=f"ext-{next(self._ids)}",
                target_view=view,
                owner=owner,
                priority=int(priority),
                sequence=next(self._sequence),
                **fields,
            )
            self._extensions[view] = _insert_sorted(self._extensions.get(view, ()), extension)

        logger.debug(f"Registered {extension!r} (owner: {owner})")
        self._changed(view)
        self.hooks.trigger('extension.registered', view, extension)
        return extension

    def register_bulk(self, view: str, modifications: Sequence[Mapping[str, Any]],
                      owner: Optional[str] = None, priority: int = 10) -> List[Extension]:
        """
        Register several modifications, keeping their list order.

        Each modification gets ``priority + index`` unless it sets its own.
        """
        extensions = []
        for index, modification in enumerate(modifications):
            own_priority = modification.get("priority") if isinstance(modification, Mapping) else None
            extensions.append(self.register(
                view, modification, owner=owner,
                priority=own_priority if own_priority is not None else priority + index,
            ))
        return extensions

    def all_for(self, view: str, context: Optional[Mapping[str, Any]] = None) -> Tuple[Extension, ...]:
        """
        Extensions for a view in application order.

        When a context is given, extensions whose conditions fail are left out.
        """
        extensions = self._extensions.get(view, ())
        if context is None:
            return extensions
        return tuple(ext for ext in extensions if ext.conditions_met(context))

    def has_extensions(self, view: str) -> bool:
        return bool(self._extensions.get(view))

    def views(self) -> List[str]:
        return sorted(self._extensions)

    def remove(self, extension_id: str) -> bool:
        """Remove a single extension by id."""
        with self._lock:
            for view, extensions in self._extensions.items():
                remaining = tuple(ext for ext in extensions if ext.id != extension_id)
                if len(remaining) != len(extensions):
                    self._extensions[view] = remaining
                    break
            else:
                return False
        self._changed(view)
        self.hooks.trigger('extension.removed', view)
        return True

    # Slots

    def add_to_slot(self, view: str, slot: str, content: Any,
                    owner: Optional[str] = None, priority: int = 10,
                    data: Optional[Mapping[str, Any]] = None) -> SlotContribution:
        """
        Contribute content to a named slot of a view.

        Args:
            content: Markup string, callable taking the render context, or
                a ``{"view": name, "data": {...}}`` sub-view reference
        """
        if not view or not slot:
            raise InvalidExtension("Slot contribution requires a view and a slot name")

        with self._lock:
            contribution = SlotContribution(
                target_view=view,
                slot_name=slot,
                content=to_slot_content(content, data),
                owner=owner,
                priority=int(priority),
                sequence=next(self._sequence),
            )
            view_slots = dict(self._slots.get(view, {}))
            view_slots[slot] = _insert_sorted(view_slots.get(slot, ()), contribution)
            self._slots[view] = view_slots

        logger.debug(f"Registered slot content for {view}:{slot} (owner: {owner}, priority: {priority})")
        self.hooks.trigger('slot.registered', view, slot, contribution)
        return contribution

    def slot_contents(self, view: str, slot: str) -> Tuple[SlotContribution, ...]:
        return self._slots.get(view, {}).get(slot, ())

    def slots_for(self, view: str) -> Dict[str, Tuple[SlotContribution, ...]]:
        return dict(self._slots.get(view, {}))

    def has_slot(self, view: str, slot: str) -> bool:
        return bool(self.slot_contents(view, slot))

    def slot_count(self, view: str, slot: str) -> int:
        return len(self.slot_contents(view, slot))

    # Replacements

    def replace(self, view: str, replacement_view: str,
                owner: Optional[str] = None, priority: int = 10) -> Replacement:
        """Render replacement_view instead of view. The lowest priority wins."""
        if not view or not replacement_view:
            raise InvalidExtension("Replacement requires a view and a replacement view")
        if view == replacement_view:
            raise InvalidExtension(f"View {view} cannot replace itself")

        with self._lock:
            replacement = Replacement(
                target_view=view,
                replacement_view=replacement_view,
                owner=owner,
                priority=int(priority),
                sequence=next(self._sequence),
            )
            self._replacements[view] = _insert_sorted(self._replacements.get(view, ()), replacement)

        logger.debug(f"Registered replacement {view} -> {replacement_view} (owner: {owner})")
        self._changed(view)
        self.hooks.trigger('replacement.registered', view, replacement)
        return replacement

    def replacement_for(self, view: str) -> Optional[str]:
        replacements = self._replacements.get(view)
        return replacements[0].replacement_view if replacements else None

    def has_replacement(self, view: str) -> bool:
        return bool(self._replacements.get(view))

    def all_slots(self) -> Dict[str, Dict[str, Tuple[SlotContribution, ...]]]:
        return {view: dict(view_slots) for view, view_slots in self._slots.items()}

    def all_replacements(self) -> Dict[str, Tuple[Replacement, ...]]:
        return dict(self._replacements)

    # Administration

    def remove_all_by_owner(self, owner: str) -> Dict[str, int]:
        """
        Purge every extension, slot contribution and replacement of an owner.

        Returns:
            Counts of removed items per kind
        """
        counts = {"extensions": 0, "slots": 0, "replacements": 0}
        affected_views = set()

        with self._lock:
            extensions = {}
            for view, entries in self._extensions.items():
                kept = tuple(entry for entry in entries if entry.owner != owner)
                counts["extensions"] += len(entries) - len(kept)
                if len(kept) != len(entries):
                    affected_views.add(view)
                if kept:
                    extensions[view] = kept

            slots = {}
            for view, view_slots in self._slots.items():
                kept_slots = {}
                for slot, entries in view_slots.items():
                    kept = tuple(entry for entry in entries if entry.owner != owner)
                    counts["slots"] += len(entries) - len(kept)
                    if kept:
                        kept_slots[slot] = kept
                if kept_slots:
                    slots[view] = kept_slots

            replacements = {}
            for view, entries in self._replacements.items():
                kept = tuple(entry for entry in entries if entry.owner != owner)
                counts["replacements"] += len(entries) - len(kept)
                if len(kept) != len(entries):
                    affected_views.add(view)
                if kept:
                    replacements[view] = kept

            self._extensions = extensions
            self._slots = slots
            self._replacements = replacements

        logger.info(f"Removed registrations of {owner}: {counts}")
        for view in sorted(affected_views):
            self._changed(view)
            self.hooks.trigger('extension.removed', view)
        self.hooks.trigger('owner.removed', owner, counts)
        return counts

    def clear(self) -> None:
        with self._lock:
            views = sorted(set(self._extensions) | set(self._replacements))
            self._extensions = {}
            self._slots = {}
            self._replacements = {}
        for view in views:
            self._changed(view)
            self.hooks.trigger('extension.removed', view)

    def owners(self) -> List[str]:
        found = set()
        for entries in self._extensions.values():
            found.update(entry.owner for entry in entries)
        for view_slots in self._slots.values():
            for entries in view_slots.values():
                found.update(entry.owner for entry in entries)
        for entries in self._replacements.values():
            found.update(entry.owner for entry in entries)
        found.discard(None)
        return sorted(found)

    def stats(self) -> Dict[str, Any]:
        """Counts of everything registered."""
        return {
            "views_with_extensions": len(self._extensions),
            "total_extensions": sum(len(entries) for entries in self._extensions.values()),
            "views_with_slots": len(self._slots),
            "total_slot_contents": sum(
                len(entries) for view_slots in self._slots.values() for entries in view_slots.values()
            ),
            "total_replacements": sum(len(entries) for entries in self._replacements.values()),
            "owners": self.owners(),
        }
