"""
Hook system for viewx.

Engine components publish lifecycle events (an extension was registered, an
owner was purged, a view was compiled) and expose filter points where plugins
can post-process compiled or slot markup.

Each engine owns its own HookRegistry; there is no process-wide registry.
"""

import itertools
import logging
import threading
from typing import Callable, Any, List, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class HookRegistry:
    """Registry for managing hook callbacks."""

    def __init__(self):
        # event -> [(priority, sequence, callback)], replaced on every change
        self._hooks: Dict[str, List[Tuple[int, int, Callable]]] = {}
        self._hook_descriptions: Dict[str, str] = {}
        self._sequence = itertools.count()
        self._lock = threading.RLock()

    def register_hook(self,
                      event: str,
                      callback: Callable,
                      priority: int = 10,
                      description: Optional[str] = None) -> None:
        """
        Register a hook callback.

        Args:
            event: Event name to hook into
            callback: Callback function
            priority: Priority (lower runs first, ties in registration order)
            description: Optional description of what this hook does
        """
        with self._lock:
            entries = list(self._hooks.get(event, []))
            entries.append((priority, next(self._sequence), callback))
            entries.sort(key=lambda entry: (entry[0], entry[1]))
            self._hooks[event] = entries

        if description:
            self._hook_descriptions[f"{event}:{_callback_name(callback)}"] = description

        logger.debug(f"Registered hook for {event}: {_callback_name(callback)} (priority: {priority})")

    def unregister_hook(self, event: str, callback: Callable) -> bool:
        """
        Unregister a hook callback.

        Returns:
            True if callback was removed
        """
        with self._lock:
            entries = self._hooks.get(event, [])
            remaining = [entry for entry in entries if entry[2] is not callback]
            if len(remaining) == len(entries):
                return False
            self._hooks[event] = remaining

        logger.debug(f"Unregistered hook for {event}: {_callback_name(callback)}")
        return True

    def on(self, event: str, priority: int = 10, description: Optional[str] = None):
        """
        Decorator for registering hook callbacks.

        Usage:
            @engine.hooks.on("view.compiled")
            def log_compile(view, result):
                print(view, result.duration_ms)
        """
        def decorator(func: Callable) -> Callable:
            self.register_hook(event, func, priority, description)
            return func
        return decorator

    def _callbacks(self, event: str) -> List[Callable]:
        return [entry[2] for entry in self._hooks.get(event, [])]

    def trigger(self, event: str, *args, **kwargs) -> List[Any]:
        """
        Trigger all callbacks for an event.

        A failing callback is logged and skipped; the others still run.

        Returns:
            List of non-None results from callbacks
        """
        results = []
        for callback in self._callbacks(event):
            try:
                result = callback(*args, **kwargs)
                if result is not None:
                    results.append(result)
            except Exception as e:
                logger.error(f"Hook {_callback_name(callback)} failed for event {event}: {e}")
        return results

    def trigger_filter(self, event: str, value: Any, *args, **kwargs) -> Any:
        """
        Trigger filter hooks that can modify a value.

        Each hook receives the current value and can return a modified version.
        If a hook returns None, the value is unchanged.
        """
        current_value = value
        for callback in self._callbacks(event):
            try:
                result = callback(current_value, *args, **kwargs)
                if result is not None:
                    current_value = result
            except Exception as e:
                logger.error(f"Filter hook {_callback_name(callback)} failed for event {event}: {e}")
        return current_value

    def has_hooks(self, event: str) -> bool:
        return bool(self._hooks.get(event))

    def list_hooks(self) -> Dict[str, List[str]]:
        """
        List all registered hooks.

        Returns:
            Dictionary mapping events to callback names in run order
        """
        return {
            event: [_callback_name(entry[2]) for entry in entries]
            for event, entries in self._hooks.items()
            if entries
        }

    def describe(self, event: str, callback: Callable) -> Optional[str]:
        return self._hook_descriptions.get(f"{event}:{_callback_name(callback)}")

    def clear_hooks(self, event: Optional[str] = None) -> None:
        """
        Clear hooks for an event or all events.

        Args:
            event: Event name to clear, or None to clear all
        """
        with self._lock:
            if event:
                self._hooks.pop(event, None)
            else:
                self._hooks = {}
                self._hook_descriptions.clear()


def _callback_name(callback: Callable) -> str:
    return getattr(callback, "__name__", repr(callback))


# Events triggered by the engine
EVENTS = {
    # Registration events
    'extension.registered': 'Extension registered for a view (view, extension)',
    'extension.removed': 'Extensions of a view were removed (view)',
    'slot.registered': 'Slot contribution registered (view, slot, contribution)',
    'replacement.registered': 'Replacement registered for a view (view, replacement)',
    'owner.removed': 'All registrations of an owner were purged (owner, counts)',
    'view_type.registered': 'View type registered in the catalogue (descriptor, owner)',
    'view_definition.registered': 'View definition stored (definition)',
    'view_definition.removed': 'View definition deleted (slug)',

    # Compile and render events
    'view.compiled': 'View compiled (view, result)',
    'filter.compiled_markup': 'Filter compiled markup (markup, view, context)',
    'filter.slot_markup': 'Filter rendered slot markup (markup, view, slot, context)',

    # Plugin events
    'plugin.activated': 'Plugin activated (plugin)',
    'plugin.deactivated': 'Plugin deactivated (plugin, counts)',
    'engine.closed': 'Engine closed',
}
