"""
Slot rendering.

Views declare named slots; plugins contribute literal markup, callbacks or
whole sub-views to them. Contributions are resolved lazily, at render time,
in priority order.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Mapping, Optional

from .extensions.models import Callback, Literal, SlotContribution, SubView
from .extensions.registry import ExtensionRegistry
from .plugins.hooks import HookRegistry

logger = logging.getLogger(__name__)

ViewRenderer = Callable[[str, Dict[str, Any]], str]


class SlotRenderer:
    """
    Renders the contributions of a view's slots.

    Args:
        registry: Source of slot contributions
        hooks: Hook registry for the ``filter.slot_markup`` filter
        view_renderer: Renders sub-view contributions, ``(view, data) -> markup``
        max_depth: Maximum nesting of views rendered through slots
    """

    def __init__(self,
                 registry: ExtensionRegistry,
                 hooks: Optional[HookRegistry] = None,
                 view_renderer: Optional[ViewRenderer] = None,
                 max_depth: int = 8):
        self.registry = registry
        self.hooks = hooks or registry.hooks
        self.view_renderer = view_renderer
        self.max_depth = max_depth
        self._local = threading.local()

    # Current view stack

    def _stack(self) -> List[str]:
        stack = getattr(self._local, "stack", None)
        if stack is None:
            stack = self._local.stack = []
        return stack

    @contextmanager
    def rendering(self, view: str):
        """Mark view as the one currently being rendered on this thread."""
        stack = self._stack()
        stack.append(view)
        try:
            yield view
        finally:
            stack.pop()

    @property
    def current_view(self) -> Optional[str]:
        stack = self._stack()
        return stack[-1] if stack else None

    @property
    def depth(self) -> int:
        return len(self._stack())

    # Queries

    def has_slot(self, view: str, slot: str) -> bool:
        return self.registry.has_slot(view, slot)

    def slot_count(self, view: str, slot: str) -> int:
        return self.registry.slot_count(view, slot)

    def slot_names(self, view: str) -> List[str]:
        return sorted(self.registry.slots_for(view))

    def has_current_slot(self, slot: str) -> bool:
        view = self.current_view
        return bool(view) and self.has_slot(view, slot)

    # Rendering

    def render(self, view: str, slot: str, context: Optional[Mapping[str, Any]] = None) -> str:
        """
        Render every contribution to a slot, concatenated in priority order.

        Unknown slots render as an empty string. A contribution that fails is
        logged and left out.
        """
        contributions = self.registry.slot_contents(view, slot)
        if not contributions:
            return ""

        context = dict(context or {})
        parts = []
        for contribution in contributions:
            rendered = self._render_contribution(view, contribution, context)
            if rendered:
                parts.append(rendered)

        markup = "".join(parts)
        return self.hooks.trigger_filter('filter.slot_markup', markup, view, slot, context)

    def render_current(self, slot: str, context: Optional[Mapping[str, Any]] = None) -> str:
        """Render a slot of the view currently being rendered on this thread."""
        view = self.current_view
        if not view:
            logger.debug(f"Slot {slot} requested outside of any view render")
            return ""
        return self.render(view, slot, context)

    def _render_contribution(self, view: str, contribution: SlotContribution,
                             context: Dict[str, Any]) -> str:
        content = contribution.content
        where = f"{view}:{contribution.slot_name}"

        if isinstance(content, Literal):
            return content.markup

        if isinstance(content, Callback):
            try:
                result = content.func(context)
            except Exception as e:
                logger.error(f"Slot callback for {where} (owner: {contribution.owner}) failed: {e}")
                return ""
            if not isinstance(result, str):
                if result is not None:
                    logger.warning(f"Slot callback for {where} returned {type(result).__name__}, ignoring")
                return ""
            return result

        if isinstance(content, SubView):
            return self._render_sub_view(where, content, context)

        logger.warning(f"Unknown slot content for {where}: {content!r}")
        return ""

    def _render_sub_view(self, where: str, content: SubView, context: Dict[str, Any]) -> str:
        if self.view_renderer is None:
            logger.warning(f"No view renderer configured, cannot render {content.view_name} into {where}")
            return ""
        if self.depth >= self.max_depth:
            logger.error(f"Slot nesting deeper than {self.max_depth}, not rendering {content.view_name} into {where}")
            return ""
        if content.view_name in self._stack():
            logger.error(f"View {content.view_name} is already being rendered, not nesting it into {where}")
            return ""

        data = dict(context)
        data.update(content.data)
        try:
            return self.view_renderer(content.view_name, data)
        except Exception as e:
            logger.error(f"Rendering {content.view_name} into {where} failed: {e}")
            return ""
