"""
Default render pipeline: Jinja2 templates.

A dotted view name maps to a template path (``orders.index`` ->
``orders/index.html``). Templates get helpers for slots and for marking
extension points that plugins can target with selectors.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from jinja2 import (
    BaseLoader, Environment, FileSystemLoader, TemplateNotFound, pass_context, select_autoescape
)
from markupsafe import Markup
from slugify import slugify

from .slots import SlotRenderer

logger = logging.getLogger(__name__)


class JinjaViewRenderer:
    """
    Renders views from Jinja2 templates.

    Template globals:
        slot(name, **data): rendered contributions to a slot of the current view
        has_slot(name): whether the slot has contributions
        slot_count(name): number of contributions
        extension_point(name): empty marker element plugins can target
        extension_area(name): wraps a ``{% call %}`` block in a named area
    """

    def __init__(self,
                 template_dir: Optional[Union[str, Path]] = None,
                 slots: Optional[SlotRenderer] = None,
                 template_suffix: str = ".html",
                 loader: Optional[BaseLoader] = None):
        if loader is None:
            if template_dir is None:
                template_dir = Path.cwd() / "templates"
            loader = FileSystemLoader(str(template_dir))

        self.slots = slots
        self.template_suffix = template_suffix
        self.env = Environment(
            loader=loader,
            autoescape=select_autoescape(['html', 'xml']),
            trim_blocks=True,
            lstrip_blocks=True
        )

        self.env.filters['slugify'] = slugify
        self.env.globals['slot'] = self._slot
        self.env.globals['has_slot'] = self._has_slot
        self.env.globals['slot_count'] = self._slot_count
        self.env.globals['extension_point'] = extension_point
        self.env.globals['extension_area'] = extension_area

    def template_name(self, view: str) -> str:
        """Map a dotted view name to a template path."""
        if view.endswith(self.template_suffix):
            return view
        return view.replace(".", "/") + self.template_suffix

    def has_view(self, view: str) -> bool:
        try:
            self.env.get_template(self.template_name(view))
        except TemplateNotFound:
            return False
        return True

    def render(self, view: str, context: Optional[Mapping[str, Any]] = None) -> str:
        """
        Render a view's template.

        Raises:
            jinja2.TemplateNotFound: If there is no template for the view
        """
        template = self.env.get_template(self.template_name(view))
        context = dict(context or {})
        if self.slots is None:
            return template.render(context)
        with self.slots.rendering(view):
            return template.render(context)

    @pass_context
    def _slot(self, ctx, name: str, **data) -> Markup:
        if self.slots is None:
            return Markup("")
        context: Dict[str, Any] = dict(ctx.get_all())
        context.update(data)
        return Markup(self.slots.render_current(name, context))

    def _has_slot(self, name: str) -> bool:
        return self.slots is not None and self.slots.has_current_slot(name)

    def _slot_count(self, name: str) -> int:
        if self.slots is None or not self.slots.current_view:
            return 0
        return self.slots.slot_count(self.slots.current_view, name)


def extension_point(name: str) -> Markup:
    return Markup('<div data-extension-point="{}"></div>').format(name)


def extension_area(name: str, caller=None) -> Markup:
    body = caller() if caller is not None else ""
    return Markup('<div data-extension-area="{}">').format(name) + Markup(body) + Markup("</div>")


__all__ = ['JinjaViewRenderer', 'extension_point', 'extension_area']
