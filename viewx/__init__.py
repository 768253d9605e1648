"""
viewx - view extension and composition engine.

Plugins patch the rendered markup of host views with XPath-addressed
extensions, contribute content to named slots, replace whole views, and
register inheritable view definitions.

Main API:
    from viewx import ViewEngine

    engine = ViewEngine.open("views.db")

    # Patch a view
    engine.register_extension("orders.index", {
        "selector": "//*[@id='header']",
        "operation": "insert-after",
        "content": "<p>Hello</p>",
    }, owner="greeter")
    html = engine.compile_view("orders.index", rendered_markup)

    # Fill a slot
    engine.register_slot_content("orders.index", "sidebar", "<p>Promo</p>", owner="greeter")
    engine.render_slot("orders.index", "sidebar")

    # Remove everything a plugin registered
    engine.remove_all_registrations_by_owner("greeter")

    engine.close()
"""

from .engine import ViewEngine
from .exceptions import (
    ViewxError, SelectorSyntaxError, ParseFailure, RegistrationError, CycleDetected,
    UnknownViewType, DuplicateSystemType, InvalidViewDefinition, ViewDefinitionNotFound,
    InvalidExtension,
)
from .plugins import ViewPlugin

__version__ = "0.1.0"
__all__ = [
    "ViewEngine",
    "ViewPlugin",
    "ViewxError",
    "SelectorSyntaxError",
    "ParseFailure",
    "RegistrationError",
    "CycleDetected",
    "UnknownViewType",
    "DuplicateSystemType",
    "InvalidViewDefinition",
    "ViewDefinitionNotFound",
    "InvalidExtension",
]
