"""
Plugin system for viewx.

Plugins subclass ViewPlugin and make their registrations in ``register()``.
Engine events and filter points are exposed through each engine's
HookRegistry.
"""

from .base import ViewPlugin
from .registry import PluginRegistry, ENTRY_POINT_GROUP
from .hooks import HookRegistry, EVENTS

__all__ = [
    'ViewPlugin',
    'PluginRegistry',
    'ENTRY_POINT_GROUP',
    'HookRegistry',
    'EVENTS',
]
