"""
Plugin registry and discovery for viewx.

Plugins are registered (or discovered through the ``viewx.plugins`` entry
point group), then activated against an engine. Deactivation purges every
registration the plugin owns.
"""

import importlib.metadata
import inspect
import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from .base import ViewPlugin

if TYPE_CHECKING:
    from ..engine import ViewEngine

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "viewx.plugins"


class PluginRegistry:
    """Central registry of plugins for one engine."""

    def __init__(self, engine: 'ViewEngine'):
        self.engine = engine
        self._plugins: Dict[str, ViewPlugin] = {}
        self._active: List[str] = []
        self._config: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()

    def discover(self, group: str = ENTRY_POINT_GROUP) -> List[str]:
        """
        Register plugins advertised by installed packages.

        Returns:
            Names of the plugins found
        """
        found = []
        for ep in importlib.metadata.entry_points().select(group=group):
            try:
                plugin_class = ep.load()
                if not self._is_valid_plugin_class(plugin_class):
                    logger.warning(f"Entry point {ep.name} is not a ViewPlugin subclass")
                    continue
                plugin = plugin_class()
                self.register(plugin)
                found.append(plugin.name)
                logger.info(f"Loaded plugin from entry point: {ep.name}")
            except Exception as e:
                logger.error(f"Failed to load plugin {ep.name}: {e}")

        logger.info(f"Discovered {len(found)} plugins")
        return found

    def _is_valid_plugin_class(self, obj: Any) -> bool:
        return (
            inspect.isclass(obj) and
            issubclass(obj, ViewPlugin) and
            obj is not ViewPlugin and
            not inspect.isabstract(obj)
        )

    def register(self, plugin: ViewPlugin) -> None:
        """
        Register a plugin instance (inactive until activated).

        Raises:
            ValueError: If an active plugin with the same name exists
        """
        name = plugin.name
        with self._lock:
            if name in self._active:
                raise ValueError(f"Plugin {name} is active; deactivate it before replacing")
            if name in self._plugins:
                logger.warning(f"Plugin {name} already registered, replacing")
            self._plugins[name] = plugin
        logger.info(f"Registered plugin: {name}")

    def unregister(self, name: str) -> bool:
        """Deactivate (if needed) and forget a plugin."""
        if name not in self._plugins:
            return False
        if name in self._active:
            self.deactivate(name)
        with self._lock:
            del self._plugins[name]
        logger.info(f"Unregistered plugin: {name}")
        return True

    def configure(self, name: str, config: Dict[str, Any]) -> bool:
        """
        Configure a plugin.

        Returns:
            True if configuration was accepted
        """
        plugin = self._plugins.get(name)
        if not plugin:
            logger.error(f"Plugin {name} not found")
            return False

        try:
            plugin.initialize(config)
            if not plugin.validate_config():
                logger.error(f"Invalid configuration for plugin {name}")
                return False
        except Exception as e:
            logger.error(f"Failed to configure plugin {name}: {e}")
            return False

        self._config[name] = dict(config)
        logger.info(f"Configured plugin: {name}")
        return True

    def activate(self, name: str) -> bool:
        """
        Activate a plugin: it makes its registrations against the engine.

        A plugin whose ``register()`` fails is rolled back (its partial
        registrations are purged) and stays inactive.

        Raises:
            KeyError: If the plugin is unknown
            ValueError: If a required plugin is not active
        """
        plugin = self._plugins.get(name)
        if plugin is None:
            raise KeyError(f"Plugin {name} not found")
        if name in self._active:
            return False

        missing = [required for required in plugin.requires if required not in self._active]
        if missing:
            raise ValueError(f"Plugin {name} requires inactive plugins: {', '.join(missing)}")

        try:
            plugin.activate(self.engine)
        except Exception as e:
            logger.error(f"Activating plugin {name} failed, rolling back: {e}")
            self.engine.remove_all_registrations_by_owner(name)
            plugin.engine = None
            raise

        with self._lock:
            self._active.append(name)
        logger.info(f"Activated plugin: {name}")
        self.engine.hooks.trigger('plugin.activated', plugin)
        return True

    def activate_all(self) -> List[str]:
        """Activate every registered plugin, dependencies first."""
        activated = []
        pending = [name for name in self._plugins if name not in self._active]
        while pending:
            ready = [
                name for name in pending
                if all(required in self._active for required in self._plugins[name].requires)
            ]
            if not ready:
                logger.error(f"Unresolvable plugin dependencies: {', '.join(pending)}")
                break
            for name in ready:
                self.activate(name)
                activated.append(name)
                pending.remove(name)
        return activated

    def deactivate(self, name: str) -> Dict[str, int]:
        """
        Deactivate a plugin and purge its registrations.

        Returns:
            Counts of removed registrations
        """
        plugin = self._plugins.get(name)
        if plugin is None or name not in self._active:
            return {}

        dependents = [
            other for other in self._active
            if other != name and name in self._plugins[other].requires
        ]
        for dependent in dependents:
            self.deactivate(dependent)

        try:
            counts = plugin.deactivate()
        except Exception as e:
            logger.error(f"Error during plugin deactivation: {e}")
            counts = self.engine.remove_all_registrations_by_owner(name)

        with self._lock:
            self._active.remove(name)
        logger.info(f"Deactivated plugin: {name}")
        self.engine.hooks.trigger('plugin.deactivated', plugin, counts)
        return counts

    def deactivate_all(self) -> None:
        for name in reversed(list(self._active)):
            self.deactivate(name)

    def get(self, name: str) -> Optional[ViewPlugin]:
        return self._plugins.get(name)

    def is_active(self, name: str) -> bool:
        return name in self._active

    def list_plugins(self) -> List[str]:
        return sorted(self._plugins)

    def active_plugins(self) -> List[str]:
        return list(self._active)

    def get_plugin_info(self, name: str) -> Optional[Dict[str, Any]]:
        """
        Get information about a plugin.

        Returns:
            Plugin information dictionary
        """
        plugin = self._plugins.get(name)
        if not plugin:
            return None

        return {
            'name': plugin.name,
            'version': plugin.version,
            'description': plugin.description,
            'author': plugin.author,
            'active': name in self._active,
            'configured': name in self._config,
            'requires': plugin.requires,
        }

    def plugin_class(self, name: str) -> Optional[Type[ViewPlugin]]:
        plugin = self._plugins.get(name)
        return type(plugin) if plugin else None
