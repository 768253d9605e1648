"""
The viewx engine: one object wiring the registry, compiler, slot renderer,
view type catalogue and view definition store together.

Usage:
    engine = ViewEngine.open("views.db")
    engine.register_extension("orders.index", {
        "selector": "//*[@id='header']",
        "operation": "insert-after",
        "content": "<p>Hello</p>",
    }, owner="greeter")
    html = engine.compile_view("orders.index", '<div id="header"></div>')
    engine.close()
"""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from sqlalchemy.orm import Session, sessionmaker

from .cache import CompiledViewCache, DatabaseCacheBackend, MemoryCacheBackend
from .compiler import CompileResult, ViewCompiler
from .config import ViewxConfig
from .db.models import ViewDefinition
from .db.session import close_db, create_db_engine, get_session, init_db
from .exceptions import ViewDefinitionNotFound, ViewxError
from .extensions.models import Extension, Replacement, SlotContribution
from .extensions.registry import ExtensionRegistry
from .plugins.hooks import HookRegistry
from .plugins.registry import PluginRegistry
from .rendering import JinjaViewRenderer
from .slots import SlotRenderer
from .views.catalogue import ViewTypeCatalogue
from .views.store import ViewDefinitionStore
from .views.types import ViewType

logger = logging.getLogger(__name__)


class ViewEngine:
    """
    Public registration and query API.

    Args:
        session: SQLAlchemy session for persisted definitions and cache
            entries; a private in-memory database is created when omitted
        config: Engine configuration
        field_provider: Supplies entity fields for generated default views
        renderer: Render pipeline with ``render(view, context)``; a Jinja2
            renderer is built when ``config.render.template_dir`` is set
        hooks: Hook registry shared by all components
    """

    def __init__(self,
                 session: Optional[Session] = None,
                 config: Optional[ViewxConfig] = None,
                 field_provider=None,
                 renderer=None,
                 hooks: Optional[HookRegistry] = None):
        self.config = config or ViewxConfig()
        self.hooks = hooks or HookRegistry()

        self._db_engine = None
        if session is None:
            self._db_engine = create_db_engine(None)
            session = sessionmaker(bind=self._db_engine)()
        self.session = session
        self._owns_global_db = False

        self._admin_lock = threading.RLock()
        self._local = threading.local()

        self.registry = ExtensionRegistry(self.hooks)
        self.catalogue = ViewTypeCatalogue(self.hooks)

        if self.config.cache.backend == "database":
            backend = DatabaseCacheBackend(self.session)
        else:
            backend = MemoryCacheBackend()
        self.cache = CompiledViewCache(backend, enabled=self.config.cache.enabled)

        self.compiler = ViewCompiler(
            self.registry,
            cache=self.cache,
            hooks=self.hooks,
            strict_xml_first=self.config.compiler.strict_xml_first,
            parse_cache_size=self.config.compiler.parse_cache_size,
            log_to_cache=self.config.compiler.log_to_cache,
            payload_renderer=self._render_nested,
        )
        self.slots = SlotRenderer(
            self.registry,
            hooks=self.hooks,
            view_renderer=self._render_nested,
            max_depth=self.config.slots.max_depth,
        )
        self.store = ViewDefinitionStore(
            self.session,
            self.catalogue,
            field_provider=field_provider,
            hooks=self.hooks,
            default_priority=self.config.store.default_priority,
            cache_resolved=self.config.store.cache_resolved,
        )

        if renderer is None and self.config.render.template_dir:
            renderer = JinjaViewRenderer(
                self.config.render.template_dir,
                slots=self.slots,
                template_suffix=self.config.render.template_suffix,
            )
        self.renderer = renderer
        self.plugins = PluginRegistry(self)

    @classmethod
    def open(cls,
             db_path: Optional[Union[str, Path]] = None,
             config: Optional[ViewxConfig] = None,
             echo: bool = False,
             **kwargs) -> 'ViewEngine':
        """
        Open an engine backed by a SQLite database.

        Args:
            db_path: Database file; falls back to ``config.store.database_path``,
                then to an in-memory database
            config: Engine configuration
            echo: If True, log all SQL statements

        Returns:
            ViewEngine instance
        """
        config = config or ViewxConfig()
        db_path = db_path or config.store.database_path
        init_db(db_path, echo=echo)
        engine = cls(session=get_session(), config=config, **kwargs)
        engine._owns_global_db = True

        logger.info(f"Opened view engine at {db_path or ':memory:'}")
        return engine

    def close(self) -> None:
        """Deactivate plugins and release the database."""
        self.plugins.deactivate_all()
        self.hooks.trigger('engine.closed')
        if self.session:
            self.session.close()
        if self._owns_global_db:
            close_db()
        if self._db_engine is not None:
            self._db_engine.dispose()
            self._db_engine = None
        logger.info("Closed view engine")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # Registration

    def register_extension(self, view: str, modification: Mapping[str, Any],
                           owner: Optional[str] = None, priority: Optional[int] = None) -> Extension:
        """Register one structural patch for a view."""
        return self.registry.register(view, modification, owner=owner, priority=priority)

    def register_extensions(self, view: str, modifications: Sequence[Mapping[str, Any]],
                            owner: Optional[str] = None, priority: int = 10) -> List[Extension]:
        """Register several patches; each gets ``priority + index`` unless it sets one."""
        return self.registry.register_bulk(view, modifications, owner=owner, priority=priority)

    def register_slot_content(self, view: str, slot: str, content: Any,
                              owner: Optional[str] = None, priority: int = 10) -> SlotContribution:
        return self.registry.add_to_slot(view, slot, content, owner=owner, priority=priority)

    def register_replacement(self, view: str, replacement: str,
                             owner: Optional[str] = None, priority: int = 10) -> Replacement:
        return self.registry.replace(view, replacement, owner=owner, priority=priority)

    def register_view_type(self, descriptor: ViewType, owner: Optional[str] = None) -> ViewType:
        return self.catalogue.register(descriptor, owner=owner)

    def register_view_definition(self, entity: str, view_type: str, archetype: Mapping[str, Any],
                                 owner: Optional[str] = None, inherit_from: Optional[str] = None,
                                 **kwargs) -> ViewDefinition:
        return self.store.register_view(
            entity, view_type, archetype, owner=owner, inherit_from=inherit_from, **kwargs
        )

    def extend_view_definition(self, parent_slug: str, modifications: List[Mapping[str, Any]],
                               owner: Optional[str] = None) -> ViewDefinition:
        return self.store.extend_view(parent_slug, modifications, owner=owner)

    def remove_all_registrations_by_owner(self, owner: str) -> Dict[str, int]:
        """
        Remove every extension, slot contribution, replacement and view type
        registered by an owner. Other owners' registrations are untouched.

        Returns:
            Counts per kind
        """
        with self._admin_lock:
            counts = self.registry.remove_all_by_owner(owner)
            counts["view_types"] = self.catalogue.remove_by_owner(owner)
        return counts

    # Queries

    def get_view(self, entity: str, view_type: str, slug: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Resolved view definition (or generated default) for an entity."""
        return self.store.get_view(entity, view_type, slug)

    def compile(self, view: str, base_markup: str, context: Optional[Mapping[str, Any]] = None,
                archetype: Optional[Mapping[str, Any]] = None,
                cacheable: Optional[bool] = None) -> CompileResult:
        """
        Compile a view and return the full result, log included.

        When a view definition's slug equals the view name, its resolved
        archetype is part of the cache key and its ``cacheable`` flag decides
        whether the output is stored. Explicit arguments take precedence.
        """
        definition = self.store.get(view)
        if definition is not None:
            if archetype is None:
                archetype = self.store.resolve(definition)
            if cacheable is None:
                cacheable = definition.cacheable
        return self.compiler.compile(
            view, base_markup, context,
            archetype=archetype,
            cacheable=True if cacheable is None else cacheable,
        )

    def compile_definition(self, slug: str, base_markup: str,
                           context: Optional[Mapping[str, Any]] = None) -> CompileResult:
        """
        Compile the markup rendered for a stored view definition.

        Raises:
            ViewDefinitionNotFound: If no definition has the slug
        """
        if self.store.get(slug) is None:
            raise ViewDefinitionNotFound(slug)
        return self.compile(slug, base_markup, context)

    def compile_view(self, view: str, base_markup: str,
                     context: Optional[Mapping[str, Any]] = None) -> str:
        """
        Apply a view's extensions to its rendered markup.

        Never raises: on any failure the base markup is returned. When the view
        is replaced, the base markup is returned unchanged.
        """
        try:
            result = self.compile(view, base_markup, context)
        except Exception as e:
            logger.error(f"Compiling {view} failed, returning base markup: {e}", exc_info=True)
            return base_markup
        return result.markup

    def resolve_replacement(self, view: str) -> str:
        """Follow replacements from a view to the one that actually renders."""
        seen = [view]
        current = view
        while True:
            replacement = self.registry.replacement_for(current)
            if not replacement:
                return current
            if replacement in seen:
                logger.error(f"Replacement loop: {' -> '.join(seen + [replacement])}")
                return current
            seen.append(replacement)
            current = replacement

    def render_view(self, view: str, context: Optional[Mapping[str, Any]] = None) -> str:
        """
        Render a view through the render pipeline, then compile it.

        Replacements are followed first.

        Raises:
            ViewxError: If no renderer is configured
        """
        if self.renderer is None:
            raise ViewxError("No renderer configured; set render.template_dir or pass a renderer")

        target = self.resolve_replacement(view)
        context = dict(context or {})
        base_markup = self.renderer.render(target, context)
        return self.compile_view(target, base_markup, context)

    def _render_nested(self, view: str, data: Dict[str, Any]) -> str:
        """Render a sub-view for a slot or an extension payload."""
        stack = getattr(self._local, "stack", None)
        if stack is None:
            stack = self._local.stack = []
        if view in stack or len(stack) >= self.config.slots.max_depth:
            logger.error(f"Not rendering {view}: nested render limit reached ({' > '.join(stack)})")
            return ""
        stack.append(view)
        try:
            return self.render_view(view, data)
        finally:
            stack.pop()

    def render_slot(self, view: str, slot: str, data: Optional[Mapping[str, Any]] = None) -> str:
        return self.slots.render(view, slot, data)

    def has_slot(self, view: str, slot: str) -> bool:
        return self.slots.has_slot(view, slot)

    def slot_count(self, view: str, slot: str) -> int:
        return self.slots.slot_count(view, slot)

    def clear_caches(self) -> None:
        """Drop compiled output, parsed sources and resolved definitions."""
        with self._admin_lock:
            self.cache.clear()
            self.compiler.clear_parse_cache()
            self.store.clear_cache()

    def stats(self) -> Dict[str, Any]:
        """Engine statistics."""
        return {
            "registry": self.registry.stats(),
            "cache": self.cache.stats(),
            "compiler": self.compiler.stats(),
            "store": self.store.stats(),
            "view_types": len(self.catalogue),
            "plugins": {
                "registered": self.plugins.list_plugins(),
                "active": self.plugins.active_plugins(),
            },
            "hooks": self.hooks.list_hooks(),
        }
