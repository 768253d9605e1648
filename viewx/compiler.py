"""
View compiler: applies registered extensions to rendered view markup.

Compilation never raises. A selector that does not compile, a payload that
cannot be parsed, or an operation that fails is logged and skipped; a base
markup that cannot be parsed at all is returned unchanged.
"""

import logging
import time
from dataclasses import dataclass, field, asdict
from functools import lru_cache
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .cache import CompiledViewCache, CompiledViewCacheEntry
from .db.models import compute_hash
from .exceptions import ParseFailure, SelectorSyntaxError
from .extensions.models import Extension
from .extensions.registry import ExtensionRegistry
from .markup.operations import Operation, PatchOperator
from .markup.selectors import match
from .markup.tree import Fragment, MarkupTree
from .plugins.hooks import HookRegistry

logger = logging.getLogger(__name__)

PayloadRenderer = Callable[[str, Dict[str, Any]], str]


@dataclass
class CompileLogEntry:
    """What happened when one extension was applied."""
    view: str
    extension_id: Optional[str]
    operation: Optional[str]
    selector: Optional[str]
    matched: int = 0
    changed: int = 0
    level: str = "info"
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CompileResult:
    """
    Outcome of compiling one view.

    Attributes:
        view: Compiled view name
        markup: Output markup (the base markup when replaced or unchanged)
        replacement: Name of the view to render instead, if one is registered
        log: One entry per considered extension
        applied_extension_ids: Extensions that changed the tree
        duration_ms: Wall time spent compiling
        cached: Whether the output came from the compiled-view cache
    """
    view: str
    markup: str
    replacement: Optional[str] = None
    log: List[CompileLogEntry] = field(default_factory=list)
    applied_extension_ids: List[str] = field(default_factory=list)
    duration_ms: float = 0.0
    cached: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.applied_extension_ids)


def _context_dependent(extensions: Sequence[Extension]) -> bool:
    return any(ext.conditions or (ext.view and ext.payload is None) for ext in extensions)


class ViewCompiler:
    """
    Compiles views by applying the extensions registered for them.

    Args:
        registry: Source of extensions and replacements
        cache: Compiled-view cache (None disables caching)
        hooks: Hook registry for filters and events (defaults to the registry's)
        strict_xml_first: Try XML before lenient HTML when parsing
        parse_cache_size: Number of parsed source trees kept for reuse
        log_to_cache: Store compile logs on cache entries
        payload_renderer: Renders sub-view payloads, ``(view, data) -> markup``
    """

    def __init__(self,
                 registry: ExtensionRegistry,
                 cache: Optional[CompiledViewCache] = None,
                 hooks: Optional[HookRegistry] = None,
                 strict_xml_first: bool = True,
                 parse_cache_size: int = 128,
                 log_to_cache: bool = True,
                 payload_renderer: Optional[PayloadRenderer] = None):
        self.registry = registry
        self.cache = cache
        self.hooks = hooks or registry.hooks
        self.strict_xml_first = strict_xml_first
        self.log_to_cache = log_to_cache
        self.payload_renderer = payload_renderer
        self.operator = PatchOperator(strict_xml_first=strict_xml_first)
        self._parse_source = lru_cache(maxsize=parse_cache_size)(self._parse)

        if self.cache is not None:
            self.registry.on_change(self.cache.invalidate)

    def _parse(self, markup: str) -> MarkupTree:
        return MarkupTree.parse(markup, strict_first=self.strict_xml_first)

    def working_copy(self, markup: str) -> MarkupTree:
        """Parse (or reuse a parsed) source tree and return a private copy of it."""
        return self._parse_source(markup).copy()

    def source_hash(self, view: str, base_markup: str,
                    archetype: Optional[Mapping[str, Any]] = None,
                    context: Optional[Mapping[str, Any]] = None) -> str:
        return compute_hash(view, archetype or {}, base_markup, context or {})

    def compile(self,
                view: str,
                base_markup: str,
                context: Optional[Mapping[str, Any]] = None,
                archetype: Optional[Mapping[str, Any]] = None,
                cacheable: bool = True) -> CompileResult:
        """
        Apply all registered extensions of a view to its rendered markup.

        Args:
            view: Dotted view name
            base_markup: Markup rendered by the host
            context: Render context, used by extension conditions and sub-views
            archetype: Resolved view definition, part of the cache key
            cacheable: Whether the output may be cached

        Returns:
            CompileResult
        """
        started = time.perf_counter()

        replacement = self.registry.replacement_for(view)
        if replacement:
            logger.debug(f"View {view} is replaced by {replacement}")
            return CompileResult(view=view, markup=base_markup, replacement=replacement)

        extensions = self.registry.all_for(view)
        if not extensions:
            markup = self.hooks.trigger_filter('filter.compiled_markup', base_markup, view, context)
            return CompileResult(view=view, markup=markup, duration_ms=_elapsed(started))

        source_hash = None
        use_cache = cacheable and self.cache is not None and self.cache.enabled
        if use_cache:
            source_hash = self.source_hash(
                view, base_markup, archetype,
                context if _context_dependent(extensions) else None,
            )
            entry = self.cache.get(view, source_hash)
            if entry is not None:
                logger.debug(f"Compiled view cache hit for {view}")
                return CompileResult(
                    view=view,
                    markup=entry.output_markup,
                    log=[CompileLogEntry(**item) for item in entry.compile_log],
                    applied_extension_ids=list(entry.applied_extension_ids),
                    duration_ms=_elapsed(started),
                    cached=True,
                )

        log: List[CompileLogEntry] = []
        markup, applied = self._apply(view, base_markup, extensions, context, log)
        markup = self.hooks.trigger_filter('filter.compiled_markup', markup, view, context)

        result = CompileResult(
            view=view,
            markup=markup,
            log=log,
            applied_extension_ids=applied,
            duration_ms=_elapsed(started),
        )

        if use_cache and not any(entry.level == "error" and entry.extension_id is None for entry in log):
            self.cache.put(CompiledViewCacheEntry(
                view_name=view,
                source_hash=source_hash,
                output_markup=markup,
                applied_extension_ids=list(applied),
                compile_log=[entry.to_dict() for entry in log] if self.log_to_cache else [],
                compile_duration_ms=result.duration_ms,
            ))

        logger.debug(
            f"Compiled {view}: {len(applied)}/{len(extensions)} extensions applied "
            f"in {result.duration_ms:.2f}ms"
        )
        self.hooks.trigger('view.compiled', view, result)
        return result

    def apply_extensions(self,
                         markup: str,
                         extensions: Sequence[Extension],
                         context: Optional[Mapping[str, Any]] = None,
                         view: str = "<inline>") -> str:
        """Apply an explicit list of extensions, in the given order, to markup."""
        output, _ = self._apply(view, markup, extensions, context, [])
        return output

    def _apply(self, view: str, base_markup: str, extensions: Sequence[Extension],
               context: Optional[Mapping[str, Any]], log: List[CompileLogEntry]):
        try:
            tree = self.working_copy(base_markup)
        except ParseFailure as e:
            logger.error(f"Could not parse markup of {view}, returning it unchanged: {e}")
            log.append(CompileLogEntry(view, None, None, None, level="error", reason=str(e)))
            return base_markup, []

        applied = []
        for extension in extensions:
            entry = self._apply_one(tree, view, extension, context)
            log.append(entry)
            if entry.changed:
                applied.append(extension.id)

        if not applied:
            # Nothing changed: hand back the input byte for byte.
            return base_markup, applied
        return tree.serialize(), applied

    def _apply_one(self, tree: MarkupTree, view: str, extension: Extension,
                   context: Optional[Mapping[str, Any]]) -> CompileLogEntry:
        entry = CompileLogEntry(
            view=view,
            extension_id=extension.id,
            operation=extension.operation.value,
            selector=extension.selector,
        )

        if not extension.conditions_met(context):
            entry.level = "debug"
            entry.reason = "conditions not met"
            return entry

        try:
            nodes = match(tree, extension.selector)
        except SelectorSyntaxError as e:
            logger.warning(f"Skipping extension {extension.id} on {view}: {e}")
            entry.level = "warning"
            entry.reason = str(e)
            return entry

        entry.matched = len(nodes)
        if not nodes:
            logger.info(f"Extension {extension.id} on {view} matched no nodes: {extension.selector}")
            entry.reason = "no match"
            return entry

        fragment = self._payload(extension, context)
        if fragment is None:
            entry.level = "warning"
            entry.reason = "payload could not be rendered"
            return entry

        for node in nodes:
            if not tree.contains(node):
                # Removed or replaced by an earlier node of this same extension
                continue
            try:
                if self.operator.apply(node, extension.operation, fragment, extension.attribute_changes):
                    entry.changed += 1
            except Exception as e:
                logger.error(f"Extension {extension.id} failed on {view}: {e}")
                entry.level = "error"
                entry.reason = str(e)

        if not entry.changed and entry.level == "info":
            entry.reason = "no-op"
            logger.info(f"Extension {extension.id} on {view} made no changes ({extension.describe()})")
        return entry

    def _payload(self, extension: Extension, context: Optional[Mapping[str, Any]]) -> Optional[Fragment]:
        """Parse the extension's payload, rendering its sub-view first if needed."""
        if not extension.operation.needs_payload and extension.operation != Operation.REPLACE:
            return Fragment()

        payload = extension.payload
        if payload is None and extension.view:
            if self.payload_renderer is None:
                logger.warning(f"No renderer for sub-view {extension.view} of extension {extension.id}")
                return None
            data = dict(context or {})
            data.update(extension.view_data)
            try:
                payload = self.payload_renderer(extension.view, data)
            except Exception as e:
                logger.error(f"Rendering sub-view {extension.view} for {extension.id} failed: {e}")
                return None

        return self.operator.parse_payload(payload)

    def clear_parse_cache(self) -> None:
        self._parse_source.cache_clear()

    def stats(self) -> Dict[str, Any]:
        info = self._parse_source.cache_info()
        return {
            "parse_cache_hits": info.hits,
            "parse_cache_misses": info.misses,
            "parse_cache_size": info.currsize,
        }


def _elapsed(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0
