"""
View definition store and inheritance resolver.

Definitions are persisted with SQLAlchemy and upserted by slug. Reads go
through a resolving cache: the inheritance chain is flattened root-first and,
for form views, field-less sections are completed from the generated default.
"""

import copy
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import yaml
from slugify import slugify
from sqlalchemy.orm import Session

from ..db.models import ViewDefinition
from ..db.session import session_scope
from ..exceptions import (
    CycleDetected, InvalidViewDefinition, RegistrationError, UnknownViewType, ViewDefinitionNotFound,
)
from ..plugins.hooks import HookRegistry
from .archetype import INHERIT_KEY, merge_archetypes, merge_generated_fields, needs_field_merge
from .catalogue import ViewTypeCatalogue
from .types import ValidationIssue, title

logger = logging.getLogger(__name__)

# Keys of a registration document that are columns, not archetype content
_META_KEYS = ("slug", "priority", "cacheable")


class StaticFieldProvider:
    """FieldProvider backed by a plain mapping of entity name to field list."""

    def __init__(self, fields: Optional[Mapping[str, Iterable[Any]]] = None):
        self._fields = {entity: list(items) for entity, items in (fields or {}).items()}

    def fields_for(self, entity: str) -> Optional[List[Any]]:
        return self._fields.get(entity)

    def set_fields(self, entity: str, fields: Iterable[Any]) -> None:
        self._fields[entity] = list(fields)


def _fields_from(provider, entity: str) -> List[Any]:
    if provider is None:
        return []
    if hasattr(provider, "fields_for"):
        return list(provider.fields_for(entity) or [])
    return list(provider(entity) or [])


class ViewDefinitionStore:
    """
    Stores view definitions and resolves their inheritance.

    Args:
        session: SQLAlchemy session
        catalogue: View type catalogue used for validation and defaults
        field_provider: Object with ``fields_for(entity)`` (or a callable)
            supplying entity fields for generated defaults
        hooks: Hook registry for registration events
        default_priority: Priority of definitions that do not set one
        cache_resolved: Keep resolved archetypes in memory
    """

    def __init__(self,
                 session: Session,
                 catalogue: ViewTypeCatalogue,
                 field_provider: Optional[Union[StaticFieldProvider, Callable]] = None,
                 hooks: Optional[HookRegistry] = None,
                 default_priority: int = 16,
                 cache_resolved: bool = True):
        self.session = session
        self.catalogue = catalogue
        self.field_provider = field_provider
        self.hooks = hooks or catalogue.hooks
        self.default_priority = default_priority
        self.cache_resolved = cache_resolved
        # (entity, type, slug) -> (resolved archetype, slugs of its chain)
        self._cache: Dict[Tuple[str, str, Optional[str]], Tuple[Optional[Dict[str, Any]], Tuple[str, ...]]] = {}
        self._lock = threading.RLock()

    # Registration

    def make_slug(self, entity: str, view_type: str, slug: Optional[str] = None,
                  owner: Optional[str] = None) -> str:
        if not slug:
            slug = slugify(f"{entity}_{view_type}", separator="_") or view_type
        if owner and not slug.startswith(f"{owner}_"):
            slug = f"{owner}_{slug}"
        return slug

    def register_view(self,
                      entity: str,
                      view_type: str,
                      archetype: Mapping[str, Any],
                      owner: Optional[str] = None,
                      inherit_from: Optional[str] = None,
                      slug: Optional[str] = None,
                      priority: Optional[int] = None) -> ViewDefinition:
        """
        Register (or update) a view definition.

        Args:
            entity: Entity the view is for (may be empty for standalone types)
            view_type: Name of a catalogued view type
            archetype: Definition document (columns, sections, ...). Its
                ``slug``, ``priority`` and ``cacheable`` keys are used as
                column values.
            owner: Registering plugin slug, prefixed to the slug
            inherit_from: Slug of the parent definition
            slug: Explicit slug, defaults to ``{entity}_{view_type}``
            priority: Lower wins; defaults to the archetype's or the store default

        Returns:
            The stored ViewDefinition

        Raises:
            UnknownViewType: If the view type is not catalogued
            InvalidViewDefinition: If the resolved definition fails validation
            ViewDefinitionNotFound: If the parent does not exist
            CycleDetected: If the parent chain leads back to this definition
        """
        type_descriptor = self.catalogue.get(view_type)
        if type_descriptor is None:
            raise UnknownViewType(view_type)
        if type_descriptor.requires_entity and not entity:
            raise InvalidViewDefinition([ValidationIssue("entity", f"View type '{view_type}' requires an entity")])
        if not isinstance(archetype, Mapping):
            raise RegistrationError(f"Archetype must be a mapping, got {type(archetype).__name__}")

        document = copy.deepcopy(dict(archetype))
        slug = self.make_slug(entity, view_type, slug or document.get("slug"), owner)
        if priority is None:
            priority = document.get("priority", self.default_priority)
        cacheable = bool(document.get("cacheable", True))
        for key in _META_KEYS:
            document.pop(key, None)
        document["type"] = view_type
        document["entity"] = entity

        parent = None
        if inherit_from:
            parent = self.get(inherit_from)
            if parent is None:
                raise ViewDefinitionNotFound(inherit_from)
            self._check_cycle(slug, parent)

        resolved = merge_archetypes(self.resolve(parent), document) if parent is not None else dict(document)
        resolved.pop(INHERIT_KEY, None)
        self._validate(type_descriptor.name, entity, resolved)

        config = copy.deepcopy(type_descriptor.default_config)
        config.update(document.get("config") or {})

        with self._lock, session_scope(self.session) as session:
            definition = session.query(ViewDefinition).filter_by(slug=slug).first()
            if definition is None:
                definition = ViewDefinition(slug=slug)
                session.add(definition)
            definition.name = document.get("name") or f"{title(entity or view_type)} {title(view_type)}"
            definition.entity_name = entity or ""
            definition.view_type = view_type
            definition.priority = int(priority)
            definition.archetype = document
            definition.config = config
            definition.inherit_slug = parent.slug if parent is not None else None
            definition.owner_plugin = owner
            definition.active = True
            definition.cacheable = cacheable
            definition.content_hash = definition.compute_content_hash()

        self._invalidate(entity or "", view_type, slug)
        logger.info(f"Registered view definition {slug} ({entity}.{view_type}, owner: {owner})")
        self.hooks.trigger('view_definition.registered', definition)
        return definition

    def extend_view(self, parent_slug: str, modifications: List[Mapping[str, Any]],
                    owner: Optional[str] = None) -> ViewDefinition:
        """
        Create (or update) a child of a definition carrying only ``_inherit`` modifications.

        The child's slug is ``{parent}_ext`` (owner-prefixed) and its priority
        one more than the parent's.
        """
        parent = self.get(parent_slug)
        if parent is None:
            raise ViewDefinitionNotFound(parent_slug)
        archetype = {
            INHERIT_KEY: list(modifications),
            "name": f"{parent.name} Extension",
        }
        return self.register_view(
            parent.entity_name,
            parent.view_type,
            archetype,
            owner=owner,
            inherit_from=parent.slug,
            slug=f"{parent.slug}_ext",
            priority=parent.priority + 1,
        )

    def _check_cycle(self, slug: str, parent: ViewDefinition) -> None:
        path = [slug]
        seen = {slug}
        current = parent
        while current is not None:
            path.append(current.slug)
            if current.slug in seen:
                raise CycleDetected(path)
            seen.add(current.slug)
            current = self.get(current.inherit_slug) if current.inherit_slug else None

    def _validate(self, view_type: str, entity: str, resolved: Mapping[str, Any]) -> None:
        candidate = dict(resolved)
        if view_type == "form" and needs_field_merge(candidate):
            candidate = merge_generated_fields(candidate, self._generated(entity, view_type) or {})
        issues = self.catalogue.validate(candidate)
        if issues:
            raise InvalidViewDefinition(issues)

    # Queries

    def get(self, slug: Optional[str]) -> Optional[ViewDefinition]:
        if not slug:
            return None
        return self.session.query(ViewDefinition).filter_by(slug=slug).first()

    def all(self, entity: Optional[str] = None, view_type: Optional[str] = None,
            active_only: bool = False) -> List[ViewDefinition]:
        query = self.session.query(ViewDefinition)
        if entity is not None:
            query = query.filter_by(entity_name=entity)
        if view_type is not None:
            query = query.filter_by(view_type=view_type)
        if active_only:
            query = query.filter_by(active=True)
        return query.order_by(ViewDefinition.priority, ViewDefinition.id).all()

    def children(self, slug: str) -> List[ViewDefinition]:
        return self.session.query(ViewDefinition).filter_by(inherit_slug=slug).order_by(ViewDefinition.id).all()

    def chain(self, slug: str) -> List[ViewDefinition]:
        """
        Inheritance chain of a definition, root first.

        Raises:
            ViewDefinitionNotFound: If the slug or an ancestor is missing
            CycleDetected: If the stored chain loops
        """
        chain: List[ViewDefinition] = []
        seen = set()
        current = self.get(slug)
        if current is None:
            raise ViewDefinitionNotFound(slug)
        while current is not None:
            if current.slug in seen:
                raise CycleDetected([d.slug for d in reversed(chain)] + [current.slug])
            seen.add(current.slug)
            chain.append(current)
            if not current.inherit_slug:
                break
            parent = self.get(current.inherit_slug)
            if parent is None:
                raise ViewDefinitionNotFound(current.inherit_slug)
            current = parent
        chain.reverse()
        return chain

    def resolve(self, definition: ViewDefinition) -> Dict[str, Any]:
        """Flatten a definition's inheritance chain into one archetype."""
        resolved: Dict[str, Any] = {}
        for link in self.chain(definition.slug):
            resolved = merge_archetypes(resolved, link.archetype or {})
        resolved.pop(INHERIT_KEY, None)
        resolved["type"] = definition.view_type
        resolved["entity"] = definition.entity_name
        return resolved

    def effective(self, entity: str, view_type: str, slug: Optional[str] = None) -> Optional[ViewDefinition]:
        """
        The definition that wins for an (entity, type) pair.

        Definitions extended by another active definition of the same pair
        are superseded by it; among the rest the lowest priority wins.
        """
        if slug:
            definition = self.get(slug)
            if definition is None or not definition.active:
                return None
            if definition.entity_name != entity or definition.view_type != view_type:
                return None
            return definition

        candidates = self.all(entity, view_type, active_only=True)
        parents = {candidate.inherit_slug for candidate in candidates if candidate.inherit_slug}
        leaves = [candidate for candidate in candidates if candidate.slug not in parents]
        return (leaves or candidates or [None])[0]

    def get_view(self, entity: str, view_type: str, slug: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Resolved archetype for an entity's view.

        Without a stored definition a default is generated from the entity's
        fields. Returns None if the view type is unknown.
        """
        key = (entity, view_type, slug)
        if self.cache_resolved:
            cached = self._cache.get(key)
            if cached is not None:
                return copy.deepcopy(cached[0])

        definition = self.effective(entity, view_type, slug)
        if definition is None:
            resolved = self._generated(entity, view_type)
            chain_slugs: Tuple[str, ...] = ()
        else:
            resolved = self.resolve(definition)
            chain_slugs = tuple(link.slug for link in self.chain(definition.slug))
            if view_type == "form" and needs_field_merge(resolved):
                resolved = merge_generated_fields(resolved, self._generated(entity, view_type) or {})
            resolved["config"] = deep_config(definition.config, resolved.get("config"))

        if self.cache_resolved and resolved is not None:
            with self._lock:
                self._cache[key] = (copy.deepcopy(resolved), chain_slugs)
        return resolved

    def _generated(self, entity: str, view_type: str) -> Optional[Dict[str, Any]]:
        return self.catalogue.generate_default(view_type, entity, _fields_from(self.field_provider, entity))

    # Removal and cache

    def remove_view(self, slug: str) -> bool:
        """
        Delete a definition.

        Raises:
            RegistrationError: If other definitions inherit from it
        """
        definition = self.get(slug)
        if definition is None:
            return False
        children = self.children(slug)
        if children:
            raise RegistrationError(
                f"View definition '{slug}' is inherited by: {', '.join(child.slug for child in children)}"
            )
        entity, view_type = definition.entity_name, definition.view_type
        with self._lock, session_scope(self.session) as session:
            session.delete(definition)
        self._invalidate(entity, view_type, slug)
        logger.info(f"Removed view definition {slug}")
        self.hooks.trigger('view_definition.removed', slug)
        return True

    def remove_by_owner(self, owner: str) -> int:
        """Delete every definition of an owner, children before parents."""
        removed = 0
        pending = self.session.query(ViewDefinition).filter_by(owner_plugin=owner).all()
        while pending:
            progress = False
            for definition in list(pending):
                if not self.children(definition.slug):
                    self.remove_view(definition.slug)
                    pending.remove(definition)
                    removed += 1
                    progress = True
            if not progress:
                logger.warning(
                    f"Kept {len(pending)} definitions of {owner} that other definitions inherit from"
                )
                break
        return removed

    def _invalidate(self, entity: str, view_type: str, slug: str) -> None:
        with self._lock:
            stale = [
                key for key, (_, chain_slugs) in self._cache.items()
                if (key[0], key[1]) == (entity, view_type) or slug in chain_slugs
            ]
            for key in stale:
                del self._cache[key]

    def clear_cache(self) -> None:
        with self._lock:
            self._cache = {}

    # YAML import / export

    def export_yaml(self, slug: Optional[str] = None) -> str:
        """
        Export one definition, or all of them, as YAML.

        Raises:
            ViewDefinitionNotFound: If slug is given and does not exist
        """
        if slug:
            definition = self.get(slug)
            if definition is None:
                raise ViewDefinitionNotFound(slug)
            definitions = [definition]
        else:
            definitions = self._parents_first(self.all())

        documents = [self._export_document(definition) for definition in definitions]
        data = documents[0] if slug else {"views": documents}
        return yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)

    def _export_document(self, definition: ViewDefinition) -> Dict[str, Any]:
        archetype = copy.deepcopy(definition.archetype or {})
        archetype.pop("type", None)
        archetype.pop("entity", None)
        data = {
            'slug': definition.slug,
            'entity': definition.entity_name,
            'type': definition.view_type,
            'priority': definition.priority,
        }
        if definition.inherit_slug:
            data['inherit'] = definition.inherit_slug
        if definition.owner_plugin:
            data['owner'] = definition.owner_plugin
        if not definition.cacheable:
            data['cacheable'] = False
        data['archetype'] = archetype
        return data

    def _parents_first(self, definitions: List[ViewDefinition]) -> List[ViewDefinition]:
        ordered: List[ViewDefinition] = []
        placed = set()
        remaining = list(definitions)
        while remaining:
            ready = [d for d in remaining if not d.inherit_slug or d.inherit_slug in placed
                     or d.inherit_slug not in {r.slug for r in remaining}]
            if not ready:
                ready = remaining[:1]
            for definition in ready:
                ordered.append(definition)
                placed.add(definition.slug)
                remaining.remove(definition)
        return ordered

    def import_yaml(self, yaml_content: str) -> List[ViewDefinition]:
        """
        Import definitions from YAML produced by export_yaml.

        Slugs are kept exactly as exported (no owner prefix is added again).
        """
        data = yaml.safe_load(yaml_content)
        if not data:
            return []
        if not isinstance(data, Mapping):
            raise RegistrationError("View YAML must be a mapping")
        documents = data.get("views") if "views" in data else [data]

        imported = []
        for document in documents or []:
            if not isinstance(document, Mapping):
                raise RegistrationError(f"Invalid view document: {document!r}")
            if not document.get("type"):
                raise RegistrationError("View YAML must include a 'type' field")
            archetype = dict(document.get("archetype") or {})
            if document.get("cacheable") is False:
                archetype["cacheable"] = False
            definition = self.register_view(
                document.get("entity") or "",
                document["type"],
                archetype,
                inherit_from=document.get("inherit"),
                slug=document.get("slug"),
                priority=document.get("priority"),
            )
            if document.get("owner"):
                with session_scope(self.session):
                    definition.owner_plugin = document["owner"]
            imported.append(definition)
        return imported

    def import_file(self, path: Path) -> List[ViewDefinition]:
        """Import definitions from a YAML file."""
        with open(path, 'r') as f:
            return self.import_yaml(f.read())

    def export_file(self, path: Path, slug: Optional[str] = None) -> None:
        """Export definitions to a YAML file."""
        with open(path, 'w') as f:
            f.write(self.export_yaml(slug))

    def stats(self) -> Dict[str, Any]:
        return {
            "definitions": self.session.query(ViewDefinition).count(),
            "resolved_cached": len(self._cache),
        }


def deep_config(stored: Optional[Mapping[str, Any]], resolved: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Type defaults stored on the definition, overlaid by the resolved archetype's config."""
    config = copy.deepcopy(dict(stored or {}))
    config.update(copy.deepcopy(dict(resolved or {})))
    return config
