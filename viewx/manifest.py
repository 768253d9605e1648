"""
YAML registration manifests.

A manifest declares everything one owner contributes, so a plugin can ship
its registrations as data instead of code::

    owner: discounts
    extensions:
      orders.form:
        - selector: "//*[@id='totals']"
          operation: insert-after
          content: "<div class='discount'></div>"
    slots:
      orders.index:
        sidebar:
          - content: "<p>Promotions</p>"
            priority: 5
          - view: discounts.widget
            data: {limit: 3}
    replacements:
      orders.detail: discounts.order_detail
    views:
      - entity: order
        type: list
        archetype:
          columns: [number, total]
    view_extensions:
      - parent: discounts_order_list
        modifications:
          - {xpath: "//column[@name='total']", position: after, content: [discount]}
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

import yaml

from .exceptions import RegistrationError
from .extensions.models import Callback, Literal, SubView

if TYPE_CHECKING:
    from .engine import ViewEngine

logger = logging.getLogger(__name__)

MANIFEST_SECTIONS = ("owner", "extensions", "slots", "replacements", "views", "view_extensions")


def _as_mapping(value: Any, section: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise RegistrationError(f"Manifest section '{section}' must be a mapping")
    return value


def _as_list(value: Any, section: str) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [value]
    if not isinstance(value, list):
        raise RegistrationError(f"Manifest section '{section}' must be a list")
    return value


def load_manifest(manifest: Union[str, Mapping[str, Any]], engine: 'ViewEngine',
                  owner: Optional[str] = None) -> Dict[str, int]:
    """
    Register everything a manifest declares.

    Args:
        manifest: YAML text or an already-parsed mapping
        engine: Engine receiving the registrations
        owner: Overrides the manifest's own ``owner``

    Returns:
        Counts of registrations made per section

    Raises:
        RegistrationError: If the manifest or one of its entries is malformed
    """
    data = yaml.safe_load(manifest) if isinstance(manifest, str) else manifest
    if not data:
        return {"extensions": 0, "slots": 0, "replacements": 0, "views": 0}
    if not isinstance(data, Mapping):
        raise RegistrationError("Manifest must be a mapping")

    unknown = set(data) - set(MANIFEST_SECTIONS)
    if unknown:
        logger.warning(f"Ignoring unknown manifest sections: {', '.join(sorted(unknown))}")

    owner = owner or data.get("owner")
    counts = {"extensions": 0, "slots": 0, "replacements": 0, "views": 0}

    for view, modifications in _as_mapping(data.get("extensions"), "extensions").items():
        registered = engine.register_extensions(view, _as_list(modifications, f"extensions.{view}"), owner=owner)
        counts["extensions"] += len(registered)

    for view, slots in _as_mapping(data.get("slots"), "slots").items():
        for slot, entries in _as_mapping(slots, f"slots.{view}").items():
            for entry in _as_list(entries, f"slots.{view}.{slot}"):
                if isinstance(entry, str):
                    content, priority = entry, 10
                elif isinstance(entry, Mapping):
                    priority = entry.get("priority", 10)
                    if entry.get("view"):
                        content = {"view": entry["view"], "data": entry.get("data") or {}}
                    else:
                        content = entry.get("content")
                else:
                    raise RegistrationError(f"Invalid slot entry for {view}.{slot}: {entry!r}")
                engine.register_slot_content(view, slot, content, owner=owner, priority=priority)
                counts["slots"] += 1

    for view, replacement in _as_mapping(data.get("replacements"), "replacements").items():
        if isinstance(replacement, Mapping):
            engine.register_replacement(view, replacement.get("view"), owner=owner,
                                        priority=replacement.get("priority", 10))
        else:
            engine.register_replacement(view, replacement, owner=owner)
        counts["replacements"] += 1

    for document in _as_list(data.get("views"), "views"):
        if not isinstance(document, Mapping) or not document.get("type"):
            raise RegistrationError(f"View entry needs a 'type': {document!r}")
        engine.register_view_definition(
            document.get("entity") or "",
            document["type"],
            document.get("archetype") or {},
            owner=owner,
            inherit_from=document.get("inherit"),
            slug=document.get("slug"),
            priority=document.get("priority"),
        )
        counts["views"] += 1

    for entry in _as_list(data.get("view_extensions"), "view_extensions"):
        if not isinstance(entry, Mapping) or not entry.get("parent"):
            raise RegistrationError(f"View extension needs a 'parent': {entry!r}")
        engine.extend_view_definition(entry["parent"], list(entry.get("modifications") or []), owner=owner)
        counts["views"] += 1

    logger.info(f"Loaded manifest for {owner or 'no owner'}: {counts}")
    return counts


def load_manifest_file(path: Union[str, Path], engine: 'ViewEngine',
                       owner: Optional[str] = None) -> Dict[str, int]:
    """Register everything declared in a YAML manifest file."""
    with open(path, 'r') as f:
        return load_manifest(f.read(), engine, owner=owner)


def _slot_entry(contribution) -> Optional[Dict[str, Any]]:
    content = contribution.content
    if isinstance(content, Literal):
        return {"content": content.markup, "priority": contribution.priority}
    if isinstance(content, SubView):
        entry = {"view": content.view_name, "priority": contribution.priority}
        if content.data:
            entry["data"] = dict(content.data)
        return entry
    if isinstance(content, Callback):
        logger.warning(f"Skipping callback slot content for {contribution.target_view}."
                       f"{contribution.slot_name}: callables cannot be dumped")
    return None


def dump_registrations(engine: 'ViewEngine', owner: Optional[str] = None) -> str:
    """
    Dump in-memory registrations as a manifest.

    Only one owner's registrations are included when ``owner`` is given.
    Callback slot content is skipped.
    """
    registry = engine.registry
    data: Dict[str, Any] = {}
    if owner:
        data["owner"] = owner

    def _wanted(item) -> bool:
        return owner is None or item.owner == owner

    extensions = {}
    for view in registry.views():
        modifications = [extension.to_dict() for extension in registry.all_for(view) if _wanted(extension)]
        if modifications:
            extensions[view] = modifications
    if extensions:
        data["extensions"] = extensions

    slots: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
    for view, view_slots in registry.all_slots().items():
        for slot, contributions in view_slots.items():
            entries = [_slot_entry(contribution) for contribution in contributions if _wanted(contribution)]
            entries = [entry for entry in entries if entry]
            if entries:
                slots.setdefault(view, {})[slot] = entries
    if slots:
        data["slots"] = slots

    replacements = {}
    for view, entries in registry.all_replacements().items():
        wanted = [replacement for replacement in entries if _wanted(replacement)]
        if wanted:
            replacements[view] = {"view": wanted[0].replacement_view, "priority": wanted[0].priority}
    if replacements:
        data["replacements"] = replacements

    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
