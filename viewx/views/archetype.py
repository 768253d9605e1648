"""
Archetype merging for view inheritance.

A child archetype may carry an ``_inherit`` list of targeted modifications::

    _inherit:
      - xpath: "//field[@name='amount']"
        position: after          # before | after | replace | inside
        content: {discount: {widget: float}}

Modifications are applied to the parent first, then the rest of the child is
deep-merged over the result (mappings recurse, everything else replaces).
"""

import copy
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

INHERIT_KEY = "_inherit"
POSITIONS = ("before", "after", "replace", "inside")

# Element kind in a path -> archetype key holding that kind of element
COLLECTIONS = {
    "field": "fields",
    "group": "groups",
    "column": "columns",
    "section": "sections",
}

_PATH_RE = re.compile(r"//(\w+)\[@name=['\"]([^'\"]+)['\"]\]")


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    result = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def parse_path(xpath: str) -> Optional[Tuple[str, str]]:
    """``//field[@name='x']`` -> ``("field", "x")``, None for anything else."""
    found = _PATH_RE.search(xpath or "")
    if not found:
        return None
    return found.group(1), found.group(2)


def _item_name(key: Any, item: Any) -> Any:
    if isinstance(item, Mapping):
        return item.get("name", key)
    return item if isinstance(item, str) else key


def _as_list_items(content: Any) -> List[Any]:
    if isinstance(content, Mapping):
        return [
            dict(value, name=value.get("name", key)) if isinstance(value, Mapping) else key
            for key, value in content.items()
        ]
    if isinstance(content, (list, tuple)):
        return list(content)
    return [content]


def _modify_mapping(collection: Mapping[str, Any], target: str, content: Any, position: str) -> Dict[str, Any]:
    if not isinstance(content, Mapping):
        content = {str(item): {} for item in _as_list_items(content)} if position != "inside" else {}
    result: Dict[str, Any] = {}
    for key, item in collection.items():
        if key != target:
            result[key] = item
            continue
        if position == "before":
            result.update(copy.deepcopy(dict(content)))
            result[key] = item
        elif position == "after":
            result[key] = item
            result.update(copy.deepcopy(dict(content)))
        elif position == "replace":
            result.update(copy.deepcopy(dict(content)))
        else:
            if isinstance(item, Mapping):
                result[key] = deep_merge(item, content)
            else:
                result[key] = copy.deepcopy(dict(content))
    return result


def _modify_list(collection: List[Any], index: int, content: Any, position: str) -> List[Any]:
    result = list(collection)
    if position == "inside":
        item = result[index]
        if isinstance(item, Mapping) and isinstance(content, Mapping):
            result[index] = deep_merge(item, content)
        return result
    items = copy.deepcopy(_as_list_items(content))
    if position == "before":
        return result[:index] + items + result[index:]
    if position == "after":
        return result[:index + 1] + items + result[index + 1:]
    return result[:index] + items + result[index + 1:]


def _find_and_modify(node: Any, kind: str, name: str, content: Any, position: str) -> Tuple[Any, bool]:
    """Apply the modification to the first matching collection at this level, else recurse."""
    if isinstance(node, Mapping):
        collection_key = COLLECTIONS.get(kind)
        collection = node.get(collection_key) if collection_key else None

        if isinstance(collection, Mapping):
            for key, item in collection.items():
                if _item_name(key, item) == name:
                    updated = dict(node)
                    updated[collection_key] = _modify_mapping(collection, key, content, position)
                    return updated, True
        elif isinstance(collection, list):
            for index, item in enumerate(collection):
                if _item_name(index, item) == name:
                    updated = dict(node)
                    updated[collection_key] = _modify_list(collection, index, content, position)
                    return updated, True

        updated = dict(node)
        found = False
        for key, value in node.items():
            if isinstance(value, (Mapping, list)):
                updated[key], hit = _find_and_modify(value, kind, name, content, position)
                found = found or hit
        return updated, found

    if isinstance(node, list):
        updated_list = []
        found = False
        for value in node:
            new_value, hit = _find_and_modify(value, kind, name, content, position)
            updated_list.append(new_value)
            found = found or hit
        return updated_list, found

    return node, False


def apply_modification(archetype: Mapping[str, Any], modification: Mapping[str, Any]) -> Dict[str, Any]:
    """Apply one ``_inherit`` modification; unknown paths leave the archetype unchanged."""
    xpath = modification.get("xpath") or modification.get("selector")
    position = modification.get("position", "inside")
    content = modification.get("content", {})

    target = parse_path(xpath)
    if target is None:
        logger.warning(f"Ignoring inheritance modification with unsupported path: {xpath!r}")
        return dict(archetype)
    if position not in POSITIONS:
        logger.warning(f"Ignoring inheritance modification with unknown position: {position!r}")
        return dict(archetype)

    kind, name = target
    result, found = _find_and_modify(archetype, kind, name, content, position)
    if not found:
        logger.info(f"Inheritance path {xpath} matched nothing")
    return result


def merge_archetypes(parent: Mapping[str, Any], child: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge a child archetype over its (already resolved) parent."""
    merged = copy.deepcopy(dict(parent))
    child = dict(child)
    for modification in child.pop(INHERIT_KEY, None) or []:
        if isinstance(modification, Mapping):
            merged = apply_modification(merged, modification)
    return deep_merge(merged, child)


def needs_field_merge(archetype: Mapping[str, Any]) -> bool:
    """True if a form archetype has a section without fields."""
    sections = archetype.get("sections") or archetype.get("groups") or {}
    if not isinstance(sections, Mapping) or not sections:
        return False
    for section in sections.values():
        if section is None or (isinstance(section, Mapping) and not section.get("fields")):
            return True
    return False


def merge_generated_fields(registered: Mapping[str, Any], generated: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Fill field-less sections of a registered form from a generated default.

    Generated sections missing from the registered archetype are appended
    when they have fields. ``groups`` is folded into ``sections``.
    """
    registered_sections = registered.get("sections") or registered.get("groups") or {}
    generated_sections = generated.get("sections") or generated.get("groups") or {}

    merged: Dict[str, Any] = {}
    for key, section in registered_sections.items():
        section = dict(section or {})
        if not section.get("fields"):
            section["fields"] = copy.deepcopy((generated_sections.get(key) or {}).get("fields") or {})
        merged[key] = section

    for key, section in generated_sections.items():
        if key not in merged and (section or {}).get("fields"):
            merged[key] = copy.deepcopy(section)

    result = copy.deepcopy(dict(registered))
    result["sections"] = merged
    result.pop("groups", None)
    return result
