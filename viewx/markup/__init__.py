"""Markup trees, selector matching and patch operations."""

from .tree import MarkupTree, Fragment, parse_fragment, is_document
from .selectors import (
    match, validate_selector, SelectorBuilder,
    by_id, by_class, by_tag, by_data, by_name, by_attr,
    by_field_name, by_extension_point, by_extension_area, within,
)
from .operations import (
    Operation, PatchOperator, AttributeChange, SetValue, RemoveAttribute, ClassChange,
    normalize_attribute_changes,
)

__all__ = [
    'MarkupTree',
    'Fragment',
    'parse_fragment',
    'is_document',
    'match',
    'validate_selector',
    'SelectorBuilder',
    'by_id',
    'by_class',
    'by_tag',
    'by_data',
    'by_name',
    'by_attr',
    'by_field_name',
    'by_extension_point',
    'by_extension_area',
    'within',
    'Operation',
    'PatchOperator',
    'AttributeChange',
    'SetValue',
    'RemoveAttribute',
    'ClassChange',
    'normalize_attribute_changes',
]
