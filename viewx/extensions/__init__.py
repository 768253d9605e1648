"""Registration records and the registry that holds them."""

from .models import (
    Extension, Condition, SlotContribution, Replacement,
    Literal, Callback, SubView, SlotContent, parse_modification, to_slot_content,
)
from .registry import ExtensionRegistry

__all__ = [
    'Extension',
    'Condition',
    'SlotContribution',
    'Replacement',
    'Literal',
    'Callback',
    'SubView',
    'SlotContent',
    'parse_modification',
    'to_slot_content',
    'ExtensionRegistry',
]
