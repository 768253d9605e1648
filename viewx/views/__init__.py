"""
View types, the view type catalogue and the view definition store.

Usage:
    from viewx.views import ViewTypeCatalogue, ViewDefinitionStore

    catalogue = ViewTypeCatalogue()
    store = ViewDefinitionStore(session, catalogue)
    store.register_view("order", "list", {"columns": {"number": {}}})
    store.get_view("order", "list")
"""

from .types import (
    ViewType, ValidationIssue, FieldSpec, BUILTIN_VIEW_TYPES, CATEGORIES,
    ListViewType, FormViewType, DetailViewType, KanbanViewType, CalendarViewType,
    TreeViewType, SearchViewType, PivotViewType, ChartViewType, DashboardViewType, BlankViewType,
)
from .catalogue import ViewTypeCatalogue
from .archetype import merge_archetypes, deep_merge, apply_modification
from .store import ViewDefinitionStore, StaticFieldProvider
from .builder import ViewBuilder

__all__ = [
    'ViewType',
    'ValidationIssue',
    'FieldSpec',
    'BUILTIN_VIEW_TYPES',
    'CATEGORIES',
    'ListViewType',
    'FormViewType',
    'DetailViewType',
    'KanbanViewType',
    'CalendarViewType',
    'TreeViewType',
    'SearchViewType',
    'PivotViewType',
    'ChartViewType',
    'DashboardViewType',
    'BlankViewType',
    'ViewTypeCatalogue',
    'merge_archetypes',
    'deep_merge',
    'apply_modification',
    'ViewDefinitionStore',
    'StaticFieldProvider',
    'ViewBuilder',
]
