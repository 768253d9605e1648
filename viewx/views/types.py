"""
View types: what kinds of views exist, how their definitions are validated
and how a default definition is generated from an entity's fields.

A view type is a class. The built-in ones are below; plugins subclass
ViewType (or instantiate it with keyword overrides) and register the result
with the catalogue.
"""

import copy
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

CATEGORIES = ("data", "board", "analytics", "utility", "special")


@dataclass(frozen=True)
class ValidationIssue:
    """One problem found in a view definition."""
    field: str
    message: str

    def __str__(self):
        return f"{self.field}: {self.message}"


@dataclass
class FieldSpec:
    """Description of one entity field, as supplied by a FieldProvider."""
    slug: str
    name: Optional[str] = None
    type: str = "string"
    show_in_list: bool = True
    show_in_form: bool = True
    is_required: bool = False
    is_sortable: bool = True
    is_filterable: bool = False
    is_searchable: bool = False
    is_system: bool = False
    form_group: str = "main"
    form_width: str = "full"
    description: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.name or self.slug

    @classmethod
    def from_any(cls, data: Any) -> 'FieldSpec':
        """Accept a FieldSpec, a mapping, or any object with the same attributes."""
        if isinstance(data, FieldSpec):
            return data
        if isinstance(data, Mapping):
            known = {key: value for key, value in data.items() if key in cls.__dataclass_fields__}
            return cls(**known)
        values = {
            name: getattr(data, name)
            for name in cls.__dataclass_fields__
            if hasattr(data, name)
        }
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Field type -> widget
WIDGETS = {
    'string': 'char',
    'text': 'text',
    'html': 'html',
    'integer': 'integer',
    'decimal': 'float',
    'float': 'float',
    'money': 'monetary',
    'boolean': 'checkbox',
    'date': 'date',
    'datetime': 'datetime',
    'time': 'time',
    'email': 'email',
    'url': 'url',
    'phone': 'phone',
    'select': 'selection',
    'relation': 'many2one',
    'file': 'binary',
    'image': 'image',
    'json': 'json',
    'color': 'color',
}

# Field type -> list filter
FILTER_TYPES = {
    'date': 'date_range',
    'datetime': 'date_range',
    'integer': 'number_range',
    'decimal': 'number_range',
    'float': 'number_range',
    'money': 'number_range',
    'boolean': 'boolean',
    'select': 'select',
    'relation': 'relation',
}


def widget_for(field_spec: FieldSpec) -> str:
    return WIDGETS.get(field_spec.type, 'char')


def title(text: str) -> str:
    return text.replace("_", " ").replace("-", " ").title()


def normalize_fields(fields: Optional[Iterable[Any]]) -> List[FieldSpec]:
    return [FieldSpec.from_any(item) for item in (fields or [])]


class ViewType:
    """
    Base view type.

    Class attributes describe the type; any of them can also be overridden per
    instance through keyword arguments, which is how simple plugin types are
    declared without subclassing::

        ViewType(name="gallery", label="Gallery", category="special",
                 requires_entity=False)
    """

    name: str = ""
    label: Optional[str] = None
    description: str = ""
    icon: str = "layout"
    category: str = "data"
    requires_entity: bool = True
    is_system: bool = False
    priority: int = 10
    supported_features: Sequence[str] = ()
    default_config: Dict[str, Any] = {}
    extension_points: Dict[str, str] = {}

    def __init__(self, **overrides):
        for key, value in overrides.items():
            if key.startswith("_") or not hasattr(type(self), key):
                raise TypeError(f"Unknown view type attribute: {key}")
            setattr(self, key, value)
        if not self.name:
            raise TypeError(f"{type(self).__name__} has no name")
        if self.label is None:
            self.label = f"{title(self.name)} View"
        # Instances must not share mutable class-level defaults
        self.default_config = copy.deepcopy(self.default_config)
        self.extension_points = dict(self.extension_points)
        self.supported_features = tuple(self.supported_features)

    def supports(self, feature: str) -> bool:
        return feature in self.supported_features

    @property
    def template_path(self) -> str:
        return f"views.{self.name}"

    def validate(self, definition: Mapping[str, Any]) -> List[ValidationIssue]:
        """
        Validate a view definition.

        Checks the ``type`` and ``entity`` keys, then the type-specific rules.

        Returns:
            List of issues, empty if the definition is valid
        """
        issues: List[ValidationIssue] = []
        view_type = definition.get("type")
        if not view_type:
            issues.append(ValidationIssue("type", "View type is required"))
        elif view_type != self.name:
            issues.append(ValidationIssue("type", f"View type must be '{self.name}'"))

        if self.requires_entity and not definition.get("entity"):
            issues.append(ValidationIssue("entity", "Entity is required for this view type"))

        issues.extend(self.validate_definition(definition))
        return issues

    def validate_definition(self, definition: Mapping[str, Any]) -> List[ValidationIssue]:
        """Type-specific validation; override in subclasses."""
        return []

    def generate_default(self, entity_name: str, fields: Optional[Iterable[Any]] = None) -> Dict[str, Any]:
        """Build a usable definition for an entity that has no explicit one."""
        return {
            "type": self.name,
            "entity": entity_name,
            "name": f"{title(entity_name)} {self.label}",
            "config": copy.deepcopy(self.default_config),
        }

    def prepare_data(self, definition: Mapping[str, Any], data: Mapping[str, Any]) -> Dict[str, Any]:
        """Template context for rendering a definition of this type."""
        config = copy.deepcopy(self.default_config)
        config.update(definition.get("config") or {})
        prepared = {"definition": definition, "view_type": self.name, "config": config}
        prepared.update(data)
        return prepared

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "description": self.description,
            "icon": self.icon,
            "category": self.category,
            "requires_entity": self.requires_entity,
            "is_system": self.is_system,
            "priority": self.priority,
            "supported_features": list(self.supported_features),
            "default_config": copy.deepcopy(self.default_config),
            "extension_points": dict(self.extension_points),
        }

    def __repr__(self):
        return f"<{type(self).__name__}(name='{self.name}', system={self.is_system})>"


def _require_key(definition: Mapping[str, Any], key: str, message: str) -> List[ValidationIssue]:
    if not definition.get(key):
        return [ValidationIssue(key, message)]
    return []


class ListViewType(ViewType):
    name = "list"
    label = "List View"
    description = "Tabular data display with sorting, filtering, and pagination"
    icon = "list"
    category = "data"
    is_system = True
    priority = 1
    supported_features = (
        "pagination", "sorting", "filtering", "searching", "bulk_actions", "row_actions",
        "export", "import", "column_visibility", "column_resize", "row_selection", "inline_edit",
    )
    default_config = {
        "per_page": 25,
        "per_page_options": [10, 25, 50, 100],
        "default_sort": "created_at",
        "default_sort_direction": "desc",
        "selectable": True,
        "searchable": True,
        "exportable": True,
        "show_pagination": True,
        "row_click_action": "view",
    }
    extension_points = {
        "before_header": "Content before the table header",
        "after_header": "Content after the table header",
        "before_filters": "Content before the filter bar",
        "after_filters": "Content after the filter bar",
        "before_table": "Content before the table",
        "after_table": "Content after the table",
        "empty_state": "Custom empty state content",
        "bulk_actions": "Additional bulk actions",
        "row_actions": "Additional row actions",
    }

    def validate_definition(self, definition):
        columns = definition.get("columns")
        if not columns:
            return [ValidationIssue("columns", "At least one column is required")]

        issues = []
        items = columns.items() if isinstance(columns, Mapping) else enumerate(columns)
        for key, column in items:
            if not isinstance(column, (Mapping, str)):
                issues.append(ValidationIssue(f"columns.{key}", "Column must be a mapping or string"))

        filters = definition.get("filters") or {}
        if isinstance(filters, Mapping):
            for key, value in filters.items():
                if not isinstance(value, Mapping):
                    issues.append(ValidationIssue(f"filters.{key}", "Filter must be a mapping"))
        return issues

    def generate_default(self, entity_name, fields=None):
        columns: Dict[str, Any] = {}
        filters: Dict[str, Any] = {}
        for spec in normalize_fields(fields):
            if not spec.show_in_list:
                continue
            columns[spec.slug] = {
                "label": spec.label,
                "widget": widget_for(spec),
                "sortable": spec.is_sortable,
                "type": spec.type,
            }
            if spec.is_filterable:
                filters[spec.slug] = {
                    "label": spec.label,
                    "type": FILTER_TYPES.get(spec.type, "text"),
                }

        definition = super().generate_default(entity_name, fields)
        definition.update({
            "name": f"{title(entity_name)} List",
            "columns": columns,
            "filters": filters,
            "actions": {"row": ["view", "edit", "delete"], "bulk": ["delete", "export"]},
        })
        return definition


class FormViewType(ViewType):
    name = "form"
    label = "Form View"
    description = "Create and edit forms with validation and sections"
    icon = "edit"
    category = "data"
    is_system = True
    priority = 2
    supported_features = (
        "validation", "sections", "tabs", "multi_column", "conditional_fields",
        "computed_fields", "relations", "file_upload", "rich_text", "auto_save", "draft",
    )
    default_config = {
        "mode": "edit",
        "columns": 2,
        "label_position": "top",
        "submit_button": "Save",
        "cancel_button": "Cancel",
        "show_required_indicator": True,
        "auto_save": False,
        "confirm_discard": True,
        "redirect_after_save": "list",
    }
    extension_points = {
        "before_form": "Content before the form",
        "after_form": "Content after the form",
        "before_sections": "Content before all sections",
        "after_sections": "Content after all sections",
        "before_actions": "Content before form actions",
        "after_actions": "Content after form actions",
        "form_header": "Form header content",
        "form_footer": "Form footer content",
    }

    def validate_definition(self, definition):
        sections = definition.get("sections")
        if not sections:
            return [ValidationIssue("sections", "At least one section is required")]
        if not isinstance(sections, Mapping):
            return [ValidationIssue("sections", "Sections must be a mapping of name to section")]

        issues = []
        for key, section in sections.items():
            if not isinstance(section, Mapping):
                issues.append(ValidationIssue(f"sections.{key}", "Section must be a mapping"))
                continue
            if not section.get("fields"):
                issues.append(ValidationIssue(f"sections.{key}.fields", "Section must have at least one field"))
            columns = section.get("columns")
            if columns is not None and (not isinstance(columns, int) or not 1 <= columns <= 4):
                issues.append(ValidationIssue(f"sections.{key}.columns", "Columns must be between 1 and 4"))
        return issues

    def generate_default(self, entity_name, fields=None):
        sections: Dict[str, Any] = {"main": {"label": None, "columns": 2, "fields": {}}}
        for spec in normalize_fields(fields):
            if not spec.show_in_form:
                continue
            group = spec.form_group or "main"
            if group not in sections:
                sections[group] = {"label": title(group), "columns": 2, "fields": {}}
            sections[group]["fields"][spec.slug] = {
                "widget": widget_for(spec),
                "label": spec.label,
                "required": spec.is_required,
                "readonly": spec.is_system,
                "span": 2 if spec.form_width == "full" else 1,
                "help": spec.description,
            }

        definition = super().generate_default(entity_name, fields)
        definition.update({
            "name": f"{title(entity_name)} Form",
            "sections": sections,
            "actions": ["save", "cancel"],
        })
        return definition


class DetailViewType(ViewType):
    name = "detail"
    label = "Detail View"
    description = "Read-only record display grouped into sections"
    icon = "file-text"
    category = "data"
    is_system = True
    priority = 3
    supported_features = ("sections", "tabs", "relations", "activity", "attachments")
    default_config = {"columns": 2, "show_actions": True, "show_activity": False}
    extension_points = {
        "before_detail": "Content before the record",
        "after_detail": "Content after the record",
        "detail_header": "Record header content",
        "detail_sidebar": "Sidebar content",
    }

    def generate_default(self, entity_name, fields=None):
        definition = super().generate_default(entity_name, fields)
        definition["sections"] = {
            "main": {
                "label": None,
                "fields": [spec.slug for spec in normalize_fields(fields) if spec.show_in_form],
            }
        }
        return definition


class KanbanViewType(ViewType):
    name = "kanban"
    label = "Kanban Board"
    description = "Cards grouped into columns by a field"
    icon = "columns"
    category = "board"
    is_system = True
    priority = 4
    supported_features = ("drag_drop", "grouping", "quick_create", "card_colors")
    default_config = {"group_by": None, "card_fields": [], "quick_create": True, "fold_empty": False}
    extension_points = {"card_header": "Card header", "card_footer": "Card footer", "column_header": "Column header"}

    def validate_definition(self, definition):
        group_by = definition.get("group_by") or (definition.get("config") or {}).get("group_by")
        if not group_by:
            return [ValidationIssue("group_by", "Kanban views need a field to group by")]
        return []

    def generate_default(self, entity_name, fields=None):
        definition = super().generate_default(entity_name, fields)
        specs = normalize_fields(fields)
        group_field = next((spec.slug for spec in specs if spec.type == "select"), None)
        definition["group_by"] = group_field or "status"
        definition["card_fields"] = [spec.slug for spec in specs if spec.show_in_list][:3]
        return definition


class CalendarViewType(ViewType):
    name = "calendar"
    label = "Calendar View"
    description = "Records placed on a calendar by date"
    icon = "calendar"
    category = "board"
    is_system = True
    priority = 5
    supported_features = ("drag_drop", "quick_create", "day_view", "week_view", "month_view")
    default_config = {"mode": "month", "date_start": None, "date_end": None, "color_field": None}
    extension_points = {"before_calendar": "Content before the calendar", "event_popover": "Event popover"}

    def validate_definition(self, definition):
        date_start = definition.get("date_start") or (definition.get("config") or {}).get("date_start")
        if not date_start:
            return [ValidationIssue("date_start", "Calendar views need a start date field")]
        return []

    def generate_default(self, entity_name, fields=None):
        definition = super().generate_default(entity_name, fields)
        specs = normalize_fields(fields)
        date_field = next((spec.slug for spec in specs if spec.type in ("date", "datetime")), None)
        definition["date_start"] = date_field or "created_at"
        return definition


class TreeViewType(ViewType):
    name = "tree"
    label = "Tree View"
    description = "Hierarchical records displayed as an expandable tree"
    icon = "git-branch"
    category = "board"
    is_system = True
    priority = 6
    supported_features = ("expand_collapse", "drag_drop", "lazy_load")
    default_config = {"parent_field": "parent_id", "expanded": False}
    extension_points = {"node_actions": "Additional node actions"}

    def validate_definition(self, definition):
        parent_field = definition.get("parent_field") or (definition.get("config") or {}).get("parent_field")
        if not parent_field:
            return [ValidationIssue("parent_field", "Tree views need a parent field")]
        return []

    def generate_default(self, entity_name, fields=None):
        definition = super().generate_default(entity_name, fields)
        definition["parent_field"] = definition["config"].get("parent_field", "parent_id")
        return definition


class SearchViewType(ViewType):
    name = "search"
    label = "Search View"
    description = "Search fields, filters and groupings for an entity"
    icon = "search"
    category = "utility"
    is_system = True
    priority = 7
    supported_features = ("filters", "group_by", "favorites")
    default_config = {"live_search": True, "min_length": 2}
    extension_points = {"extra_filters": "Additional filters"}

    def generate_default(self, entity_name, fields=None):
        definition = super().generate_default(entity_name, fields)
        specs = normalize_fields(fields)
        definition["fields"] = [spec.slug for spec in specs if spec.is_searchable]
        definition["filters"] = {
            spec.slug: {"label": spec.label, "type": FILTER_TYPES.get(spec.type, "text")}
            for spec in specs if spec.is_filterable
        }
        return definition


class PivotViewType(ViewType):
    name = "pivot"
    label = "Pivot Table"
    description = "Cross-tabulated aggregates"
    icon = "grid"
    category = "analytics"
    is_system = True
    priority = 8
    supported_features = ("aggregation", "export", "drill_down")
    default_config = {"rows": [], "columns": [], "measures": ["count"]}

    def validate_definition(self, definition):
        config = definition.get("config") or {}
        if not (definition.get("measures") or config.get("measures")):
            return [ValidationIssue("measures", "Pivot views need at least one measure")]
        return []


class ChartViewType(ViewType):
    name = "chart"
    label = "Chart View"
    description = "Graphical representation of aggregated data"
    icon = "bar-chart"
    category = "analytics"
    is_system = True
    priority = 9
    supported_features = ("aggregation", "export", "stacked")
    default_config = {"chart_type": "bar", "measure": "count", "group_by": None}

    CHART_TYPES = ("bar", "line", "pie", "area", "scatter")

    def validate_definition(self, definition):
        config = definition.get("config") or {}
        chart_type = definition.get("chart_type") or config.get("chart_type")
        if chart_type and chart_type not in self.CHART_TYPES:
            return [ValidationIssue("chart_type", f"Chart type must be one of {', '.join(self.CHART_TYPES)}")]
        return []


class DashboardViewType(ViewType):
    name = "dashboard"
    label = "Dashboard"
    description = "Grid of widgets, not tied to an entity"
    icon = "layout-dashboard"
    category = "analytics"
    is_system = True
    requires_entity = False
    priority = 10
    supported_features = ("widgets", "drag_drop", "refresh")
    default_config = {"columns": 12, "refresh_interval": None}
    extension_points = {"dashboard_widgets": "Additional dashboard widgets"}

    def validate_definition(self, definition):
        widgets = definition.get("widgets")
        if widgets is not None and not isinstance(widgets, (list, Mapping)):
            return [ValidationIssue("widgets", "Widgets must be a list or mapping")]
        return []


class BlankViewType(ViewType):
    name = "blank"
    label = "Blank View"
    description = "Empty canvas for fully custom content"
    icon = "square"
    category = "special"
    is_system = True
    requires_entity = False
    priority = 99


BUILTIN_VIEW_TYPES = (
    ListViewType,
    FormViewType,
    DetailViewType,
    KanbanViewType,
    CalendarViewType,
    TreeViewType,
    SearchViewType,
    PivotViewType,
    ChartViewType,
    DashboardViewType,
    BlankViewType,
)
