"""
Fluent builder for view definitions.

Builds the archetype documents that ViewDefinitionStore.register_view takes,
so plugins do not have to write nested dicts by hand.

Usage:
    ViewBuilder.list("invoice") \\
        .name("Invoice List") \\
        .columns(["number", "customer", "total", "status"]) \\
        .sortable(["number", "total"]) \\
        .filterable(["status"]) \\
        .paginate(25) \\
        .register(engine)

    ViewBuilder.form("invoice") \\
        .section("header", lambda s: s.section_columns(2)
                 .field("customer_id", "many2one", required=True)
                 .field("date", "date")) \\
        .buttons(["save", "cancel"]) \\
        .build()
"""

import copy
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .types import ValidationIssue, title

logger = logging.getLogger(__name__)


def _named_entries(items: Union[Sequence[Any], Mapping[str, Any]], defaults=None) -> List[Dict[str, Any]]:
    """Turn ``["save", {"cancel": {...}}]`` style lists into ``[{name, label, ...}]``."""
    entries = []
    pairs = items.items() if isinstance(items, Mapping) else ((item, None) for item in items)
    for name, options in pairs:
        entry = {"name": name, "label": title(name)}
        entry.update(defaults or {})
        if isinstance(options, Mapping):
            entry.update(options)
        elif options is not None:
            entry["label"] = options
        entries.append(entry)
    return entries


class ViewBuilder:
    """Chainable builder for one view definition."""

    def __init__(self, view_type: str, entity: str = ""):
        self.view_type = view_type
        self.entity = entity
        self._definition: Dict[str, Any] = {"type": view_type, "entity": entity}
        self._owner: Optional[str] = None
        self._inherit_from: Optional[str] = None
        self._current_section: Optional[str] = None

    @classmethod
    def make(cls, view_type: str, entity: str = "") -> 'ViewBuilder':
        return cls(view_type, entity)

    @classmethod
    def list(cls, entity: str) -> 'ViewBuilder':
        return cls("list", entity)

    @classmethod
    def form(cls, entity: str) -> 'ViewBuilder':
        return cls("form", entity)

    @classmethod
    def detail(cls, entity: str) -> 'ViewBuilder':
        return cls("detail", entity)

    @classmethod
    def kanban(cls, entity: str) -> 'ViewBuilder':
        return cls("kanban", entity)

    @classmethod
    def calendar(cls, entity: str) -> 'ViewBuilder':
        return cls("calendar", entity)

    @classmethod
    def tree(cls, entity: str) -> 'ViewBuilder':
        return cls("tree", entity)

    @classmethod
    def search(cls, entity: str) -> 'ViewBuilder':
        return cls("search", entity)

    @classmethod
    def pivot(cls, entity: str) -> 'ViewBuilder':
        return cls("pivot", entity)

    @classmethod
    def chart(cls, entity: str) -> 'ViewBuilder':
        return cls("chart", entity)

    @classmethod
    def dashboard(cls, entity: str = "") -> 'ViewBuilder':
        return cls("dashboard", entity)

    @classmethod
    def blank(cls, entity: str = "") -> 'ViewBuilder':
        return cls("blank", entity)

    # Identity and registration options

    def name(self, name: str) -> 'ViewBuilder':
        self._definition["name"] = name
        return self

    def slug(self, slug: str) -> 'ViewBuilder':
        self._definition["slug"] = slug
        return self

    def priority(self, priority: int) -> 'ViewBuilder':
        """Lower wins among unrelated definitions of the same entity and type."""
        self._definition["priority"] = priority
        return self

    def cacheable(self, cacheable: bool = True) -> 'ViewBuilder':
        """Whether compiled output of this view may be cached."""
        self._definition["cacheable"] = cacheable
        return self

    def plugin(self, owner: str) -> 'ViewBuilder':
        """Register the definition on behalf of a plugin."""
        self._owner = owner
        return self

    def inherit(self, parent_slug: str) -> 'ViewBuilder':
        self._inherit_from = parent_slug
        return self

    def config(self, config: Mapping[str, Any]) -> 'ViewBuilder':
        self._definition.setdefault("config", {}).update(config)
        return self

    def option(self, key: str, value: Any) -> 'ViewBuilder':
        self._definition.setdefault("config", {})[key] = value
        return self

    def modify(self, xpath: str, position: str, content: Any = None) -> 'ViewBuilder':
        """
        Add an ``_inherit`` modification, applied to the parent's archetype.

        Example:
            .modify("//column[@name='total']", "after", ["discount"])
        """
        modification = {"xpath": xpath, "position": position}
        if content is not None:
            modification["content"] = content
        self._definition.setdefault("_inherit", []).append(modification)
        return self

    # List views

    def columns(self, columns: Union[Sequence[str], Mapping[str, Any]]) -> 'ViewBuilder':
        """Set all columns; names get a title-cased label, mappings are kept."""
        normalized: Dict[str, Any] = {}
        pairs = columns.items() if isinstance(columns, Mapping) else ((name, None) for name in columns)
        for name, options in pairs:
            if isinstance(options, Mapping):
                normalized[name] = dict(options)
            else:
                normalized[name] = {"label": options or title(name)}
        self._definition["columns"] = normalized
        return self

    def column(self, name: str, **options) -> 'ViewBuilder':
        column = {"label": title(name)}
        column.update(options)
        self._definition.setdefault("columns", {})[name] = column
        return self

    def _flag_columns(self, names: Sequence[str], flag: str) -> 'ViewBuilder':
        columns = self._definition.get("columns", {})
        for name in names:
            if name in columns:
                columns[name][flag] = True
            else:
                logger.debug(f"Ignoring {flag} for unknown column {name}")
        return self

    def sortable(self, names: Sequence[str]) -> 'ViewBuilder':
        return self._flag_columns(names, "sortable")

    def filterable(self, names: Sequence[str]) -> 'ViewBuilder':
        return self._flag_columns(names, "filterable")

    def searchable(self, names: Sequence[str]) -> 'ViewBuilder':
        return self._flag_columns(names, "searchable")

    def paginate(self, per_page: int = 25) -> 'ViewBuilder':
        return self.config({"pagination": True, "per_page": per_page})

    def order_by(self, column: str, direction: str = "asc") -> 'ViewBuilder':
        self._definition["default_order"] = f"{column} {direction}"
        return self

    def selectable(self, selectable: bool = True) -> 'ViewBuilder':
        self._definition["selectable"] = selectable
        return self

    def editable(self, editable: bool = True) -> 'ViewBuilder':
        self._definition["editable"] = editable
        return self

    # Form and detail views

    def section(self, name: str, build: Optional[Callable[['ViewBuilder'], Any]] = None,
                **options) -> 'ViewBuilder':
        """
        Add a section. Fields added inside ``build`` go into it.

        Args:
            name: Section name, also the ``@name`` used by inheriting views
            build: Called with this builder while the section is current
            **options: Extra section keys (label, columns, ...)
        """
        section = {"label": title(name), "fields": {}}
        section.update(options)
        self._definition.setdefault("sections", {})[name] = section
        if build is not None:
            previous = self._current_section
            self._current_section = name
            try:
                build(self)
            finally:
                self._current_section = previous
        return self

    def field(self, name: str, widget: str = "char", **options) -> 'ViewBuilder':
        """Add a field to the current section, or to the top-level fields."""
        field_config = {"widget": widget, "label": title(name)}
        field_config.update(options)
        if self._current_section:
            self._definition["sections"][self._current_section]["fields"][name] = field_config
        else:
            self._definition.setdefault("fields", {})[name] = field_config
        return self

    def section_columns(self, columns: int) -> 'ViewBuilder':
        if self._current_section:
            self._definition["sections"][self._current_section]["columns"] = columns
        return self

    def buttons(self, buttons: Union[Sequence[Any], Mapping[str, Any]]) -> 'ViewBuilder':
        self._definition["buttons"] = _named_entries(buttons, {"type": "action"})
        return self

    def button(self, name: str, **options) -> 'ViewBuilder':
        self._definition.setdefault("buttons", []).extend(_named_entries({name: options}))
        return self

    # Kanban views

    def group_by(self, field_name: str) -> 'ViewBuilder':
        self._definition["group_by"] = field_name
        return self

    def card_title(self, field_name: str) -> 'ViewBuilder':
        self._definition.setdefault("card", {})["title"] = field_name
        return self

    def card_subtitle(self, field_name: str) -> 'ViewBuilder':
        self._definition.setdefault("card", {})["subtitle"] = field_name
        return self

    def card_image(self, field_name: str) -> 'ViewBuilder':
        self._definition.setdefault("card", {})["image"] = field_name
        return self

    def card_fields(self, fields: Sequence[str]) -> 'ViewBuilder':
        self._definition["card_fields"] = [name for name in fields]
        return self

    def quick_create(self, enabled: bool = True) -> 'ViewBuilder':
        self._definition["quick_create"] = enabled
        return self

    # Calendar views

    def date_start(self, field_name: str) -> 'ViewBuilder':
        self._definition["date_start"] = field_name
        return self

    def date_end(self, field_name: str) -> 'ViewBuilder':
        self._definition["date_end"] = field_name
        return self

    def all_day(self, field_name: str) -> 'ViewBuilder':
        self._definition["all_day"] = field_name
        return self

    def mode(self, mode: str) -> 'ViewBuilder':
        self._definition["mode"] = mode
        return self

    # Tree views

    def parent_field(self, field_name: str) -> 'ViewBuilder':
        self._definition["parent_field"] = field_name
        return self

    def child_count(self, field_name: str) -> 'ViewBuilder':
        self._definition["child_count"] = field_name
        return self

    def max_depth(self, depth: int) -> 'ViewBuilder':
        self._definition["max_depth"] = depth
        return self

    # Pivot, chart and dashboard views

    def rows(self, fields: Sequence[str]) -> 'ViewBuilder':
        self._definition["rows"] = [name for name in fields]
        return self

    def cols(self, fields: Sequence[str]) -> 'ViewBuilder':
        self._definition["cols"] = [name for name in fields]
        return self

    def measures(self, fields: Sequence[str]) -> 'ViewBuilder':
        self._definition["measures"] = [name for name in fields]
        return self

    def chart_type(self, chart_type: str) -> 'ViewBuilder':
        self._definition["chart_type"] = chart_type
        return self

    def widget(self, name: str, widget_type: str, **options) -> 'ViewBuilder':
        widget = {"name": name, "type": widget_type}
        widget.update(options)
        self._definition.setdefault("widgets", []).append(widget)
        return self

    def layout(self, layout: Mapping[str, Any]) -> 'ViewBuilder':
        self._definition["layout"] = dict(layout)
        return self

    # Common

    def actions(self, actions: Union[Sequence[Any], Mapping[str, Any]]) -> 'ViewBuilder':
        self._definition["actions"] = _named_entries(actions)
        return self

    def action(self, name: str, **options) -> 'ViewBuilder':
        self._definition.setdefault("actions", []).extend(_named_entries({name: options}))
        return self

    def access_groups(self, groups: Sequence[str]) -> 'ViewBuilder':
        self._definition["access_groups"] = [group for group in groups]
        return self

    # Output

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    @property
    def inherit_from(self) -> Optional[str]:
        return self._inherit_from

    def build(self) -> Dict[str, Any]:
        """The archetype built so far, as an independent copy."""
        return copy.deepcopy(self._definition)

    def validate(self, catalogue) -> List[ValidationIssue]:
        """Validate against a ViewTypeCatalogue without registering."""
        return catalogue.validate(self._definition)

    def register(self, target):
        """
        Register the definition.

        Args:
            target: A ViewDefinitionStore, or anything with a ``store``
                attribute such as a ViewEngine

        Returns:
            The stored ViewDefinition
        """
        store = getattr(target, "store", target)
        return store.register_view(
            self.entity,
            self.view_type,
            self.build(),
            owner=self._owner,
            inherit_from=self._inherit_from,
        )

    def __repr__(self):
        return f"<ViewBuilder(type='{self.view_type}', entity='{self.entity}')>"
