"""Dashboard shell rendering with named content-injection points.

Plugins attach callbacks to a :class:`LayoutPoint`, optionally scoped to one
entity. Callbacks run in registration order; each receives the table plus
point-specific keyword arguments and returns an HTML fragment. Fragments are
trusted markup and are not escaped again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from fastapi.templating import Jinja2Templates
from markupsafe import Markup

from datapanel.services.datatable import DataTable

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

LayoutCallback = Callable[..., str]


class LayoutPoint(str, Enum):
    page_header_left = "page_header_left"
    page_header_right = "page_header_right"
    before_content = "before_content"
    after_content = "after_content"
    statistics = "statistics"
    filters = "filters"
    left_panel = "left_panel"
    right_panel = "right_panel"
    right_panel_footer = "right_panel_footer"
    tab_empty = "tab_empty"
    no_tabs = "no_tabs"


@dataclass
class _Registration:
    callback: LayoutCallback
    entity: str | None


class LayoutHooks:
    def __init__(self) -> None:
        self._points: dict[LayoutPoint, list[_Registration]] = {}

    def add(
        self,
        point: LayoutPoint | str,
        callback: LayoutCallback,
        *,
        entity: str | None = None,
    ) -> None:
        self._points.setdefault(LayoutPoint(point), []).append(
            _Registration(callback=callback, entity=entity)
        )

    def _matching(self, point: LayoutPoint | str, entity: str) -> list[_Registration]:
        return [
            reg
            for reg in self._points.get(LayoutPoint(point), [])
            if reg.entity is None or reg.entity == entity
        ]

    def has(self, point: LayoutPoint | str, entity: str) -> bool:
        return bool(self._matching(point, entity))

    def render(self, point: LayoutPoint | str, table: DataTable, **kwargs: Any) -> Markup:
        parts = [
            Markup(reg.callback(table, **kwargs) or "")
            for reg in self._matching(point, table.entity_name)
        ]
        return Markup("").join(parts)

    def clear(self) -> None:
        self._points.clear()


_hooks: LayoutHooks | None = None


def get_layout_hooks() -> LayoutHooks:
    global _hooks
    if _hooks is None:
        _hooks = LayoutHooks()
    return _hooks


def dashboard_context(
    table: DataTable,
    hooks: LayoutHooks,
    filter_values: Mapping[str, str] | None = None,
    *,
    stats: Mapping[str, Any] | None = None,
    data_url: str = "",
) -> dict[str, Any]:
    values = filter_values or {}
    entity = table.entity_name
    tabs = table.ordered_tabs()

    def point(name: LayoutPoint, **kwargs: Any) -> Markup:
        return hooks.render(name, table, **kwargs)

    if not tabs:
        logger.info("dashboard_without_tabs entity=%s", entity)

    return {
        "table": table,
        "entity": entity,
        "title": table.display_title,
        "layout": table.layout,
        "data_url": data_url,
        "columns": table.columns_config(),
        "has_stats": table.has_stats,
        "stats": dict(stats or {}),
        "filters": [
            {"control": control, "value": control.effective_value(values) or ""}
            for control in table.filters
        ],
        "tabs": [
            {"tab": tab, "empty": point(LayoutPoint.tab_empty, tab=tab)} for tab in tabs
        ],
        "has_default_header": not hooks.has(LayoutPoint.page_header_left, entity),
        "page_header_left": point(LayoutPoint.page_header_left),
        "page_header_right": point(LayoutPoint.page_header_right),
        "before_content": point(LayoutPoint.before_content),
        "after_content": point(LayoutPoint.after_content),
        "statistics": point(LayoutPoint.statistics),
        "filters_extra": point(LayoutPoint.filters),
        "left_panel": point(LayoutPoint.left_panel),
        "right_panel": point(LayoutPoint.right_panel),
        "right_panel_footer": point(LayoutPoint.right_panel_footer),
        "no_tabs": point(LayoutPoint.no_tabs) if not tabs else Markup(""),
    }


def render_dashboard(
    table: DataTable,
    hooks: LayoutHooks | None = None,
    filter_values: Mapping[str, str] | None = None,
    *,
    stats: Mapping[str, Any] | None = None,
    data_url: str = "",
) -> str:
    context = dashboard_context(
        table,
        hooks or get_layout_hooks(),
        filter_values,
        stats=stats,
        data_url=data_url,
    )
    return templates.get_template("datatables/dashboard.html").render(context)
