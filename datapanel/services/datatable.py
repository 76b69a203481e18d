from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ClauseElement, ColumnElement, Label

from datapanel.schemas.datatable import (
    DetailPayload,
    ListRequest,
    PresentationRecord,
    TabPayload,
)
from datapanel.services.filters import FilterControl, build_filter_predicates
from datapanel.services.row_format import columns_config

logger = logging.getLogger(__name__)

LAYOUTS = {"dual-panel", "single-panel"}
DEFAULT_TAB_PRIORITY = 10


@dataclass(frozen=True)
class JoinClause:
    target: Any
    onclause: ClauseElement
    isouter: bool = True


@dataclass(frozen=True)
class TabDefinition:
    id: str
    title: str
    priority: int = DEFAULT_TAB_PRIORITY
    deferred: bool = False


def as_from_clause(source: Any) -> Any:
    """Accept a mapped class or a Core ``Table``/selectable."""
    return getattr(source, "__table__", source)


def column_key(column: Any) -> str:
    key = getattr(column, "key", None) or getattr(column, "name", None)
    if not key:
        raise ValueError(f"Column has no key: {column!r}")
    return str(key)


def underlying_expression(column: Any) -> Any:
    """Strip a display label so ORDER BY targets the real expression."""
    if isinstance(column, Label):
        return column.element
    return column


def order_tabs(tabs: list[TabDefinition]) -> list[TabDefinition]:
    """Sort tabs by priority, keeping declaration order for equal priorities.

    Raises ``ValueError`` for duplicate ids or a deferred first tab.
    """
    seen: set[str] = set()
    for tab in tabs:
        if not tab.id:
            raise ValueError("tab id is required")
        if tab.id in seen:
            raise ValueError(f"Duplicate tab id: {tab.id}")
        seen.add(tab.id)
    ordered = sorted(tabs, key=lambda tab: tab.priority)
    if ordered and ordered[0].deferred:
        raise ValueError(f"First tab cannot be deferred: {ordered[0].id}")
    return ordered


class DataTable(ABC):
    """Declarative definition of one grid plus its detail panel.

    Subclasses set the class attributes and implement :meth:`format_row`.
    The hooks ``where_conditions`` and ``joins`` receive the current
    :class:`ListRequest` so request-dependent predicates stay in one place.
    """

    table_id: ClassVar[str] = ""
    entity: ClassVar[str] = ""
    title: ClassVar[str] = ""
    layout: ClassVar[str] = "dual-panel"
    has_stats: ClassVar[bool] = False

    source: ClassVar[Any] = None
    columns: ClassVar[list[Any]] = []
    searchable_columns: ClassVar[list[Any]] = []
    index_column: ClassVar[Any] = None
    base_where: ClassVar[list[ClauseElement]] = []
    base_joins: ClassVar[list[JoinClause]] = []
    tabs: ClassVar[list[TabDefinition]] = []
    filters: ClassVar[list[FilterControl]] = []
    column_titles: ClassVar[dict[str, str]] = {}

    @property
    def entity_name(self) -> str:
        return self.entity or self.table_id

    @property
    def display_title(self) -> str:
        return self.title or self.entity_name.replace("_", " ").title()

    @property
    def from_clause(self) -> Any:
        return as_from_clause(self.source)

    @property
    def index_expression(self) -> Any:
        # mapped attributes are descriptors; read them off the class
        return type(self).index_column

    @property
    def index_key(self) -> str:
        return column_key(self.index_expression)

    def validate(self) -> None:
        if not self.table_id:
            raise ValueError("table_id is required")
        if self.source is None or self.index_expression is None:
            raise ValueError(f"{self.table_id}: source and index_column are required")
        if self.layout not in LAYOUTS:
            raise ValueError(f"{self.table_id}: unsupported layout {self.layout}")
        order_tabs(list(self.tabs))

    def ordered_tabs(self) -> list[TabDefinition]:
        return order_tabs(list(self.tabs))

    def select_columns(self) -> list[Any]:
        return list(self.columns)

    def where_conditions(self, request: ListRequest) -> list[ClauseElement]:
        return [*self.base_where, *build_filter_predicates(self.filters, request.filters)]

    def joins(self, request: ListRequest) -> list[JoinClause]:
        return list(self.base_joins)

    @abstractmethod
    def format_row(self, row: Any) -> PresentationRecord:
        """Turn one raw row into escaped display values plus its identity."""

    def can_access(self, user: Any) -> bool:
        return True

    def columns_config(self) -> list[dict[str, Any]]:
        return columns_config(
            {
                "data": column_key(column),
                "title": self.column_titles.get(
                    column_key(column), column_key(column).replace("_", " ").title()
                ),
            }
            for column in self.columns
        )

    def config(self) -> dict[str, Any]:
        return {
            "id": self.table_id,
            "entity": self.entity_name,
            "title": self.display_title,
            "layout": self.layout,
            "has_stats": self.has_stats,
            "columns": self.columns_config(),
            "tabs": [
                {"id": tab.id, "title": tab.title, "deferred": tab.deferred}
                for tab in self.ordered_tabs()
            ],
            "filters": [filter_.key for filter_ in self.filters],
        }

    # Detail panel

    def load_record(self, db: Session, record_id: int) -> Any | None:
        stmt = select(self.from_clause).where(self.index_expression == record_id)
        return db.execute(stmt).mappings().first()

    def detail_title(self, record: Any) -> str:
        return f"{self.display_title} #{record[self.index_key]}"

    def render_tab(self, db: Session, record: Any, tab_id: str) -> str:
        return ""

    def render_content(self, db: Session, record: Any) -> str | None:
        return None

    def build_detail(self, db: Session, record_id: int) -> DetailPayload | None:
        """Eager tabs ship rendered; deferred tabs are left for a lazy load."""
        record = self.load_record(db, record_id)
        if record is None:
            return None
        tabs = {
            tab.id: self.render_tab(db, record, tab.id)
            for tab in self.ordered_tabs()
            if not tab.deferred
        }
        return DetailPayload(
            title=self.detail_title(record),
            tabs=tabs,
            content=self.render_content(db, record),
        )

    def build_tab(self, db: Session, record_id: int, tab_id: str) -> TabPayload | None:
        if tab_id not in {tab.id for tab in self.tabs}:
            logger.warning("datatable_unknown_tab table=%s tab=%s", self.table_id, tab_id)
            return None
        record = self.load_record(db, record_id)
        if record is None:
            return None
        return TabPayload(html=self.render_tab(db, record, tab_id))

    def statistics(self, db: Session) -> dict[str, Any]:
        return {}


def is_same_column(left: ColumnElement | Any, right: ColumnElement | Any) -> bool:
    return str(underlying_expression(left)) == str(underlying_expression(right))
