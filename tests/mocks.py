"""Test models, a sample datatable and fake collaborators."""

import asyncio
from datetime import date
from typing import Any

from sqlalchemy import Date, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from datapanel.client.transport import TransportError
from datapanel.db import Base
from datapanel.schemas.datatable import (
    DataTablesRequest,
    DetailPayload,
    ListResponse,
    PresentationRecord,
    TabPayload,
)
from datapanel.services.datatable import DataTable, JoinClause, TabDefinition
from datapanel.services.filters import FilterControl
from datapanel.services.row_format import esc_output, panel_row_data, row_value, status_badge


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(80))


class Widget(Base):
    __tablename__ = "widgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120))
    status: Mapped[str] = mapped_column(String(20), default="active")
    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id"), nullable=True)
    created_on: Mapped[date | None] = mapped_column(Date, nullable=True)


class Gadget(Base):
    __tablename__ = "gadgets"

    serial: Mapped[int] = mapped_column(Integer, primary_key=True)
    label: Mapped[str] = mapped_column(String(80))


class WidgetTable(DataTable):
    table_id = "widgets"
    entity = "widget"
    title = "Widgets"
    has_stats = True

    source = Widget
    index_column = Widget.id
    columns = [
        Widget.id,
        Widget.name,
        Widget.status,
        Category.name.label("category"),
    ]
    searchable_columns = [Widget.name, Widget.status]
    base_joins = [JoinClause(Category, Widget.category_id == Category.id)]
    tabs = [
        TabDefinition(id="history", title="History", priority=20, deferred=True),
        TabDefinition(id="info", title="Info", priority=1),
        TabDefinition(id="notes", title="Notes", priority=30, deferred=True),
    ]
    filters = [
        FilterControl(
            key="status",
            type="select",
            label="Status",
            options={"all": "All", "active": "Active", "inactive": "Inactive"},
            default="all",
            expression=Widget.status,
        ),
        FilterControl(key="created", type="date_range", expression=Widget.created_on),
    ]

    def format_row(self, row):
        return PresentationRecord(
            values={
                "id": row_value(row, "id"),
                "name": esc_output(row_value(row, "name")),
                "status": status_badge(row_value(row, "status")),
                "category": esc_output(row_value(row, "category")),
            },
            identity=panel_row_data(row, self.entity),
        )

    def detail_title(self, record):
        return f"Widget: {record['name']}"

    def render_tab(self, db, record, tab_id):
        return f"<p>{tab_id} of {record['name']}</p>"

    def statistics(self, db):
        return {"total_widgets": db.query(Widget).count()}


def add_widgets(db_session, rows, *, created_on: date | None = None) -> None:
    """Insert ``(id, name, status)`` tuples, all in one category."""
    if db_session.get(Category, 1) is None:
        db_session.add(Category(id=1, name="Tools"))
    for widget_id, name, status in rows:
        db_session.add(
            Widget(
                id=widget_id,
                name=name,
                status=status,
                category_id=1,
                created_on=created_on,
            )
        )
    db_session.flush()


def detail_for(record_id: int) -> DetailPayload:
    return DetailPayload(
        title=f"Widget #{record_id}",
        tabs={"info": f"<p>info {record_id}</p>"},
    )


class FakeTransport:
    """In-memory Transport with per-call gates and injected failures.

    A gate is an ``asyncio.Event`` keyed by record id (detail) or by
    ``(tab_id, record_id)`` (tab); the fetch waits on it before answering.
    """

    def __init__(self) -> None:
        self.detail_calls: list[int] = []
        self.tab_calls: list[tuple[str, int]] = []
        self.list_calls: list[DataTablesRequest] = []
        self.detail_gates: dict[int, asyncio.Event] = {}
        self.tab_gates: dict[tuple[str, int], asyncio.Event] = {}
        self.detail_errors: dict[int, TransportError] = {}
        self.tab_errors: dict[tuple[str, int], TransportError] = {}
        self.details: dict[int, DetailPayload] = {}
        self.list_rows: list[dict[str, Any]] = []
        self.list_error: TransportError | None = None

    def gate_detail(self, record_id: int) -> asyncio.Event:
        self.detail_gates[record_id] = asyncio.Event()
        return self.detail_gates[record_id]

    def gate_tab(self, tab_id: str, record_id: int) -> asyncio.Event:
        self.tab_gates[(tab_id, record_id)] = asyncio.Event()
        return self.tab_gates[(tab_id, record_id)]

    async def fetch_detail(self, table_id: str, record_id: int) -> DetailPayload:
        self.detail_calls.append(record_id)
        gate = self.detail_gates.get(record_id)
        if gate is not None:
            await gate.wait()
        error = self.detail_errors.get(record_id)
        if error is not None:
            raise error
        return self.details.get(record_id) or detail_for(record_id)

    async def fetch_tab(self, table_id: str, tab_id: str, record_id: int) -> TabPayload:
        self.tab_calls.append((tab_id, record_id))
        gate = self.tab_gates.get((tab_id, record_id))
        if gate is not None:
            await gate.wait()
        error = self.tab_errors.pop((tab_id, record_id), None)
        if error is not None:
            raise error
        return TabPayload(html=f"<p>{tab_id} {record_id}</p>")

    async def fetch_list(self, table_id: str, request: DataTablesRequest) -> ListResponse:
        self.list_calls.append(request)
        if self.list_error is not None:
            raise self.list_error
        return ListResponse(
            draw=request.draw,
            records_total=len(self.list_rows),
            records_filtered=len(self.list_rows),
            data=list(self.list_rows),
        )


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)
