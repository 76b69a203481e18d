from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ROW_ID_KEY = "DT_RowId"
ROW_DATA_KEY = "DT_RowData"
FILTER_PARAM_SUFFIX = "_filter"

_BRACKET_KEY = re.compile(r"^(?P<root>\w+)((?:\[[^\]]*\])*)$")
_BRACKET_PART = re.compile(r"\[([^\]]*)\]")


class SearchParams(BaseModel):
    value: str = ""
    regex: bool = False

    @model_validator(mode="before")
    @classmethod
    def accept_bare_value(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"value": data}
        return data


class OrderParams(BaseModel):
    column: int = 0
    dir: str = "asc"

    @field_validator("dir", mode="after")
    @classmethod
    def normalize_dir(cls, v: str) -> str:
        return "desc" if str(v).strip().lower() == "desc" else "asc"


class DataTablesRequest(BaseModel):
    """Wire shape of a grid list request."""

    model_config = ConfigDict(extra="ignore")

    draw: int = 0
    start: int = 0
    length: int | None = None
    search: SearchParams = Field(default_factory=SearchParams)
    order: list[OrderParams] = Field(default_factory=list)
    filters: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_flat_params(cls, params: Mapping[str, Any]) -> DataTablesRequest:
        """Parse the bracketed form encoding grid widgets post.

        ``search[value]=x&order[0][column]=1&order[0][dir]=desc&status_filter=active``
        """
        nested: dict[str, Any] = {}
        filters: dict[str, str] = {}
        for raw_key, value in params.items():
            if raw_key.endswith(FILTER_PARAM_SUFFIX) and "[" not in raw_key:
                if value not in (None, ""):
                    filters[raw_key[: -len(FILTER_PARAM_SUFFIX)]] = str(value)
                continue
            match = _BRACKET_KEY.match(raw_key)
            if not match:
                continue
            parts = [match.group("root"), *_BRACKET_PART.findall(raw_key)]
            cursor = nested
            for part in parts[:-1]:
                cursor = cursor.setdefault(part, {})
                if not isinstance(cursor, dict):
                    break
            else:
                cursor[parts[-1]] = value

        order_rows = nested.get("order", {})
        order: list[dict[str, Any]] = []
        if isinstance(order_rows, dict):
            for index in sorted(order_rows, key=lambda k: int(k) if str(k).isdigit() else 0):
                row = order_rows[index]
                if isinstance(row, dict) and "column" in row:
                    order.append({"column": row["column"], "dir": row.get("dir", "asc")})

        search = nested.get("search", {})
        payload: dict[str, Any] = {
            "search": {"value": search.get("value", "") if isinstance(search, dict) else ""},
            "order": order,
            "filters": filters,
        }
        for key in ("draw", "start", "length"):
            value = nested.get(key)
            if value not in (None, ""):
                payload[key] = value
        return cls.model_validate(payload)


@dataclass(frozen=True)
class ListRequest:
    """Normalized list request handed to the query engine and its extensions."""

    page_index: int = 0
    page_size: int = 10
    sort_column_index: int | None = None
    sort_direction: str = "asc"
    search_term: str = ""
    draw_token: int = 0
    filters: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    # row offset as sent on the wire; None means page_index * page_size
    start: int | None = None

    @property
    def offset(self) -> int:
        if self.start is not None:
            return self.start
        return self.page_index * self.page_size

    @classmethod
    def from_wire(
        cls,
        wire: DataTablesRequest,
        *,
        max_page_size: int,
        default_page_size: int,
    ) -> ListRequest:
        length = default_page_size if wire.length is None else wire.length
        # length <= 0 is the grid's "show all"; still bounded
        page_size = max_page_size if length <= 0 else min(length, max_page_size)
        start = max(wire.start, 0)
        first_order = wire.order[0] if wire.order else None
        return cls(
            page_index=start // page_size,
            page_size=page_size,
            sort_column_index=first_order.column if first_order else None,
            sort_direction=first_order.dir if first_order else "asc",
            search_term=wire.search.value.strip(),
            draw_token=wire.draw,
            filters=dict(wire.filters),
            params=wire.model_dump(),
            start=start,
        )

    def to_wire(self) -> DataTablesRequest:
        order = []
        if self.sort_column_index is not None:
            order.append(OrderParams(column=self.sort_column_index, dir=self.sort_direction))
        return DataTablesRequest(
            draw=self.draw_token,
            start=self.offset,
            length=self.page_size,
            search=SearchParams(value=self.search_term),
            order=order,
            filters=dict(self.filters),
        )


class ListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    draw: int = 0
    records_total: int = Field(default=0, alias="recordsTotal")
    records_filtered: int = Field(default=0, alias="recordsFiltered")
    data: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def empty(cls, draw: int) -> ListResponse:
        return cls(draw=draw, records_total=0, records_filtered=0, data=[])


class RowIdentity(BaseModel):
    """Stable identity of a grid row, carried next to its display values."""

    id: int
    entity: str
    extra: dict[str, Any] = Field(default_factory=dict)

    @property
    def row_id(self) -> str:
        return f"{self.entity}-{self.id}"

    def to_row_data(self) -> dict[str, Any]:
        return {**self.extra, "id": self.id, "entity": self.entity}

    @classmethod
    def from_row_data(cls, data: Mapping[str, Any] | None) -> RowIdentity | None:
        if not data or "id" not in data or not data.get("entity"):
            return None
        extra = {k: v for k, v in data.items() if k not in ("id", "entity")}
        return cls(id=int(data["id"]), entity=str(data["entity"]), extra=extra)


@dataclass
class PresentationRecord:
    values: dict[str, Any] = field(default_factory=dict)
    identity: RowIdentity | None = None

    def to_wire(self) -> dict[str, Any]:
        row = {key: str(value) for key, value in self.values.items()}
        if self.identity is not None:
            row[ROW_ID_KEY] = self.identity.row_id
            row[ROW_DATA_KEY] = self.identity.to_row_data()
        return row


class DetailPayload(BaseModel):
    title: str = ""
    tabs: dict[str, str] = Field(default_factory=dict)
    content: str | None = None


class TabPayload(BaseModel):
    html: str


class TableInfo(BaseModel):
    id: str
    entity: str
    title: str
    layout: str
    can_access: bool


class RegistryInfo(BaseModel):
    total_datatables: int
    accessible_datatables: int
    datatables: dict[str, TableInfo]
