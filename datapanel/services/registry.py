from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from datapanel.schemas.datatable import ListRequest, ListResponse, RegistryInfo, TableInfo
from datapanel.services.datatable import DataTable
from datapanel.services.extensions import ExtensionRegistry
from datapanel.services.query_engine import QueryEngine

logger = logging.getLogger(__name__)


class DataTableRegistry:
    """Registered tables keyed by ``table_id``, each with its extension chains."""

    def __init__(self) -> None:
        self._tables: dict[str, DataTable] = {}
        self.extensions = ExtensionRegistry()

    def register(self, table: DataTable | type[DataTable]) -> DataTable:
        if isinstance(table, type):
            table = table()
        if not table.table_id:
            raise ValueError("DataTable ID cannot be empty")
        table.validate()
        if table.table_id in self._tables:
            logger.warning("datatable_overwritten table=%s", table.table_id)
        self._tables[table.table_id] = table
        logger.info(
            "datatable_registered table=%s entity=%s", table.table_id, table.entity_name
        )
        return table

    def unregister(self, table_id: str) -> bool:
        if table_id not in self._tables:
            return False
        del self._tables[table_id]
        self.extensions.clear(table_id)
        logger.info("datatable_unregistered table=%s", table_id)
        return True

    def get(self, table_id: str) -> DataTable | None:
        return self._tables.get(table_id)

    def has(self, table_id: str) -> bool:
        return table_id in self._tables

    def all(self) -> dict[str, DataTable]:
        return dict(self._tables)

    def accessible(self, user: Any = None) -> dict[str, DataTable]:
        return {
            table_id: table
            for table_id, table in self._tables.items()
            if table.can_access(user)
        }

    @property
    def count(self) -> int:
        return len(self._tables)

    def by_entity(self) -> dict[str, dict[str, DataTable]]:
        grouped: dict[str, dict[str, DataTable]] = {}
        for table_id, table in self._tables.items():
            grouped.setdefault(table.entity_name, {})[table_id] = table
        return grouped

    def by_layout(self, layout: str) -> dict[str, DataTable]:
        return {
            table_id: table
            for table_id, table in self._tables.items()
            if table.layout == layout
        }

    def clear(self) -> None:
        self._tables.clear()
        self.extensions.clear()
        logger.info("datatable_registry_cleared")

    def info(self, user: Any = None) -> RegistryInfo:
        return RegistryInfo(
            total_datatables=self.count,
            accessible_datatables=len(self.accessible(user)),
            datatables={
                table_id: TableInfo(
                    id=table_id,
                    entity=table.entity_name,
                    title=table.display_title,
                    layout=table.layout,
                    can_access=table.can_access(user),
                )
                for table_id, table in self._tables.items()
            },
        )

    def engine(self, db: Session, table: DataTable) -> QueryEngine:
        return QueryEngine(db, table, self.extensions)

    def process(self, db: Session, table_id: str, request: ListRequest) -> ListResponse:
        table = self._tables.get(table_id)
        if table is None:
            raise KeyError(table_id)
        return self.engine(db, table).process(request)


_registry: DataTableRegistry | None = None


def get_registry() -> DataTableRegistry:
    global _registry
    if _registry is None:
        _registry = DataTableRegistry()
    return _registry
