from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ClauseElement

from datapanel.config import settings
from datapanel.schemas.datatable import ListRequest, ListResponse, PresentationRecord
from datapanel.services.datatable import (
    DataTable,
    JoinClause,
    as_from_clause,
    is_same_column,
    underlying_expression,
)
from datapanel.services.extensions import ExtensionPoint, ExtensionRegistry, PipelineContext
from datapanel.services.filters import contains_pattern

logger = logging.getLogger(__name__)


class QueryEngine:
    """Turns a :class:`ListRequest` into one page of presentation records.

    Three statements run per pass (page rows, total count, filtered count),
    all on the caller's session. A failing statement degrades to an empty
    page; extension callbacks are not guarded.
    """

    def __init__(
        self,
        db: Session,
        table: DataTable,
        extensions: ExtensionRegistry | None = None,
        *,
        max_page_size: int | None = None,
    ) -> None:
        self.db = db
        self.table = table
        self.extensions = extensions or ExtensionRegistry()
        self.max_page_size = max_page_size or settings.max_page_size

    def _apply(self, point: ExtensionPoint, value: Any, context: PipelineContext) -> Any:
        return self.extensions.apply(self.table.table_id, point, value, context)

    def _from_clause(self, joins: list[JoinClause]) -> Any:
        clause = self.table.from_clause
        for join in joins:
            clause = clause.join(as_from_clause(join.target), join.onclause, isouter=join.isouter)
        return clause

    def _search_predicate(self, request: ListRequest) -> ClauseElement | None:
        term = request.search_term
        if not term or not self.table.searchable_columns:
            return None
        pattern = contains_pattern(term)
        return or_(
            *[
                cast(column, String).ilike(pattern, escape="\\")
                for column in self.table.searchable_columns
            ]
        )

    def _order_by(self, columns: list[Any], request: ListRequest) -> list[Any]:
        index_column = self.table.index_expression
        sort_index = request.sort_column_index
        if sort_index is None or not 0 <= sort_index < len(columns):
            return [index_column.desc()]
        expression = underlying_expression(columns[sort_index])
        primary = expression.desc() if request.sort_direction == "desc" else expression.asc()
        if is_same_column(expression, index_column):
            return [primary]
        return [primary, index_column.asc()]

    def page_size(self, request: ListRequest) -> int:
        return max(1, min(request.page_size, self.max_page_size))

    def build_statements(
        self, request: ListRequest, context: PipelineContext
    ) -> tuple[Select, Select, Select]:
        columns = self._apply(ExtensionPoint.columns, self.table.select_columns(), context)
        where = self._apply(ExtensionPoint.where, self.table.where_conditions(request), context)
        joins = self._apply(ExtensionPoint.joins, self.table.joins(request), context)

        search = self._search_predicate(request)
        all_where = [*where, search] if search is not None else list(where)
        from_clause = self._from_clause(joins)
        page_size = self.page_size(request)
        offset = request.start if request.start is not None else request.page_index * page_size

        page_stmt = (
            select(*columns)
            .select_from(from_clause)
            .where(*all_where)
            .order_by(*self._order_by(columns, request))
            .limit(page_size)
            .offset(offset)
        )
        total_stmt = (
            select(func.count(self.table.index_expression)).select_from(from_clause).where(*where)
        )
        filtered_stmt = (
            select(func.count(self.table.index_expression))
            .select_from(from_clause)
            .where(*all_where)
        )
        return page_stmt, total_stmt, filtered_stmt

    def process(self, request: ListRequest) -> ListResponse:
        context = PipelineContext(table=self.table, request=request)
        page_stmt, total_stmt, filtered_stmt = self.build_statements(request, context)

        statement: Select = page_stmt
        try:
            rows = self.db.execute(page_stmt).all()
            statement = total_stmt
            total = int(self.db.execute(total_stmt).scalar() or 0)
            statement = filtered_stmt
            filtered = int(self.db.execute(filtered_stmt).scalar() or 0)
        except SQLAlchemyError:
            logger.exception(
                "datatable_query_failed table=%s statement=%s",
                self.table.table_id,
                statement,
            )
            self.db.rollback()
            return ListResponse.empty(request.draw_token)

        data: list[dict[str, Any]] = []
        for row in rows:
            record = self.table.format_row(row)
            record = self._apply(
                ExtensionPoint.row_output,
                record,
                PipelineContext(table=self.table, request=request, raw_row=row),
            )
            data.append(record.to_wire() if isinstance(record, PresentationRecord) else record)

        response = ListResponse(
            draw=request.draw_token,
            records_total=total,
            records_filtered=filtered,
            data=data,
        )
        return self._apply(ExtensionPoint.response, response, context)
