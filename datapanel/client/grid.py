from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any

from datapanel.client.transport import Transport, TransportError
from datapanel.config import settings
from datapanel.schemas.datatable import ROW_DATA_KEY, ListRequest, ListResponse, RowIdentity

logger = logging.getLogger(__name__)


class GridClient:
    """Client-side grid state: paging, sort, search, filters and the last page.

    Every reload issues a fresh draw token. A response whose token is not the
    latest issued one is stale and is discarded.
    """

    def __init__(
        self,
        transport: Transport,
        table_id: str,
        *,
        page_size: int | None = None,
    ) -> None:
        self.transport = transport
        self.table_id = table_id
        self.state = ListRequest(page_size=page_size or settings.default_page_size)
        self.rows: list[dict[str, Any]] = []
        self.records_total = 0
        self.records_filtered = 0
        self.error: str | None = None
        self.columns_adjusted = 0
        self._draw = 0
        self._tasks: set[asyncio.Task] = set()

    @property
    def last_draw(self) -> int:
        return self._draw

    def next_request(self, *, reset_paging: bool = False) -> ListRequest:
        self._draw += 1
        if reset_paging:
            self.state = replace(self.state, page_index=0)
        return replace(self.state, draw_token=self._draw)

    async def reload(self, reset_paging: bool = False) -> bool:
        request = self.next_request(reset_paging=reset_paging)
        try:
            response = await self.transport.fetch_list(self.table_id, request.to_wire())
        except TransportError as exc:
            if request.draw_token == self._draw:
                self.error = exc.message
            logger.warning(
                "grid_reload_failed table=%s draw=%s error=%s",
                self.table_id,
                request.draw_token,
                exc.message,
            )
            return False
        return self.apply_response(response)

    def apply_response(self, response: ListResponse) -> bool:
        if response.draw != self._draw:
            logger.info(
                "grid_stale_response_discarded table=%s draw=%s latest=%s",
                self.table_id,
                response.draw,
                self._draw,
            )
            return False
        self.rows = list(response.data)
        self.records_total = response.records_total
        self.records_filtered = response.records_filtered
        self.error = None
        return True

    async def set_page(self, page_index: int) -> bool:
        self.state = replace(self.state, page_index=max(page_index, 0))
        return await self.reload()

    async def set_search(self, term: str) -> bool:
        self.state = replace(self.state, search_term=term.strip(), page_index=0)
        return await self.reload()

    async def set_order(self, column_index: int, direction: str = "asc") -> bool:
        direction = "desc" if direction.lower() == "desc" else "asc"
        self.state = replace(
            self.state, sort_column_index=column_index, sort_direction=direction
        )
        return await self.reload()

    async def set_filter(self, key: str, value: str | None) -> bool:
        filters = dict(self.state.filters)
        if value in (None, ""):
            filters.pop(key, None)
        else:
            filters[key] = value
        self.state = replace(self.state, filters=filters, page_index=0)
        return await self.reload()

    def identity_at(self, index: int) -> RowIdentity | None:
        if not 0 <= index < len(self.rows):
            return None
        return RowIdentity.from_row_data(self.rows[index].get(ROW_DATA_KEY))

    def adjust_columns(self) -> None:
        self.columns_adjusted += 1

    def draw(self, keep_page: bool = True) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self.reload(reset_paging=not keep_page))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_pending(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
