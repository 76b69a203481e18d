import logging

import pytest

from datapanel.client.grid import GridClient
from datapanel.client.transport import TransportError
from datapanel.schemas.datatable import ListResponse, RowIdentity
from tests.mocks import settle


def _row(record_id: int) -> dict:
    identity = RowIdentity(id=record_id, entity="widget")
    return {
        "name": f"<b>{record_id}</b>",
        "DT_RowId": identity.row_id,
        "DT_RowData": identity.to_row_data(),
    }


@pytest.mark.asyncio
async def test_reload_issues_increasing_draw_tokens(transport):
    transport.list_rows = [_row(1), _row(2)]
    grid = GridClient(transport, "widgets", page_size=25)

    assert await grid.reload() is True
    assert await grid.reload() is True

    assert [call.draw for call in transport.list_calls] == [1, 2]
    assert transport.list_calls[0].length == 25
    assert grid.records_total == 2
    assert len(grid.rows) == 2


def test_stale_response_is_discarded(transport, caplog):
    grid = GridClient(transport, "widgets")
    first = grid.next_request()
    second = grid.next_request()

    with caplog.at_level(logging.INFO, logger="datapanel.client.grid"):
        assert grid.apply_response(ListResponse(draw=first.draw_token, data=[_row(1)])) is False
    assert grid.rows == []
    assert "grid_stale_response_discarded table=widgets draw=1 latest=2" in caplog.text

    assert grid.apply_response(ListResponse(draw=second.draw_token, data=[_row(2)])) is True
    assert grid.identity_at(0) == RowIdentity(id=2, entity="widget")


@pytest.mark.asyncio
async def test_state_changes_reset_paging(transport):
    grid = GridClient(transport, "widgets")

    await grid.set_page(4)
    assert transport.list_calls[-1].start == 40

    await grid.set_search("  cog ")
    assert grid.state.page_index == 0
    assert transport.list_calls[-1].search.value == "cog"

    await grid.set_page(2)
    await grid.set_filter("status", "active")
    assert transport.list_calls[-1].start == 0
    assert transport.list_calls[-1].filters == {"status": "active"}

    await grid.set_filter("status", "")
    assert transport.list_calls[-1].filters == {}

    await grid.set_order(2, "DESC")
    assert transport.list_calls[-1].order[0].column == 2
    assert transport.list_calls[-1].order[0].dir == "desc"


@pytest.mark.asyncio
async def test_transport_failure_keeps_previous_rows(transport):
    transport.list_rows = [_row(1)]
    grid = GridClient(transport, "widgets")
    await grid.reload()

    transport.list_error = TransportError("Service unavailable", status_code=503)
    assert await grid.reload() is False

    assert grid.error == "Service unavailable"
    assert grid.identity_at(0).id == 1


def test_identity_comes_from_row_data_only(transport):
    grid = GridClient(transport, "widgets")
    grid.rows = [{"name": "x", "DT_RowId": "widget-5"}, _row(6)]

    assert grid.identity_at(0) is None
    assert grid.identity_at(1).row_id == "widget-6"
    assert grid.identity_at(5) is None


@pytest.mark.asyncio
async def test_draw_can_keep_or_reset_page(transport):
    grid = GridClient(transport, "widgets")
    await grid.set_page(3)

    grid.draw(keep_page=True)
    await settle()
    assert transport.list_calls[-1].start == 30

    grid.draw(keep_page=False)
    await settle()
    assert transport.list_calls[-1].start == 0
