from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from datapanel.api.datatables import router
from datapanel.api.deps import get_db, get_table_registry
from datapanel.errors import register_error_handlers
from datapanel.schemas.datatable import ROW_DATA_KEY
from datapanel.services.registry import DataTableRegistry
from tests.mocks import WidgetTable


class AdminWidgetTable(WidgetTable):
    table_id = "admin_widgets"

    def can_access(self, user):
        return "admin" in user.get("roles", [])


@pytest.fixture()
def api_registry():
    registry = DataTableRegistry()
    registry.register(WidgetTable)
    registry.register(AdminWidgetTable)
    return registry


@pytest.fixture()
def client(widgets, api_registry):
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(router)

    def _db():
        yield widgets

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_table_registry] = lambda: api_registry
    return TestClient(app, raise_server_exceptions=False)


def _ids(payload):
    return [row[ROW_DATA_KEY]["id"] for row in payload["data"]]


def test_registry_info(client):
    response = client.get("/datatables/", headers={"X-User-Roles": "viewer"})

    assert response.status_code == 200
    body = response.json()
    assert body["total_datatables"] == 2
    assert body["accessible_datatables"] == 1
    assert body["datatables"]["widgets"]["entity"] == "widget"


def test_unknown_table_is_404(client):
    response = client.post("/datatables/gadgets/data", json={"draw": 1})

    assert response.status_code == 404
    assert response.json()["message"] == "Unregistered datatable"


def test_access_denied_is_403(client):
    denied = client.get("/datatables/admin_widgets/data")
    allowed = client.get("/datatables/admin_widgets/data", headers={"X-User-Roles": "admin"})

    assert denied.status_code == 403
    assert denied.json()["code"] == "http_403"
    assert allowed.status_code == 200


def test_post_json_list_request(client):
    response = client.post(
        "/datatables/widgets/data",
        json={
            "draw": 1,
            "start": 0,
            "length": 2,
            "search": {"value": ""},
            "order": [{"column": 0, "dir": "asc"}],
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["draw"] == 1
    assert body["recordsTotal"] == 5
    assert body["recordsFiltered"] == 5
    assert _ids(body) == [1, 2]
    assert body["data"][0]["DT_RowId"] == "widget-1"


def test_unaligned_start_is_honoured(client):
    response = client.post(
        "/datatables/widgets/data",
        json={
            "draw": 1,
            "start": 3,
            "length": 2,
            "search": "",
            "order": [{"column": 0, "dir": "asc"}],
        },
    )

    assert response.status_code == 200
    assert _ids(response.json()) == [4, 5]


def test_post_form_list_request(client):
    response = client.post(
        "/datatables/widgets/data",
        data={
            "draw": "4",
            "start": "2",
            "length": "2",
            "search[value]": "",
            "order[0][column]": "0",
            "order[0][dir]": "asc",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["draw"] == 4
    assert _ids(body) == [3, 4]


def test_get_bracketed_query_with_search_and_filter(client):
    response = client.get(
        "/datatables/widgets/data",
        params={
            "draw": "5",
            "search[value]": "o",
            "status_filter": "active",
            "order[0][column]": "1",
            "order[0][dir]": "desc",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["recordsTotal"] == 3
    assert body["recordsFiltered"] == 2
    assert [row["name"] for row in body["data"]] == ["Gizmo", "Cog"]


def test_json_filter_keys_are_accepted(client):
    response = client.post(
        "/datatables/widgets/data",
        json={"draw": 2, "search": {"value": ""}, "order": [], "status_filter": "inactive"},
    )

    assert response.status_code == 200
    assert sorted(_ids(response.json())) == [2, 5]


def test_invalid_list_request_is_400(client):
    response = client.post(
        "/datatables/widgets/data",
        json={"draw": "not-a-number", "search": {"value": ""}},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_list_request"


def test_invalid_filter_option_is_400(client):
    response = client.get("/datatables/widgets/data", params={"status_filter": "archived"})

    assert response.status_code == 400
    assert "Invalid option" in response.json()["message"]


def test_non_object_json_body_is_400(client):
    response = client.post("/datatables/widgets/data", json=[1, 2, 3])

    assert response.status_code == 400


def test_detail_payload(client):
    response = client.get("/datatables/widgets/detail/3")

    assert response.status_code == 200
    assert response.json() == {
        "title": "Widget: Gizmo",
        "tabs": {"info": "<p>info of Gizmo</p>"},
        "content": None,
    }


def test_detail_missing_record_is_404(client):
    response = client.get("/datatables/widgets/detail/99")

    assert response.status_code == 404
    assert response.json()["message"] == "Record not found"


def test_lazy_tab_payload(client):
    response = client.get("/datatables/widgets/tabs/history/3")

    assert response.status_code == 200
    assert response.json() == {"html": "<p>history of Gizmo</p>"}
    assert client.get("/datatables/widgets/tabs/unknown/3").status_code == 404


def test_dashboard_html(client):
    response = client.get("/datatables/widgets", params={"status_filter": "active"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert 'id="widget-datatable"' in response.text
    assert "/datatables/widgets/data" in response.text
    assert '<option value="active" selected>Active</option>' in response.text
    assert 'data-stat="total_widgets"' in response.text


def test_request_id_is_echoed(client):
    response = client.get("/datatables/gadgets", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 404
    assert response.json()["request_id"] == "req-123"
    assert response.headers["X-Request-ID"] == "req-123"
