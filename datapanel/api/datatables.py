import logging
from collections.abc import Mapping
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from datapanel.api.deps import get_current_user, get_db, get_hooks, get_table_registry
from datapanel.config import settings
from datapanel.schemas.datatable import (
    FILTER_PARAM_SUFFIX,
    DataTablesRequest,
    DetailPayload,
    ListRequest,
    ListResponse,
    RegistryInfo,
    TabPayload,
)
from datapanel.services.datatable import DataTable
from datapanel.services.filters import FilterValidationError, filter_values_from_params
from datapanel.services.layout import LayoutHooks, render_dashboard
from datapanel.services.registry import DataTableRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/datatables", tags=["datatables"])


def _require_table(registry: DataTableRegistry, table_id: str, user: Any) -> DataTable:
    table = registry.get(table_id)
    if table is None:
        raise HTTPException(status_code=404, detail="Unregistered datatable")
    if not table.can_access(user):
        raise HTTPException(status_code=403, detail="Access denied")
    return table


def _parse_wire(payload: Mapping[str, Any]) -> DataTablesRequest:
    if isinstance(payload.get("search"), dict) or isinstance(payload.get("order"), list):
        data = dict(payload)
        filters = dict(data.get("filters") or {})
        for key in list(data):
            if key.endswith(FILTER_PARAM_SUFFIX) and data[key] not in (None, ""):
                filters[key[: -len(FILTER_PARAM_SUFFIX)]] = str(data.pop(key))
        data["filters"] = filters
        return DataTablesRequest.model_validate(data)
    return DataTablesRequest.from_flat_params(payload)


def _run_list(
    db: Session,
    registry: DataTableRegistry,
    table: DataTable,
    payload: Mapping[str, Any],
) -> ListResponse:
    try:
        wire = _parse_wire(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail={
                "code": "invalid_list_request",
                "message": "Invalid list request",
                "details": exc.errors(include_url=False, include_context=False),
            },
        ) from exc
    list_request = ListRequest.from_wire(
        wire,
        max_page_size=settings.max_page_size,
        default_page_size=settings.default_page_size,
    )
    try:
        return registry.engine(db, table).process(list_request)
    except FilterValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/", response_model=RegistryInfo)
def registry_info(
    registry: DataTableRegistry = Depends(get_table_registry),
    user: dict = Depends(get_current_user),
):
    return registry.info(user)


@router.get("/{table_id}", response_class=HTMLResponse)
def dashboard(
    table_id: str,
    request: Request,
    db: Session = Depends(get_db),
    registry: DataTableRegistry = Depends(get_table_registry),
    hooks: LayoutHooks = Depends(get_hooks),
    user: dict = Depends(get_current_user),
):
    table = _require_table(registry, table_id, user)
    stats = table.statistics(db) if table.has_stats else None
    html = render_dashboard(
        table,
        hooks,
        filter_values_from_params(table.filters, request.query_params),
        stats=stats,
        data_url=str(request.url_for("datatable_data", table_id=table_id)),
    )
    return HTMLResponse(html)


@router.get(
    "/{table_id}/data",
    response_model=ListResponse,
    response_model_by_alias=True,
    name="datatable_data",
)
def datatable_data_query(
    table_id: str,
    request: Request,
    db: Session = Depends(get_db),
    registry: DataTableRegistry = Depends(get_table_registry),
    user: dict = Depends(get_current_user),
):
    table = _require_table(registry, table_id, user)
    return _run_list(db, registry, table, dict(request.query_params))


@router.post("/{table_id}/data", response_model=ListResponse, response_model_by_alias=True)
async def datatable_data(
    table_id: str,
    request: Request,
    db: Session = Depends(get_db),
    registry: DataTableRegistry = Depends(get_table_registry),
    user: dict = Depends(get_current_user),
):
    table = _require_table(registry, table_id, user)
    content_type = (request.headers.get("content-type") or "").lower()
    if "application/json" in content_type:
        payload = await request.json()
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="List request must be a JSON object")
    else:
        form = await request.form()
        payload = {key: value for key, value in form.items() if isinstance(value, str)}
    return _run_list(db, registry, table, payload)


@router.get("/{table_id}/detail/{record_id}", response_model=DetailPayload)
def datatable_detail(
    table_id: str,
    record_id: int,
    db: Session = Depends(get_db),
    registry: DataTableRegistry = Depends(get_table_registry),
    user: dict = Depends(get_current_user),
):
    table = _require_table(registry, table_id, user)
    payload = table.build_detail(db, record_id)
    if payload is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return payload


@router.get("/{table_id}/tabs/{tab_id}/{record_id}", response_model=TabPayload)
def datatable_tab(
    table_id: str,
    tab_id: str,
    record_id: int,
    db: Session = Depends(get_db),
    registry: DataTableRegistry = Depends(get_table_registry),
    user: dict = Depends(get_current_user),
):
    table = _require_table(registry, table_id, user)
    payload = table.build_tab(db, record_id, tab_id)
    if payload is None:
        raise HTTPException(status_code=404, detail="Tab or record not found")
    return payload
