from __future__ import annotations

import logging
from typing import Any, Protocol, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from datapanel.config import settings
from datapanel.schemas.datatable import (
    DataTablesRequest,
    DetailPayload,
    ListResponse,
    TabPayload,
)

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """A detail, tab or list fetch failed for a reason other than cancellation."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class Transport(Protocol):
    async def fetch_list(self, table_id: str, request: DataTablesRequest) -> ListResponse: ...

    async def fetch_detail(self, table_id: str, record_id: int) -> DetailPayload: ...

    async def fetch_tab(self, table_id: str, tab_id: str, record_id: int) -> TabPayload: ...


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("detail")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return f"HTTP {response.status_code}"


_ModelT = TypeVar("_ModelT", bound=BaseModel)


def _parse(model: type[_ModelT], payload: dict[str, Any]) -> _ModelT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise TransportError(f"Unexpected {model.__name__} payload") from exc


class HttpTransport:
    """Talks to the ``/datatables`` routes over ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.http_timeout,
            headers=headers,
        )

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("transport_request_failed method=%s url=%s error=%s", method, url, exc)
            raise TransportError(str(exc) or "Network error") from exc
        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning(
                "transport_bad_status method=%s url=%s status=%s", method, url, response.status_code
            )
            raise TransportError(message, status_code=response.status_code)
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError("Invalid JSON response", status_code=response.status_code) from exc
        if not isinstance(payload, dict):
            raise TransportError("Unexpected response shape", status_code=response.status_code)
        return payload

    async def fetch_list(self, table_id: str, request: DataTablesRequest) -> ListResponse:
        payload = await self._request(
            "POST", f"/{table_id}/data", json=request.model_dump(mode="json")
        )
        return _parse(ListResponse, payload)

    async def fetch_detail(self, table_id: str, record_id: int) -> DetailPayload:
        payload = await self._request("GET", f"/{table_id}/detail/{record_id}")
        return _parse(DetailPayload, payload)

    async def fetch_tab(self, table_id: str, tab_id: str, record_id: int) -> TabPayload:
        payload = await self._request("GET", f"/{table_id}/tabs/{tab_id}/{record_id}")
        return _parse(TabPayload, payload)
