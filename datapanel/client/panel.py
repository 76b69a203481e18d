"""Detail panel lifecycle.

The panel moves CLOSED -> OPENING -> OPEN -> CLOSING -> CLOSED. Opening and
closing only drive a timed transition; callers see two stable states. At most
one detail fetch is in flight: a new ``open`` cancels the previous fetch
before issuing its own, so an earlier response can never reach the region.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from enum import Enum

from datapanel.client.events import EventBus, PanelEventType
from datapanel.client.grid import GridClient
from datapanel.client.location import HashLocation, format_hash, parse_hash
from datapanel.client.regions import PanelRegion
from datapanel.client.tabs import TabController
from datapanel.client.timings import PanelTimings
from datapanel.client.transport import Transport, TransportError
from datapanel.schemas.datatable import DetailPayload, RowIdentity
from datapanel.services.datatable import TabDefinition

logger = logging.getLogger(__name__)

ESCAPE_KEY = "Escape"


class PanelPhase(str, Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"


class PanelController:
    def __init__(
        self,
        entity: str,
        transport: Transport,
        *,
        table_id: str | None = None,
        tabs: Iterable[TabDefinition] = (),
        location: HashLocation | None = None,
        events: EventBus | None = None,
        grid: GridClient | None = None,
        timings: PanelTimings | None = None,
    ) -> None:
        self.entity = entity
        self.table_id = table_id or entity
        self.transport = transport
        self.location = location or HashLocation()
        self.events = events or EventBus()
        self.grid = grid
        self.timings = timings or PanelTimings.from_settings()
        self.region = PanelRegion.from_tabs(entity, tabs)
        self.tabs = TabController(self) if self.region.tabs else None

        self.phase = PanelPhase.CLOSED
        self.record_id: int | None = None
        self._fetch: asyncio.Task | None = None
        self._loading_timer: asyncio.TimerHandle | None = None
        self._transition_timer: asyncio.TimerHandle | None = None
        self._error_timers: list[asyncio.TimerHandle] = []
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def is_open(self) -> bool:
        return self.phase in (PanelPhase.OPENING, PanelPhase.OPEN)

    @property
    def in_flight(self) -> asyncio.Task | None:
        if self._fetch is not None and not self._fetch.done():
            return self._fetch
        return None

    # Wiring

    def bind(self) -> None:
        """Follow hash navigation and open the record the current hash names."""
        if self._unsubscribe is None:
            self._unsubscribe = self.location.subscribe(self.on_hash_change)
        target = parse_hash(self.location.hash)
        if target is not None and target.entity == self.entity:
            self.open(target.record_id)

    def unbind(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._cancel_fetch()
        self._cancel_loading_timer()
        self._cancel_transition()
        for handle in self._error_timers:
            handle.cancel()
        self._error_timers.clear()
        if self.tabs is not None:
            self.tabs.cancel_pending()

    def on_hash_change(self, value: str) -> None:
        target = parse_hash(value)
        if target is None:
            if not value and self.is_open:
                self._close(update_hash=False)
            return
        if target.entity != self.entity:
            return
        if self.is_open and self.record_id == target.record_id:
            if self.tabs is not None:
                self.tabs.sync_from_hash()
            return
        self.open(target.record_id)

    # Input sources

    def activate_row(self, identity: RowIdentity | None, *, nested: bool = False) -> bool:
        if nested:
            logger.info("panel_nested_row_ignored entity=%s", self.entity)
            return False
        if identity is None or identity.entity != self.entity:
            return False
        return self.open(identity.id)

    def activate_trigger(self, identity: RowIdentity | None, *, nested: bool = False) -> bool:
        if nested:
            logger.info("panel_nested_trigger_ignored entity=%s", self.entity)
            return False
        if identity is None or identity.entity != self.entity or identity.id <= 0:
            return False
        return self.open(identity.id)

    def handle_key(self, key: str) -> bool:
        if key == ESCAPE_KEY and self.is_open:
            return self.close()
        return False

    # Transitions

    def open(self, record_id: int) -> bool:
        if self.is_open and self.record_id == record_id:
            return False
        event = self.events.trigger(
            PanelEventType.PANEL_OPENING, entity=self.entity, id=record_id
        )
        if event.default_prevented:
            return False

        self._cancel_fetch()
        self._cancel_transition()
        self.record_id = record_id
        self._write_hash(record_id)
        self.phase = PanelPhase.OPENING
        self.region.visible = True
        self._transition_timer = self._loop().call_later(
            self.timings.transition, self._finish_opening
        )
        if self.tabs is not None:
            self.tabs.prepare(record_id)
        self._start_fetch(record_id)
        return True

    def close(self) -> bool:
        if not self.is_open:
            return False
        event = self.events.trigger(
            PanelEventType.PANEL_CLOSING, entity=self.entity, id=self.record_id
        )
        if event.default_prevented:
            return False
        self._close(update_hash=True)
        return True

    def refresh(self) -> bool:
        if not self.is_open or self.record_id is None:
            return False
        self._cancel_fetch()
        self._start_fetch(self.record_id)
        return True

    def _close(self, *, update_hash: bool) -> None:
        self._cancel_fetch()
        self._cancel_loading_timer()
        self.region.loading_visible = False
        if self.tabs is not None:
            self.tabs.cancel_pending()
        if update_hash:
            self.location.clear()
        self._cancel_transition()
        self.phase = PanelPhase.CLOSING
        self.region.visible = False
        self._transition_timer = self._loop().call_later(
            self.timings.transition, self._finish_closing
        )

    def _finish_opening(self) -> None:
        self._transition_timer = None
        if self.phase is not PanelPhase.OPENING:
            return
        self.phase = PanelPhase.OPEN
        if self.grid is not None:
            self.grid.adjust_columns()
        self.events.trigger(PanelEventType.PANEL_OPENED, entity=self.entity, id=self.record_id)

    def _finish_closing(self) -> None:
        self._transition_timer = None
        if self.phase is not PanelPhase.CLOSING:
            return
        self.phase = PanelPhase.CLOSED
        self.record_id = None
        if self.grid is not None:
            self.grid.adjust_columns()
            self.grid.draw(keep_page=True)
        self.events.trigger(PanelEventType.PANEL_CLOSED, entity=self.entity)

    def _write_hash(self, record_id: int) -> None:
        current = parse_hash(self.location.hash)
        if current is not None and current.entity == self.entity and current.record_id == record_id:
            return
        self.location.push(format_hash(self.entity, record_id))

    # Detail fetch

    def _start_fetch(self, record_id: int) -> None:
        self.events.trigger(PanelEventType.PANEL_LOADING, entity=self.entity, id=record_id)
        self._cancel_loading_timer()
        loop = self._loop()
        self._loading_timer = loop.call_later(self.timings.loading_delay, self._show_loading)
        self._fetch = loop.create_task(self._load(record_id))

    async def _load(self, record_id: int) -> None:
        try:
            payload = await self.transport.fetch_detail(self.table_id, record_id)
        except asyncio.CancelledError:
            logger.debug("panel_fetch_cancelled entity=%s id=%s", self.entity, record_id)
            raise
        except TransportError as exc:
            self._fetch = None
            if self.record_id != record_id:
                return
            logger.warning(
                "panel_fetch_failed entity=%s id=%s error=%s", self.entity, record_id, exc.message
            )
            self.show_error(exc.message)
            self.events.trigger(
                PanelEventType.PANEL_ERROR,
                entity=self.entity,
                id=record_id,
                message=exc.message,
                status=exc.status_code,
            )
            return
        self._fetch = None
        if self.record_id != record_id or not self.is_open:
            logger.info("panel_payload_discarded entity=%s id=%s", self.entity, record_id)
            return
        self._apply_payload(record_id, payload)

    def _apply_payload(self, record_id: int, payload: DetailPayload) -> None:
        self._cancel_loading_timer()
        self.region.loading_visible = False
        if payload.title:
            self.region.title = payload.title

        shipped: list[str] = []
        for tab_id, html in payload.tabs.items():
            tab = self.region.tab(tab_id)
            if tab is None:
                logger.warning("panel_unknown_tab entity=%s tab=%s", self.entity, tab_id)
                continue
            tab.html = html
            tab.error = None
            tab.loading = False
            shipped.append(tab_id)
        if payload.content is not None:
            self.region.content = payload.content

        if self.tabs is not None:
            self.tabs.reset(shipped)
        self.events.trigger(
            PanelEventType.PANEL_DATA_LOADED, entity=self.entity, id=record_id, data=payload
        )

    # Loading indicator and inline errors

    def _show_loading(self) -> None:
        self._loading_timer = None
        self.region.loading_visible = True

    def _cancel_loading_timer(self) -> None:
        if self._loading_timer is not None:
            self._loading_timer.cancel()
            self._loading_timer = None

    def show_error(self, message: str) -> None:
        self._cancel_loading_timer()
        self.region.loading_visible = False
        self.region.show_error(message)
        handle = self._loop().call_later(self.timings.error_dismiss, self._dismiss_error, message)
        self._error_timers.append(handle)

    def _dismiss_error(self, message: str) -> None:
        self.region.dismiss_error(message)

    # Helpers

    def _cancel_fetch(self) -> None:
        if self._fetch is not None and not self._fetch.done():
            self._fetch.cancel()
        self._fetch = None

    def _cancel_transition(self) -> None:
        if self._transition_timer is not None:
            self._transition_timer.cancel()
            self._transition_timer = None

    @staticmethod
    def _loop() -> asyncio.AbstractEventLoop:
        return asyncio.get_running_loop()
