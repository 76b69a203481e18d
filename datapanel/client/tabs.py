"""Tab switching and lazy tab loads inside a panel region.

``switch_to`` is the only transition; pointer, keyboard and hash input all
feed it. Lazy loads are per tab: switching away does not cancel a load, a
second activation while one is in flight does not start another, and a
response only fills its own tab. Loads still pending when the panel moves to
another record are cancelled by ``prepare``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from datapanel.client.events import PanelEventType
from datapanel.client.location import tab_from_hash, with_tab
from datapanel.client.transport import TransportError
from datapanel.services.datatable import TabDefinition, order_tabs

if TYPE_CHECKING:
    from datapanel.client.panel import PanelController

logger = logging.getLogger(__name__)

PREVIOUS_KEYS = {"ArrowLeft", "ArrowUp"}
NEXT_KEYS = {"ArrowRight", "ArrowDown"}
SELECT_KEYS = {"Enter", " "}


class TabController:
    def __init__(self, panel: PanelController) -> None:
        self.panel = panel
        self.definitions: list[TabDefinition] = order_tabs(
            [
                TabDefinition(id=tab.tab_id, title=tab.title, deferred=tab.deferred)
                for tab in panel.region.tabs.values()
            ]
        )
        if not self.definitions:
            raise ValueError("TabController needs at least one tab")
        self.active_tab_id: str = self.definitions[0].id
        self.loaded_tab_ids: set[str] = {self.first_tab_id}
        self._fetches: dict[str, asyncio.Task] = {}

    @property
    def first_tab_id(self) -> str:
        return self.definitions[0].id

    def _definition(self, tab_id: str) -> TabDefinition | None:
        for definition in self.definitions:
            if definition.id == tab_id:
                return definition
        return None

    # Accessors

    def current(self) -> str:
        return self.active_tab_id

    def all_tabs(self) -> list[str]:
        return [definition.id for definition in self.definitions]

    def is_loading(self, tab_id: str) -> bool:
        task = self._fetches.get(tab_id)
        return task is not None and not task.done()

    # Panel lifecycle

    def prepare(self, record_id: int) -> None:
        """The panel is opening ``record_id``: forget what was loaded before."""
        self.cancel_pending()
        self.loaded_tab_ids = {self.first_tab_id}
        for region in self.panel.region.tabs.values():
            if region.deferred:
                region.html = ""
                region.error = None

    def reset(self, shipped_tab_ids: Iterable[str]) -> None:
        """A detail payload arrived; its tabs count as loaded.

        Deferred tabs already loaded since ``prepare`` belong to this record
        and stay loaded.
        """
        known = set(self.all_tabs())
        deferred = {definition.id for definition in self.definitions if definition.deferred}
        self.loaded_tab_ids = (
            {self.first_tab_id}
            | (set(shipped_tab_ids) & known)
            | (self.loaded_tab_ids & deferred)
        )
        self.sync_from_hash()

    def sync_from_hash(self) -> None:
        tab_id = tab_from_hash(self.panel.location.hash)
        if tab_id is not None and self._definition(tab_id) is not None:
            if tab_id == self.active_tab_id:
                self._maybe_load(self._definition(tab_id))
            else:
                self.switch_to(tab_id)
            return
        if tab_id is not None:
            logger.warning("tab_unknown_in_hash entity=%s tab=%s", self.panel.entity, tab_id)
        if self.active_tab_id != self.first_tab_id:
            self._activate(self.first_tab_id, update_hash=False)

    def cancel_pending(self) -> None:
        for tab_id, task in list(self._fetches.items()):
            if not task.done():
                task.cancel()
            region = self.panel.region.tab(tab_id)
            if region is not None:
                region.loading = False
        self._fetches.clear()

    # Transitions

    def switch_to(self, tab_id: str) -> bool:
        if self._definition(tab_id) is None:
            logger.warning("tab_unknown entity=%s tab=%s", self.panel.entity, tab_id)
            return False
        if tab_id == self.active_tab_id:
            return False
        event = self.panel.events.trigger(
            PanelEventType.TAB_SWITCHING,
            entity=self.panel.entity,
            from_tab=self.active_tab_id,
            to_tab=tab_id,
        )
        if event.default_prevented:
            return False
        self._activate(tab_id, update_hash=True)
        return True

    def go_to(self, tab_id: str) -> bool:
        return self.switch_to(tab_id)

    def handle_key(self, key: str, tab_id: str | None = None) -> bool:
        """Keyboard input on the tab that has focus (the active tab by default)."""
        ids = self.all_tabs()
        focused = tab_id if tab_id in ids else self.active_tab_id
        index = ids.index(focused)
        if key in PREVIOUS_KEYS:
            return self.switch_to(ids[(index - 1) % len(ids)])
        if key in NEXT_KEYS:
            return self.switch_to(ids[(index + 1) % len(ids)])
        if key in SELECT_KEYS:
            return self.switch_to(focused)
        return False

    def _activate(self, tab_id: str, *, update_hash: bool) -> None:
        for region in self.panel.region.tabs.values():
            region.active = region.tab_id == tab_id
        self.active_tab_id = tab_id
        if update_hash:
            self.panel.location.replace(with_tab(self.panel.location.hash, tab_id))
        self.panel.events.trigger(
            PanelEventType.TAB_SWITCHED, entity=self.panel.entity, tab_id=tab_id
        )
        self._maybe_load(self._definition(tab_id))

    # Lazy loads

    def _maybe_load(self, definition: TabDefinition | None) -> None:
        if definition is None or not definition.deferred:
            return
        if definition.id in self.loaded_tab_ids or self.is_loading(definition.id):
            return
        record_id = self.panel.record_id
        if record_id is None:
            return
        region = self.panel.region.tab(definition.id)
        if region is not None:
            region.loading = True
            region.error = None
        self._fetches[definition.id] = asyncio.get_running_loop().create_task(
            self._load(definition.id, record_id)
        )

    async def _load(self, tab_id: str, record_id: int) -> None:
        try:
            payload = await self.panel.transport.fetch_tab(self.panel.table_id, tab_id, record_id)
        except asyncio.CancelledError:
            logger.debug("tab_fetch_cancelled entity=%s tab=%s", self.panel.entity, tab_id)
            raise
        except TransportError as exc:
            self._fetches.pop(tab_id, None)
            region = self.panel.region.tab(tab_id)
            if region is not None:
                region.loading = False
                region.error = exc.message
            logger.warning(
                "tab_fetch_failed entity=%s tab=%s id=%s error=%s",
                self.panel.entity,
                tab_id,
                record_id,
                exc.message,
            )
            self.panel.events.trigger(
                PanelEventType.TAB_ERROR,
                entity=self.panel.entity,
                tab_id=tab_id,
                message=exc.message,
            )
            return

        self._fetches.pop(tab_id, None)
        if self.panel.record_id != record_id:
            logger.info("tab_payload_discarded entity=%s tab=%s", self.panel.entity, tab_id)
            return
        region = self.panel.region.tab(tab_id)
        if region is None:
            logger.warning("tab_region_missing entity=%s tab=%s", self.panel.entity, tab_id)
            return
        region.html = payload.html
        region.loading = False
        region.error = None
        self.loaded_tab_ids.add(tab_id)
        self.panel.events.trigger(
            PanelEventType.TAB_LOADED, entity=self.panel.entity, tab_id=tab_id
        )
