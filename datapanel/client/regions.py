"""Page regions owned by the client controllers.

A region is the state a controller renders into: visibility, title, tab
fragments, inline errors. Each region has exactly one writer.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from datapanel.services.datatable import TabDefinition, order_tabs

if TYPE_CHECKING:
    from datapanel.client.grid import GridClient

logger = logging.getLogger(__name__)


@dataclass
class TabRegion:
    tab_id: str
    title: str = ""
    deferred: bool = False
    active: bool = False
    html: str = ""
    loading: bool = False
    error: str | None = None


@dataclass
class PanelRegion:
    entity: str
    visible: bool = False
    title: str = ""
    content: str | None = None
    loading_visible: bool = False
    errors: list[str] = field(default_factory=list)
    tabs: dict[str, TabRegion] = field(default_factory=dict)

    @classmethod
    def from_tabs(cls, entity: str, tabs: Iterable[TabDefinition] = ()) -> PanelRegion:
        ordered = order_tabs(list(tabs))
        regions = {
            tab.id: TabRegion(
                tab_id=tab.id,
                title=tab.title,
                deferred=tab.deferred,
                active=index == 0,
            )
            for index, tab in enumerate(ordered)
        }
        return cls(entity=entity, tabs=regions)

    def tab(self, tab_id: str) -> TabRegion | None:
        return self.tabs.get(tab_id)

    def show_error(self, message: str) -> None:
        self.errors.insert(0, message)

    def dismiss_error(self, message: str) -> bool:
        if message in self.errors:
            self.errors.remove(message)
            return True
        return False


@dataclass
class GridElement:
    selector: str
    client: GridClient | None = None
    nested: bool = False


class Document:
    """Grid elements currently present on the page, by selector."""

    def __init__(self) -> None:
        self._grids: dict[str, GridElement] = {}

    def add_grid(
        self, selector: str, client: GridClient | None = None, *, nested: bool = False
    ) -> GridElement:
        element = GridElement(selector=selector, client=client, nested=nested)
        self._grids[selector] = element
        return element

    def remove_grid(self, selector: str) -> bool:
        return self._grids.pop(selector, None) is not None

    def find_grid(self, selector: str) -> GridElement | None:
        return self._grids.get(selector)
