"""Client coordination engine: panel, tabs, auto-refresh and the grid they drive."""

from datapanel.client.auto_refresh import AutoRefreshRegistry, RefreshConfig
from datapanel.client.events import Event, EventBus, PanelEventType
from datapanel.client.grid import GridClient
from datapanel.client.location import HashLocation, format_hash, parse_hash
from datapanel.client.panel import PanelController, PanelPhase
from datapanel.client.regions import Document, PanelRegion
from datapanel.client.tabs import TabController
from datapanel.client.timings import PanelTimings
from datapanel.client.transport import HttpTransport, Transport, TransportError

__all__ = [
    "AutoRefreshRegistry",
    "Document",
    "Event",
    "EventBus",
    "GridClient",
    "HashLocation",
    "HttpTransport",
    "PanelController",
    "PanelEventType",
    "PanelPhase",
    "PanelRegion",
    "PanelTimings",
    "RefreshConfig",
    "TabController",
    "Transport",
    "TransportError",
    "format_hash",
    "parse_hash",
]
