from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class PanelEventType(str, Enum):
    """Notifications published by the panel and tab controllers."""

    PANEL_OPENING = "panel-opening"
    PANEL_OPENED = "panel-opened"
    PANEL_LOADING = "panel-loading"
    PANEL_DATA_LOADED = "panel-data-loaded"
    PANEL_ERROR = "panel-error"
    PANEL_CLOSING = "panel-closing"
    PANEL_CLOSED = "panel-closed"
    TAB_SWITCHING = "tab-switching"
    TAB_SWITCHED = "tab-switched"
    TAB_LOADED = "tab-loaded"
    TAB_ERROR = "tab-error"


@dataclass
class Event:
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


EventHandler = Callable[[Event], None]


@dataclass
class _Listener:
    name: str
    handler: EventHandler
    namespace: str | None


class EventBus:
    """Synchronous publish/subscribe with namespaced listeners.

    Handlers run in subscription order inside ``trigger``. Removing by
    namespace only touches listeners added under that namespace.
    """

    def __init__(self) -> None:
        self._listeners: list[_Listener] = []

    @staticmethod
    def _name(name: str | PanelEventType) -> str:
        return name.value if isinstance(name, PanelEventType) else name

    def on(
        self,
        name: str | PanelEventType,
        handler: EventHandler,
        *,
        namespace: str | None = None,
    ) -> None:
        self._listeners.append(_Listener(self._name(name), handler, namespace))

    def off(
        self,
        name: str | PanelEventType | None = None,
        *,
        namespace: str | None = None,
        handler: EventHandler | None = None,
    ) -> int:
        if name is None and namespace is None and handler is None:
            raise ValueError("off() needs an event name, a namespace or a handler")
        event_name = self._name(name) if name is not None else None

        def matches(listener: _Listener) -> bool:
            if event_name is not None and listener.name != event_name:
                return False
            if namespace is not None and listener.namespace != namespace:
                return False
            if handler is not None and listener.handler != handler:
                return False
            return True

        before = len(self._listeners)
        self._listeners = [item for item in self._listeners if not matches(item)]
        return before - len(self._listeners)

    def trigger(self, name: str | PanelEventType, **data: Any) -> Event:
        event = Event(name=self._name(name), data=data)
        for listener in [item for item in self._listeners if item.name == event.name]:
            listener.handler(event)
        logger.debug("client_event name=%s prevented=%s", event.name, event.default_prevented)
        return event

    def listener_count(self, name: str | PanelEventType, *, namespace: str | None = None) -> int:
        event_name = self._name(name)
        return sum(
            1
            for item in self._listeners
            if item.name == event_name and (namespace is None or item.namespace == namespace)
        )
