"""URL hash codec and an in-process stand-in for the browser location.

``#<entity>-<id>`` names an open record, ``#<entity>-<id>&tab=<tab_id>``
also names the active tab, and an empty hash means the panel is closed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

TAB_PARAM = "tab"

HashListener = Callable[[str], None]


@dataclass(frozen=True)
class HashTarget:
    entity: str
    record_id: int
    tab_id: str | None = None


def _strip(value: str | None) -> str:
    return (value or "").lstrip("#")


def format_hash(entity: str, record_id: int, tab_id: str | None = None) -> str:
    value = f"#{entity}-{record_id}"
    if tab_id:
        value += f"&{TAB_PARAM}={tab_id}"
    return value


def tab_from_hash(value: str | None) -> str | None:
    for part in _strip(value).split("&"):
        key, sep, tab_id = part.partition("=")
        if sep and key == TAB_PARAM and tab_id:
            return tab_id
    return None


def parse_hash(value: str | None) -> HashTarget | None:
    """Parse a location hash; ``None`` for an empty or malformed hash."""
    raw = _strip(value)
    if not raw:
        return None
    record_part = raw.split("&", 1)[0]
    entity, sep, id_part = record_part.rpartition("-")
    if not sep or not entity or not id_part.isdigit():
        return None
    record_id = int(id_part)
    if record_id <= 0:
        return None
    return HashTarget(entity=entity, record_id=record_id, tab_id=tab_from_hash(raw))


def with_tab(value: str | None, tab_id: str) -> str:
    record_part = _strip(value).split("&", 1)[0]
    if record_part and not record_part.startswith(f"{TAB_PARAM}="):
        return f"#{record_part}&{TAB_PARAM}={tab_id}"
    return f"#{TAB_PARAM}={tab_id}"


class HashLocation:
    """Current hash plus history entries.

    ``push`` and ``replace`` are programmatic writes and do not notify
    listeners. ``navigate`` and ``back`` model user navigation and do.
    """

    def __init__(self, initial: str = "") -> None:
        self._hash = self._normalize(initial)
        self._history: list[str] = [self._hash]
        self._listeners: list[HashListener] = []

    @staticmethod
    def _normalize(value: str | None) -> str:
        raw = _strip(value)
        return f"#{raw}" if raw else ""

    @property
    def hash(self) -> str:
        return self._hash

    @property
    def history(self) -> list[str]:
        return list(self._history)

    def push(self, value: str) -> None:
        self._hash = self._normalize(value)
        self._history.append(self._hash)

    def replace(self, value: str) -> None:
        self._hash = self._normalize(value)
        self._history[-1] = self._hash

    def clear(self) -> None:
        self.push("")

    def subscribe(self, listener: HashListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._hash)

    def navigate(self, value: str) -> None:
        self.push(value)
        self._notify()

    def back(self) -> bool:
        if len(self._history) < 2:
            return False
        self._history.pop()
        self._hash = self._history[-1]
        self._notify()
        return True
