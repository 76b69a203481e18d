"""Named extension chains for the grid query pipeline.

Each table owns five ordered chains, one per pipeline point. A callback
receives the value produced by the previous stage and returns a value of the
same shape. Registration order is application order; the engine does not
catch errors raised by a callback.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datapanel.schemas.datatable import ListRequest
    from datapanel.services.datatable import DataTable

logger = logging.getLogger(__name__)


class ExtensionPoint(str, Enum):
    columns = "columns"
    where = "where"
    joins = "joins"
    row_output = "row_output"
    response = "response"


@dataclass
class PipelineContext:
    """What a callback may inspect besides the value it transforms."""

    table: DataTable
    request: ListRequest
    raw_row: Any = None


ExtensionCallback = Callable[[Any, PipelineContext], Any]


@dataclass
class NamedCallback:
    name: str
    callback: ExtensionCallback


@dataclass
class ExtensionChain:
    point: ExtensionPoint
    callbacks: list[NamedCallback] = field(default_factory=list)

    def add(self, name: str, callback: ExtensionCallback) -> None:
        self.callbacks.append(NamedCallback(name=name, callback=callback))

    def remove(self, name: str) -> bool:
        before = len(self.callbacks)
        self.callbacks = [cb for cb in self.callbacks if cb.name != name]
        return len(self.callbacks) != before

    def names(self) -> list[str]:
        return [cb.name for cb in self.callbacks]

    def apply(self, value: Any, context: PipelineContext) -> Any:
        for named in self.callbacks:
            value = named.callback(value, context)
        return value

    def __len__(self) -> int:
        return len(self.callbacks)


class ExtensionRegistry:
    """Chains keyed by ``(table_id, point)``."""

    def __init__(self) -> None:
        self._chains: dict[tuple[str, ExtensionPoint], ExtensionChain] = {}

    def chain(self, table_id: str, point: ExtensionPoint | str) -> ExtensionChain:
        point = ExtensionPoint(point)
        key = (table_id, point)
        if key not in self._chains:
            self._chains[key] = ExtensionChain(point=point)
        return self._chains[key]

    def register(
        self,
        table_id: str,
        point: ExtensionPoint | str,
        callback: ExtensionCallback,
        *,
        name: str | None = None,
    ) -> None:
        name = name or getattr(callback, "__name__", repr(callback))
        self.chain(table_id, point).add(name, callback)
        logger.debug(
            "extension_registered table=%s point=%s name=%s",
            table_id,
            ExtensionPoint(point).value,
            name,
        )

    def unregister(self, table_id: str, point: ExtensionPoint | str, name: str) -> bool:
        key = (table_id, ExtensionPoint(point))
        chain = self._chains.get(key)
        if chain is None:
            return False
        return chain.remove(name)

    def apply(
        self,
        table_id: str,
        point: ExtensionPoint | str,
        value: Any,
        context: PipelineContext,
    ) -> Any:
        chain = self._chains.get((table_id, ExtensionPoint(point)))
        if chain is None:
            return value
        return chain.apply(value, context)

    def clear(self, table_id: str | None = None) -> None:
        if table_id is None:
            self._chains.clear()
            return
        for key in [key for key in self._chains if key[0] == table_id]:
            del self._chains[key]

    def extension(
        self, table_id: str, point: ExtensionPoint | str, *, name: str | None = None
    ) -> Callable[[ExtensionCallback], ExtensionCallback]:
        """Decorator form of :meth:`register`."""

        def decorator(func: ExtensionCallback) -> ExtensionCallback:
            self.register(table_id, point, func, name=name)
            return func

        return decorator
