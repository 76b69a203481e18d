"""Debounced grid refresh on named update events.

Each registered entity listens on its trigger events under its own
namespace. Timers are per event name within an entity: a burst on one event
coalesces into one refresh, while different event names never cancel each
other's timers.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from datapanel.client.events import Event, EventBus
from datapanel.client.regions import Document, GridElement
from datapanel.client.timings import PanelTimings

logger = logging.getLogger(__name__)

NAMESPACE_PREFIX = "autorefresh-"

ReloadCallback = Callable[[GridElement], Any]


class RefreshConfig(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    grid_selector: str = Field(min_length=1)
    events: list[str] = Field(min_length=1)
    reload_callback: ReloadCallback | None = None
    reset_paging: bool = False

    @field_validator("events", mode="after")
    @classmethod
    def validate_events(cls, v: list[str]) -> list[str]:
        names = [name.strip() for name in v if name and name.strip()]
        if not names:
            raise ValueError("at least one trigger event is required")
        return names


@dataclass
class RefreshSubscription:
    entity: str
    config: RefreshConfig
    timers: dict[str, asyncio.TimerHandle] = field(default_factory=dict)

    @property
    def namespace(self) -> str:
        return f"{NAMESPACE_PREFIX}{self.entity}"

    def cancel_timers(self) -> None:
        for handle in self.timers.values():
            handle.cancel()
        self.timers.clear()


class AutoRefreshRegistry:
    def __init__(
        self,
        events: EventBus,
        document: Document,
        *,
        debounce: float | None = None,
    ) -> None:
        self.events = events
        self.document = document
        self.debounce = (
            debounce if debounce is not None else PanelTimings.from_settings().refresh_debounce
        )
        self._subscriptions: dict[str, RefreshSubscription] = {}
        self._tasks: set[asyncio.Task] = set()

    def register(self, entity: str, config: RefreshConfig | Mapping[str, Any]) -> bool:
        if not entity:
            logger.error("autorefresh_register_invalid reason=missing_entity")
            return False
        if not isinstance(config, RefreshConfig):
            try:
                config = RefreshConfig.model_validate(dict(config))
            except ValidationError as exc:
                logger.error(
                    "autorefresh_register_invalid entity=%s errors=%s",
                    entity,
                    exc.errors(include_url=False, include_context=False),
                )
                return False

        if entity in self._subscriptions:
            self.unregister(entity)
        subscription = RefreshSubscription(entity=entity, config=config)
        self._subscriptions[entity] = subscription
        for name in config.events:
            self.events.on(
                name,
                partial(self._on_event, entity, name),
                namespace=subscription.namespace,
            )
        logger.info(
            "autorefresh_registered entity=%s selector=%s events=%s",
            entity,
            config.grid_selector,
            ",".join(config.events),
        )
        return True

    def unregister(self, entity: str) -> bool:
        subscription = self._subscriptions.pop(entity, None)
        if subscription is None:
            logger.warning("autorefresh_unregister_unknown entity=%s", entity)
            return False
        subscription.cancel_timers()
        self.events.off(namespace=subscription.namespace)
        logger.info("autorefresh_unregistered entity=%s", entity)
        return True

    def registered_entities(self) -> list[str]:
        return list(self._subscriptions)

    def get_config(self, entity: str) -> RefreshConfig | None:
        subscription = self._subscriptions.get(entity)
        return subscription.config if subscription else None

    def pending_events(self, entity: str) -> list[str]:
        subscription = self._subscriptions.get(entity)
        return list(subscription.timers) if subscription else []

    def _on_event(self, entity: str, name: str, event: Event) -> None:
        subscription = self._subscriptions.get(entity)
        if subscription is None:
            return
        previous = subscription.timers.pop(name, None)
        if previous is not None:
            previous.cancel()
        subscription.timers[name] = asyncio.get_running_loop().call_later(
            self.debounce, self._fire, entity, name
        )

    def _fire(self, entity: str, name: str) -> None:
        subscription = self._subscriptions.get(entity)
        if subscription is None:
            return
        subscription.timers.pop(name, None)
        self.refresh(entity)

    def refresh(self, entity: str) -> bool:
        """Reload the entity's grid now; ``False`` when the refresh is skipped."""
        subscription = self._subscriptions.get(entity)
        if subscription is None:
            return False
        config = subscription.config
        element = self.document.find_grid(config.grid_selector)
        if element is None:
            logger.debug(
                "autorefresh_skipped entity=%s reason=absent selector=%s",
                entity,
                config.grid_selector,
            )
            return False
        if element.nested:
            logger.debug(
                "autorefresh_skipped entity=%s reason=nested selector=%s",
                entity,
                config.grid_selector,
            )
            return False

        if config.reload_callback is not None:
            result = config.reload_callback(element)
            if inspect.isawaitable(result):
                self._track(asyncio.ensure_future(result))
            return True
        if element.client is None:
            logger.debug("autorefresh_skipped entity=%s reason=no_client", entity)
            return False
        self._track(
            asyncio.get_running_loop().create_task(
                element.client.reload(reset_paging=config.reset_paging)
            )
        )
        return True

    def _track(self, task: asyncio.Future) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def close(self) -> None:
        for entity in list(self._subscriptions):
            self.unregister(entity)
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
