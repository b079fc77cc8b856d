"""Explicit in-process event dispatcher.

A dispatcher table maps each event type to an ordered list of handlers.
Inline handlers run inside ``publish`` and their errors reach the publisher.
Background handlers run as tracked tasks outside the caller; their failures are
logged, and ``drain()`` waits until every spawned task (including tasks spawned
by other background handlers) has finished.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from simrun_api.common.logging import log_context

__all__ = ["EventBus", "EventHandler"]

logger = logging.getLogger(__name__)

TEvent = TypeVar("TEvent")
EventHandler = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class _Subscription:
    handler: EventHandler
    background: bool
    name: str


class EventBus:
    """Ordered fan-out of domain events to registered handlers."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[_Subscription]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def subscribe(
        self,
        event_type: type[TEvent],
        handler: Callable[[TEvent], Awaitable[None]],
        *,
        background: bool = False,
    ) -> None:
        """Register ``handler`` for ``event_type``; handlers run in registration order."""

        name = getattr(handler, "__qualname__", None) or repr(handler)
        self._handlers.setdefault(event_type, []).append(
            _Subscription(handler=handler, background=background, name=name)
        )

    def handlers_for(self, event_type: type) -> list[str]:
        return [sub.name for sub in self._handlers.get(event_type, ())]

    async def publish(self, event: object) -> None:
        event_name = type(event).__name__
        subscriptions = list(self._handlers.get(type(event), ()))
        logger.debug(
            "events.publish",
            extra=log_context(event=event_name, handlers=len(subscriptions)),
        )
        for sub in subscriptions:
            if sub.background:
                self._spawn(sub, event)
            else:
                await sub.handler(event)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every background handler task, including ones spawned meanwhile."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, sub: _Subscription, event: object) -> None:
        task = asyncio.create_task(
            self._run_background(sub, event),
            name=f"event:{type(event).__name__}:{sub.name}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _run_background(sub: _Subscription, event: object) -> None:
        try:
            await sub.handler(event)
        except Exception:
            logger.exception(
                "events.handler.failed",
                extra=log_context(event=type(event).__name__, handler=sub.name),
            )
