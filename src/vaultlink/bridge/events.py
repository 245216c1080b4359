"""Minimal event emitter for persistent bridge subscribers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any, Literal

logger = logging.getLogger(__name__)

BridgeEvent = Literal["ready", "message", "error", "closed"]

Listener = Callable[..., Any]


class EventEmitter:
    """Fan-out of bridge events to any number of listeners.

    Listeners may be plain callables or coroutine functions; coroutine
    results are scheduled as tasks and tracked until they finish.  A
    failing listener is logged and does not affect the others.
    """

    def __init__(self, name: str = "agent") -> None:
        self._name = name
        self._listeners: dict[str, list[Listener]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, event: BridgeEvent, listener: Listener) -> Callable[[], None]:
        """Subscribe *listener* to *event*; returns an unsubscribe callable."""
        self._listeners.setdefault(event, []).append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: BridgeEvent, listener: Listener) -> None:
        """Remove a previously registered listener if present."""
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: BridgeEvent) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: BridgeEvent, *args: Any) -> None:
        """Call every listener of *event* with *args*."""
        for listener in list(self._listeners.get(event, [])):
            try:
                result = listener(*args)
            except Exception:
                logger.exception("%s: %s listener failed", self._name, event)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

    def clear(self) -> None:
        self._listeners.clear()

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "%s: async listener failed: %s", self._name, task.exception()
            )
