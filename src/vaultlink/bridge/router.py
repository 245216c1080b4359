"""Message router — classifies parsed lines and fans them out."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from vaultlink.bridge.cache import MessageCache
from vaultlink.bridge.events import EventEmitter
from vaultlink.errors import AgentError, BridgeNotReadyError
from vaultlink.protocol.models import (
    AgentMessage,
    FunctionCallMessage,
    is_completion_sentinel,
    parse_agent_message,
)

logger = logging.getLogger(__name__)

ToolCallHandler = Callable[[FunctionCallMessage], Awaitable[None]]


class ExchangeHandler(Protocol):
    """Receiver for the messages of one in-flight exchange."""

    def deliver(self, message: AgentMessage) -> None: ...

    def finish(self) -> None: ...

    def fail(self, exc: BaseException) -> None: ...

    def hold(self) -> None: ...

    def release(self) -> None: ...


class MessageRouter:
    """Routes every parsed object from one agent's stdout.

    * Tagged agent messages are cached, handed to the attached exchange
      handler, then emitted as ``message`` events.
    * ``response`` lines resolve the matching pending request.
    * ``error`` lines become ``error`` events.
    * The completion sentinel finishes the attached exchange.

    Anything else is ignored.
    """

    def __init__(
        self,
        name: str,
        cache: MessageCache[AgentMessage],
        events: EventEmitter,
    ) -> None:
        self._name = name
        self._cache = cache
        self._events = events
        self._handler: ExchangeHandler | None = None
        self._pending: dict[str, asyncio.Future[Any]] = {}
        self.tool_handler: ToolCallHandler | None = None

    @property
    def handler(self) -> ExchangeHandler | None:
        return self._handler

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------ #
    # Exchange handler slot
    # ------------------------------------------------------------------ #

    def attach(self, handler: ExchangeHandler) -> None:
        """Install *handler* as the receiver for agent messages.

        Raises ``BridgeNotReadyError`` if another handler is attached.
        """
        if self._handler is not None:
            msg = f"Agent '{self._name}' already has an exchange in flight"
            raise BridgeNotReadyError(msg)
        self._handler = handler

    def detach(self, handler: ExchangeHandler) -> None:
        """Remove *handler* if it is the attached one."""
        if self._handler is handler:
            self._handler = None

    # ------------------------------------------------------------------ #
    # Response correlation
    # ------------------------------------------------------------------ #

    def expect_response(self, request_id: str) -> asyncio.Future[Any]:
        """Register a pending request and return the future for its payload.

        Raises ``RuntimeError`` if *request_id* is already pending.
        """
        if request_id in self._pending:
            msg = f"Duplicate pending request: {request_id}"
            raise RuntimeError(msg)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        return future

    def cancel_response(self, request_id: str) -> None:
        """Remove and cancel a pending request."""
        future = self._pending.pop(request_id, None)
        if future is not None and not future.done():
            future.cancel()

    def fail_all(self, exc: BaseException) -> None:
        """Reject every pending request and the attached exchange with *exc*."""
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()
        if self._handler is not None:
            self._handler.fail(exc)

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #

    async def route(self, obj: Any) -> None:
        """Classify one parsed JSON value and deliver it."""
        if not isinstance(obj, dict):
            logger.debug("%s: ignoring non-object line", self._name)
            return

        if "message_type" in obj:
            message = parse_agent_message(obj)
            if message is None:
                logger.debug(
                    "%s: ignoring unknown message_type %r",
                    self._name,
                    obj.get("message_type"),
                )
                return
            await self._route_agent_message(message)
            return

        kind = obj.get("type")
        if kind == "response":
            self._resolve(obj)
        elif kind == "error":
            payload = obj.get("payload")
            text = None
            if isinstance(payload, dict):
                text = payload.get("message")
            self._events.emit("error", AgentError(str(text or "Unknown error")))
        elif is_completion_sentinel(obj):
            if self._handler is not None:
                self._handler.finish()
        else:
            logger.debug("%s: ignoring line of type %r", self._name, kind)

    async def _route_agent_message(self, message: AgentMessage) -> None:
        self._cache.push(message)
        if self._handler is not None:
            self._handler.deliver(message)
        self._events.emit("message", message)
        if isinstance(message, FunctionCallMessage) and self.tool_handler is not None:
            # No idle timeout while the host runs the tool.
            handler = self._handler
            if handler is not None:
                handler.hold()
            try:
                await self.tool_handler(message)
            finally:
                if handler is not None:
                    handler.release()

    def _resolve(self, obj: dict[str, Any]) -> None:
        request_id = obj.get("id")
        if not isinstance(request_id, str):
            return
        future = self._pending.pop(request_id, None)
        if future is None:
            logger.debug("%s: response for unknown id %s", self._name, request_id)
            return
        if not future.done():
            future.set_result(obj.get("payload"))
