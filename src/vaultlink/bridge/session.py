"""Agent session — one process, one cache, one exchange at a time."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from vaultlink.bridge.cache import MessageCache
from vaultlink.bridge.events import BridgeEvent, EventEmitter, Listener
from vaultlink.bridge.exchange import Exchange, ExchangeResult
from vaultlink.bridge.locator import PathLocator
from vaultlink.bridge.router import MessageRouter, ToolCallHandler
from vaultlink.bridge.supervisor import ProcessSupervisor
from vaultlink.config.models import AgentConfig, TimeoutsConfig
from vaultlink.constants import CACHE_CAPACITY, MessageCallback
from vaultlink.errors import BridgeTimeoutError
from vaultlink.protocol.models import (
    AgentMessage,
    ImageAttachment,
    build_envelope,
    build_request,
    build_tool_return,
)
from vaultlink.transcript.recorder import TranscriptRecorder

logger = logging.getLogger(__name__)


class AgentSession:
    """State owned by a single agent identity.

    Sends are serialized through a FIFO lock: agent messages carry no
    request id, so only one exchange may be in flight per session.
    Sessions share nothing with each other.
    """

    def __init__(
        self,
        name: str,
        agent: AgentConfig,
        *,
        timeouts: TimeoutsConfig | None = None,
        cache_size: int = CACHE_CAPACITY,
        locator: PathLocator | None = None,
        cwd: Path | None = None,
        recorder: TranscriptRecorder | None = None,
        tool_handler: ToolCallHandler | None = None,
    ) -> None:
        self.name = name
        self._timeouts = timeouts or TimeoutsConfig()
        self.events = EventEmitter(name)
        self.cache: MessageCache[AgentMessage] = MessageCache(cache_size)
        self.router = MessageRouter(name, self.cache, self.events)
        self.router.tool_handler = tool_handler
        self.supervisor = ProcessSupervisor(
            name,
            agent,
            on_output=self.router.route,
            events=self.events,
            on_closed=self.router.fail_all,
            locator=locator,
            timeouts=self._timeouts,
            cwd=cwd,
            recorder=recorder,
        )
        self._send_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self.supervisor.is_ready

    @property
    def busy(self) -> bool:
        """True while an exchange is in flight or queued."""
        return self._send_lock.locked()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        await self.supervisor.start()

    async def stop(self) -> None:
        """Stop the process and discard the cache."""
        await self.supervisor.stop()
        self.cache.clear()

    def on(self, event: BridgeEvent, listener: Listener) -> Callable[[], None]:
        """Subscribe to a bridge event; returns an unsubscribe callable."""
        return self.events.on(event, listener)

    # ------------------------------------------------------------------ #
    # Exchanges
    # ------------------------------------------------------------------ #

    async def send(
        self,
        content: str,
        images: list[ImageAttachment] | None = None,
        *,
        on_message: MessageCallback | None = None,
        abort: asyncio.Event | None = None,
    ) -> ExchangeResult:
        """Send a user turn and wait for the exchange to complete.

        Concurrent calls queue behind each other in arrival order.  An
        aborted exchange stops waiting but leaves the process running.
        Raises ``ProcessClosedError`` if the process exits mid-exchange.
        """
        async with self._send_lock:
            message = build_request(content, images)
            exchange = Exchange(
                message.id,
                idle_timeout=self._timeouts.completion,
                on_message=on_message,
                abort=abort,
            )
            self.router.attach(exchange)
            try:
                await self.supervisor.write(message)
                logger.debug("%s: sent request %s", self.name, message.id)
                result = await exchange.wait()
            finally:
                self.router.detach(exchange)
            logger.debug(
                "%s: exchange %s ended (%s, %d messages)",
                self.name,
                message.id,
                result.reason,
                len(result.messages),
            )
            return result

    async def request(self, payload: Any, timeout: float | None = None) -> Any:
        """Send a ``request`` envelope and await the correlated response payload.

        Raises ``BridgeTimeoutError`` when no response arrives in time and
        ``ProcessClosedError`` when the process exits first.
        """
        message = build_envelope("request", payload)
        future = self.router.expect_response(message.id)
        try:
            await self.supervisor.write(message)
            return await asyncio.wait_for(
                future, timeout=timeout or self._timeouts.request
            )
        except TimeoutError as exc:
            msg = f"Agent '{self.name}': no response to {message.id}"
            raise BridgeTimeoutError(msg) from exc
        finally:
            self.router.cancel_response(message.id)

    async def send_tool_return(self, tool_name: str, status: str, message: str) -> None:
        """Report the outcome of a tool call back to the agent."""
        await self.supervisor.write(build_tool_return(tool_name, status, message))

    async def advertise_tools(self, schemas: list[dict[str, Any]]) -> Any:
        """Announce tool definitions; returns the agent's acknowledgement."""
        return await self.request({"type": "register_tools", "tools": schemas})

    # ------------------------------------------------------------------ #
    # Cache
    # ------------------------------------------------------------------ #

    def cached_messages(self) -> list[AgentMessage]:
        return self.cache.snapshot()

    def clear_cache(self) -> None:
        self.cache.clear()

