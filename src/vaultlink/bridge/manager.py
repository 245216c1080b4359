"""Bridge manager — composition root for all agent sessions."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from vaultlink.bridge.exchange import ExchangeResult
from vaultlink.bridge.helpers import record_error
from vaultlink.bridge.locator import PathLocator
from vaultlink.bridge.session import AgentSession
from vaultlink.config.models import BridgeConfig
from vaultlink.constants import MessageCallback
from vaultlink.errors import BridgeError, UnknownAgentError
from vaultlink.protocol.models import (
    AgentMessage,
    FunctionCallMessage,
    ImageAttachment,
    message_text,
)
from vaultlink.tools.registry import ToolRegistry, ToolResult
from vaultlink.transcript.models import AgentMessageEvent
from vaultlink.transcript.recorder import TranscriptRecorder

logger = logging.getLogger(__name__)


class BridgeManager:
    """Owns one ``AgentSession`` per configured agent name.

    Sessions are created lazily on first ``connect`` and are fully
    independent.  Tool calls from any agent are executed against the
    shared registry and answered on that agent's own stdin.
    """

    def __init__(
        self,
        config: BridgeConfig,
        registry: ToolRegistry,
        *,
        recorder: TranscriptRecorder | None = None,
        locator: PathLocator | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._recorder = recorder
        self._locator = locator or PathLocator()
        self._sessions: dict[str, AgentSession] = {}
        self._connect_locks: dict[str, asyncio.Lock] = {}

    @property
    def sessions(self) -> dict[str, AgentSession]:
        return dict(self._sessions)

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def get_session(self, name: str) -> AgentSession | None:
        return self._sessions.get(name)

    # ------------------------------------------------------------------ #
    # Connection lifecycle
    # ------------------------------------------------------------------ #

    async def connect(self, name: str | None = None) -> AgentSession:
        """Return a ready session for *name*, starting it if needed.

        A session whose process has closed is replaced.  Raises
        ``UnknownAgentError`` for unconfigured names and ``SpawnError``
        when the process cannot be started.
        """
        name = name or self._config.default_agent or ""
        agent = self._config.agents.get(name)
        if agent is None:
            available = ", ".join(f"'{a}'" for a in self._config.agents)
            msg = f"Unknown agent '{name}' — available agents: {available}"
            raise UnknownAgentError(msg)

        lock = self._connect_locks.setdefault(name, asyncio.Lock())
        async with lock:
            session = self._sessions.get(name)
            if session is not None and session.is_connected:
                return session
            if session is not None:
                await session.stop()

            session = self._create_session(name)
            self._sessions[name] = session
            try:
                await session.start()
            except BridgeError:
                self._sessions.pop(name, None)
                raise

            if self._config.advertise_tools:
                try:
                    await session.advertise_tools(self._registry.schemas())
                except BridgeError as exc:
                    logger.warning("%s: tool advertisement failed: %s", name, exc)
            return session

    async def disconnect(self, name: str) -> None:
        """Stop *name*'s process and discard its cache."""
        session = self._sessions.pop(name, None)
        if session is not None:
            await session.stop()

    async def shutdown(self) -> None:
        """Stop every session; one failing session does not block the rest."""
        sessions = list(self._sessions.items())
        self._sessions.clear()
        results = await asyncio.gather(
            *(session.stop() for _, session in sessions),
            return_exceptions=True,
        )
        for (name, _), result in zip(sessions, results, strict=True):
            if isinstance(result, BaseException):
                logger.error("%s: error during shutdown: %s", name, result)

    # ------------------------------------------------------------------ #
    # Messaging
    # ------------------------------------------------------------------ #

    async def send(
        self,
        name: str | None,
        content: str,
        images: list[ImageAttachment] | None = None,
        *,
        on_message: MessageCallback | None = None,
        abort: asyncio.Event | None = None,
    ) -> ExchangeResult:
        """Connect if needed, then run one exchange with agent *name*."""
        session = await self.connect(name)
        return await session.send(content, images, on_message=on_message, abort=abort)

    def cached_messages(self, name: str) -> list[AgentMessage]:
        session = self._sessions.get(name)
        return session.cached_messages() if session is not None else []

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _create_session(self, name: str) -> AgentSession:
        agent = self._config.agents[name]
        cwd = Path(agent.working_directory or self._config.vault)
        session = AgentSession(
            name,
            agent,
            timeouts=self._config.timeouts,
            cache_size=self._config.cache_size,
            locator=self._locator,
            cwd=cwd,
            recorder=self._recorder,
        )
        session.router.tool_handler = lambda msg: self._handle_tool_call(session, msg)
        session.on("message", lambda msg: self._record_message(name, msg))
        session.on("error", lambda exc: self._record_agent_error(name, exc))
        return session

    async def _handle_tool_call(
        self, session: AgentSession, message: FunctionCallMessage
    ) -> None:
        call = message.function_call
        try:
            arguments = call.parsed_arguments()
        except ValueError as exc:
            result = ToolResult.failure(f"Invalid tool arguments: {exc}")
        else:
            result = await self._registry.execute(call.name, arguments, agent=session.name)

        status, text = result.to_return()
        try:
            await session.send_tool_return(call.name, status, text)
        except BridgeError as exc:
            record_error(
                self._recorder,
                session.name,
                f"failed to return result of {call.name}: {exc}",
                context="tool",
                logger=logger,
            )

    def _record_message(self, name: str, message: AgentMessage) -> None:
        if self._recorder is None:
            return
        self._recorder.record(
            AgentMessageEvent(
                ts="",
                seq=0,
                agent=name,
                message_type=message.message_type,
                content=message_text(message),
            )
        )

    def _record_agent_error(self, name: str, exc: BaseException) -> None:
        if self._recorder is None:
            return
        record_error(self._recorder, name, str(exc), context="agent")
