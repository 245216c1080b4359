"""Exchange — the completion and streaming channel of one ``send`` call."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from dataclasses import dataclass, field
from typing import Literal

from vaultlink.constants import COMPLETION_TIMEOUT, MessageCallback
from vaultlink.protocol.models import AgentMessage, AssistantMessage

logger = logging.getLogger(__name__)

CompletionReason = Literal["assistant_message", "sentinel", "timeout", "aborted"]


@dataclass
class ExchangeResult:
    """Outcome of one exchange: why it ended and what arrived."""

    request_id: str
    reason: CompletionReason
    messages: list[AgentMessage] = field(default_factory=list)

    @property
    def reply(self) -> str | None:
        """Content of the last assistant message, if any."""
        for message in reversed(self.messages):
            if isinstance(message, AssistantMessage):
                return message.content
        return None


class _Finish:
    pass


class _Abort:
    pass


class _Hold:
    pass


class _Release:
    pass


class _Fail:
    def __init__(self, exc: BaseException) -> None:
        self.exc = exc


class Exchange:
    """Collects agent messages until the exchange completes.

    Completion is an ``assistant_message``, the completion sentinel, no
    activity for *idle_timeout* seconds, or *abort* being set.  The idle
    timer does not run between ``hold`` and ``release``.  A process exit
    fails the exchange with the error passed to ``fail``.
    """

    def __init__(
        self,
        request_id: str,
        idle_timeout: float = COMPLETION_TIMEOUT,
        on_message: MessageCallback | None = None,
        abort: asyncio.Event | None = None,
    ) -> None:
        self.request_id = request_id
        self._idle_timeout = idle_timeout
        self._on_message = on_message
        self._abort = abort
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._messages: list[AgentMessage] = []

    # Router-facing side; called from the read loop.

    def deliver(self, message: AgentMessage) -> None:
        self._queue.put_nowait(message)

    def finish(self) -> None:
        self._queue.put_nowait(_Finish())

    def fail(self, exc: BaseException) -> None:
        self._queue.put_nowait(_Fail(exc))

    def hold(self) -> None:
        """Suspend the idle timeout, e.g. while a tool call is executing."""
        self._queue.put_nowait(_Hold())

    def release(self) -> None:
        """Undo one ``hold``; the idle timer restarts from zero."""
        self._queue.put_nowait(_Release())

    async def wait(self) -> ExchangeResult:
        """Wait for completion and return the collected messages."""
        if self._abort is not None and self._abort.is_set():
            return self._result("aborted")

        holds = 0
        watcher: asyncio.Task[None] | None = None
        if self._abort is not None:
            watcher = asyncio.create_task(self._watch_abort(self._abort))
        try:
            while True:
                try:
                    signal = await asyncio.wait_for(
                        self._queue.get(), timeout=None if holds else self._idle_timeout
                    )
                except TimeoutError:
                    logger.debug(
                        "exchange %s: idle for %.1fs, completing",
                        self.request_id,
                        self._idle_timeout,
                    )
                    return self._result("timeout")

                if isinstance(signal, _Hold):
                    holds += 1
                    continue
                if isinstance(signal, _Release):
                    holds = max(holds - 1, 0)
                    continue
                if isinstance(signal, _Abort):
                    return self._result("aborted")
                if isinstance(signal, _Finish):
                    return self._result("sentinel")
                if isinstance(signal, _Fail):
                    raise signal.exc

                self._messages.append(signal)
                await self._notify(signal)
                if isinstance(signal, AssistantMessage):
                    return self._result("assistant_message")
        finally:
            if watcher is not None and not watcher.done():
                watcher.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await watcher

    async def _watch_abort(self, abort: asyncio.Event) -> None:
        await abort.wait()
        self._queue.put_nowait(_Abort())

    async def _notify(self, message: AgentMessage) -> None:
        if self._on_message is None:
            return
        try:
            result = self._on_message(message)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("exchange %s: on_message callback failed", self.request_id)

    def _result(self, reason: CompletionReason) -> ExchangeResult:
        return ExchangeResult(
            request_id=self.request_id,
            reason=reason,
            messages=list(self._messages),
        )
