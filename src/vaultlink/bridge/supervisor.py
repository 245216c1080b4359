"""Process supervisor — owns one agent subprocess and its pipes."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import shlex
import shutil
from collections import deque
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from vaultlink.bridge.events import EventEmitter
from vaultlink.bridge.helpers import format_stderr_preview, record_error
from vaultlink.bridge.locator import PathLocator
from vaultlink.config.models import AgentConfig, TimeoutsConfig
from vaultlink.constants import SIGTERM_WAIT
from vaultlink.errors import (
    AgentError,
    BridgeNotReadyError,
    BridgeWriteError,
    ProcessClosedError,
    SpawnError,
)
from vaultlink.protocol.codec import LineProtocolCodec
from vaultlink.protocol.models import BridgeMessage
from vaultlink.transcript.models import LifecycleEvent, LifecycleState
from vaultlink.transcript.recorder import TranscriptRecorder

logger = logging.getLogger(__name__)

#: Bytes requested per stdout read; lines are reassembled by the codec.
_READ_CHUNK = 65_536

#: stderr lines matching this are surfaced as ``error`` events.
_STDERR_ERROR_RE = re.compile(r"error|fatal|exception|traceback", re.IGNORECASE)

#: Number of stderr lines kept for exit diagnostics.
_STDERR_TAIL_LINES = 50


class ProcessSupervisor:
    """Spawns the agent CLI and manages its lifecycle.

    ``start`` resolves the command, spawns the child with piped stdio and
    waits out a short grace period; the child must still be alive at the
    end of it.  Parsed stdout values are handed to *on_output* in arrival
    order.  ``stop`` closes stdin, waits, then escalates to SIGTERM and
    SIGKILL.  It never raises.
    """

    def __init__(
        self,
        name: str,
        agent: AgentConfig,
        *,
        on_output: Callable[[Any], Awaitable[None]],
        events: EventEmitter,
        on_closed: Callable[[ProcessClosedError], None] | None = None,
        locator: PathLocator | None = None,
        timeouts: TimeoutsConfig | None = None,
        cwd: Path | None = None,
        recorder: TranscriptRecorder | None = None,
    ) -> None:
        self.name = name
        self._agent = agent
        self._on_output = on_output
        self._events = events
        self._on_closed = on_closed
        self._locator = locator or PathLocator()
        self._timeouts = timeouts or TimeoutsConfig()
        self._cwd = cwd
        self._recorder = recorder

        self._codec = LineProtocolCodec(name)
        self._process: asyncio.subprocess.Process | None = None
        self._stdout_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._write_lock = asyncio.Lock()
        self._stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL_LINES)

        self._started = False
        self._ready = False
        self._closed = False
        self._stopping = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def pid(self) -> int | None:
        if self._process is not None and self._process.returncode is None:
            return self._process.pid
        return None

    # ------------------------------------------------------------------ #
    # Command resolution
    # ------------------------------------------------------------------ #

    def resolve_command(self) -> list[str]:
        """Build the argv for the agent process.

        Order: explicit runtime + entrypoint, the configured executable,
        the command found on PATH, a located runtime + entrypoint, and
        finally the bare command name.
        """
        cfg = self._agent
        if cfg.runtime and cfg.entrypoint:
            base = [cfg.runtime, cfg.entrypoint]
        elif cfg.executable:
            base = [cfg.executable]
        elif found := shutil.which(cfg.command):
            base = [found]
        else:
            runtime = self._locator.locate_runtime()
            entrypoint = self._locator.locate_agent_entrypoint()
            if runtime is not None and entrypoint is not None:
                base = [str(runtime), str(entrypoint)]
            else:
                base = [cfg.command]

        argv = [*base, *cfg.args]
        if cfg.agent_id:
            argv.extend(["--agent", cfg.agent_id])
        return argv

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Spawn the process and wait for it to become ready.

        Raises ``BridgeNotReadyError`` if already started and
        ``SpawnError`` if the process cannot be launched or exits during
        the ready grace period.
        """
        if self._started:
            msg = f"Agent '{self.name}' is already started"
            raise BridgeNotReadyError(msg)
        self._started = True
        self._closed = False
        self._stopping = False
        self._stderr_tail.clear()

        argv = self.resolve_command()
        logger.info("%s: spawning %s", self.name, shlex.join(argv))
        self._record_lifecycle("starting")

        env = {**os.environ, **self._agent.env}
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self._cwd) if self._cwd is not None else None,
                env=env,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            raise self._spawn_failed(
                f"Agent '{self.name}': command not found: {argv[0]}"
            ) from exc
        except OSError as exc:
            raise self._spawn_failed(
                f"Agent '{self.name}': failed to spawn {argv[0]}: {exc}"
            ) from exc

        self._process = proc
        self._stdout_task = asyncio.create_task(self._read_stdout(proc))
        self._stderr_task = asyncio.create_task(self._read_stderr(proc))

        await asyncio.sleep(self._timeouts.ready_grace)

        if proc.returncode is not None or self._closed:
            code = proc.returncode
            await self._cancel_readers()
            self._finalize()
            self._process = None
            preview = format_stderr_preview("\n".join(self._stderr_tail))
            error_msg = f"Agent '{self.name}' exited during startup (code {code})."
            if preview:
                error_msg += f" Stderr:\n  {preview}"
            raise self._spawn_failed(error_msg)

        self._ready = True
        logger.info("%s: ready (pid %s)", self.name, proc.pid)
        self._record_lifecycle("ready", pid=proc.pid)
        self._events.emit("ready")

    async def stop(self) -> None:
        """Graceful shutdown: close stdin -> wait -> SIGTERM -> SIGKILL.

        Safe to call on a never-started or already-stopped supervisor.
        """
        proc = self._process
        if proc is None:
            return
        self._process = None
        self._stopping = True
        self._ready = False

        try:
            await self._terminate(proc)
        except Exception as exc:
            logger.error("%s: error while stopping: %s", self.name, exc)

        await self._cancel_readers()
        self._record_lifecycle("stopped")
        self._finalize()
        self._started = False

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return

        # 1. Close stdin so the agent sees EOF.
        if proc.stdin is not None:
            with contextlib.suppress(BrokenPipeError, ConnectionResetError, OSError):
                proc.stdin.close()

        # 2. Wait for a natural exit.
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._timeouts.stop_grace)
        except TimeoutError:
            # 3. SIGTERM.
            logger.warning("%s: did not exit after stdin closed, terminating", self.name)
            with contextlib.suppress(ProcessLookupError):
                proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), timeout=SIGTERM_WAIT)
            except TimeoutError:
                # 4. SIGKILL.
                logger.warning("%s: did not exit after SIGTERM, killing", self.name)
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()

    # ------------------------------------------------------------------ #
    # Writing
    # ------------------------------------------------------------------ #

    async def write(self, message: BridgeMessage) -> None:
        """Write *message* as one JSON line.

        Raises ``BridgeNotReadyError`` when the process is not ready and
        ``BridgeWriteError`` when the pipe is broken.
        """
        proc = self._process
        if not self._ready or proc is None or proc.stdin is None:
            msg = f"Agent '{self.name}' is not ready"
            raise BridgeNotReadyError(msg)

        data = message.to_line().encode()
        async with self._write_lock:
            try:
                proc.stdin.write(data)
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError, OSError) as exc:
                error_msg = f"write to agent stdin failed: {exc}"
                record_error(
                    self._recorder, self.name, error_msg, context="write", logger=logger
                )
                raise BridgeWriteError(f"Agent '{self.name}': {error_msg}") from exc

    # ------------------------------------------------------------------ #
    # Read loops
    # ------------------------------------------------------------------ #

    async def _read_stdout(self, proc: asyncio.subprocess.Process) -> None:
        """Feed stdout chunks through the codec until EOF."""
        stdout = proc.stdout
        if stdout is None:
            return

        try:
            while True:
                chunk = await stdout.read(_READ_CHUNK)
                if not chunk:
                    # EOF -- subprocess has exited.
                    break
                for value in self._codec.feed(chunk):
                    try:
                        await self._on_output(value)
                    except Exception:
                        logger.exception("%s: failed to route message", self.name)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("%s: read loop error: %s", self.name, exc)

        returncode = await proc.wait()
        if self._stopping:
            return

        if returncode:
            error_msg = f"Agent '{self.name}' exited with code {returncode}."
            preview = format_stderr_preview("\n".join(self._stderr_tail))
            if preview:
                error_msg += f" Stderr:\n  {preview}"
            record_error(self._recorder, self.name, error_msg, logger=logger)
        else:
            logger.info("%s: process exited", self.name)
        self._finalize()

    async def _read_stderr(self, proc: asyncio.subprocess.Process) -> None:
        """Log stderr, surfacing only error-like lines as ``error`` events."""
        stderr = proc.stderr
        if stderr is None:
            return

        level = logging.INFO if self._agent.debug else logging.DEBUG
        try:
            while True:
                line = await stderr.readline()
                if not line:
                    break
                text = line.decode(errors="replace").rstrip()
                if not text:
                    continue
                self._stderr_tail.append(text)
                if _STDERR_ERROR_RE.search(text):
                    logger.warning("%s: stderr: %s", self.name, text)
                    self._events.emit("error", AgentError(text))
                else:
                    logger.log(level, "%s: stderr: %s", self.name, text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("%s: stderr loop error: %s", self.name, exc)

    async def _cancel_readers(self) -> None:
        current = asyncio.current_task()
        for task in (self._stdout_task, self._stderr_task):
            if task is None or task is current or task.done():
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._stdout_task = None
        self._stderr_task = None

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _finalize(self) -> None:
        """Release per-process state and emit ``closed`` exactly once."""
        if self._closed:
            return
        self._closed = True
        self._ready = False
        self._codec.reset()
        if self._on_closed is not None:
            self._on_closed(ProcessClosedError("Bridge closed"))
        self._record_lifecycle("closed")
        self._events.emit("closed")

    def _spawn_failed(self, error_msg: str) -> SpawnError:
        self._started = False
        record_error(self._recorder, self.name, error_msg, logger=logger)
        error = SpawnError(error_msg)
        self._events.emit("error", error)
        return error

    def _record_lifecycle(self, state: LifecycleState, pid: int | None = None) -> None:
        if self._recorder is None:
            return
        self._recorder.record(
            LifecycleEvent(ts="", seq=0, agent=self.name, state=state, pid=pid)
        )
