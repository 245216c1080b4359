"""Tests for the process supervisor."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vaultlink.bridge.events import EventEmitter
from vaultlink.bridge.locator import PathLocator
from vaultlink.bridge.supervisor import ProcessSupervisor
from vaultlink.config.models import AgentConfig, TimeoutsConfig
from vaultlink.errors import (
    AgentError,
    BridgeNotReadyError,
    BridgeWriteError,
    ProcessClosedError,
    SpawnError,
)
from vaultlink.protocol.models import build_request
from vaultlink.transcript.recorder import TranscriptRecorder

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


class MockAsyncStream:
    """Async-aware mock pipe; ``read``/``readline`` block until data arrives."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes] = asyncio.Queue()

    def feed(self, data: bytes) -> None:
        self._queue.put_nowait(data)

    def feed_json(self, obj: Any) -> None:
        self.feed(json.dumps(obj).encode() + b"\n")

    def close(self) -> None:
        """Signal EOF."""
        self._queue.put_nowait(b"")

    async def read(self, n: int = -1) -> bytes:
        return await self._queue.get()

    async def readline(self) -> bytes:
        return await self._queue.get()


def _make_mock_process(
    *,
    exit_on_stdin_close: bool = True,
    exit_on_terminate: bool = True,
) -> MagicMock:
    """Create a mock subprocess whose ``wait()`` blocks until it exits."""
    proc = MagicMock()
    proc.pid = 4242
    proc.returncode = None
    proc.stdout = MockAsyncStream()
    proc.stderr = MockAsyncStream()
    exited = asyncio.Event()

    def _exit(code: int = 0) -> None:
        if proc.returncode is not None:
            return
        proc.returncode = code
        proc.stdout.close()
        proc.stderr.close()
        exited.set()

    async def _wait() -> int:
        await exited.wait()
        return proc.returncode

    proc.exit = _exit
    proc.wait = _wait

    stdin = MagicMock()
    stdin.write = MagicMock()
    stdin.drain = AsyncMock()
    stdin.close = MagicMock(
        side_effect=(lambda: _exit(0)) if exit_on_stdin_close else None
    )
    proc.stdin = stdin
    proc.terminate = MagicMock(
        side_effect=(lambda: _exit(-15)) if exit_on_terminate else None
    )
    proc.kill = MagicMock(side_effect=lambda: _exit(-9))
    return proc


FAST = TimeoutsConfig(ready_grace=0.01, stop_grace=0.05, completion=1, request=1)


class NoCandidates:
    def runtime_candidates(self) -> Iterator[Path]:
        return iter(())

    def entrypoint_candidates(self) -> Iterator[Path]:
        return iter(())


def _make_supervisor(
    agent: AgentConfig | None = None,
    *,
    outputs: list[Any] | None = None,
    events: EventEmitter | None = None,
    on_closed: Any = None,
    recorder: TranscriptRecorder | None = None,
    locator: PathLocator | None = None,
) -> ProcessSupervisor:
    sink = outputs if outputs is not None else []

    async def on_output(value: Any) -> None:
        sink.append(value)

    return ProcessSupervisor(
        "agent-a",
        agent or AgentConfig(),
        on_output=on_output,
        events=events or EventEmitter("agent-a"),
        on_closed=on_closed,
        locator=locator or PathLocator(NoCandidates()),
        timeouts=FAST,
        recorder=recorder,
    )


def _read_events(recorder: TranscriptRecorder) -> list[dict[str, Any]]:
    return [json.loads(line) for line in recorder.path.read_text().splitlines()]


# ------------------------------------------------------------------ #
# Command resolution
# ------------------------------------------------------------------ #


class TestResolveCommand:
    def test_explicit_runtime_and_entrypoint(self) -> None:
        agent = AgentConfig(runtime="/opt/node", entrypoint="/opt/letta.js", agent_id="a-1")
        argv = _make_supervisor(agent).resolve_command()
        assert argv == [
            "/opt/node",
            "/opt/letta.js",
            "--headless",
            "--output",
            "json",
            "--agent",
            "a-1",
        ]

    def test_explicit_executable(self) -> None:
        agent = AgentConfig(executable="/usr/local/bin/letta")
        with patch("vaultlink.bridge.supervisor.shutil.which", return_value="/x/letta"):
            argv = _make_supervisor(agent).resolve_command()
        assert argv[0] == "/usr/local/bin/letta"

    def test_command_on_path(self) -> None:
        with patch("vaultlink.bridge.supervisor.shutil.which", return_value="/x/letta"):
            argv = _make_supervisor().resolve_command()
        assert argv == ["/x/letta", "--headless", "--output", "json"]

    def test_located_runtime_and_entrypoint(self) -> None:
        class Found:
            def runtime_candidates(self) -> Iterator[Path]:
                yield Path("/home/u/.volta/bin/node")

            def entrypoint_candidates(self) -> Iterator[Path]:
                yield Path("/home/u/lib/letta.js")

        locator = PathLocator(Found(), exists=lambda p: True)
        with patch("vaultlink.bridge.supervisor.shutil.which", return_value=None):
            argv = _make_supervisor(locator=locator).resolve_command()
        assert argv[:2] == ["/home/u/.volta/bin/node", "/home/u/lib/letta.js"]

    def test_falls_back_to_bare_command(self) -> None:
        agent = AgentConfig(command="letta-dev", args=[])
        with patch("vaultlink.bridge.supervisor.shutil.which", return_value=None):
            argv = _make_supervisor(agent).resolve_command()
        assert argv == ["letta-dev"]

    def test_agent_id_omitted_when_unset(self) -> None:
        with patch("vaultlink.bridge.supervisor.shutil.which", return_value=None):
            argv = _make_supervisor().resolve_command()
        assert "--agent" not in argv


# ------------------------------------------------------------------ #
# Start
# ------------------------------------------------------------------ #


class TestStart:
    async def test_start_becomes_ready(self, tmp_path: Path) -> None:
        events = EventEmitter()
        ready: list[bool] = []
        events.on("ready", lambda: ready.append(True))
        agent = AgentConfig(env={"LETTA_BASE_URL": "http://localhost:8283"})
        supervisor = ProcessSupervisor(
            "agent-a",
            agent,
            on_output=AsyncMock(),
            events=events,
            locator=PathLocator(NoCandidates()),
            timeouts=FAST,
            cwd=tmp_path,
        )
        proc = _make_mock_process()

        with (
            patch("vaultlink.bridge.supervisor.shutil.which", return_value=None),
            patch("asyncio.create_subprocess_exec", return_value=proc) as mock_exec,
        ):
            await supervisor.start()

        assert supervisor.is_ready
        assert supervisor.pid == 4242
        assert ready == [True]
        kwargs = mock_exec.call_args.kwargs
        assert kwargs["start_new_session"] is True
        assert kwargs["cwd"] == str(tmp_path)
        assert kwargs["env"]["LETTA_BASE_URL"] == "http://localhost:8283"
        assert mock_exec.call_args.args[0] == "letta"

        await supervisor.stop()

    async def test_start_twice_is_rejected(self) -> None:
        supervisor = _make_supervisor()
        with patch("asyncio.create_subprocess_exec", return_value=_make_mock_process()):
            await supervisor.start()
            with pytest.raises(BridgeNotReadyError):
                await supervisor.start()
        await supervisor.stop()

    async def test_command_not_found(self) -> None:
        events = EventEmitter()
        errors: list[BaseException] = []
        events.on("error", errors.append)
        supervisor = _make_supervisor(events=events)

        with (
            patch(
                "asyncio.create_subprocess_exec",
                side_effect=FileNotFoundError("letta"),
            ),
            pytest.raises(SpawnError, match="command not found"),
        ):
            await supervisor.start()

        assert not supervisor.is_ready
        assert isinstance(errors[0], SpawnError)

    async def test_exit_during_grace_period(self, tmp_path: Path) -> None:
        recorder = TranscriptRecorder("t", "h", transcripts_dir=tmp_path)
        supervisor = _make_supervisor(recorder=recorder)
        proc = _make_mock_process()
        proc.stderr.feed(b"fatal: not logged in\n")
        proc.exit(1)

        with (
            patch("asyncio.create_subprocess_exec", return_value=proc),
            pytest.raises(SpawnError, match="exited during startup") as exc_info,
        ):
            await supervisor.start()

        assert "not logged in" in str(exc_info.value)
        assert not supervisor.is_ready
        recorder.close()
        errors = [e for e in _read_events(recorder) if e["type"] == "error"]
        assert errors

    async def test_can_start_again_after_failed_spawn(self) -> None:
        supervisor = _make_supervisor()
        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError()):
            with pytest.raises(SpawnError):
                await supervisor.start()
        with patch("asyncio.create_subprocess_exec", return_value=_make_mock_process()):
            await supervisor.start()
        assert supervisor.is_ready
        await supervisor.stop()


# ------------------------------------------------------------------ #
# Reading and writing
# ------------------------------------------------------------------ #


class TestIO:
    async def test_write_sends_one_json_line(self) -> None:
        supervisor = _make_supervisor()
        proc = _make_mock_process()
        with patch("asyncio.create_subprocess_exec", return_value=proc):
            await supervisor.start()

        message = build_request("hello")
        await supervisor.write(message)

        data = proc.stdin.write.call_args.args[0]
        assert data.endswith(b"\n")
        sent = json.loads(data)
        assert sent["id"] == message.id
        assert sent["type"] == "request"
        proc.stdin.drain.assert_awaited()
        await supervisor.stop()

    async def test_write_before_start(self) -> None:
        with pytest.raises(BridgeNotReadyError):
            await _make_supervisor().write(build_request("hello"))

    async def test_write_to_broken_pipe(self) -> None:
        supervisor = _make_supervisor()
        proc = _make_mock_process()
        proc.stdin.drain = AsyncMock(side_effect=BrokenPipeError("closed"))
        with patch("asyncio.create_subprocess_exec", return_value=proc):
            await supervisor.start()

        with pytest.raises(BridgeWriteError):
            await supervisor.write(build_request("hello"))
        await supervisor.stop()

    async def test_stdout_values_delivered_in_order(self) -> None:
        outputs: list[Any] = []
        supervisor = _make_supervisor(outputs=outputs)
        proc = _make_mock_process()
        with patch("asyncio.create_subprocess_exec", return_value=proc):
            await supervisor.start()

        proc.stdout.feed(b'{"n": 1}\n{"n"')
        proc.stdout.feed(b': 2}\nnot json\n{"n": 3}\n')
        await asyncio.sleep(0.05)

        assert outputs == [{"n": 1}, {"n": 2}, {"n": 3}]
        await supervisor.stop()

    async def test_stderr_error_lines_emit_error_events(self) -> None:
        events = EventEmitter()
        errors: list[BaseException] = []
        events.on("error", errors.append)
        supervisor = _make_supervisor(events=events)
        proc = _make_mock_process()
        with patch("asyncio.create_subprocess_exec", return_value=proc):
            await supervisor.start()

        proc.stderr.feed(b"Loading agent...\n")
        proc.stderr.feed(b"Error: rate limited\n")
        await asyncio.sleep(0.05)

        assert len(errors) == 1
        assert isinstance(errors[0], AgentError)
        assert "rate limited" in str(errors[0])
        await supervisor.stop()


# ------------------------------------------------------------------ #
# Stop and process exit
# ------------------------------------------------------------------ #


class TestStop:
    async def test_stop_closes_stdin_and_waits(self) -> None:
        events = EventEmitter()
        closed: list[bool] = []
        events.on("closed", lambda: closed.append(True))
        supervisor = _make_supervisor(events=events)
        proc = _make_mock_process()
        with patch("asyncio.create_subprocess_exec", return_value=proc):
            await supervisor.start()

        await supervisor.stop()

        proc.stdin.close.assert_called_once()
        proc.terminate.assert_not_called()
        proc.kill.assert_not_called()
        assert not supervisor.is_ready
        assert supervisor.pid is None
        assert closed == [True]

    async def test_stop_escalates_to_sigterm(self) -> None:
        supervisor = _make_supervisor()
        proc = _make_mock_process(exit_on_stdin_close=False)
        with patch("asyncio.create_subprocess_exec", return_value=proc):
            await supervisor.start()

        await supervisor.stop()

        proc.terminate.assert_called_once()
        proc.kill.assert_not_called()

    async def test_stop_escalates_to_sigkill(self) -> None:
        supervisor = _make_supervisor()
        proc = _make_mock_process(exit_on_stdin_close=False, exit_on_terminate=False)
        with patch("asyncio.create_subprocess_exec", return_value=proc):
            await supervisor.start()

        with patch("vaultlink.bridge.supervisor.SIGTERM_WAIT", 0.05):
            await supervisor.stop()

        proc.terminate.assert_called_once()
        proc.kill.assert_called_once()

    async def test_stop_is_idempotent(self) -> None:
        events = EventEmitter()
        closed: list[bool] = []
        events.on("closed", lambda: closed.append(True))
        supervisor = _make_supervisor(events=events)
        with patch("asyncio.create_subprocess_exec", return_value=_make_mock_process()):
            await supervisor.start()

        await supervisor.stop()
        await supervisor.stop()
        assert closed == [True]

    async def test_stop_without_start(self) -> None:
        await _make_supervisor().stop()

    async def test_unexpected_exit_fails_in_flight_work(self, tmp_path: Path) -> None:
        recorder = TranscriptRecorder("t", "h", transcripts_dir=tmp_path)
        failures: list[ProcessClosedError] = []
        events = EventEmitter()
        closed: list[bool] = []
        events.on("closed", lambda: closed.append(True))
        supervisor = _make_supervisor(
            events=events, on_closed=failures.append, recorder=recorder
        )
        proc = _make_mock_process()
        with patch("asyncio.create_subprocess_exec", return_value=proc):
            await supervisor.start()

        proc.exit(3)
        await asyncio.sleep(0.05)

        assert not supervisor.is_ready
        assert closed == [True]
        assert len(failures) == 1
        assert str(failures[0]) == "Bridge closed"

        await supervisor.stop()
        recorder.close()
        events_written = _read_events(recorder)
        assert any(
            e["type"] == "error" and "exited with code 3" in e["error"]
            for e in events_written
        )
        states = [e["state"] for e in events_written if e["type"] == "lifecycle"]
        assert states[:3] == ["starting", "ready", "closed"]
        assert closed == [True]
