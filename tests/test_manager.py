"""Tests for BridgeManager — sessions per agent and tool-call dispatch."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vaultlink.bridge.locator import PathLocator
from vaultlink.bridge.manager import BridgeManager
from vaultlink.config.models import (
    AgentConfig,
    BridgeConfig,
    PermissionsConfig,
    TimeoutsConfig,
)
from vaultlink.errors import SpawnError, UnknownAgentError
from vaultlink.tools import ApprovalState, context_from_config, create_default_registry
from vaultlink.transcript.recorder import TranscriptRecorder

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


class MockAsyncStream:
    """Async-aware mock pipe; ``read``/``readline`` block until data arrives."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes] = asyncio.Queue()

    def feed_json(self, obj: Any) -> None:
        self._queue.put_nowait(json.dumps(obj).encode() + b"\n")

    def close(self) -> None:
        self._queue.put_nowait(b"")

    async def read(self, n: int = -1) -> bytes:
        return await self._queue.get()

    async def readline(self) -> bytes:
        return await self._queue.get()


Responder = Callable[[dict[str, Any]], list[Any]]


class ScriptedAgent:
    """Mock agent process that answers stdin lines via a responder."""

    def __init__(self, responder: Responder | None = None) -> None:
        self.sent: list[dict[str, Any]] = []
        self._responder = responder or (lambda m: [])
        proc = MagicMock()
        proc.pid = 4242
        proc.returncode = None
        proc.stdout = MockAsyncStream()
        proc.stderr = MockAsyncStream()
        self._exited = asyncio.Event()
        proc.wait = self._wait
        proc.stdin = MagicMock()
        proc.stdin.write = MagicMock(side_effect=self._write)
        proc.stdin.drain = AsyncMock()
        proc.stdin.close = MagicMock(side_effect=lambda: self.exit(0))
        proc.terminate = MagicMock(side_effect=lambda: self.exit(-15))
        proc.kill = MagicMock(side_effect=lambda: self.exit(-9))
        self.proc = proc

    def exit(self, code: int = 0) -> None:
        if self.proc.returncode is not None:
            return
        self.proc.returncode = code
        self.proc.stdout.close()
        self.proc.stderr.close()
        self._exited.set()

    async def _wait(self) -> int:
        await self._exited.wait()
        return self.proc.returncode

    def _write(self, data: bytes) -> None:
        message = json.loads(data)
        self.sent.append(message)
        for obj in self._responder(message):
            self.proc.stdout.feed_json(obj)

    def tool_returns(self) -> list[dict[str, Any]]:
        return [
            m["payload"]["function_return"]
            for m in self.sent
            if m["type"] == "response"
        ]


class NoCandidates:
    def runtime_candidates(self) -> Iterator[Path]:
        return iter(())

    def entrypoint_candidates(self) -> Iterator[Path]:
        return iter(())


def _tool_calling(name: str, arguments: Any) -> Responder:
    """Responder that asks for one tool call, then replies with its status."""

    def responder(message: dict[str, Any]) -> list[Any]:
        if message["type"] == "request":
            return [
                {
                    "message_type": "function_call",
                    "function_call": {"name": name, "arguments": arguments},
                }
            ]
        if message["type"] == "response":
            status = message["payload"]["function_return"]["status"]
            return [{"message_type": "assistant_message", "content": f"tool {status}"}]
        return []

    return responder


def _make_vault(tmp_path: Path) -> Path:
    vault = tmp_path / "vault"
    (vault / "notes").mkdir(parents=True)
    (vault / "private").mkdir()
    (vault / "notes" / "ideas.md").write_text("# Ideas\nhello world\n")
    (vault / "private" / "secret.md").write_text("hello secret\n")
    return vault


def _make_manager(
    tmp_path: Path,
    *,
    agents: tuple[str, ...] = ("alpha",),
    advertise_tools: bool = False,
    recorder: TranscriptRecorder | None = None,
    approved: bool = False,
) -> BridgeManager:
    config = BridgeConfig(
        vault=str(_make_vault(tmp_path)),
        agents={name: AgentConfig() for name in agents},
        permissions=PermissionsConfig(blocked_folders=["private"]),
        timeouts=TimeoutsConfig(ready_grace=0.01, stop_grace=0.05, completion=2, request=1),
        advertise_tools=advertise_tools,
    )
    context = context_from_config(config, ApprovalState(approved=approved))
    registry = create_default_registry(context, recorder)
    return BridgeManager(
        config, registry, recorder=recorder, locator=PathLocator(NoCandidates())
    )


# ------------------------------------------------------------------ #
# Connection lifecycle
# ------------------------------------------------------------------ #


class TestConnect:
    async def test_connect_default_agent(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path)
        agent = ScriptedAgent()
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc):
            session = await manager.connect()
        assert session.name == "alpha"
        assert session.is_connected
        assert manager.get_session("alpha") is session
        await manager.shutdown()

    async def test_connect_reuses_live_session(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path)
        agent = ScriptedAgent()
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc) as mock_exec:
            first = await manager.connect("alpha")
            second = await manager.connect("alpha")
        assert first is second
        assert mock_exec.call_count == 1
        await manager.shutdown()

    async def test_concurrent_connects_spawn_once(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path)
        agent = ScriptedAgent()
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc) as mock_exec:
            first, second = await asyncio.gather(
                manager.connect("alpha"), manager.connect("alpha")
            )
        assert first is second
        assert mock_exec.call_count == 1
        await manager.shutdown()

    async def test_connect_working_directory_defaults_to_vault(
        self, tmp_path: Path
    ) -> None:
        manager = _make_manager(tmp_path)
        agent = ScriptedAgent()
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc) as mock_exec:
            await manager.connect()
        assert mock_exec.call_args.kwargs["cwd"] == str(tmp_path / "vault")
        await manager.shutdown()

    async def test_unknown_agent(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path)
        with pytest.raises(UnknownAgentError, match="'alpha'"):
            await manager.connect("nobody")

    async def test_spawn_failure_discards_session(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path)
        with (
            patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError()),
            pytest.raises(SpawnError),
        ):
            await manager.connect()
        assert manager.get_session("alpha") is None

    async def test_closed_session_is_replaced(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path)
        first_agent, second_agent = ScriptedAgent(), ScriptedAgent()
        with patch(
            "asyncio.create_subprocess_exec",
            side_effect=[first_agent.proc, second_agent.proc],
        ):
            first = await manager.connect()
            first_agent.exit(1)
            await asyncio.sleep(0.05)
            assert not first.is_connected
            second = await manager.connect()
        assert second is not first
        assert second.is_connected
        await manager.shutdown()

    async def test_agents_are_independent(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path, agents=("alpha", "beta"))
        alpha = ScriptedAgent(lambda m: [{"message_type": "assistant_message", "content": "A"}])
        beta = ScriptedAgent(lambda m: [{"message_type": "assistant_message", "content": "B"}])
        with patch(
            "asyncio.create_subprocess_exec", side_effect=[alpha.proc, beta.proc]
        ):
            result_a, result_b = await asyncio.gather(
                manager.send("alpha", "hi"), manager.send("beta", "hi")
            )
        assert result_a.reply == "A"
        assert result_b.reply == "B"
        assert len(manager.cached_messages("alpha")) == 1
        assert len(manager.cached_messages("beta")) == 1

        alpha.exit(1)
        await asyncio.sleep(0.05)
        assert not manager.get_session("alpha").is_connected
        assert manager.get_session("beta").is_connected
        await manager.shutdown()

    async def test_shutdown_stops_every_session(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path, agents=("alpha", "beta"))
        alpha, beta = ScriptedAgent(), ScriptedAgent()
        with patch(
            "asyncio.create_subprocess_exec", side_effect=[alpha.proc, beta.proc]
        ):
            await manager.connect("alpha")
            await manager.connect("beta")

        await manager.shutdown()

        alpha.proc.stdin.close.assert_called_once()
        beta.proc.stdin.close.assert_called_once()
        assert manager.sessions == {}

    async def test_disconnect(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path)
        agent = ScriptedAgent()
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc):
            await manager.connect()
        await manager.disconnect("alpha")
        assert manager.get_session("alpha") is None
        assert manager.cached_messages("alpha") == []

    async def test_advertise_tools_after_connect(self, tmp_path: Path) -> None:
        def responder(message: dict[str, Any]) -> list[Any]:
            return [{"type": "response", "id": message["id"], "payload": {"ok": True}}]

        manager = _make_manager(tmp_path, advertise_tools=True)
        agent = ScriptedAgent(responder)
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc):
            await manager.connect()

        payload = agent.sent[0]["payload"]
        assert payload["type"] == "register_tools"
        names = {tool["name"] for tool in payload["tools"]}
        assert {"vault_search", "vault_read_file", "update_memory_block"} <= names
        await manager.shutdown()

    async def test_advertise_failure_keeps_session(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path, advertise_tools=True)
        agent = ScriptedAgent()
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc):
            session = await manager.connect()
        assert session.is_connected
        await manager.shutdown()


# ------------------------------------------------------------------ #
# Tool calls
# ------------------------------------------------------------------ #


class TestToolCalls:
    async def test_search_round_trip(self, tmp_path: Path) -> None:
        recorder = TranscriptRecorder("t", "h", transcripts_dir=tmp_path / "tx")
        manager = _make_manager(tmp_path, recorder=recorder)
        agent = ScriptedAgent(_tool_calling("vault_search", {"query": "hello"}))
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc):
            result = await manager.send("alpha", "find hello")

        assert result.reply == "tool success"
        returned = agent.tool_returns()[0]
        assert returned["name"] == "vault_search"
        assert returned["status"] == "success"
        data = json.loads(returned["message"])
        paths = [r["path"] for r in data["results"]]
        assert paths == ["notes/ideas.md"]

        await manager.shutdown()
        recorder.close()
        types = [
            json.loads(line)["type"] for line in recorder.path.read_text().splitlines()
        ]
        assert "tool_call" in types
        assert "tool_result" in types
        assert "agent_message" in types

    async def test_arguments_as_json_string(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path)
        agent = ScriptedAgent(
            _tool_calling("vault_read_file", json.dumps({"file_path": "notes/ideas.md"}))
        )
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc):
            await manager.send("alpha", "read it")

        returned = agent.tool_returns()[0]
        assert returned["status"] == "success"
        assert "hello world" in json.loads(returned["message"])["content"]
        await manager.shutdown()

    async def test_blocked_folder_is_reported_as_error(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path)
        agent = ScriptedAgent(
            _tool_calling("vault_read_file", {"file_path": "private/secret.md"})
        )
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc):
            result = await manager.send("alpha", "read secret")

        assert result.reply == "tool error"
        returned = agent.tool_returns()[0]
        assert returned["status"] == "error"
        assert "Access denied" in returned["message"]
        await manager.shutdown()

    async def test_write_without_approval(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path)
        agent = ScriptedAgent(
            _tool_calling("vault_write_note", {"title": "New", "content": "x"})
        )
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc):
            await manager.send("alpha", "write")

        returned = agent.tool_returns()[0]
        assert returned["status"] == "error"
        assert "requires user approval" in returned["message"]
        assert not (tmp_path / "vault" / "New.md").exists()
        await manager.shutdown()

    async def test_write_with_approval(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path, approved=True)
        agent = ScriptedAgent(
            _tool_calling("vault_write_note", {"title": "New", "content": "x"})
        )
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc):
            await manager.send("alpha", "write")

        assert agent.tool_returns()[0]["status"] == "success"
        assert (tmp_path / "vault" / "New.md").read_text() == "x"
        await manager.shutdown()

    async def test_unknown_tool(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path)
        agent = ScriptedAgent(_tool_calling("vault_explode", {}))
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc):
            await manager.send("alpha", "boom")

        returned = agent.tool_returns()[0]
        assert returned["status"] == "error"
        assert returned["message"] == "Tool not found: vault_explode"
        await manager.shutdown()

    async def test_malformed_arguments(self, tmp_path: Path) -> None:
        manager = _make_manager(tmp_path)
        agent = ScriptedAgent(_tool_calling("vault_search", "{not json"))
        with patch("asyncio.create_subprocess_exec", return_value=agent.proc):
            await manager.send("alpha", "search")

        returned = agent.tool_returns()[0]
        assert returned["status"] == "error"
        assert returned["message"].startswith("Invalid tool arguments")
        await manager.shutdown()
