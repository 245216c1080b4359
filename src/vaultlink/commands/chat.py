"""vaultlink chat — talk to an agent with vault tools enabled."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
from pathlib import Path

import click

from vaultlink.bridge.manager import BridgeManager
from vaultlink.config.models import BridgeConfig
from vaultlink.config.parser import ConfigError, load_config
from vaultlink.errors import BridgeError
from vaultlink.protocol.models import (
    AgentMessage,
    AssistantMessage,
    FunctionCallMessage,
    FunctionReturnMessage,
    InternalMonologue,
    message_text,
)
from vaultlink.tools import ApprovalState, context_from_config, create_default_registry
from vaultlink.transcript.recorder import EndReason, TranscriptRecorder

_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9_-]")

HELP_TEXT = """\
Commands:
  /approve   allow the agent to modify the vault for this session
  /revoke    withdraw vault modification approval
  /clear     clear the cached message history
  /history   show cached messages
  /exit      quit"""


# ------------------------------------------------------------------ #
# Click command
# ------------------------------------------------------------------ #


@click.command()
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option("-a", "--agent", "agent_name", default=None, help="Agent to talk to.")
@click.option(
    "-p",
    "--prompt",
    "prompt",
    type=str,
    default=None,
    help="Send a single prompt, print the reply, and exit.",
)
@click.option(
    "--approve",
    is_flag=True,
    help="Approve vault modifications for this session up front.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
def chat(
    config_file: str | None,
    agent_name: str | None,
    prompt: str | None,
    approve: bool,
    verbose: bool,
) -> None:
    """Connect to an agent and chat, dispatching its vault tool calls."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    name = agent_name or config.default_agent or ""
    if name not in config.agents:
        available = ", ".join(config.agents)
        click.echo(f"Error: unknown agent '{name}' (available: {available})", err=True)
        raise SystemExit(1)
    if not Path(config.vault).is_dir():
        click.echo(f"Error: vault folder not found: {config.vault}", err=True)
        raise SystemExit(1)

    reason = asyncio.run(_run_chat(config, name, prompt, approve))
    if reason == "error":
        raise SystemExit(1)


# ------------------------------------------------------------------ #
# Session runner
# ------------------------------------------------------------------ #


async def _run_chat(
    config: BridgeConfig,
    agent: str,
    prompt: str | None,
    approve: bool,
) -> EndReason:
    """Wire up the bridge, run one prompt or the REPL, then shut down."""
    config_hash = hashlib.sha256(config.model_dump_json().encode()).hexdigest()[:16]
    recorder = TranscriptRecorder(
        name=_UNSAFE_NAME_RE.sub("_", agent),
        config_hash=config_hash,
    )
    approval = ApprovalState(approved=approve)
    registry = create_default_registry(context_from_config(config, approval), recorder)
    manager = BridgeManager(config, registry, recorder=recorder)

    reason: EndReason = "user_shutdown"
    try:
        session = await manager.connect(agent)
        session.on("error", lambda exc: click.echo(f"[{agent}] {exc}", err=True))
        if prompt is not None:
            ok = await _exchange(manager, agent, prompt)
            reason = "complete" if ok else "error"
        else:
            reason = await _repl_loop(manager, agent, approval)
    except BridgeError as exc:
        click.echo(f"Error: {exc}", err=True)
        reason = "error"
    except asyncio.CancelledError:
        reason = "ctrl_c"
        raise
    finally:
        await manager.shutdown()
        recorder.end(reason)
    return reason


async def _exchange(manager: BridgeManager, agent: str, text: str) -> bool:
    """Run one exchange, streaming messages as they arrive."""
    try:
        result = await manager.send(agent, text, on_message=print_message)
    except BridgeError as exc:
        click.echo(f"Error: {exc}", err=True)
        return False
    if result.reason == "timeout" and result.reply is None:
        click.echo(f"[{agent} did not reply before the timeout]", err=True)
    return True


# ------------------------------------------------------------------ #
# REPL
# ------------------------------------------------------------------ #


async def _repl_loop(
    manager: BridgeManager,
    agent: str,
    approval: ApprovalState,
) -> EndReason:
    click.echo(f"Connected to {agent}. Type /help for commands.")
    while True:
        try:
            line = await asyncio.to_thread(
                click.prompt, "you", default="", show_default=False
            )
        except (EOFError, click.Abort):
            click.echo()
            return "user_shutdown"

        line = line.strip()
        if not line:
            continue
        if line.startswith("/"):
            if handle_command(line, manager, agent, approval):
                return "user_shutdown"
            continue
        await _exchange(manager, agent, line)


def handle_command(
    line: str,
    manager: BridgeManager,
    agent: str,
    approval: ApprovalState,
) -> bool:
    """Process a slash command. Returns ``True`` if the REPL should exit."""
    cmd = line.split()[0].lower()

    if cmd in ("/exit", "/quit"):
        return True

    if cmd == "/approve":
        approval.approve()
        click.echo("Vault modifications approved for this session.")
    elif cmd == "/revoke":
        approval.revoke()
        click.echo("Vault modification approval revoked.")
    elif cmd == "/clear":
        session = manager.get_session(agent)
        if session is not None:
            session.clear_cache()
        click.echo("History cleared.")
    elif cmd == "/history":
        messages = manager.cached_messages(agent)
        if not messages:
            click.echo("No messages yet.")
        for message in messages:
            click.echo(f"  [{message.message_type}] {message_text(message) or ''}")
    elif cmd == "/help":
        click.echo(HELP_TEXT)
    else:
        click.echo(f"Unknown command: {cmd}. Type /help for commands.")
    return False


def print_message(message: AgentMessage) -> None:
    """Render one streamed agent message to the terminal."""
    match message:
        case InternalMonologue():
            if message.content:
                click.secho(f"  ({message.content})", dim=True)
        case FunctionCallMessage():
            call = message.function_call
            args = call.arguments
            if not isinstance(args, str):
                args = json.dumps(args)
            click.secho(f"  -> {call.name}({args})", fg="cyan")
        case FunctionReturnMessage():
            ret = message.function_return
            colour = "green" if ret.status == "success" else "red"
            click.secho(f"  <- {ret.status}", fg=colour)
        case AssistantMessage():
            click.echo(message.content or "")
