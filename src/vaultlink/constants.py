"""Shared constants and type aliases for the vaultlink runtime."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

#: Maximum number of agent messages kept per session.
CACHE_CAPACITY = 200

#: Seconds the child must stay alive after spawn before it counts as ready.
READY_GRACE = 1.0

#: Seconds to wait for a natural exit after closing stdin.
STOP_GRACE = 2.0

#: Seconds to wait after SIGTERM before SIGKILL.
SIGTERM_WAIT = 1.0

#: Seconds of inactivity after which an exchange is considered complete.
COMPLETION_TIMEOUT = 30.0

#: Seconds to wait for a correlated ``response`` line.
REQUEST_TIMEOUT = 30.0

#: Maximum bytes per JSONL line from the agent's stdout (1 MB).
MAX_LINE_BYTES = 1_048_576

#: Bare command name used when nothing better can be resolved.
DEFAULT_COMMAND = "letta"

#: Arguments that put the agent CLI into line-delimited JSON mode.
DEFAULT_ARGS = ("--headless", "--output", "json")

#: Callback type for streaming message handlers (sync or async).
MessageCallback = Callable[[Any], Awaitable[None] | None]
