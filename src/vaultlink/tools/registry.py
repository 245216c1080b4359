"""Tool definitions and the registry that dispatches agent tool calls."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from vaultlink.errors import (
    DuplicateToolError,
    InvalidArgumentError,
    ToolError,
    ToolNotFoundError,
)
from vaultlink.transcript.models import ToolCallEvent, ToolResultEvent

if TYPE_CHECKING:
    from vaultlink.store.base import DocumentStore
    from vaultlink.tools.guard import PermissionGuard
    from vaultlink.tools.memory import MemoryBlockStore
    from vaultlink.transcript.recorder import TranscriptRecorder

logger = logging.getLogger(__name__)


class ToolResult(BaseModel):
    """Structured outcome of a tool call, reported back to the agent."""

    model_config = ConfigDict(extra="forbid")

    success: bool = Field(description="Whether the tool succeeded")
    data: Any = Field(default=None, description="Result payload on success")
    error: str | None = Field(default=None, description="Error text on failure")

    @classmethod
    def ok(cls, data: Any = None) -> ToolResult:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str) -> ToolResult:
        return cls(success=False, error=error)

    def to_return(self) -> tuple[str, str]:
        """Status and message for the ``function_return`` sent to the agent."""
        if self.success:
            return "success", json.dumps(self.data, default=str)
        return "error", self.error or "Tool execution failed"


@dataclass(frozen=True)
class ToolContext:
    """Collaborators available to every executor."""

    store: DocumentStore
    guard: PermissionGuard
    memory: MemoryBlockStore | None = None
    default_note_folder: str = ""


ToolExecutor = Callable[[dict[str, Any], ToolContext], Awaitable[ToolResult]]


@dataclass(frozen=True)
class ToolDefinition:
    """A named tool contract: description, JSON parameter schema, executor."""

    name: str
    description: str
    parameters: dict[str, Any]
    executor: ToolExecutor = field(compare=False)

    @classmethod
    def from_schema(cls, schema: dict[str, Any], executor: ToolExecutor) -> ToolDefinition:
        """Build a definition from a ``{name, description, input_schema}`` dict."""
        return cls(
            name=schema["name"],
            description=schema["description"],
            parameters=schema["input_schema"],
            executor=executor,
        )

    @property
    def required(self) -> list[str]:
        return list(self.parameters.get("required", []))

    def to_schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }


class ToolRegistry:
    """Holds tool definitions and executes tool calls.

    ``execute`` never raises: unknown tools, invalid arguments and
    executor failures all come back as ``ToolResult(success=False)``.
    Records ``tool_call`` and ``tool_result`` events when a recorder is set.
    """

    def __init__(
        self,
        context: ToolContext,
        recorder: TranscriptRecorder | None = None,
    ) -> None:
        self._context = context
        self._recorder = recorder
        self._tools: dict[str, ToolDefinition] = {}

    @property
    def context(self) -> ToolContext:
        return self._context

    @property
    def definitions(self) -> list[ToolDefinition]:
        """All registered tools, in registration order."""
        return list(self._tools.values())

    def schemas(self) -> list[dict[str, Any]]:
        """Tool schemas for advertising capabilities to an agent."""
        return [tool.to_schema() for tool in self._tools.values()]

    def register(self, definition: ToolDefinition) -> None:
        """Add *definition*; raises ``DuplicateToolError`` if the name is taken."""
        if definition.name in self._tools:
            msg = f"Tool already registered: {definition.name}"
            raise DuplicateToolError(msg)
        self._tools[definition.name] = definition

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(
        self,
        name: str,
        arguments: Any,
        *,
        agent: str | None = None,
    ) -> ToolResult:
        """Run tool *name* with *arguments* and return its result."""
        args = arguments if isinstance(arguments, dict) else {}
        if self._recorder is not None:
            self._recorder.record(
                ToolCallEvent(ts="", seq=0, agent=agent, tool=name, args=args)
            )

        start = time.monotonic()
        result = await self._dispatch(name, arguments)
        elapsed_ms = int((time.monotonic() - start) * 1000)

        if not result.success:
            logger.info("%s: tool %s failed: %s", agent or "host", name, result.error)
        if self._recorder is not None:
            self._recorder.record(
                ToolResultEvent(
                    ts="",
                    seq=0,
                    agent=agent,
                    tool=name,
                    success=result.success,
                    duration_ms=elapsed_ms,
                    error=result.error,
                )
            )
        return result

    async def _dispatch(self, name: str, arguments: Any) -> ToolResult:
        definition = self._tools.get(name)
        if definition is None:
            return ToolResult.failure(str(ToolNotFoundError(name)))

        try:
            args = _check_arguments(definition, arguments)
            return await definition.executor(args, self._context)
        except ToolError as exc:
            return ToolResult.failure(str(exc))
        except Exception as exc:
            logger.exception("tool %s raised", name)
            return ToolResult.failure(str(exc) or "Tool execution failed")


def _check_arguments(definition: ToolDefinition, arguments: Any) -> dict[str, Any]:
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        msg = f"Arguments for {definition.name} must be an object"
        raise InvalidArgumentError(msg)
    missing = [key for key in definition.required if arguments.get(key) is None]
    if missing:
        joined = ", ".join(missing)
        msg = f"Missing required argument(s) for {definition.name}: {joined}"
        raise InvalidArgumentError(msg)
    return arguments
