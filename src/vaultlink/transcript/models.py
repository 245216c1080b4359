"""Pydantic v2 models for transcript events."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class _EventBase(BaseModel):
    """Common envelope fields shared by every transcript event."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    ts: str = Field(description="ISO 8601 timestamp with milliseconds")
    seq: int = Field(ge=0, description="Monotonic sequence number")


class TranscriptStartEvent(_EventBase):
    """Emitted once when a transcript is opened."""

    type: Literal["transcript_start"] = "transcript_start"
    transcript_id: str = Field(description="Unique transcript identifier")
    name: str = Field(description="Host or workspace name")
    config_hash: str = Field(description="Hash of the resolved config")


class TranscriptEndEvent(_EventBase):
    """Emitted once when a transcript is closed."""

    type: Literal["transcript_end"] = "transcript_end"
    reason: Literal["complete", "user_shutdown", "ctrl_c", "error"] = Field(
        description="Why the transcript ended",
    )
    duration_ms: int = Field(description="Total duration in milliseconds")


LifecycleState = Literal["starting", "ready", "stopped", "closed"]


class LifecycleEvent(_EventBase):
    """An agent process changed state."""

    type: Literal["lifecycle"] = "lifecycle"
    agent: str = Field(description="Agent name")
    state: LifecycleState = Field(description="New process state")
    pid: int | None = Field(default=None, description="Process id, when known")


class AgentMessageEvent(_EventBase):
    """An inbound message from an agent process."""

    type: Literal["agent_message"] = "agent_message"
    agent: str = Field(description="Agent name")
    message_type: str = Field(description="Inbound message tag")
    content: str | None = Field(default=None, description="Text, if any")


class ToolCallEvent(_EventBase):
    """Emitted when a tool is invoked."""

    type: Literal["tool_call"] = "tool_call"
    agent: str | None = Field(default=None, description="Agent invoking the tool")
    tool: str = Field(description="Tool name")
    args: dict[str, Any] = Field(description="Tool arguments")


class ToolResultEvent(_EventBase):
    """Emitted when a tool call returns."""

    type: Literal["tool_result"] = "tool_result"
    agent: str | None = Field(default=None, description="Agent that invoked the tool")
    tool: str = Field(description="Tool name")
    success: bool = Field(description="Whether the tool succeeded")
    duration_ms: int = Field(description="Tool execution duration in milliseconds")
    error: str | None = Field(default=None, description="Error text on failure")


class ErrorEvent(_EventBase):
    """A bridge-level error."""

    type: Literal["error"] = "error"
    agent: str | None = Field(
        default=None,
        description="Agent that hit the error (null for host-level errors)",
    )
    error: str = Field(description="Error description")
    context: str | None = Field(
        default=None,
        description="Error context: subprocess, protocol, tool, ...",
    )


def _event_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


TranscriptEvent = Annotated[
    Annotated[TranscriptStartEvent, Tag("transcript_start")]
    | Annotated[TranscriptEndEvent, Tag("transcript_end")]
    | Annotated[LifecycleEvent, Tag("lifecycle")]
    | Annotated[AgentMessageEvent, Tag("agent_message")]
    | Annotated[ToolCallEvent, Tag("tool_call")]
    | Annotated[ToolResultEvent, Tag("tool_result")]
    | Annotated[ErrorEvent, Tag("error")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of all transcript event types."""
