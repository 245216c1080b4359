"""Pydantic v2 models for vaultlink.yaml configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from vaultlink.constants import (
    CACHE_CAPACITY,
    COMPLETION_TIMEOUT,
    DEFAULT_ARGS,
    DEFAULT_COMMAND,
    READY_GRACE,
    REQUEST_TIMEOUT,
    STOP_GRACE,
)


class AgentConfig(BaseModel):
    """How to launch one agent process."""

    model_config = ConfigDict(extra="forbid")

    agent_id: str | None = Field(
        default=None,
        description="Agent identifier passed as '--agent <id>'",
    )
    command: str = Field(
        default=DEFAULT_COMMAND,
        min_length=1,
        description="Bare command name, used when nothing better is found",
    )
    executable: str | None = Field(
        default=None,
        description="Explicit path to the agent executable",
    )
    runtime: str | None = Field(
        default=None,
        description="Explicit JavaScript runtime path (requires 'entrypoint')",
    )
    entrypoint: str | None = Field(
        default=None,
        description="Explicit agent entry script (requires 'runtime')",
    )
    args: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ARGS),
        description="Arguments that select line-delimited JSON mode",
    )
    working_directory: str | None = Field(
        default=None,
        description="Process working directory (defaults to the vault root)",
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables for the process",
    )
    debug: bool = Field(
        default=False,
        description="Log agent stderr at INFO instead of DEBUG",
    )

    @model_validator(mode="after")
    def _validate_runtime_pair(self) -> AgentConfig:
        if bool(self.runtime) != bool(self.entrypoint):
            msg = "'runtime' and 'entrypoint' must be given together"
            raise ValueError(msg)
        return self


class PermissionsConfig(BaseModel):
    """Folder restrictions applied to every tool call."""

    model_config = ConfigDict(extra="forbid")

    blocked_folders: list[str] = Field(
        default_factory=list,
        description="Folders agents may never read or modify",
    )
    case_sensitive: bool = Field(
        default=True,
        description="Whether blocked-folder matching is case-sensitive",
    )


class TimeoutsConfig(BaseModel):
    """Timing knobs for the process bridge, in seconds."""

    model_config = ConfigDict(extra="forbid")

    ready_grace: float = Field(
        default=READY_GRACE,
        ge=0,
        description="Time the process must survive after spawn",
    )
    stop_grace: float = Field(
        default=STOP_GRACE,
        gt=0,
        description="Time allowed for a natural exit after stdin is closed",
    )
    completion: float = Field(
        default=COMPLETION_TIMEOUT,
        gt=0,
        description="Idle time after which an exchange is complete",
    )
    request: float = Field(
        default=REQUEST_TIMEOUT,
        gt=0,
        description="Time to wait for a correlated response",
    )


class BridgeConfig(BaseModel):
    """Top-level vaultlink.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1", description="Config schema version")
    vault: str = Field(default=".", description="Root folder of the note vault")
    default_note_folder: str = Field(
        default="",
        description="Folder used for new notes when none is given",
    )
    default_agent: str | None = Field(
        default=None,
        description="Agent used when none is named (defaults to the first agent)",
    )
    cache_size: int = Field(
        default=CACHE_CAPACITY,
        ge=1,
        description="Messages kept per agent session",
    )
    agents: dict[str, AgentConfig] = Field(
        description="Agent definitions (at least one required)",
    )
    permissions: PermissionsConfig = Field(
        default_factory=PermissionsConfig,
        description="Folder restrictions",
    )
    timeouts: TimeoutsConfig = Field(
        default_factory=TimeoutsConfig,
        description="Process bridge timing",
    )
    memory_blocks: dict[str, str] = Field(
        default_factory=dict,
        description="Initial agent memory blocks, label -> content",
    )
    advertise_tools: bool = Field(
        default=False,
        description="Announce tool definitions to each agent after connecting",
    )

    @model_validator(mode="after")
    def _validate_agents_and_default(self) -> BridgeConfig:
        if not self.agents:
            msg = "At least one agent must be defined"
            raise ValueError(msg)
        if self.default_agent is None:
            self.default_agent = next(iter(self.agents))
        if self.default_agent not in self.agents:
            available = ", ".join(f"'{a}'" for a in self.agents)
            msg = (
                f"Default agent '{self.default_agent}' not found — "
                f"available agents: {available}"
            )
            raise ValueError(msg)
        return self
