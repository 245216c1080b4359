"""Exception hierarchy shared by the bridge and the tool layer."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for process-bridge failures."""


class SpawnError(BridgeError):
    """The agent process could not be launched or died during startup."""


class BridgeNotReadyError(BridgeError):
    """The bridge is not in a state that accepts the requested operation."""


class BridgeWriteError(BridgeError):
    """Writing to the agent's stdin failed."""


class ProcessClosedError(BridgeError):
    """The agent process exited while work was still in flight."""


class BridgeTimeoutError(BridgeError):
    """No correlated response arrived in time."""


class AgentError(BridgeError):
    """An error reported by the agent process itself."""


class UnknownAgentError(BridgeError):
    """Raised when a session is requested for an unconfigured agent."""


class ProtocolParseError(ValueError):
    """A line from the agent could not be decoded as JSON."""


class ToolError(Exception):
    """Base class for failures reported back to the agent as a ToolResult."""


class ToolNotFoundError(ToolError):
    """No tool is registered under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool not found: {name}")
        self.name = name


class PermissionDeniedError(ToolError):
    """The target lies inside a blocked folder."""

    def __init__(self, folder: str) -> None:
        super().__init__(f"Access denied: {folder} is a restricted folder")
        self.folder = folder


class ApprovalRequiredError(ToolError):
    """A mutating operation was attempted without session approval."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            f"{operation.capitalize()} operation requires user approval. "
            "Approve vault access for this session first."
        )
        self.operation = operation


class NotFoundError(ToolError):
    """The file, folder, or section targeted by a tool does not exist."""


class InvalidArgumentError(ToolError):
    """Tool arguments are missing or malformed."""


class DuplicateToolError(ValueError):
    """A tool with the same name is already registered."""
