"""Tool layer — permission guard, registry, and built-in vault and memory tools."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from vaultlink.config.models import BridgeConfig
from vaultlink.store.local import LocalDocumentStore
from vaultlink.tools.guard import ApprovalReader, ApprovalState, PermissionGuard
from vaultlink.tools.memory import MEMORY_TOOLS, MemoryBlockStore, register_memory_tools
from vaultlink.tools.registry import ToolContext, ToolDefinition, ToolRegistry, ToolResult
from vaultlink.tools.vault import VAULT_TOOLS, register_vault_tools
from vaultlink.transcript.recorder import TranscriptRecorder


def builtin_schemas() -> list[dict[str, Any]]:
    """Schemas of every built-in tool, in registration order."""
    return [tool.to_schema() for tool in (*VAULT_TOOLS, *MEMORY_TOOLS)]


def create_default_registry(
    context: ToolContext,
    recorder: TranscriptRecorder | None = None,
) -> ToolRegistry:
    """Registry with every built-in vault and memory tool."""
    registry = ToolRegistry(context, recorder)
    register_vault_tools(registry)
    register_memory_tools(registry)
    return registry


def context_from_config(config: BridgeConfig, approval: ApprovalReader) -> ToolContext:
    """Tool context over the configured vault directory."""
    guard = PermissionGuard(
        config.permissions.blocked_folders,
        approval,
        case_sensitive=config.permissions.case_sensitive,
    )
    return ToolContext(
        store=LocalDocumentStore(Path(config.vault)),
        guard=guard,
        memory=MemoryBlockStore(config.memory_blocks),
        default_note_folder=config.default_note_folder,
    )


__all__ = [
    "ApprovalReader",
    "ApprovalState",
    "MemoryBlockStore",
    "PermissionGuard",
    "ToolContext",
    "ToolDefinition",
    "ToolRegistry",
    "ToolResult",
    "builtin_schemas",
    "context_from_config",
    "create_default_registry",
]
