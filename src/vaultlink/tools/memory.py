"""Agent memory blocks and the tools that expose them."""

from __future__ import annotations

from typing import Any

from vaultlink.errors import NotFoundError, ToolError
from vaultlink.tools.registry import ToolContext, ToolDefinition, ToolRegistry, ToolResult
from vaultlink.tools.schemas import (
    LIST_MEMORY_BLOCKS_TOOL,
    READ_MEMORY_BLOCK_TOOL,
    UPDATE_MEMORY_BLOCK_TOOL,
)


class MemoryBlockStore:
    """In-process labelled text blocks, seeded from configuration."""

    def __init__(self, blocks: dict[str, str] | None = None) -> None:
        self._blocks: dict[str, str] = dict(blocks or {})

    def labels(self) -> list[str]:
        return list(self._blocks)

    def read(self, label: str) -> str | None:
        return self._blocks.get(label)

    def update(self, label: str, content: str) -> bool:
        """Set *label* to *content*; returns True if the block was created."""
        created = label not in self._blocks
        self._blocks[label] = content
        return created

    def __len__(self) -> int:
        return len(self._blocks)


def _memory(ctx: ToolContext) -> MemoryBlockStore:
    if ctx.memory is None:
        msg = "Memory blocks are not available"
        raise ToolError(msg)
    return ctx.memory


async def list_memory_blocks(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    memory = _memory(ctx)
    blocks = [
        {"label": label, "size": len(memory.read(label) or "")}
        for label in memory.labels()
    ]
    return ToolResult.ok({"blocks": blocks, "total": len(blocks)})


async def read_memory_block(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    label = str(args["block_label"])
    content = _memory(ctx).read(label)
    if content is None:
        msg = f"Memory block not found: {label}"
        raise NotFoundError(msg)
    return ToolResult.ok({"label": label, "content": content})


async def update_memory_block(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    label = str(args["block_label"])
    created = _memory(ctx).update(label, str(args["content"]))
    return ToolResult.ok({"label": label, "updated": True, "created": created})


MEMORY_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition.from_schema(LIST_MEMORY_BLOCKS_TOOL, list_memory_blocks),
    ToolDefinition.from_schema(READ_MEMORY_BLOCK_TOOL, read_memory_block),
    ToolDefinition.from_schema(UPDATE_MEMORY_BLOCK_TOOL, update_memory_block),
)


def register_memory_tools(registry: ToolRegistry) -> None:
    for definition in MEMORY_TOOLS:
        registry.register(definition)
