"""Vault tool executors.

Paths are canonicalized with ``normalize_folder`` first, so the guard and
the store see the same path.  Every executor then checks, in order: the
blocked-folder list, the session approval flag (mutating tools only), and
then calls the document store.
Store-level "not found" conditions come back as ``NotFoundError``.
"""

from __future__ import annotations

import contextlib
import re
from collections.abc import Iterator
from typing import Any

from vaultlink.errors import InvalidArgumentError, NotFoundError
from vaultlink.store.base import DocumentNotFoundError, Entry, Metadata
from vaultlink.tools.guard import folder_of, normalize_folder
from vaultlink.tools.registry import ToolContext, ToolDefinition, ToolRegistry, ToolResult
from vaultlink.tools.schemas import (
    VAULT_COPY_FILE_TOOL,
    VAULT_CREATE_FOLDER_TOOL,
    VAULT_DELETE_FILE_TOOL,
    VAULT_GET_METADATA_TOOL,
    VAULT_LIST_FILES_TOOL,
    VAULT_MODIFY_FILE_TOOL,
    VAULT_MOVE_TOOL,
    VAULT_READ_FILE_TOOL,
    VAULT_RENAME_TOOL,
    VAULT_SEARCH_TOOL,
    VAULT_WRITE_NOTE_TOOL,
)

#: Characters replaced by ``_`` in note titles.
_UNSAFE_TITLE_RE = re.compile(r'[\\/:*?"<>|]')

#: Any markdown heading line.
_HEADING_RE = re.compile(r"^#{1,6}\s+", re.MULTILINE)

_SEARCH_TYPES = frozenset({"name", "content", "tags", "path", "all"})

_PREVIEW_CHARS = 200

_DEFAULT_SEARCH_LIMIT = 20
_DEFAULT_LIST_LIMIT = 50


# ------------------------------------------------------------------ #
# Argument helpers
# ------------------------------------------------------------------ #


def _str_arg(args: dict[str, Any], key: str, default: str = "") -> str:
    value = args.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        msg = f"'{key}' must be a string"
        raise InvalidArgumentError(msg)
    return value


def _int_arg(args: dict[str, Any], key: str, default: int) -> int:
    value = args.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        msg = f"'{key}' must be an integer"
        raise InvalidArgumentError(msg)
    try:
        number = int(value)
    except ValueError as exc:
        msg = f"'{key}' must be an integer"
        raise InvalidArgumentError(msg) from exc
    return max(number, 0)


def _bool_arg(args: dict[str, Any], key: str, default: bool) -> bool:
    value = args.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no", "")
    return bool(value)


@contextlib.contextmanager
def _not_found(message: str) -> Iterator[None]:
    """Translate a store-level ``DocumentNotFoundError`` into ``NotFoundError``."""
    try:
        yield
    except DocumentNotFoundError as exc:
        raise NotFoundError(message) from exc


def _require_file(ctx: ToolContext, path: str, message: str) -> Entry:
    entry = ctx.store.lookup(path)
    if entry is None or entry.kind != "file":
        raise NotFoundError(message)
    return entry


def _headings(meta: Metadata) -> list[dict[str, Any]]:
    return [{"level": h.level, "heading": h.heading} for h in meta.headings]


def _preview(content: str) -> str:
    if len(content) > _PREVIEW_CHARS:
        return content[:_PREVIEW_CHARS] + "..."
    return content


# ------------------------------------------------------------------ #
# Read-only tools
# ------------------------------------------------------------------ #


async def read_file(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    path = normalize_folder(_str_arg(args, "file_path"))
    include_metadata = _bool_arg(args, "include_metadata", True)
    ctx.guard.check_path(path)

    message = f"File not found: {path}"
    _require_file(ctx, path, message)
    with _not_found(message):
        file = await ctx.store.read_file(path)
        data: dict[str, Any] = {
            "path": file.entry.path,
            "name": file.entry.name,
            "content": file.content,
        }
        if include_metadata:
            meta = await ctx.store.get_metadata(path)
            data.update(
                frontmatter=meta.frontmatter,
                tags=meta.tags,
                headings=_headings(meta),
                links=meta.links,
                created=file.entry.created,
                modified=file.entry.modified,
                size=file.entry.size,
            )
    return ToolResult.ok(data)


async def _matches(ctx: ToolContext, entry: Entry, needle: str, search_type: str) -> bool:
    if search_type in ("name", "all") and needle in entry.name.casefold():
        return True
    if search_type in ("path", "all") and needle in entry.path.casefold():
        return True
    if search_type in ("tags", "all"):
        meta = await ctx.store.get_metadata(entry.path)
        if any(needle in tag.casefold() for tag in meta.tags):
            return True
    if search_type == "content" or (search_type == "all" and needle):
        file = await ctx.store.read_file(entry.path)
        return needle in file.content.casefold()
    return False


async def search(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    query = _str_arg(args, "query")
    search_type = _str_arg(args, "search_type", "all")
    if search_type not in _SEARCH_TYPES:
        search_type = "all"
    folder = normalize_folder(_str_arg(args, "folder"))
    limit = _int_arg(args, "limit", _DEFAULT_SEARCH_LIMIT)

    with _not_found(f"Folder not found: {folder}"):
        entries = await ctx.store.list_children(folder, recursive=True)

    needle = query.casefold()
    results: list[dict[str, Any]] = []
    for entry in entries:
        if len(results) >= limit:
            break
        if not entry.is_markdown or ctx.guard.is_blocked(entry.folder):
            continue
        with _not_found(f"File not found: {entry.path}"):
            if not await _matches(ctx, entry, needle, search_type):
                continue
            file = await ctx.store.read_file(entry.path)
        results.append(
            {
                "path": entry.path,
                "name": entry.name,
                "folder": entry.folder,
                "modified": entry.modified,
                "preview": _preview(file.content),
            }
        )

    return ToolResult.ok(
        {
            "query": query,
            "search_type": search_type,
            "results": results,
            "total_found": len(results),
        }
    )


async def list_files(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    folder = normalize_folder(_str_arg(args, "folder"))
    recursive = _bool_arg(args, "recursive", False)
    limit = _int_arg(args, "limit", _DEFAULT_LIST_LIMIT)
    ctx.guard.check_folder(folder)

    with _not_found(f"Folder not found: {folder}"):
        entries = await ctx.store.list_children(folder, recursive=recursive)
        files: list[dict[str, Any]] = []
        for entry in entries:
            if len(files) >= limit:
                break
            if not entry.is_markdown or ctx.guard.is_blocked(entry.folder):
                continue
            meta = await ctx.store.get_metadata(entry.path)
            files.append(
                {
                    "path": entry.path,
                    "name": entry.name,
                    "folder": entry.folder,
                    "modified": entry.modified,
                    "size": entry.size,
                    "tags": meta.tags,
                }
            )

    return ToolResult.ok(
        {
            "folder": folder or "(vault root)",
            "recursive": recursive,
            "files": files,
            "total": len(files),
        }
    )


async def get_metadata(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    path = normalize_folder(_str_arg(args, "file_path"))
    ctx.guard.check_path(path)

    message = f"File not found: {path}"
    entry = _require_file(ctx, path, message)
    with _not_found(message):
        meta = await ctx.store.get_metadata(path)
    return ToolResult.ok(
        {
            "path": entry.path,
            "name": entry.name,
            "extension": entry.extension,
            "folder": entry.folder,
            "created": entry.created,
            "modified": entry.modified,
            "size": entry.size,
            "frontmatter": meta.frontmatter,
            "tags": meta.tags,
            "headings": _headings(meta),
            "links": meta.links,
            "embeds": meta.embeds,
        }
    )


# ------------------------------------------------------------------ #
# Mutating tools
# ------------------------------------------------------------------ #


async def write_note(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    title = _str_arg(args, "title")
    content = _str_arg(args, "content")
    folder = normalize_folder(_str_arg(args, "folder", ctx.default_note_folder))
    if not title.strip():
        msg = "'title' must not be empty"
        raise InvalidArgumentError(msg)
    ctx.guard.check_folder(folder)
    ctx.guard.require_approval("write")

    file_name = _UNSAFE_TITLE_RE.sub("_", title) + ".md"
    path = f"{folder}/{file_name}" if folder else file_name

    if folder and ctx.store.lookup(folder) is None:
        await ctx.store.create_directory(folder)
    action = await ctx.store.write_file(path, content)
    return ToolResult.ok({"path": path, "action": action})


def _replace_section(current: str, heading: str, content: str) -> str:
    match = re.search(rf"^{re.escape(heading)}[ \t]*$", current, re.MULTILINE)
    if match is None:
        msg = f"Section heading not found: {heading}"
        raise NotFoundError(msg)
    start = match.end()
    following = _HEADING_RE.search(current, start)
    end = following.start() if following is not None else len(current)
    return current[:start] + "\n" + content + "\n" + current[end:]


async def modify_file(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    path = normalize_folder(_str_arg(args, "file_path"))
    operation = _str_arg(args, "operation")
    content = _str_arg(args, "content")
    heading = _str_arg(args, "section_heading")
    ctx.guard.check_path(path)
    ctx.guard.require_approval("modify")

    if operation not in ("append", "prepend", "replace_section"):
        msg = f"Unknown operation: {operation}"
        raise InvalidArgumentError(msg)
    if operation == "replace_section" and not heading:
        msg = "section_heading required for replace_section operation"
        raise InvalidArgumentError(msg)

    message = f"File not found: {path}"
    _require_file(ctx, path, message)
    with _not_found(message):
        current = (await ctx.store.read_file(path)).content
        match operation:
            case "append":
                updated = current + "\n" + content
            case "prepend":
                updated = content + "\n" + current
            case _:
                updated = _replace_section(current, heading, content)
        await ctx.store.write_file(path, updated)
    return ToolResult.ok({"path": path, "operation": operation})


async def delete_file(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    path = normalize_folder(_str_arg(args, "file_path"))
    to_trash = _bool_arg(args, "move_to_trash", True)
    ctx.guard.check_entry(path)
    ctx.guard.require_approval("delete")

    message = f"File not found: {path}"
    if not path or ctx.store.lookup(path) is None:
        raise NotFoundError(message)
    with _not_found(message):
        await ctx.store.delete(path, to_trash=to_trash)
    return ToolResult.ok({"path": path, "moved_to_trash": to_trash})


async def create_folder(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    folder = normalize_folder(_str_arg(args, "folder_path"))
    if not folder:
        msg = "'folder_path' must not be empty"
        raise InvalidArgumentError(msg)
    ctx.guard.check_folder(folder)
    ctx.guard.require_approval("create folder")

    if ctx.store.lookup(folder) is not None:
        msg = f"Folder already exists: {folder}"
        raise InvalidArgumentError(msg)
    await ctx.store.create_directory(folder)
    return ToolResult.ok({"path": folder})


async def rename(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    old_path = normalize_folder(_str_arg(args, "old_path"))
    new_name = _str_arg(args, "new_name").strip()
    ctx.guard.check_entry(old_path)
    ctx.guard.require_approval("rename")

    if not new_name or "/" in new_name or "\\" in new_name:
        msg = "'new_name' must be a plain name without path separators"
        raise InvalidArgumentError(msg)

    message = f"File or folder not found: {old_path}"
    entry = ctx.store.lookup(old_path) if old_path else None
    if entry is None:
        raise NotFoundError(message)
    if entry.kind == "file" and not new_name.endswith(".md"):
        new_name += ".md"

    with _not_found(message):
        new_path = await ctx.store.rename(old_path, new_name)
    return ToolResult.ok({"old_path": old_path, "new_path": new_path})


async def move(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    source = normalize_folder(_str_arg(args, "source_path"))
    destination = normalize_folder(_str_arg(args, "destination_folder"))
    ctx.guard.check_entry(source)
    ctx.guard.check_folder(destination)
    ctx.guard.require_approval("move")

    message = f"File or folder not found: {source}"
    if not source or ctx.store.lookup(source) is None:
        raise NotFoundError(message)

    if destination and ctx.store.lookup(destination) is None:
        await ctx.store.create_directory(destination)
    with _not_found(message):
        new_path = await ctx.store.move(source, destination)
    return ToolResult.ok({"source_path": source, "destination_path": new_path})


async def copy_file(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
    source = normalize_folder(_str_arg(args, "source_path"))
    destination = normalize_folder(_str_arg(args, "destination_path"))
    ctx.guard.check_path(source)
    ctx.guard.check_path(destination)
    ctx.guard.require_approval("copy")

    message = f"Source file not found: {source}"
    _require_file(ctx, source, message)
    if not destination:
        msg = "'destination_path' must not be empty"
        raise InvalidArgumentError(msg)
    if ctx.store.lookup(destination) is not None:
        msg = f"Destination already exists: {destination}"
        raise InvalidArgumentError(msg)

    dest_folder = folder_of(destination)
    if dest_folder and ctx.store.lookup(dest_folder) is None:
        await ctx.store.create_directory(dest_folder)
    with _not_found(message):
        await ctx.store.copy(source, destination)
    return ToolResult.ok({"source_path": source, "destination_path": destination})


# ------------------------------------------------------------------ #
# Registration
# ------------------------------------------------------------------ #

VAULT_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition.from_schema(VAULT_READ_FILE_TOOL, read_file),
    ToolDefinition.from_schema(VAULT_SEARCH_TOOL, search),
    ToolDefinition.from_schema(VAULT_LIST_FILES_TOOL, list_files),
    ToolDefinition.from_schema(VAULT_WRITE_NOTE_TOOL, write_note),
    ToolDefinition.from_schema(VAULT_MODIFY_FILE_TOOL, modify_file),
    ToolDefinition.from_schema(VAULT_DELETE_FILE_TOOL, delete_file),
    ToolDefinition.from_schema(VAULT_CREATE_FOLDER_TOOL, create_folder),
    ToolDefinition.from_schema(VAULT_RENAME_TOOL, rename),
    ToolDefinition.from_schema(VAULT_MOVE_TOOL, move),
    ToolDefinition.from_schema(VAULT_COPY_FILE_TOOL, copy_file),
    ToolDefinition.from_schema(VAULT_GET_METADATA_TOOL, get_metadata),
)


def register_vault_tools(registry: ToolRegistry) -> None:
    for definition in VAULT_TOOLS:
        registry.register(definition)
