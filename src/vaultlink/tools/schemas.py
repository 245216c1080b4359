"""Tool schemas advertised to agents (``name``, ``description``, ``input_schema``)."""

from __future__ import annotations

from typing import Any

# ------------------------------------------------------------------ #
# Vault tools
# ------------------------------------------------------------------ #

VAULT_READ_FILE_TOOL: dict[str, Any] = {
    "name": "vault_read_file",
    "description": "Read the content of a note in the vault, with optional metadata.",
    "input_schema": {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path of the note relative to the vault root",
            },
            "include_metadata": {
                "type": "boolean",
                "description": "Include frontmatter, tags, headings and links (default true)",
                "default": True,
            },
        },
        "required": ["file_path"],
    },
}

VAULT_SEARCH_TOOL: dict[str, Any] = {
    "name": "vault_search",
    "description": "Search notes by name, content, tags or path.",
    "input_schema": {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "Text to look for (case-insensitive)",
            },
            "search_type": {
                "type": "string",
                "enum": ["name", "content", "tags", "path", "all"],
                "description": "Where to search (default 'all')",
                "default": "all",
            },
            "folder": {
                "type": "string",
                "description": "Only search inside this folder",
            },
            "limit": {
                "type": "integer",
                "description": "Maximum number of results (default 20)",
                "default": 20,
            },
        },
        "required": ["query"],
    },
}

VAULT_LIST_FILES_TOOL: dict[str, Any] = {
    "name": "vault_list_files",
    "description": "List notes in a folder.",
    "input_schema": {
        "type": "object",
        "properties": {
            "folder": {
                "type": "string",
                "description": "Folder to list; empty for the vault root",
                "default": "",
            },
            "recursive": {
                "type": "boolean",
                "description": "Include notes in subfolders (default false)",
                "default": False,
            },
            "limit": {
                "type": "integer",
                "description": "Maximum number of notes (default 50)",
                "default": 50,
            },
        },
        "required": [],
    },
}

VAULT_WRITE_NOTE_TOOL: dict[str, Any] = {
    "name": "vault_write_note",
    "description": (
        "Create a note, or overwrite an existing one with the same title. "
        "Requires session approval."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "title": {
                "type": "string",
                "description": "Note title; used as the file name",
            },
            "content": {
                "type": "string",
                "description": "Markdown content of the note",
            },
            "folder": {
                "type": "string",
                "description": "Folder for the note (defaults to the configured note folder)",
            },
        },
        "required": ["title", "content"],
    },
}

VAULT_MODIFY_FILE_TOOL: dict[str, Any] = {
    "name": "vault_modify_file",
    "description": (
        "Append to, prepend to, or replace a section of an existing note. "
        "Requires session approval."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path of the note to modify",
            },
            "operation": {
                "type": "string",
                "enum": ["append", "prepend", "replace_section"],
                "description": "How to apply the content",
            },
            "content": {
                "type": "string",
                "description": "Content to insert",
            },
            "section_heading": {
                "type": "string",
                "description": "Heading line of the section to replace, e.g. '## Tasks'",
            },
        },
        "required": ["file_path", "operation", "content"],
    },
}

VAULT_DELETE_FILE_TOOL: dict[str, Any] = {
    "name": "vault_delete_file",
    "description": "Delete a note or folder, by default into the trash. Requires session approval.",
    "input_schema": {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path to delete",
            },
            "move_to_trash": {
                "type": "boolean",
                "description": "Move to the trash instead of deleting permanently (default true)",
                "default": True,
            },
        },
        "required": ["file_path"],
    },
}

VAULT_CREATE_FOLDER_TOOL: dict[str, Any] = {
    "name": "vault_create_folder",
    "description": "Create a folder. Requires session approval.",
    "input_schema": {
        "type": "object",
        "properties": {
            "folder_path": {
                "type": "string",
                "description": "Folder path relative to the vault root",
            },
        },
        "required": ["folder_path"],
    },
}

VAULT_RENAME_TOOL: dict[str, Any] = {
    "name": "vault_rename",
    "description": "Rename a note or folder in place. Requires session approval.",
    "input_schema": {
        "type": "object",
        "properties": {
            "old_path": {
                "type": "string",
                "description": "Current path",
            },
            "new_name": {
                "type": "string",
                "description": "New name; '.md' is added for notes that lack it",
            },
        },
        "required": ["old_path", "new_name"],
    },
}

VAULT_MOVE_TOOL: dict[str, Any] = {
    "name": "vault_move",
    "description": "Move a note or folder into another folder. Requires session approval.",
    "input_schema": {
        "type": "object",
        "properties": {
            "source_path": {
                "type": "string",
                "description": "Path to move",
            },
            "destination_folder": {
                "type": "string",
                "description": "Target folder; created if missing",
            },
        },
        "required": ["source_path", "destination_folder"],
    },
}

VAULT_COPY_FILE_TOOL: dict[str, Any] = {
    "name": "vault_copy_file",
    "description": "Copy a note to a new path. Requires session approval.",
    "input_schema": {
        "type": "object",
        "properties": {
            "source_path": {
                "type": "string",
                "description": "Note to copy",
            },
            "destination_path": {
                "type": "string",
                "description": "Path of the copy; must not exist yet",
            },
        },
        "required": ["source_path", "destination_path"],
    },
}

VAULT_GET_METADATA_TOOL: dict[str, Any] = {
    "name": "vault_get_metadata",
    "description": "Get metadata of a note without its content.",
    "input_schema": {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path of the note",
            },
        },
        "required": ["file_path"],
    },
}

# ------------------------------------------------------------------ #
# Memory tools
# ------------------------------------------------------------------ #

LIST_MEMORY_BLOCKS_TOOL: dict[str, Any] = {
    "name": "list_memory_blocks",
    "description": "List the agent's memory blocks.",
    "input_schema": {"type": "object", "properties": {}, "required": []},
}

READ_MEMORY_BLOCK_TOOL: dict[str, Any] = {
    "name": "read_memory_block",
    "description": "Read one memory block by label.",
    "input_schema": {
        "type": "object",
        "properties": {
            "block_label": {
                "type": "string",
                "description": "Label of the block",
            },
        },
        "required": ["block_label"],
    },
}

UPDATE_MEMORY_BLOCK_TOOL: dict[str, Any] = {
    "name": "update_memory_block",
    "description": "Replace the content of a memory block, creating it if needed.",
    "input_schema": {
        "type": "object",
        "properties": {
            "block_label": {
                "type": "string",
                "description": "Label of the block",
            },
            "content": {
                "type": "string",
                "description": "New content",
            },
        },
        "required": ["block_label", "content"],
    },
}
