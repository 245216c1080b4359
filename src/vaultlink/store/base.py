"""Document store collaborator interface and its value types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

EntryKind = Literal["file", "folder"]

WriteAction = Literal["created", "modified"]


class DocumentNotFoundError(FileNotFoundError):
    """The requested path does not exist in the store."""


@dataclass(frozen=True)
class Entry:
    """A file or folder, addressed by its store-relative POSIX path."""

    path: str
    kind: EntryKind
    size: int = 0
    created: int = 0
    modified: int = 0

    @property
    def name(self) -> str:
        """Base name without extension for files, last segment for folders."""
        last = self.path.rsplit("/", 1)[-1]
        if self.kind == "file" and "." in last:
            return last.rsplit(".", 1)[0]
        return last

    @property
    def extension(self) -> str:
        last = self.path.rsplit("/", 1)[-1]
        if self.kind == "file" and "." in last:
            return last.rsplit(".", 1)[1]
        return ""

    @property
    def folder(self) -> str:
        """Containing folder, ``""`` for the store root."""
        if "/" not in self.path:
            return ""
        return self.path.rsplit("/", 1)[0]

    @property
    def is_markdown(self) -> bool:
        return self.kind == "file" and self.extension == "md"


@dataclass(frozen=True)
class FileContent:
    entry: Entry
    content: str


@dataclass(frozen=True)
class Heading:
    level: int
    heading: str


@dataclass
class Metadata:
    """Parsed note metadata."""

    frontmatter: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    headings: list[Heading] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    embeds: list[str] = field(default_factory=list)


@runtime_checkable
class DocumentStore(Protocol):
    """Narrow capability interface over the host's document store.

    Implementations are permission-agnostic; access control is layered on
    top by the tool executors.  Missing paths raise
    ``DocumentNotFoundError``.
    """

    def lookup(self, path: str) -> Entry | None:
        """Return the cached entry for *path*, or ``None``."""
        ...

    async def read_file(self, path: str) -> FileContent: ...

    async def write_file(self, path: str, content: str) -> WriteAction:
        """Create or overwrite *path*; parent folders must already exist."""
        ...

    async def list_children(self, path: str = "", recursive: bool = False) -> list[Entry]:
        ...

    async def delete(self, path: str, to_trash: bool = True) -> None: ...

    async def rename(self, path: str, new_name: str) -> str:
        """Rename in place; returns the new path."""
        ...

    async def move(self, path: str, dest_dir: str) -> str:
        """Move into *dest_dir* keeping the base name; returns the new path."""
        ...

    async def copy(self, src: str, dest: str) -> None: ...

    async def create_directory(self, path: str) -> None: ...

    async def get_metadata(self, path: str) -> Metadata: ...
