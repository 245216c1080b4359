"""Filesystem-backed document store rooted at a vault directory."""

from __future__ import annotations

import logging
import os
import re
import shutil
import time
from pathlib import Path
from typing import Any

import yaml

from vaultlink.store.base import (
    DocumentNotFoundError,
    Entry,
    FileContent,
    Heading,
    Metadata,
    WriteAction,
)

logger = logging.getLogger(__name__)

#: Folder (relative to the vault root) that receives trashed entries.
TRASH_DIR = ".trash"

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_FENCE_RE = re.compile(r"^(```|~~~).*?^\1[ \t]*$", re.DOTALL | re.MULTILINE)
_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t#]*$", re.MULTILINE)
_TAG_RE = re.compile(r"(?<![\w#&/])#([\w/-]*[A-Za-z_/-][\w/-]*)")
_WIKILINK_RE = re.compile(r"(!?)\[\[([^\]|#]+)(?:#[^\]|]*)?(?:\|[^\]]*)?\]\]")
_MDLINK_RE = re.compile(r"(!?)\[[^\]]*\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")
_URL_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


class LocalDocumentStore:
    """Implements ``DocumentStore`` over a directory tree.

    Paths are POSIX-style and relative to *root*; anything resolving
    outside *root* is rejected.  Dot-folders (including the trash) are
    hidden from listings.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------ #
    # Path handling
    # ------------------------------------------------------------------ #

    def _resolve(self, path: str) -> Path:
        """Resolve *path* under the root; reject traversal and symbolic links.

        Symlinks are never followed, so the relative path a caller sees is
        always the real location on disk.
        """
        lexical = Path(os.path.normpath(self._root / path.replace("\\", "/").lstrip("/")))
        if lexical != self._root and not lexical.is_relative_to(self._root):
            msg = f"Path escapes the vault: {path}"
            raise ValueError(msg)
        if lexical.resolve() != lexical:
            msg = f"Symbolic links are not followed: {path}"
            raise ValueError(msg)
        return lexical

    def _relative(self, path: Path) -> str:
        if path == self._root:
            return ""
        return path.relative_to(self._root).as_posix()

    def _entry(self, path: Path) -> Entry:
        stat = path.stat()
        is_dir = path.is_dir()
        return Entry(
            path=self._relative(path),
            kind="folder" if is_dir else "file",
            size=0 if is_dir else stat.st_size,
            created=int(stat.st_ctime * 1000),
            modified=int(stat.st_mtime * 1000),
        )

    def _existing(self, path: str) -> Path:
        resolved = self._resolve(path)
        if not resolved.exists():
            raise DocumentNotFoundError(path)
        return resolved

    def _existing_file(self, path: str) -> Path:
        resolved = self._existing(path)
        if not resolved.is_file():
            raise DocumentNotFoundError(path)
        return resolved

    def _existing_dir(self, path: str) -> Path:
        resolved = self._existing(path)
        if not resolved.is_dir():
            raise DocumentNotFoundError(path)
        return resolved

    # ------------------------------------------------------------------ #
    # DocumentStore
    # ------------------------------------------------------------------ #

    def lookup(self, path: str) -> Entry | None:
        try:
            resolved = self._resolve(path)
        except ValueError:
            return None
        if not resolved.exists():
            return None
        return self._entry(resolved)

    async def read_file(self, path: str) -> FileContent:
        resolved = self._existing_file(path)
        content = resolved.read_text(encoding="utf-8", errors="replace")
        return FileContent(entry=self._entry(resolved), content=content)

    async def write_file(self, path: str, content: str) -> WriteAction:
        resolved = self._resolve(path)
        if not resolved.parent.is_dir():
            raise DocumentNotFoundError(self._relative(resolved.parent))
        if resolved.is_dir():
            msg = f"Cannot write to a folder: {path}"
            raise IsADirectoryError(msg)
        action: WriteAction = "modified" if resolved.exists() else "created"
        resolved.write_text(content, encoding="utf-8")
        return action

    async def list_children(self, path: str = "", recursive: bool = False) -> list[Entry]:
        base = self._existing_dir(path)
        pattern = "**/*" if recursive else "*"
        entries: list[Entry] = []
        for child in sorted(base.glob(pattern)):
            relative = child.relative_to(base)
            if any(part.startswith(".") for part in relative.parts):
                continue
            if child.resolve() != child:
                continue
            entries.append(self._entry(child))
        return entries

    async def delete(self, path: str, to_trash: bool = True) -> None:
        resolved = self._existing(path)
        if resolved == self._root:
            msg = "Cannot delete the vault root"
            raise ValueError(msg)
        if to_trash:
            target = self._root / TRASH_DIR / self._relative(resolved)
            if target.exists():
                target = target.with_name(f"{target.name}.{int(time.time() * 1000)}")
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(resolved), str(target))
            logger.debug("moved %s to trash", path)
        elif resolved.is_dir():
            shutil.rmtree(resolved)
        else:
            resolved.unlink()

    async def rename(self, path: str, new_name: str) -> str:
        resolved = self._existing(path)
        target = self._resolve(self._relative(resolved.parent) + "/" + new_name)
        if target.parent != resolved.parent:
            msg = f"Invalid name: {new_name}"
            raise ValueError(msg)
        if target.exists():
            msg = f"Already exists: {self._relative(target)}"
            raise FileExistsError(msg)
        resolved.rename(target)
        return self._relative(target)

    async def move(self, path: str, dest_dir: str) -> str:
        resolved = self._existing(path)
        destination = self._existing_dir(dest_dir)
        target = destination / resolved.name
        if target == destination or target.is_relative_to(resolved):
            msg = f"Cannot move {path} into itself"
            raise ValueError(msg)
        if target.exists():
            msg = f"Already exists: {self._relative(target)}"
            raise FileExistsError(msg)
        shutil.move(str(resolved), str(target))
        return self._relative(target)

    async def copy(self, src: str, dest: str) -> None:
        source = self._existing_file(src)
        target = self._resolve(dest)
        if not target.parent.is_dir():
            raise DocumentNotFoundError(self._relative(target.parent))
        if target.exists():
            msg = f"Already exists: {dest}"
            raise FileExistsError(msg)
        shutil.copy2(source, target)

    async def create_directory(self, path: str) -> None:
        self._resolve(path).mkdir(parents=True, exist_ok=True)

    async def get_metadata(self, path: str) -> Metadata:
        resolved = self._existing_file(path)
        text = resolved.read_text(encoding="utf-8", errors="replace")
        return parse_metadata(text)


# ------------------------------------------------------------------ #
# Metadata parsing
# ------------------------------------------------------------------ #


def _parse_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    match = _FRONTMATTER_RE.match(text)
    if match is None:
        return {}, text
    body = text[match.end():]
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        logger.debug("ignoring invalid frontmatter: %s", exc)
        return {}, body
    if not isinstance(data, dict):
        return {}, body
    return data, body


def _frontmatter_tags(frontmatter: dict[str, Any]) -> list[str]:
    raw = frontmatter.get("tags", frontmatter.get("tag"))
    if isinstance(raw, str):
        raw = [t for t in re.split(r"[,\s]+", raw) if t]
    if not isinstance(raw, list):
        return []
    return [f"#{str(t).lstrip('#')}" for t in raw if str(t).strip()]


def parse_metadata(text: str) -> Metadata:
    """Extract frontmatter, tags, headings, links and embeds from markdown."""
    frontmatter, body = _parse_frontmatter(text)
    prose = _FENCE_RE.sub("", body)

    headings = [
        Heading(level=len(m.group(1)), heading=m.group(2).strip())
        for m in _HEADING_RE.finditer(prose)
    ]

    tags: list[str] = []
    for tag in _frontmatter_tags(frontmatter) + [
        f"#{m.group(1)}" for m in _TAG_RE.finditer(_HEADING_RE.sub(r"\2", prose))
    ]:
        if tag not in tags:
            tags.append(tag)

    links: list[str] = []
    embeds: list[str] = []
    for m in _WIKILINK_RE.finditer(prose):
        (embeds if m.group(1) else links).append(m.group(2).strip())
    for m in _MDLINK_RE.finditer(prose):
        target = m.group(2)
        if _URL_RE.match(target):
            continue
        (embeds if m.group(1) else links).append(target)

    return Metadata(
        frontmatter=frontmatter,
        tags=tags,
        headings=headings,
        links=links,
        embeds=embeds,
    )
