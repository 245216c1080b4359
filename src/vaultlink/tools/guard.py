"""Permission guard — blocked folders and the session approval flag."""

from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Iterable
from typing import Protocol

from vaultlink.errors import (
    ApprovalRequiredError,
    InvalidArgumentError,
    PermissionDeniedError,
)

logger = logging.getLogger(__name__)

_REPEATED_SLASH_RE = re.compile(r"/{2,}")


def normalize_folder(path: str) -> str:
    """Canonical vault-relative form used for every blocked-folder comparison.

    Backslashes become ``/``, repeated slashes collapse, ``.`` and ``..``
    segments are resolved, and leading and trailing slashes are dropped.
    Raises ``InvalidArgumentError`` if the path climbs above the vault root.
    """
    text = _REPEATED_SLASH_RE.sub("/", path.replace("\\", "/")).strip("/")
    if not text:
        return ""
    text = posixpath.normpath(text)
    if text == ".":
        return ""
    if text == ".." or text.startswith("../"):
        msg = f"Path escapes the vault: {path}"
        raise InvalidArgumentError(msg)
    return text


def folder_of(path: str) -> str:
    """Containing folder of *path*; ``""`` for a top-level entry."""
    normalized = normalize_folder(path)
    if "/" not in normalized:
        return ""
    return normalized.rsplit("/", 1)[0]


class ApprovalReader(Protocol):
    """Read-only view of the approval flag handed to tool executors."""

    def is_approved(self) -> bool: ...


class ApprovalState:
    """Session-scoped approval flag, owned and mutated by the host only."""

    def __init__(self, approved: bool = False) -> None:
        self._approved = approved

    def is_approved(self) -> bool:
        return self._approved

    def approve(self) -> None:
        logger.info("vault access approved for this session")
        self._approved = True

    def revoke(self) -> None:
        logger.info("vault access approval revoked")
        self._approved = False


class PermissionGuard:
    """Checks tool targets against blocked folders and session approval.

    A folder is blocked when it equals a blocked entry or lies beneath
    one (``private`` blocks ``private/x`` but not ``private-notes``).
    Blocked checks always run before the approval check.
    """

    def __init__(
        self,
        blocked_folders: Iterable[str],
        approval: ApprovalReader,
        case_sensitive: bool = True,
    ) -> None:
        self._case_sensitive = case_sensitive
        self._approval = approval
        self._blocked = [
            self._key(entry)
            for entry in (normalize_folder(f) for f in blocked_folders)
            if entry
        ]

    @property
    def blocked_folders(self) -> list[str]:
        return list(self._blocked)

    def _key(self, folder: str) -> str:
        return folder if self._case_sensitive else folder.casefold()

    def is_blocked(self, folder: str) -> bool:
        """Return True if *folder* equals or lies under a blocked entry."""
        key = self._key(normalize_folder(folder))
        return any(key == entry or key.startswith(entry + "/") for entry in self._blocked)

    def check_folder(self, folder: str) -> None:
        """Raise ``PermissionDeniedError`` if *folder* is blocked."""
        if self.is_blocked(folder):
            raise PermissionDeniedError(normalize_folder(folder))

    def check_path(self, path: str) -> None:
        """Raise ``PermissionDeniedError`` if the folder containing *path* is blocked."""
        self.check_folder(folder_of(path))

    def check_entry(self, path: str) -> None:
        """Raise ``PermissionDeniedError`` if *path* itself or any folder above it is blocked.

        Used where the target may be a folder, so that a blocked folder
        cannot be moved, renamed or deleted as a whole.
        """
        self.check_folder(path)

    def require_approval(self, operation: str) -> None:
        """Raise ``ApprovalRequiredError`` unless the session is approved."""
        if not self._approval.is_approved():
            raise ApprovalRequiredError(operation)
