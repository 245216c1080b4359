"""Tests for the permission guard."""

from __future__ import annotations

import pytest

from vaultlink.errors import (
    ApprovalRequiredError,
    InvalidArgumentError,
    PermissionDeniedError,
)
from vaultlink.tools.guard import (
    ApprovalState,
    PermissionGuard,
    folder_of,
    normalize_folder,
)


class TestNormalize:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("", ""),
            (".", ""),
            ("/", ""),
            ("private", "private"),
            ("private/", "private"),
            ("/private/", "private"),
            ("./private", "private"),
            ("private\\journal", "private/journal"),
            ("private//journal///", "private/journal"),
            ("notes/../private", "private"),
            ("notes/./../private/secret.md", "private/secret.md"),
            ("private/..", ""),
            ("a/b/../../c", "c"),
        ],
    )
    def test_normalize_folder(self, raw: str, expected: str) -> None:
        assert normalize_folder(raw) == expected

    def test_folder_of(self) -> None:
        assert folder_of("note.md") == ""
        assert folder_of("a/b/note.md") == "a/b"
        assert folder_of("/a/note.md") == "a"
        assert folder_of("notes/../private/secret.md") == "private"

    @pytest.mark.parametrize("raw", ["..", "../private", "notes/../../etc", "/../x"])
    def test_climbing_above_root_is_rejected(self, raw: str) -> None:
        with pytest.raises(InvalidArgumentError, match="escapes the vault"):
            normalize_folder(raw)


class TestBlocked:
    def _guard(self, *blocked: str, case_sensitive: bool = True) -> PermissionGuard:
        return PermissionGuard(blocked, ApprovalState(), case_sensitive=case_sensitive)

    def test_exact_match(self) -> None:
        assert self._guard("private").is_blocked("private")

    def test_nested_folder_is_blocked(self) -> None:
        guard = self._guard("private")
        assert guard.is_blocked("private/journal")
        assert guard.is_blocked("private/journal/2024")

    def test_sibling_with_shared_prefix_is_not_blocked(self) -> None:
        guard = self._guard("private")
        assert not guard.is_blocked("private-notes")
        assert not guard.is_blocked("privateer")

    def test_parent_of_blocked_is_not_blocked(self) -> None:
        assert not self._guard("a/b").is_blocked("a")

    def test_root_is_not_blocked(self) -> None:
        assert not self._guard("private").is_blocked("")

    def test_empty_entries_are_ignored(self) -> None:
        guard = self._guard("", "/", ".")
        assert guard.blocked_folders == []
        assert not guard.is_blocked("")
        assert not guard.is_blocked("anything")

    def test_entries_are_normalized(self) -> None:
        guard = self._guard("/private/", "work\\secret")
        assert guard.is_blocked("private")
        assert guard.is_blocked("work/secret/plans")

    def test_case_sensitive_by_default(self) -> None:
        assert not self._guard("Private").is_blocked("private")

    def test_case_insensitive(self) -> None:
        guard = self._guard("Private", case_sensitive=False)
        assert guard.is_blocked("private/x")
        assert guard.is_blocked("PRIVATE")

    def test_check_path_uses_containing_folder(self) -> None:
        guard = self._guard("private")
        with pytest.raises(PermissionDeniedError, match="private is a restricted folder"):
            guard.check_path("private/secret.md")
        guard.check_path("private.md")

    def test_check_folder(self) -> None:
        with pytest.raises(PermissionDeniedError):
            self._guard("private").check_folder("private/sub")

    def test_dot_segments_cannot_hide_a_blocked_folder(self) -> None:
        guard = self._guard("private")
        assert guard.is_blocked("notes/../private")
        with pytest.raises(PermissionDeniedError):
            guard.check_path("notes/../private/secret.md")

    def test_check_entry_covers_the_blocked_folder_itself(self) -> None:
        guard = self._guard("private")
        guard.check_path("private")
        with pytest.raises(PermissionDeniedError):
            guard.check_entry("private")
        with pytest.raises(PermissionDeniedError):
            guard.check_entry("private/secret.md")
        guard.check_entry("private-notes")


class TestApproval:
    def test_not_approved_by_default(self) -> None:
        guard = PermissionGuard([], ApprovalState())
        with pytest.raises(ApprovalRequiredError, match="Write operation requires user approval"):
            guard.require_approval("write")

    def test_approval_is_read_live(self) -> None:
        approval = ApprovalState()
        guard = PermissionGuard([], approval)
        approval.approve()
        guard.require_approval("delete")
        approval.revoke()
        with pytest.raises(ApprovalRequiredError):
            guard.require_approval("delete")

    def test_initially_approved(self) -> None:
        assert ApprovalState(approved=True).is_approved()
