"""Executable discovery for hosts whose PATH does not reach the agent CLI.

GUI hosts are often launched without the user's shell profile, so ``node``
and globally installed npm packages are invisible to a plain PATH lookup.
The locator walks a fixed, platform-specific list of install locations
instead.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Protocol, runtime_checkable

#: Package directory of the agent CLI inside a ``node_modules`` tree.
_PACKAGE_PARTS = ("@letta-ai", "letta-code")

#: Script inside the package directory that starts the CLI.
_ENTRY_SCRIPT = "letta.js"


@runtime_checkable
class CandidateProvider(Protocol):
    """Supplies ordered install-location candidates."""

    def runtime_candidates(self) -> Iterable[Path]:
        """Possible locations of the JavaScript runtime, best first."""
        ...

    def entrypoint_candidates(self) -> Iterable[Path]:
        """Possible locations of the agent CLI entry script, best first."""
        ...


def _sorted_glob(base: Path, pattern: str) -> list[Path]:
    """Glob under *base* in reverse-sorted order (newest version first)."""
    if not base.is_dir():
        return []
    return sorted(base.glob(pattern), reverse=True)


class PosixCandidates:
    """Install locations on macOS and Linux."""

    def __init__(self, home: Path | None = None) -> None:
        self._home = home or Path.home()

    def runtime_candidates(self) -> Iterator[Path]:
        yield Path("/usr/local/bin/node")
        yield Path("/opt/homebrew/bin/node")
        yield Path("/usr/bin/node")
        yield self._home / ".volta" / "bin" / "node"
        yield from _sorted_glob(self._home / ".nvm" / "versions" / "node", "*/bin/node")
        yield self._home / ".local" / "bin" / "node"

    def entrypoint_candidates(self) -> Iterator[Path]:
        for prefix in (
            Path("/usr/local/lib/node_modules"),
            Path("/opt/homebrew/lib/node_modules"),
            Path("/usr/lib/node_modules"),
            self._home / ".npm-global" / "lib" / "node_modules",
            self._home / ".volta" / "tools" / "image" / "packages",
        ):
            yield prefix.joinpath(*_PACKAGE_PARTS, _ENTRY_SCRIPT)
        for lib in _sorted_glob(
            self._home / ".nvm" / "versions" / "node", "*/lib/node_modules"
        ):
            yield lib.joinpath(*_PACKAGE_PARTS, _ENTRY_SCRIPT)


class WindowsCandidates:
    """Install locations on Windows, derived from the standard env vars."""

    def __init__(self, env: dict[str, str] | None = None) -> None:
        self._env = env if env is not None else dict(os.environ)

    def _dir(self, key: str) -> Path | None:
        value = self._env.get(key)
        return Path(value) if value else None

    def runtime_candidates(self) -> Iterator[Path]:
        for key in ("ProgramFiles", "ProgramFiles(x86)"):
            base = self._dir(key)
            if base is not None:
                yield base / "nodejs" / "node.exe"
        local = self._dir("LOCALAPPDATA")
        if local is not None:
            yield local / "Programs" / "nodejs" / "node.exe"
        appdata = self._dir("APPDATA")
        if appdata is not None:
            yield from _sorted_glob(appdata / "nvm", "*/node.exe")

    def entrypoint_candidates(self) -> Iterator[Path]:
        appdata = self._dir("APPDATA")
        if appdata is not None:
            yield appdata.joinpath("npm", "node_modules", *_PACKAGE_PARTS, _ENTRY_SCRIPT)
        local = self._dir("LOCALAPPDATA")
        if local is not None:
            yield local.joinpath(
                "Volta", "tools", "image", "packages", *_PACKAGE_PARTS, _ENTRY_SCRIPT
            )


def default_provider(platform: str | None = None) -> CandidateProvider:
    """Pick the candidate list for *platform* (defaults to ``sys.platform``)."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return WindowsCandidates()
    return PosixCandidates()


class PathLocator:
    """Returns the first existing candidate, or ``None`` when nothing exists.

    Candidates are evaluated lazily in the provider's order; lookups never
    raise, so callers can fall back to a bare command name.
    """

    def __init__(
        self,
        provider: CandidateProvider | None = None,
        exists: Callable[[Path], bool] | None = None,
    ) -> None:
        self._provider = provider or default_provider()
        self._exists = exists or Path.is_file

    def locate_runtime(self) -> Path | None:
        """Locate the JavaScript runtime executable."""
        return self._first(self._provider.runtime_candidates)

    def locate_agent_entrypoint(self) -> Path | None:
        """Locate the agent CLI entry script."""
        return self._first(self._provider.entrypoint_candidates)

    def _first(self, candidates: Callable[[], Iterable[Path]]) -> Path | None:
        try:
            for path in candidates():
                try:
                    if self._exists(path):
                        return path
                except OSError:
                    continue
        except OSError:
            return None
        return None
