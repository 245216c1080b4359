"""Transcript recorder — append-only JSONL writer for bridge events."""

from __future__ import annotations

import re
import threading
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Literal

from vaultlink.transcript.models import (
    TranscriptEndEvent,
    TranscriptEvent,
    TranscriptStartEvent,
)

#: Valid transcript name pattern — alphanumeric, hyphens, underscores only.
_SAFE_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")

#: Default directory for transcripts, relative to CWD.
DEFAULT_TRANSCRIPTS_DIR = Path(".vaultlink") / "transcripts"

EndReason = Literal["complete", "user_shutdown", "ctrl_c", "error"]


class TranscriptRecorder:
    """Records transcript events to an append-only JSONL file.

    Thread-safe: all writes are serialized through a ``threading.Lock``.
    Crash-safe: the file is flushed after every event.
    """

    def __init__(
        self,
        name: str,
        config_hash: str,
        transcripts_dir: Path | None = None,
    ) -> None:
        if not _SAFE_NAME_RE.match(name):
            msg = (
                f"Invalid transcript name {name!r}: must contain only "
                "alphanumeric characters, hyphens, and underscores."
            )
            raise ValueError(msg)

        self._name = name
        self._lock = threading.Lock()
        self._seq = 0
        self._closed = False
        self._start_ns = time.monotonic_ns()
        self._transcript_id = uuid.uuid4().hex[:12]

        if transcripts_dir is None:
            transcripts_dir = DEFAULT_TRANSCRIPTS_DIR
        transcripts_dir.mkdir(parents=True, exist_ok=True)

        date_str = datetime.now(tz=UTC).strftime("%Y-%m-%d")
        self._path = transcripts_dir / f"{date_str}_{name}_{self._transcript_id}.jsonl"

        self._fh: IO[str] | None = None
        try:
            self._fh = self._path.open("a", encoding="utf-8")
            self.record(
                TranscriptStartEvent(
                    ts="",  # placeholder — record() overwrites
                    seq=0,  # placeholder — record() overwrites
                    transcript_id=self._transcript_id,
                    name=name,
                    config_hash=config_hash,
                )
            )
        except Exception:
            self._close_handle()
            raise

    @property
    def transcript_id(self) -> str:
        """Unique transcript identifier (12-char hex)."""
        return self._transcript_id

    @property
    def path(self) -> Path:
        return self._path

    @property
    def event_count(self) -> int:
        return self._seq

    def record(self, event: TranscriptEvent) -> None:
        """Stamp ``ts`` and ``seq`` on *event*, write it, and flush.

        Silently drops events after the recorder has been closed.
        """
        with self._lock:
            if self._closed or self._fh is None:
                return
            event.seq = self._seq
            event.ts = _iso_now()
            self._seq += 1
            self._fh.write(event.model_dump_json(by_alias=True) + "\n")
            self._fh.flush()

    def end(self, reason: EndReason) -> None:
        """Write a ``transcript_end`` event and close the file.

        Idempotent — calling ``end()`` on a closed recorder is a no-op.
        """
        if self._closed:
            return
        duration_ms = int((time.monotonic_ns() - self._start_ns) / 1_000_000)
        self.record(
            TranscriptEndEvent(ts="", seq=0, reason=reason, duration_ms=duration_ms)
        )
        self.close()

    def close(self) -> None:
        """Close the file **without** writing a ``transcript_end`` event."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._close_handle()

    def _close_handle(self) -> None:
        if self._fh is not None and not self._fh.closed:
            self._fh.close()


def _iso_now() -> str:
    """Return the current UTC time as ISO 8601 with milliseconds."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
