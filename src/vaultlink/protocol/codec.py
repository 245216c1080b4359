"""Line protocol codec — turns raw stdout chunks into parsed JSON values."""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

from vaultlink.constants import MAX_LINE_BYTES
from vaultlink.errors import ProtocolParseError

logger = logging.getLogger(__name__)


class LineProtocolCodec:
    """Accumulates output and yields one parsed value per complete line.

    Partial lines stay buffered across ``feed`` calls.  Bytes are decoded
    incrementally, so a multi-byte character split across two chunks is
    reassembled correctly.  Malformed lines are logged and skipped.
    """

    def __init__(self, name: str = "agent", max_line_bytes: int = MAX_LINE_BYTES) -> None:
        self._name = name
        self._max_line_bytes = max_line_bytes
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        # Set after an oversized partial line was dropped; the rest of that
        # line is discarded up to the next terminator.
        self._discarding = False

    @property
    def pending(self) -> str:
        """Text buffered after the last line terminator."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[Any]:
        """Append *chunk* and return the values parsed from complete lines."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        parsed: list[Any] = []
        while "\n" in self._buffer:
            line, _, self._buffer = self._buffer.partition("\n")
            if self._discarding:
                self._discarding = False
                continue
            line = line.strip()
            if not line:
                continue
            if len(line.encode()) > self._max_line_bytes:
                logger.warning(
                    "%s: line exceeds %d bytes, skipping",
                    self._name,
                    self._max_line_bytes,
                )
                continue
            try:
                parsed.append(self.decode_line(line))
            except ProtocolParseError as exc:
                logger.warning("%s: %s", self._name, exc)

        if len(self._buffer) > self._max_line_bytes:
            logger.warning(
                "%s: unterminated line exceeds %d bytes, dropping",
                self._name,
                self._max_line_bytes,
            )
            self._buffer = ""
            self._discarding = True

        return parsed

    def decode_line(self, line: str) -> Any:
        """Parse one trimmed line as JSON."""
        try:
            return json.loads(line)
        except json.JSONDecodeError as exc:
            msg = f"malformed JSON from agent stdout: {line[:200]}"
            raise ProtocolParseError(msg) from exc

    def reset(self) -> None:
        """Drop any buffered partial line."""
        self._buffer = ""
        self._discarding = False
        self._decoder.reset()
