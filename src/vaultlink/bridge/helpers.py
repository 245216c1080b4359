"""Small utilities shared by the supervisor and the manager."""

from __future__ import annotations

import logging

from vaultlink.transcript.models import ErrorEvent
from vaultlink.transcript.recorder import TranscriptRecorder


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Indented tail of *stderr_text* for error messages, blank lines dropped."""
    tail = [line for line in stderr_text.splitlines() if line.strip()][-max_lines:]
    return "\n  ".join(tail)


def record_error(
    recorder: TranscriptRecorder | None,
    agent_name: str | None,
    error_msg: str,
    context: str = "subprocess",
    logger: logging.Logger | None = None,
) -> None:
    """Report a bridge error to *logger* and to the transcript, when given."""
    if logger is not None:
        logger.error("%s: %s", agent_name, error_msg)
    if recorder is None:
        return
    event = ErrorEvent(ts="", seq=0, agent=agent_name, error=error_msg, context=context)
    recorder.record(event)
