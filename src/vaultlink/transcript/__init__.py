"""Transcript recording — event models and JSONL recorder."""

from vaultlink.transcript.models import (
    AgentMessageEvent,
    ErrorEvent,
    LifecycleEvent,
    ToolCallEvent,
    ToolResultEvent,
    TranscriptEndEvent,
    TranscriptEvent,
    TranscriptStartEvent,
)
from vaultlink.transcript.recorder import EndReason, TranscriptRecorder

__all__ = [
    "AgentMessageEvent",
    "EndReason",
    "ErrorEvent",
    "LifecycleEvent",
    "ToolCallEvent",
    "ToolResultEvent",
    "TranscriptEndEvent",
    "TranscriptEvent",
    "TranscriptRecorder",
    "TranscriptStartEvent",
]
