"""Pydantic v2 models for the line-delimited JSON bridge protocol."""

from __future__ import annotations

import json
import secrets
import time
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
)

BridgeMessageKind = Literal["request", "response", "event", "error"]

#: Status value that marks an inbound ``event`` line as the completion sentinel.
SENTINEL_STATUS = "done"


# ------------------------------------------------------------------ #
# Outbound envelope
# ------------------------------------------------------------------ #


class BridgeMessage(BaseModel):
    """Envelope for every line the host writes to the agent.

    The kind is serialized under the wire key ``type``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    id: str = Field(description="Correlation id, unique per call")
    kind: BridgeMessageKind = Field(alias="type", description="Envelope kind")
    payload: Any = Field(default=None, description="Kind-specific body")
    timestamp: int = Field(description="Epoch milliseconds at creation")

    def to_line(self) -> str:
        """Serialize as one newline-terminated JSON line."""
        return self.model_dump_json(by_alias=True) + "\n"


class ImageAttachment(BaseModel):
    """Inline image sent alongside a request."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    base64: str = Field(description="Base64-encoded image bytes")
    media_type: str = Field(alias="mediaType", description="MIME type, e.g. image/png")


def new_message_id() -> str:
    """Return an id of the form ``<epoch-ms>-<random>``."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_envelope(kind: BridgeMessageKind, payload: Any) -> BridgeMessage:
    """Wrap *payload* in a fresh envelope of the given kind."""
    return BridgeMessage(
        id=new_message_id(), kind=kind, payload=payload, timestamp=_now_ms()
    )


def build_request(
    content: str,
    images: list[ImageAttachment] | None = None,
) -> BridgeMessage:
    """Build a user-turn request envelope."""
    payload: dict[str, Any] = {"content": content}
    if images:
        payload["images"] = [img.model_dump(by_alias=True) for img in images]
    return build_envelope("request", payload)


def build_tool_return(tool_name: str, status: str, message: str) -> BridgeMessage:
    """Build the ``function_return`` response sent after a tool call."""
    return build_envelope(
        "response",
        {
            "message_type": "function_return",
            "function_return": {
                "name": tool_name,
                "status": status,
                "message": message,
            },
        },
    )


# ------------------------------------------------------------------ #
# Inbound agent messages
# ------------------------------------------------------------------ #


class _AgentMessageBase(BaseModel):
    """Fields shared by every inbound agent message.

    Unknown keys are ignored: the agent process is versioned independently.
    """

    model_config = ConfigDict(extra="ignore")

    timestamp: int | None = Field(default=None, description="Agent-side timestamp")


class UserMessage(_AgentMessageBase):
    """Echo of the submitted input."""

    message_type: Literal["user_message"] = "user_message"
    content: str | None = None


class InternalMonologue(_AgentMessageBase):
    """Agent reasoning, not final output."""

    message_type: Literal["internal_monologue"] = "internal_monologue"
    content: str | None = None


class FunctionCall(BaseModel):
    """Name and arguments of a requested tool call."""

    model_config = ConfigDict(extra="ignore")

    name: str
    arguments: Any = None

    def parsed_arguments(self) -> dict[str, Any]:
        """Return arguments as a dict, decoding a JSON string if needed."""
        args = self.arguments
        if args is None:
            return {}
        if isinstance(args, str):
            if not args.strip():
                return {}
            args = json.loads(args)
        if not isinstance(args, dict):
            msg = f"Tool arguments must be an object, got {type(args).__name__}"
            raise ValueError(msg)
        return args


class FunctionCallMessage(_AgentMessageBase):
    """The agent requests a tool invocation."""

    message_type: Literal["function_call"] = "function_call"
    function_call: FunctionCall


class FunctionReturn(BaseModel):
    """Status and message of a completed tool call."""

    model_config = ConfigDict(extra="ignore")

    status: str
    message: str = ""


class FunctionReturnMessage(_AgentMessageBase):
    """Acknowledgment of a tool result."""

    message_type: Literal["function_return"] = "function_return"
    function_return: FunctionReturn


class AssistantMessage(_AgentMessageBase):
    """Terminal response for an exchange."""

    message_type: Literal["assistant_message"] = "assistant_message"
    content: str | None = None


AGENT_MESSAGE_TYPES = frozenset(
    {
        "user_message",
        "internal_monologue",
        "function_call",
        "function_return",
        "assistant_message",
    }
)


def _message_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("message_type", ""))
    return str(getattr(v, "message_type", ""))


AgentMessage = Annotated[
    Annotated[UserMessage, Tag("user_message")]
    | Annotated[InternalMonologue, Tag("internal_monologue")]
    | Annotated[FunctionCallMessage, Tag("function_call")]
    | Annotated[FunctionReturnMessage, Tag("function_return")]
    | Annotated[AssistantMessage, Tag("assistant_message")],
    Discriminator(_message_discriminator),
]
"""Closed union of the five inbound message kinds."""

_agent_message_adapter: TypeAdapter[AgentMessage] = TypeAdapter(AgentMessage)


def parse_agent_message(data: dict[str, Any]) -> AgentMessage | None:
    """Validate *data* as an AgentMessage.

    Returns ``None`` for unknown tags or payloads that fail validation.
    """
    if data.get("message_type") not in AGENT_MESSAGE_TYPES:
        return None
    try:
        return _agent_message_adapter.validate_python(data)
    except ValidationError:
        return None


def message_text(message: AgentMessage) -> str | None:
    """Best-effort human-readable text for any agent message."""
    match message:
        case UserMessage() | InternalMonologue() | AssistantMessage():
            return message.content
        case FunctionCallMessage():
            return message.function_call.name
        case FunctionReturnMessage():
            return message.function_return.message
    return None


def is_completion_sentinel(data: dict[str, Any]) -> bool:
    """Return True if *data* is the ``event`` line that ends an exchange."""
    if data.get("type") != "event":
        return False
    payload = data.get("payload")
    return isinstance(payload, dict) and payload.get("status") == SENTINEL_STATUS
