"""Wire protocol — message models and the line codec."""

from vaultlink.protocol.codec import LineProtocolCodec
from vaultlink.protocol.models import (
    AgentMessage,
    AssistantMessage,
    BridgeMessage,
    FunctionCall,
    FunctionCallMessage,
    FunctionReturn,
    FunctionReturnMessage,
    ImageAttachment,
    InternalMonologue,
    UserMessage,
    build_request,
    build_tool_return,
    parse_agent_message,
)

__all__ = [
    "AgentMessage",
    "AssistantMessage",
    "BridgeMessage",
    "FunctionCall",
    "FunctionCallMessage",
    "FunctionReturn",
    "FunctionReturnMessage",
    "ImageAttachment",
    "InternalMonologue",
    "LineProtocolCodec",
    "UserMessage",
    "build_request",
    "build_tool_return",
    "parse_agent_message",
]
