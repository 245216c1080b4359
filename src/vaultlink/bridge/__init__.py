"""Process bridge — supervisor, routing, sessions, and the manager."""

from vaultlink.bridge.cache import MessageCache
from vaultlink.bridge.events import EventEmitter
from vaultlink.bridge.exchange import Exchange, ExchangeResult
from vaultlink.bridge.locator import PathLocator, PosixCandidates, WindowsCandidates
from vaultlink.bridge.manager import BridgeManager
from vaultlink.bridge.router import MessageRouter
from vaultlink.bridge.session import AgentSession
from vaultlink.bridge.supervisor import ProcessSupervisor

__all__ = [
    "AgentSession",
    "BridgeManager",
    "EventEmitter",
    "Exchange",
    "ExchangeResult",
    "MessageCache",
    "MessageRouter",
    "PathLocator",
    "PosixCandidates",
    "ProcessSupervisor",
    "WindowsCandidates",
]
