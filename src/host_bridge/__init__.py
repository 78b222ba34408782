"""
host-bridge: embedded client runtime for host-controlled pages.

Coordinates session, host context and navigation state with the host page
over an asynchronous envelope channel.
"""

from host_bridge.runtime import EmbeddedRuntime, RuntimeContext
from host_bridge.config import RuntimeConfig, load_config, save_config, parse_launch_session_id
from host_bridge.auth import SessionCoordinator
from host_bridge.context import ContextStore
from host_bridge.query import QueryCache
from host_bridge.routing import RouteSync, MemoryNavigator
from host_bridge.commands import CommandRouter
from host_bridge.gate import AccessGate, GateStatus
from host_bridge.transport.bus import MessageBus, Subscription
from host_bridge.errors import (
    HostBridgeError,
    TransportError,
    RequestTimeoutError,
    AuthError,
    FetchError,
    ValidationError,
    InvalidTransitionError,
)
from host_bridge.models.events import InboundKind, OutboundKind, OriginTrust

__version__ = "0.1.0"
__all__ = [
    "EmbeddedRuntime",
    "RuntimeContext",
    "RuntimeConfig",
    "load_config",
    "save_config",
    "parse_launch_session_id",
    "SessionCoordinator",
    "ContextStore",
    "QueryCache",
    "RouteSync",
    "MemoryNavigator",
    "CommandRouter",
    "AccessGate",
    "GateStatus",
    "MessageBus",
    "Subscription",
    "HostBridgeError",
    "TransportError",
    "RequestTimeoutError",
    "AuthError",
    "FetchError",
    "ValidationError",
    "InvalidTransitionError",
    "InboundKind",
    "OutboundKind",
    "OriginTrust",
]
