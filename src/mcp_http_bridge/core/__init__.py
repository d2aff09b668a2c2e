"""
Core du MCP HTTP Bridge: modèles, exceptions, constantes, helpers JSON-RPC.
"""

from .exceptions import (
    BridgeError,
    ConfigurationError,
    UnknownProviderError,
    InvalidProviderSelectorError,
    InvalidRequestError,
    ConnectivityError,
    SpawnError,
    ProcessExitedError,
    BridgeTimeoutError,
    InitTimeoutError,
    CallTimeoutError,
    ProtocolError,
    SessionNotReadyError,
    MalformedFrameError,
)
from .models import (
    ProcessState,
    SessionState,
    SpawnSpec,
    ProviderDescriptor,
    PendingCall,
    RouteTarget,
)

__all__ = [
    "BridgeError",
    "ConfigurationError",
    "UnknownProviderError",
    "InvalidProviderSelectorError",
    "InvalidRequestError",
    "ConnectivityError",
    "SpawnError",
    "ProcessExitedError",
    "BridgeTimeoutError",
    "InitTimeoutError",
    "CallTimeoutError",
    "ProtocolError",
    "SessionNotReadyError",
    "MalformedFrameError",
    "ProcessState",
    "SessionState",
    "SpawnSpec",
    "ProviderDescriptor",
    "PendingCall",
    "RouteTarget",
]
