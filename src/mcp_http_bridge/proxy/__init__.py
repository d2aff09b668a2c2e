"""
Couche Proxy: processus enfants, sessions RPC, registre et routage.
"""

from .process import ProcessSupervisor
from .session import HandshakeConfig, RPCSession
from .registry import ProviderRegistry
from .router import Router, prefix_tools, split_namespace

__all__ = [
    "ProcessSupervisor",
    "HandshakeConfig",
    "RPCSession",
    "ProviderRegistry",
    "Router",
    "prefix_tools",
    "split_namespace",
]
