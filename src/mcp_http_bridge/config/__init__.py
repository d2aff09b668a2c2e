"""
Configuration du MCP HTTP Bridge.
"""

from .loader import load_config, reload_config, get_config
from .settings import Settings, ServerConfig, SessionConfig, ProviderConfig

__all__ = [
    "load_config",
    "reload_config",
    "get_config",
    "Settings",
    "ServerConfig",
    "SessionConfig",
    "ProviderConfig",
]
