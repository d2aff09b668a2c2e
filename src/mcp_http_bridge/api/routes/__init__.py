"""
Routes API par domaine.
"""

from . import health
from . import tools
from . import mcp

__all__ = [
    "health",
    "tools",
    "mcp",
]
