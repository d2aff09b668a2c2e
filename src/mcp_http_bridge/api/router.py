"""
Router principal de l'API.
"""
from fastapi import APIRouter

from .routes import health, tools, mcp

# Router principal
api_router = APIRouter()

# Inclusion des sous-routers (routes fixes, sans préfixe)
api_router.include_router(health.router, prefix="", tags=["health"])
api_router.include_router(tools.router, prefix="", tags=["tools"])
api_router.include_router(mcp.router, prefix="", tags=["mcp"])
