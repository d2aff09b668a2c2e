"""
MCP HTTP Bridge - Application FastAPI Factory.
Front HTTP -> processus MCP stdio (JSON-RPC ligne par ligne).
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.router import api_router
from .config.loader import load_config
from .config.settings import Settings
from .core.constants import PROCESS_TERMINATE_GRACE_S
from .proxy.registry import ProviderRegistry
from .proxy.router import Router
from .proxy.session import HandshakeConfig, RPCSession

logger = logging.getLogger(__name__)


def create_registry(settings: Settings) -> ProviderRegistry:
    """Construit le registre statique des providers depuis la configuration."""
    session_cfg = settings.session
    handshake = HandshakeConfig(
        protocol_version=session_cfg.protocol_version,
        client_name=session_cfg.client_name,
        client_version=session_cfg.client_version,
        send_initialized_notification=session_cfg.send_initialized_notification,
    )
    return ProviderRegistry(
        settings.descriptors(),
        session_factory=lambda descriptor: RPCSession(
            descriptor,
            handshake=handshake,
            max_frame_bytes=session_cfg.max_frame_bytes,
        ),
    )


def create_app(settings: Optional[Settings] = None, registry: Optional[ProviderRegistry] = None) -> FastAPI:
    """
    Factory pour créer l'application FastAPI.

    Args:
        settings: Configuration (chargée depuis config.toml si absente)
        registry: Registre déjà construit (tests)

    Returns:
        Instance configurée de FastAPI
    """
    if settings is None:
        settings = Settings.from_config(load_config())
    if registry is None:
        registry = create_registry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Gestion du cycle de vie de l'application."""
        # Startup
        _startup(app)
        yield
        # Shutdown
        await _shutdown(app)

    app = FastAPI(
        title="MCP HTTP Bridge",
        description="Front HTTP pour serveurs MCP stdio (JSON-RPC)",
        version="1.0.0",
        lifespan=lifespan
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.registry = registry
    app.state.router = Router(registry, settings.default_provider)

    app.include_router(api_router)
    return app


def _startup(app: FastAPI):
    """Initialisation au démarrage (les providers démarrent au premier usage)."""
    settings: Settings = app.state.settings
    logger.info(f"🚀 MCP HTTP Bridge running on {settings.server.url}")
    logger.info(
        f"✅ {len(settings.providers)} provider(s): {', '.join(settings.provider_names)} "
        f"(default: {settings.default_provider})"
    )
    logger.info("📋 Endpoints: GET /health, GET /tools, POST /tools/{toolName}, POST /mcp")


async def _shutdown(app: FastAPI):
    """Arrêt de l'application: terminaison de tous les processus enfants."""
    logger.info("🛑 Shutting down MCP HTTP Bridge...")
    registry: ProviderRegistry = app.state.registry

    # Demande synchrone d'abord, l'attente de sortie reste best-effort
    registry.shutdown()
    try:
        await asyncio.wait_for(registry.aclose(), timeout=PROCESS_TERMINATE_GRACE_S + 1.0)
    except asyncio.TimeoutError:
        logger.warning("⚠️ Some MCP servers did not exit in time")

    logger.info("✅ Bridge stopped")
