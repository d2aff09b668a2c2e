"""
Point d'entrée pour `python -m mcp_http_bridge`.
"""
import logging
import os

import uvicorn

from .config.loader import CONFIG_PATH_ENV, load_config
from .config.settings import Settings


def main():
    """Fonction principale."""
    import argparse

    parser = argparse.ArgumentParser(description="MCP HTTP Bridge")
    parser.add_argument("--host", default=None, help="Host (défaut: config ou 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Port (défaut: config ou 3000)")
    parser.add_argument("--config", default=None, help="Chemin vers config.toml")
    parser.add_argument("--log-level", default=None, help="Niveau de log (INFO, DEBUG...)")
    parser.add_argument("--reload", action="store_true", help="Activer le reload auto")

    args = parser.parse_args()

    if args.config:
        # Transmis via l'environnement pour survivre au reload uvicorn
        os.environ[CONFIG_PATH_ENV] = os.path.abspath(args.config)

    settings = Settings.from_config(load_config())
    host = args.host or settings.server.host
    port = args.port or settings.server.port
    log_level = (args.log_level or settings.server.log_level).upper()

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"🚀 Démarrage du MCP HTTP Bridge sur {host}:{port}")

    uvicorn.run(
        "mcp_http_bridge.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=args.reload,
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    main()
