"""
Routes API pour le health check.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


def _now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@router.get("/health")
async def health_check(request: Request):
    """
    Sonde de disponibilité.

    - Les drapeaux `providers` décrivent l'état observé à l'arrivée de la sonde.
    - Les autres providers sont lancés en tâche de fond (sans faire échouer la
      sonde), puis le provider par défaut est initialisé (attendu).
    """
    state = request.app.state
    registry = state.registry
    default_provider = state.router.default_provider

    providers = {
        key: {"running": snapshot["running"], "ready": snapshot["ready"], "state": snapshot["state"]}
        for key, snapshot in registry.status().items()
    }

    body = {
        "defaultProvider": default_provider,
        "providers": providers,
        "url": state.settings.server.url,
    }

    for key in registry.keys():
        if key != default_provider:
            registry.warm_up(key)

    try:
        await registry.ensure(default_provider)
    except Exception as e:
        default_session = registry.get(default_provider)
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "ok": False,
                "error": getattr(e, "message", None) or str(e) or "health check failed",
                "mcpServer": "running" if default_session.running else "stopped",
                "timestamp": _now_utc_iso(),
                **body,
            },
        )

    return {
        "status": "ok",
        "ok": True,
        "mcpServer": "running" if registry.get(default_provider).running else "stopped",
        "timestamp": _now_utc_iso(),
        **body,
    }
