"""Routes API - passthrough JSON-RPC générique.

Expose `POST /mcp`: le corps est une requête JSON-RPC 2.0 arbitraire, routée
vers un provider (namespace, `provider` en query ou dans le corps, ou défaut).
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from ...core.exceptions import InvalidRequestError
from ..errors import error_response, read_json_object


router = APIRouter()


@router.post("/mcp")
async def api_mcp_passthrough(request: Request, provider: str | None = None):
    """Forwarde un JSON-RPC brut au provider résolu et renvoie sa réponse telle quelle."""
    body: dict[str, object] | None = None
    try:
        body = await read_json_object(request)
        if not isinstance(body.get("method"), str):
            raise InvalidRequestError("Requête JSON-RPC invalide ('method' manquant)")

        hint = provider if provider is not None else body.get("provider")
        response = await request.app.state.router.forward(body, hint)
    except Exception as e:
        return error_response(e, body)

    if response is None:
        # Notification: rien à corréler
        return Response(status_code=202)
    return JSONResponse(content=response)
