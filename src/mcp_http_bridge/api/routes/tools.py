"""Routes API - outils MCP.

- `GET /tools?provider=<key|all>`: liste des outils (fan-out si `all`)
- `POST /tools/{tool_name}?provider=<key>`: appel d'un outil
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...core.exceptions import InvalidRequestError
from ..errors import error_response, read_json_object


router = APIRouter()


@router.get("/tools")
async def api_list_tools(request: Request, provider: str | None = None):
    """Liste les outils d'un provider, ou de tous avec `provider=all`."""
    try:
        response = await request.app.state.router.list_tools(provider)
    except Exception as e:
        return error_response(e)

    status = 502 if "error" in response else 200
    return JSONResponse(content=response, status_code=status)


@router.post("/tools/{tool_name}")
async def api_call_tool(tool_name: str, request: Request, provider: str | None = None):
    """Appelle un outil; `provider.tool` route vers `provider` (namespace)."""
    try:
        body = await read_json_object(request, allow_empty=True)
        arguments = body.get("arguments", {})
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidRequestError("'arguments' doit être un objet JSON")

        hint = provider if provider is not None else body.get("provider")
        response = await request.app.state.router.call_tool(tool_name, arguments, hint)
    except Exception as e:
        return error_response(e)

    return JSONResponse(content=response)
