"""
Enveloppe d'erreur JSON-RPC pour les réponses HTTP du bridge.
"""
from __future__ import annotations

import json
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from ..core.constants import JSONRPC_INTERNAL_ERROR, JSONRPC_PARSE_ERROR
from ..core.exceptions import BridgeError, InvalidRequestError
from ..core.jsonrpc import build_jsonrpc_error, safe_jsonrpc_id

logger = logging.getLogger(__name__)


def error_response(error: Exception, request_json: object = None) -> JSONResponse:
    """Convertit une exception en `{jsonrpc, error:{code, message}}` + status HTTP."""
    req_id = safe_jsonrpc_id(request_json.get("id")) if isinstance(request_json, dict) else None

    if isinstance(error, BridgeError):
        payload = build_jsonrpc_error(
            code=error.jsonrpc_code,
            message=error.message,
            req_id=req_id,
            data=error.details or None,
        )
        return JSONResponse(content=payload, status_code=error.http_status)

    logger.exception("❌ Unexpected bridge error")
    payload = build_jsonrpc_error(
        code=JSONRPC_INTERNAL_ERROR,
        message=str(error) or "internal error",
        req_id=req_id,
    )
    return JSONResponse(content=payload, status_code=500)


async def read_json_object(request: Request, *, allow_empty: bool = False) -> dict[str, object]:
    """Lit le corps JSON; lève InvalidRequestError si ce n'est pas un objet."""
    raw = await request.body()
    if not raw.strip():
        if allow_empty:
            return {}
        raise InvalidRequestError("Requête JSON-RPC invalide (corps vide)")

    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequestError("Parse error", jsonrpc_code=JSONRPC_PARSE_ERROR) from None

    if not isinstance(body, dict):
        raise InvalidRequestError("Requête JSON-RPC invalide (attendu objet JSON)")
    return body
