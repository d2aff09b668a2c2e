"""mcp_http_bridge.core.jsonrpc

Helpers JSON-RPC 2.0 sans I/O: construction et classification des messages.
"""

from __future__ import annotations

from typing import Any


def build_request(method: str, params: dict[str, Any] | None, req_id: int | str) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": req_id,
        "method": method,
        "params": params if params is not None else {},
    }


def build_notification(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        message["params"] = params
    return message


def build_result(result: object, req_id: object | None = None) -> dict[str, object]:
    payload: dict[str, object] = {"jsonrpc": "2.0", "result": result}
    if req_id is not None:
        payload["id"] = req_id
    return payload


def build_jsonrpc_error(
    *,
    code: int,
    message: str,
    req_id: object | None = None,
    data: object | None = None,
) -> dict[str, object]:
    """Construit une réponse d'erreur JSON-RPC 2.0.

    Note: `id` n'est inclus que s'il est connu.
    """

    error: dict[str, object] = {
        "code": int(code),
        "message": message,
    }
    if data is not None:
        error["data"] = data

    payload: dict[str, object] = {"jsonrpc": "2.0", "error": error}
    if req_id is not None:
        payload["id"] = req_id
    return payload


def safe_jsonrpc_id(req_id: object | None) -> str | int | float | None:
    # JSON-RPC 2.0: id est string | number | null.
    if req_id is None or isinstance(req_id, bool):
        return None
    if isinstance(req_id, (str, int, float)):
        return req_id
    return None


def is_request(obj: object) -> bool:
    return isinstance(obj, dict) and isinstance(obj.get("method"), str)


def is_response(obj: object) -> bool:
    return (
        isinstance(obj, dict)
        and "method" not in obj
        and ("result" in obj or "error" in obj)
    )


def is_notification_method(method: object) -> bool:
    return isinstance(method, str) and method.startswith("notifications/")
