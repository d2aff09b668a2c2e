"""mcp_http_bridge.proxy.router

Routage des requêtes HTTP vers (provider, méthode JSON-RPC, params).

Règles:
- `tools/call`: un `.` dans le nom d'outil désigne le provider (préfixe avant le
  premier `.`) et le nom réel (le reste). Ce namespace l'emporte sur tout
  indice explicite. Sinon: indice `provider` (query ou body), sinon provider
  par défaut.
- `tools/list`: `provider=all` déclenche un fan-out concurrent sur tous les
  providers; chaque nom d'outil est préfixé par `<provider>.`.
- Un provider explicite inconnu est une erreur (jamais de repli silencieux).
- `all` est refusé pour toute opération à cible unique.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..core.constants import FAN_OUT_SELECTOR, NAMESPACE_SEPARATOR
from ..core.exceptions import (
    BridgeError,
    InvalidProviderSelectorError,
    ProtocolError,
    UnknownProviderError,
)
from ..core.jsonrpc import build_result, is_notification_method
from ..core.models import RouteTarget
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)


def _normalize_hint(provider_hint: object) -> str | None:
    if not isinstance(provider_hint, str):
        return None
    hint = provider_hint.strip()
    return hint or None


def split_namespace(tool_name: str) -> tuple[str | None, str]:
    """`"supabase.list-tables"` -> `("supabase", "list-tables")`."""
    if NAMESPACE_SEPARATOR not in tool_name:
        return None, tool_name
    prefix, _, remainder = tool_name.partition(NAMESPACE_SEPARATOR)
    return prefix, remainder


def prefix_tools(provider: str, tools: list[Any]) -> list[Any]:
    """Préfixe le nom de chaque outil par `<provider>.` (copie superficielle)."""
    prefixed: list[Any] = []
    for tool in tools:
        if isinstance(tool, dict) and isinstance(tool.get("name"), str):
            tool = {**tool, "name": f"{provider}{NAMESPACE_SEPARATOR}{tool['name']}"}
        prefixed.append(tool)
    return prefixed


class Router:
    """Résout et dispatch les requêtes vers le registre des providers."""

    def __init__(self, registry: ProviderRegistry, default_provider: str):
        if default_provider not in registry:
            raise UnknownProviderError(default_provider, known=registry.keys())
        self.registry = registry
        self.default_provider = default_provider

    # ------------------------------------------------------------------
    # Résolution (synchrone, aucune interaction processus)
    # ------------------------------------------------------------------

    def _resolve_single(self, provider_hint: object, method: str) -> str:
        hint = _normalize_hint(provider_hint)
        if hint is None:
            return self.default_provider
        if hint == FAN_OUT_SELECTOR:
            raise InvalidProviderSelectorError(method)
        if hint not in self.registry:
            raise UnknownProviderError(hint, known=self.registry.keys())
        return hint

    def resolve_tool_call(
        self,
        tool_name: str,
        arguments: dict[str, Any] | None = None,
        provider_hint: object = None,
    ) -> RouteTarget:
        prefix, resolved_name = split_namespace(tool_name)
        if prefix is not None:
            if prefix not in self.registry:
                raise UnknownProviderError(prefix, known=self.registry.keys())
            provider = prefix
        else:
            provider = self._resolve_single(provider_hint, "tools/call")

        return RouteTarget(
            provider=provider,
            method="tools/call",
            params={"name": resolved_name, "arguments": arguments if arguments is not None else {}},
        )

    def resolve_list(self, provider_hint: object = None) -> RouteTarget:
        hint = _normalize_hint(provider_hint)
        if hint == FAN_OUT_SELECTOR:
            return RouteTarget(provider=FAN_OUT_SELECTOR, method="tools/list", fan_out=True)
        return RouteTarget(provider=self._resolve_single(hint, "tools/list"), method="tools/list")

    def resolve_message(self, message: dict[str, Any], provider_hint: object = None) -> RouteTarget:
        """Résout un message JSON-RPC générique (endpoint /mcp)."""
        method = message.get("method")
        params = message.get("params")
        params = dict(params) if isinstance(params, dict) else {}

        if method == "tools/call":
            name = params.get("name")
            if isinstance(name, str):
                target = self.resolve_tool_call(name, params.get("arguments"), provider_hint)
                return RouteTarget(
                    provider=target.provider,
                    method="tools/call",
                    params={**params, "name": target.params["name"]},
                )
            return RouteTarget(provider=self._resolve_single(provider_hint, "tools/call"), method="tools/call", params=params)

        if method == "tools/list":
            target = self.resolve_list(provider_hint)
            return RouteTarget(provider=target.provider, method="tools/list", params=params, fan_out=target.fan_out)

        return RouteTarget(provider=self._resolve_single(provider_hint, str(method)), method=str(method), params=params)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def call_tool(
        self,
        tool_name: str,
        arguments: dict[str, Any] | None = None,
        provider_hint: object = None,
    ) -> dict[str, Any]:
        target = self.resolve_tool_call(tool_name, arguments, provider_hint)
        logger.info(f"🔧 [{target.provider}] Calling tool: {target.params['name']}")
        session = await self.registry.ensure(target.provider)
        return await session.send({"jsonrpc": "2.0", "method": target.method, "params": target.params})

    async def list_tools(self, provider_hint: object = None) -> dict[str, Any]:
        """Retourne `{jsonrpc, result: {tools}}` (ou l'erreur brute du provider)."""
        target = self.resolve_list(provider_hint)
        if target.fan_out:
            return build_result({"tools": await self._fan_out_tools({})})

        response = await self._list_one(target.provider, {})
        if "error" in response:
            return response
        return build_result({"tools": _extract_tools(response)})

    async def forward(self, message: dict[str, Any], provider_hint: object = None) -> dict[str, Any] | None:
        """Passthrough générique; retourne None pour une notification."""
        target = self.resolve_message(message, provider_hint)
        caller_id = message.get("id")

        if target.fan_out:
            tools = await self._fan_out_tools(target.params)
            return build_result({"tools": tools}, req_id=caller_id)

        session = await self.registry.ensure(target.provider)
        outbound = {k: v for k, v in message.items() if k != "provider"}
        outbound["method"] = target.method
        if "params" in message or target.params:
            outbound["params"] = target.params

        if is_notification_method(target.method) and "id" not in message:
            await session.notify(outbound)
            return None
        return await session.send(outbound)

    async def _list_one(self, provider: str, params: dict[str, Any]) -> dict[str, Any]:
        session = await self.registry.ensure(provider)
        return await session.send({"jsonrpc": "2.0", "method": "tools/list", "params": params})

    async def _fan_out_tools(self, params: dict[str, Any]) -> list[Any]:
        providers = self.registry.keys()
        results = await asyncio.gather(
            *(self._list_one(provider, params) for provider in providers),
            return_exceptions=True,
        )

        merged: list[Any] = []
        for provider, outcome in zip(providers, results):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, BridgeError):
                    raise outcome
                raise ProtocolError(provider, f"tools/list failed: {outcome}") from outcome
            if "error" in outcome:
                raise ProtocolError(provider, "tools/list returned an error", error=outcome.get("error"))
            merged.extend(prefix_tools(provider, _extract_tools(outcome)))
        return merged


def _extract_tools(response: dict[str, Any]) -> list[Any]:
    result = response.get("result")
    if not isinstance(result, dict):
        return []
    tools = result.get("tools")
    return list(tools) if isinstance(tools, list) else []
