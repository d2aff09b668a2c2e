from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from mcp_http_bridge.config.settings import ProviderConfig, ServerConfig, Settings
from mcp_http_bridge.main import create_app

FAKE_SERVER = Path(__file__).resolve().parents[2] / "fixtures" / "fake_mcp_server_stdio.py"


def _provider(name: str, *extra_args: str) -> ProviderConfig:
    return ProviderConfig(
        name=name,
        command=sys.executable,
        args=["-u", str(FAKE_SERVER), *extra_args],
        init_timeout_s=5.0,
        call_timeout_s=5.0,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        server=ServerConfig(port=3999, default_provider="xero"),
        providers=[
            _provider("xero", "--tools", "echo,sleep"),
            _provider("supabase", "--tools", "list-tables"),
        ],
    )


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest_asyncio.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app.state.registry.aclose()


def _spawns(app: FastAPI) -> dict[str, int]:
    return {key: s["spawns"] for key, s in app.state.registry.status().items()}


# ----------------------------------------------------------------------
# /health
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health_cold_reports_flags_at_request_time(app: FastAPI, async_client: httpx.AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["ok"] is True
    assert body["mcpServer"] == "running"
    assert body["defaultProvider"] == "xero"
    assert body["url"] == "http://localhost:3999"
    assert body["timestamp"].endswith("Z")
    assert body["providers"]["xero"] == {"running": False, "ready": False, "state": "uninitialized"}
    assert list(body["providers"]) == ["xero", "supabase"]

    # Sonde suivante: le provider par défaut est prêt
    body = (await async_client.get("/health")).json()
    assert body["providers"]["xero"]["ready"] is True
    assert body["providers"]["xero"]["running"] is True


@pytest.mark.asyncio
async def test_health_returns_500_when_default_provider_fails():
    settings = Settings(
        server=ServerConfig(default_provider="xero"),
        providers=[
            _provider("xero", "--init-mode", "error"),
            _provider("supabase", "--tools", "list-tables"),
        ],
    )
    app = create_app(settings)
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/health")
        secondary = app.state.registry.status()["supabase"]
    finally:
        await app.state.registry.aclose()

    assert resp.status_code == 500
    body = resp.json()
    assert body["status"] == "error"
    assert body["ok"] is False
    assert "initialize" in body["error"]
    assert body["providers"]["xero"]["ready"] is False
    # Le provider secondaire est lancé même si le provider par défaut échoue
    assert secondary["spawns"] == 1
    assert secondary["state"] != "uninitialized"


# ----------------------------------------------------------------------
# /tools
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_tools_default_provider(async_client: httpx.AsyncClient):
    resp = await async_client.get("/tools")
    assert resp.status_code == 200
    body = resp.json()
    assert body["jsonrpc"] == "2.0"
    assert [t["name"] for t in body["result"]["tools"]] == ["echo", "sleep"]


@pytest.mark.asyncio
async def test_list_tools_fan_out(async_client: httpx.AsyncClient):
    resp = await async_client.get("/tools", params={"provider": "all"})
    assert resp.status_code == 200
    names = [t["name"] for t in resp.json()["result"]["tools"]]
    assert names == ["xero.echo", "xero.sleep", "supabase.list-tables"]


@pytest.mark.asyncio
async def test_unknown_provider_rejected_before_spawn(app: FastAPI, async_client: httpx.AsyncClient):
    resp = await async_client.post("/tools/unknown-tool", params={"provider": "ghost"}, json={"arguments": {}})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["code"] == -32001
    assert "ghost" in body["error"]["message"]
    assert _spawns(app) == {"xero": 0, "supabase": 0}


@pytest.mark.asyncio
async def test_all_selector_rejected_for_tool_call(app: FastAPI, async_client: httpx.AsyncClient):
    resp = await async_client.post("/tools/echo", params={"provider": "all"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == -32602
    assert _spawns(app) == {"xero": 0, "supabase": 0}


@pytest.mark.asyncio
async def test_call_tool_with_arguments(async_client: httpx.AsyncClient):
    resp = await async_client.post("/tools/echo", json={"arguments": {"hello": "world"}})
    assert resp.status_code == 200
    text = resp.json()["result"]["content"][0]["text"]
    assert json.loads(text) == {"hello": "world"}


@pytest.mark.asyncio
async def test_call_tool_namespaced_and_body_provider(app: FastAPI, async_client: httpx.AsyncClient):
    resp = await async_client.post("/tools/supabase.echo", json={"arguments": {"n": 1}, "provider": "xero"})
    assert resp.status_code == 200
    assert json.loads(resp.json()["result"]["content"][0]["text"]) == {"n": 1}
    assert _spawns(app) == {"xero": 0, "supabase": 1}


@pytest.mark.asyncio
async def test_call_tool_empty_body_and_invalid_arguments(async_client: httpx.AsyncClient):
    resp = await async_client.post("/tools/echo")
    assert resp.status_code == 200
    assert resp.json()["result"]["content"][0]["text"] == "{}"

    resp = await async_client.post("/tools/echo", json={"arguments": [1, 2]})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == -32600


@pytest.mark.asyncio
async def test_call_timeout_maps_to_504(settings: Settings):
    settings.providers[0].call_timeout_s = 0.2
    app = create_app(settings)
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.post("/tools/silent")
    finally:
        await app.state.registry.aclose()

    assert resp.status_code == 504
    assert resp.json()["error"]["code"] == -32003


# ----------------------------------------------------------------------
# /mcp
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_mcp_passthrough_restores_caller_id(async_client: httpx.AsyncClient):
    req = {"jsonrpc": "2.0", "id": "req-1", "method": "tools/call", "params": {"name": "echo", "arguments": {"a": 1}}}
    resp = await async_client.post("/mcp", json=req)
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == "req-1"
    assert json.loads(body["result"]["content"][0]["text"]) == {"a": 1}


@pytest.mark.asyncio
async def test_mcp_child_error_is_forwarded(async_client: httpx.AsyncClient):
    req = {"jsonrpc": "2.0", "id": 3, "method": "resources/list", "provider": "supabase"}
    resp = await async_client.post("/mcp", json=req)
    assert resp.status_code == 200
    assert resp.json() == {"jsonrpc": "2.0", "id": 3, "error": {"code": -32601, "message": "Method not found"}}


@pytest.mark.asyncio
async def test_mcp_fan_out_tools_list(async_client: httpx.AsyncClient):
    req = {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}
    resp = await async_client.post("/mcp", params={"provider": "all"}, json=req)
    assert resp.status_code == 200
    assert len(resp.json()["result"]["tools"]) == 3


@pytest.mark.asyncio
async def test_mcp_notification_is_accepted(async_client: httpx.AsyncClient):
    resp = await async_client.post("/mcp", json={"jsonrpc": "2.0", "method": "notifications/cancelled"})
    assert resp.status_code == 202
    assert resp.content == b""


@pytest.mark.asyncio
async def test_mcp_invalid_json_returns_parse_error(async_client: httpx.AsyncClient):
    resp = await async_client.post("/mcp", content=b"{not json", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == -32700


@pytest.mark.asyncio
async def test_mcp_missing_method_keeps_request_id(app: FastAPI, async_client: httpx.AsyncClient):
    resp = await async_client.post("/mcp", json={"jsonrpc": "2.0", "id": 77})
    assert resp.status_code == 400
    body = resp.json()
    assert body["id"] == 77
    assert body["error"]["code"] == -32600
    assert _spawns(app) == {"xero": 0, "supabase": 0}
