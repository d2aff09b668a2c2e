"""Tests unitaires - proxy/registry.py (ProviderRegistry)."""

from __future__ import annotations

import asyncio

import pytest

from mcp_http_bridge.core.exceptions import ConfigurationError, UnknownProviderError
from mcp_http_bridge.proxy.registry import ProviderRegistry


@pytest.mark.unit
def test_duplicate_provider_is_rejected(make_descriptor):
    with pytest.raises(ConfigurationError):
        ProviderRegistry([make_descriptor("xero"), make_descriptor("xero")])


@pytest.mark.unit
def test_unknown_provider_lists_known_keys(make_descriptor):
    registry = ProviderRegistry([make_descriptor("xero"), make_descriptor("supabase")])
    assert registry.keys() == ["xero", "supabase"]
    assert "xero" in registry and "ghost" not in registry
    assert len(registry) == 2

    with pytest.raises(UnknownProviderError) as exc_info:
        registry.get("ghost")
    assert "ghost" in exc_info.value.message
    assert exc_info.value.details["known"] == ["xero", "supabase"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_providers_start_lazily_and_independently(make_descriptor):
    registry = ProviderRegistry([make_descriptor("xero"), make_descriptor("supabase")])
    try:
        status = registry.status()
        assert all(not s["running"] and s["spawns"] == 0 for s in status.values())

        session = await registry.ensure("xero")
        assert session.ready
        status = registry.status()
        assert status["xero"]["ready"] is True
        assert status["supabase"]["spawns"] == 0
        assert status["supabase"]["state"] == "uninitialized"
    finally:
        await registry.aclose()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failure_of_one_provider_does_not_affect_another(make_descriptor):
    registry = ProviderRegistry([
        make_descriptor("xero"),
        make_descriptor("broken", "--init-mode", "error"),
    ])
    try:
        with pytest.raises(Exception):
            await registry.ensure("broken")
        session = await registry.ensure("xero")
        response = await session.send({"method": "tools/call", "params": {"name": "echo", "arguments": {}}})
        assert response["result"]["content"][0]["text"] == "{}"
        assert registry.status()["broken"]["state"] == "failed"
    finally:
        await registry.aclose()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_warm_up_runs_in_background(make_descriptor):
    registry = ProviderRegistry([make_descriptor("xero"), make_descriptor("broken", "--init-mode", "exit")])
    try:
        task = registry.warm_up("xero")
        failing = registry.warm_up("broken")
        assert task is not None and failing is not None

        await asyncio.wait_for(task, timeout=5.0)
        await asyncio.wait([failing], timeout=5.0)
        assert registry.get("xero").ready
        assert registry.warm_up("xero") is None
        assert failing.exception() is not None
    finally:
        await registry.aclose()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_aclose_terminates_all_started_children(make_descriptor):
    registry = ProviderRegistry([make_descriptor("xero"), make_descriptor("supabase")])
    await asyncio.gather(registry.ensure("xero"), registry.ensure("supabase"))
    supervisors = [registry.get(key).supervisor for key in registry]

    await registry.aclose()

    assert all(sup.terminated for sup in supervisors)
    assert all(not s["running"] for s in registry.status().values())


@pytest.mark.unit
@pytest.mark.asyncio
async def test_shutdown_requests_termination_without_waiting(make_descriptor):
    registry = ProviderRegistry([make_descriptor("xero"), make_descriptor("supabase")])
    try:
        supervisor = (await registry.ensure("xero")).supervisor
        warm = registry.warm_up("supabase")

        assert registry.shutdown() is None
        # Demande synchrone: aucun await n'a eu lieu, l'enfant n'est pas encore sorti
        assert supervisor.running

        returncode = await asyncio.wait_for(supervisor.wait(), timeout=5.0)
        assert returncode != 0
        assert supervisor.terminated
        assert warm.cancelled()
    finally:
        await registry.aclose()
