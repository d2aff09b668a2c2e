"""
Configuration des tests pytest.
"""
import os
import sys
from pathlib import Path

import pytest

# Ajoute src au path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from mcp_http_bridge.config.loader import _clear_config_cache  # noqa: E402
from mcp_http_bridge.core.models import ProviderDescriptor, SpawnSpec  # noqa: E402

FAKE_SERVER = Path(__file__).resolve().parent / "fixtures" / "fake_mcp_server_stdio.py"


def pytest_configure(config):
    """Déclare les marqueurs utilisés par la suite."""
    config.addinivalue_line(
        "markers", "asyncio: marque un test comme asynchrone"
    )
    config.addinivalue_line(
        "markers", "unit: test unitaire (aucun appel réseau externe)"
    )


def fake_server_spec(*extra_args: str, env: dict = None) -> SpawnSpec:
    """SpawnSpec lançant le faux serveur MCP stdio avec l'interpréteur courant."""
    return SpawnSpec(
        command=sys.executable,
        args=["-u", str(FAKE_SERVER), *extra_args],
        env=dict(env or {}),
    )


@pytest.fixture
def make_spec():
    """Fabrique de SpawnSpec pour le faux serveur."""
    return fake_server_spec


@pytest.fixture
def make_descriptor():
    """Fabrique de ProviderDescriptor pointant sur le faux serveur."""

    def _make(
        name: str = "xero",
        *extra_args: str,
        init_timeout_s: float = 5.0,
        call_timeout_s: float = 5.0,
    ) -> ProviderDescriptor:
        return ProviderDescriptor(
            name=name,
            spawn_spec=fake_server_spec(*extra_args),
            init_timeout_s=init_timeout_s,
            call_timeout_s=call_timeout_s,
        )

    return _make


@pytest.fixture
def spawn_log(tmp_path: Path) -> Path:
    """Fichier où le faux serveur trace ses spawns et handshakes."""
    return tmp_path / "spawn.log"


@pytest.fixture(autouse=True)
def _reset_config_cache():
    _clear_config_cache()
    yield
    _clear_config_cache()
