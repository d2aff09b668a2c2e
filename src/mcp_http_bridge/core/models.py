"""
Modèles de données du bridge (dataclasses et états).
"""
import asyncio
import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ProcessState(str, Enum):
    """États d'un processus enfant supervisé."""
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    TERMINATED = "terminated"


class SessionState(str, Enum):
    """États d'une session RPC."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class SpawnSpec:
    """Commande, arguments et surcouche d'environnement d'un enfant."""
    command: str
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None

    @property
    def argv(self) -> List[str]:
        return [self.command, *self.args]


@dataclass
class ProviderDescriptor:
    """
    Un provider = un processus enfant MCP géré indépendamment.

    Le compteur d'ids appartient au provider: les ids ne sont jamais partagés
    entre providers et ne sont jamais réutilisés pendant toute la durée du run.
    """
    name: str
    spawn_spec: SpawnSpec
    init_timeout_s: float = 10.0
    call_timeout_s: float = 10.0
    _ids: "itertools.count[int]" = field(default_factory=lambda: itertools.count(1), repr=False)

    def next_id(self) -> int:
        return next(self._ids)


@dataclass
class PendingCall:
    """Appel en vol en attente d'une réponse portant le même id."""
    id: int
    method: str
    future: "asyncio.Future[Dict[str, Any]]"
    enqueued_at: float = field(default_factory=time.monotonic)

    @property
    def age_s(self) -> float:
        return time.monotonic() - self.enqueued_at


@dataclass(frozen=True)
class RouteTarget:
    """Résultat du routage: provider, méthode JSON-RPC et paramètres."""
    provider: str
    method: str
    params: Dict[str, Any] = field(default_factory=dict)
    fan_out: bool = False
