"""mcp_http_bridge.proxy.registry

Registre des providers: nom -> RPCSession, fixé au démarrage.

- `ensure(key)` démarre paresseusement la session au premier usage.
- Les providers sont indépendants: chacun possède sa session, son processus et
  son compteur d'ids. Un crash ou un blocage de l'un n'affecte pas les autres.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Iterator

from ..core.exceptions import ConfigurationError, UnknownProviderError
from ..core.models import ProviderDescriptor
from .session import RPCSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[ProviderDescriptor], RPCSession]


class ProviderRegistry:
    """Mapping statique (ordonné) provider -> session RPC."""

    def __init__(
        self,
        descriptors: Iterable[ProviderDescriptor],
        *,
        session_factory: SessionFactory | None = None,
    ):
        factory = session_factory or RPCSession
        self._sessions: dict[str, RPCSession] = {}
        for descriptor in descriptors:
            if descriptor.name in self._sessions:
                raise ConfigurationError(
                    f"Provider déclaré deux fois: {descriptor.name}",
                    config_key=f"providers.{descriptor.name}",
                )
            self._sessions[descriptor.name] = factory(descriptor)
        self._background: set[asyncio.Task[Any]] = set()

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def __iter__(self) -> Iterator[str]:
        return iter(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def keys(self) -> list[str]:
        """Clés dans l'ordre d'enregistrement."""
        return list(self._sessions)

    def get(self, key: str) -> RPCSession:
        """Retourne la session sans la démarrer."""
        session = self._sessions.get(key)
        if session is None:
            raise UnknownProviderError(key, known=self.keys())
        return session

    async def ensure(self, key: str) -> RPCSession:
        """Retourne une session prête (spawn + handshake au premier usage)."""
        session = self.get(key)
        return await session.ensure_ready()

    def warm_up(self, key: str) -> asyncio.Task[Any] | None:
        """Lance la mise en route d'un provider en tâche de fond (fire-and-forget)."""
        session = self.get(key)
        if session.ready:
            return None

        task = asyncio.create_task(session.ensure_ready())
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"⚠️ Background warm-up failed: {error}")

    def status(self) -> dict[str, dict[str, Any]]:
        return {key: session.snapshot() for key, session in self._sessions.items()}

    def shutdown(self) -> None:
        """Demande synchrone de terminaison de tous les enfants démarrés."""
        for task in list(self._background):
            task.cancel()
        for session in self._sessions.values():
            session.terminate()

    async def aclose(self) -> None:
        """Termine tous les enfants et attend leur sortie."""
        self.shutdown()
        await asyncio.gather(
            *(session.close() for session in self._sessions.values()),
            return_exceptions=True,
        )
