"""mcp_http_bridge.proxy.session

Session JSON-RPC au-dessus d'un ProcessSupervisor.

Machine à états:
    UNINITIALIZED -> INITIALIZING -> READY -> FAILED | TERMINATED

- `ensure_ready()` lance une seule initialisation à la fois: les appelants
  concurrents partagent le même résultat (un seul spawn par démarrage à froid).
- READY n'est pas reprenable: si l'enfant meurt, le prochain `ensure_ready()`
  relance spawn + handshake depuis zéro. Il n'y a aucun redémarrage en tâche
  de fond ni retry automatique.
- Les réponses sont corrélées par `id` uniquement (pas par ordre d'envoi).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from ..core.constants import (
    CLIENT_NAME,
    CLIENT_VERSION,
    DEFAULT_MAX_FRAME_BYTES,
    MCP_PROTOCOL_VERSION,
)
from ..core.exceptions import (
    BridgeError,
    CallTimeoutError,
    InitTimeoutError,
    ProcessExitedError,
    ProtocolError,
    SessionNotReadyError,
)
from ..core.jsonrpc import build_notification, build_request, is_request
from ..core.models import PendingCall, ProviderDescriptor, SessionState
from .process import ProcessSupervisor

logger = logging.getLogger(__name__)

SupervisorFactory = Callable[[ProviderDescriptor], ProcessSupervisor]


@dataclass(frozen=True)
class HandshakeConfig:
    """Champs fixes envoyés dans la requête `initialize`."""

    protocol_version: str = MCP_PROTOCOL_VERSION
    client_name: str = CLIENT_NAME
    client_version: str = CLIENT_VERSION
    send_initialized_notification: bool = True

    def initialize_params(self) -> dict[str, Any]:
        return {
            "protocolVersion": self.protocol_version,
            "capabilities": {"tools": {}},
            "clientInfo": {"name": self.client_name, "version": self.client_version},
        }


class RPCSession:
    """Session RPC d'un provider: handshake, envoi et corrélation des réponses."""

    def __init__(
        self,
        descriptor: ProviderDescriptor,
        *,
        handshake: HandshakeConfig | None = None,
        max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES,
        supervisor_factory: SupervisorFactory | None = None,
    ):
        self.descriptor = descriptor
        self.handshake = handshake or HandshakeConfig()
        self.max_frame_bytes = max_frame_bytes
        self._supervisor_factory = supervisor_factory or self._default_supervisor

        self.state = SessionState.UNINITIALIZED
        self.supervisor: ProcessSupervisor | None = None
        self.server_info: dict[str, Any] | None = None
        self.last_error: str | None = None
        self.spawn_count = 0

        self._init_task: asyncio.Task[None] | None = None
        self._init_future: asyncio.Future[dict[str, Any]] | None = None
        self._pending: dict[int, PendingCall] = {}

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def ready(self) -> bool:
        return self.state == SessionState.READY

    @property
    def running(self) -> bool:
        return self.supervisor is not None and self.supervisor.running

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _default_supervisor(self, descriptor: ProviderDescriptor) -> ProcessSupervisor:
        return ProcessSupervisor(
            descriptor.name,
            descriptor.spawn_spec,
            max_frame_bytes=self.max_frame_bytes,
        )

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    async def ensure_ready(self) -> "RPCSession":
        """Garantit une session READY (spawn + handshake si nécessaire)."""
        if self.state == SessionState.READY:
            return self

        if self._init_task is None or self._init_task.done():
            self._init_task = asyncio.create_task(self._initialize())

        # shield: l'annulation d'un appelant n'annule pas l'init partagée
        await asyncio.shield(self._init_task)
        return self

    async def _initialize(self) -> None:
        self._discard_supervisor()
        self.state = SessionState.INITIALIZING
        self.server_info = None

        loop = asyncio.get_running_loop()
        self._init_future = loop.create_future()

        supervisor = self._supervisor_factory(self.descriptor)
        supervisor.subscribe_frames(lambda frame, sup=supervisor: self._on_frame(sup, frame))
        supervisor.subscribe_exit(lambda code, sup=supervisor: self._on_exit(sup, code))
        self.supervisor = supervisor
        self.spawn_count += 1

        timeout_s = self.descriptor.init_timeout_s
        try:
            await supervisor.start()
            init_message = build_request(
                "initialize",
                self.handshake.initialize_params(),
                self.descriptor.next_id(),
            )
            # Une seule échéance couvre les écritures (drain) et l'attente de la réponse
            try:
                response = await asyncio.wait_for(
                    self._handshake(supervisor, init_message, self._init_future),
                    timeout=timeout_s,
                )
            except asyncio.TimeoutError:
                raise InitTimeoutError(self.name, timeout_s) from None
        except BaseException as e:
            self._fail(supervisor, e)
            raise
        finally:
            self._init_future = None

        result = response.get("result")
        self.server_info = result if isinstance(result, dict) else {}
        self.state = SessionState.READY
        self.last_error = None
        logger.info(f"✅ [{self.name}] MCP server initialized (pid={supervisor.pid})")

    async def _handshake(
        self,
        supervisor: ProcessSupervisor,
        init_message: dict[str, Any],
        init_future: asyncio.Future[dict[str, Any]],
    ) -> dict[str, Any]:
        await supervisor.write(init_message)
        response = await init_future
        if self.handshake.send_initialized_notification:
            await supervisor.write(build_notification("notifications/initialized"))
        return response

    def _fail(self, supervisor: ProcessSupervisor, error: BaseException) -> None:
        self.state = SessionState.FAILED
        self.last_error = str(error)
        logger.error(f"❌ [{self.name}] initialization failed: {error}")
        supervisor.terminate()
        self._reject_all(error if isinstance(error, BridgeError) else ProcessExitedError(self.name))

    # ------------------------------------------------------------------
    # Appels
    # ------------------------------------------------------------------

    async def send(self, message: dict[str, Any]) -> dict[str, Any]:
        """Envoie une requête et attend la frame portant le même `id`.

        Un id local est toujours attribué; l'id fourni par l'appelant (s'il
        existe) est restauré sur la réponse retournée.
        """
        supervisor = self.supervisor
        if self.state != SessionState.READY or supervisor is None:
            raise SessionNotReadyError(self.name, self.state.value)

        caller_has_id = "id" in message
        caller_id = message.get("id")
        method = str(message.get("method", ""))

        req_id = self.descriptor.next_id()
        outbound = dict(message)
        outbound["jsonrpc"] = "2.0"
        outbound["id"] = req_id

        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[req_id] = PendingCall(id=req_id, method=method, future=future)

        timeout_s = self.descriptor.call_timeout_s
        try:
            # drain() bloque si l'enfant ne lit plus stdin: l'écriture compte dans le délai
            response = await asyncio.wait_for(
                self._write_and_wait(supervisor, outbound, future),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ [{self.name}] no response to {method} (id={req_id}) after {timeout_s:g}s")
            raise CallTimeoutError(self.name, method, req_id, timeout_s) from None
        finally:
            self._pending.pop(req_id, None)

        if caller_has_id:
            response = dict(response)
            response["id"] = caller_id
        return response

    async def _write_and_wait(
        self,
        supervisor: ProcessSupervisor,
        outbound: dict[str, Any],
        future: asyncio.Future[dict[str, Any]],
    ) -> dict[str, Any]:
        await supervisor.write(outbound)
        return await future

    async def notify(self, message: dict[str, Any]) -> None:
        """Écrit une notification (pas d'id, pas de réponse attendue)."""
        supervisor = self.supervisor
        if self.state != SessionState.READY or supervisor is None:
            raise SessionNotReadyError(self.name, self.state.value)
        outbound = {k: v for k, v in message.items() if k != "id"}
        outbound["jsonrpc"] = "2.0"
        timeout_s = self.descriptor.call_timeout_s
        try:
            await asyncio.wait_for(supervisor.write(outbound), timeout=timeout_s)
        except asyncio.TimeoutError:
            raise CallTimeoutError(self.name, str(outbound.get("method", "")), None, timeout_s) from None

    # ------------------------------------------------------------------
    # Corrélation
    # ------------------------------------------------------------------

    def _on_frame(self, supervisor: ProcessSupervisor, frame: Any) -> None:
        if supervisor is not self.supervisor:
            return
        if isinstance(frame, list):
            for item in frame:
                self._on_frame(supervisor, item)
            return
        if not isinstance(frame, dict):
            logger.warning(f"[{self.name}] non-object frame dropped: {str(frame)[:200]}")
            return

        init_future = self._init_future
        if init_future is not None and not init_future.done():
            self._on_init_frame(init_future, frame)
            return

        if is_request(frame):
            # Requête/notification émise par l'enfant: inerte (pas de RPC bidirectionnel)
            logger.debug(f"[{self.name}] child-originated {frame.get('method')} ignored")
            return

        if "result" not in frame and "error" not in frame:
            logger.warning(f"[{self.name}] frame without result/error dropped: {str(frame)[:200]}")
            return

        frame_id = frame.get("id")
        if frame_id is None:
            logger.debug(f"[{self.name}] response without id dropped")
            return

        pending = self._pending.pop(frame_id, None) if isinstance(frame_id, (int, str)) else None
        if pending is None:
            logger.warning(f"[{self.name}] no pending call for id={frame_id!r} (late or duplicate), dropped")
            return
        if pending.future.done():
            return
        pending.future.set_result(frame)

    def _on_init_frame(self, init_future: asyncio.Future[dict[str, Any]], frame: dict[str, Any]) -> None:
        # Pendant l'init une seule requête est en vol: la première frame avec
        # `result` fait foi, quel que soit son id.
        if "result" in frame:
            init_future.set_result(frame)
        elif "error" in frame:
            init_future.set_exception(
                ProtocolError(self.name, "initialize returned an error", error=frame.get("error"))
            )
        else:
            logger.debug(f"[{self.name}] frame ignored during initialization: {str(frame)[:200]}")

    def _on_exit(self, supervisor: ProcessSupervisor, returncode: int | None) -> None:
        if supervisor is not self.supervisor:
            return
        error = ProcessExitedError(self.name, returncode)

        init_future = self._init_future
        if init_future is not None and not init_future.done():
            init_future.set_exception(error)

        if self.state == SessionState.READY:
            self.state = SessionState.TERMINATED
            self.last_error = str(error)
        self._reject_all(error)

    def _reject_all(self, error: BaseException) -> None:
        pending, self._pending = self._pending, {}
        for call in pending.values():
            if not call.future.done():
                call.future.set_exception(error)
        if pending:
            logger.warning(f"[{self.name}] rejected {len(pending)} pending call(s): {error}")

    # ------------------------------------------------------------------
    # Arrêt / statut
    # ------------------------------------------------------------------

    def _discard_supervisor(self) -> None:
        supervisor, self.supervisor = self.supervisor, None
        if supervisor is not None:
            supervisor.terminate()

    def terminate(self) -> None:
        """Demande synchrone de terminaison de l'enfant (best-effort)."""
        if self.supervisor is not None:
            self.supervisor.terminate()

    async def close(self) -> None:
        supervisor = self.supervisor
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        self._reject_all(ProcessExitedError(self.name, reason="session closed"))
        if self.state in (SessionState.READY, SessionState.INITIALIZING):
            self.state = SessionState.TERMINATED
        if supervisor is not None:
            await supervisor.aclose()

    def snapshot(self) -> dict[str, Any]:
        supervisor = self.supervisor
        return {
            "state": self.state.value,
            "ready": self.ready,
            "running": self.running,
            "pid": supervisor.pid if supervisor is not None and supervisor.running else None,
            "pending": self.pending_count,
            "spawns": self.spawn_count,
            "last_error": self.last_error,
        }
