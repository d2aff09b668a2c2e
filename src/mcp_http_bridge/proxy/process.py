"""mcp_http_bridge.proxy.process

Supervision d'un processus enfant MCP stdio.

Couche Proxy:
- Contient l'I/O processus (asyncio.create_subprocess_exec)
- stdout passe par un FrameDecoder, stderr part vers le logger (jamais mélangé
  aux frames protocolaires)

Important:
- L'événement "exited" n'est émis qu'après EOF sur stdout: toutes les frames
  écrites par l'enfant avant sa mort sont livrées avant la notification de fin.
- Après la sortie, l'état est terminal: le registre jette l'instance et en crée
  une neuve au prochain appel.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Callable

from ..core.constants import (
    DEFAULT_MAX_FRAME_BYTES,
    PROCESS_TERMINATE_GRACE_S,
    STDOUT_READ_CHUNK_BYTES,
)
from ..core.exceptions import ProcessExitedError, SpawnError
from ..core.models import ProcessState, SpawnSpec
from ..features.framing import FrameDecoder

logger = logging.getLogger(__name__)

ExitCallback = Callable[[int | None], None]


class ProcessSupervisor:
    """Possède le cycle de vie d'un processus enfant (spawn, flux, sortie)."""

    def __init__(
        self,
        name: str,
        spawn_spec: SpawnSpec,
        *,
        max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES,
        read_chunk_bytes: int = STDOUT_READ_CHUNK_BYTES,
    ):
        self.name = name
        self.spawn_spec = spawn_spec
        self.read_chunk_bytes = read_chunk_bytes
        self.decoder = FrameDecoder(label=f"{name}:stdout", max_frame_bytes=max_frame_bytes)
        self.state = ProcessState.NOT_STARTED
        self.returncode: int | None = None

        self._proc: asyncio.subprocess.Process | None = None
        self._start_lock = asyncio.Lock()
        self._exit_callbacks: list[ExitCallback] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._exited = asyncio.Event()

    # ------------------------------------------------------------------
    # Propriétés
    # ------------------------------------------------------------------

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def running(self) -> bool:
        return self.state == ProcessState.RUNNING

    @property
    def terminated(self) -> bool:
        return self.state == ProcessState.TERMINATED

    # ------------------------------------------------------------------
    # Abonnements
    # ------------------------------------------------------------------

    def subscribe_frames(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        return self.decoder.subscribe(callback)

    def subscribe_exit(self, callback: ExitCallback) -> Callable[[], None]:
        self._exit_callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._exit_callbacks:
                self._exit_callbacks.remove(callback)

        return _unsubscribe

    async def wait(self) -> int | None:
        """Attend la fin du processus (après livraison de toutes les frames)."""
        await self._exited.wait()
        return self.returncode

    # ------------------------------------------------------------------
    # Cycle de vie
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Lance le processus. Idempotent: ne fait rien s'il a déjà démarré."""
        async with self._start_lock:
            if self.state != ProcessState.NOT_STARTED:
                return

            self.state = ProcessState.STARTING
            spec = self.spawn_spec
            env = dict(os.environ)
            env.update(spec.env)

            logger.info(f"🚀 [{self.name}] starting MCP server: {' '.join(spec.argv)}")
            try:
                self._proc = await asyncio.create_subprocess_exec(
                    spec.command,
                    *spec.args,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=env,
                    cwd=spec.cwd,
                )
            except OSError as e:
                self.state = ProcessState.TERMINATED
                self._exited.set()
                logger.error(f"❌ [{self.name}] spawn failed: {e}")
                raise SpawnError(self.name, spec.command, str(e)) from e

            self.state = ProcessState.RUNNING
            stdout_task = asyncio.create_task(self._pump_stdout())
            stderr_task = asyncio.create_task(self._pump_stderr())
            self._tasks = [
                stdout_task,
                stderr_task,
                asyncio.create_task(self._watch_exit(stdout_task)),
            ]

    async def write(self, message: dict[str, Any]) -> None:
        """Écrit un message JSON-RPC (une ligne JSON + `\\n`) sur stdin."""
        if not self.running or self._proc is None or self._proc.stdin is None:
            raise ProcessExitedError(self.name, self.returncode, reason="not running")

        data = (json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8")
        try:
            self._proc.stdin.write(data)
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise ProcessExitedError(self.name, self.returncode, reason=f"stdin closed: {e}") from e

    def terminate(self) -> None:
        """Demande la terminaison (best-effort, n'attend pas la sortie)."""
        if self._proc is None or self._proc.returncode is not None:
            return
        try:
            self._proc.terminate()
            logger.info(f"🛑 [{self.name}] terminate requested (pid={self._proc.pid})")
        except ProcessLookupError:
            pass

    async def aclose(self, timeout_s: float = PROCESS_TERMINATE_GRACE_S) -> None:
        """Termine le processus et attend sa sortie; SIGKILL au-delà du délai."""
        if self._proc is None:
            return
        self.terminate()
        try:
            await asyncio.wait_for(self._proc.wait(), timeout=timeout_s)
        except asyncio.TimeoutError:
            try:
                self._proc.kill()
            except ProcessLookupError:
                pass
            await self._proc.wait()
        # Laisse les pompes se vider (EOF).
        await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Pompes internes
    # ------------------------------------------------------------------

    async def _pump_stdout(self) -> None:
        assert self._proc is not None and self._proc.stdout is not None
        stream = self._proc.stdout
        while True:
            chunk = await stream.read(self.read_chunk_bytes)
            if not chunk:
                self.decoder.flush()
                return
            self.decoder.feed(chunk)

    async def _pump_stderr(self) -> None:
        assert self._proc is not None and self._proc.stderr is not None
        stream = self._proc.stderr
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                # Ligne stderr plus longue que la limite du StreamReader
                line = await stream.read(self.read_chunk_bytes)
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.info(f"[{self.name}:stderr] {text}")

    async def _watch_exit(self, stdout_task: asyncio.Task[None]) -> None:
        assert self._proc is not None
        try:
            await stdout_task
        except Exception:
            logger.exception(f"[{self.name}] stdout pump crashed")
        returncode = await self._proc.wait()

        self.returncode = returncode
        self.state = ProcessState.TERMINATED
        self._exited.set()
        log = logger.info if returncode == 0 else logger.warning
        log(f"[{self.name}] MCP server exited with code {returncode}")

        for callback in list(self._exit_callbacks):
            try:
                callback(returncode)
            except Exception:
                logger.exception(f"[{self.name}] exit subscriber failed")
