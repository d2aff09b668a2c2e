"""mcp_http_bridge.features.framing

Décodeur incrémental de frames JSON sur un flux texte/bytes.

Ce module est **sans I/O**: il consomme des chunks arbitraires (non alignés sur
les frontières de messages) et produit les valeurs JSON décodées, dans l'ordre
d'arrivée.

Règle de filtrage (importante):
- Une ligne n'est candidate au décodage que si elle commence par `{` ou `[`
  après strip. Toute autre ligne est une sortie de diagnostic de l'enfant
  (ex: "[XERO MCP] Starting server...") partageant le même flux, et est ignorée.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, Callable, Iterable, Iterator

from ..core.constants import DEFAULT_MAX_FRAME_BYTES
from ..core.exceptions import MalformedFrameError

logger = logging.getLogger(__name__)

FrameCallback = Callable[[Any], None]


def is_candidate_frame(line: str) -> bool:
    return line.startswith(("{", "["))


class FrameDecoder:
    """Découpe un flux en lignes et décode chaque ligne candidate en JSON.

    Le buffer de report (`carry-over`) est privé à une instance: une instance
    par flux. `feed()` retourne les frames décodées et les diffuse aussi aux
    abonnés (`subscribe`).
    """

    def __init__(self, *, label: str = "stream", max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES):
        self.label = label
        self.max_frame_bytes = max(1, int(max_frame_bytes))
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        # Vrai quand on jette la fin d'une ligne trop longue jusqu'au prochain \n
        self._discarding = False
        self._subscribers: list[FrameCallback] = []

        self.frames_emitted = 0
        self.lines_discarded = 0
        self.malformed_frames = 0

    @property
    def pending(self) -> str:
        """Segment incomplet en attente de son `\\n`."""
        return self._buffer

    def subscribe(self, callback: FrameCallback) -> Callable[[], None]:
        """Abonne `callback` aux frames décodées; retourne la fonction de désabonnement."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def feed(self, chunk: str | bytes) -> list[Any]:
        """Ajoute un chunk au buffer et retourne les frames complètes décodées."""
        if isinstance(chunk, (bytes, bytearray)):
            text = self._utf8.decode(bytes(chunk))
        else:
            text = chunk
        if not text:
            return []

        if self._discarding:
            newline = text.find("\n")
            if newline < 0:
                return []
            text = text[newline + 1:]
            self._discarding = False

        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")

        frames: list[Any] = []
        for line in lines:
            frame = self._decode_line(line)
            if frame is not None:
                frames.append(frame)

        if len(self._buffer) > self.max_frame_bytes:
            self._report(
                MalformedFrameError(
                    f"{self.label}: frame exceeds {self.max_frame_bytes} bytes without newline, dropped",
                    preview=self._buffer,
                )
            )
            self._buffer = ""
            self._discarding = True

        for frame in frames:
            self._emit(frame)
        return frames

    def flush(self) -> list[Any]:
        """Fin de flux: décode le dernier segment s'il forme une valeur JSON complète."""
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        discarding = self._discarding
        self._discarding = False
        if discarding or not tail.strip():
            return []

        frame = self._decode_line(tail)
        if frame is None:
            return []
        self._emit(frame)
        return [frame]

    def reset(self) -> None:
        self._buffer = ""
        self._discarding = False
        self._utf8.reset()

    def _decode_line(self, raw_line: str) -> Any | None:
        line = raw_line.strip()
        if not line:
            return None

        if not is_candidate_frame(line):
            self.lines_discarded += 1
            logger.debug(f"[{self.label}] non-JSON line ignored: {line[:200]}")
            return None

        try:
            return json.loads(line)
        except json.JSONDecodeError as e:
            self._report(MalformedFrameError(f"{self.label}: invalid JSON frame ({e})", preview=line))
            return None

    def _report(self, error: MalformedFrameError) -> None:
        self.malformed_frames += 1
        logger.warning(str(error))

    def _emit(self, frame: Any) -> None:
        self.frames_emitted += 1
        for callback in list(self._subscribers):
            try:
                callback(frame)
            except Exception:
                logger.exception(f"[{self.label}] frame subscriber failed")


def iter_frames(
    chunks: Iterable[str | bytes],
    *,
    label: str = "stream",
    max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES,
) -> Iterator[Any]:
    """Séquence paresseuse des frames décodées à partir d'un itérable de chunks."""
    decoder = FrameDecoder(label=label, max_frame_bytes=max_frame_bytes)
    for chunk in chunks:
        yield from decoder.feed(chunk)
    yield from decoder.flush()
