"""Per-peer connection status lines for concurrent connect attempts."""

from __future__ import annotations

import threading
from typing import Optional, Sequence, TextIO

from .peer import PeerIdentity

CONNECTING = "connecting"
CONNECTED = "connected"
FAILED = "failed"


class StatusBoard:
    """
    One status line per peer, addressed by the peer's index.

    Lines are printed top-to-bottom by ``begin``; the cursor then rests below
    the last line. With ANSI enabled an update moves the cursor up to its
    line, rewrites it and moves back down. Without ANSI every update is
    appended as a whole new line. Either way a lock serializes updates so
    two peers never interleave within one write.

    Without a stream the board only records states.
    """

    def __init__(self, stream: Optional[TextIO] = None, ansi: Optional[bool] = None):
        self.stream = stream
        if ansi is None:
            isatty = getattr(stream, "isatty", None)
            ansi = bool(isatty and isatty())
        self.ansi = ansi
        self._lock = threading.Lock()
        self._peers: list[PeerIdentity] = []
        self._states: list[str] = []
        self._details: list[Optional[str]] = []

    def begin(self, peers: Sequence[PeerIdentity]) -> None:
        with self._lock:
            self._peers = list(peers)
            self._states = [CONNECTING] * len(self._peers)
            self._details = [None] * len(self._peers)
            if self.stream is not None and self._peers:
                self.stream.write("".join(f"{p}: Connecting...\n" for p in self._peers))
                self.stream.flush()

    def connecting(self, index: int) -> None:
        self._update(index, CONNECTING, None, "Connecting...")

    def succeeded(self, index: int) -> None:
        self._update(index, CONNECTED, None, "OK")

    def failed(self, index: int, reason: str) -> None:
        self._update(index, FAILED, reason, f"FAILED ({reason})")

    def state(self, index: int) -> str:
        with self._lock:
            return self._states[index]

    def detail(self, index: int) -> Optional[str]:
        with self._lock:
            return self._details[index]

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self._states)

    def _update(self, index: int, state: str, detail: Optional[str], text: str) -> None:
        with self._lock:
            self._states[index] = state
            self._details[index] = detail
            if self.stream is None:
                return
            line = f"{self._peers[index]}: {text}"
            if self.ansi:
                lines_up = len(self._peers) - index
                self.stream.write(f"\x1b[{lines_up}A\r{line}\x1b[K\x1b[{lines_up}B\r")
            else:
                self.stream.write(line + "\n")
            self.stream.flush()


__all__ = ["CONNECTED", "CONNECTING", "FAILED", "StatusBoard"]
