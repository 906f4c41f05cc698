import asyncio
import time
from dataclasses import dataclass
from typing import Optional

import pytest

from txrelay.p2p import relay as relay_module
from txrelay.p2p import wire
from txrelay.p2p.link import PeerLink
from txrelay.p2p.peer import PeerIdentity


@dataclass
class PeerScript:
    """How a simulated peer behaves."""
    connect_ok: bool = True
    connect_delay: float = 0.0
    send_ok: bool = True
    reject: Optional[str] = None
    reject_after_ms: int = 0


class FakePeerLink(PeerLink):
    """In-memory link driven by a PeerScript."""

    def __init__(self, peer: PeerIdentity, script: PeerScript):
        super().__init__(peer)
        self.script = script
        self.connect_calls = 0
        self.sent: list[bytes] = []
        self.send_times: list[float] = []
        self.closed = False

    async def _open(self) -> None:
        self.connect_calls += 1
        if self.script.connect_delay:
            await asyncio.sleep(self.script.connect_delay)
        if not self.script.connect_ok:
            raise ConnectionRefusedError("connection refused")

    async def _send(self, tx: bytes) -> None:
        if not self.script.send_ok:
            raise ConnectionResetError("broken pipe")
        self.sent.append(tx)
        self.send_times.append(time.monotonic())
        if self.script.reject is not None:
            asyncio.get_running_loop().call_later(
                self.script.reject_after_ms / 1000,
                self._on_reject,
                wire.tx_id(tx),
                self.script.reject,
            )

    async def _release(self) -> None:
        self.closed = True


class FakeNetwork:
    """Link factory; scripts are looked up by peer host."""

    def __init__(self, **scripts: PeerScript):
        self.scripts = scripts
        self.links: list[FakePeerLink] = []

    def link(self, peer: PeerIdentity) -> FakePeerLink:
        link = FakePeerLink(peer, self.scripts.get(peer.host, PeerScript()))
        self.links.append(link)
        return link


def make_peers(*hosts: str) -> list[PeerIdentity]:
    return [PeerIdentity(host, 9000 + i) for i, host in enumerate(hosts)]


@pytest.fixture
def short_reject_window(monkeypatch):
    """Shrink the reject wait so silent peers accept quickly."""
    monkeypatch.setattr(relay_module, "REJECT_TIMEOUT_MS", 50)
    return 50
