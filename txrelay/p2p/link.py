"""Per-peer connection handles used by the relay."""

from __future__ import annotations

import abc
import asyncio
from typing import Optional

import websockets
from nacl.exceptions import CryptoError
from nacl.public import PrivateKey
from python_socks.async_.asyncio import Proxy

from . import wire
from .peer import PeerIdentity

CONNECT_TIMEOUT_S = 10.0


class LinkError(Exception):
    """Transport level failure on a single peer link."""


class PeerLink(abc.ABC):
    """
    Owns exactly one connection to one peer.

    Subclasses provide the transport (``_open``, ``_send``, ``_release``) and
    feed reject notifications back through ``_on_reject``. Reject matching
    is armed per transaction by ``send_tx`` so a late reject for an earlier
    transaction never answers a later wait.
    """

    def __init__(self, peer: PeerIdentity):
        self.peer = peer
        self.connected = False
        self._rejects: asyncio.Queue[str] = asyncio.Queue()
        self._armed_tx: Optional[str] = None

    # ------------------------------------------------------------------
    # Transport hooks

    @abc.abstractmethod
    async def _open(self) -> None:
        """Establish the connection, releasing anything acquired on failure."""

    @abc.abstractmethod
    async def _send(self, tx: bytes) -> None:
        """Write one transaction to the peer."""

    @abc.abstractmethod
    async def _release(self) -> None:
        """Free the transport. Must tolerate being called more than once."""

    # ------------------------------------------------------------------
    # Link API

    async def connect(self) -> None:
        if self.connected:
            raise LinkError(f"{self.peer} is already connected")
        try:
            await self._open()
        except LinkError:
            raise
        except Exception as exc:
            raise LinkError(str(exc) or type(exc).__name__) from exc
        self.connected = True

    async def send_tx(self, tx: bytes) -> None:
        if not self.connected:
            raise LinkError(f"{self.peer} is not connected")
        self._arm(wire.tx_id(tx))
        try:
            await self._send(tx)
        except LinkError:
            raise
        except Exception as exc:
            raise LinkError(str(exc) or type(exc).__name__) from exc

    async def wait_for_reject(self, timeout_ms: int) -> Optional[str]:
        """Return the reject reason for the last sent tx, or ``None`` on timeout."""

        try:
            return await asyncio.wait_for(self._rejects.get(), timeout_ms / 1000)
        except asyncio.TimeoutError:
            return None

    async def close(self) -> None:
        self.connected = False
        await self._release()

    # ------------------------------------------------------------------
    # Reject routing

    def _arm(self, tid: str) -> None:
        self._armed_tx = tid
        while not self._rejects.empty():
            self._rejects.get_nowait()

    def _on_reject(self, tid: str, reason: str) -> None:
        if tid == self._armed_tx:
            self._rejects.put_nowait(reason)

    def __repr__(self) -> str:
        state = "connected" if self.connected else "disconnected"
        return f"<{type(self).__name__} {self.peer} {state}>"


class WebSocketPeerLink(PeerLink):
    """
    Client side of the encrypted ``/p2p`` WebSocket channel.

    The handshake mirrors the receiving node: plaintext hello frames carry
    ephemeral public keys, everything after is boxed. Set ``proxy`` (for
    example ``socks5://127.0.0.1:9050``) to tunnel through Tor.
    """

    def __init__(
        self,
        peer: PeerIdentity,
        *,
        proxy: Optional[str] = None,
        connect_timeout: float = CONNECT_TIMEOUT_S,
    ):
        super().__init__(peer)
        self.proxy = proxy
        self.connect_timeout = connect_timeout
        self.peer_id: Optional[str] = None
        self._ws = None
        self._cipher: Optional[wire.Cipher] = None
        self._reader: Optional[asyncio.Task] = None

    async def _open(self) -> None:
        try:
            await asyncio.wait_for(self._handshake(), self.connect_timeout)
        except BaseException:
            await self._release()
            raise

    async def _handshake(self) -> None:
        connect_kwargs = {}
        if self.proxy:
            proxy = Proxy.from_url(self.proxy)
            sock = await proxy.connect(dest_host=self.peer.host, dest_port=self.peer.port)
            connect_kwargs["sock"] = sock

        self._ws = await websockets.connect(self.peer.url + "/p2p", max_size=None, **connect_kwargs)

        # Hello (client -> server), then the server key
        sk = PrivateKey.generate()
        await self._ws.send(wire.encode_frame(wire.hello_frame(sk)))
        remote_pk = wire.read_hello(wire.decode_frame(await self._ws.recv()))
        self._cipher = wire.Cipher(sk, remote_pk)
        self.peer_id = wire.peer_fingerprint(remote_pk)
        self._reader = asyncio.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        try:
            async for data in self._ws:
                try:
                    inner = wire.unseal(self._cipher, wire.decode_frame(data))
                except (CryptoError, ValueError):
                    # Drop malformed/unauthenticated frames
                    continue
                if inner and inner.get("msg") == "reject":
                    self._on_reject(str(inner.get("tx_id")), str(inner.get("reason", "")))
        except websockets.ConnectionClosed:
            pass
        finally:
            self.connected = False

    async def _send(self, tx: bytes) -> None:
        frame = wire.seal(self._cipher, wire.tx_message(tx))
        await self._ws.send(wire.encode_frame(frame))

    async def _release(self) -> None:
        reader, self._reader = self._reader, None
        if reader is not None:
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception:
                pass


__all__ = ["CONNECT_TIMEOUT_S", "LinkError", "PeerLink", "WebSocketPeerLink"]
