"""Transaction broadcast to a fixed set of peers.

The relay connects to every peer concurrently, then sends the transaction
to one peer at a time. Sending is sequential on purpose: under the
``staggered_random`` strategy the gap between sends is what decorrelates
the broadcaster from the transaction.

A peer that does not answer with a reject frame inside
``REJECT_TIMEOUT_MS`` is counted as having accepted. That is a heuristic:
a slow rejecter looks exactly like a silent acceptor.
"""

from __future__ import annotations

import asyncio
import random
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .link import PeerLink, WebSocketPeerLink
from .peer import PeerIdentity
from .status import StatusBoard

REJECT_TIMEOUT_MS = 1000


class TimingStrategy(str, Enum):
    # back-to-back sends, fastest propagation
    SIMULTANEOUS = "simultaneous"
    # random gap before every send after the first
    STAGGERED_RANDOM = "staggered_random"


class BroadcastOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: TimingStrategy = TimingStrategy.SIMULTANEOUS
    min_delay_ms: int = Field(default=100, ge=0, description="Lower bound of the inter-send delay")
    max_delay_ms: int = Field(default=5000, ge=0, description="Upper bound of the inter-send delay")

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> "BroadcastOptions":
        if self.min_delay_ms > self.max_delay_ms:
            raise ValueError("min_delay_ms must not exceed max_delay_ms")
        return self


class Outcome(str, Enum):
    NOT_ATTEMPTED = "not_attempted"
    SEND_FAILED = "send_failed"
    REJECTED = "rejected"
    ACCEPTED = "accepted"


@dataclass(frozen=True)
class BroadcastReport:
    """Outcome of sending to one peer."""

    peer: PeerIdentity
    outcome: Outcome
    elapsed_ms: int
    reason: Optional[str] = None

    def __post_init__(self):
        if (self.outcome is Outcome.REJECTED) != (self.reason is not None):
            raise ValueError("A reject reason is carried by rejected reports only")

    @property
    def status(self) -> str:
        if self.outcome is Outcome.ACCEPTED:
            return "SUCCESS"
        if self.outcome is Outcome.REJECTED:
            return "REJECTED"
        return "FAILED"


@dataclass(frozen=True)
class BroadcastResult:
    """All reports of one broadcast call, in peer order."""

    reports: tuple[BroadcastReport, ...]
    accepted_count: int
    rejected_count: int

    @property
    def failed_count(self) -> int:
        return len(self.reports) - self.accepted_count - self.rejected_count

    def __len__(self) -> int:
        return len(self.reports)

    def __iter__(self) -> Iterator[BroadcastReport]:
        return iter(self.reports)


async def _sleep_ms(delay_ms: int) -> None:
    await asyncio.sleep(delay_ms / 1000)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class Relay:
    """
    Owns one :class:`PeerLink` per configured peer for its whole lifetime.

    Usage::

        async with Relay(peers) as relay:
            await relay.connect_all()
            result = await relay.broadcast(tx_bytes, BroadcastOptions())
    """

    def __init__(
        self,
        peers: Sequence[PeerIdentity],
        *,
        link_factory: Callable[[PeerIdentity], PeerLink] = WebSocketPeerLink,
        status: Optional[StatusBoard] = None,
    ):
        # Links are unconnected here, so a factory failure part way through
        # leaves nothing holding a transport.
        self._links: list[PeerLink] = [link_factory(peer) for peer in peers]
        self.status = status if status is not None else StatusBoard()
        self._closed = False
        self._connect_started = False

    @property
    def peers(self) -> list[PeerIdentity]:
        return [link.peer for link in self._links]

    @property
    def peer_count(self) -> int:
        return len(self._links)

    @property
    def connected_count(self) -> int:
        return sum(1 for link in self._links if link.connected)

    # ------------------------------------------------------------------
    # Connect

    async def connect_all(self) -> int:
        """Connect every link concurrently and return how many are connected."""

        n = len(self._links)
        if n == 0:
            return 0
        # Each link gets one connection attempt per relay lifetime
        if self._connect_started:
            return self.connected_count
        self._connect_started = True

        self.status.begin(self.peers)

        tasks: list[asyncio.Task] = []
        for i, link in enumerate(self._links):
            coro = self._connect_one(i, link)
            try:
                tasks.append(asyncio.create_task(coro))
            except (RuntimeError, MemoryError) as exc:
                coro.close()
                print(f"[relay] Cannot spawn connect tasks ({exc}); connecting sequentially")
                break

        await asyncio.gather(*tasks)
        # Links that never got a task are tried one at a time
        for i in range(len(tasks), n):
            await self._connect_one(i, self._links[i])

        return self.connected_count

    async def _connect_one(self, index: int, link: PeerLink) -> None:
        try:
            await link.connect()
        except Exception as exc:
            self.status.failed(index, str(exc) or type(exc).__name__)
            return
        self.status.succeeded(index)

    # ------------------------------------------------------------------
    # Broadcast

    async def broadcast(
        self, tx: bytes, options: Optional[BroadcastOptions] = None
    ) -> BroadcastResult:
        """Send ``tx`` to every peer in order and collect one report each."""

        if not isinstance(tx, (bytes, bytearray, memoryview)):
            raise TypeError("Transaction must be bytes")
        tx = bytes(tx)
        if options is None:
            options = BroadcastOptions()

        # Fresh seed per call so delays are not predictable across broadcasts
        rng = random.Random(secrets.randbits(64))

        reports: list[BroadcastReport] = []
        accepted = 0
        rejected = 0
        for i, link in enumerate(self._links):
            if options.strategy == TimingStrategy.STAGGERED_RANDOM and i > 0:
                await _sleep_ms(rng.randint(options.min_delay_ms, options.max_delay_ms))

            start = time.monotonic()

            if not link.connected:
                reports.append(
                    BroadcastReport(link.peer, Outcome.NOT_ATTEMPTED, _elapsed_ms(start))
                )
                continue

            try:
                await link.send_tx(tx)
            except Exception as exc:
                print(f"[relay] Failed to send tx to {link.peer}: {exc}")
                reports.append(
                    BroadcastReport(link.peer, Outcome.SEND_FAILED, _elapsed_ms(start))
                )
                continue

            try:
                reason = await link.wait_for_reject(REJECT_TIMEOUT_MS)
            except Exception as exc:
                print(f"[relay] Lost reject channel for {link.peer}: {exc}")
                reason = None

            if reason is not None:
                rejected += 1
                report = BroadcastReport(link.peer, Outcome.REJECTED, _elapsed_ms(start), reason)
            else:
                accepted += 1
                report = BroadcastReport(link.peer, Outcome.ACCEPTED, _elapsed_ms(start))
            reports.append(report)

        return BroadcastResult(tuple(reports), accepted, rejected)

    # ------------------------------------------------------------------
    # Teardown

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for link in self._links:
            try:
                await link.close()
            except Exception as exc:
                print(f"[relay] Error closing link to {link.peer}: {exc}")

    async def __aenter__(self) -> "Relay":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


__all__ = [
    "BroadcastOptions",
    "BroadcastReport",
    "BroadcastResult",
    "Outcome",
    "REJECT_TIMEOUT_MS",
    "Relay",
    "TimingStrategy",
]
