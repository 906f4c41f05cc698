"""Broadcast a raw transaction to a list of peers."""

import argparse
import asyncio
import os
import sys
from functools import partial
from typing import List, Optional

from pydantic import ValidationError

from .p2p.link import CONNECT_TIMEOUT_S, WebSocketPeerLink
from .p2p.peer import parse_peer_list
from .p2p.relay import BroadcastOptions, Relay, TimingStrategy
from .p2p.report import print_broadcast_report
from .p2p.status import StatusBoard

STRATEGIES = {
    "simultaneous": TimingStrategy.SIMULTANEOUS,
    "staggered": TimingStrategy.STAGGERED_RANDOM,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Broadcast a signed transaction to a set of peers.")
    parser.add_argument("tx_hex", help="Raw transaction, hex encoded.")
    parser.add_argument(
        "--peers",
        default=os.getenv("PEERS", ""),
        help="Comma separated host:port list (default: $PEERS).",
    )
    parser.add_argument("--strategy", choices=sorted(STRATEGIES), default="simultaneous")
    parser.add_argument("--min-delay", type=int, default=100, help="Minimum stagger delay in ms.")
    parser.add_argument("--max-delay", type=int, default=5000, help="Maximum stagger delay in ms.")
    parser.add_argument(
        "--proxy",
        default=os.getenv("PROXY"),
        help="SOCKS proxy URL, e.g. socks5://127.0.0.1:9050 (default: $PROXY).",
    )
    parser.add_argument("--connect-timeout", type=float, default=CONNECT_TIMEOUT_S)
    return parser


async def run(relay: Relay, tx: bytes, options: BroadcastOptions) -> int:
    async with relay:
        connected = await relay.connect_all()
        print(f"Connected to {connected}/{relay.peer_count} peers")
        if connected == 0:
            print("No peers connected; nothing sent.")
            return 1
        result = await relay.broadcast(tx, options)
    print_broadcast_report(result)
    return 0 if result.accepted_count > 0 else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        tx = bytes.fromhex(args.tx_hex)
    except ValueError:
        print("Error: transaction must be hex encoded")
        return 2

    try:
        peers = parse_peer_list(args.peers)
    except ValueError as e:
        print(f"Error parsing peers: {e}")
        return 2
    if not peers:
        print("Error: no peers given (use --peers or set PEERS)")
        return 2

    try:
        options = BroadcastOptions(
            strategy=STRATEGIES[args.strategy],
            min_delay_ms=args.min_delay,
            max_delay_ms=args.max_delay,
        )
    except ValidationError as e:
        print(f"Error: invalid broadcast options: {e}")
        return 2

    if not args.proxy:
        print("[p2p] WARNING: No PROXY configured. IP addresses may be leaked. Set PROXY=socks5://127.0.0.1:9050 for Tor.")

    link_factory = partial(WebSocketPeerLink, proxy=args.proxy, connect_timeout=args.connect_timeout)
    relay = Relay(peers, link_factory=link_factory, status=StatusBoard(sys.stderr))
    return asyncio.run(run(relay, tx, options))


if __name__ == "__main__":
    sys.exit(main())
