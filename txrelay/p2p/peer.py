"""Addresses of remote peers."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_PORT = 9000


@dataclass(frozen=True)
class PeerIdentity:
    """Network address of a remote node."""

    host: str
    port: int = DEFAULT_PORT

    def format(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    @property
    def url(self) -> str:
        return f"ws://{self.format()}"

    @classmethod
    def parse(cls, text: str, default_port: int = DEFAULT_PORT) -> "PeerIdentity":
        """Parse ``host``, ``host:port``, ``[v6]`` or ``[v6]:port``."""

        text = text.strip()
        port_text: str | None = None
        if text.startswith("["):
            host, sep, rest = text[1:].partition("]")
            if not sep:
                raise ValueError(f"Unterminated IPv6 address: {text!r}")
            if rest:
                if not rest.startswith(":"):
                    raise ValueError(f"Unexpected text after address: {text!r}")
                port_text = rest[1:]
        elif text.count(":") == 1:
            host, port_text = text.split(":")
        else:
            # bare hostname, IPv4 or unbracketed IPv6
            host = text

        if not host:
            raise ValueError(f"Peer address has no host: {text!r}")
        if port_text is None:
            return cls(host, default_port)
        if not port_text.isdigit():
            raise ValueError(f"Invalid port in {text!r}")
        port = int(port_text)
        if not 1 <= port <= 65535:
            raise ValueError(f"Port out of range in {text!r}")
        return cls(host, port)

    def __str__(self) -> str:
        return self.format()


def parse_peer_list(value: str, default_port: int = DEFAULT_PORT) -> list[PeerIdentity]:
    """Parse a comma separated peer list, keeping order and duplicates."""

    return [
        PeerIdentity.parse(item, default_port)
        for item in value.split(",")
        if item.strip()
    ]


__all__ = ["DEFAULT_PORT", "PeerIdentity", "parse_peer_list"]
