"""The five-tuple that identifies a client/server stream and its allocation."""

from __future__ import annotations

import enum
from dataclasses import dataclass

Address = tuple[str, int]


class Protocol(enum.IntEnum):
    """Transport protocol of a five-tuple (IANA protocol numbers)."""

    TCP = 6
    UDP = 17

    def __str__(self) -> str:
        return self.name


def _format_addr(addr: Address) -> str:
    host, port = addr
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class FiveTuple:
    """Client address, server address and transport protocol of a stream."""

    protocol: Protocol = Protocol.UDP
    src_addr: Address = ("0.0.0.0", 0)
    dst_addr: Address = ("0.0.0.0", 0)

    def __str__(self) -> str:
        return (
            f"{str(self.protocol)}_{_format_addr(self.src_addr)}"
            f"_{_format_addr(self.dst_addr)}"
        )

    def fingerprint(self) -> str:
        """Return the string identity of this five-tuple."""
        return str(self)