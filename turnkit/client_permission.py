"""Client-side permission states, keyed by peer IP address."""

from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass

from turnkit.five_tuple import Address


class PermState(enum.IntEnum):
    IDLE = 0
    PERMITTED = 1


@dataclass
class Permission:
    """Permission state for one peer IP address."""

    state: PermState = PermState.IDLE


def _ip_key(addr: Address) -> str:
    host = addr[0]
    try:
        return str(ipaddress.ip_address(host))
    except ValueError:
        return host


class PermissionMap:
    """Permissions indexed by the IP part of a peer address."""

    def __init__(self) -> None:
        self._perm_map: dict[str, Permission] = {}

    def insert(self, addr: Address, permission: Permission) -> None:
        self._perm_map[_ip_key(addr)] = permission

    def find(self, addr: Address) -> Permission | None:
        return self._perm_map.get(_ip_key(addr))

    def delete(self, addr: Address) -> None:
        self._perm_map.pop(_ip_key(addr), None)

    def addrs(self) -> list[Address]:
        """Return every permitted IP address with port 0."""
        result = []
        for key in self._perm_map:
            try:
                ipaddress.ip_address(key)
            except ValueError:
                continue
            result.append((key, 0))
        return result