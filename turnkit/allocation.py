"""Server-side TURN allocations that relay peer traffic back to the client."""

from __future__ import annotations

import asyncio
import inspect
import ipaddress
import logging
import os
import struct
from typing import Any, Optional, Protocol as TypingProtocol

from turnkit.channel_bind import ChannelBind
from turnkit.five_tuple import Address, FiveTuple, Protocol
from turnkit.permission import (
    PERMISSION_TIMEOUT,
    Permission,
    _ip_fingerprint,
    _LifetimeTimer,
)

log = logging.getLogger(__name__)

RTP_MTU = 1500

_MAGIC_COOKIE = 0x2112A442
_DATA_INDICATION_TYPE = 0x0017  # method Data (0x007), class indication
_ATTR_XOR_PEER_ADDRESS = 0x0012
_ATTR_DATA = 0x0013


class AllocationError(Exception):
    """An allocation operation could not be carried out."""


class _PacketConn(TypingProtocol):
    async def send_to(self, data: bytes, addr: Address) -> int: ...

    async def recv_from(self, size: int) -> tuple[bytes, Address]: ...

    def close(self) -> Any: ...


async def _maybe_await(value: Any) -> None:
    if inspect.isawaitable(value):
        await value


def _padding(length: int) -> bytes:
    return b"\x00" * (-length % 4)


def _encode_channel_data(number: int, data: bytes) -> bytes:
    """Frame ``data`` as a TURN ChannelData message, padded to 4 bytes."""
    raw = struct.pack("!HH", number, len(data)) + data
    return raw + _padding(len(raw))


def _stun_attribute(attr_type: int, value: bytes) -> bytes:
    return struct.pack("!HH", attr_type, len(value)) + value + _padding(len(value))


def _build_data_indication(peer: Address, data: bytes) -> bytes:
    """Build a STUN Data indication carrying XOR-PEER-ADDRESS and DATA."""
    transaction_id = os.urandom(12)
    ip = ipaddress.ip_address(peer[0])
    cookie = _MAGIC_COOKIE.to_bytes(4, "big")
    key = cookie if ip.version == 4 else cookie + transaction_id
    xor_ip = bytes(a ^ b for a, b in zip(ip.packed, key))
    family = 0x01 if ip.version == 4 else 0x02
    peer_value = struct.pack("!BBH", 0, family, peer[1] ^ (_MAGIC_COOKIE >> 16)) + xor_ip
    body = _stun_attribute(_ATTR_XOR_PEER_ADDRESS, peer_value) + _stun_attribute(
        _ATTR_DATA, data
    )
    header = struct.pack("!HHI", _DATA_INDICATION_TYPE, len(body), _MAGIC_COOKIE)
    return header + transaction_id + body


class Allocation:
    """Relayed transport address tied to a five-tuple, with its permissions and channels."""

    def __init__(
        self,
        turn_socket: _PacketConn,
        relay_socket: _PacketConn,
        relay_addr: Address,
        five_tuple: FiveTuple,
    ) -> None:
        self.protocol = Protocol.UDP
        self.turn_socket = turn_socket
        self.relay_socket = relay_socket
        self.relay_addr = relay_addr
        self.five_tuple = five_tuple
        self.permissions: dict[str, Permission] = {}
        self.channel_bindings: dict[int, ChannelBind] = {}
        self.allocations: Optional[dict[str, Allocation]] = None
        self._timer: Optional[_LifetimeTimer] = None
        self._relay_task: Optional[asyncio.Task] = None
        self._closed = False

    def has_permission(self, addr: Address) -> bool:
        """Return True if a permission exists for the IP of ``addr``."""
        return _ip_fingerprint(addr) in self.permissions

    def add_permission(self, permission: Permission) -> None:
        """Add ``permission``, or refresh the one already held for its IP."""
        fingerprint = _ip_fingerprint(permission.addr)
        existing = self.permissions.get(fingerprint)
        if existing is not None:
            existing.refresh(PERMISSION_TIMEOUT)
            return
        permission.permissions = self.permissions
        permission.start(PERMISSION_TIMEOUT)
        self.permissions[fingerprint] = permission

    def remove_permission(self, addr: Address) -> bool:
        """Remove the permission for the IP of ``addr``; return True if one existed."""
        return self.permissions.pop(_ip_fingerprint(addr), None) is not None

    def add_channel_bind(self, channel_bind: ChannelBind, lifetime: float) -> None:
        """Add or refresh a channel binding; it also adds or refreshes the peer's permission."""
        addr = self.get_channel_addr(channel_bind.number)
        if addr is not None and addr != channel_bind.peer:
            raise AllocationError("you cannot use the same channel number with different peer")
        number = self.get_channel_number(channel_bind.peer)
        if number is not None and number != channel_bind.number:
            raise AllocationError("you cannot use the same channel number with different peer")

        existing = self.channel_bindings.get(channel_bind.number)
        if existing is not None:
            existing.refresh(lifetime)
            self.add_permission(Permission(existing.peer))
            return

        channel_bind.channel_bindings = self.channel_bindings
        channel_bind.start(lifetime)
        self.channel_bindings[channel_bind.number] = channel_bind
        self.add_permission(Permission(channel_bind.peer))

    def remove_channel_bind(self, number: int) -> bool:
        """Remove the binding with channel ``number``; return True if one existed."""
        return self.channel_bindings.pop(number, None) is not None

    def get_channel_addr(self, number: int) -> Optional[Address]:
        """Return the peer bound to channel ``number``, if any."""
        binding = self.channel_bindings.get(number)
        return binding.peer if binding is not None else None

    def get_channel_number(self, addr: Address) -> Optional[int]:
        """Return the channel number bound to peer ``addr``, if any."""
        return next(
            (cb.number for cb in self.channel_bindings.values() if cb.peer == addr), None
        )

    async def close(self) -> None:
        """Close the allocation, its timers and sockets; raise if already closed."""
        if self._closed:
            raise AllocationError("allocation already closed")
        self._closed = True
        self.stop()
        for permission in self.permissions.values():
            permission.stop()
        for channel_bind in self.channel_bindings.values():
            channel_bind.stop()

        log.debug("allocation with %s closed!", self.five_tuple)

        for sock in (self.turn_socket, self.relay_socket):
            try:
                await _maybe_await(sock.close())
            except Exception:
                log.debug("error closing socket of %s", self.five_tuple, exc_info=True)

        task = self._relay_task
        self._relay_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def start(self, lifetime: float) -> None:
        """Start the lifetime timer; on expiry the allocation is removed and closed."""
        self._timer = _LifetimeTimer(lifetime, self._expire)

    async def _expire(self) -> None:
        if self.allocations is None:
            return
        allocation = self.allocations.pop(self.five_tuple.fingerprint(), None)
        if allocation is not None:
            try:
                await allocation.close()
            except AllocationError:
                pass

    def stop(self) -> bool:
        """Stop the lifetime timer; return True if it was never started or had ended."""
        timer = self._timer
        expired = timer is None or timer.expired
        if timer is not None:
            timer.stop()
        self._timer = None
        return expired

    def refresh(self, lifetime: float) -> None:
        """Reset the remaining lifetime to ``lifetime`` seconds."""
        if self._timer is not None:
            self._timer.reset(lifetime)

    def _start_packet_handler(self) -> None:
        self._relay_task = asyncio.get_running_loop().create_task(self._relay_packets())

    async def _relay_packets(self) -> None:
        client_addr = self.five_tuple.src_addr
        while True:
            try:
                data, src = await self.relay_socket.recv_from(RTP_MTU)
            except asyncio.CancelledError:
                raise
            except Exception:
                if self.allocations is not None:
                    self.allocations.pop(self.five_tuple.fingerprint(), None)
                return

            src = (src[0], src[1])
            log.debug("relay socket %s received %d bytes from %s", self.relay_addr, len(data), src)

            number = self.get_channel_number(src)
            if number is not None:
                try:
                    await self.turn_socket.send_to(_encode_channel_data(number, data), client_addr)
                except Exception as err:
                    log.error("Failed to send ChannelData from allocation %s %s", src, err)
            elif self.has_permission(src):
                log.debug("relaying message from %s to client at %s", src, client_addr)
                try:
                    await self.turn_socket.send_to(_build_data_indication(src, data), client_addr)
                except Exception as err:
                    log.error("Failed to send DataIndication from allocation %s %s", src, err)
            else:
                log.info(
                    "No Permission or Channel exists for %s on allocation %s",
                    src,
                    self.relay_addr,
                )