"""Holds the active allocations of a TURN server and their port reservations."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol as TypingProtocol

from turnkit.allocation import Allocation, AllocationError, _maybe_await, _PacketConn
from turnkit.five_tuple import Address, FiveTuple

log = logging.getLogger(__name__)

RESERVATION_TIMEOUT = 30.0  # seconds


class _RelayAddressGenerator(TypingProtocol):
    async def allocate_conn(
        self, use_ipv4: bool, requested_port: int
    ) -> tuple[Any, Address]: ...


class Manager:
    """Creates, looks up and closes allocations keyed by five-tuple."""

    def __init__(self, relay_addr_generator: _RelayAddressGenerator) -> None:
        self._allocations: dict[str, Allocation] = {}
        self._reservations: dict[str, int] = {}
        self._relay_addr_generator = relay_addr_generator

    async def close(self) -> None:
        """Close every allocation still managed."""
        for allocation in list(self._allocations.values()):
            await allocation.close()

    def get_allocation(self, five_tuple: FiveTuple) -> Optional[Allocation]:
        """Return the allocation for ``five_tuple``, if any."""
        return self._allocations.get(five_tuple.fingerprint())

    async def create_allocation(
        self,
        five_tuple: FiveTuple,
        turn_socket: _PacketConn,
        requested_port: int,
        lifetime: float,
    ) -> Allocation:
        """Create an allocation for ``five_tuple`` and start relaying."""
        if lifetime == 0:
            raise AllocationError("allocations must not be created with a lifetime of 0")
        if self.get_allocation(five_tuple) is not None:
            raise AllocationError("allocation attempt created with duplicate FiveTuple")

        relay_socket, relay_addr = await self._relay_addr_generator.allocate_conn(
            True, requested_port
        )
        allocation = Allocation(turn_socket, relay_socket, relay_addr, five_tuple)
        allocation.allocations = self._allocations

        log.debug("listening on relay addr: %s", relay_addr)
        allocation.start(lifetime)
        allocation._start_packet_handler()

        self._allocations[five_tuple.fingerprint()] = allocation
        return allocation

    async def delete_allocation(self, five_tuple: FiveTuple) -> None:
        """Remove and close the allocation for ``five_tuple``, if any."""
        allocation = self._allocations.pop(five_tuple.fingerprint(), None)
        if allocation is None:
            return
        try:
            await allocation.close()
        except AllocationError as err:
            log.error("Failed to close allocation: %s", err)

    def create_reservation(self, reservation_token: str, port: int) -> None:
        """Reserve ``port`` under ``reservation_token`` for RESERVATION_TIMEOUT seconds."""
        asyncio.get_running_loop().call_later(
            RESERVATION_TIMEOUT, self._reservations.pop, reservation_token, None
        )
        self._reservations[reservation_token] = port

    def get_reservation(self, reservation_token: str) -> Optional[int]:
        """Return the reserved port for ``reservation_token``, if any."""
        return self._reservations.get(reservation_token)

    async def get_random_even_port(self) -> int:
        """Return a port the relay address generator can currently allocate."""
        conn, addr = await self._relay_addr_generator.allocate_conn(True, 0)
        await _maybe_await(conn.close())
        return addr[1]