"""Client-side channel bindings and their manager."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field

from turnkit.five_tuple import Address

# Allowed channel numbers: 0x4000 through 0x7FFF.
MIN_CHANNEL_NUMBER = 0x4000
MAX_CHANNEL_NUMBER = 0x7FFF


class BindingState(enum.Enum):
    IDLE = enum.auto()
    REQUEST = enum.auto()
    READY = enum.auto()
    REFRESH = enum.auto()
    FAILED = enum.auto()


@dataclass
class Binding:
    """A channel number bound to a peer address."""

    number: int
    addr: Address
    state: BindingState = BindingState.IDLE
    refreshed_at: float = field(default_factory=time.monotonic)


class BindingManager:
    """Maps channel numbers and peer addresses to bindings."""

    def __init__(self) -> None:
        self._chan_map: dict[int, Address] = {}
        self._addr_map: dict[Address, Binding] = {}
        self.next_number = MIN_CHANNEL_NUMBER

    def assign_channel_number(self) -> int:
        """Return the next channel number, wrapping around at the maximum."""
        n = self.next_number
        if self.next_number == MAX_CHANNEL_NUMBER:
            self.next_number = MIN_CHANNEL_NUMBER
        else:
            self.next_number += 1
        return n

    def create(self, addr: Address) -> Binding:
        """Create a binding for ``addr`` with a freshly assigned channel number."""
        binding = Binding(number=self.assign_channel_number(), addr=addr)
        self._chan_map[binding.number] = addr
        self._addr_map[addr] = binding
        return binding

    def find_by_addr(self, addr: Address) -> Binding | None:
        return self._addr_map.get(addr)

    def find_by_number(self, number: int) -> Binding | None:
        addr = self._chan_map.get(number)
        if addr is None:
            return None
        return self._addr_map.get(addr)

    def delete_by_addr(self, addr: Address) -> bool:
        binding = self._addr_map.pop(addr, None)
        if binding is None:
            return False
        self._chan_map.pop(binding.number, None)
        return True

    def delete_by_number(self, number: int) -> bool:
        addr = self._chan_map.pop(number, None)
        if addr is None:
            return False
        self._addr_map.pop(addr, None)
        return True

    def size(self) -> int:
        return len(self._addr_map)