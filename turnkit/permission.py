"""Server-side TURN permissions that expire unless refreshed."""

from __future__ import annotations

import asyncio
import inspect
import ipaddress
import logging
from typing import Any, Callable, Optional

from turnkit.five_tuple import Address

log = logging.getLogger(__name__)

PERMISSION_TIMEOUT = 5 * 60.0  # seconds


def _ip_fingerprint(addr: Address) -> str:
    """Return the key under which permissions for ``addr`` are stored (its IP only)."""
    host = addr[0]
    try:
        return str(ipaddress.ip_address(host))
    except ValueError:
        return host


class _LifetimeTimer:
    """Runs ``on_expire`` once a lifetime elapses; the lifetime can be reset or stopped."""

    def __init__(self, lifetime: float, on_expire: Callable[[], Any]) -> None:
        self._loop = asyncio.get_running_loop()
        self._deadline = self._loop.time() + lifetime
        self._on_expire = on_expire
        self._wake = asyncio.Event()
        self._stopped = False
        self.expired = False
        self._task = self._loop.create_task(self._run())

    async def _run(self) -> None:
        try:
            while not self._stopped:
                self._wake.clear()
                remaining = self._deadline - self._loop.time()
                if remaining <= 0:
                    result = self._on_expire()
                    if inspect.isawaitable(result):
                        await result
                    break
                try:
                    await asyncio.wait_for(self._wake.wait(), remaining)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.expired = True

    def reset(self, lifetime: float) -> None:
        """Restart the countdown with ``lifetime`` seconds from now."""
        if self._stopped:
            return
        self._deadline = self._loop.time() + lifetime
        self._wake.set()

    def stop(self) -> None:
        """Stop the countdown without running ``on_expire``."""
        self._stopped = True
        self._wake.set()


def _stop_timer(timer: Optional[_LifetimeTimer]) -> bool:
    """Stop ``timer``; return True if it was never started or had already ended."""
    expired = timer is None or timer.expired
    if timer is not None:
        timer.stop()
    return expired


class Permission:
    """A TURN permission for one peer IP address, removed from its map when it expires."""

    def __init__(self, addr: Address) -> None:
        self.addr = addr
        self.permissions: Optional[dict[str, Permission]] = None
        self._timer: Optional[_LifetimeTimer] = None

    def _expire(self) -> None:
        if self.permissions is not None:
            self.permissions.pop(_ip_fingerprint(self.addr), None)

    def start(self, lifetime: float) -> None:
        """Start the expiry timer for ``lifetime`` seconds."""
        self._timer = _LifetimeTimer(lifetime, self._expire)

    def stop(self) -> bool:
        """Stop the timer; return True if it was never started or had already ended."""
        expired = _stop_timer(self._timer)
        self._timer = None
        return expired

    def refresh(self, lifetime: float) -> None:
        """Reset the remaining lifetime to ``lifetime`` seconds."""
        if self._timer is not None:
            self._timer.reset(lifetime)