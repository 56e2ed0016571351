"""Server-side TURN channel bindings that expire unless refreshed."""

from __future__ import annotations

import logging
from typing import Optional

from turnkit.five_tuple import Address
from turnkit.permission import _LifetimeTimer, _stop_timer

log = logging.getLogger(__name__)


class ChannelBind:
    """A channel number bound to a peer, removed from its map when it expires."""

    def __init__(self, number: int, peer: Address) -> None:
        self.number = number
        self.peer = peer
        self.channel_bindings: Optional[dict[int, ChannelBind]] = None
        self._timer: Optional[_LifetimeTimer] = None

    def _expire(self) -> None:
        if self.channel_bindings is not None:
            if self.channel_bindings.pop(self.number, None) is None:
                log.error("Failed to remove ChannelBind for %s", self.number)

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