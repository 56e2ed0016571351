"""A periodic timer that calls an async handler at a fixed interval."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Protocol

log = logging.getLogger(__name__)


class TimerIdRefresh(enum.Enum):
    ALLOC = "alloc"
    PERMS = "perms"


class _TimeoutHandler(Protocol):
    async def on_timeout(self, timer_id: TimerIdRefresh) -> None: ...


class PeriodicTimer:
    """Calls ``handler.on_timeout(timer_id)`` every ``interval`` seconds until stopped."""

    def __init__(
        self, timer_id: TimerIdRefresh = TimerIdRefresh.ALLOC, interval: float = 0.0
    ) -> None:
        self.timer_id = timer_id
        self.interval = interval
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None

    def start(self, handler: _TimeoutHandler) -> bool:
        """Start the timer; return False if it is already running."""
        if self._stop_event is not None:
            return False
        stop = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run(handler, stop))
        self._stop_event = stop
        return True

    async def _run(self, handler: _TimeoutHandler, stop: asyncio.Event) -> None:
        while True:
            try:
                await asyncio.wait_for(stop.wait(), self.interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await handler.on_timeout(self.timer_id)
            except Exception:
                log.exception("timeout handler for %s failed", self.timer_id)

    def stop(self) -> None:
        """Stop the timer; a no-op if it is not running."""
        if self._stop_event is not None:
            self._stop_event.set()
            self._stop_event = None

    def is_running(self) -> bool:
        return self._stop_event is not None