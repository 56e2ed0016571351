"""STUN client transactions with retransmission timers."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from turnkit.five_tuple import Address

log = logging.getLogger(__name__)

MAX_RTX_INTERVAL_IN_MS = 1600
MAX_RTX_COUNT = 7  # total 7 requests (Rc)


class TransactionError(Exception):
    """A transaction failed or cannot deliver a result."""


class _PacketConn(Protocol):
    async def send_to(self, data: bytes, addr: Address) -> int: ...


@dataclass
class TransactionResult:
    """Outcome of a transaction; ``err`` is set when it failed."""

    msg: Any = None
    from_addr: Address = ("0.0.0.0", 0)
    retries: int = 0
    err: Optional[Exception] = None


@dataclass
class TransactionConfig:
    key: str = ""
    raw: bytes = b""
    to: str = ""
    interval: int = 0
    ignore_result: bool = False


def _parse_addr(text: str) -> Address | None:
    host, sep, port_text = text.rpartition(":")
    if not sep or not port_text.isdigit():
        return None
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        return None
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None
    port = int(port_text)
    if port > 0xFFFF:
        return None
    return str(ip), port


def _fail(tr_map: TransactionMap, key: str) -> None:
    tr = tr_map.delete(key)
    if tr is None:
        return
    result = TransactionResult(err=TransactionError(f"all retransmissions failed for {key}"))
    if not tr.write_result(result):
        log.debug("no listener for transaction")


async def _on_rtx_timeout(
    conn: _PacketConn, tr_map: TransactionMap, key: str, n_rtx: int
) -> bool:
    tr = tr_map.find(key)
    if tr is None:
        return True  # already gone

    if n_rtx == MAX_RTX_COUNT:
        _fail(tr_map, key)
        return True

    log.debug("retransmitting transaction %s to %s (n_rtx=%d)", key, tr.to, n_rtx)

    dst = _parse_addr(tr.to)
    if dst is None:
        return False

    try:
        await conn.send_to(tr.raw, dst)
    except OSError:
        _fail(tr_map, key)
        return True
    return False


class Transaction:
    """A STUN request awaiting its response, retransmitted on a backoff timer."""

    def __init__(self, config: TransactionConfig) -> None:
        self.key = config.key
        self.raw = bytes(config.raw)
        self.to = config.to
        self.n_rtx = 0
        self.interval = config.interval
        self._wants_result = not config.ignore_result
        self._result: TransactionResult | None = None
        self._closed = False
        self._result_ready = asyncio.Event()
        self._timer_stop: asyncio.Event | None = None
        self._timer_task: asyncio.Task | None = None

    def start_rtx_timer(self, conn: _PacketConn, tr_map: TransactionMap) -> None:
        """Start retransmitting ``raw`` to ``to`` with exponential backoff."""
        stop = asyncio.Event()
        self._timer_stop = stop
        self._timer_task = asyncio.get_running_loop().create_task(
            self._run_rtx_timer(conn, tr_map, stop)
        )

    async def _run_rtx_timer(
        self, conn: _PacketConn, tr_map: TransactionMap, stop: asyncio.Event
    ) -> None:
        done = False
        while not done:
            try:
                await asyncio.wait_for(stop.wait(), self.interval / 1000)
                return
            except asyncio.TimeoutError:
                pass
            self.n_rtx += 1
            self.interval = min(self.interval * 2, MAX_RTX_INTERVAL_IN_MS)
            done = await _on_rtx_timeout(conn, tr_map, self.key, self.n_rtx)

    def stop_rtx_timer(self) -> None:
        if self._timer_stop is not None:
            self._timer_stop.set()
            self._timer_stop = None

    def write_result(self, result: TransactionResult) -> bool:
        """Deliver the result; return False if nobody can receive it."""
        if not self._wants_result or self._closed or self._result_ready.is_set():
            return False
        self._result = result
        self._result_ready.set()
        return True

    async def wait_for_result(self) -> TransactionResult:
        """Wait for the result; raise TransactionError if none can arrive."""
        if not self._wants_result:
            raise TransactionError("wait for result on a non-result transaction")
        await self._result_ready.wait()
        if self._result is None:
            raise TransactionError("transaction closed")
        return self._result

    def close(self) -> None:
        """Close the transaction; pending waiters get TransactionError."""
        self._closed = True
        self._result_ready.set()

    def retries(self) -> int:
        """Return the number of retransmissions made."""
        return self.n_rtx


class TransactionMap:
    """Transactions indexed by key."""

    def __init__(self) -> None:
        self._transactions: dict[str, Transaction] = {}

    def insert(self, key: str, transaction: Transaction) -> bool:
        self._transactions[key] = transaction
        return True

    def find(self, key: str) -> Transaction | None:
        return self._transactions.get(key)

    def delete(self, key: str) -> Transaction | None:
        return self._transactions.pop(key, None)

    def close_and_delete_all(self) -> None:
        for tr in self._transactions.values():
            tr.close()
        self._transactions.clear()

    def size(self) -> int:
        return len(self._transactions)

    def __len__(self) -> int:
        return len(self._transactions)