import asyncio
import contextlib

import pytest

from turnkit.allocation import Allocation, AllocationError
from turnkit.binding import MIN_CHANNEL_NUMBER
from turnkit.channel_bind import ChannelBind
from turnkit.five_tuple import FiveTuple
from turnkit.permission import Permission

DEFAULT_LIFETIME = 600.0
ADDR = ("127.0.0.1", 3478)
ADDR2 = ("127.0.0.1", 3479)


class FakeConn:
    def __init__(self):
        self.closed = False
        self.sent = []

    async def send_to(self, data, addr):
        self.sent.append((data, addr))
        return len(data)

    async def recv_from(self, size):
        await asyncio.Event().wait()

    async def close(self):
        self.closed = True


def make_allocation():
    conn = FakeConn()
    return Allocation(conn, conn, ("127.0.0.1", 5000), FiveTuple()), conn


@contextlib.asynccontextmanager
async def open_allocation(bind_channel=False):
    a, _ = make_allocation()
    if bind_channel:
        a.add_channel_bind(ChannelBind(MIN_CHANNEL_NUMBER, ADDR), DEFAULT_LIFETIME)
    yield a
    await a.close()


@pytest.mark.asyncio
async def test_has_permission():
    addr3 = ("127.0.0.2", 3478)
    async with open_allocation() as a:
        for addr in (ADDR, ADDR2, addr3):
            a.add_permission(Permission(addr))
        assert all(a.has_permission(addr) for addr in (ADDR, ADDR2, addr3))
        assert len(a.permissions) == 2


@pytest.mark.asyncio
async def test_add_permission():
    async with open_allocation() as a:
        a.add_permission(Permission(ADDR))
        assert a.has_permission(ADDR)
        assert not a.has_permission(("10.0.0.1", 3478))


@pytest.mark.asyncio
async def test_remove_permission():
    async with open_allocation() as a:
        a.add_permission(Permission(ADDR))
        assert a.has_permission(ADDR)
        assert a.remove_permission(ADDR) is True
        assert not a.has_permission(ADDR)
        assert a.remove_permission(ADDR) is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "number, peer",
    [(MIN_CHANNEL_NUMBER + 1, ADDR), (MIN_CHANNEL_NUMBER, ADDR2)],
    ids=["conflicting-peer", "conflicting-number"],
)
async def test_add_channel_bind_conflicts(number, peer):
    async with open_allocation(bind_channel=True) as a:
        with pytest.raises(AllocationError):
            a.add_channel_bind(ChannelBind(number, peer), DEFAULT_LIFETIME)
        assert a.has_permission(ADDR)


@pytest.mark.asyncio
async def test_add_channel_bind_twice_refreshes():
    async with open_allocation(bind_channel=True) as a:
        first = a.channel_bindings[MIN_CHANNEL_NUMBER]
        a.add_channel_bind(ChannelBind(MIN_CHANNEL_NUMBER, ADDR), DEFAULT_LIFETIME)
        assert a.channel_bindings[MIN_CHANNEL_NUMBER] is first
        assert len(a.channel_bindings) == 1


@pytest.mark.asyncio
async def test_get_channel_lookups():
    async with open_allocation(bind_channel=True) as a:
        assert a.get_channel_addr(MIN_CHANNEL_NUMBER) == ADDR
        assert a.get_channel_addr(MIN_CHANNEL_NUMBER + 1) is None
        assert a.get_channel_number(ADDR) == MIN_CHANNEL_NUMBER
        assert a.get_channel_number(ADDR2) is None


@pytest.mark.asyncio
async def test_remove_channel_bind():
    async with open_allocation(bind_channel=True) as a:
        assert a.remove_channel_bind(MIN_CHANNEL_NUMBER) is True
        assert a.get_channel_addr(MIN_CHANNEL_NUMBER) is None
        assert a.get_channel_number(ADDR) is None
        assert a.remove_channel_bind(MIN_CHANNEL_NUMBER) is False


@pytest.mark.asyncio
async def test_allocation_refresh():
    a, _ = make_allocation()
    assert a.stop() is True
    a.start(DEFAULT_LIFETIME)
    a.refresh(0)
    assert a.stop() is False


@pytest.mark.asyncio
async def test_allocation_close():
    a, conn = make_allocation()
    a.start(DEFAULT_LIFETIME)
    a.add_channel_bind(ChannelBind(MIN_CHANNEL_NUMBER, ADDR), DEFAULT_LIFETIME)
    a.add_permission(Permission(ADDR))

    await a.close()
    assert conn.closed is True
    with pytest.raises(AllocationError):
        await a.close()


@pytest.mark.asyncio
async def test_lifetime_expiry_removes_from_map():
    a, conn = make_allocation()
    allocations = {a.five_tuple.fingerprint(): a}
    a.allocations = allocations
    a.start(0.02)
    await asyncio.sleep(0.1)
    assert allocations == {}
    assert conn.closed is True
    with pytest.raises(AllocationError):
        await a.close()