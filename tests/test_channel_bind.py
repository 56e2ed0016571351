import asyncio

import pytest

from turnkit.binding import MIN_CHANNEL_NUMBER
from turnkit.channel_bind import ChannelBind


def _create_channel_bind(lifetime):
    bindings = {}
    c = ChannelBind(MIN_CHANNEL_NUMBER, ("0.0.0.0", 0))
    c.channel_bindings = bindings
    c.start(lifetime)
    bindings[c.number] = c
    return bindings, c


@pytest.mark.asyncio
async def test_channel_bind():
    bindings, c = _create_channel_bind(0.02)
    assert bindings[MIN_CHANNEL_NUMBER].peer[0] == "0.0.0.0"
    c.stop()


@pytest.mark.asyncio
async def test_channel_bind_start_expires_and_stop_reports_it():
    bindings, c = _create_channel_bind(0.02)
    await asyncio.sleep(0.08)
    assert MIN_CHANNEL_NUMBER not in bindings
    assert c.stop() is True


@pytest.mark.asyncio
async def test_channel_bind_reset():
    bindings, c = _create_channel_bind(0.1)
    await asyncio.sleep(0.06)
    c.refresh(0.2)
    await asyncio.sleep(0.08)
    assert MIN_CHANNEL_NUMBER in bindings
    c.stop()


def test_stop_without_start_reports_expired():
    assert ChannelBind(MIN_CHANNEL_NUMBER, ("127.0.0.1", 3478)).stop() is True


@pytest.mark.asyncio
async def test_stop_while_running_reports_not_expired_and_keeps_binding():
    bindings, c = _create_channel_bind(0.03)
    assert c.stop() is False
    await asyncio.sleep(0.1)
    assert MIN_CHANNEL_NUMBER in bindings


@pytest.mark.asyncio
async def test_expiry_of_missing_entry_leaves_other_bindings():
    bindings, c = _create_channel_bind(0.02)
    del bindings[MIN_CHANNEL_NUMBER]
    other = ChannelBind(MIN_CHANNEL_NUMBER + 1, ("127.0.0.1", 3479))
    bindings[other.number] = other
    await asyncio.sleep(0.08)
    assert list(bindings) == [MIN_CHANNEL_NUMBER + 1]
    assert c.stop() is True