"""Tests for serialized command dispatch."""

import asyncio

import pytest

from movemaster_mcp.errors import (
    Disconnected,
    PortNotOpen,
    ProtocolViolation,
    ResponseTimeout,
    WriteFailed,
)


@pytest.mark.asyncio
async def test_send_no_answer_writes_terminated_line(make_channel, transport):
    channel = make_channel()
    await channel.send_no_answer("GO")
    assert transport.written == ["GO"]
    assert not channel.busy


@pytest.mark.asyncio
async def test_send_no_answer_settles_after_write(make_channel, transport, record_settles):
    """Fire-and-forget commands are followed by the settle delay."""
    channel = make_channel()
    await channel.send_no_answer("GC")
    await channel.send_no_answer("GO")
    assert transport.events == ["GC", "<settle>", "GO", "<settle>"]


@pytest.mark.asyncio
async def test_send_with_answer_returns_trimmed_line(make_channel, transport):
    channel = make_channel()
    transport.script("ER", b" 0", b" \r\n")
    assert await channel.send_with_answer("ER") == "0"


@pytest.mark.asyncio
async def test_requests_are_correlated_in_order(make_channel, transport):
    channel = make_channel()
    transport.script("ER", b"1\r\n")
    transport.script("ER", b"2\r\n")
    assert await channel.send_with_answer("ER") == "1"
    assert await channel.send_with_answer("ER") == "2"


@pytest.mark.asyncio
async def test_overlapping_request_is_rejected(make_channel, transport):
    """A second request while one is outstanding must not be written."""
    channel = make_channel()
    first = asyncio.create_task(channel.send_with_answer("WH"))
    await asyncio.sleep(0)
    assert channel.busy

    with pytest.raises(ProtocolViolation):
        await channel.send_with_answer("ER")

    channel.feed(b"1,2,3,4,5\r\n")
    assert await first == "1,2,3,4,5"
    assert "ER" not in transport.written

    # The lane can no longer be trusted.
    with pytest.raises(Disconnected):
        await channel.send_with_answer("ER")


@pytest.mark.asyncio
async def test_timeout_desynchronizes_channel(make_channel, transport):
    channel = make_channel(response_timeout=0.05)
    with pytest.raises(ResponseTimeout):
        await channel.send_with_answer("WH")
    assert not channel.usable

    with pytest.raises(Disconnected):
        await channel.send_no_answer("GO")
    assert transport.written == ["WH"]


@pytest.mark.asyncio
async def test_port_not_open(make_channel, transport):
    channel = make_channel()
    transport.connected = False
    with pytest.raises(PortNotOpen):
        await channel.send_no_answer("GO")
    assert not channel.busy


@pytest.mark.asyncio
async def test_write_failure(make_channel, transport):
    channel = make_channel()
    transport.fail_writes = True
    with pytest.raises(WriteFailed):
        await channel.send_with_answer("ER")
    assert not channel.busy

    # Nothing reached the device, so the lane stays usable.
    transport.fail_writes = False
    transport.script("ER", b"0\r\n")
    assert await channel.send_with_answer("ER") == "0"


@pytest.mark.asyncio
async def test_close_rejects_pending_request(make_channel):
    channel = make_channel()
    pending = asyncio.create_task(channel.send_with_answer("WH"))
    await asyncio.sleep(0.01)

    channel.close()
    with pytest.raises(Disconnected):
        await pending

    with pytest.raises(Disconnected):
        await channel.send_no_answer("GO")


@pytest.mark.asyncio
async def test_unsolicited_data_is_ignored(make_channel, transport):
    """Lines arriving with no request waiting are dropped."""
    channel = make_channel()
    channel.feed(b"noise\r\n")
    transport.script("ER", b"0\r\n")
    assert await channel.send_with_answer("ER") == "0"


@pytest.mark.asyncio
async def test_cancelled_request_desynchronizes_channel(make_channel, transport):
    """A reply to a cancelled request could pair with the next one, so the lane closes."""
    channel = make_channel()
    pending = asyncio.create_task(channel.send_with_answer("WH"))
    while not transport.written:
        await asyncio.sleep(0.001)

    pending.cancel()
    with pytest.raises(asyncio.CancelledError):
        await pending
    assert not channel.usable
    assert not channel.busy

    with pytest.raises(Disconnected):
        await channel.send_with_answer("ER")
    assert transport.written == ["WH"]
