"""Shared fixtures: a scripted stand-in for the serial port."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque

import pytest

from movemaster_mcp.errors import PortNotOpen
from movemaster_mcp.protocol.channel import CommandChannel
from movemaster_mcp.robot import Robot


class FakeTransport:
    """Records written commands and answers scripted mnemonics.

    A reply is queued per mnemonic with :meth:`script` and delivered, chunk by
    chunk, as soon as the matching command is written.
    """

    def __init__(self) -> None:
        self.connected = False
        self.port = ""
        self.line_config = None
        self.on_data = None
        self.fail_writes = False
        self.written: list[str] = []
        self.events: list[str] = []
        self._replies: dict[str, deque] = defaultdict(deque)

    def script(self, mnemonic: str, *chunks: bytes) -> None:
        self._replies[mnemonic].append(chunks)

    def open(self, port, line_config, on_data) -> None:
        self.port = port
        self.line_config = line_config
        self.on_data = on_data
        self.connected = True

    def close(self) -> None:
        self.connected = False

    def write(self, data: bytes) -> int:
        if not self.connected:
            raise PortNotOpen("Port is not open")
        if self.fail_writes:
            raise OSError("write rejected")
        assert data.endswith(b"\r\n")
        command = data[:-2].decode("ascii")
        self.written.append(command)
        self.events.append(command)
        replies = self._replies[command[:2]]
        if replies and self.on_data is not None:
            for chunk in replies.popleft():
                self.on_data(chunk)
        return len(data)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_channel(transport):
    """Build a channel wired to the fake transport on the running loop."""

    def factory(**kwargs) -> CommandChannel:
        kwargs.setdefault("settle_delay", 0)
        kwargs.setdefault("response_timeout", 1.0)
        channel = CommandChannel(transport, **kwargs)
        loop = asyncio.get_running_loop()
        transport.on_data = lambda data: loop.call_soon_threadsafe(channel.feed, data)
        transport.connected = True
        return channel

    return factory


@pytest.fixture
def make_robot(transport):
    """Build a robot connected through the fake transport."""

    async def factory(**kwargs) -> Robot:
        kwargs.setdefault("settle_delay", 0)
        kwargs.setdefault("response_timeout", 1.0)
        robot = Robot(lambda: transport, **kwargs)
        await robot.connect("/dev/ttyFAKE0")
        return robot

    return factory


@pytest.fixture
def record_settles(monkeypatch, transport):
    """Log every settle delay into ``transport.events`` as ``"<settle>"``."""

    async def fake_settle(self) -> None:
        transport.events.append("<settle>")

    monkeypatch.setattr(CommandChannel, "settle", fake_settle)
