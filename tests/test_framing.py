"""Tests for response line framing."""

import pytest

from movemaster_mcp.errors import ProtocolViolation
from movemaster_mcp.protocol.framing import (
    TERMINATOR,
    ResponseFramer,
    encode_line,
)


def _collecting_framer():
    framer = ResponseFramer()
    received: list[str] = []
    framer.expect(received.append)
    return framer, received


def test_encode_line_appends_crlf():
    """Commands go out as ASCII followed by CR LF."""
    assert encode_line("MP 1.0, 2.0, 3.0, 4.0, 5.0") == b"MP 1.0, 2.0, 3.0, 4.0, 5.0\r\n"
    assert TERMINATOR == b"\r\n"


def test_single_chunk_response():
    """A complete line in one chunk is delivered trimmed."""
    framer, received = _collecting_framer()
    framer.feed(b" 0 \r\n")
    assert received == ["0"]
    assert not framer.pending
    assert framer.buffered == b""


def test_no_delivery_without_terminator():
    """Partial data accumulates until the terminator arrives."""
    framer, received = _collecting_framer()
    framer.feed(b"+012.300,")
    framer.feed(b"+000.500")
    assert received == []
    assert framer.pending
    framer.feed(b"\r\n")
    assert received == ["+012.300,+000.500"]


@pytest.mark.parametrize("split", range(0, 10))
def test_any_chunk_split_delivers_once(split):
    """Splitting one line anywhere, including inside CR LF, yields one response."""
    line = b"1.0,2.0\r\n"
    data = line[:split], line[split:]
    framer, received = _collecting_framer()
    for chunk in data:
        framer.feed(chunk)
    assert received == ["1.0,2.0"]


def test_byte_by_byte_delivery():
    """Feeding one byte at a time still yields exactly one response."""
    framer, received = _collecting_framer()
    for byte in b"+010.0, .5,-1.0,+0.0,+90.0\r\n":
        framer.feed(bytes([byte]))
    assert received == ["+010.0, .5,-1.0,+0.0,+90.0"]


def test_remainder_carries_over():
    """Bytes after a terminator start the next response."""
    framer, received = _collecting_framer()
    framer.feed(b"first\r\nsec")
    assert received == ["first"]
    assert framer.buffered == b"sec"

    framer.expect(received.append)
    framer.feed(b"ond\r\n")
    assert received == ["first", "second"]


def test_one_response_per_terminator():
    """Two lines in one chunk are never both given to a single consumer."""
    framer, received = _collecting_framer()
    framer.feed(b"one\r\ntwo\r\n")
    assert received == ["one"]
    assert framer.buffered == b""


def test_second_consumer_rejected():
    """Registering while a consumer is waiting is a protocol violation."""
    framer, _ = _collecting_framer()
    with pytest.raises(ProtocolViolation):
        framer.expect(lambda response: None)


def test_cancel_allows_new_consumer():
    framer, received = _collecting_framer()
    framer.cancel()
    framer.feed(b"stale\r\n")
    assert received == []

    framer.expect(received.append)
    framer.feed(b"fresh\r\n")
    assert received == ["fresh"]


def test_reset_clears_buffer_and_consumer():
    """Reset drops partial data and the waiting consumer."""
    framer, received = _collecting_framer()
    framer.feed(b"partial")
    framer.reset()
    assert framer.buffered == b""
    assert not framer.pending

    framer.expect(received.append)
    framer.feed(b"next\r\n")
    assert received == ["next"]


def test_invalid_bytes_are_replaced():
    """Non-ASCII noise on the line does not raise."""
    framer, received = _collecting_framer()
    framer.feed(b"\xff0\r\n")
    assert len(received) == 1
    assert received[0].endswith("0")
