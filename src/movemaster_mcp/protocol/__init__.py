"""Protocol layer: line framing, command builders, response parsing and dispatch."""

from .framing import ResponseFramer, encode_line
from .commands import Command, build_command
from .channel import CommandChannel
