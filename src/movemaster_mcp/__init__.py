"""Serial protocol engine and MCP server for Movemaster-style robot arms."""

__version__ = "0.1.0"
