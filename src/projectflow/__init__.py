"""ProjectFlow OAuth 2.1 authorization server and MCP resource gateway."""

__version__ = "0.1.0"
