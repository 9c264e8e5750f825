"""ChatVault: save, browse and semantically search AI chat transcripts over MCP."""

__version__ = "0.3.0"
