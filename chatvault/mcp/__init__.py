"""
ChatVault MCP layer: JSON-RPC dispatch, sessions, tools and resources.
"""
