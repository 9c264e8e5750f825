"""
JSON-RPC 2.0 / MCP protocol constants and envelope builders.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union

JSONRPC_VERSION = "2.0"
SESSION_HEADER = "mcp-session-id"

SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")
LATEST_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[0]

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SESSION_REQUIRED = -32000

RequestId = Union[str, int, None]


class McpMethod(str, Enum):
    """Every method the dispatcher answers. Anything else is 'Method not found'."""
    INITIALIZE = "initialize"
    PING = "ping"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"
    RESOURCES_LIST = "resources/list"
    RESOURCES_READ = "resources/read"
    RESOURCES_TEMPLATES_LIST = "resources/templates/list"

    @classmethod
    def parse(cls, name: str) -> Optional["McpMethod"]:
        try:
            return cls(name)
        except ValueError:
            return None


class ProtocolError(Exception):
    """Error with a fixed JSON-RPC code, raised inside method handlers"""

    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)


def negotiate_version(requested: Any) -> str:
    """Client's version when we support it, else our latest."""
    if isinstance(requested, str) and requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return LATEST_PROTOCOL_VERSION


def success_response(request_id: RequestId, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(
    request_id: RequestId, code: int, message: str, data: Any = None
) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}
