"""
MCP Dispatcher

The JSON-RPC 2.0 state machine behind POST /mcp:

- initialize creates a session (or reuses the one named by the token)
- every other request needs a known session, unless the dispatcher runs in
  lenient mode, where one is created on the fly
- notifications (no id) are acknowledged with an empty 204, whatever the name
- handler exceptions become structured errors; nothing escapes handle()

The session token travels out of band (the mcp-session-id header); the
transport passes it in and reads it back from DispatchResult.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union
import json
import logging

from chatvault.errors import VaultError, is_user_facing
from chatvault.mcp.protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    SESSION_REQUIRED,
    LATEST_PROTOCOL_VERSION,
    McpMethod,
    ProtocolError,
    RequestId,
    error_response,
    negotiate_version,
    success_response,
)
from chatvault.mcp.server import MCPServer
from chatvault.mcp.session import SessionState, SessionStore, new_session_id

logger = logging.getLogger(__name__)

SESSION_NOT_FOUND_MESSAGE = "Session not found. Call initialize first."

MethodHandler = Callable[[SessionState, Dict[str, Any]], Awaitable[Dict[str, Any]]]


@dataclass
class DispatchResult:
    """What the transport writes back: status, JSON body (None for 204), session token"""
    status_code: int
    body: Optional[Dict[str, Any]]
    session_id: Optional[str] = None


class McpDispatcher:
    """Routes JSON-RPC messages to per-session MCP servers"""

    def __init__(
        self,
        server_factory: Callable[[], MCPServer],
        session_store: SessionStore,
        require_session: bool = True,
    ):
        self.server_factory = server_factory
        self.sessions = session_store
        self.require_session = require_session

        self._handlers: Dict[McpMethod, MethodHandler] = {
            McpMethod.INITIALIZE: self._initialize,
            McpMethod.PING: self._ping,
            McpMethod.TOOLS_LIST: self._tools_list,
            McpMethod.TOOLS_CALL: self._tools_call,
            McpMethod.RESOURCES_LIST: self._resources_list,
            McpMethod.RESOURCES_READ: self._resources_read,
            McpMethod.RESOURCES_TEMPLATES_LIST: self._resource_templates_list,
        }
        missing = [method.value for method in McpMethod if method not in self._handlers]
        if missing:
            raise RuntimeError(f"No handler registered for MCP methods: {missing}")

    async def handle(self, body: Union[bytes, str], session_id: Optional[str] = None) -> DispatchResult:
        """
        Process one HTTP request body.

        Args:
            body: Raw request body
            session_id: Token from the mcp-session-id header, if any

        Returns:
            DispatchResult; never raises
        """
        try:
            message = json.loads(body)
        except (ValueError, UnicodeDecodeError) as exc:
            logger.warning(f"[MCP] Parse error: {exc}")
            return DispatchResult(200, error_response(None, PARSE_ERROR, "Parse error", str(exc)))

        if not isinstance(message, dict):
            return DispatchResult(
                200, error_response(None, INVALID_REQUEST, "Invalid Request: expected a JSON object")
            )

        # No id (or a null id) marks a notification: acknowledge, never error
        if message.get("id") is None:
            logger.debug(f"[MCP] Notification acknowledged: {message.get('method')}")
            return DispatchResult(204, None, session_id)

        request_id: RequestId = message["id"]
        if isinstance(request_id, bool) or not isinstance(request_id, (str, int)):
            return DispatchResult(
                200, error_response(None, INVALID_REQUEST, "Invalid Request: id must be a string or number")
            )

        if message.get("jsonrpc") != JSONRPC_VERSION:
            return DispatchResult(
                200,
                error_response(request_id, INVALID_REQUEST, 'Invalid Request: jsonrpc must be "2.0"'),
            )

        method_name = message.get("method")
        if not isinstance(method_name, str) or not method_name:
            return DispatchResult(
                200, error_response(request_id, INVALID_REQUEST, "Invalid Request: method is required")
            )

        params = message.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return DispatchResult(
                200, error_response(request_id, INVALID_PARAMS, "Invalid params: params must be an object")
            )

        method = McpMethod.parse(method_name)

        if method is McpMethod.INITIALIZE:
            state = self._handshake_session(session_id, params)
            reply_session_id = state.session_id
        else:
            state = self.sessions.get(session_id) if session_id else None
            if state is not None:
                reply_session_id = state.session_id
            elif self.require_session:
                logger.warning(f"[MCP] Session not found for method {method_name}")
                return DispatchResult(
                    200, error_response(request_id, SESSION_REQUIRED, SESSION_NOT_FOUND_MESSAGE)
                )
            else:
                # Not stored, so no token is handed out for it
                state = self._request_scoped_session()
                reply_session_id = None

        if method is None:
            logger.warning(f"[MCP] Method not found: {method_name}")
            return DispatchResult(
                200,
                error_response(request_id, METHOD_NOT_FOUND, f"Method not found: {method_name}"),
                reply_session_id,
            )

        try:
            result = await self._handlers[method](state, params)
        except Exception as exc:
            return DispatchResult(200, self._error_for(request_id, method_name, exc), reply_session_id)

        return DispatchResult(200, success_response(request_id, result), reply_session_id)

    def _handshake_session(self, session_id: Optional[str], params: Dict[str, Any]) -> SessionState:
        existing = self.sessions.get(session_id) if session_id else None
        if existing is not None:
            logger.info(f"[MCP] Reusing session {existing.session_id[:8]}...")
            return existing
        client_info = params.get("clientInfo")
        return self._create_session(
            negotiate_version(params.get("protocolVersion")),
            client_info if isinstance(client_info, dict) else {},
        )

    def _create_session(self, protocol_version: str, client_info: Dict[str, Any]) -> SessionState:
        state = SessionState(
            session_id=new_session_id(),
            server=self.server_factory(),
            protocol_version=protocol_version,
            client_info=client_info,
        )
        self.sessions.put(state.session_id, state)
        logger.info(f"[MCP] Created session {state.session_id[:8]}...")
        return state

    def _request_scoped_session(self) -> SessionState:
        """Throwaway session for one sessionless request in lenient mode; never stored."""
        return SessionState(
            session_id=new_session_id(),
            server=self.server_factory(),
            protocol_version=LATEST_PROTOCOL_VERSION,
            client_info={},
        )

    def _error_for(self, request_id: RequestId, method_name: str, exc: Exception) -> Dict[str, Any]:
        if isinstance(exc, ProtocolError):
            return error_response(request_id, exc.code, exc.message, exc.data)

        if is_user_facing(exc):
            message = exc.message if isinstance(exc, VaultError) else str(exc)
            logger.info(f"[MCP] {method_name} rejected: {message}")
            return error_response(request_id, INVALID_PARAMS, message)

        logger.exception(f"[MCP] Internal error in {method_name}")
        return error_response(request_id, INTERNAL_ERROR, "Internal error", str(exc))

    async def _initialize(self, state: SessionState, params: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "protocolVersion": state.protocol_version,
            "capabilities": {
                "tools": {"listChanged": False},
                "resources": {"listChanged": False},
            },
            "serverInfo": {"name": state.server.name, "version": state.server.version},
        }

    async def _ping(self, state: SessionState, params: Dict[str, Any]) -> Dict[str, Any]:
        return {}

    async def _tools_list(self, state: SessionState, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"tools": state.server.get_tool_schemas()}

    async def _tools_call(self, state: SessionState, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise ProtocolError(INVALID_PARAMS, "Invalid params: name is required")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ProtocolError(INVALID_PARAMS, "Invalid params: arguments must be an object")
        return await state.server.invoke_tool(name, arguments)

    async def _resources_list(self, state: SessionState, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"resources": state.server.get_resource_descriptors()}

    async def _resources_read(self, state: SessionState, params: Dict[str, Any]) -> Dict[str, Any]:
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise ProtocolError(INVALID_PARAMS, "Invalid params: uri is required")
        return state.server.read_resource(uri)

    async def _resource_templates_list(self, state: SessionState, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"resourceTemplates": []}
