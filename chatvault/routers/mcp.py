"""
MCP Router

HTTP binding for the JSON-RPC dispatcher: POST /mcp (and /api/mcp for hosts
that mount everything under /api). The session token is read from and
written to the mcp-session-id header.
"""

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
import logging

from chatvault.mcp.dispatcher import McpDispatcher
from chatvault.mcp.protocol import SESSION_HEADER
from chatvault.middleware.auth import require_api_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["mcp"], dependencies=[Depends(require_api_key)])


def get_dispatcher(request: Request) -> McpDispatcher:
    return request.app.state.dispatcher


@router.post("/mcp")
@router.post("/api/mcp")
async def mcp_endpoint(request: Request, dispatcher: McpDispatcher = Depends(get_dispatcher)):
    """Handle one JSON-RPC message."""
    body = await request.body()
    result = await dispatcher.handle(body, request.headers.get(SESSION_HEADER))

    headers = {SESSION_HEADER: result.session_id} if result.session_id else {}
    if result.body is None:
        return Response(status_code=result.status_code, headers=headers)
    return JSONResponse(content=result.body, status_code=result.status_code, headers=headers)
