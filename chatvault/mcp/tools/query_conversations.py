"""
List / Search Conversations MCP Tools

Paginated, deduplicated reads over the caller's own chats.
"""

from typing import Any, Dict

from chatvault.mcp.base_tool import BaseMCPTool, tool_result
from chatvault.mcp.server import MCPServer, MCPTool
from chatvault.mcp.tools.schemas import PAGE_PROPERTIES, WIDGET_META


class ListConversationsTool(BaseMCPTool):
    """MCP Tool for listing saved chats, newest first"""

    name = "listConversations"

    async def execute(self, user_id: str, page: int = 0, size: int = 10, query: str = None, **kwargs) -> Dict[str, Any]:
        self.log_tool_invocation(user_id, {"page": page, "size": size, "query": query})
        self.validate_user_id(user_id)

        data = await self.query_service().list(user_id, page=page, size=size, query=query)
        return tool_result(data, f"Loaded {len(data['chats'])} of {data['pagination']['total']} chats")


class SearchConversationsTool(BaseMCPTool):
    """MCP Tool for semantic search over saved chats"""

    name = "searchConversations"

    async def execute(self, user_id: str, query: str = None, page: int = 0, size: int = 10, **kwargs) -> Dict[str, Any]:
        """
        Search chats by meaning rather than keywords

        Args:
            user_id: Owner of the chats
            query: Free text, required
            page: 0-indexed page
            size: Results per page (1-100)

        Returns:
            {chats, pagination, search: {query}}
        """
        self.log_tool_invocation(user_id, {"query": query, "page": page, "size": size})
        self.validate_user_id(user_id)

        data = await self.query_service().search(user_id, query, page=page, size=size)
        return tool_result(
            data, f"Found {data['pagination']['total']} chats matching \"{data['search']['query']}\""
        )


def _page_args(args: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "page": args.get("page", 0),
        "size": args.get("size", 10),
    }


def register_query_tools(mcp_server: MCPServer):
    """Register listConversations and searchConversations with the MCP server"""

    async def list_handler(db, deps, args: Dict[str, Any]) -> Dict[str, Any]:
        return await ListConversationsTool(db, deps).execute(
            user_id=args.get("ownerId"), query=args.get("query"), **_page_args(args)
        )

    async def search_handler(db, deps, args: Dict[str, Any]) -> Dict[str, Any]:
        return await SearchConversationsTool(db, deps).execute(
            user_id=args.get("ownerId"), query=args.get("query"), **_page_args(args)
        )

    mcp_server.register_tool(MCPTool(
        name=ListConversationsTool.name,
        description=(
            "Load the user's saved chats, newest first, one page at a time. "
            "Passing a query switches to semantic search."
        ),
        parameters={
            "type": "object",
            "properties": {
                "ownerId": {"type": "string", "description": "User ID (required)"},
                **PAGE_PROPERTIES,
                "query": {"type": "string", "description": "Optional search text"},
            },
            "required": ["ownerId"],
        },
        handler=list_handler,
        meta=WIDGET_META,
    ))

    mcp_server.register_tool(MCPTool(
        name=SearchConversationsTool.name,
        description="Search the user's saved chats by semantic similarity to a query",
        parameters={
            "type": "object",
            "properties": {
                "ownerId": {"type": "string", "description": "User ID (required)"},
                "query": {"type": "string", "description": "Search query text (required)"},
                **PAGE_PROPERTIES,
            },
            "required": ["ownerId", "query"],
        },
        handler=search_handler,
        meta=WIDGET_META,
    ))
