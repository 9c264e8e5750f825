"""
Save Conversation MCP Tool

Saves a whole conversation through the Save Pipeline. Always synchronous:
the caller gets the record id back in the same response.
"""

from typing import Any, Dict

from chatvault.mcp.base_tool import BaseMCPTool, tool_result
from chatvault.mcp.server import MCPServer, MCPTool
from chatvault.mcp.tools.schemas import TURN_SCHEMA


class SaveConversationTool(BaseMCPTool):
    """MCP Tool for saving a conversation"""

    name = "saveConversation"

    async def execute(self, user_id: str, title: str = None, turns: list = None, **kwargs) -> Dict[str, Any]:
        """
        Save a conversation, splitting it when it is too large to embed

        Args:
            user_id: Owner of the chat
            title: Chat title
            turns: List of {prompt, response}

        Returns:
            {recordId, wasNewlySaved, recordIds?}
        """
        self.log_tool_invocation(user_id, {"title": title, "turns": turns})
        self.validate_user_id(user_id)

        result = await self.save_pipeline().save(user_id, title, turns)
        data = result.to_dict()

        if result.saved:
            text = f"Chat saved successfully with ID: {result.chat_id}"
        else:
            text = f"Chat was already saved with ID: {result.chat_id}"
        if len(result.chat_ids) > 1:
            text += f" (split into {len(result.chat_ids)} parts)"
        return tool_result(data, text)


def register_save_conversation_tool(mcp_server: MCPServer):
    """Register saveConversation with the MCP server"""

    async def handler(db, deps, args: Dict[str, Any]) -> Dict[str, Any]:
        return await SaveConversationTool(db, deps).execute(
            user_id=args.get("ownerId"),
            title=args.get("title"),
            turns=args.get("turns"),
        )

    mcp_server.register_tool(MCPTool(
        name=SaveConversationTool.name,
        description=(
            "Save a chat conversation with embeddings for semantic search. "
            "Saving the same conversation again returns the existing record."
        ),
        parameters={
            "type": "object",
            "properties": {
                "ownerId": {"type": "string", "description": "User ID (required)"},
                "title": {"type": "string", "maxLength": 2048, "description": "Chat title"},
                "turns": {
                    "type": "array",
                    "minItems": 1,
                    "items": TURN_SCHEMA,
                    "description": "Chat turns (prompt and response pairs), in order",
                },
            },
            "required": ["ownerId", "title", "turns"],
        },
        handler=handler,
    ))
