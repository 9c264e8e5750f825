"""Explain How To Use MCP Tool"""
from typing import Any, Dict

from chatvault.mcp.base_tool import BaseMCPTool, tool_result
from chatvault.mcp.server import MCPServer, MCPTool

HELP_TEXT = """# How to Use ChatVault

ChatVault keeps the conversations you want to come back to and lets you find them again by meaning, not just by title.

## Saving conversations

- **Ask the assistant**: "Save this conversation about <topic> to my ChatVault", "Save the last 5 turns", or "Add this entire chat to my vault".
- **Long chats** are saved turn by turn and may be stored as several parts ("<title> Part 1", "Part 2", ...). Saving the same chat twice keeps a single copy.
- **Paste into the widget**: copy a conversation from any chat client, press '+', paste it and optionally give it a title.

## Finding conversations

Ask to "browse my chats", or to find a chat by topic. Search ranks your chats by how close they are in meaning to what you ask for.

## Editing and deleting

You can rename a saved chat, replace its turns, or delete it. Only your own chats are ever visible to you.
"""


class ExplainHowToUseTool(BaseMCPTool):
    """MCP Tool returning ChatVault usage help"""

    name = "explainHowToUse"

    async def execute(self, user_id: str, **kwargs) -> Dict[str, Any]:
        self.log_tool_invocation(user_id, {})
        self.validate_user_id(user_id)
        return tool_result({"helpText": HELP_TEXT}, HELP_TEXT)


def register_help_tool(mcp_server: MCPServer):
    """Register explainHowToUse with the MCP server"""

    async def handler(db, deps, args: Dict[str, Any]) -> Dict[str, Any]:
        return await ExplainHowToUseTool(db, deps).execute(user_id=args.get("ownerId"))

    mcp_server.register_tool(MCPTool(
        name=ExplainHowToUseTool.name,
        description="Explain how to save, find and manage chats with ChatVault",
        parameters={
            "type": "object",
            "properties": {
                "ownerId": {"type": "string", "description": "User ID (required)"},
            },
            "required": ["ownerId"],
        },
        handler=handler,
    ))
