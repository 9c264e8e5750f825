"""
Conversation maintenance MCP Tools

updateConversation, deleteConversation and loadConversationTurn. Each one
looks the chat up by (id, owner); a missing id and someone else's id give the
same "not found" message.
"""

from typing import Any, Dict
import logging

from chatvault.errors import NotFoundError, ValidationError
from chatvault.mcp.base_tool import CHAT_NOT_FOUND, BaseMCPTool, tool_result
from chatvault.mcp.server import MCPServer, MCPTool
from chatvault.mcp.tools.schemas import TURN_SCHEMA
from chatvault.models.chat import ChatRecord
from chatvault.services.chunking import embedding_input
from chatvault.services.save_pipeline import validate_title, validate_turns

logger = logging.getLogger(__name__)


class _ChatTool(BaseMCPTool):
    def load_owned_chat(self, chat_id: Any, user_id: str) -> ChatRecord:
        chat_id = self.require_string(chat_id, "conversationId")
        record = self.chat_service.get_for_user(chat_id, user_id)
        if record is None:
            raise NotFoundError(CHAT_NOT_FOUND)
        self.validate_ownership(record.user_id, user_id)
        return record


class UpdateConversationTool(_ChatTool):
    """MCP Tool for changing a chat's title and/or turns"""

    name = "updateConversation"

    async def execute(self, user_id: str, chat_id: str = None, title: str = None,
                      turns: list = None, **kwargs) -> Dict[str, Any]:
        """
        Update a chat by ID

        Changing turns regenerates the embedding, and both are written in
        the same commit.

        Args:
            user_id: Owner of the chat
            chat_id: Chat to update
            title: New title (optional)
            turns: New turns (optional)

        Returns:
            {updated, recordId, title, turns}
        """
        self.log_tool_invocation(user_id, {"conversationId": chat_id, "title": title, "turns": turns})
        self.validate_user_id(user_id)

        if title is None and turns is None:
            raise ValidationError("At least one of title or turns must be provided")

        # Validate everything before the lookup or any embedding call
        new_title = validate_title(title) if title is not None else None
        new_turns = validate_turns(turns) if turns is not None else None

        record = self.load_owned_chat(chat_id, user_id)

        embedding = None
        if new_turns is not None:
            logger.info(f"[updateConversation] Regenerating embedding for chat {record.id}")
            max_chars = self.deps.settings.max_embedding_chars
            embedding = await self.deps.embedder.embed(embedding_input(new_turns, max_chars))

        record = self.chat_service.update(record, title=new_title, turns=new_turns, embedding=embedding)
        data = {
            "updated": True,
            "recordId": record.id,
            "title": record.title,
            "turns": record.turns,
        }
        return tool_result(data, "Chat updated successfully")


class DeleteConversationTool(_ChatTool):
    """MCP Tool for deleting a chat"""

    name = "deleteConversation"

    async def execute(self, user_id: str, chat_id: str = None, **kwargs) -> Dict[str, Any]:
        self.log_tool_invocation(user_id, {"conversationId": chat_id})
        self.validate_user_id(user_id)

        record = self.load_owned_chat(chat_id, user_id)
        record_id = record.id
        self.chat_service.delete(record)

        return tool_result({"deleted": True, "recordId": record_id}, "Chat deleted successfully")


class LoadConversationTurnTool(_ChatTool):
    """MCP Tool returning one full turn (the widget only holds previews)"""

    name = "loadConversationTurn"

    async def execute(self, user_id: str, chat_id: str = None, turn_index: int = None, **kwargs) -> Dict[str, Any]:
        self.log_tool_invocation(user_id, {"conversationId": chat_id, "turnIndex": turn_index})
        self.validate_user_id(user_id)

        if isinstance(turn_index, bool) or not isinstance(turn_index, int) or turn_index < 0:
            raise ValidationError("turnIndex must be a non-negative integer", field="turnIndex")

        record = self.load_owned_chat(chat_id, user_id)
        turns = record.turns or []
        if turn_index >= len(turns):
            raise NotFoundError(f"Turn {turn_index} not found in chat")

        turn = turns[turn_index]
        data = {
            "recordId": record.id,
            "turnIndex": turn_index,
            "turn": {"prompt": turn["prompt"], "response": turn["response"]},
        }
        return tool_result(data)


def register_manage_tools(mcp_server: MCPServer):
    """Register update, delete and load-turn tools with the MCP server"""

    async def update_handler(db, deps, args: Dict[str, Any]) -> Dict[str, Any]:
        return await UpdateConversationTool(db, deps).execute(
            user_id=args.get("ownerId"),
            chat_id=args.get("conversationId"),
            title=args.get("title"),
            turns=args.get("turns"),
        )

    async def delete_handler(db, deps, args: Dict[str, Any]) -> Dict[str, Any]:
        return await DeleteConversationTool(db, deps).execute(
            user_id=args.get("ownerId"), chat_id=args.get("conversationId")
        )

    async def load_turn_handler(db, deps, args: Dict[str, Any]) -> Dict[str, Any]:
        return await LoadConversationTurnTool(db, deps).execute(
            user_id=args.get("ownerId"),
            chat_id=args.get("conversationId"),
            turn_index=args.get("turnIndex"),
        )

    mcp_server.register_tool(MCPTool(
        name=UpdateConversationTool.name,
        description="Update a saved chat's title and/or turns. Changing turns re-indexes it for search.",
        parameters={
            "type": "object",
            "properties": {
                "ownerId": {"type": "string", "description": "User ID (required)"},
                "conversationId": {"type": "string", "description": "Chat ID (required)"},
                "title": {"type": "string", "maxLength": 2048, "description": "New title (optional)"},
                "turns": {"type": "array", "minItems": 1, "items": TURN_SCHEMA, "description": "New turns (optional)"},
            },
            "required": ["ownerId", "conversationId"],
        },
        handler=update_handler,
    ))

    mcp_server.register_tool(MCPTool(
        name=DeleteConversationTool.name,
        description="Delete a saved chat",
        parameters={
            "type": "object",
            "properties": {
                "ownerId": {"type": "string", "description": "User ID (required)"},
                "conversationId": {"type": "string", "description": "Chat ID (required)"},
            },
            "required": ["ownerId", "conversationId"],
        },
        handler=delete_handler,
    ))

    mcp_server.register_tool(MCPTool(
        name=LoadConversationTurnTool.name,
        description="Load the full prompt and response of one turn of a saved chat",
        parameters={
            "type": "object",
            "properties": {
                "ownerId": {"type": "string", "description": "User ID (required)"},
                "conversationId": {"type": "string", "description": "Chat ID (required)"},
                "turnIndex": {"type": "integer", "minimum": 0, "description": "0-indexed turn"},
            },
            "required": ["ownerId", "conversationId", "turnIndex"],
        },
        handler=load_turn_handler,
    ))
