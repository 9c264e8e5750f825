"""
Save From Paste MCP Tool

Widget-only: saves a chat the user pasted as raw HTML or text. The paste is
handed to the job sink as htmlContent; with a queue the worker parses it,
otherwise it is parsed and saved in this request.
"""

from datetime import datetime
from typing import Any, Dict
import logging

from chatvault.errors import ParseError, ValidationError
from chatvault.mcp.base_tool import BaseMCPTool, tool_result
from chatvault.mcp.server import MCPServer, MCPTool
from chatvault.services.save_pipeline import validate_title

logger = logging.getLogger(__name__)


def default_paste_title(now: datetime = None) -> str:
    """e.g. 'manual save Oct 19, 2026, 14:05'"""
    now = now or datetime.now()
    return f"manual save {now:%b} {now.day}, {now:%Y}, {now:%H:%M}"


class SaveConversationFromPasteTool(BaseMCPTool):
    """MCP Tool for saving pasted chat content"""

    name = "saveConversationFromPaste"

    async def execute(self, user_id: str, content: str = None, title: str = None, **kwargs) -> Dict[str, Any]:
        """
        Save pasted chat content

        Args:
            user_id: Owner of the chat
            content: Raw HTML or text copied from a chat client
            title: Optional title; defaults to a timestamped "manual save"

        Returns:
            {jobId, status} when queued, {recordId, wasNewlySaved} when saved
            in-process, or {error, message} for oversized or unparseable input
        """
        self.log_tool_invocation(user_id, {"content": content, "title": title})
        self.validate_user_id(user_id)

        if not isinstance(content, str) or not content.strip():
            raise ValidationError("content is required", field="content")

        max_chars = self.deps.settings.max_paste_chars
        if len(content) > max_chars:
            logger.info(f"[saveConversationFromPaste] Content size limit exceeded: {len(content)} > {max_chars}")
            return tool_result(
                {
                    "error": "limit_reached",
                    "message": f"Content exceeds the {max_chars:,} characters limit. Please shorten your content.",
                },
                "Content is too long to save",
            )

        title = validate_title(title) if title is not None and str(title).strip() else default_paste_title()

        payload = {
            "userId": user_id,
            "title": title,
            "htmlContent": content,
            "source": "widgetAdd",
        }
        try:
            handle = await self.deps.sink.accept(payload)
        except ParseError as exc:
            logger.warning(f"[saveConversationFromPaste] {exc.message}")
            return tool_result(
                {
                    "error": "parse_error",
                    "message": "Could not recognize any chat turns in the pasted content.",
                },
                "Could not parse the pasted content",
            )

        data = handle.to_dict()
        if handle.queued:
            return tool_result(data, f"Chat save queued as job {handle.job_id}")
        return tool_result(data, f"Chat saved successfully with ID: {data['recordId']}")


def register_paste_save_tool(mcp_server: MCPServer):
    """Register saveConversationFromPaste with the MCP server"""

    async def handler(db, deps, args: Dict[str, Any]) -> Dict[str, Any]:
        return await SaveConversationFromPasteTool(db, deps).execute(
            user_id=args.get("ownerId"),
            content=args.get("content"),
            title=args.get("title"),
        )

    mcp_server.register_tool(MCPTool(
        name=SaveConversationFromPasteTool.name,
        description="Widget only: save a chat pasted as HTML or text. Not for use by the assistant.",
        parameters={
            "type": "object",
            "properties": {
                "ownerId": {"type": "string", "description": "User ID (required)"},
                "content": {"type": "string", "description": "Pasted HTML or text"},
                "title": {"type": "string", "maxLength": 2048, "description": "Optional title"},
            },
            "required": ["ownerId", "content"],
        },
        handler=handler,
        meta={"openai/widgetAccessible": True},
    ))
