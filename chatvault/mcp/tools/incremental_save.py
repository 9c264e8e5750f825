"""
Incremental Save MCP Tools

beginIncrementalSave / appendTurn / finalizeIncrementalSave for chats that
are too long to send in a single saveConversation call.
"""

from typing import Any, Dict

from chatvault.mcp.base_tool import BaseMCPTool, tool_result
from chatvault.mcp.server import MCPServer, MCPTool
from chatvault.mcp.tools.schemas import TURN_SCHEMA


class BeginIncrementalSaveTool(BaseMCPTool):
    """MCP Tool that opens a save job"""

    name = "beginIncrementalSave"

    async def execute(self, user_id: str, title: str = None, **kwargs) -> Dict[str, Any]:
        self.log_tool_invocation(user_id, {"title": title})
        self.validate_user_id(user_id)

        job_id = self.incremental_save().begin(user_id, title)
        return tool_result({"jobId": job_id}, f"Save job started: {job_id}")


class AppendTurnTool(BaseMCPTool):
    """MCP Tool that stages one turn of a save job"""

    name = "appendTurn"

    async def execute(self, user_id: str, job_id: str = None, turn_index: int = None,
                      turn: Dict[str, Any] = None, **kwargs) -> Dict[str, Any]:
        self.log_tool_invocation(user_id, {"jobId": job_id, "turnIndex": turn_index, "turn": turn})
        self.validate_user_id(user_id)

        ack = self.incremental_save().append(user_id, job_id, turn_index, turn)
        return tool_result(ack, f"Turn {ack['turnIndex']} saved")


class FinalizeIncrementalSaveTool(BaseMCPTool):
    """MCP Tool that assembles a job's turns and saves them"""

    name = "finalizeIncrementalSave"

    async def execute(self, user_id: str, job_id: str = None, **kwargs) -> Dict[str, Any]:
        """
        Finalize a save job

        Returns:
            {jobId, status: "pending"} when queued, otherwise
            {recordId, wasNewlySaved, recordIds?}
        """
        self.log_tool_invocation(user_id, {"jobId": job_id})
        self.validate_user_id(user_id)

        handle = await self.incremental_save().finalize(user_id, job_id)
        data = handle.to_dict()
        if handle.queued:
            text = f"Chat save queued as job {handle.job_id}; poll getSaveJobStatus for the result"
        else:
            text = f"Chat saved successfully with ID: {data['recordId']}"
        return tool_result(data, text)


def register_incremental_save_tools(mcp_server: MCPServer):
    """Register the begin / append / finalize tools with the MCP server"""

    async def begin_handler(db, deps, args: Dict[str, Any]) -> Dict[str, Any]:
        return await BeginIncrementalSaveTool(db, deps).execute(
            user_id=args.get("ownerId"), title=args.get("title")
        )

    async def append_handler(db, deps, args: Dict[str, Any]) -> Dict[str, Any]:
        return await AppendTurnTool(db, deps).execute(
            user_id=args.get("ownerId"),
            job_id=args.get("jobId"),
            turn_index=args.get("turnIndex"),
            turn=args.get("turn"),
        )

    async def finalize_handler(db, deps, args: Dict[str, Any]) -> Dict[str, Any]:
        return await FinalizeIncrementalSaveTool(db, deps).execute(
            user_id=args.get("ownerId"), job_id=args.get("jobId")
        )

    mcp_server.register_tool(MCPTool(
        name=BeginIncrementalSaveTool.name,
        description=(
            "Start saving a long chat turn by turn. Returns a jobId for appendTurn "
            "and finalizeIncrementalSave."
        ),
        parameters={
            "type": "object",
            "properties": {
                "ownerId": {"type": "string", "description": "User ID (required)"},
                "title": {"type": "string", "maxLength": 2048, "description": "Chat title"},
            },
            "required": ["ownerId", "title"],
        },
        handler=begin_handler,
    ))

    mcp_server.register_tool(MCPTool(
        name=AppendTurnTool.name,
        description="Add one turn to a save job. Sending the same turnIndex again replaces it.",
        parameters={
            "type": "object",
            "properties": {
                "ownerId": {"type": "string", "description": "User ID (required)"},
                "jobId": {"type": "string", "description": "Job ID from beginIncrementalSave"},
                "turnIndex": {"type": "integer", "minimum": 0, "description": "0-indexed position in the chat"},
                "turn": TURN_SCHEMA,
            },
            "required": ["ownerId", "jobId", "turnIndex", "turn"],
        },
        handler=append_handler,
    ))

    mcp_server.register_tool(MCPTool(
        name=FinalizeIncrementalSaveTool.name,
        description="Save all turns appended to a job as one chat and discard the job",
        parameters={
            "type": "object",
            "properties": {
                "ownerId": {"type": "string", "description": "User ID (required)"},
                "jobId": {"type": "string", "description": "Job ID from beginIncrementalSave"},
            },
            "required": ["ownerId", "jobId"],
        },
        handler=finalize_handler,
    ))
