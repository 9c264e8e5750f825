"""
Save Job Status MCP Tool

Polls the short-TTL status entry of a queued save. A status that has aged
out reads as "expired", which says nothing about whether the save worked.
"""

from typing import Any, Dict

from chatvault.errors import NotFoundError
from chatvault.mcp.base_tool import BaseMCPTool, tool_result
from chatvault.mcp.server import MCPServer, MCPTool
from chatvault.services.job_sink import STATUS_EXPIRED, RedisQueueJobSink

JOB_NOT_FOUND = "Job not found"


class GetSaveJobStatusTool(BaseMCPTool):
    """MCP Tool for polling a queued save"""

    name = "getSaveJobStatus"

    async def execute(self, user_id: str, job_id: str = None, **kwargs) -> Dict[str, Any]:
        self.log_tool_invocation(user_id, {"jobId": job_id})
        self.validate_user_id(user_id)
        job_id = self.require_string(job_id, "jobId")

        sink = self.deps.sink
        if not isinstance(sink, RedisQueueJobSink):
            # Without a queue every save completes inline, so there is nothing to poll
            raise NotFoundError(JOB_NOT_FOUND)

        status = await sink.get_status(job_id)
        if status is None:
            return tool_result({"jobId": job_id, "status": STATUS_EXPIRED})

        owner = status.get("userId")
        if owner is not None:
            self.validate_ownership(owner, user_id, message=JOB_NOT_FOUND)

        data = {"jobId": job_id, "status": status.get("status")}
        for key in ("recordId", "recordIds", "error"):
            if status.get(key) is not None:
                data[key] = status[key]
        return tool_result(data)


def register_job_status_tool(mcp_server: MCPServer):
    """Register getSaveJobStatus with the MCP server"""

    async def handler(db, deps, args: Dict[str, Any]) -> Dict[str, Any]:
        return await GetSaveJobStatusTool(db, deps).execute(
            user_id=args.get("ownerId"), job_id=args.get("jobId")
        )

    mcp_server.register_tool(MCPTool(
        name=GetSaveJobStatusTool.name,
        description="Check a queued chat save: pending, completed, failed or expired",
        parameters={
            "type": "object",
            "properties": {
                "ownerId": {"type": "string", "description": "User ID (required)"},
                "jobId": {"type": "string", "description": "Job ID returned by a queued save"},
            },
            "required": ["ownerId", "jobId"],
        },
        handler=handler,
    ))
