"""
MCP Server Implementation

Routing table of the tools and resources a ChatVault client can reach. One
MCPServer is built per session by create_mcp_server(); the dispatcher owns
the protocol, the server owns what the protocol routes to.

All tools take ownerId and are scoped to it.
"""

from typing import Any, Awaitable, Callable, Dict, List
from dataclasses import dataclass, field
import logging

from sqlalchemy.engine import Engine
from sqlmodel import Session

from chatvault import __version__
from chatvault.config import Settings
from chatvault.errors import ValidationError
from chatvault.mcp.protocol import METHOD_NOT_FOUND, ProtocolError
from chatvault.services.embeddings import EmbeddingGateway
from chatvault.services.job_sink import JobSink

logger = logging.getLogger(__name__)

SERVER_NAME = "chatvault-mcp-server"


@dataclass
class ServerDependencies:
    """Process-wide collaborators every tool call may need"""
    settings: Settings
    engine: Engine
    embedder: EmbeddingGateway
    sink: JobSink


ToolHandler = Callable[[Session, "ServerDependencies", Dict[str, Any]], Awaitable[Dict[str, Any]]]


@dataclass
class MCPTool:
    """MCP Tool definition"""
    name: str
    description: str
    parameters: Dict[str, Any]
    handler: ToolHandler
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MCPResource:
    """MCP Resource definition; read() returns the resource text"""
    uri: str
    name: str
    description: str
    mime_type: str
    read: Callable[[], str]
    meta: Dict[str, Any] = field(default_factory=dict)


class MCPServer:
    """
    MCP Server for ChatVault

    Holds the tools and resources for one session. Tool handlers receive a
    fresh database session per invocation.
    """

    def __init__(self, deps: ServerDependencies, name: str = SERVER_NAME, version: str = __version__):
        self.deps = deps
        self.name = name
        self.version = version
        self.tools: Dict[str, MCPTool] = {}
        self.resources: Dict[str, MCPResource] = {}
        logger.debug(f"Initializing MCP Server: {self.name}")

    def register_tool(self, tool: MCPTool):
        """Register a tool with the MCP server"""
        if tool.name in self.tools:
            logger.warning(f"Tool {tool.name} already registered, overwriting")
        self.tools[tool.name] = tool
        logger.debug(f"Registered MCP tool: {tool.name}")

    def register_resource(self, resource: MCPResource):
        """Register a resource with the MCP server"""
        self.resources[resource.uri] = resource

    def get_tool(self, name: str) -> MCPTool:
        """Get a registered tool by name"""
        if name not in self.tools:
            raise ProtocolError(METHOD_NOT_FOUND, f"Unknown tool: {name}")
        return self.tools[name]

    def list_tools(self) -> List[str]:
        """List all registered tool names"""
        return list(self.tools.keys())

    async def invoke_tool(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Invoke a tool with parameters

        Args:
            tool_name: Name of the tool to invoke
            arguments: Tool arguments (must include ownerId)

        Returns:
            MCP tool result ({content, structuredContent})

        Raises:
            ProtocolError: Unknown tool name
            ValidationError: ownerId missing
        """
        tool = self.get_tool(tool_name)

        owner_id = arguments.get("ownerId")
        if not owner_id or not isinstance(owner_id, str):
            raise ValidationError("ownerId is required", field="ownerId")

        logger.info(f"Invoking MCP tool: {tool_name} for user: {owner_id}")

        with Session(self.deps.engine) as db:
            try:
                result = await tool.handler(db, self.deps, arguments)
            except Exception as e:
                db.rollback()
                logger.error(f"Tool {tool_name} failed: {str(e)}")
                raise
        logger.info(f"Tool {tool_name} executed successfully")
        return result

    def get_tool_schemas(self) -> List[Dict[str, Any]]:
        """Tool descriptors for tools/list"""
        schemas = []
        for tool in self.tools.values():
            schema = {
                "name": tool.name,
                "description": tool.description,
                "inputSchema": tool.parameters,
            }
            if tool.meta:
                schema["_meta"] = tool.meta
            schemas.append(schema)
        return schemas

    def get_resource_descriptors(self) -> List[Dict[str, Any]]:
        """Resource descriptors for resources/list"""
        descriptors = []
        for resource in self.resources.values():
            descriptor = {
                "uri": resource.uri,
                "name": resource.name,
                "description": resource.description,
                "mimeType": resource.mime_type,
            }
            if resource.meta:
                descriptor["_meta"] = resource.meta
            descriptors.append(descriptor)
        return descriptors

    def read_resource(self, uri: str) -> Dict[str, Any]:
        """Contents block for resources/read"""
        resource = self.resources.get(uri)
        if resource is None:
            raise ProtocolError(METHOD_NOT_FOUND, f"Unknown resource: {uri}")
        content = {"uri": resource.uri, "mimeType": resource.mime_type, "text": resource.read()}
        if resource.meta:
            content["_meta"] = resource.meta
        return {"contents": [content]}


def create_mcp_server(deps: ServerDependencies) -> MCPServer:
    """Build a server with every ChatVault tool and resource registered"""
    from chatvault.mcp.resources import register_widget_resource
    from chatvault.mcp.tools.save_conversation import register_save_conversation_tool
    from chatvault.mcp.tools.query_conversations import register_query_tools
    from chatvault.mcp.tools.manage_conversation import register_manage_tools
    from chatvault.mcp.tools.incremental_save import register_incremental_save_tools
    from chatvault.mcp.tools.paste_save import register_paste_save_tool
    from chatvault.mcp.tools.job_status import register_job_status_tool
    from chatvault.mcp.tools.help import register_help_tool

    server = MCPServer(deps)
    register_save_conversation_tool(server)
    register_query_tools(server)
    register_manage_tools(server)
    register_incremental_save_tools(server)
    register_paste_save_tool(server)
    register_job_status_tool(server)
    register_help_tool(server)
    register_widget_resource(server, deps.settings)
    return server
