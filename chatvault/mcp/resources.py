"""Widget resource served to MCP clients that render HTML tool output."""
from pathlib import Path
import logging

from chatvault.config import Settings
from chatvault.mcp.server import MCPResource, MCPServer

logger = logging.getLogger(__name__)

WIDGET_URI = "ui://widget/chat-vault.html"
WIDGET_MIME_TYPE = "text/html+skybridge"
WIDGET_FILENAME = "chat-vault.html"

PLACEHOLDER_HTML = """<!doctype html>
<html>
  <head><meta charset="utf-8"><title>ChatVault</title></head>
  <body>
    <div id="chat-vault-root">ChatVault widget assets have not been built.</div>
  </body>
</html>
"""


def load_widget_html(widget_dir: str = None) -> str:
    """Read the built widget, or fall back to a placeholder page."""
    if widget_dir:
        path = Path(widget_dir) / WIDGET_FILENAME
        if path.is_file():
            return path.read_text(encoding="utf-8")
        logger.warning(f"[Resources] Widget not found at {path}, serving placeholder")
    return PLACEHOLDER_HTML


def register_widget_resource(mcp_server: MCPServer, settings: Settings):
    """Register the ChatVault widget with the MCP server"""
    resource = MCPResource(
        uri=WIDGET_URI,
        name="ChatVault widget",
        description="Browse, search and manage saved chats",
        mime_type=WIDGET_MIME_TYPE,
        read=lambda: load_widget_html(settings.widget_dir),
        meta={"openai/widgetDescription": "Saved chats for the current user"},
    )
    mcp_server.register_resource(resource)
