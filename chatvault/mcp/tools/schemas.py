"""JSON schema fragments shared by tool definitions."""
from chatvault.mcp.resources import WIDGET_URI

TURN_SCHEMA = {
    "type": "object",
    "properties": {
        "prompt": {"type": "string"},
        "response": {"type": "string"},
    },
    "required": ["prompt", "response"],
}

PAGE_PROPERTIES = {
    "page": {"type": "integer", "minimum": 0, "default": 0, "description": "Page number (0-indexed)"},
    "size": {"type": "integer", "minimum": 1, "maximum": 100, "default": 10, "description": "Chats per page"},
}

# Tools whose output the widget renders
WIDGET_META = {
    "openai/outputTemplate": WIDGET_URI,
    "openai/widgetAccessible": True,
}
