"""
MCP Base Tool Interface

Provides base functionality for all ChatVault tools including:
- ownerId validation
- Ownership checks
- Service construction for the current database session
- Audit logging
"""

from typing import Any, Dict, Optional
from abc import ABC, abstractmethod
import json
import logging

from sqlmodel import Session

from chatvault.errors import NotFoundError, ValidationError
from chatvault.mcp.server import ServerDependencies
from chatvault.services.chat_service import ChatService
from chatvault.services.incremental_save import IncrementalSaveService
from chatvault.services.query_service import QueryService
from chatvault.services.save_job_service import SaveJobService
from chatvault.services.save_pipeline import SavePipeline

logger = logging.getLogger(__name__)

CHAT_NOT_FOUND = "Chat not found or does not belong to user"

# Argument keys that never reach the audit log
REDACTED_KEYS = {"password", "token", "secret", "apiKey", "authorization"}
# Long free-text arguments are logged by size only
SIZE_ONLY_KEYS = {"turns", "turn", "content", "htmlContent"}


class BaseMCPTool(ABC):
    """
    Base class for all MCP tools

    Provides common functionality:
    - ownerId validation
    - Database session and service wiring
    - Audit logging
    """

    name: str = ""

    def __init__(self, db_session: Session, deps: ServerDependencies):
        self.db = db_session
        self.deps = deps

    @property
    def chat_service(self) -> ChatService:
        return ChatService(self.db)

    def save_pipeline(self) -> SavePipeline:
        return SavePipeline(
            self.chat_service, self.deps.embedder, self.deps.settings.max_embedding_chars
        )

    def query_service(self) -> QueryService:
        return QueryService(
            self.chat_service, self.deps.embedder, self.deps.settings.min_similarity
        )

    def incremental_save(self) -> IncrementalSaveService:
        return IncrementalSaveService(SaveJobService(self.db), self.deps.sink)

    def validate_user_id(self, user_id: Any) -> str:
        """
        Validate that ownerId is provided and non-empty

        Raises:
            ValidationError: If ownerId is missing or not a string
        """
        if not user_id or not isinstance(user_id, str) or not user_id.strip():
            logger.error("MCP tool called without valid ownerId")
            raise ValidationError("ownerId is required", field="ownerId")
        return user_id

    def validate_ownership(self, resource_user_id: str, requesting_user_id: str, message: str = CHAT_NOT_FOUND) -> None:
        """
        Validate that the requesting user owns the resource

        Raises:
            NotFoundError: Same message whether the resource is missing or foreign
        """
        if resource_user_id != requesting_user_id:
            logger.warning(
                f"Ownership validation failed: user {requesting_user_id} "
                f"attempted to access resource owned by {resource_user_id}"
            )
            raise NotFoundError(message)

    def require_string(self, value: Any, field: str) -> str:
        if not value or not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{field} is required", field=field)
        return value

    def log_tool_invocation(self, user_id: Any, params: Dict[str, Any]) -> None:
        """
        Log tool invocation for audit trail

        Sensitive keys are dropped and bulky text is replaced by its length.
        """
        safe_params = {}
        for key, value in params.items():
            if key in REDACTED_KEYS or key == "ownerId":
                continue
            if key in SIZE_ONLY_KEYS and value is not None:
                safe_params[key] = f"<{len(value) if hasattr(value, '__len__') else '?'} items/chars>"
            else:
                safe_params[key] = value

        logger.info(f"MCP Tool Invocation: {self.name} | User: {user_id} | Params: {safe_params}")

    @abstractmethod
    async def execute(self, **kwargs) -> Dict[str, Any]:
        """
        Execute the tool logic

        Args:
            **kwargs: Tool-specific parameters (always includes user_id)

        Returns:
            MCP tool result built with tool_result()
        """
        pass


def tool_result(data: Dict[str, Any], text: Optional[str] = None) -> Dict[str, Any]:
    """
    Wrap a tool's data as an MCP tool result.

    Args:
        data: Structured result
        text: Human-readable summary; defaults to the JSON of data

    Returns:
        {"content": [{"type": "text", "text": ...}], "structuredContent": data}
    """
    return {
        "content": [{"type": "text", "text": text if text is not None else json.dumps(data, default=str)}],
        "structuredContent": data,
    }
