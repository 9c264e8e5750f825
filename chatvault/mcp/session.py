"""
MCP sessions

A session binds an unguessable token to the routing state of one client.
State lives behind the SessionStore interface so the in-memory store can be
replaced by a shared one when running more than one instance.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
import logging
import secrets
import threading

from chatvault.mcp.server import MCPServer
from chatvault.models.chat import utcnow

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


@dataclass
class SessionState:
    """Per-session state. Read-mostly: only the handshake writes to it."""
    session_id: str
    server: MCPServer
    protocol_version: str
    client_info: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)


class SessionStore(ABC):
    """get / put / evict over session ids"""

    @abstractmethod
    def get(self, session_id: str) -> Optional[SessionState]:
        pass

    @abstractmethod
    def put(self, session_id: str, state: SessionState) -> None:
        pass

    @abstractmethod
    def evict(self, session_id: str) -> None:
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class InMemorySessionStore(SessionStore):
    """Process-local store; sessions are lost on restart"""

    def __init__(self):
        self._sessions: Dict[str, SessionState] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[SessionState]:
        with self._lock:
            return self._sessions.get(session_id)

    def put(self, session_id: str, state: SessionState) -> None:
        with self._lock:
            self._sessions[session_id] = state
        logger.info(f"[Sessions] Stored session {session_id[:8]}... (active: {len(self._sessions)})")

    def evict(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
