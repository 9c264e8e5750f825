"""
Chat Model

A saved, searchable conversation. Each chat belongs to one user and holds
its turns in conversation order together with an embedding of their text.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, TypedDict
from uuid import uuid4
import hashlib
import json

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, Column, DateTime, Index, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

# OpenAI text-embedding-3-small produces 1536 dimensions
EMBEDDING_DIMENSIONS = 1536
MAX_TITLE_LENGTH = 2048


class Turn(TypedDict):
    """One prompt/response exchange"""
    prompt: str
    response: str


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands timestamps back without tzinfo; they were stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_turns(turns: List[Dict[str, Any]]) -> List[Turn]:
    """Strip turns down to their prompt/response pair, keeping order."""
    return [{"prompt": turn["prompt"], "response": turn["response"]} for turn in turns]


def compute_content_hash(title: str, turns: List[Dict[str, Any]]) -> str:
    """SHA-256 over the canonical JSON of (title, turns)."""
    canonical = json.dumps(
        [title, normalize_turns(turns)],
        ensure_ascii=False,
        separators=(",", ":"),
        sort_keys=True,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ChatRecord(SQLModel, table=True):
    """
    Saved conversation.

    The (user_id, content_hash) unique constraint makes a second insert of a
    byte-identical conversation fail instead of creating a duplicate.
    """
    __tablename__ = "chats"
    __table_args__ = (
        UniqueConstraint("user_id", "content_hash", name="chats_user_content_uidx"),
        Index("chats_user_id_timestamp_idx", "user_id", "timestamp"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True, max_length=36)
    user_id: str = Field(index=True, max_length=255)
    title: str = Field(sa_column=Column(Text, nullable=False))
    timestamp: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    turns: List[Dict[str, Any]] = Field(
        sa_column=Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    )
    embedding: Optional[List[float]] = Field(
        default=None,
        sa_column=Column(
            Vector(EMBEDDING_DIMENSIONS).with_variant(JSON(none_as_null=True), "sqlite"),
            nullable=True,
        ),
    )
    content_hash: str = Field(max_length=64)

    def to_dict(self, similarity: Optional[float] = None) -> Dict[str, Any]:
        """Serialize for tool results (the embedding is never returned)."""
        data: Dict[str, Any] = {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "timestamp": as_utc(self.timestamp).isoformat() if self.timestamp else None,
            "turns": normalize_turns(self.turns or []),
        }
        if similarity is not None:
            data["similarity"] = similarity
        return data
