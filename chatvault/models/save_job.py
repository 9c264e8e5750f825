"""
Save Job Models

Transient staging area for turn-by-turn saves. A job is created by
beginIncrementalSave, filled by appendTurn and consumed (then deleted) by
finalizeIncrementalSave.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlmodel import Field, SQLModel

from chatvault.models.chat import utcnow


class ChatSaveJob(SQLModel, table=True):
    """In-progress incremental save, owned by one user"""
    __tablename__ = "chat_save_jobs"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True, max_length=36)
    user_id: str = Field(index=True, max_length=255)
    title: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class ChatSaveJobTurn(SQLModel, table=True):
    """
    One staged turn. (job_id, turn_index) is the primary key, so re-sending
    the same index overwrites instead of duplicating.
    """
    __tablename__ = "chat_save_job_turns"

    job_id: str = Field(
        sa_column=Column(
            String(36),
            ForeignKey("chat_save_jobs.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    turn_index: int = Field(sa_column=Column(Integer, primary_key=True, autoincrement=False))
    prompt: str = Field(sa_column=Column(Text, nullable=False))
    response: str = Field(sa_column=Column(Text, nullable=False))
