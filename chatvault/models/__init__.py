"""SQLModel tables for ChatVault."""
from chatvault.models.chat import ChatRecord, Turn
from chatvault.models.save_job import ChatSaveJob, ChatSaveJobTurn

__all__ = ["ChatRecord", "Turn", "ChatSaveJob", "ChatSaveJobTurn"]
