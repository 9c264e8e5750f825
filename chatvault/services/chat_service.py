"""
Chat Service

Record Store access for saved conversations. Every query is filtered by
user_id; callers never see another user's rows.
"""

from typing import Any, Dict, List, Optional, Tuple
import logging

import numpy as np
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from chatvault.errors import StoreError, ValidationError
from chatvault.models.chat import ChatRecord, compute_content_hash, normalize_turns, utcnow

logger = logging.getLogger(__name__)


class ChatService:
    """Service for chat record CRUD and similarity ranking"""

    def __init__(self, db: Session):
        self.db = db

    @property
    def is_postgres(self) -> bool:
        return self.db.get_bind().dialect.name == "postgresql"

    def find_identical(
        self, user_id: str, title: str, turns: List[Dict[str, Any]]
    ) -> Optional[ChatRecord]:
        """Find a record with the same owner, title and turns, if any."""
        content_hash = compute_content_hash(title, turns)
        statement = select(ChatRecord).where(
            ChatRecord.user_id == user_id,
            ChatRecord.content_hash == content_hash,
        )
        wanted = normalize_turns(turns)
        for record in self.db.exec(statement).all():
            # Structural check guards against a hash collision
            if record.title == title and normalize_turns(record.turns) == wanted:
                return record
        return None

    def create(
        self,
        user_id: str,
        title: str,
        turns: List[Dict[str, Any]],
        embedding: Optional[List[float]],
    ) -> Tuple[ChatRecord, bool]:
        """
        Insert a chat record.

        Returns:
            (record, created). created is False when the unique
            (user_id, content_hash) index reports the chat already exists;
            the existing record is returned in that case.
        """
        record = ChatRecord(
            user_id=user_id,
            title=title,
            turns=normalize_turns(turns),
            embedding=embedding,
            content_hash=compute_content_hash(title, turns),
            timestamp=utcnow(),
        )
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"[ChatService] Concurrent insert detected for user {user_id}, re-fetching")
            existing = self.find_identical(user_id, title, turns)
            if existing is None:
                raise StoreError("Failed to save chat: insert conflicted but no record was found")
            return existing, False

        self.db.refresh(record)
        if not record.id:
            raise StoreError("Failed to save chat: no ID returned")
        return record, True

    def get_for_user(self, chat_id: str, user_id: str) -> Optional[ChatRecord]:
        """Get a chat ensuring ownership"""
        statement = select(ChatRecord).where(
            ChatRecord.id == chat_id,
            ChatRecord.user_id == user_id,
        )
        return self.db.exec(statement).first()

    def update(
        self,
        record: ChatRecord,
        title: Optional[str] = None,
        turns: Optional[List[Dict[str, Any]]] = None,
        embedding: Optional[List[float]] = None,
    ) -> ChatRecord:
        """
        Apply a title and/or turns change in one commit.

        When turns change the caller must pass the embedding regenerated from
        them, so the stored vector always matches the stored turns.
        """
        if turns is not None and embedding is None:
            raise StoreError("Failed to update chat: turns changed without a new embedding")

        if title is not None:
            record.title = title
        if turns is not None:
            record.turns = normalize_turns(turns)
            record.embedding = embedding
        record.content_hash = compute_content_hash(record.title, record.turns)

        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError("An identical chat already exists; update cannot be applied")
        self.db.refresh(record)
        return record

    def delete(self, record: ChatRecord) -> None:
        """Delete a chat record"""
        self.db.delete(record)
        self.db.commit()

    def list_for_user(self, user_id: str) -> List[ChatRecord]:
        """All of a user's chats, newest first"""
        statement = (
            select(ChatRecord)
            .where(ChatRecord.user_id == user_id)
            .order_by(ChatRecord.timestamp.desc(), ChatRecord.id)
        )
        return list(self.db.exec(statement).all())

    def rank_by_similarity(
        self, user_id: str, query_embedding: List[float], min_similarity: float
    ) -> List[Tuple[ChatRecord, float]]:
        """
        Rank a user's embedded chats by cosine similarity to query_embedding.

        Records below min_similarity are dropped. Ties keep the most recent
        record first.

        Returns:
            (record, similarity) pairs, most similar first
        """
        if self.is_postgres:
            return self._rank_pgvector(user_id, query_embedding, min_similarity)
        return self._rank_in_memory(user_id, query_embedding, min_similarity)

    def _rank_pgvector(
        self, user_id: str, query_embedding: List[float], min_similarity: float
    ) -> List[Tuple[ChatRecord, float]]:
        distance = ChatRecord.embedding.cosine_distance(query_embedding)
        statement = (
            select(ChatRecord, distance.label("distance"))
            .where(
                ChatRecord.user_id == user_id,
                ChatRecord.embedding.is_not(None),
                (1 - distance) >= min_similarity,
            )
            .order_by(distance, ChatRecord.timestamp.desc(), ChatRecord.id)
        )
        return [(record, 1 - float(dist)) for record, dist in self.db.exec(statement).all()]

    def _rank_in_memory(
        self, user_id: str, query_embedding: List[float], min_similarity: float
    ) -> List[Tuple[ChatRecord, float]]:
        # SQLite has no vector operators; rank with numpy
        statement = (
            select(ChatRecord)
            .where(ChatRecord.user_id == user_id, ChatRecord.embedding.is_not(None))
            .order_by(ChatRecord.timestamp.desc(), ChatRecord.id)
        )
        records = list(self.db.exec(statement).all())
        if not records:
            return []

        query = np.asarray(query_embedding, dtype=float)
        query_norm = np.linalg.norm(query)
        if query_norm == 0:
            return []

        matrix = np.asarray([record.embedding for record in records], dtype=float)
        norms = np.linalg.norm(matrix, axis=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = matrix @ query / (norms * query_norm)
        scores = np.nan_to_num(scores, nan=0.0)

        # Stable sort keeps the newest-first order among equal scores
        order = np.argsort(-scores, kind="stable")
        return [
            (records[i], float(scores[i]))
            for i in order
            if scores[i] >= min_similarity
        ]
