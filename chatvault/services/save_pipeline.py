"""
Save Pipeline

Idempotent, size-aware save of a whole conversation:

1. Validate input (no external call happens before this passes)
2. Split turns into chunks that fit the embedding ceiling
3. Per chunk: return the existing record if an identical one is stored,
   otherwise embed the chunk and insert it

Retrying a save, including one that failed half way through a multi-part
split, never creates duplicates: parts already stored are found by the
idempotency check and skipped.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List
import logging

from chatvault.errors import ValidationError
from chatvault.models.chat import MAX_TITLE_LENGTH, Turn
from chatvault.services.chat_service import ChatService
from chatvault.services.chunking import combine_chat_text, embedding_input, split_turns_for_embedding
from chatvault.services.embeddings import EmbeddingGateway

logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    """Outcome of a save. chat_ids lists every part, and is only filled when split."""
    chat_id: str
    saved: bool
    chat_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"recordId": self.chat_id, "wasNewlySaved": self.saved}
        if len(self.chat_ids) > 1:
            data["recordIds"] = list(self.chat_ids)
        return data


def validate_owner(user_id: Any) -> str:
    if not user_id or not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("ownerId is required", field="ownerId")
    return user_id


def validate_title(title: Any) -> str:
    """Trim and bound-check a chat title."""
    if title is None or not isinstance(title, str) or not title.strip():
        raise ValidationError("title is required", field="title")
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(
            f"Title cannot exceed {MAX_TITLE_LENGTH} characters", field="title"
        )
    return title


def validate_turns(turns: Any) -> List[Turn]:
    """Check turns is a non-empty list of {prompt: str, response: str}."""
    if not isinstance(turns, list) or len(turns) == 0:
        raise ValidationError("turns must be a non-empty array", field="turns")

    validated: List[Turn] = []
    for i, turn in enumerate(turns):
        if not isinstance(turn, dict):
            raise ValidationError(f"Turn {i} must be an object", field="turns")
        prompt = turn.get("prompt")
        response = turn.get("response")
        if not isinstance(prompt, str) or not isinstance(response, str):
            raise ValidationError(
                f"Turn {i} must have prompt and response as strings", field="turns"
            )
        validated.append({"prompt": prompt, "response": response})
    return validated


class SavePipeline:
    """Idempotent save of a conversation, split to fit the embedding limit"""

    def __init__(self, chat_service: ChatService, embedder: EmbeddingGateway, max_chars: int = 24000):
        self.chat_service = chat_service
        self.embedder = embedder
        self.max_chars = max_chars

    async def save(self, user_id: Any, title: Any, turns: Any) -> SaveResult:
        """
        Save a conversation for user_id.

        Args:
            user_id: Owner of the chat
            title: Chat title (trimmed, 1-2048 chars)
            turns: Non-empty list of {prompt, response}

        Returns:
            SaveResult with the first part's id, whether anything new was
            written, and all part ids when the chat was split

        Raises:
            ValidationError: Bad input (before any embedding call)
            EmbeddingError: Embedding generation failed
            StoreError: Insert did not produce a record
        """
        user_id = validate_owner(user_id)
        title = validate_title(title)
        turns = validate_turns(turns)

        logger.info(f"[SavePipeline] Saving chat - user: {user_id}, title: {title!r}, turns: {len(turns)}")

        chunks = split_turns_for_embedding(turns, self.max_chars)
        is_split = len(chunks) > 1
        if is_split:
            logger.info(f"[SavePipeline] Splitting chat into {len(chunks)} parts (embedding limit)")

        chat_ids: List[str] = []
        any_saved = False

        for i, part_turns in enumerate(chunks):
            part_title = f"{title} Part {i + 1}" if is_split else title

            # Idempotency check comes first so retries cost no embedding calls
            existing = self.chat_service.find_identical(user_id, part_title, part_turns)
            if existing is not None:
                logger.info(f"[SavePipeline] Part {i + 1} already exists: {existing.id}")
                chat_ids.append(existing.id)
                continue

            text = embedding_input(part_turns, self.max_chars)
            if len(combine_chat_text(part_turns)) > self.max_chars:
                logger.warning(
                    f"[SavePipeline] Part {i + 1} is a single oversized turn, "
                    f"embedding the first {self.max_chars} chars"
                )
            embedding = await self.embedder.embed(text)

            record, created = self.chat_service.create(user_id, part_title, part_turns, embedding)
            chat_ids.append(record.id)
            any_saved = any_saved or created
            logger.info(f"[SavePipeline] Part {i + 1} {'saved' if created else 'already saved'} - id: {record.id}")

        return SaveResult(
            chat_id=chat_ids[0],
            saved=any_saved,
            chat_ids=chat_ids if is_split else [],
        )

