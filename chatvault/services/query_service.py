"""
Query Service

List and similarity search over a user's saved chats.

Both operations deduplicate exact repeats, meaning records that share
(user_id, title, turns), before counting and slicing, so pagination totals
are never inflated by duplicates. Deduplication keeps the first record seen,
which is the most recent one for a list and the best ranked (most recent on
ties) for a search; order is not re-sorted afterwards.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import json
import logging
import math

from chatvault.errors import ValidationError
from chatvault.models.chat import ChatRecord, normalize_turns
from chatvault.services.chat_service import ChatService
from chatvault.services.embeddings import EmbeddingGateway
from chatvault.services.save_pipeline import validate_owner

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def validate_pagination(page: Any, size: Any) -> Tuple[int, int]:
    """page >= 0, 1 <= size <= 100"""
    if page is None:
        page = 0
    if size is None:
        size = DEFAULT_PAGE_SIZE
    if isinstance(page, bool) or not isinstance(page, int) or page < 0:
        raise ValidationError("page must be a non-negative integer", field="page")
    if isinstance(size, bool) or not isinstance(size, int) or not 1 <= size <= MAX_PAGE_SIZE:
        raise ValidationError(
            f"size must be an integer between 1 and {MAX_PAGE_SIZE}", field="size"
        )
    return page, size


def dedup_signature(record: ChatRecord) -> Tuple[str, str, str]:
    turns = json.dumps(normalize_turns(record.turns or []), sort_keys=True, ensure_ascii=False)
    return record.user_id, record.title, turns


def deduplicate_chats(
    items: Iterable[Tuple[ChatRecord, Optional[float]]]
) -> List[Tuple[ChatRecord, Optional[float]]]:
    """Drop repeats of (user_id, title, turns), keeping the first seen, order preserved."""
    seen = set()
    unique = []
    for record, similarity in items:
        signature = dedup_signature(record)
        if signature in seen:
            continue
        seen.add(signature)
        unique.append((record, similarity))
    return unique


def paginate(items: Sequence[Any], page: int, size: int) -> Tuple[List[Any], Dict[str, Any]]:
    """Slice one page and compute the pagination block."""
    total = len(items)
    total_pages = math.ceil(total / size) if total else 0
    start = page * size
    return list(items[start:start + size]), {
        "page": page,
        "limit": size,
        "total": total,
        "totalPages": total_pages,
        "hasMore": page + 1 < total_pages,
    }


class QueryService:
    """Tenant-scoped list and search"""

    def __init__(self, chat_service: ChatService, embedder: EmbeddingGateway, min_similarity: float = 0.3):
        self.chats = chat_service
        self.embedder = embedder
        self.min_similarity = min_similarity

    async def list(
        self,
        user_id: Any,
        page: Any = 0,
        size: Any = DEFAULT_PAGE_SIZE,
        query: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Newest-first listing; a non-blank query switches to search."""
        user_id = validate_owner(user_id)
        page, size = validate_pagination(page, size)

        if query is not None and not isinstance(query, str):
            raise ValidationError("query must be a string", field="query")
        if query and query.strip():
            return await self.search(user_id, query, page, size)

        records = self.chats.list_for_user(user_id)
        unique = deduplicate_chats((record, None) for record in records)
        page_items, pagination = paginate(unique, page, size)

        logger.info(
            f"[QueryService] Listed {len(page_items)} of {pagination['total']} chats for user {user_id}"
        )
        return {
            "chats": [record.to_dict() for record, _ in page_items],
            "pagination": pagination,
        }

    async def search(self, user_id: Any, query: Any, page: Any = 0, size: Any = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
        """
        Rank the user's chats against query and return one page.

        Raises:
            ValidationError: Empty query or bad pagination (before embedding)
            EmbeddingError: Query embedding failed
        """
        user_id = validate_owner(user_id)
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("query is required and cannot be empty", field="query")
        query = query.strip()
        page, size = validate_pagination(page, size)

        logger.info(f"[QueryService] Searching chats for user {user_id}, query length {len(query)}")
        query_embedding = await self.embedder.embed(query)

        ranked = self.chats.rank_by_similarity(user_id, query_embedding, self.min_similarity)
        unique = deduplicate_chats(ranked)
        page_items, pagination = paginate(unique, page, size)

        return {
            "chats": [record.to_dict(similarity=similarity) for record, similarity in page_items],
            "pagination": pagination,
            "search": {"query": query},
        }
