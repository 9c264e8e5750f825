"""Test doubles and data helpers shared across the test modules."""
from typing import Any, Dict, List, Optional
import json

from sqlmodel import Session

from chatvault.models.chat import EMBEDDING_DIMENSIONS, ChatRecord, compute_content_hash, utcnow

# One axis per keyword; text with none of them lands on the last axis
KEYWORDS = ["python", "cooking", "travel", "music", "finance"]
OTHER_AXIS = EMBEDDING_DIMENSIONS - 1


def keyword_vector(text: str) -> List[float]:
    vector = [0.0] * EMBEDDING_DIMENSIONS
    lowered = text.lower()
    for axis, keyword in enumerate(KEYWORDS):
        vector[axis] = float(lowered.count(keyword))
    if not any(vector):
        vector[OTHER_AXIS] = 1.0
    return vector


class KeywordEmbedder:
    """Embedding gateway double: keyword counts on fixed axes"""

    dimensions = EMBEDDING_DIMENSIONS

    def __init__(self):
        self.texts: List[str] = []
        self.fail_with: Optional[Exception] = None

    @property
    def calls(self) -> int:
        return len(self.texts)

    async def embed(self, text: str) -> List[float]:
        if self.fail_with is not None:
            raise self.fail_with
        self.texts.append(text)
        return keyword_vector(text)


class FakeRedis:
    """The slice of redis.asyncio.Redis the queue code uses"""

    def __init__(self):
        self.lists: Dict[str, List[str]] = {}
        self.values: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.on_empty = None
        self.closed = False

    async def lpush(self, key: str, *values: str) -> int:
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def brpop(self, keys, timeout: int = 0):
        for key in keys:
            items = self.lists.get(key)
            if items:
                return key, items.pop()
        if self.on_empty is not None:
            self.on_empty()
        return None

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self.values[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def aclose(self) -> None:
        self.closed = True

    def expire_all(self):
        """Simulate every TTL running out"""
        self.values.clear()
        self.ttls.clear()

    def queued(self, key: str) -> List[Dict[str, Any]]:
        return [json.loads(item) for item in self.lists.get(key, [])]


class FakePasteParser:
    def __init__(self, turns=None):
        self.turns = turns
        self.inputs: List[str] = []

    async def parse(self, content: str):
        self.inputs.append(content)
        return self.turns


def add_chat(db: Session, user_id: str, title: str, turns, embedding=None, timestamp=None) -> ChatRecord:
    """Insert a chat directly, bypassing the pipeline"""
    record = ChatRecord(
        user_id=user_id,
        title=title,
        turns=turns,
        embedding=embedding,
        content_hash=compute_content_hash(title, turns),
        timestamp=timestamp or utcnow(),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def turn(prompt: str, response: str) -> Dict[str, str]:
    return {"prompt": prompt, "response": response}
