"""
Job Sinks

A sink receives an assembled save payload and either runs it right away or
queues it for the worker. The sink is picked once at startup:

- RedisQueueJobSink when REDIS_URL is configured
- InProcessJobSink otherwise

Payload shape:
    {"jobId", "userId", "title", "source", "turns" | "htmlContent"}
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import uuid4
import json
import logging

from redis import asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.engine import Engine
from sqlmodel import Session

from chatvault.config import Settings
from chatvault.errors import ParseError, QueueError
from chatvault.services.chat_service import ChatService
from chatvault.services.embeddings import EmbeddingGateway
from chatvault.services.paste_parser import PasteParser
from chatvault.services.save_pipeline import SavePipeline, SaveResult

logger = logging.getLogger(__name__)

STATUS_KEY_PREFIX = "chatvault:job:"

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_EXPIRED = "expired"


def status_key(job_id: str) -> str:
    return f"{STATUS_KEY_PREFIX}{job_id}"


@dataclass
class JobHandle:
    """What a sink hands back: a queued job id, or the finished save"""
    job_id: str
    result: Optional[SaveResult] = None

    @property
    def queued(self) -> bool:
        return self.result is None

    def to_dict(self) -> Dict[str, Any]:
        if self.result is None:
            return {"jobId": self.job_id, "status": STATUS_PENDING}
        return self.result.to_dict()


class JobSink(ABC):
    """Strategy that accepts a save payload"""

    @abstractmethod
    async def accept(self, payload: Dict[str, Any]) -> JobHandle:
        pass

    async def close(self) -> None:
        pass


async def run_save_payload(
    payload: Dict[str, Any],
    pipeline: SavePipeline,
    paste_parser: Optional[PasteParser] = None,
) -> SaveResult:
    """
    Execute one payload against the Save Pipeline.

    Used by the in-process sink and by the queue worker.

    Raises:
        ParseError: htmlContent could not be turned into turns
    """
    turns = payload.get("turns")
    if turns is None and payload.get("htmlContent") is not None:
        if paste_parser is None:
            raise ParseError("Could not parse chat content: no parser configured")
        turns = await paste_parser.parse(payload["htmlContent"])
        if not turns:
            raise ParseError("Could not parse chat content into turns")

    return await pipeline.save(payload.get("userId"), payload.get("title"), turns)


class InProcessJobSink(JobSink):
    """Runs the Save Pipeline synchronously in the calling request"""

    def __init__(
        self,
        engine: Engine,
        embedder: EmbeddingGateway,
        max_chars: int,
        paste_parser: Optional[PasteParser] = None,
    ):
        self.engine = engine
        self.embedder = embedder
        self.max_chars = max_chars
        self.paste_parser = paste_parser

    async def accept(self, payload: Dict[str, Any]) -> JobHandle:
        job_id = payload.get("jobId") or str(uuid4())
        logger.info(f"[InProcessJobSink] Running save for job {job_id} (source: {payload.get('source')})")

        with Session(self.engine) as session:
            pipeline = SavePipeline(ChatService(session), self.embedder, self.max_chars)
            result = await run_save_payload(payload, pipeline, self.paste_parser)

        return JobHandle(job_id=job_id, result=result)


class RedisQueueJobSink(JobSink):
    """Pushes payloads onto a Redis list and tracks status under a short-TTL key"""

    def __init__(self, redis_client: aioredis.Redis, queue: str, status_ttl: int = 180):
        self.redis = redis_client
        self.queue = queue
        self.status_ttl = status_ttl

    async def accept(self, payload: Dict[str, Any]) -> JobHandle:
        job_id = payload.get("jobId") or str(uuid4())
        payload = {**payload, "jobId": job_id}

        # Pending goes in first: a worker may finish the job before lpush returns
        try:
            await self.set_status(
                job_id, {"status": STATUS_PENDING, "userId": payload.get("userId")}
            )
            await self.redis.lpush(self.queue, json.dumps(payload))
        except RedisError as exc:
            raise QueueError(f"Failed to queue chat save job: {exc}") from exc

        logger.info(f"[RedisQueueJobSink] Pushed chat save job {job_id} to {self.queue}")
        return JobHandle(job_id=job_id)

    async def set_status(self, job_id: str, status: Dict[str, Any]) -> None:
        await self.redis.set(status_key(job_id), json.dumps(status), ex=self.status_ttl)

    async def get_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Status entry for job_id, or None once the key has expired."""
        try:
            raw = await self.redis.get(status_key(job_id))
        except RedisError as exc:
            raise QueueError(f"Failed to read job status: {exc}") from exc
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    async def close(self) -> None:
        await self.redis.aclose()


def build_job_sink(
    settings: Settings,
    engine: Engine,
    embedder: EmbeddingGateway,
    paste_parser: Optional[PasteParser] = None,
) -> JobSink:
    """Pick the sink for this process from configuration."""
    if settings.queue_configured:
        print(f"[JOB SINK] Using Redis queue: {settings.chat_save_queue}")
        client = aioredis.from_url(settings.redis_url, decode_responses=True)
        return RedisQueueJobSink(client, settings.chat_save_queue, settings.job_status_ttl)

    print("[JOB SINK] No queue configured, saving in-process")
    return InProcessJobSink(engine, embedder, settings.max_embedding_chars, paste_parser)
