"""
Queue worker for asynchronous chat saves.

Pops payloads pushed by RedisQueueJobSink, runs them through the Save
Pipeline (parsing pasted content first when needed) and records the outcome
in the job's status entry. Run with:

    python -m chatvault.worker
"""

import asyncio
import json
from typing import Any, Dict, Optional

from redis.exceptions import RedisError
from sqlalchemy.engine import Engine
from sqlmodel import Session

from chatvault.config import Settings, get_settings
from chatvault.errors import is_user_facing
from chatvault.services.chat_service import ChatService
from chatvault.services.embeddings import EmbeddingGateway, OpenAIEmbeddingClient
from chatvault.services.job_sink import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    RedisQueueJobSink,
    run_save_payload,
)
from chatvault.services.paste_parser import PasteParser
from chatvault.services.save_pipeline import SavePipeline
from chatvault.utils.logger import get_logger

logger = get_logger("chatvault-worker")

POP_TIMEOUT_SECONDS = 5
RETRY_BACKOFF_SECONDS = 2


class SaveJobWorker:
    """Consumes the chat save queue one payload at a time."""

    def __init__(
        self,
        queue: RedisQueueJobSink,
        engine: Engine,
        embedder: EmbeddingGateway,
        max_chars: int,
        paste_parser: Optional[PasteParser] = None,
    ):
        self.queue = queue
        self.engine = engine
        self.embedder = embedder
        self.max_chars = max_chars
        self.paste_parser = paste_parser
        self._stopping = False

    def stop(self):
        self._stopping = True

    async def process_job(self, raw: str) -> Optional[Dict[str, Any]]:
        """
        Run one queued payload and write its final status.

        Returns:
            The status written, or None when the payload carried no job id
        """
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.error("Discarding malformed queue payload", size=len(raw))
            return None

        job_id = payload.get("jobId") if isinstance(payload, dict) else None
        if not job_id:
            logger.error("Discarding queue payload without jobId")
            return None

        user_id = payload.get("userId")
        logger.info("Processing chat save job", job_id=job_id, source=payload.get("source"))

        try:
            with Session(self.engine) as session:
                pipeline = SavePipeline(ChatService(session), self.embedder, self.max_chars)
                result = await run_save_payload(payload, pipeline, self.paste_parser)
        except Exception as exc:
            # One bad job must not stop the worker; the failure goes to its status entry
            logger.exception("Chat save job failed", job_id=job_id)
            error = str(exc) if is_user_facing(exc) else "Internal error while saving chat"
            status = {"status": STATUS_FAILED, "userId": user_id, "error": error}
        else:
            status = {"status": STATUS_COMPLETED, "userId": user_id, "recordId": result.chat_id}
            if len(result.chat_ids) > 1:
                status["recordIds"] = result.chat_ids
            logger.info("Chat save job completed", job_id=job_id, record_id=result.chat_id)

        try:
            await self.queue.set_status(job_id, status)
        except RedisError:
            # The save itself is done; only the poller loses the outcome
            logger.exception("Failed to write job status", job_id=job_id, status=status["status"])
        return status

    async def run(self):
        """Block on the queue until stop() is called."""
        logger.info("Worker started", queue=self.queue.queue)
        while not self._stopping:
            try:
                item = await self.queue.redis.brpop([self.queue.queue], timeout=POP_TIMEOUT_SECONDS)
            except RedisError:
                logger.exception("Failed to read from queue, retrying", backoff=RETRY_BACKOFF_SECONDS)
                await asyncio.sleep(RETRY_BACKOFF_SECONDS)
                continue
            if item is None:
                continue
            _, raw = item
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            await self.process_job(raw)
        logger.info("Worker stopped")


def build_worker(settings: Settings, engine: Engine) -> SaveJobWorker:
    from redis import asyncio as aioredis

    if not settings.queue_configured:
        raise RuntimeError("REDIS_URL is required to run the chat save worker")

    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    return SaveJobWorker(
        queue=RedisQueueJobSink(client, settings.chat_save_queue, settings.job_status_ttl),
        engine=engine,
        embedder=OpenAIEmbeddingClient.from_settings(settings),
        max_chars=settings.max_embedding_chars,
        paste_parser=PasteParser.from_settings(settings),
    )


async def main():
    """Main entry point for the chat save worker."""
    from chatvault.db.config import engine
    from chatvault.db.init import init_db

    settings = get_settings()
    init_db(engine)
    worker = build_worker(settings, engine)
    try:
        await worker.run()
    finally:
        await worker.queue.close()
        for client in (worker.embedder, worker.paste_parser):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()


if __name__ == "__main__":
    asyncio.run(main())
