"""
Incremental Save

Three-call protocol for conversations too large or too slow to send at once:

    begin(user, title)                 -> job id
    append(user, job, index, turn)     -> ack   (same index overwrites)
    finalize(user, job)                -> job handle or saved record

Finalize hands the ordered turns to the configured JobSink and always removes
the staging rows afterwards, whether the sink succeeded or raised.
"""

from typing import Any, Dict
import logging

from sqlalchemy.exc import SQLAlchemyError

from chatvault.errors import NotFoundError, StoreError, ValidationError
from chatvault.services.job_sink import JobHandle, JobSink
from chatvault.services.save_job_service import SaveJobService
from chatvault.services.save_pipeline import validate_owner, validate_title

logger = logging.getLogger(__name__)

JOB_NOT_FOUND = "Job not found or does not belong to user"


def _require_job_id(job_id: Any) -> str:
    if not job_id or not isinstance(job_id, str):
        raise ValidationError("jobId is required", field="jobId")
    return job_id


class IncrementalSaveService:
    """begin / append / finalize over the save-job staging tables"""

    def __init__(self, job_service: SaveJobService, sink: JobSink):
        self.jobs = job_service
        self.sink = sink

    def begin(self, user_id: Any, title: Any) -> str:
        user_id = validate_owner(user_id)
        title = validate_title(title)

        job = self.jobs.create_job(user_id, title)
        if not job.id:
            raise StoreError("Failed to create save job")
        logger.info(f"[IncrementalSave] Began job {job.id} for user {user_id}")
        return job.id

    def append(self, user_id: Any, job_id: Any, turn_index: Any, turn: Any) -> Dict[str, Any]:
        """
        Stage one turn.

        Raises:
            ValidationError: Bad index or turn shape
            NotFoundError: Job missing or owned by another user
        """
        user_id = validate_owner(user_id)
        job_id = _require_job_id(job_id)

        # bool is an int subclass; True is not a valid index
        if isinstance(turn_index, bool) or not isinstance(turn_index, int) or turn_index < 0:
            raise ValidationError("turnIndex must be a non-negative integer", field="turnIndex")
        if not isinstance(turn, dict):
            raise ValidationError("turn must be an object with prompt and response", field="turn")
        prompt = turn.get("prompt")
        response = turn.get("response")
        if not isinstance(prompt, str) or not isinstance(response, str):
            raise ValidationError("turn must have prompt and response as strings", field="turn")

        if self.jobs.get_job_for_user(job_id, user_id) is None:
            raise NotFoundError(JOB_NOT_FOUND)

        self.jobs.upsert_turn(job_id, turn_index, prompt, response)
        return {"ok": True, "turnIndex": turn_index}

    async def finalize(self, user_id: Any, job_id: Any) -> JobHandle:
        """
        Assemble the staged turns and hand them to the sink.

        Raises:
            NotFoundError: Job missing or owned by another user
            ValidationError: No turns were appended
        """
        user_id = validate_owner(user_id)
        job_id = _require_job_id(job_id)

        job = self.jobs.get_job_for_user(job_id, user_id)
        if job is None:
            raise NotFoundError(JOB_NOT_FOUND)

        turns = self.jobs.list_turns(job_id)
        if not turns:
            raise ValidationError("No turns saved for this job", field="jobId")

        payload = {
            "jobId": job_id,
            "userId": user_id,
            "title": job.title,
            "turns": turns,
            "source": "finalizeIncrementalSave",
        }
        logger.info(f"[IncrementalSave] Finalizing job {job_id} with {len(turns)} turns")

        try:
            return await self.sink.accept(payload)
        finally:
            self._cleanup(job_id)

    def _cleanup(self, job_id: str) -> None:
        try:
            self.jobs.delete_job(job_id)
        except SQLAlchemyError as exc:
            self.jobs.session.rollback()
            logger.error(f"[IncrementalSave] Failed to clean up job {job_id}: {exc}")
