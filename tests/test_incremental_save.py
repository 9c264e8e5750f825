import pytest
from sqlmodel import select

from chatvault.errors import NotFoundError, QueueError, ValidationError
from chatvault.models.chat import ChatRecord
from chatvault.models.save_job import ChatSaveJob, ChatSaveJobTurn
from chatvault.services.chat_service import ChatService
from chatvault.services.incremental_save import JOB_NOT_FOUND, IncrementalSaveService
from chatvault.services.job_sink import JobSink, RedisQueueJobSink
from chatvault.services.save_job_service import SaveJobService

from helpers import FakeRedis, turn


class FailingSink(JobSink):
    async def accept(self, payload):
        raise QueueError("Failed to queue chat save job: connection refused")


@pytest.fixture
def service(session, in_process_sink):
    return IncrementalSaveService(SaveJobService(session), in_process_sink)


def staged_rows(session):
    jobs = session.exec(select(ChatSaveJob)).all()
    turns = session.exec(select(ChatSaveJobTurn)).all()
    return len(jobs), len(turns)


async def test_begin_append_finalize_saves_turns_in_index_order(service, session):
    job_id = service.begin("u1", "Long chat")
    # Out-of-order appends are reassembled by index
    service.append("u1", job_id, 1, turn("Q2", "A2"))
    service.append("u1", job_id, 0, turn("Q1", "A1"))

    handle = await service.finalize("u1", job_id)

    assert handle.queued is False
    assert handle.to_dict()["wasNewlySaved"] is True
    record = ChatService(session).get_for_user(handle.result.chat_id, "u1")
    assert record.title == "Long chat"
    assert record.turns == [turn("Q1", "A1"), turn("Q2", "A2")]


async def test_append_acknowledges_the_index(service):
    job_id = service.begin("u1", "T")
    assert service.append("u1", job_id, 3, turn("Q", "A")) == {"ok": True, "turnIndex": 3}


async def test_appending_the_same_index_keeps_the_last_write(service, session):
    job_id = service.begin("u1", "T")
    service.append("u1", job_id, 0, turn("first", "draft"))
    service.append("u1", job_id, 0, turn("second", "final"))

    assert SaveJobService(session).list_turns(job_id) == [turn("second", "final")]

    handle = await service.finalize("u1", job_id)
    record = ChatService(session).get_for_user(handle.result.chat_id, "u1")
    assert record.turns == [turn("second", "final")]


async def test_finalize_removes_the_staging_rows(service, session):
    job_id = service.begin("u1", "T")
    service.append("u1", job_id, 0, turn("Q", "A"))

    await service.finalize("u1", job_id)

    session.expire_all()
    assert staged_rows(session) == (0, 0)


async def test_staging_rows_are_removed_even_when_the_sink_fails(session):
    service = IncrementalSaveService(SaveJobService(session), FailingSink())
    job_id = service.begin("u1", "T")
    service.append("u1", job_id, 0, turn("Q", "A"))

    with pytest.raises(QueueError):
        await service.finalize("u1", job_id)

    session.expire_all()
    assert staged_rows(session) == (0, 0)


async def test_another_users_job_is_invisible(service):
    job_id = service.begin("u1", "T")

    with pytest.raises(NotFoundError) as exc_info:
        service.append("u2", job_id, 0, turn("Q", "A"))
    assert exc_info.value.message == JOB_NOT_FOUND

    service.append("u1", job_id, 0, turn("Q", "A"))
    with pytest.raises(NotFoundError):
        await service.finalize("u2", job_id)


async def test_unknown_job_is_not_found(service):
    with pytest.raises(NotFoundError):
        service.append("u1", "no-such-job", 0, turn("Q", "A"))
    with pytest.raises(NotFoundError):
        await service.finalize("u1", "no-such-job")


@pytest.mark.parametrize("turn_index", [-1, 1.5, "0", True, None])
async def test_bad_turn_index_is_rejected(service, turn_index):
    job_id = service.begin("u1", "T")
    with pytest.raises(ValidationError, match="turnIndex must be a non-negative integer"):
        service.append("u1", job_id, turn_index, turn("Q", "A"))


@pytest.mark.parametrize(
    "bad_turn, message",
    [
        ("Q and A", "turn must be an object with prompt and response"),
        ({"prompt": "Q"}, "turn must have prompt and response as strings"),
        ({"prompt": "Q", "response": 7}, "turn must have prompt and response as strings"),
    ],
)
async def test_bad_turn_shape_is_rejected(service, bad_turn, message):
    job_id = service.begin("u1", "T")
    with pytest.raises(ValidationError) as exc_info:
        service.append("u1", job_id, 0, bad_turn)
    assert exc_info.value.message == message


async def test_begin_validates_owner_and_title(service):
    with pytest.raises(ValidationError, match="ownerId is required"):
        service.begin("", "T")
    with pytest.raises(ValidationError, match="title is required"):
        service.begin("u1", "  ")


async def test_missing_job_id_is_rejected(service):
    with pytest.raises(ValidationError, match="jobId is required"):
        service.append("u1", "", 0, turn("Q", "A"))
    with pytest.raises(ValidationError, match="jobId is required"):
        await service.finalize("u1", None)


async def test_finalize_with_no_turns_is_a_validation_error(service, session, embedder):
    job_id = service.begin("u1", "T")

    with pytest.raises(ValidationError, match="No turns saved for this job"):
        await service.finalize("u1", job_id)

    assert embedder.calls == 0
    # The empty job stays, so turns can still be appended
    assert SaveJobService(session).get_job_for_user(job_id, "u1") is not None


async def test_queued_finalize_returns_a_pending_job(session):
    redis = FakeRedis()
    sink = RedisQueueJobSink(redis, "chat-save", status_ttl=180)
    service = IncrementalSaveService(SaveJobService(session), sink)
    job_id = service.begin("u1", "T")
    service.append("u1", job_id, 0, turn("Q", "A"))

    handle = await service.finalize("u1", job_id)

    assert handle.to_dict() == {"jobId": job_id, "status": "pending"}
    [payload] = redis.queued("chat-save")
    assert payload["turns"] == [turn("Q", "A")]
    assert payload["source"] == "finalizeIncrementalSave"
    assert session.exec(select(ChatRecord)).all() == []
