import dataclasses
import json
from datetime import datetime

import pytest

from chatvault.errors import NotFoundError, ValidationError
from chatvault.mcp.base_tool import CHAT_NOT_FOUND
from chatvault.mcp.server import create_mcp_server
from chatvault.mcp.tools.help import HELP_TEXT
from chatvault.mcp.tools.paste_save import default_paste_title
from chatvault.services.chat_service import ChatService
from chatvault.services.job_sink import RedisQueueJobSink, status_key

from helpers import FakeRedis, add_chat, keyword_vector, turn


@pytest.fixture
def server(deps):
    return create_mcp_server(deps)


async def call(server, name, **arguments):
    result = await server.invoke_tool(name, arguments)
    return result["structuredContent"]


@pytest.fixture
def chat(session):
    return add_chat(
        session, "u1", "Original", [turn("python?", "yes"), turn("cooking?", "later")],
        embedding=keyword_vector("python cooking"),
    )


async def test_update_title_only_keeps_the_embedding(server, chat, session, embedder):
    data = await call(server, "updateConversation", ownerId="u1", conversationId=chat.id, title="Renamed")

    assert data == {"updated": True, "recordId": chat.id, "title": "Renamed", "turns": chat.turns}
    assert embedder.calls == 0
    session.expire_all()
    assert ChatService(session).get_for_user(chat.id, "u1").title == "Renamed"


async def test_update_turns_regenerates_the_embedding(server, chat, session, embedder):
    new_turns = [turn("music?", "jazz")]

    data = await call(server, "updateConversation", ownerId="u1", conversationId=chat.id, turns=new_turns)

    assert data["turns"] == new_turns
    assert embedder.texts == ["music?\njazz"]
    session.expire_all()
    stored = ChatService(session).get_for_user(chat.id, "u1")
    assert stored.turns == new_turns
    assert list(stored.embedding) == keyword_vector("music?\njazz")


async def test_update_needs_title_or_turns(server, chat):
    with pytest.raises(ValidationError, match="At least one of title or turns must be provided"):
        await call(server, "updateConversation", ownerId="u1", conversationId=chat.id)


async def test_update_validates_before_embedding(server, chat, embedder):
    with pytest.raises(ValidationError, match="Turn 0 must have prompt and response as strings"):
        await call(server, "updateConversation", ownerId="u1", conversationId=chat.id, turns=[{"prompt": "Q"}])
    assert embedder.calls == 0


async def test_update_of_someone_elses_chat_is_not_found(server, chat):
    with pytest.raises(NotFoundError) as exc_info:
        await call(server, "updateConversation", ownerId="u2", conversationId=chat.id, title="Mine now")
    assert exc_info.value.message == CHAT_NOT_FOUND


async def test_update_into_an_existing_duplicate_is_rejected(server, chat, session):
    add_chat(session, "u1", "Twin", chat.turns)
    with pytest.raises(ValidationError, match="identical chat already exists"):
        await call(server, "updateConversation", ownerId="u1", conversationId=chat.id, title="Twin")


async def test_delete(server, chat, session):
    # The fixture row is gone after the call, so its attributes can't be reloaded
    chat_id = chat.id
    data = await call(server, "deleteConversation", ownerId="u1", conversationId=chat_id)

    assert data == {"deleted": True, "recordId": chat_id}
    session.expire_all()
    assert ChatService(session).get_for_user(chat_id, "u1") is None


async def test_missing_and_foreign_chats_look_the_same(server, chat):
    messages = []
    for owner, chat_id in (("u2", chat.id), ("u1", "missing-id")):
        with pytest.raises(NotFoundError) as exc_info:
            await call(server, "deleteConversation", ownerId=owner, conversationId=chat_id)
        messages.append(exc_info.value.message)
    assert messages == [CHAT_NOT_FOUND, CHAT_NOT_FOUND]


async def test_delete_needs_a_conversation_id(server):
    with pytest.raises(ValidationError, match="conversationId is required"):
        await call(server, "deleteConversation", ownerId="u1")


async def test_load_turn(server, chat):
    data = await call(server, "loadConversationTurn", ownerId="u1", conversationId=chat.id, turnIndex=1)
    assert data == {"recordId": chat.id, "turnIndex": 1, "turn": turn("cooking?", "later")}


async def test_load_turn_out_of_range(server, chat):
    with pytest.raises(NotFoundError, match="Turn 2 not found in chat"):
        await call(server, "loadConversationTurn", ownerId="u1", conversationId=chat.id, turnIndex=2)


async def test_load_turn_rejects_a_negative_index(server, chat):
    with pytest.raises(ValidationError, match="turnIndex must be a non-negative integer"):
        await call(server, "loadConversationTurn", ownerId="u1", conversationId=chat.id, turnIndex=-1)


async def test_search_tool_wraps_results(server, chat):
    result = await server.invoke_tool("searchConversations", {"ownerId": "u1", "query": "python"})
    data = result["structuredContent"]
    assert [c["id"] for c in data["chats"]] == [chat.id]
    assert result["content"][0]["text"] == 'Found 1 chats matching "python"'


async def test_incremental_tools_round_trip(server, session):
    job_id = (await call(server, "beginIncrementalSave", ownerId="u1", title="Stepwise"))["jobId"]
    await call(server, "appendTurn", ownerId="u1", jobId=job_id, turnIndex=0, turn=turn("Q1", "A1"))

    data = await call(server, "finalizeIncrementalSave", ownerId="u1", jobId=job_id)

    assert data["wasNewlySaved"] is True
    assert ChatService(session).get_for_user(data["recordId"], "u1").title == "Stepwise"


async def test_help(server):
    result = await server.invoke_tool("explainHowToUse", {"ownerId": "u1"})
    assert result["structuredContent"] == {"helpText": HELP_TEXT}
    assert "Saving conversations" in result["content"][0]["text"]


def test_default_paste_title():
    assert default_paste_title(datetime(2026, 10, 19, 14, 5)) == "manual save Oct 19, 2026, 14:05"


async def test_paste_saves_in_process(server, paste_parser, session):
    data = await call(server, "saveConversationFromPaste", ownerId="u1", content="<div>chat</div>", title="Pasted")

    assert data["wasNewlySaved"] is True
    assert paste_parser.inputs == ["<div>chat</div>"]
    record = ChatService(session).get_for_user(data["recordId"], "u1")
    assert record.title == "Pasted"
    assert record.turns == [turn("Pasted question", "Pasted answer")]


async def test_paste_without_title_gets_a_manual_save_title(server, session):
    data = await call(server, "saveConversationFromPaste", ownerId="u1", content="some chat")
    record = ChatService(session).get_for_user(data["recordId"], "u1")
    assert record.title.startswith("manual save ")


async def test_paste_needs_content(server):
    with pytest.raises(ValidationError, match="content is required"):
        await call(server, "saveConversationFromPaste", ownerId="u1", content="   ")


async def test_paste_over_the_limit_is_reported_not_raised(deps, paste_parser):
    deps = dataclasses.replace(deps, settings=dataclasses.replace(deps.settings, max_paste_chars=10))
    data = await call(create_mcp_server(deps), "saveConversationFromPaste", ownerId="u1", content="x" * 11)

    assert data["error"] == "limit_reached"
    assert paste_parser.inputs == []


async def test_unparseable_paste_is_reported_not_raised(server, paste_parser, embedder):
    paste_parser.turns = None
    data = await call(server, "saveConversationFromPaste", ownerId="u1", content="no turns here")

    assert data["error"] == "parse_error"
    assert embedder.calls == 0


@pytest.fixture
def queued_deps(deps):
    sink = RedisQueueJobSink(FakeRedis(), "chat-save", status_ttl=180)
    return dataclasses.replace(deps, sink=sink)


async def test_paste_with_a_queue_returns_a_pending_job(queued_deps):
    data = await call(create_mcp_server(queued_deps), "saveConversationFromPaste", ownerId="u1", content="chat")

    assert data["status"] == "pending"
    [payload] = queued_deps.sink.redis.queued("chat-save")
    assert payload["htmlContent"] == "chat"
    assert payload["source"] == "widgetAdd"
    assert payload["jobId"] == data["jobId"]


async def test_job_status_lifecycle(queued_deps):
    server = create_mcp_server(queued_deps)
    redis = queued_deps.sink.redis
    job_id = (await call(server, "saveConversationFromPaste", ownerId="u1", content="chat"))["jobId"]

    assert await call(server, "getSaveJobStatus", ownerId="u1", jobId=job_id) == {
        "jobId": job_id, "status": "pending",
    }

    redis.values[status_key(job_id)] = json.dumps(
        {"status": "completed", "userId": "u1", "recordId": "r1"}
    )
    assert await call(server, "getSaveJobStatus", ownerId="u1", jobId=job_id) == {
        "jobId": job_id, "status": "completed", "recordId": "r1",
    }

    redis.expire_all()
    assert await call(server, "getSaveJobStatus", ownerId="u1", jobId=job_id) == {
        "jobId": job_id, "status": "expired",
    }


async def test_job_status_of_another_users_job_is_not_found(queued_deps):
    server = create_mcp_server(queued_deps)
    job_id = (await call(server, "saveConversationFromPaste", ownerId="u1", content="chat"))["jobId"]

    with pytest.raises(NotFoundError, match="Job not found"):
        await call(server, "getSaveJobStatus", ownerId="u2", jobId=job_id)


async def test_job_status_without_a_queue_is_not_found(server):
    with pytest.raises(NotFoundError, match="Job not found"):
        await call(server, "getSaveJobStatus", ownerId="u1", jobId="anything")
