import json

import httpx
import pytest

from chatvault.errors import EmbeddingError
from chatvault.services import embeddings as embeddings_module
from chatvault.services.embeddings import OpenAIEmbeddingClient
from chatvault.services.paste_parser import TRUNCATION_NOTE, PasteParser, extract_turns


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    async def instant(seconds):
        return None

    monkeypatch.setattr(embeddings_module.asyncio, "sleep", instant)


def embedding_client(handler, dimensions=3, api_key="sk-test", max_retries=2):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAIEmbeddingClient(
        api_key=api_key, dimensions=dimensions, max_retries=max_retries, http_client=http_client
    )


def embedding_body(vector):
    return {"data": [{"embedding": vector}]}


async def test_embedding_request_and_response():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=embedding_body([0.1, 0.2, 0.3]))

    vector = await embedding_client(handler).embed("hello")

    assert vector == [0.1, 0.2, 0.3]
    [request] = seen
    assert request.url == "https://api.openai.com/v1/embeddings"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert json.loads(request.content) == {"model": "text-embedding-3-small", "input": "hello"}


async def test_transient_status_is_retried():
    statuses = iter([429, 503, 200])

    def handler(request):
        status = next(statuses)
        if status == 200:
            return httpx.Response(200, json=embedding_body([1, 0, 0]))
        return httpx.Response(status, json={"error": "busy"})

    assert await embedding_client(handler).embed("hello") == [1.0, 0.0, 0.0]


async def test_retries_run_out():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="boom")

    with pytest.raises(EmbeddingError) as exc_info:
        await embedding_client(handler, max_retries=1).embed("hello")
    assert len(calls) == 2
    assert exc_info.value.details["status"] == 500


async def test_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": {"message": "too long"}})

    with pytest.raises(EmbeddingError, match="status 400"):
        await embedding_client(handler).embed("hello")
    assert len(calls) == 1


async def test_network_failure_becomes_an_embedding_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(EmbeddingError):
        await embedding_client(handler).embed("hello")


@pytest.mark.parametrize("body", [{"data": []}, {"nothing": True}, {"data": [{"embedding": None}]}])
async def test_malformed_response(body):
    def handler(request):
        return httpx.Response(200, json=body)

    with pytest.raises(EmbeddingError, match="malformed response"):
        await embedding_client(handler).embed("hello")


async def test_wrong_dimensions_are_rejected():
    def handler(request):
        return httpx.Response(200, json=embedding_body([0.1, 0.2]))

    with pytest.raises(EmbeddingError, match="expected 3 dimensions, got 2"):
        await embedding_client(handler).embed("hello")


async def test_missing_key_and_empty_text_fail_without_a_request():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(EmbeddingError, match="OPENAI_API_KEY"):
        await embedding_client(handler, api_key=None).embed("hello")
    with pytest.raises(EmbeddingError, match="empty"):
        await embedding_client(handler).embed("   ")


def completion(content, refusal=None):
    message = {"role": "assistant", "content": content}
    if refusal:
        message["refusal"] = refusal
    return {"choices": [{"message": message}]}


def parser_with(handler, api_key="sk-test", max_input_chars=1000):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PasteParser(api_key=api_key, max_input_chars=max_input_chars, http_client=http_client)


async def test_parser_returns_turns():
    reply = json.dumps({"turns": [{"prompt": "Hi", "response": "Hello"}]})
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=completion(reply))

    assert await parser_with(handler).parse("<p>Hi</p>") == [{"prompt": "Hi", "response": "Hello"}]
    assert seen[0]["response_format"] == {"type": "json_object"}
    assert seen[0]["messages"][-1]["content"] == "<p>Hi</p>"


async def test_parser_truncates_oversized_input():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=completion(json.dumps({"turns": [{"prompt": "a", "response": "b"}]})))

    await parser_with(handler, max_input_chars=10).parse("x" * 50)
    assert seen[0]["messages"][-1]["content"] == "x" * 10 + TRUNCATION_NOTE


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="down"),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json=completion(None, refusal="I can't help with that")),
        httpx.Response(200, json=completion("not json")),
        httpx.Response(200, json=completion(json.dumps({"turns": []}))),
    ],
)
async def test_parser_failures_yield_none(response):
    assert await parser_with(lambda request: response).parse("content") is None


async def test_parser_without_a_key_does_not_call_out():
    def handler(request):
        raise AssertionError("no request expected")

    assert await parser_with(handler, api_key=None).parse("content") is None


def test_extract_turns_drops_malformed_entries():
    raw = json.dumps({"turns": [
        {"prompt": "Q1", "response": "A1"},
        {"prompt": "Q2"},
        "junk",
        {"prompt": "Q3", "response": "", "extra": 1},
    ]})
    assert extract_turns(raw) == [
        {"prompt": "Q1", "response": "A1"},
        {"prompt": "Q3", "response": ""},
    ]
