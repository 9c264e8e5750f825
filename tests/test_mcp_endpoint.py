"""
HTTP tests for the MCP endpoint: authentication, the session header and the
empty notification acknowledgement.
"""

import dataclasses

import pytest
from fastapi.testclient import TestClient

from chatvault.main import create_app
from chatvault.mcp.protocol import SESSION_HEADER

AUTH = {"Authorization": "Bearer test-key"}


def rpc(method, params=None, request_id=1):
    message = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


@pytest.fixture
def app(settings, engine, embedder, in_process_sink, paste_parser):
    return create_app(
        settings=settings,
        engine=engine,
        embedder=embedder,
        sink=in_process_sink,
        paste_parser=paste_parser,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def open_session(client, path="/mcp"):
    response = client.post(path, json=rpc("initialize", {"protocolVersion": "2025-06-18"}), headers=AUTH)
    assert response.status_code == 200
    return response.headers[SESSION_HEADER]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "version": "0.3.0", "sessions": 0, "queue": False}


def test_root_points_at_the_endpoints(client):
    assert client.get("/").json()["mcp"] == "/mcp"


def test_missing_authorization_is_401(client):
    response = client.post("/mcp", json=rpc("initialize"))
    assert response.status_code == 401
    assert response.json()["detail"] == "Missing or invalid Authorization header"
    assert response.headers["www-authenticate"] == "Bearer"


def test_wrong_key_is_401(client):
    response = client.post("/mcp", json=rpc("initialize"), headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid API key"


def test_non_bearer_scheme_is_401(client):
    response = client.post("/mcp", json=rpc("initialize"), headers={"Authorization": "Basic dGVzdA=="})
    assert response.status_code == 401


def test_unconfigured_key_is_500(settings, engine, embedder, in_process_sink, paste_parser):
    app = create_app(
        settings=dataclasses.replace(settings, api_key=None),
        engine=engine,
        embedder=embedder,
        sink=in_process_sink,
        paste_parser=paste_parser,
    )
    with TestClient(app) as client:
        response = client.post("/mcp", json=rpc("initialize"), headers=AUTH)
    assert response.status_code == 500
    assert response.json()["detail"] == "Server misconfigured"


def test_session_header_round_trip(client):
    session_id = open_session(client)

    response = client.post("/mcp", json=rpc("tools/list"), headers={**AUTH, SESSION_HEADER: session_id})

    assert response.status_code == 200
    assert response.headers[SESSION_HEADER] == session_id
    assert any(tool["name"] == "saveConversation" for tool in response.json()["result"]["tools"])
    assert client.get("/health").json()["sessions"] == 1


def test_request_without_session_is_refused(client):
    response = client.post("/mcp", json=rpc("tools/list"), headers=AUTH)
    assert response.status_code == 200
    assert response.json()["error"]["code"] == -32000


def test_notification_gets_204_with_no_body(client):
    session_id = open_session(client)
    response = client.post(
        "/mcp",
        json={"jsonrpc": "2.0", "method": "notifications/initialized"},
        headers={**AUTH, SESSION_HEADER: session_id},
    )
    assert response.status_code == 204
    assert response.content == b""
    assert response.headers[SESSION_HEADER] == session_id


def test_parse_error_over_http(client):
    response = client.post(
        "/mcp", content=b"{oops", headers={**AUTH, "Content-Type": "application/json"}
    )
    assert response.status_code == 200
    assert response.json()["error"]["code"] == -32700


def test_api_prefixed_path_behaves_the_same(client):
    session_id = open_session(client, path="/api/mcp")
    headers = {**AUTH, SESSION_HEADER: session_id}

    saved = client.post(
        "/api/mcp",
        json=rpc("tools/call", {"name": "saveConversation", "arguments": {
            "ownerId": "u1", "title": "Trip", "turns": [{"prompt": "travel?", "response": "Lisbon"}],
        }}),
        headers=headers,
    ).json()
    # Same session store behind both paths
    listed = client.post(
        "/mcp",
        json=rpc("tools/call", {"name": "listConversations", "arguments": {"ownerId": "u1"}}),
        headers=headers,
    ).json()

    record_id = saved["result"]["structuredContent"]["recordId"]
    assert [chat["id"] for chat in listed["result"]["structuredContent"]["chats"]] == [record_id]


def test_cors_preflight_is_not_authenticated(client):
    response = client.options(
        "/mcp",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization,content-type,mcp-session-id",
        },
    )
    assert response.status_code == 200
