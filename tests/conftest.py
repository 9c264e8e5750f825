"""
Shared pytest fixtures for ChatVault tests.

Provides:
- An in-memory SQLite engine with all tables created, and a session on it
- A deterministic keyword embedder (no network)
- An in-memory stand-in for the async Redis client
- Server dependencies wired the way create_app() wires them
"""

import os

# Must be set before chatvault.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["OPENAI_API_KEY"] = ""

import pytest
from sqlmodel import Session

from chatvault.config import Settings
from chatvault.db.config import build_engine
from chatvault.db.init import init_db
from chatvault.mcp.server import ServerDependencies
from chatvault.services.job_sink import InProcessJobSink

from helpers import FakePasteParser, FakeRedis, KeywordEmbedder


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite://", api_key="test-key", require_session=True)


@pytest.fixture
def engine():
    test_engine = build_engine("sqlite://")
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as db:
        yield db


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def paste_parser() -> FakePasteParser:
    return FakePasteParser(turns=[{"prompt": "Pasted question", "response": "Pasted answer"}])


@pytest.fixture
def in_process_sink(engine, embedder, settings, paste_parser) -> InProcessJobSink:
    return InProcessJobSink(engine, embedder, settings.max_embedding_chars, paste_parser)


@pytest.fixture
def deps(settings, engine, embedder, in_process_sink) -> ServerDependencies:
    return ServerDependencies(
        settings=settings,
        engine=engine,
        embedder=embedder,
        sink=in_process_sink,
    )
