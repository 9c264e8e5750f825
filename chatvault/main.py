"""Main FastAPI application for the ChatVault MCP server."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from pydantic import BaseModel
from sqlalchemy.engine import Engine

from chatvault import __version__
from chatvault.config import Settings, get_settings
from chatvault.db.init import init_db
from chatvault.mcp.dispatcher import McpDispatcher
from chatvault.mcp.server import ServerDependencies, create_mcp_server
from chatvault.mcp.session import InMemorySessionStore, SessionStore
from chatvault.middleware.cors import add_cors_middleware
from chatvault.routers import mcp_router
from chatvault.services.embeddings import EmbeddingGateway, OpenAIEmbeddingClient
from chatvault.services.job_sink import JobSink, build_job_sink
from chatvault.services.paste_parser import PasteParser


class HealthResponse(BaseModel):
    status: str
    version: str
    sessions: int
    queue: bool


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    embedder: Optional[EmbeddingGateway] = None,
    sink: Optional[JobSink] = None,
    paste_parser: Optional[PasteParser] = None,
    session_store: Optional[SessionStore] = None,
) -> FastAPI:
    """
    Build the application with its collaborators.

    Anything not passed in is built from settings, which default to the
    environment.
    """
    settings = settings or get_settings()
    if engine is None:
        from chatvault.db.config import engine
    embedder = embedder or OpenAIEmbeddingClient.from_settings(settings)
    paste_parser = paste_parser or PasteParser.from_settings(settings)
    sink = sink or build_job_sink(settings, engine, embedder, paste_parser)
    session_store = session_store or InMemorySessionStore()

    deps = ServerDependencies(
        settings=settings,
        engine=engine,
        embedder=embedder,
        sink=sink,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            init_db(engine)
            print("[SUCCESS] Database tables initialized successfully.")
        except Exception as e:
            print(f"[WARNING] Database initialization failed: {str(e)}")
            print("[WARNING] Server will continue but database operations may fail.")
            print("[WARNING] Please check your DATABASE_URL and network connection.")

        print(f"[SUCCESS] MCP Server ready with tools: {create_mcp_server(deps).list_tools()}")
        yield

        await sink.close()
        for client in (embedder, paste_parser):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()
        print("[SUCCESS] Application shutdown complete.")

    app = FastAPI(
        title="ChatVault MCP Server",
        description="Save, browse and semantically search chat conversations over MCP",
        version=__version__,
        lifespan=lifespan,
    )

    add_cors_middleware(app, settings)

    app.state.settings = settings
    app.state.deps = deps
    app.state.sessions = session_store
    app.state.dispatcher = McpDispatcher(
        server_factory=lambda: create_mcp_server(deps),
        session_store=session_store,
        require_session=settings.require_session,
    )

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            sessions=len(session_store),
            queue=settings.queue_configured,
        )

    @app.get("/")
    async def root():
        """Root endpoint - API welcome message."""
        return {
            "message": "ChatVault MCP server",
            "version": __version__,
            "mcp": "/mcp",
            "health": "/health",
        }

    app.include_router(mcp_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "chatvault.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
