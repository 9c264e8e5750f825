"""CORS configuration for MCP clients and the ChatVault widget."""
from fastapi.middleware.cors import CORSMiddleware

from chatvault.config import Settings
from chatvault.mcp.protocol import SESSION_HEADER

ALLOWED_HEADERS = ["content-type", SESSION_HEADER, "authorization"]

# Base allowed origins for development
DEV_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def add_cors_middleware(app, settings: Settings):
    """Add CORS middleware to the FastAPI application."""
    print("[CORS] Configuration:")
    print(f"   Environment: {settings.environment}")

    if settings.environment == "production":
        # MCP hosts call from their own origins; the bearer key is the gate
        print("[PROD] Allowing all origins for the MCP endpoint")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["POST", "OPTIONS"],
            allow_headers=ALLOWED_HEADERS,
            expose_headers=[SESSION_HEADER],
        )
        return

    origins = list(DEV_ORIGINS)
    if settings.frontend_url and settings.frontend_url not in origins:
        origins.append(settings.frontend_url)
    print(f"[DEV] Using development CORS with origins: {origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=ALLOWED_HEADERS,
        expose_headers=[SESSION_HEADER],
    )
