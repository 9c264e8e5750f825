"""Shared-secret bearer authentication for the MCP endpoint."""
import hmac
import logging

from fastapi import HTTPException, Request, status

from chatvault.config import Settings, get_settings

logger = logging.getLogger(__name__)


def _settings_for(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


async def require_api_key(request: Request) -> None:
    """
    Check the Authorization header against CHATVAULT_API_KEY.

    Raises:
        HTTPException: 500 when no key is configured, 401 when the header is
            missing or the token does not match
    """
    # Skip authentication for OPTIONS requests (preflight CORS requests)
    if request.method == "OPTIONS":
        return

    expected = _settings_for(request).api_key
    if not expected:
        logger.error("[Auth] CHATVAULT_API_KEY is not set")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfigured",
        )

    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = auth_header[7:]  # Remove "Bearer " prefix
    if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
