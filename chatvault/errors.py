"""
Error taxonomy for ChatVault

Validation and not-found errors are user-facing: their message is safe to
show the caller verbatim. Upstream and store failures are internal: the
dispatch boundary reports a generic message and keeps the detail aside.
"""

from typing import Any, Dict, Optional


class VaultError(Exception):
    """Base exception for ChatVault errors"""

    user_facing = False

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(VaultError):
    """Missing or malformed input, rejected before any external call"""

    user_facing = True

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            details={"field": field} if field else None,
        )


class NotFoundError(VaultError):
    """
    Resource missing for this owner.

    The same message is used whether the id does not exist or belongs to
    someone else, so callers cannot probe for other users' records.
    """

    user_facing = True

    def __init__(self, message: str):
        super().__init__(code="NOT_FOUND", message=message)


class EmbeddingError(VaultError):
    """Embedding generation failed (quota, size, network, bad response)"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(code="EMBEDDING_ERROR", message=message, details=details)


class ParseError(VaultError):
    """Paste parsing service failed"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(code="PARSE_ERROR", message=message, details=details)


class StoreError(VaultError):
    """Record store did not behave as expected"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(code="STORE_ERROR", message=message, details=details)


class QueueError(VaultError):
    """Work queue or status store failure"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(code="QUEUE_ERROR", message=message, details=details)


# Substrings that mark a plain exception message as caller-actionable
USER_FACING_PATTERNS = ("not found", "required", "invalid", "must", "cannot", "exceed")


def is_user_facing(error: BaseException) -> bool:
    """Decide whether an error's message may be shown to the caller verbatim."""
    if isinstance(error, VaultError):
        return error.user_facing
    message = str(error).lower()
    return any(pattern in message for pattern in USER_FACING_PATTERNS)
