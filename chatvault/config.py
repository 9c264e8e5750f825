"""Configuration for the ChatVault MCP server."""
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
import os

from dotenv import load_dotenv

# Load environment variables from .env for local development
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_optional(name: str) -> Optional[str]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read once at startup."""

    database_url: str = "sqlite:///./chatvault.db"
    api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    parse_model: str = "gpt-4.1-nano"
    max_embedding_chars: int = 24000
    min_similarity: float = 0.3
    require_session: bool = True
    redis_url: Optional[str] = None
    chat_save_queue: str = "queue:mcp:chat-save"
    job_status_ttl: int = 180
    max_paste_chars: int = 1_000_000
    widget_dir: Optional[str] = None
    environment: str = "development"
    frontend_url: Optional[str] = None

    @property
    def queue_configured(self) -> bool:
        return bool(self.redis_url)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.environ.get("DATABASE_URL", "sqlite:///./chatvault.db"),
            api_key=_env_optional("CHATVAULT_API_KEY"),
            openai_api_key=_env_optional("OPENAI_API_KEY"),
            openai_base_url=os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            embedding_model=os.environ.get("CHATVAULT_EMBEDDING_MODEL", "text-embedding-3-small"),
            parse_model=os.environ.get("CHATVAULT_PARSE_MODEL", "gpt-4.1-nano"),
            max_embedding_chars=int(os.environ.get("CHATVAULT_MAX_EMBEDDING_CHARS", "24000")),
            min_similarity=float(os.environ.get("CHATVAULT_MIN_SIMILARITY", "0.3")),
            require_session=_env_bool("CHATVAULT_REQUIRE_SESSION", True),
            redis_url=_env_optional("REDIS_URL"),
            chat_save_queue=os.environ.get("CHATVAULT_CHAT_SAVE_QUEUE", "queue:mcp:chat-save"),
            job_status_ttl=int(os.environ.get("CHATVAULT_JOB_STATUS_TTL", "180")),
            max_paste_chars=int(os.environ.get("CHATVAULT_MAX_PASTE_CHARS", "1000000")),
            widget_dir=_env_optional("CHATVAULT_WIDGET_DIR"),
            environment=os.environ.get("ENVIRONMENT", "development"),
            frontend_url=_env_optional("FRONTEND_URL"),
        )


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings.from_env()
