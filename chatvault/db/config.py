"""Database configuration for ChatVault."""
from sqlmodel import create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from chatvault.config import get_settings

DATABASE_URL = get_settings().database_url

# Check if we're using PostgreSQL or SQLite
if DATABASE_URL.startswith("postgresql"):
    print("[DB CONFIG] Using PostgreSQL database")
else:
    print(f"[DB CONFIG] Using SQLite database: {DATABASE_URL}")


def build_engine(database_url: str) -> Engine:
    """Create an engine with the per-dialect settings ChatVault relies on."""
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=False, pool_pre_ping=True)

    connect_args = {"check_same_thread": False}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        sqlite_engine = create_engine(
            database_url, echo=False, connect_args=connect_args, poolclass=StaticPool
        )
    else:
        sqlite_engine = create_engine(database_url, echo=False, connect_args=connect_args)

    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        # Foreign keys drive the job-turn cascade; WAL for concurrent readers
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return sqlite_engine


engine = build_engine(DATABASE_URL)
