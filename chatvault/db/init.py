"""Initialize database tables."""
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

# Imported for their side effect of registering tables on SQLModel.metadata
from chatvault.models.chat import ChatRecord  # noqa: F401
from chatvault.models.save_job import ChatSaveJob, ChatSaveJobTurn  # noqa: F401


def init_db(target: Engine = None):
    """Create all tables in the database."""
    if target is None:
        from chatvault.db.config import engine as target

    if target.dialect.name == "postgresql":
        print("[DB INIT] Ensuring pgvector extension...")
        with target.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))

    print("[DB INIT] Creating all tables...")
    SQLModel.metadata.create_all(target)
    print("[DB INIT] Tables created successfully.")


if __name__ == "__main__":
    init_db()
    print("Database tables created successfully.")
