"""Alembic environment for ChatVault migrations."""
from alembic import context
from sqlmodel import SQLModel

from chatvault.db.config import engine
# Imported for their side effect of registering tables on SQLModel.metadata
from chatvault.models import ChatRecord, ChatSaveJob, ChatSaveJobTurn  # noqa: F401

target_metadata = SQLModel.metadata


def run_migrations_offline():
    context.configure(
        url=str(engine.url),
        target_metadata=target_metadata,
        literal_binds=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
