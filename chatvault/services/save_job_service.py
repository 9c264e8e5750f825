"""Save job service: staging storage for incremental saves."""
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, select

from chatvault.models.chat import Turn
from chatvault.models.save_job import ChatSaveJob, ChatSaveJobTurn


class SaveJobService:
    """Service class for save jobs and their staged turns."""

    def __init__(self, session: Session):
        self.session = session

    def create_job(self, user_id: str, title: str) -> ChatSaveJob:
        """Create an empty job owned by user_id."""
        job = ChatSaveJob(user_id=user_id, title=title)
        self.session.add(job)
        self.session.commit()
        self.session.refresh(job)
        return job

    def get_job_for_user(self, job_id: str, user_id: str) -> Optional[ChatSaveJob]:
        """Get a job ensuring ownership."""
        statement = select(ChatSaveJob).where(
            ChatSaveJob.id == job_id,
            ChatSaveJob.user_id == user_id,
        )
        return self.session.exec(statement).first()

    def upsert_turn(self, job_id: str, turn_index: int, prompt: str, response: str) -> None:
        """Stage a turn; re-sending an index overwrites the earlier one."""
        dialect = self.session.get_bind().dialect.name
        insert = pg_insert if dialect == "postgresql" else sqlite_insert

        statement = insert(ChatSaveJobTurn.__table__).values(
            job_id=job_id,
            turn_index=turn_index,
            prompt=prompt,
            response=response,
        )
        statement = statement.on_conflict_do_update(
            index_elements=["job_id", "turn_index"],
            set_={"prompt": statement.excluded.prompt, "response": statement.excluded.response},
        )
        self.session.exec(statement)
        self.session.commit()

    def list_turns(self, job_id: str) -> List[Turn]:
        """Staged turns for a job, ordered by turn index."""
        statement = (
            select(ChatSaveJobTurn)
            .where(ChatSaveJobTurn.job_id == job_id)
            .order_by(ChatSaveJobTurn.turn_index)
        )
        return [
            {"prompt": row.prompt, "response": row.response}
            for row in self.session.exec(statement).all()
        ]

    def delete_job(self, job_id: str) -> None:
        """Delete a job and its staged turns."""
        # Explicit turn delete as well; SQLite only cascades with foreign_keys=ON
        self.session.exec(delete(ChatSaveJobTurn).where(ChatSaveJobTurn.job_id == job_id))
        self.session.exec(delete(ChatSaveJob).where(ChatSaveJob.id == job_id))
        self.session.commit()
