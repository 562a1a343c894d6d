# models/completion_record.py
from sqlmodel import SQLModel, Field
from sqlalchemy import Index, text
from typing import Optional
from datetime import datetime

from db import UTCDateTime, utcnow

class CompletionRecord(SQLModel, table=True):
    """
    Per-user done flag for a task (subtask_id is None) or one of its subtasks.

    No row means "not completed". The composite key (user_id, task_id, subtask_id)
    is unique; NULL subtask_id gets its own partial index so it cannot repeat.
    """
    __tablename__ = "completion_records"
    __table_args__ = (
        Index(
            "uq_completion_task_level", "user_id", "task_id", unique=True,
            sqlite_where=text("subtask_id IS NULL"),
            postgresql_where=text("subtask_id IS NULL"),
        ),
        Index(
            "uq_completion_subtask_level", "user_id", "task_id", "subtask_id", unique=True,
            sqlite_where=text("subtask_id IS NOT NULL"),
            postgresql_where=text("subtask_id IS NOT NULL"),
        ),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    task_id: int = Field(index=True)
    subtask_id: Optional[int] = Field(default=None, index=True)
    is_completed: bool = Field(default=False)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    @property
    def key(self):
        return (self.task_id, self.subtask_id)

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "subtask_id": self.subtask_id,
            "is_completed": bool(self.is_completed),
            "updated_at": self.updated_at,
        }
