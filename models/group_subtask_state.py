# models/group_subtask_state.py
from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional
from datetime import datetime

from db import UTCDateTime, utcnow

class GroupSubtaskState(SQLModel, table=True):
    """Shared done flag of a group-task subtask; one row per subtask, visible to every member."""
    __tablename__ = "group_subtask_states"
    __table_args__ = (
        UniqueConstraint("task_id", "subtask_id", name="uq_group_subtask"),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(index=True)
    subtask_id: int
    is_completed: bool = Field(default=False)
    updated_by: int
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
