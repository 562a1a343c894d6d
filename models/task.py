# models/task.py
from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, List, TYPE_CHECKING
from datetime import datetime

from db import UTCDateTime, utcnow

if TYPE_CHECKING:
    from models.subtask import Subtask
    from models.task_member import TaskMember

class Task(SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    author_id: int = Field(index=True)
    class_id: int = Field(index=True)
    title: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    date: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    deadline: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    is_group_task: bool = Field(default=False)

    subtasks: List["Subtask"] = Relationship(back_populates="task")
    members: List["TaskMember"] = Relationship(back_populates="task")
