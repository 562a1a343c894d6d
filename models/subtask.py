# models/subtask.py
from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, TYPE_CHECKING
from datetime import datetime

from db import UTCDateTime, utcnow

if TYPE_CHECKING:
    from models.task import Task

class Subtask(SQLModel, table=True):
    __tablename__ = "subtasks"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="tasks.id", index=True)
    author_id: int
    content: str
    deadline: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    task: "Task" = Relationship(back_populates="subtasks")
