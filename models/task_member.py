# models/task_member.py
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import UniqueConstraint
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from models.task import Task

class TaskMember(SQLModel, table=True):
    """A named member of a group task."""
    __tablename__ = "task_members"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_member"),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="tasks.id", index=True)
    user_id: int = Field(index=True)

    task: "Task" = Relationship(back_populates="members")
