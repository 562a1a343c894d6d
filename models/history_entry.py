# models/history_entry.py
from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional
from datetime import datetime

from db import UTCDateTime, utcnow

class HistoryEntry(SQLModel, table=True):
    __tablename__ = "history_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "task_id", name="uq_history_user_task"),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    task_id: int = Field(index=True)
    title: str
    completed_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)

    def to_dict(self) -> dict:
        return {"task_id": self.task_id, "title": self.title, "completed_at": self.completed_at}
