# catalog.py

"""Read-only view of the collaborators the engine depends on.

Task/subtask content and user accounts are managed elsewhere; the engine only
needs identity, class membership and the task/subtask/member structure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from sqlmodel import Session, select

from errors import NotFound, Unauthorized
from models.subtask import Subtask
from models.task import Task
from models.task_member import TaskMember


@dataclass(frozen=True, slots=True)
class Identity:
    user_id: int
    class_id: Optional[int]
    is_admin: bool = False


class TaskCatalog:
    """Catalog lookups. Every method runs on the caller's session."""

    def get_task(self, s: Session, task_id: int) -> Task:
        task = s.get(Task, task_id)
        if task is None:
            raise NotFound(f"Task {task_id} not found")
        return task

    def require_readable(self, s: Session, identity: Identity, task_id: int) -> Task:
        task = self.get_task(s, task_id)
        if not identity.is_admin and identity.class_id != task.class_id:
            raise Unauthorized(f"User {identity.user_id} cannot read task {task_id}")
        return task

    def subtask_ids(self, s: Session, task_id: int) -> List[int]:
        rows = s.exec(
            select(Subtask.id)
            .where(Subtask.task_id == task_id)
            .order_by(Subtask.created_at.asc(), Subtask.id.asc())
        ).all()
        return list(rows)

    def get_subtask(self, s: Session, task_id: int, subtask_id: int) -> Subtask:
        sub = s.get(Subtask, subtask_id)
        if sub is None or sub.task_id != task_id:
            raise NotFound(f"Subtask {subtask_id} not found on task {task_id}")
        return sub

    def member_ids(self, s: Session, task_id: int) -> List[int]:
        rows = s.exec(select(TaskMember.user_id).where(TaskMember.task_id == task_id)).all()
        return list(rows)

    def can_edit_group(self, s: Session, identity: Identity, task: Task) -> bool:
        if identity.is_admin or task.author_id == identity.user_id:
            return True
        return identity.user_id in self.member_ids(s, task.id)

    def tasks_for_class(self, s: Session, class_id: Optional[int]) -> List[Task]:
        if class_id is None:
            return []
        return list(
            s.exec(
                select(Task).where(Task.class_id == class_id).order_by(Task.date.asc(), Task.id.asc())
            ).all()
        )
