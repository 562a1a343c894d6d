# utils/progress.py
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from catalog import Identity, TaskCatalog
from db import utcnow
from errors import Conflict
from models.group_subtask_state import GroupSubtaskState
from models.subtask import Subtask
from models.task import Task

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupProgress:
    completed: int
    total: int
    percentage: int

    def to_dict(self) -> dict:
        return {"completed": self.completed, "total": self.total, "percentage": self.percentage}


def compute_percentage(completed: int, total: int) -> int:
    """Half-up rounding of 100 * completed / total; 100 only when everything is done."""
    if total <= 0:
        return 0
    completed = max(0, min(completed, total))
    pct = (200 * completed + total) // (2 * total)
    if completed < total:
        pct = min(pct, 99)
    return pct


def compute_group_progress(task: Task, session) -> Optional[GroupProgress]:
    """Shared progress of a group task, or None for an individual task."""
    if not task.is_group_task:
        return None
    sub_ids = list(session.exec(select(Subtask.id).where(Subtask.task_id == task.id)).all())
    if not sub_ids:
        return GroupProgress(completed=0, total=0, percentage=0)
    done = session.exec(
        select(GroupSubtaskState.subtask_id).where(
            GroupSubtaskState.task_id == task.id,
            GroupSubtaskState.subtask_id.in_(sub_ids),
            GroupSubtaskState.is_completed.is_(True),
        )
    ).all()
    completed = len(set(done))
    return GroupProgress(completed=completed, total=len(sub_ids), percentage=compute_percentage(completed, len(sub_ids)))


class GroupProgressAggregator:
    """
    Progress of group tasks, computed from the shared subtask flags only.

    Anyone who can read the task's class can read the progress; a member's own
    completion records play no part in it.
    """

    def __init__(self, session_factory, catalog: Optional[TaskCatalog] = None, clock=utcnow):
        self._session_factory = session_factory
        self._catalog = catalog or TaskCatalog()
        self._clock = clock

    def progress(self, identity: Identity, task_id: int) -> Optional[GroupProgress]:
        with self._session_factory() as s:
            task = self._catalog.require_readable(s, identity, task_id)
            return compute_group_progress(task, s)

    def set_shared(self, s, user_id: int, task: Task, subtask_id: int, is_completed: bool) -> GroupSubtaskState:
        """Write the shared flag inside the caller's transaction."""
        row = s.exec(
            select(GroupSubtaskState).where(
                GroupSubtaskState.task_id == task.id,
                GroupSubtaskState.subtask_id == subtask_id,
            )
        ).first()
        if row is None:
            row = GroupSubtaskState(task_id=task.id, subtask_id=subtask_id, updated_by=user_id)
        row.is_completed = bool(is_completed)
        row.updated_by = user_id
        row.updated_at = self._clock()
        s.add(row)
        try:
            s.flush()
        except IntegrityError as exc:
            raise Conflict(f"Concurrent group write on task={task.id} subtask={subtask_id}") from exc
        logger.debug("Group subtask task=%s subtask=%s completed=%s by=%s", task.id, subtask_id, is_completed, user_id)
        return row
