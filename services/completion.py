# services/completion.py

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable, List, Optional, Set, TypeVar

from catalog import Identity
from config import Settings, get_settings
from db import utcnow
from errors import Conflict, Unauthorized
from services.cascade import CascadeEngine, CascadeResult
from services.history import HistoryArchiver
from services.status_store import StatusStore
from utils.progress import GroupProgressAggregator

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CompletionService:
    """
    What the UI talks to: the completion engine seen by one signed-in user.

    One service per view/identity; the CascadeEngine (and its locks) is shared
    by every service in the process. Results are plain dicts.
    """

    def __init__(self, identity: Identity, engine: CascadeEngine, settings: Optional[Settings] = None) -> None:
        self.identity = identity
        self.engine = engine
        self.settings = settings or get_settings()
        store = engine.store
        self.groups = GroupProgressAggregator(store.session_factory, store.catalog, clock=store.now)

    @property
    def store(self):
        return self.engine.store

    @property
    def catalog(self):
        return self.engine.store.catalog

    # ---- statuses ----

    def get_statuses(self, task_id: int) -> List[dict]:
        return [r.to_dict() for r in self.store.get_statuses(self.identity, task_id)]

    def toggle_task(self, task_id: int, is_completed: bool) -> None:
        self._retry_once(f"task {task_id}", lambda: self._toggle_task(task_id, is_completed))

    def toggle_subtask(self, task_id: int, subtask_id: int, is_completed: bool) -> None:
        self._retry_once(
            f"subtask {subtask_id} of task {task_id}",
            lambda: self._toggle_subtask(task_id, subtask_id, is_completed),
        )

    def _toggle_task(self, task_id: int, is_completed: bool) -> CascadeResult:
        user_id = self.identity.user_id
        with self.engine.transaction(user_id, task_id) as s:
            task = self.catalog.require_readable(s, self.identity, task_id)
            if task.is_group_task:
                self._require_group_member(s, task)
                if is_completed:
                    for sid in self.catalog.subtask_ids(s, task_id):
                        self.groups.set_shared(s, user_id, task, sid, True)
            return self.engine.apply_task_toggle(s, user_id, task, is_completed)

    def _toggle_subtask(self, task_id: int, subtask_id: int, is_completed: bool) -> CascadeResult:
        user_id = self.identity.user_id
        with self.engine.transaction(user_id, task_id) as s:
            task = self.catalog.require_readable(s, self.identity, task_id)
            if task.is_group_task:
                self._require_group_member(s, task)
                self.catalog.get_subtask(s, task_id, subtask_id)
                self.groups.set_shared(s, user_id, task, subtask_id, is_completed)
            return self.engine.apply_subtask_toggle(s, user_id, task, subtask_id, is_completed)

    def _require_group_member(self, s, task) -> None:
        if not self.catalog.can_edit_group(s, self.identity, task):
            raise Unauthorized(f"User {self.identity.user_id} is not a member of group task {task.id}")

    def _retry_once(self, what: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except Conflict:
            logger.warning("Conflict on %s for user=%s, retrying once", what, self.identity.user_id)
            return fn()

    # ---- projections ----

    def get_group_progress(self, task_id: int) -> Optional[dict]:
        progress = self.groups.progress(self.identity, task_id)
        return progress.to_dict() if progress is not None else None

    def _open_tasks(self):
        with self.store.session_factory() as s:
            tasks = self.catalog.tasks_for_class(s, self.identity.class_id)
            done = self.store.completed_task_ids(self.identity.user_id, [t.id for t in tasks], s)
        return [t for t in tasks if t.id not in done]

    def get_uncompleted_count(self) -> int:
        return len(self._open_tasks())

    def get_overdue_tasks(self) -> List[dict]:
        """Open tasks whose date is more than ``overdue_after_days`` ago, most overdue first."""
        now = self.store.now()
        limit = timedelta(days=self.settings.overdue_after_days)
        out = []
        for t in self._open_tasks():
            age = now - t.date
            if age > limit:
                out.append({"task_id": t.id, "title": t.title, "date": t.date, "days_overdue": age.days})
        out.sort(key=lambda r: (-r["days_overdue"], r["task_id"]))
        return out

    # ---- history ----

    def get_history(self) -> List[dict]:
        return [e.to_dict() for e in self.engine.archiver.list_for_user(self.identity.user_id)]

    def hidden_task_ids(self) -> Set[int]:
        """Completed tasks whose TTL window has run out; a feed hides these.

        The window starts at the task-level record's ``updated_at``, so reopening a
        task shows it again and ticking it again restarts the countdown.
        """
        return self.store.expired_task_ids(self.identity.user_id, timedelta(hours=self.settings.ttl_hours))


def build_engine(session_factory, clock=None, locks=None) -> CascadeEngine:
    """Wire store, archiver and cascade rules on one session factory."""
    clock = clock or utcnow
    store = StatusStore(session_factory, clock=clock)
    archiver = HistoryArchiver(session_factory, clock=clock)
    return CascadeEngine(store, archiver, locks=locks)
