# services/cascade.py

"""Completion rules between a task and its subtasks, applied per (user, task).

| Event                  | Effect                                                        |
|------------------------|---------------------------------------------------------------|
| toggle task -> True    | every subtask -> True, task -> True, FullyCompleted            |
| toggle task -> False   | task -> False; subtasks untouched                             |
| toggle subtask -> True | subtask -> True; if that completed the last open subtask,     |
|                        | task -> True and FullyCompleted                               |
| toggle subtask -> False| subtask -> False; task untouched                              |

Each toggle runs under a per-(user, task) lock and inside one transaction, so
nobody observes a half-applied cascade and a failure leaves nothing behind.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from catalog import Identity
from errors import Conflict
from models.completion_record import CompletionRecord
from models.task import Task
from services.history import HistoryArchiver
from services.status_store import StatusKey, StatusStore
from utils.locks import KeyedLock

logger = logging.getLogger(__name__)


class TaskState(str, Enum):
    INCOMPLETE = "incomplete"
    PARTIALLY_COMPLETE = "partially_complete"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class FullyCompleted:
    user_id: int
    task_id: int
    title: str


@dataclass(slots=True)
class CascadeResult:
    state: TaskState
    events: List[FullyCompleted] = field(default_factory=list)
    archived: bool = False


def _is_done(records: Dict[StatusKey, CompletionRecord], key: StatusKey) -> bool:
    rec = records.get(key)
    return bool(rec and rec.is_completed)


def task_row_lock(task_id: int):
    """Row lock on the parent task. Postgres queues writers on it; SQLite
    renders no FOR UPDATE and relies on BEGIN IMMEDIATE instead."""
    return select(Task.id).where(Task.id == task_id).with_for_update()


def derive_state(
    task_id: int, subtask_ids: List[int], records: Dict[StatusKey, CompletionRecord]
) -> TaskState:
    task_done = _is_done(records, (task_id, None))
    subs_done = [_is_done(records, (task_id, sid)) for sid in subtask_ids]

    if task_done and all(subs_done):
        return TaskState.COMPLETE
    if task_done or any(subs_done):
        return TaskState.PARTIALLY_COMPLETE
    return TaskState.INCOMPLETE


class CascadeEngine:
    def __init__(
        self,
        store: StatusStore,
        archiver: HistoryArchiver,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self.store = store
        self.archiver = archiver
        self.locks = locks or KeyedLock()

    @property
    def catalog(self):
        return self.store.catalog

    @contextmanager
    def transaction(self, user_id: int, task_id: int) -> Iterator[Session]:
        """Critical section for one (user, task): the process lock, then one
        transaction that starts by locking the task row for other processes."""
        with self.locks.hold((user_id, task_id)):
            with self.store.session_factory() as s:
                try:
                    with s.begin():
                        s.exec(task_row_lock(task_id)).first()
                        yield s
                except IntegrityError as exc:
                    raise Conflict(f"Concurrent cascade on user={user_id} task={task_id}") from exc

    # ---- public toggles ----

    def toggle_task(self, identity: Identity, task_id: int, is_completed: bool) -> CascadeResult:
        with self.transaction(identity.user_id, task_id) as s:
            task = self.catalog.require_readable(s, identity, task_id)
            return self.apply_task_toggle(s, identity.user_id, task, is_completed)

    def toggle_subtask(
        self, identity: Identity, task_id: int, subtask_id: int, is_completed: bool
    ) -> CascadeResult:
        with self.transaction(identity.user_id, task_id) as s:
            task = self.catalog.require_readable(s, identity, task_id)
            return self.apply_subtask_toggle(s, identity.user_id, task, subtask_id, is_completed)

    def state(self, user_id: int, task_id: int) -> TaskState:
        with self.store.session_factory() as s:
            subtask_ids = self.catalog.subtask_ids(s, task_id)
            records = self.store.status_map(user_id, task_id, s)
        return derive_state(task_id, subtask_ids, records)

    # ---- rules (caller holds the transaction) ----

    def apply_task_toggle(self, s: Session, user_id: int, task: Task, is_completed: bool) -> CascadeResult:
        subtask_ids = self.catalog.subtask_ids(s, task.id)
        result = CascadeResult(state=TaskState.INCOMPLETE)

        if is_completed:
            for sid in subtask_ids:
                self.store.set_subtask_status(user_id, task.id, sid, True, s)
            self.store.set_task_status(user_id, task.id, True, s)
            self._emit(s, result, FullyCompleted(user_id=user_id, task_id=task.id, title=task.title))
        else:
            self.store.set_task_status(user_id, task.id, False, s)

        result.state = derive_state(task.id, subtask_ids, self.store.status_map(user_id, task.id, s))
        return result

    def apply_subtask_toggle(
        self, s: Session, user_id: int, task: Task, subtask_id: int, is_completed: bool
    ) -> CascadeResult:
        self.catalog.get_subtask(s, task.id, subtask_id)
        subtask_ids = self.catalog.subtask_ids(s, task.id)
        before = self.store.status_map(user_id, task.id, s)
        prev = before.get((task.id, subtask_id))
        was_done = bool(prev and prev.is_completed)

        self.store.set_subtask_status(user_id, task.id, subtask_id, is_completed, s)
        after = self.store.status_map(user_id, task.id, s)
        result = CascadeResult(state=TaskState.INCOMPLETE)

        if is_completed and not was_done:
            if all(_is_done(after, (task.id, sid)) for sid in subtask_ids):
                self.store.set_task_status(user_id, task.id, True, s)
                self._emit(s, result, FullyCompleted(user_id=user_id, task_id=task.id, title=task.title))
                after = self.store.status_map(user_id, task.id, s)

        result.state = derive_state(task.id, subtask_ids, after)
        return result

    def _emit(self, s: Session, result: CascadeResult, event: FullyCompleted) -> None:
        logger.info("FullyCompleted user=%s task=%s", event.user_id, event.task_id)
        result.events.append(event)
        if self.archiver.archive(s, event.user_id, event.task_id, event.title):
            result.archived = True
