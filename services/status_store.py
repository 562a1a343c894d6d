# services/status_store.py

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from sqlalchemy import and_, delete, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlmodel import Session, select

from catalog import Identity, TaskCatalog
from db import utcnow
from errors import Conflict
from models.completion_record import CompletionRecord
from models.subtask import Subtask
from models.task import Task

logger = logging.getLogger(__name__)

StatusKey = Tuple[int, Optional[int]]


class StatusStore:
    """
    Authoritative per-user completion records keyed by (user, task, subtask|None).

    Setters accept an open session so a cascade can group several writes in one
    transaction; without one they run in a transaction of their own. Every write
    stamps ``updated_at`` with the clock, even when the flag does not change.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        catalog: Optional[TaskCatalog] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._catalog = catalog or TaskCatalog()
        self._clock = clock

    @property
    def catalog(self) -> TaskCatalog:
        return self._catalog

    @property
    def session_factory(self) -> sessionmaker:
        return self._session_factory

    def now(self) -> datetime:
        return self._clock()

    @contextmanager
    def _scope(self, s: Optional[Session]) -> Iterator[Session]:
        if s is not None:
            yield s
            return
        with self._session_factory() as own:
            with own.begin():
                yield own

    # ---- reads ----

    def get_statuses(self, identity: Identity, task_id: int) -> List[CompletionRecord]:
        """Task-level record (if any) followed by the subtask records, in subtask order."""
        with self._session_factory() as s:
            self._catalog.require_readable(s, identity, task_id)
            order = self._catalog.subtask_ids(s, task_id)
            by_key = self._load(s, identity.user_id, task_id)

        out: List[CompletionRecord] = []
        if (task_id, None) in by_key:
            out.append(by_key[(task_id, None)])
        for sid in order:
            rec = by_key.get((task_id, sid))
            if rec is not None:
                out.append(rec)
        return out

    def status_map(
        self, user_id: int, task_id: int, s: Optional[Session] = None
    ) -> Dict[StatusKey, CompletionRecord]:
        with self._scope(s) as sess:
            return self._load(sess, user_id, task_id)

    def _load(self, s: Session, user_id: int, task_id: int) -> Dict[StatusKey, CompletionRecord]:
        rows = s.exec(
            select(CompletionRecord).where(
                CompletionRecord.user_id == user_id,
                CompletionRecord.task_id == task_id,
            )
        ).all()
        return {r.key: r for r in rows}

    def is_task_completed(self, user_id: int, task_id: int, s: Optional[Session] = None) -> bool:
        with self._scope(s) as sess:
            rec = self._find(sess, user_id, task_id, None)
            return bool(rec and rec.is_completed)

    def completed_task_ids(self, user_id: int, task_ids: Iterable[int], s: Optional[Session] = None) -> Set[int]:
        ids = list(task_ids)
        if not ids:
            return set()
        with self._scope(s) as sess:
            rows = sess.exec(
                select(CompletionRecord.task_id).where(
                    CompletionRecord.user_id == user_id,
                    CompletionRecord.task_id.in_(ids),
                    CompletionRecord.subtask_id.is_(None),
                    CompletionRecord.is_completed.is_(True),
                )
            ).all()
            return set(rows)

    def expired_task_ids(self, user_id: int, ttl: timedelta, s: Optional[Session] = None) -> Set[int]:
        """Tasks the user completed, whose task-level record was last written at least ``ttl`` ago."""
        with self._scope(s) as sess:
            rows = sess.exec(
                select(CompletionRecord.task_id).where(
                    CompletionRecord.user_id == user_id,
                    CompletionRecord.subtask_id.is_(None),
                    CompletionRecord.is_completed.is_(True),
                    CompletionRecord.updated_at <= self._clock() - ttl,
                )
            ).all()
            return set(rows)

    # ---- writes ----

    def set_task_status(
        self, user_id: int, task_id: int, is_completed: bool, s: Optional[Session] = None
    ) -> CompletionRecord:
        with self._scope(s) as sess:
            return self._upsert(sess, user_id, task_id, None, is_completed)

    def set_subtask_status(
        self,
        user_id: int,
        task_id: int,
        subtask_id: int,
        is_completed: bool,
        s: Optional[Session] = None,
    ) -> CompletionRecord:
        with self._scope(s) as sess:
            return self._upsert(sess, user_id, task_id, subtask_id, is_completed)

    def _find(
        self, s: Session, user_id: int, task_id: int, subtask_id: Optional[int]
    ) -> Optional[CompletionRecord]:
        stmt = select(CompletionRecord).where(
            CompletionRecord.user_id == user_id,
            CompletionRecord.task_id == task_id,
        )
        if subtask_id is None:
            stmt = stmt.where(CompletionRecord.subtask_id.is_(None))
        else:
            stmt = stmt.where(CompletionRecord.subtask_id == subtask_id)
        return s.exec(stmt).first()

    def _upsert(
        self,
        s: Session,
        user_id: int,
        task_id: int,
        subtask_id: Optional[int],
        is_completed: bool,
    ) -> CompletionRecord:
        now = self._clock()
        rec = self._find(s, user_id, task_id, subtask_id)
        if rec is None:
            rec = CompletionRecord(
                user_id=user_id,
                task_id=task_id,
                subtask_id=subtask_id,
                is_completed=bool(is_completed),
                updated_at=now,
            )
            s.add(rec)
        else:
            rec.is_completed = bool(is_completed)
            rec.updated_at = now
            s.add(rec)
        try:
            s.flush()
        except IntegrityError as exc:
            raise Conflict(
                f"Concurrent write on user={user_id} task={task_id} subtask={subtask_id}"
            ) from exc
        logger.debug(
            "Status set user=%s task=%s subtask=%s completed=%s",
            user_id, task_id, subtask_id, rec.is_completed,
        )
        return rec

    # ---- catalog deletions ----

    def forget_task(self, task_id: int, s: Optional[Session] = None) -> int:
        """Drop every user's records for a deleted task. Returns the number removed."""
        with self._scope(s) as sess:
            n = sess.execute(delete(CompletionRecord).where(CompletionRecord.task_id == task_id)).rowcount
        logger.info("Removed %s completion records of deleted task=%s", n, task_id)
        return n

    def forget_subtask(self, task_id: int, subtask_id: int, s: Optional[Session] = None) -> int:
        with self._scope(s) as sess:
            n = sess.execute(
                delete(CompletionRecord).where(
                    CompletionRecord.task_id == task_id,
                    CompletionRecord.subtask_id == subtask_id,
                )
            ).rowcount
        logger.info("Removed %s completion records of deleted subtask=%s task=%s", n, subtask_id, task_id)
        return n

    def purge_orphans(self, s: Optional[Session] = None) -> int:
        """Sweep records whose task or subtask no longer exists, for deletions nobody announced."""
        with self._scope(s) as sess:
            n = sess.execute(
                delete(CompletionRecord).where(
                    or_(
                        CompletionRecord.task_id.not_in(select(Task.id)),
                        and_(
                            CompletionRecord.subtask_id.is_not(None),
                            CompletionRecord.subtask_id.not_in(select(Subtask.id)),
                        ),
                    )
                )
            ).rowcount
        if n:
            logger.info("Purged %s orphaned completion records", n)
        return n
