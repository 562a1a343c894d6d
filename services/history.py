# services/history.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlmodel import Session, select

from db import utcnow
from models.history_entry import HistoryEntry

logger = logging.getLogger(__name__)


class HistoryArchiver:
    """
    Append-only log of the first time a user fully completed a task.

    One entry per (user, task). There is no update and no delete here: reopening
    a task keeps its entry, and completing it again does not move ``completed_at``.
    """

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def archive(self, s: Session, user_id: int, task_id: int, title: str) -> bool:
        """Insert the entry if absent. Returns True when this call created it."""
        existing = s.exec(
            select(HistoryEntry.id).where(HistoryEntry.user_id == user_id, HistoryEntry.task_id == task_id)
        ).first()
        if existing is not None:
            return False

        # A racing writer in another process can still win between the check and
        # the insert; the savepoint keeps the outer cascade alive when it does.
        try:
            with s.begin_nested():
                s.add(HistoryEntry(user_id=user_id, task_id=task_id, title=title, completed_at=self._clock()))
        except IntegrityError:
            logger.debug("History already present user=%s task=%s", user_id, task_id)
            return False

        logger.info("History archived user=%s task=%s title=%r", user_id, task_id, title)
        return True

    def list_for_user(self, user_id: int) -> List[HistoryEntry]:
        """Newest first."""
        with self._session_factory() as s:
            return list(
                s.exec(
                    select(HistoryEntry)
                    .where(HistoryEntry.user_id == user_id)
                    .order_by(HistoryEntry.completed_at.desc(), HistoryEntry.id.desc())
                ).all()
            )

    def get(self, user_id: int, task_id: int) -> Optional[HistoryEntry]:
        with self._session_factory() as s:
            return s.exec(
                select(HistoryEntry).where(HistoryEntry.user_id == user_id, HistoryEntry.task_id == task_id)
            ).first()

