# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest

import db
from catalog import Identity
from models.subtask import Subtask
from models.task import Task
from models.task_member import TaskMember
from services.completion import CompletionService, build_engine

from .fakes import FakeClock


@pytest.fixture()
def settings() -> SimpleNamespace:
    """Settings without touching st.secrets or the environment."""
    return SimpleNamespace(
        database_url="sqlite://",
        ttl_hours=24,
        overdue_after_days=7,
        debounce_ms=800,
        min_click_interval_ms=300,
        poll_seconds=5,
        log_level="DEBUG",
        log_dir=".local/test",
    )


@pytest.fixture()
def session_factory(tmp_path: Path):
    eng = db.make_engine(f"sqlite:///{tmp_path / 'tuntas.sqlite3'}")
    db.init_db(eng)
    yield db.make_session_factory(eng)
    eng.dispose()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def engine(session_factory, clock):
    return build_engine(session_factory, clock=clock)


@pytest.fixture()
def student() -> Identity:
    return Identity(user_id=1, class_id=10)


@pytest.fixture()
def service(student, engine, settings) -> CompletionService:
    return CompletionService(student, engine, settings=settings)


@pytest.fixture()
def make_task(session_factory, clock):
    """Insert a task (and its subtasks/members) the way the task catalog would."""

    def _make(
        title: str = "Matematika",
        subtasks: tuple[str, ...] = (),
        class_id: int = 10,
        author_id: int = 99,
        is_group_task: bool = False,
        members: tuple[int, ...] = (),
        date: datetime | None = None,
    ):
        with session_factory() as s:
            t = Task(
                author_id=author_id,
                class_id=class_id,
                title=title,
                created_at=clock(),
                date=date or clock(),
                is_group_task=is_group_task,
            )
            s.add(t)
            s.commit()
            s.refresh(t)
            sub_ids = []
            for i, content in enumerate(subtasks):
                sub = Subtask(
                    task_id=t.id,
                    author_id=author_id,
                    content=content,
                    created_at=clock() + timedelta(seconds=i),
                )
                s.add(sub)
                s.commit()
                s.refresh(sub)
                sub_ids.append(sub.id)
            for uid in members:
                s.add(TaskMember(task_id=t.id, user_id=uid))
            s.commit()
            return t.id, sub_ids

    return _make

