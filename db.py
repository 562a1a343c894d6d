# db.py

#============================================================#
#                           Tuntas                           #
#============================================================#
# Purpose     : Per-user completion tracking for classroom   #
#               tasks and subtasks: cascade rules, history,  #
#               group progress and TTL countdowns            #
#               (SQLite/Postgres via SQLModel)               #
#============================================================#


from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import DateTime, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel, Session, create_engine

from config import get_settings

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC wall-clock time; every timestamp column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UTCDateTime(TypeDecorator):
    """
    Timestamp column holding naive UTC.

    Aware values are converted to UTC before binding; naive ones are taken as
    UTC already. Reads come back naive, matching ``utcnow()``.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_naive_utc(value)

    def process_result_value(self, value, dialect):
        return as_naive_utc(value)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def make_engine(url: str, echo: bool = False) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    eng = create_engine(url, pool_pre_ping=True, echo=echo, connect_args=connect_args)
    if url.startswith("sqlite"):
        _enable_sqlite_transactions(eng)
    return eng


def _enable_sqlite_transactions(eng: Engine) -> None:
    # pysqlite delays BEGIN on its own, which breaks SAVEPOINT; take over.
    # IMMEDIATE takes the write lock up front so two writers queue on the busy
    # timeout instead of failing on a read->write lock upgrade.
    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_session_factory(eng: Engine) -> sessionmaker:
    return sessionmaker(bind=eng, class_=Session, autoflush=False, expire_on_commit=False)


# ---- Application defaults ----
DATABASE_URL = get_settings().database_url

engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)


def init_db(eng: Optional[Engine] = None) -> None:
    import models  # noqa: F401  (registers the tables on SQLModel.metadata)

    eng = eng or engine
    SQLModel.metadata.create_all(eng)
    logger.info("Database ready url=%s", eng.url.render_as_string(hide_password=True))


@contextmanager
def get_session() -> Iterator[Session]:
    with SessionLocal() as s:
        yield s
