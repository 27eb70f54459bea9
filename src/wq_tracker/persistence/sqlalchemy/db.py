from __future__ import annotations

import threading

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .base import Base
from . import models  # noqa: F401  registers tables on Base.metadata

CONNECTION_LOCK = "connection_lock"


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/").endswith(":"))


def build_engine(url: str) -> Engine:
    """Create the store engine.

    Units of work run on worker threads during the listing fan-out, so SQLite
    connections are opened with ``check_same_thread=False``. An in-memory
    database lives on one shared connection (``StaticPool``).
    """
    if not url.startswith("sqlite"):
        return create_engine(url)

    if _is_memory_sqlite(url):
        engine = create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    else:
        engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    info = {}
    if isinstance(engine.pool, StaticPool):
        # one DBAPI connection for every session: transactions must not interleave
        info[CONNECTION_LOCK] = threading.RLock()
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, info=info)


def create_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine)
