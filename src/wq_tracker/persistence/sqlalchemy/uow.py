from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from .db import CONNECTION_LOCK
from .repos import FactionRepo, ItemRepo, QuestInstanceRepo, QuestRepo, ZoneRepo


class SQLAlchemyUnitOfWork:
    """One session per ``with`` block; leaving the block without ``commit`` discards it.

    When the session factory carries a connection lock (in-memory SQLite), the
    lock is held for the whole block so concurrent units of work take turns on
    the shared connection.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        self.session: Session | None = None
        self._lock = None

    def __enter__(self) -> "SQLAlchemyUnitOfWork":
        session = self._session_factory()
        self._lock = session.info.get(CONNECTION_LOCK)
        if self._lock is not None:
            self._lock.acquire()
        self.session = session
        self.items = ItemRepo(session)
        self.factions = FactionRepo(session)
        self.zones = ZoneRepo(session)
        self.quests = QuestRepo(session)
        self.quest_instances = QuestInstanceRepo(session)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self.session is not None:
                if exc_type is not None:
                    self.rollback()
                self.session.close()
        finally:
            self.session = None
            if self._lock is not None:
                self._lock.release()
                self._lock = None

    def commit(self) -> None:
        assert self.session is not None
        self.session.commit()

    def rollback(self) -> None:
        assert self.session is not None
        self.session.rollback()
